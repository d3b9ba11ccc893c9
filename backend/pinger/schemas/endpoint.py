"""Endpoint schemas - value type shared by the API, scheduler and prober."""
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator


class Endpoint(BaseModel):
    """A monitored target as read from storage. Immutable."""
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: int
    domain: str
    code_ok: int
    timeout: float = Field(..., gt=0)  # seconds
    interval: float = Field(..., gt=0)  # seconds


class EndpointCreate(BaseModel):
    """Schema for creating a new endpoint."""
    domain: str = Field(..., min_length=1, pattern=r"^https?://")
    code_ok: int = Field(default=200, ge=100, le=599)
    timeout: float = Field(..., gt=0)
    interval: float = Field(..., gt=0)

    @model_validator(mode="after")
    def _timeout_within_interval(self):
        if self.timeout > self.interval:
            raise ValueError("timeout must not exceed interval")
        return self


class EndpointUpdate(BaseModel):
    """Schema for updating an endpoint. Omitted fields are left unchanged."""
    domain: Optional[str] = Field(None, min_length=1, pattern=r"^https?://")
    code_ok: Optional[int] = Field(None, ge=100, le=599)
    timeout: Optional[float] = Field(None, gt=0)
    interval: Optional[float] = Field(None, gt=0)

    @model_validator(mode="after")
    def _timeout_within_interval(self):
        # Only checkable here when both are sent; storage re-checks the merged row
        if self.timeout is not None and self.interval is not None and self.timeout > self.interval:
            raise ValueError("timeout must not exceed interval")
        return self
