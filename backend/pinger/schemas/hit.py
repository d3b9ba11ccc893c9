"""Hit schemas - probe outcomes."""
from datetime import date, datetime
from enum import Enum
from typing import List
from pydantic import BaseModel, ConfigDict, Field

from .endpoint import Endpoint


class HitStatus(str, Enum):
    UP = "UP"
    DOWN = "DOWN"


class Hit(BaseModel):
    """One immutable, timestamped probe outcome."""
    model_config = ConfigDict(from_attributes=True, frozen=True)

    endpoint_id: int
    status: HitStatus
    latency: int = Field(..., ge=0)  # ms to first byte, 0 when no response arrived
    created_at: datetime  # UTC


class EndpointHits(BaseModel):
    """An endpoint with its hits for one day."""
    endpoint: Endpoint
    hits: List[Hit]


class DayHits(BaseModel):
    """Hits of a single endpoint for one UTC day, with day navigation."""
    day: date
    previous_day: date
    next_day: date
    hits: List[Hit]


class DayOverview(BaseModel):
    """Every endpoint with its hits for one UTC day."""
    day: date
    previous_day: date
    next_day: date
    items: List[EndpointHits]
