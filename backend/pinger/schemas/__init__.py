"""Pydantic schemas for records and API request/response models."""
from .endpoint import (
    Endpoint,
    EndpointCreate,
    EndpointUpdate,
)
from .hit import (
    Hit,
    HitStatus,
    EndpointHits,
    DayHits,
    DayOverview,
)

__all__ = [
    "Endpoint",
    "EndpointCreate",
    "EndpointUpdate",
    "Hit",
    "HitStatus",
    "EndpointHits",
    "DayHits",
    "DayOverview",
]
