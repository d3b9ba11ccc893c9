"""Database models."""
from .endpoint import EndpointRecord
from .hit import HitRecord

__all__ = ["EndpointRecord", "HitRecord"]
