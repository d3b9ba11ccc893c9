"""Hit model - append-only probe results."""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship

from ..database import Base


class HitRecord(Base):
    """One probe outcome for an endpoint."""

    __tablename__ = "hits"
    __table_args__ = (
        Index("ix_hits_endpoint_created", "endpoint_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    endpoint_id = Column(Integer, ForeignKey("endpoints.id", ondelete="CASCADE"), nullable=False)
    status = Column(String, nullable=False)  # UP, DOWN
    latency = Column(Integer, nullable=False, default=0)  # ms to first byte, 0 = no response
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)  # naive UTC

    # Relationships
    endpoint = relationship("EndpointRecord", back_populates="hits")
