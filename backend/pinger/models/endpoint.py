"""Endpoint model - targets being probed."""
from sqlalchemy import Column, Integer, String, Float
from sqlalchemy.orm import relationship

from ..database import Base


class EndpointRecord(Base):
    """A monitored HTTP endpoint."""

    __tablename__ = "endpoints"

    id = Column(Integer, primary_key=True, autoincrement=True)
    domain = Column(String, nullable=False)  # Full URL to GET
    code_ok = Column(Integer, nullable=False, default=200)  # Status code considered healthy
    timeout = Column(Float, nullable=False)  # seconds
    interval = Column(Float, nullable=False)  # seconds

    # Relationships
    hits = relationship("HitRecord", back_populates="endpoint", passive_deletes=True)
