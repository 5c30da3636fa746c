"""Court group model."""
from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.core.database import Base


class CourtGroup(Base):
    """Organisational grouping of courts (e.g. indoor/outdoor) used for rollups."""

    __tablename__ = "court_groups"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    courts = relationship("Court", back_populates="group")
