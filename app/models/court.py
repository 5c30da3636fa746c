"""Court model."""
from sqlalchemy import Column, Integer, String, ForeignKey, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.core.database import Base


class Court(Base):
    """Represents a bookable court."""

    __tablename__ = "courts"

    id = Column(Integer, primary_key=True, index=True)
    group_id = Column(Integer, ForeignKey("court_groups.id", ondelete="SET NULL"), nullable=True, index=True)
    name = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    deleted_at = Column(DateTime(timezone=True), nullable=True)  # soft delete

    # Relationships
    group = relationship("CourtGroup", back_populates="courts")
    reservations = relationship("Reservation", back_populates="court")

    @property
    def is_active(self) -> bool:
        return self.deleted_at is None
