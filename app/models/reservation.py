"""Reservation model."""
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Date, Time, Numeric, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.core.database import Base

TENDERS = ("cash", "card", "wallet")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Reservation(Base):
    """A court booked by a client for a same-day [start, end) interval.

    The tender split is the source of truth for payment; ledger rows in
    ``transactions`` are regenerated from it on every write.
    """

    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, index=True)
    court_id = Column(Integer, ForeignKey("courts.id"), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    cash_amount = Column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    card_amount = Column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    wallet_amount = Column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    created_by_role = Column(String, nullable=False, default="employee")  # admin, manager, employee
    created_by_name = Column(String, nullable=True)
    version = Column(Integer, nullable=False)
    # Python-side default so the value is present in change-feed payloads
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    court = relationship("Court", back_populates="reservations")
    client = relationship("Client", back_populates="reservations")

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_reservations_court_date", "court_id", "date"),
    )

    def split(self) -> dict:
        """Tender split as ``{tender: amount}``."""
        return {tender: Decimal(getattr(self, f"{tender}_amount") or 0) for tender in TENDERS}

    @property
    def total(self) -> Decimal:
        return sum(self.split().values(), Decimal("0"))
