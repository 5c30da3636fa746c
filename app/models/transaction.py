"""Ledger transaction model."""
from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Date, Numeric, Index
from sqlalchemy.sql import func
from app.core.database import Base


class Transaction(Base):
    """One ledger entry for a single tender.

    Rows carrying a ``reservation_id`` are a disposable projection of that
    reservation's split. Rows without one are manual entries.
    """

    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    reservation_id = Column(Integer, ForeignKey("reservations.id", ondelete="SET NULL"), nullable=True, index=True)
    tender = Column(String, nullable=False)  # cash, card, wallet
    amount = Column(Numeric(10, 2), nullable=False)
    date = Column(Date, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("ix_transactions_date_tender", "date", "tender"),
    )
