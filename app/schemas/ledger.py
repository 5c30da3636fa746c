"""Ledger schemas."""
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.reservation import Tender


class TransactionCreate(BaseModel):
    """Schema for a manual ledger entry not tied to a reservation."""

    tender: Tender
    amount: Decimal = Field(gt=0, decimal_places=2)
    date: date


class TransactionInDB(BaseModel):
    """Schema for ledger entry from database."""

    id: int
    reservation_id: Optional[int] = None
    tender: str
    amount: Decimal
    date: date
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class LedgerDrift(BaseModel):
    """A reservation whose ledger rows disagree with its split."""

    reservation_id: int
    date: date
    expected: Dict[str, Decimal]
    actual: Dict[str, Decimal]


class LedgerAuditResult(BaseModel):
    """Outcome of a ledger audit over a window."""

    from_date: date
    to_date: date
    checked: int
    drifted: List[LedgerDrift]
    repaired: int = 0
