"""Ledger endpoints."""
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import http_error, resolve_window
from app.core.database import get_db
from app.core.exceptions import BookingError
from app.schemas.ledger import LedgerAuditResult, TransactionCreate, TransactionInDB
from app.schemas.reservation import Tender
from app.services.ledger_reconciler import ledger_reconciler

router = APIRouter(prefix="/ledger", tags=["ledger"])


@router.get("", response_model=List[TransactionInDB])
async def list_ledger_entries(
    from_date: date = Query(default=None, description="Start date (defaults to 7 days before to_date)"),
    to_date: date = Query(default=None, description="End date (defaults to today)"),
    reservation_id: Optional[int] = None,
    tender: Optional[Tender] = None,
    db: AsyncSession = Depends(get_db),
):
    """
    List ledger entries in a date window.

    Args:
        from_date: First day, inclusive
        to_date: Last day, inclusive
        reservation_id: Only entries derived from this reservation
        tender: Only this tender
        db: Database session

    Returns:
        Ledger entries, newest first
    """
    window = resolve_window(from_date, to_date)
    return await ledger_reconciler.list_entries(
        db, window.from_date, window.to_date, reservation_id=reservation_id, tender=tender
    )


@router.post("", response_model=TransactionInDB, status_code=201)
async def create_ledger_entry(
    entry: TransactionCreate,
    db: AsyncSession = Depends(get_db),
):
    """Record a manual entry that is not tied to a reservation."""
    try:
        return await ledger_reconciler.create_manual_entry(db, entry)
    except BookingError as e:
        raise http_error(e)


@router.delete("/{entry_id}", status_code=204)
async def delete_ledger_entry(
    entry_id: int,
    db: AsyncSession = Depends(get_db),
):
    """
    Delete a manual ledger entry.

    Entries derived from a reservation are refused with 409; edit or delete
    the reservation instead.
    """
    try:
        await ledger_reconciler.delete_manual_entry(db, entry_id)
    except BookingError as e:
        raise http_error(e)


@router.get("/audit", response_model=LedgerAuditResult)
async def audit_ledger(
    from_date: date = Query(default=None, description="Start date (defaults to 7 days before to_date)"),
    to_date: date = Query(default=None, description="End date (defaults to today)"),
    db: AsyncSession = Depends(get_db),
):
    """Report reservations whose ledger rows disagree with their split."""
    window = resolve_window(from_date, to_date)
    checked, drifted = await ledger_reconciler.audit(db, window.from_date, window.to_date)
    return LedgerAuditResult(
        from_date=window.from_date,
        to_date=window.to_date,
        checked=checked,
        drifted=drifted,
    )


@router.post("/repair", response_model=LedgerAuditResult)
async def repair_ledger(
    from_date: date = Query(default=None, description="Start date (defaults to 7 days before to_date)"),
    to_date: date = Query(default=None, description="End date (defaults to today)"),
    db: AsyncSession = Depends(get_db),
):
    """Regenerate the ledger rows of every drifted reservation in the window."""
    window = resolve_window(from_date, to_date)
    try:
        return await ledger_reconciler.repair(db, window.from_date, window.to_date)
    except BookingError as e:
        raise http_error(e)
