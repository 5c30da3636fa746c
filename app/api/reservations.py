"""Reservation endpoints."""
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import http_error, resolve_window
from app.core.database import get_db
from app.core.exceptions import BookingError
from app.schemas.ledger import TransactionInDB
from app.schemas.reservation import (
    ReservationCreate,
    ReservationInDB,
    ReservationListItem,
    ReservationUpdate,
    ScheduleGrid,
)
from app.services.ledger_reconciler import ledger_reconciler
from app.services.reservation_repository import reservation_repository
from app.utils.clock import facility_today, relative_status

router = APIRouter(prefix="/reservations", tags=["reservations"])


@router.post("", response_model=ReservationInDB, status_code=201)
async def create_reservation(
    reservation: ReservationCreate,
    db: AsyncSession = Depends(get_db),
):
    """
    Book a court and write its ledger rows.

    Overlapping an existing booking on the same court and date is refused
    with 409 unless ``allow_overlap`` is set.

    Args:
        reservation: Booking details and tender split
        db: Database session

    Returns:
        Created reservation
    """
    try:
        return await reservation_repository.create(db, reservation)
    except BookingError as e:
        raise http_error(e)


@router.get("", response_model=List[ReservationListItem])
async def list_reservations(
    from_date: date = Query(default=None, description="Start date (defaults to 7 days before to_date)"),
    to_date: date = Query(default=None, description="End date (defaults to today)"),
    court_id: Optional[int] = None,
    client_id: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
):
    """
    List reservations in a date window.

    Args:
        from_date: First day, inclusive
        to_date: Last day, inclusive
        court_id: Only this court
        client_id: Only this client
        db: Database session

    Returns:
        Reservations with their past/today/future status
    """
    window = resolve_window(from_date, to_date)
    try:
        reservations = await reservation_repository.list_by_date_range(
            db, window.from_date, window.to_date, court_id=court_id, client_id=client_id
        )
    except BookingError as e:
        raise http_error(e)

    today = facility_today()
    return [
        ReservationListItem(
            **ReservationInDB.model_validate(r).model_dump(exclude={"total"}),
            status=relative_status(r.date, today),
        )
        for r in reservations
    ]


@router.get("/schedule", response_model=ScheduleGrid)
async def get_schedule(
    day: date = Query(default=None, alias="date", description="Date to render (defaults to today)"),
    court_ids: Optional[List[int]] = Query(default=None, description="Courts to include (defaults to all active)"),
    granularity: Optional[int] = Query(default=None, ge=5, le=240, description="Slot length in minutes"),
    db: AsyncSession = Depends(get_db),
):
    """
    Get the court x slot schedule grid for one date.

    Args:
        day: Date to render
        court_ids: Courts to include
        granularity: Slot length in minutes
        db: Database session

    Returns:
        Schedule grid
    """
    try:
        return await reservation_repository.get_schedule_grid(
            db, court_ids, day or facility_today(), granularity
        )
    except BookingError as e:
        raise http_error(e)


@router.get("/{reservation_id}", response_model=ReservationInDB)
async def get_reservation(
    reservation_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Get a specific reservation by ID."""
    try:
        return await reservation_repository.get(db, reservation_id)
    except BookingError as e:
        raise http_error(e)


@router.patch("/{reservation_id}", response_model=ReservationInDB)
async def update_reservation(
    reservation_id: int,
    reservation_update: ReservationUpdate,
    db: AsyncSession = Depends(get_db),
):
    """
    Edit a reservation and regenerate its ledger rows.

    Pass ``expected_version`` to be told (409) about a concurrent edit
    instead of overwriting it.

    Args:
        reservation_id: Reservation ID
        reservation_update: Fields to update
        db: Database session

    Returns:
        Updated reservation
    """
    try:
        return await reservation_repository.update(db, reservation_id, reservation_update)
    except BookingError as e:
        raise http_error(e)


@router.delete("/{reservation_id}", status_code=204)
async def delete_reservation(
    reservation_id: int,
    db: AsyncSession = Depends(get_db),
):
    """
    Delete a reservation together with its ledger rows.

    Args:
        reservation_id: Reservation ID
        db: Database session
    """
    try:
        await reservation_repository.delete(db, reservation_id)
    except BookingError as e:
        raise http_error(e)


@router.post("/{reservation_id}/reconcile", response_model=List[TransactionInDB])
async def reconcile_reservation(
    reservation_id: int,
    db: AsyncSession = Depends(get_db),
):
    """
    Regenerate the ledger rows of a reservation from its split.

    Args:
        reservation_id: Reservation ID
        db: Database session

    Returns:
        The rewritten ledger rows
    """
    try:
        rows = await ledger_reconciler.resync(db, reservation_id)
    except BookingError as e:
        raise http_error(e)
    return rows
