"""Court endpoints."""
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import http_error
from app.core.database import get_db, unit_of_work
from app.core.exceptions import BookingError
from app.models.court import Court
from app.models.court_group import CourtGroup
from app.schemas.court import CourtCreate, CourtInDB, CourtUpdate

router = APIRouter(prefix="/courts", tags=["courts"])


async def _get_court_or_404(db: AsyncSession, court_id: int) -> Court:
    court = await db.get(Court, court_id)
    if not court:
        raise HTTPException(status_code=404, detail="Court not found")
    return court


async def _check_group(db: AsyncSession, group_id: Optional[int]) -> None:
    if group_id is not None and await db.get(CourtGroup, group_id) is None:
        raise HTTPException(status_code=422, detail=f"Court group {group_id} does not exist")


@router.post("", response_model=CourtInDB, status_code=201)
async def create_court(
    court: CourtCreate,
    db: AsyncSession = Depends(get_db),
):
    """
    Create a court.

    Args:
        court: Court name and optional group
        db: Database session

    Returns:
        Created court
    """
    await _check_group(db, court.group_id)

    db_court = Court(**court.model_dump())
    try:
        async with unit_of_work(db, "Court create"):
            db.add(db_court)
    except BookingError as e:
        raise http_error(e)
    await db.refresh(db_court)
    return db_court


@router.get("", response_model=List[CourtInDB])
async def list_courts(
    include_deleted: bool = False,
    group_id: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
):
    """
    List courts.

    Args:
        include_deleted: Also return soft-deleted courts
        group_id: Only courts of this group
        db: Database session

    Returns:
        List of courts
    """
    query = select(Court)
    if not include_deleted:
        query = query.where(Court.deleted_at.is_(None))
    if group_id is not None:
        query = query.where(Court.group_id == group_id)
    result = await db.execute(query.order_by(Court.name))
    return result.scalars().all()


@router.get("/{court_id}", response_model=CourtInDB)
async def get_court(
    court_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Get a specific court by ID."""
    return await _get_court_or_404(db, court_id)


@router.patch("/{court_id}", response_model=CourtInDB)
async def update_court(
    court_id: int,
    court_update: CourtUpdate,
    db: AsyncSession = Depends(get_db),
):
    """
    Rename a court or move it to another group.

    Args:
        court_id: Court ID
        court_update: Fields to update
        db: Database session

    Returns:
        Updated court
    """
    court = await _get_court_or_404(db, court_id)

    update_data = court_update.model_dump(exclude_unset=True)
    if "group_id" in update_data:
        await _check_group(db, update_data["group_id"])

    try:
        async with unit_of_work(db, f"Court {court_id} update"):
            for field, value in update_data.items():
                setattr(court, field, value)
    except BookingError as e:
        raise http_error(e)
    await db.refresh(court)
    return court


@router.delete("/{court_id}", status_code=204)
async def delete_court(
    court_id: int,
    db: AsyncSession = Depends(get_db),
):
    """
    Soft-delete a court.

    The court disappears from active listings and cannot be booked, but its
    reservations and ledger history are kept.
    """
    court = await _get_court_or_404(db, court_id)
    if court.deleted_at is not None:
        return

    try:
        async with unit_of_work(db, f"Court {court_id} delete"):
            court.deleted_at = datetime.now(timezone.utc)
    except BookingError as e:
        raise http_error(e)


@router.post("/{court_id}/restore", response_model=CourtInDB)
async def restore_court(
    court_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Undo a soft delete."""
    court = await _get_court_or_404(db, court_id)
    try:
        async with unit_of_work(db, f"Court {court_id} restore"):
            court.deleted_at = None
    except BookingError as e:
        raise http_error(e)
    await db.refresh(court)
    return court
