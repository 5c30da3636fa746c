"""Court group endpoints."""
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import http_error
from app.core.database import get_db, unit_of_work
from app.core.exceptions import BookingError
from app.models.court_group import CourtGroup
from app.schemas.court import CourtGroupCreate, CourtGroupInDB, CourtGroupUpdate

router = APIRouter(prefix="/court-groups", tags=["courts"])


async def _get_group_or_404(db: AsyncSession, group_id: int) -> CourtGroup:
    group = await db.get(CourtGroup, group_id)
    if not group:
        raise HTTPException(status_code=404, detail="Court group not found")
    return group


@router.post("", response_model=CourtGroupInDB, status_code=201)
async def create_court_group(
    group: CourtGroupCreate,
    db: AsyncSession = Depends(get_db),
):
    """Create a court group (e.g. indoor, outdoor)."""
    result = await db.execute(select(CourtGroup).where(CourtGroup.name == group.name))
    if result.scalar_one_or_none():
        raise HTTPException(
            status_code=409,
            detail=f"Court group '{group.name}' already exists",
        )

    db_group = CourtGroup(**group.model_dump())
    try:
        async with unit_of_work(db, "Court group create"):
            db.add(db_group)
    except BookingError as e:
        raise http_error(e)
    await db.refresh(db_group)
    return db_group


@router.get("", response_model=List[CourtGroupInDB])
async def list_court_groups(db: AsyncSession = Depends(get_db)):
    """List all court groups."""
    result = await db.execute(select(CourtGroup).order_by(CourtGroup.name))
    return result.scalars().all()


@router.patch("/{group_id}", response_model=CourtGroupInDB)
async def update_court_group(
    group_id: int,
    group_update: CourtGroupUpdate,
    db: AsyncSession = Depends(get_db),
):
    """Rename a court group."""
    group = await _get_group_or_404(db, group_id)

    update_data = group_update.model_dump(exclude_unset=True)
    try:
        async with unit_of_work(db, f"Court group {group_id} update"):
            for field, value in update_data.items():
                setattr(group, field, value)
    except BookingError as e:
        raise http_error(e)
    await db.refresh(group)
    return group


@router.delete("/{group_id}", status_code=204)
async def delete_court_group(
    group_id: int,
    db: AsyncSession = Depends(get_db),
):
    """
    Delete a court group.

    Its courts become ungrouped; their past sales then drop out of the
    per-group breakdown but stay in the totals.
    """
    group = await _get_group_or_404(db, group_id)
    try:
        async with unit_of_work(db, f"Court group {group_id} delete"):
            await db.delete(group)
    except BookingError as e:
        raise http_error(e)
