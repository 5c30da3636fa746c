"""Client endpoints."""
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import http_error
from app.core.database import get_db, unit_of_work
from app.core.exceptions import BookingError
from app.models.client import Client
from app.schemas.client import ClientCreate, ClientInDB, ClientUpdate

router = APIRouter(prefix="/clients", tags=["clients"])


async def _get_client_or_404(db: AsyncSession, client_id: int) -> Client:
    client = await db.get(Client, client_id)
    if not client:
        raise HTTPException(status_code=404, detail="Client not found")
    return client


async def _check_code_free(db: AsyncSession, client_code: str, exclude_id: Optional[int] = None) -> None:
    query = select(Client).where(Client.client_code == client_code)
    if exclude_id is not None:
        query = query.where(Client.id != exclude_id)
    result = await db.execute(query)
    existing = result.scalar_one_or_none()
    if existing:
        raise HTTPException(
            status_code=409,
            detail=f"Client code '{client_code}' is already used (ID: {existing.id})",
        )


@router.post("", response_model=ClientInDB, status_code=201)
async def create_client(
    client: ClientCreate,
    db: AsyncSession = Depends(get_db),
):
    """
    Register a client.

    Args:
        client: Name, phone and the client code shown to staff
        db: Database session

    Returns:
        Created client
    """
    await _check_code_free(db, client.client_code)

    db_client = Client(**client.model_dump())
    try:
        async with unit_of_work(db, "Client create"):
            db.add(db_client)
    except BookingError as e:
        raise http_error(e)
    await db.refresh(db_client)
    return db_client


@router.get("", response_model=List[ClientInDB])
async def list_clients(
    search: Optional[str] = Query(default=None, min_length=1, description="Match on name or client code"),
    include_deleted: bool = False,
    skip: int = 0,
    limit: int = 100,
    db: AsyncSession = Depends(get_db),
):
    """
    List clients.

    Args:
        search: Case-insensitive match on name or client code
        include_deleted: Also return soft-deleted clients
        skip: Number of records to skip
        limit: Maximum number of records to return
        db: Database session

    Returns:
        List of clients
    """
    query = select(Client)
    if not include_deleted:
        query = query.where(Client.deleted_at.is_(None))
    if search:
        pattern = f"%{search}%"
        query = query.where(or_(Client.name.ilike(pattern), Client.client_code.ilike(pattern)))
    result = await db.execute(query.order_by(Client.name).offset(skip).limit(limit))
    return result.scalars().all()


@router.get("/{client_id}", response_model=ClientInDB)
async def get_client(
    client_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Get a specific client by ID."""
    return await _get_client_or_404(db, client_id)


@router.patch("/{client_id}", response_model=ClientInDB)
async def update_client(
    client_id: int,
    client_update: ClientUpdate,
    db: AsyncSession = Depends(get_db),
):
    """Update a client's details."""
    client = await _get_client_or_404(db, client_id)

    update_data = client_update.model_dump(exclude_unset=True)
    if update_data.get("client_code"):
        await _check_code_free(db, update_data["client_code"], exclude_id=client_id)

    try:
        async with unit_of_work(db, f"Client {client_id} update"):
            for field, value in update_data.items():
                setattr(client, field, value)
    except BookingError as e:
        raise http_error(e)
    await db.refresh(client)
    return client


@router.delete("/{client_id}", status_code=204)
async def delete_client(
    client_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Soft-delete a client. Past reservations keep referring to them."""
    client = await _get_client_or_404(db, client_id)
    if client.deleted_at is not None:
        return

    try:
        async with unit_of_work(db, f"Client {client_id} delete"):
            client.deleted_at = datetime.now(timezone.utc)
    except BookingError as e:
        raise http_error(e)
