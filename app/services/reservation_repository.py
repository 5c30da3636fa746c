"""Reservation repository.

Every write runs as one unit of work: the reservation row and its ledger rows
commit together or not at all. Overlap checks for a (court, date) pair are
serialised in-process so check-then-write cannot interleave.
"""
import asyncio
import logging
import weakref
from collections import defaultdict
from contextlib import AsyncExitStack, asynccontextmanager
from datetime import date, time
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.exc import InvalidRequestError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import unit_of_work
from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models.client import Client
from app.models.court import Court
from app.models.reservation import Reservation, TENDERS
from app.schemas.reservation import (
    ReservationCreate,
    ReservationInDB,
    ReservationUpdate,
    ScheduleCell,
    ScheduleGrid,
)
from app.services.ledger_reconciler import LedgerReconciler, ledger_reconciler
from app.utils.time_slots import covers, format_time, overlaps, slots_for_day

logger = logging.getLogger(__name__)

SlotKey = Tuple[int, date]


def _coerce(schema, data: Union[BaseModel, Dict[str, Any]]):
    """Validate raw input into ``schema``, mapping failures to ValidationError."""
    if isinstance(data, schema):
        return data
    if isinstance(data, BaseModel):
        data = data.model_dump(exclude_unset=True)
    try:
        return schema.model_validate(data)
    except PydanticValidationError as e:
        messages = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'input'}: {err['msg']}"
            for err in e.errors()
        )
        raise ValidationError(f"Invalid reservation input: {messages}") from e


def build_schedule_cells(
    courts: Sequence[Tuple[int, str]],
    reservations: Iterable[Any],
    granularity_minutes: int,
) -> List[ScheduleCell]:
    """
    Lay reservations out on a court x slot grid.

    Args:
        courts: (court_id, court_name) pairs, in display order
        reservations: objects with court_id, start_time and end_time
        granularity_minutes: slot length

    Returns:
        One cell per court per slot; ``reservation`` is the booking covering
        the slot start, or None
    """
    by_court = defaultdict(list)
    for reservation in reservations:
        by_court[reservation.court_id].append(reservation)

    cells = []
    slots = slots_for_day(granularity_minutes)
    for court_id, court_name in courts:
        bookings = by_court.get(court_id, [])
        for slot in slots:
            match = next(
                (r for r in bookings if covers(slot, r.start_time, r.end_time)),
                None,
            )
            cells.append(
                ScheduleCell(
                    court_id=court_id,
                    court_name=court_name,
                    slot=slot,
                    reservation=ReservationInDB.model_validate(match) if match else None,
                )
            )
    return cells


class ReservationRepository:
    """CRUD over reservations with overlap enforcement and ledger sync."""

    def __init__(self, reconciler: LedgerReconciler = ledger_reconciler):
        self.reconciler = reconciler
        self._slot_locks: "weakref.WeakValueDictionary[SlotKey, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, key: SlotKey) -> asyncio.Lock:
        lock = self._slot_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._slot_locks[key] = lock
        return lock

    @asynccontextmanager
    async def _slot_guard(self, keys: Iterable[SlotKey]):
        """Hold the locks of every (court, date) key, acquired in sorted order."""
        async with AsyncExitStack() as stack:
            for key in sorted(set(keys)):
                await stack.enter_async_context(self._lock_for(key))
            yield

    # Reads

    async def get(self, db: AsyncSession, reservation_id: int) -> Reservation:
        reservation = await db.get(Reservation, reservation_id)
        if reservation is None:
            raise NotFoundError(f"Reservation {reservation_id} not found")
        return reservation

    async def list_by_date_range(
        self,
        db: AsyncSession,
        from_date: date,
        to_date: date,
        court_id: Optional[int] = None,
        client_id: Optional[int] = None,
    ) -> List[Reservation]:
        """
        Reservations with a date in ``[from_date, to_date]``.

        Args:
            db: Database session
            from_date: First day, inclusive
            to_date: Last day, inclusive
            court_id: Only this court
            client_id: Only this client

        Returns:
            Reservations ordered by date, court and start time
        """
        if from_date > to_date:
            raise ValidationError("from_date must be before or equal to to_date")

        query = select(Reservation).where(
            Reservation.date >= from_date, Reservation.date <= to_date
        )
        if court_id is not None:
            query = query.where(Reservation.court_id == court_id)
        if client_id is not None:
            query = query.where(Reservation.client_id == client_id)

        result = await db.execute(
            query.order_by(Reservation.date, Reservation.court_id, Reservation.start_time)
        )
        return list(result.scalars().all())

    async def find_conflicts(
        self,
        db: AsyncSession,
        court_id: int,
        day: date,
        start_time: time,
        end_time: time,
        exclude_id: Optional[int] = None,
    ) -> List[Reservation]:
        """Reservations on the same court and date whose interval overlaps."""
        same_day = await self.list_by_date_range(db, day, day, court_id=court_id)
        return [
            r
            for r in same_day
            if r.id != exclude_id and overlaps(start_time, end_time, r.start_time, r.end_time)
        ]

    # Writes

    async def create(
        self, db: AsyncSession, data: Union[ReservationCreate, Dict[str, Any]]
    ) -> Reservation:
        """
        Book a court.

        Raises:
            ValidationError: malformed input, or a missing/inactive court or client
            ConflictError: the interval overlaps another booking and
                ``allow_overlap`` is not set
            StoreError: the store failed; nothing was written
        """
        data = _coerce(ReservationCreate, data)
        values = data.model_dump(exclude={"allow_overlap"})

        async with self._slot_guard([(data.court_id, data.date)]):
            async with unit_of_work(db, "Reservation create"):
                await self._require_court(db, data.court_id)
                await self._require_client(db, data.client_id)
                self._check_split(values)
                await self._check_overlap(
                    db, data.court_id, data.date, data.start_time, data.end_time,
                    exclude_id=None, allow_overlap=data.allow_overlap,
                )

                reservation = Reservation(**values)
                db.add(reservation)
                await db.flush()
                await self.reconciler.sync(db, reservation)

        await db.refresh(reservation)
        logger.info(
            f"Created reservation {reservation.id} on court {reservation.court_id} "
            f"{reservation.date} {format_time(reservation.start_time)}-{format_time(reservation.end_time)} "
            f"total {reservation.total}"
        )
        return reservation

    async def update(
        self,
        db: AsyncSession,
        reservation_id: int,
        patch: Union[ReservationUpdate, Dict[str, Any]],
    ) -> Reservation:
        """
        Apply a partial edit and regenerate the ledger.

        Raises:
            NotFoundError: the reservation no longer exists
            ValidationError: the edited reservation is invalid
            ConflictError: overlap, or ``expected_version`` is stale
            StoreError: the store failed; nothing was written
        """
        patch = _coerce(ReservationUpdate, patch)
        changes = patch.model_dump(exclude_unset=True, exclude={"expected_version", "allow_overlap"})
        for field, value in changes.items():
            if value is None:
                raise ValidationError(f"{field} cannot be cleared")

        reservation = await self.get(db, reservation_id)
        while True:
            keys = self._slot_keys(reservation, changes)
            async with self._slot_guard(keys):
                async with unit_of_work(db, f"Reservation {reservation_id} update"):
                    # Pick up writes that landed while waiting for the lock
                    try:
                        await db.refresh(reservation)
                    except InvalidRequestError as e:
                        raise NotFoundError(f"Reservation {reservation_id} not found") from e

                    moved = self._slot_keys(reservation, changes) != keys
                    if not moved:
                        await self._apply_update(db, reservation, patch, changes)
            if not moved:
                break
            logger.debug(f"Reservation {reservation_id} moved while waiting for its slot lock, retrying")

        await db.refresh(reservation)
        logger.info(
            f"Updated reservation {reservation_id} (version {reservation.version}): "
            f"{', '.join(sorted(changes)) or 'no field changes'}"
        )
        return reservation

    @staticmethod
    def _slot_keys(reservation: Reservation, changes: Dict[str, Any]) -> List[SlotKey]:
        """Slot locks an edit needs: where the reservation is and where it is going."""
        return [
            (reservation.court_id, reservation.date),
            (changes.get("court_id", reservation.court_id), changes.get("date", reservation.date)),
        ]

    async def _apply_update(
        self,
        db: AsyncSession,
        reservation: Reservation,
        patch: ReservationUpdate,
        changes: Dict[str, Any],
    ) -> None:
        if patch.expected_version is not None and reservation.version != patch.expected_version:
            raise ConflictError(
                f"Reservation {reservation.id} was changed by someone else "
                f"(version {reservation.version}, expected {patch.expected_version})",
                [reservation.id],
            )

        if "court_id" in changes and changes["court_id"] != reservation.court_id:
            await self._require_court(db, changes["court_id"])
        if "client_id" in changes and changes["client_id"] != reservation.client_id:
            await self._require_client(db, changes["client_id"])

        merged = {
            column: changes.get(column, getattr(reservation, column))
            for column in ("court_id", "date", "start_time", "end_time")
            + tuple(f"{t}_amount" for t in TENDERS)
        }
        if merged["end_time"] <= merged["start_time"]:
            raise ValidationError("end_time must be after start_time")
        self._check_split(merged)
        await self._check_overlap(
            db, merged["court_id"], merged["date"], merged["start_time"], merged["end_time"],
            exclude_id=reservation.id, allow_overlap=patch.allow_overlap,
        )

        for field, value in changes.items():
            setattr(reservation, field, value)
        await db.flush()
        await self.reconciler.sync(db, reservation)

    async def delete(self, db: AsyncSession, reservation_id: int) -> None:
        """
        Delete a reservation and, first, all of its ledger rows.

        Raises:
            NotFoundError: the reservation no longer exists
            StoreError: the store failed; nothing was deleted
        """
        async with unit_of_work(db, f"Reservation {reservation_id} delete"):
            reservation = await self.get(db, reservation_id)
            removed = await self.reconciler.purge(db, reservation_id)
            await db.delete(reservation)
            await db.flush()

        logger.info(f"Deleted reservation {reservation_id} and {removed} ledger rows")

    # Schedule grid

    async def get_schedule_grid(
        self,
        db: AsyncSession,
        court_ids: Optional[Sequence[int]],
        day: date,
        granularity_minutes: Optional[int] = None,
    ) -> ScheduleGrid:
        """
        Build the court x slot grid for one date.

        Args:
            db: Database session
            court_ids: Courts to include; all active courts when empty
            day: Date to render
            granularity_minutes: Slot length (defaults to the configured one)

        Returns:
            ScheduleGrid with one cell per court per slot
        """
        granularity = granularity_minutes or settings.SLOT_GRANULARITY_MINUTES
        if granularity <= 0 or granularity > 24 * 60:
            raise ValidationError(f"Invalid slot granularity: {granularity}")

        query = select(Court)
        if court_ids:
            query = query.where(Court.id.in_(list(court_ids)))
        else:
            query = query.where(Court.deleted_at.is_(None))
        result = await db.execute(query.order_by(Court.name, Court.id))
        courts = result.scalars().all()

        if court_ids:
            missing = set(court_ids) - {c.id for c in courts}
            if missing:
                raise NotFoundError(f"Courts not found: {sorted(missing)}")

        reservations = await self.list_by_date_range(db, day, day)
        cells = build_schedule_cells(
            [(c.id, c.name) for c in courts], reservations, granularity
        )
        return ScheduleGrid(date=day, granularity_minutes=granularity, cells=cells)

    # Validation helpers

    async def _require_court(self, db: AsyncSession, court_id: int) -> Court:
        court = await db.get(Court, court_id)
        if court is None or court.deleted_at is not None:
            raise ValidationError(f"Court {court_id} does not exist or is inactive")
        return court

    async def _require_client(self, db: AsyncSession, client_id: int) -> Client:
        client = await db.get(Client, client_id)
        if client is None or client.deleted_at is not None:
            raise ValidationError(f"Client {client_id} does not exist or is inactive")
        return client

    def _check_split(self, values: Dict[str, Any]) -> None:
        amounts = [values.get(f"{t}_amount") or 0 for t in TENDERS]
        if any(a < 0 for a in amounts):
            raise ValidationError("Tender amounts must not be negative")
        if not settings.ALLOW_FREE_BOOKINGS and sum(amounts) == 0:
            raise ValidationError("A reservation must be paid with at least one tender")

    async def _check_overlap(
        self,
        db: AsyncSession,
        court_id: int,
        day: date,
        start_time: time,
        end_time: time,
        exclude_id: Optional[int],
        allow_overlap: bool,
    ) -> None:
        if allow_overlap or not settings.ENFORCE_NO_OVERLAP:
            return
        conflicts = await self.find_conflicts(db, court_id, day, start_time, end_time, exclude_id)
        if conflicts:
            spans = ", ".join(
                f"#{r.id} {format_time(r.start_time)}-{format_time(r.end_time)}" for r in conflicts
            )
            raise ConflictError(
                f"Court {court_id} is already booked on {day}: {spans}",
                [r.id for r in conflicts],
            )


# Singleton instance
reservation_repository = ReservationRepository()
