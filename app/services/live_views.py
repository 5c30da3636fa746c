"""Live views kept current by the change feed.

Each view owns one subscription for as long as it is entered and recomputes
its own state; views do not share caches.
"""
import asyncio
import logging
from datetime import date
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select

from app.core.config import settings
from app.core.database import AsyncSessionLocal
from app.core.exceptions import BookingError
from app.models.court import Court
from app.schemas.reservation import ReservationCreate, ReservationInDB, ReservationUpdate, ScheduleCell
from app.schemas.summary import DateWindow, SummaryFilters, WindowSummary
from app.services.aggregation_service import AggregationService, aggregation_service
from app.services.change_feed import ChangeEvent, ChangeFeed, ChangeOp, Subscription, change_feed
from app.services.reservation_repository import (
    ReservationRepository,
    build_schedule_cells,
    reservation_repository,
)

logger = logging.getLogger(__name__)

SummaryCallback = Callable[[WindowSummary], Awaitable[None]]


class SummaryView:
    """A window summary recomputed whenever relevant rows change.

    Every recompute takes a new generation number; a result that finishes
    after a newer recompute was started is discarded instead of applied.
    """

    COLLECTIONS = ("reservations", "transactions", "expenses")

    def __init__(
        self,
        window: DateWindow,
        filters: Optional[SummaryFilters] = None,
        session_factory=AsyncSessionLocal,
        feed: ChangeFeed = change_feed,
        service: AggregationService = aggregation_service,
        on_update: Optional[SummaryCallback] = None,
    ):
        self.window = window
        self.filters = filters or SummaryFilters()
        self.session_factory = session_factory
        self.feed = feed
        self.service = service
        self.on_update = on_update
        self.generation = 0
        self.summary: Optional[WindowSummary] = None
        self.discarded = 0
        self._subscription: Optional[Subscription] = None

    async def __aenter__(self) -> "SummaryView":
        self._subscription = self.feed.subscribe(self.COLLECTIONS, ChangeOp.ALL)
        await self.refresh()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None

    def is_relevant(self, change: ChangeEvent) -> bool:
        """Changes dated outside the window cannot move its aggregates.

        A row moved by an UPDATE is relevant if either its old or its new
        date falls inside the window.
        """
        days = [change.row.get("date")]
        if "date" in change.old:
            days.append(change.old["date"])
        for day in days:
            if not isinstance(day, date):
                return True
            if self.window.from_date <= day <= self.window.to_date:
                return True
        return False

    async def set_window(
        self, window: DateWindow, filters: Optional[SummaryFilters] = None
    ) -> Optional[WindowSummary]:
        self.window = window
        if filters is not None:
            self.filters = filters
        return await self.refresh()

    async def refresh(self) -> Optional[WindowSummary]:
        """
        Recompute the summary for the current window.

        Returns:
            The new summary, or None if a newer refresh superseded this one
        """
        self.generation += 1
        generation = self.generation
        window, filters = self.window, self.filters

        async with self.session_factory() as db:
            summary = await self.service.get_window_summary(db, window, filters)

        if generation != self.generation:
            self.discarded += 1
            logger.debug(
                f"Discarded stale summary (generation {generation}, current {self.generation})"
            )
            return None

        self.summary = summary
        if self.on_update is not None:
            await self.on_update(summary)
        return summary

    async def run(self) -> None:
        """Refresh on relevant changes until the subscription is closed."""
        if self._subscription is None:
            raise RuntimeError("SummaryView must be entered before run()")
        try:
            async for change in self._subscription:
                batch = [change] + self._subscription.drain()
                if any(self.is_relevant(c) for c in batch):
                    await self.refresh()
        except BookingError as e:
            logger.error(
                f"Live summary for {self.window.from_date}..{self.window.to_date} "
                f"stopped: {e.message}"
            )
            raise


class ScheduleView:
    """In-memory reservations of one date, with optimistic edits.

    Edits are applied to local state first, then written; if the write fails
    the state is restored to its pre-edit snapshot and the error re-raised.
    """

    def __init__(
        self,
        day: date,
        court_ids: Optional[Sequence[int]] = None,
        session_factory=AsyncSessionLocal,
        feed: ChangeFeed = change_feed,
        repository: ReservationRepository = reservation_repository,
    ):
        self.day = day
        self.court_ids = set(court_ids) if court_ids else None
        self.session_factory = session_factory
        self.feed = feed
        self.repository = repository
        self.reservations: Dict[int, ReservationInDB] = {}
        self.courts: Dict[int, str] = {}
        self._subscription: Optional[Subscription] = None
        self._reload_lock = asyncio.Lock()

    async def __aenter__(self) -> "ScheduleView":
        self._subscription = self.feed.subscribe("reservations", ChangeOp.ALL)
        await self.load()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None

    def _in_view(self, reservation: ReservationInDB) -> bool:
        return reservation.date == self.day and (
            self.court_ids is None or reservation.court_id in self.court_ids
        )

    def _place(self, reservation: ReservationInDB) -> None:
        if self._in_view(reservation):
            self.reservations[reservation.id] = reservation
        else:
            self.reservations.pop(reservation.id, None)

    async def load(self) -> None:
        async with self._reload_lock:
            async with self.session_factory() as db:
                query = select(Court).order_by(Court.name, Court.id)
                if self.court_ids:
                    query = query.where(Court.id.in_(sorted(self.court_ids)))
                else:
                    query = query.where(Court.deleted_at.is_(None))
                result = await db.execute(query)
                self.courts = {c.id: c.name for c in result.scalars().all()}

                rows = await self.repository.list_by_date_range(db, self.day, self.day)
            self.reservations = {}
            for row in rows:
                self._place(ReservationInDB.model_validate(row))

    async def apply_change(self, change: ChangeEvent) -> None:
        """Fold one feed event into local state."""
        reservation_id = change.row.get("id")
        if change.op is ChangeOp.DELETE:
            self.reservations.pop(reservation_id, None)
            return
        try:
            reservation = ReservationInDB.model_validate(change.row)
        except PydanticValidationError:
            logger.warning(f"Incomplete change payload for reservation {reservation_id}; reloading {self.day}")
            await self.load()
            return
        self._place(reservation)

    async def run(self) -> None:
        if self._subscription is None:
            raise RuntimeError("ScheduleView must be entered before run()")
        async for change in self._subscription:
            await self.apply_change(change)

    def grid(self, granularity_minutes: Optional[int] = None) -> List[ScheduleCell]:
        return build_schedule_cells(
            list(self.courts.items()),
            self.reservations.values(),
            granularity_minutes or settings.SLOT_GRANULARITY_MINUTES,
        )

    async def create_reservation(
        self, data: Union[ReservationCreate, Dict[str, Any]]
    ) -> ReservationInDB:
        """Create a booking. Not optimistic: the id only exists after the write."""
        async with self.session_factory() as db:
            saved = ReservationInDB.model_validate(await self.repository.create(db, data))
        self._place(saved)
        return saved

    async def update_reservation(
        self, reservation_id: int, patch: Union[ReservationUpdate, Dict[str, Any]]
    ) -> ReservationInDB:
        if isinstance(patch, dict):
            patch = ReservationUpdate.model_validate(patch)
        snapshot = dict(self.reservations)

        current = self.reservations.get(reservation_id)
        if current is not None:
            changes = patch.model_dump(
                exclude_unset=True, exclude={"expected_version", "allow_overlap"}
            )
            self._place(current.model_copy(update=changes))

        try:
            async with self.session_factory() as db:
                saved = await self.repository.update(db, reservation_id, patch)
                saved = ReservationInDB.model_validate(saved)
        except Exception:
            logger.error(f"Update of reservation {reservation_id} failed; restoring schedule state")
            self.reservations = snapshot
            raise

        self._place(saved)
        return saved

    async def delete_reservation(self, reservation_id: int) -> None:
        snapshot = dict(self.reservations)
        self.reservations.pop(reservation_id, None)

        try:
            async with self.session_factory() as db:
                await self.repository.delete(db, reservation_id)
        except Exception:
            logger.error(f"Delete of reservation {reservation_id} failed; restoring schedule state")
            self.reservations = snapshot
            raise
