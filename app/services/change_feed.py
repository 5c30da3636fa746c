"""Change feed over committed store writes.

Inserts, updates and deletes flushed by a ``RecordSession`` are collected per
session and published to subscribers only once the transaction commits. A
rollback discards them.
"""
import asyncio
import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set, Union

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import RecordSession

logger = logging.getLogger(__name__)

PENDING_KEY = "change_feed_pending"


class ChangeOp(enum.Flag):
    """Kinds of row change; combine with ``|`` to build a subscription mask."""

    INSERT = enum.auto()
    UPDATE = enum.auto()
    DELETE = enum.auto()
    ALL = INSERT | UPDATE | DELETE


@dataclass(frozen=True)
class ChangeEvent:
    """A committed change to one row."""

    collection: str
    op: ChangeOp
    row: Dict[str, Any] = field(default_factory=dict)
    # Pre-flush values of the columns an UPDATE changed; None when not loaded
    old: Dict[str, Any] = field(default_factory=dict)


def snapshot_row(obj: Any) -> Dict[str, Any]:
    """Loaded column values of an ORM object, without triggering any IO."""
    state = inspect(obj)
    return {
        attr.key: state.dict[attr.key]
        for attr in state.mapper.column_attrs
        if attr.key in state.dict
    }


def previous_values(obj: Any) -> Dict[str, Any]:
    """Values the changed column attributes of ``obj`` held before this flush.

    Must be called while attribute history is still pre-flush.
    """
    state = inspect(obj)
    old = {}
    for attr in state.mapper.column_attrs:
        history = state.attrs[attr.key].history
        if history.added or history.deleted:
            old[attr.key] = history.deleted[0] if history.deleted else None
    return old


class Subscription:
    """A subscriber's buffered view of the feed.

    Use as an async context manager so it is released with the view that
    owns it, and iterate it with ``async for``.
    """

    def __init__(
        self,
        feed: "ChangeFeed",
        collections: Set[str],
        mask: ChangeOp,
        maxsize: int,
    ):
        self.feed = feed
        self.collections = collections
        self.mask = mask
        self.dropped = 0
        self.closed = False
        self._queue: "asyncio.Queue[Optional[ChangeEvent]]" = asyncio.Queue(maxsize)

    def matches(self, change: ChangeEvent) -> bool:
        return change.collection in self.collections and bool(change.op & self.mask)

    def deliver(self, change: ChangeEvent) -> None:
        if self.closed:
            return
        try:
            self._queue.put_nowait(change)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                f"Subscriber on {sorted(self.collections)} is full; "
                f"dropped {change.op.name} on {change.collection} ({self.dropped} so far)"
            )

    async def get(self) -> Optional[ChangeEvent]:
        """Next event, or None once the subscription is closed."""
        if self.closed and self._queue.empty():
            return None
        return await self._queue.get()

    def drain(self) -> List[ChangeEvent]:
        """Pop every event already buffered without waiting."""
        changes = []
        while not self._queue.empty():
            change = self._queue.get_nowait()
            if change is not None:
                changes.append(change)
        return changes

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.feed.unsubscribe(self)
        # Wake a consumer blocked in get()
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            pass

    def __aiter__(self):
        return self

    async def __anext__(self) -> ChangeEvent:
        change = await self.get()
        if change is None:
            raise StopAsyncIteration
        return change

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()


class ChangeFeed:
    """Process-wide fan-out of committed changes to subscribers."""

    def __init__(self, queue_size: int = settings.CHANGE_FEED_QUEUE_SIZE):
        self.queue_size = queue_size
        self._subscriptions: List[Subscription] = []
        self._session_class = None

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(
        self,
        collections: Union[str, Iterable[str]],
        mask: ChangeOp = ChangeOp.ALL,
    ) -> Subscription:
        """
        Subscribe to changes on one or more collections (table names).

        Args:
            collections: Table name or names
            mask: Which operations to receive

        Returns:
            Subscription, released by ``close()`` or by leaving its context
        """
        if isinstance(collections, str):
            collections = [collections]
        subscription = Subscription(self, set(collections), mask, self.queue_size)
        self._subscriptions.append(subscription)
        logger.debug(f"Subscribed to {sorted(subscription.collections)} ({self.subscriber_count} active)")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
            logger.debug(f"Unsubscribed from {sorted(subscription.collections)} ({self.subscriber_count} active)")

    def publish(self, changes: Iterable[ChangeEvent]) -> None:
        for change in changes:
            for subscription in list(self._subscriptions):
                if subscription.matches(change):
                    subscription.deliver(change)

    # Session hooks

    def attach(self, session_class=RecordSession) -> None:
        """Start observing commits of sessions of ``session_class``."""
        if self._session_class is not None:
            return
        event.listen(session_class, "after_flush", self._after_flush)
        event.listen(session_class, "after_commit", self._after_commit)
        event.listen(session_class, "after_rollback", self._after_rollback)
        self._session_class = session_class

    def detach(self) -> None:
        if self._session_class is None:
            return
        event.remove(self._session_class, "after_flush", self._after_flush)
        event.remove(self._session_class, "after_commit", self._after_commit)
        event.remove(self._session_class, "after_rollback", self._after_rollback)
        self._session_class = None

    def _after_flush(self, session: Session, flush_context) -> None:
        pending = session.info.setdefault(PENDING_KEY, [])
        for obj in session.new:
            pending.append(ChangeEvent(obj.__tablename__, ChangeOp.INSERT, snapshot_row(obj)))
        for obj in session.dirty:
            if session.is_modified(obj, include_collections=False):
                pending.append(
                    ChangeEvent(obj.__tablename__, ChangeOp.UPDATE, snapshot_row(obj), previous_values(obj))
                )
        for obj in session.deleted:
            pending.append(ChangeEvent(obj.__tablename__, ChangeOp.DELETE, snapshot_row(obj)))

    def _after_commit(self, session: Session) -> None:
        pending = session.info.pop(PENDING_KEY, [])
        if pending:
            self.publish(pending)

    def _after_rollback(self, session: Session) -> None:
        session.info.pop(PENDING_KEY, None)


# Singleton instance
change_feed = ChangeFeed()
change_feed.attach()
