"""Ledger reconciliation.

Keeps the ``transactions`` rows of each reservation equal to its tender
split. Rows are never diffed: on every write all rows of the reservation are
removed and one row per non-zero tender is written back. Callers run this
inside their own unit of work so the delete and the insert commit together.
"""
import logging
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import unit_of_work
from app.core.exceptions import ConflictError, NotFoundError, PartialReconciliationError
from app.models.reservation import Reservation, TENDERS
from app.models.transaction import Transaction
from app.schemas.ledger import LedgerAuditResult, LedgerDrift, TransactionCreate

logger = logging.getLogger(__name__)


class LedgerReconciler:
    """Derives and maintains per-tender ledger rows for reservations."""

    def expected_entries(self, reservation: Reservation) -> List[Tuple[str, Decimal]]:
        """(tender, amount) pairs that must exist for ``reservation``.

        Zero tenders produce no entry.
        """
        split = reservation.split()
        return [(tender, split[tender]) for tender in TENDERS if split[tender] > 0]

    async def entries_for(self, db: AsyncSession, reservation_id: int) -> List[Transaction]:
        result = await db.execute(
            select(Transaction)
            .where(Transaction.reservation_id == reservation_id)
            .order_by(Transaction.id)
        )
        return list(result.scalars().all())

    async def sync(self, db: AsyncSession, reservation: Reservation) -> List[Transaction]:
        """
        Rewrite the ledger rows of a reservation from its split.

        Args:
            db: Database session (not committed here)
            reservation: Flushed reservation with an id

        Returns:
            The newly written rows

        Raises:
            PartialReconciliationError: if old rows were removed but the new
                ones could not be written
        """
        removed = await self.purge(db, reservation.id)

        try:
            rows = [
                Transaction(
                    reservation_id=reservation.id,
                    tender=tender,
                    amount=amount,
                    date=reservation.date,
                )
                for tender, amount in self.expected_entries(reservation)
            ]
            db.add_all(rows)
            await db.flush()
        except SQLAlchemyError as e:
            logger.error(
                f"Failed to write ledger rows for reservation {reservation.id}: {e}",
                exc_info=True,
            )
            raise PartialReconciliationError(
                f"Ledger rows for reservation {reservation.id} were removed but could not be rewritten",
                reservation.id,
            ) from e

        logger.info(
            f"Reconciled ledger for reservation {reservation.id}: "
            f"removed {removed}, wrote {len(rows)}"
        )
        return rows

    async def purge(self, db: AsyncSession, reservation_id: int) -> int:
        """Delete every ledger row of a reservation. Returns the row count."""
        existing = await self.entries_for(db, reservation_id)
        for row in existing:
            await db.delete(row)
        await db.flush()
        return len(existing)

    async def audit(
        self, db: AsyncSession, from_date: date, to_date: date
    ) -> Tuple[int, List[LedgerDrift]]:
        """
        Compare ledger rows with reservation splits over a window.

        A reservation has drifted when its per-tender sums differ from the
        split, when a tender has more than one row or a zero-amount row, or
        when a row carries a date other than the reservation's.

        Returns:
            (number of reservations checked, drifted reservations)
        """
        result = await db.execute(
            select(Reservation)
            .where(Reservation.date >= from_date, Reservation.date <= to_date)
            .order_by(Reservation.id)
        )
        reservations = result.scalars().all()
        if not reservations:
            return 0, []

        result = await db.execute(
            select(Transaction).where(
                Transaction.reservation_id.in_([r.id for r in reservations])
            )
        )
        rows_by_reservation: Dict[int, List[Transaction]] = defaultdict(list)
        for row in result.scalars().all():
            rows_by_reservation[row.reservation_id].append(row)

        drifted = []
        for reservation in reservations:
            rows = rows_by_reservation.get(reservation.id, [])
            expected = dict(self.expected_entries(reservation))
            actual: Dict[str, Decimal] = defaultdict(Decimal)
            counts: Dict[str, int] = defaultdict(int)
            for row in rows:
                actual[row.tender] += Decimal(row.amount)
                counts[row.tender] += 1

            consistent = (
                dict(actual) == expected
                and all(count == 1 for count in counts.values())
                and all(row.date == reservation.date and row.amount > 0 for row in rows)
            )
            if not consistent:
                drifted.append(
                    LedgerDrift(
                        reservation_id=reservation.id,
                        date=reservation.date,
                        expected=expected,
                        actual=dict(actual),
                    )
                )

        return len(reservations), drifted

    async def repair(
        self, db: AsyncSession, from_date: date, to_date: date
    ) -> LedgerAuditResult:
        """Audit a window and re-sync every drifted reservation in one commit."""
        async with unit_of_work(db, f"Ledger repair {from_date}..{to_date}"):
            checked, drifted = await self.audit(db, from_date, to_date)
            for drift in drifted:
                reservation = await db.get(Reservation, drift.reservation_id)
                await self.sync(db, reservation)

        if drifted:
            logger.warning(
                f"Repaired ledger for {len(drifted)} of {checked} reservations "
                f"between {from_date} and {to_date}"
            )
        return LedgerAuditResult(
            from_date=from_date,
            to_date=to_date,
            checked=checked,
            drifted=drifted,
            repaired=len(drifted),
        )

    async def resync(self, db: AsyncSession, reservation_id: int) -> List[Transaction]:
        """Regenerate the ledger of one reservation."""
        async with unit_of_work(db, f"Resync of reservation {reservation_id}"):
            reservation = await db.get(Reservation, reservation_id)
            if reservation is None:
                raise NotFoundError(f"Reservation {reservation_id} not found")
            rows = await self.sync(db, reservation)
        for row in rows:
            await db.refresh(row)
        return rows

    # Manual entries

    async def list_entries(
        self,
        db: AsyncSession,
        from_date: date,
        to_date: date,
        reservation_id: Optional[int] = None,
        tender: Optional[str] = None,
    ) -> List[Transaction]:
        query = select(Transaction).where(
            Transaction.date >= from_date, Transaction.date <= to_date
        )
        if reservation_id is not None:
            query = query.where(Transaction.reservation_id == reservation_id)
        if tender is not None:
            query = query.where(Transaction.tender == tender)
        result = await db.execute(query.order_by(Transaction.date.desc(), Transaction.id.desc()))
        return list(result.scalars().all())

    async def create_manual_entry(
        self, db: AsyncSession, data: TransactionCreate
    ) -> Transaction:
        """Record a ledger entry that does not belong to a reservation."""
        entry = Transaction(reservation_id=None, **data.model_dump())
        async with unit_of_work(db, "Manual ledger entry"):
            db.add(entry)
        await db.refresh(entry)
        logger.info(f"Recorded manual {entry.tender} entry {entry.id} of {entry.amount}")
        return entry

    async def delete_manual_entry(self, db: AsyncSession, entry_id: int) -> None:
        """Delete a manual entry. Reservation-derived rows are refused."""
        async with unit_of_work(db, f"Deletion of ledger entry {entry_id}"):
            entry = await db.get(Transaction, entry_id)
            if entry is None:
                raise NotFoundError(f"Ledger entry {entry_id} not found")
            if entry.reservation_id is not None:
                raise ConflictError(
                    f"Ledger entry {entry_id} is derived from reservation "
                    f"{entry.reservation_id}; edit the reservation instead",
                    [entry.reservation_id],
                )
            await db.delete(entry)


# Singleton instance
ledger_reconciler = LedgerReconciler()
