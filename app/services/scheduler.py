"""Background scheduler for the periodic ledger audit."""
import logging
from datetime import timedelta
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.core.config import settings
from app.core.database import AsyncSessionLocal
from app.core.exceptions import BookingError
from app.schemas.ledger import LedgerAuditResult
from app.services.ledger_reconciler import ledger_reconciler
from app.utils.clock import facility_today

logger = logging.getLogger(__name__)


class LedgerAuditScheduler:
    """Periodically re-derives drifted ledger rows for recent days."""

    def __init__(self, session_factory=AsyncSessionLocal):
        """Initialize the scheduler."""
        self.scheduler = AsyncIOScheduler()
        self.session_factory = session_factory
        self.running = False
        self.last_result: Optional[LedgerAuditResult] = None

    async def start(self):
        """Start the scheduler."""
        if self.running:
            logger.warning("Scheduler is already running")
            return

        if not settings.LEDGER_AUDIT_ENABLED:
            logger.info("Ledger audit disabled; scheduler not started")
            return

        logger.info("Starting ledger audit scheduler")

        self.scheduler.add_job(
            self.run_audit,
            IntervalTrigger(minutes=settings.LEDGER_AUDIT_INTERVAL_MINUTES),
            id="ledger_audit_job",
            name="Audit and repair recent ledger rows",
            replace_existing=True,
        )

        self.scheduler.start()
        self.running = True
        logger.info("Ledger audit scheduler started")

    async def stop(self):
        """Stop the scheduler."""
        if not self.running:
            return

        logger.info("Stopping ledger audit scheduler")
        self.scheduler.shutdown(wait=False)
        self.running = False
        logger.info("Ledger audit scheduler stopped")

    async def run_audit(self) -> Optional[LedgerAuditResult]:
        """
        Audit the last few days of reservations and repair any drift.

        Failures are logged and the job waits for its next interval; a
        failed repair has been rolled back, so nothing is half-written.
        """
        to_date = facility_today()
        from_date = to_date - timedelta(days=settings.LEDGER_AUDIT_DAYS_BACK)
        logger.debug(f"Running ledger audit for {from_date}..{to_date}")

        async with self.session_factory() as db:
            try:
                result = await ledger_reconciler.repair(db, from_date, to_date)
            except BookingError as e:
                logger.error(f"Ledger audit for {from_date}..{to_date} failed: {e.message}")
                return None

        logger.info(
            f"Ledger audit checked {result.checked} reservations, repaired {result.repaired}"
        )
        self.last_result = result
        return result


# Singleton instance
ledger_audit_scheduler = LedgerAuditScheduler()
