"""Aggregation service for windowed revenue and expense reports."""
import logging
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import ValidationError
from app.models.court import Court
from app.models.court_group import CourtGroup
from app.models.expense import Expense
from app.models.reservation import Reservation, TENDERS
from app.models.transaction import Transaction
from app.schemas.summary import (
    CourtSales,
    DateWindow,
    DaySummary,
    GroupSales,
    RevenuePoint,
    SummaryFilters,
    WindowSummary,
)
from app.utils.time_slots import iter_days

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class AggregationService:
    """Computes summaries from the ledger and expenses. Nothing is cached."""

    async def get_window_summary(
        self,
        db: AsyncSession,
        window: DateWindow,
        filters: Optional[SummaryFilters] = None,
    ) -> WindowSummary:
        """
        Compute all aggregates over a date window.

        Ledger rows whose reservation, court or group cannot be resolved still
        count towards the flat totals but are left out of the per-group
        breakdown.

        Args:
            db: Database session
            window: Inclusive date window
            filters: Optional ledger (court/group/client) and expense
                (category) filters

        Returns:
            WindowSummary with a dense, one-point-per-day revenue series
        """
        filters = filters or SummaryFilters()
        if window.days > settings.MAX_WINDOW_DAYS:
            raise ValidationError(
                f"Window of {window.days} days exceeds the {settings.MAX_WINDOW_DAYS}-day limit"
            )

        tender_totals: Dict[str, Decimal] = {tender: ZERO for tender in TENDERS}
        revenue_by_day: Dict[date, Decimal] = defaultdict(lambda: ZERO)
        court_sales: Dict[int, Dict[int, Decimal]] = defaultdict(lambda: defaultdict(lambda: ZERO))
        court_names: Dict[int, str] = {}
        group_names: Dict[int, str] = {}

        for row in await self._ledger_rows(db, window, filters):
            amount = Decimal(row.amount)
            if row.tender in tender_totals:
                tender_totals[row.tender] += amount
            else:
                logger.warning(f"Ignoring ledger row with unknown tender '{row.tender}'")
                continue
            revenue_by_day[row.date] += amount

            # Grouping needs the full reservation -> court -> group chain
            if row.court_id is None or row.group_id is None:
                continue
            court_names[row.court_id] = row.court_name
            group_names[row.group_id] = row.group_name
            court_sales[row.group_id][row.court_id] += amount

        expenses_by_day: Dict[date, Decimal] = defaultdict(lambda: ZERO)
        for row in await self._expense_rows(db, window, filters):
            expenses_by_day[row.date] += Decimal(row.amount)

        grouped = [
            GroupSales(
                group_id=group_id,
                group_name=group_names[group_id],
                courts=sorted(
                    (
                        CourtSales(court_id=court_id, court_name=court_names[court_id], sales=sales)
                        for court_id, sales in courts.items()
                    ),
                    key=lambda c: (c.court_name, c.court_id),
                ),
            )
            for group_id, courts in court_sales.items()
        ]
        grouped.sort(key=lambda g: (g.group_name, g.group_id))

        series = [
            RevenuePoint(
                date=day,
                revenue=revenue_by_day.get(day, ZERO),
                expenses=expenses_by_day.get(day, ZERO),
            )
            for day in iter_days(window.from_date, window.to_date)
        ]

        total_expenses = sum(expenses_by_day.values(), ZERO)
        return WindowSummary(
            from_date=window.from_date,
            to_date=window.to_date,
            total_sales=sum(tender_totals.values(), ZERO),
            total_cash=tender_totals["cash"],
            total_card=tender_totals["card"],
            total_wallet=tender_totals["wallet"],
            total_expenses=total_expenses,
            net_cash_position=tender_totals["cash"] - total_expenses,
            grouped_court_sales=grouped,
            revenue_series=series,
        )

    async def get_day_summary(
        self,
        db: AsyncSession,
        day: date,
        filters: Optional[SummaryFilters] = None,
    ) -> DaySummary:
        """Till summary for a single day: net is cash minus expenses."""
        summary = await self.get_window_summary(db, DateWindow.single_day(day), filters)
        return DaySummary(
            date=day,
            sales=summary.total_sales,
            cash=summary.total_cash,
            card=summary.total_card,
            wallet=summary.total_wallet,
            expenses=summary.total_expenses,
            net=summary.net_cash_position,
        )

    async def _ledger_rows(
        self, db: AsyncSession, window: DateWindow, filters: SummaryFilters
    ):
        query = (
            select(
                Transaction.date,
                Transaction.tender,
                Transaction.amount,
                Court.id.label("court_id"),
                Court.name.label("court_name"),
                CourtGroup.id.label("group_id"),
                CourtGroup.name.label("group_name"),
            )
            .outerjoin(Reservation, Transaction.reservation_id == Reservation.id)
            .outerjoin(Court, Reservation.court_id == Court.id)
            .outerjoin(CourtGroup, Court.group_id == CourtGroup.id)
            .where(
                Transaction.date >= window.from_date,
                Transaction.date <= window.to_date,
            )
        )
        if filters.court_id is not None:
            query = query.where(Reservation.court_id == filters.court_id)
        if filters.group_id is not None:
            query = query.where(Court.group_id == filters.group_id)
        if filters.client_id is not None:
            query = query.where(Reservation.client_id == filters.client_id)

        result = await db.execute(query)
        return result.all()

    async def _expense_rows(
        self, db: AsyncSession, window: DateWindow, filters: SummaryFilters
    ):
        query = select(Expense.date, Expense.amount).where(
            Expense.date >= window.from_date,
            Expense.date <= window.to_date,
        )
        if filters.expense_category_id is not None:
            query = query.where(Expense.category_id == filters.expense_category_id)
        result = await db.execute(query)
        return result.all()


# Singleton instance
aggregation_service = AggregationService()
