"""Aggregate report schemas."""
from datetime import date
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, computed_field, model_validator


class DateWindow(BaseModel):
    """Inclusive date range; a single day when both ends are equal."""

    from_date: date
    to_date: date

    @model_validator(mode="after")
    def check_order(self):
        if self.from_date > self.to_date:
            raise ValueError("from_date must be before or equal to to_date")
        return self

    @classmethod
    def single_day(cls, day: date) -> "DateWindow":
        return cls(from_date=day, to_date=day)

    @property
    def days(self) -> int:
        return (self.to_date - self.from_date).days + 1


class SummaryFilters(BaseModel):
    """Optional filters. Ledger filters and expense filters are independent."""

    court_id: Optional[int] = None
    group_id: Optional[int] = None
    client_id: Optional[int] = None
    expense_category_id: Optional[int] = None


class CourtSales(BaseModel):
    """Sales for one court."""

    court_id: int
    court_name: str
    sales: Decimal


class GroupSales(BaseModel):
    """Sales for one court group. The total is always derived from its courts."""

    group_id: int
    group_name: str
    courts: List[CourtSales]

    @computed_field
    @property
    def total(self) -> Decimal:
        return sum((c.sales for c in self.courts), Decimal("0"))


class RevenuePoint(BaseModel):
    """One day of the revenue/expense series."""

    date: date
    revenue: Decimal
    expenses: Decimal


class WindowSummary(BaseModel):
    """Aggregates over a date window."""

    from_date: date
    to_date: date
    total_sales: Decimal
    total_cash: Decimal
    total_card: Decimal
    total_wallet: Decimal
    total_expenses: Decimal
    net_cash_position: Decimal
    grouped_court_sales: List[GroupSales]
    revenue_series: List[RevenuePoint]


class DaySummary(BaseModel):
    """Single-day till summary."""

    date: date
    sales: Decimal
    cash: Decimal
    card: Decimal
    wallet: Decimal
    expenses: Decimal
    net: Decimal
