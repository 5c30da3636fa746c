from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from app.core.config import settings
from app.core.exceptions import ValidationError
from app.models import Court, Expense, ExpenseCategory
from app.schemas.ledger import TransactionCreate
from app.schemas.summary import DateWindow, SummaryFilters
from app.services.aggregation_service import aggregation_service
from app.services.ledger_reconciler import ledger_reconciler
from app.services.reservation_repository import reservation_repository
from tests.helpers import DAY, booking

DAY_WINDOW = DateWindow.single_day(DAY)


@pytest.fixture
async def bookings(db, facility):
    """Sales of 40 cash (A), 30 card (B), 20 wallet (C) and 10 cash (wall)."""
    await reservation_repository.create(db, booking(facility))
    await reservation_repository.create(
        db, booking(facility, court_id=facility.court_b, client_id=facility.bob, cash_amount=0, card_amount=30)
    )
    await reservation_repository.create(
        db, booking(facility, court_id=facility.court_c, cash_amount=0, wallet_amount=20)
    )
    await reservation_repository.create(
        db, booking(facility, court_id=facility.wall, client_id=facility.bob, cash_amount=10)
    )
    return facility


@pytest.fixture
async def supplies(session_factory):
    async with session_factory() as session:
        category = ExpenseCategory(name="Supplies")
        other = ExpenseCategory(name="Utilities")
        session.add_all([category, other])
        await session.flush()
        session.add_all(
            [
                Expense(category_id=category.id, title="Balls", amount=Decimal("15"), date=DAY),
                Expense(category_id=other.id, title="Water", amount=Decimal("5"), date=DAY),
            ]
        )
        await session.commit()
        return category.id


async def test_single_cash_booking(db, facility):
    await reservation_repository.create(db, booking(facility))

    summary = await aggregation_service.get_window_summary(db, DAY_WINDOW)

    assert summary.total_sales == Decimal("40")
    assert summary.total_cash == Decimal("40")
    assert summary.total_card == 0
    assert summary.total_wallet == 0


async def test_edited_split_moves_between_tenders(db, facility):
    reservation = await reservation_repository.create(db, booking(facility))
    await reservation_repository.update(
        db, reservation.id, {"cash_amount": 0, "card_amount": 25, "wallet_amount": 15}
    )

    summary = await aggregation_service.get_window_summary(db, DAY_WINDOW)

    assert summary.total_sales == Decimal("40")
    assert summary.total_cash == 0
    assert summary.total_card == Decimal("25")
    assert summary.total_wallet == Decimal("15")


async def test_deleted_booking_leaves_totals(db, facility):
    reservation = await reservation_repository.create(db, booking(facility))
    await reservation_repository.delete(db, reservation.id)

    summary = await aggregation_service.get_window_summary(db, DAY_WINDOW)

    assert summary.total_sales == 0


async def test_grouped_sales(db, bookings):
    summary = await aggregation_service.get_window_summary(db, DAY_WINDOW)

    assert summary.total_sales == Decimal("100")
    indoor, outdoor = summary.grouped_court_sales
    assert indoor.group_name == "Indoor"
    assert [(c.court_name, c.sales) for c in indoor.courts] == [
        ("Court A", Decimal("40")),
        ("Court B", Decimal("30")),
    ]
    assert indoor.total == Decimal("70")
    assert outdoor.group_name == "Outdoor"
    assert outdoor.total == Decimal("20")


async def test_ungrouped_sales_count_only_in_totals(db, bookings):
    await ledger_reconciler.create_manual_entry(
        db, TransactionCreate(tender="card", amount=Decimal("7"), date=DAY)
    )

    summary = await aggregation_service.get_window_summary(db, DAY_WINDOW)

    grouped = sum((g.total for g in summary.grouped_court_sales), Decimal("0"))
    assert grouped == Decimal("90")
    assert summary.total_sales == Decimal("107")
    assert summary.total_sales == summary.total_cash + summary.total_card + summary.total_wallet


async def test_retired_court_still_reports_its_sales(db, session_factory, bookings):
    async with session_factory() as session:
        court = await session.get(Court, bookings.court_b)
        court.deleted_at = datetime.now(timezone.utc)
        await session.commit()

    summary = await aggregation_service.get_window_summary(db, DAY_WINDOW)

    indoor = summary.grouped_court_sales[0]
    assert [c.court_name for c in indoor.courts] == ["Court A", "Court B"]


async def test_revenue_series_is_dense(db, bookings):
    window = DateWindow(from_date=date(2025, 3, 12), to_date=date(2025, 3, 15))

    summary = await aggregation_service.get_window_summary(db, window)

    assert [p.date for p in summary.revenue_series] == [
        date(2025, 3, 12),
        date(2025, 3, 13),
        date(2025, 3, 14),
        date(2025, 3, 15),
    ]
    assert [p.revenue for p in summary.revenue_series] == [0, 0, Decimal("100"), 0]
    assert sum(p.revenue for p in summary.revenue_series) == summary.total_sales


async def test_window_edges_are_inclusive(db, facility):
    await reservation_repository.create(db, booking(facility, date=date(2025, 3, 10)))
    await reservation_repository.create(db, booking(facility, date=date(2025, 3, 12)))
    await reservation_repository.create(db, booking(facility, date=date(2025, 3, 13)))

    summary = await aggregation_service.get_window_summary(
        db, DateWindow(from_date=date(2025, 3, 10), to_date=date(2025, 3, 12))
    )

    assert summary.total_sales == Decimal("80")


async def test_expenses_and_net_cash(db, bookings, supplies):
    summary = await aggregation_service.get_window_summary(db, DAY_WINDOW)

    assert summary.total_expenses == Decimal("20")
    assert summary.net_cash_position == Decimal("50") - Decimal("20")
    assert summary.revenue_series[0].expenses == Decimal("20")


async def test_expense_category_filter(db, bookings, supplies):
    summary = await aggregation_service.get_window_summary(
        db, DAY_WINDOW, SummaryFilters(expense_category_id=supplies)
    )

    assert summary.total_expenses == Decimal("15")
    assert summary.total_sales == Decimal("100")


@pytest.mark.parametrize(
    "field, expected",
    [
        ("court_id", Decimal("40")),
        ("group_id", Decimal("70")),
        ("client_id", Decimal("60")),
    ],
)
async def test_ledger_filters(db, bookings, field, expected):
    target = {"court_id": bookings.court_a, "group_id": bookings.indoor, "client_id": bookings.alice}
    filters = SummaryFilters(**{field: target[field]})

    summary = await aggregation_service.get_window_summary(db, DAY_WINDOW, filters)

    assert summary.total_sales == expected


async def test_window_longer_than_limit(db, facility, monkeypatch):
    monkeypatch.setattr(settings, "MAX_WINDOW_DAYS", 31)
    window = DateWindow(from_date=date(2025, 1, 1), to_date=date(2025, 3, 1))

    with pytest.raises(ValidationError):
        await aggregation_service.get_window_summary(db, window)


async def test_day_summary(db, bookings, supplies):
    day = await aggregation_service.get_day_summary(db, DAY)

    assert day.sales == Decimal("100")
    assert day.cash == Decimal("50")
    assert day.card == Decimal("30")
    assert day.wallet == Decimal("20")
    assert day.expenses == Decimal("20")
    assert day.net == Decimal("30")


async def test_empty_window(db, facility):
    summary = await aggregation_service.get_window_summary(
        db, DateWindow(from_date=date(2025, 1, 1), to_date=date(2025, 1, 2))
    )

    assert summary.total_sales == 0
    assert summary.grouped_court_sales == []
    assert len(summary.revenue_series) == 2


def test_inverted_window_is_rejected():
    with pytest.raises(ValueError):
        DateWindow(from_date=date(2025, 3, 2), to_date=date(2025, 3, 1))