from datetime import date, time
from decimal import Decimal

from app.schemas.summary import WindowSummary

DAY = date(2025, 3, 14)


def booking(facility, **overrides):
    """Reservation input for Court A / Alice on DAY, 09:00-10:00, cash 40."""
    data = {
        "court_id": facility.court_a,
        "client_id": facility.alice,
        "date": DAY,
        "start_time": time(9, 0),
        "end_time": time(10, 0),
        "cash_amount": 40,
        "created_by_role": "employee",
        "created_by_name": "Sam",
    }
    data.update(overrides)
    return data


def empty_summary(window) -> WindowSummary:
    zero = Decimal("0")
    return WindowSummary(
        from_date=window.from_date,
        to_date=window.to_date,
        total_sales=zero,
        total_cash=zero,
        total_card=zero,
        total_wallet=zero,
        total_expenses=zero,
        net_cash_position=zero,
        grouped_court_sales=[],
        revenue_series=[],
    )
