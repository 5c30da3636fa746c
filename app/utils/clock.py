"""Facility-local clock."""
from datetime import date, datetime
from typing import Optional

import pytz

from app.core.config import settings


def facility_now() -> datetime:
    """Current time in the facility's timezone."""
    tz = pytz.timezone(settings.FACILITY_TIMEZONE or "UTC")
    return datetime.now(pytz.UTC).astimezone(tz)


def facility_today() -> date:
    return facility_now().date()


def relative_status(day: date, today: Optional[date] = None) -> str:
    """``past``, ``today`` or ``future`` for a booking date."""
    today = today or facility_today()
    if day < today:
        return "past"
    if day == today:
        return "today"
    return "future"
