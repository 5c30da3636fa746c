"""Shared API dependencies and error mapping."""
from datetime import date, timedelta
from typing import Optional

from fastapi import HTTPException

from app.core.config import settings
from app.core.database import AsyncSessionLocal
from app.core.exceptions import (
    BookingError,
    ConflictError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from app.schemas.summary import DateWindow
from app.utils.clock import facility_today

STATUS_CODES = {
    ValidationError: 422,
    ConflictError: 409,
    NotFoundError: 404,
    StoreError: 503,
}


def http_error(exc: BookingError) -> HTTPException:
    """Translate a core error into the matching HTTP error."""
    status_code = next(
        (code for cls, code in STATUS_CODES.items() if isinstance(exc, cls)),
        500,
    )
    if isinstance(exc, ConflictError):
        return HTTPException(
            status_code=status_code,
            detail={"message": exc.message, "conflicting_ids": exc.conflicting_ids},
        )
    return HTTPException(status_code=status_code, detail=exc.message)


def resolve_window(from_date: Optional[date], to_date: Optional[date]) -> DateWindow:
    """Fill in a missing window end (today) or start (N days before the end)."""
    if to_date is None:
        to_date = facility_today()
    if from_date is None:
        from_date = to_date - timedelta(days=settings.DEFAULT_WINDOW_DAYS)

    if from_date > to_date:
        raise HTTPException(
            status_code=400,
            detail="from_date must be before or equal to to_date",
        )
    return DateWindow(from_date=from_date, to_date=to_date)


def get_session_factory():
    """Session factory for long-lived views (overridable in tests)."""
    return AsyncSessionLocal
