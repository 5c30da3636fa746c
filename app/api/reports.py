"""Revenue and expense report endpoints."""
import asyncio
import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from fastapi.websockets import WebSocketState
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_session_factory, http_error, resolve_window
from app.core.database import get_db
from app.core.exceptions import BookingError
from app.schemas.summary import DateWindow, DaySummary, SummaryFilters, WindowSummary
from app.services.aggregation_service import aggregation_service
from app.services.live_views import SummaryView
from app.utils.clock import facility_today

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("/summary", response_model=WindowSummary)
async def get_window_summary(
    from_date: date = Query(default=None, description="Start date (defaults to 7 days before to_date)"),
    to_date: date = Query(default=None, description="End date (defaults to today)"),
    court_id: Optional[int] = None,
    group_id: Optional[int] = None,
    client_id: Optional[int] = None,
    expense_category_id: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
):
    """
    Get sales, tender totals, expenses and the daily series for a window.

    Court, group and client filters apply to ledger rows; the category filter
    applies to expenses.

    Args:
        from_date: First day, inclusive
        to_date: Last day, inclusive
        court_id: Only sales on this court
        group_id: Only sales on courts of this group
        client_id: Only sales to this client
        expense_category_id: Only expenses of this category
        db: Database session

    Returns:
        Window summary
    """
    window = resolve_window(from_date, to_date)
    filters = SummaryFilters(
        court_id=court_id,
        group_id=group_id,
        client_id=client_id,
        expense_category_id=expense_category_id,
    )
    try:
        return await aggregation_service.get_window_summary(db, window, filters)
    except BookingError as e:
        raise http_error(e)


@router.get("/daily", response_model=DaySummary)
async def get_day_summary(
    day: date = Query(default=None, alias="date", description="Day to summarise (defaults to today)"),
    db: AsyncSession = Depends(get_db),
):
    """Till summary for one day: sales per tender, expenses and cash net."""
    try:
        return await aggregation_service.get_day_summary(db, day or facility_today())
    except BookingError as e:
        raise http_error(e)


@router.websocket("/live")
async def live_summary(
    websocket: WebSocket,
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
    session_factory=Depends(get_session_factory),
):
    """
    Stream the window summary whenever reservations, ledger rows or
    expenses change.

    The client may send ``{"from_date": ..., "to_date": ...}`` at any time to
    move the window; results of superseded windows are never sent.
    """
    await websocket.accept()
    to_date = to_date or facility_today()
    try:
        window = DateWindow(from_date=from_date or to_date, to_date=to_date)
    except PydanticValidationError as e:
        await websocket.send_json({"error": str(e)})
        await websocket.close(code=1008)
        return

    async def push(summary: WindowSummary) -> None:
        await websocket.send_json(summary.model_dump(mode="json"))

    try:
        async with SummaryView(window, session_factory=session_factory, on_update=push) as view:
            runner = asyncio.create_task(view.run())
            follower = asyncio.create_task(_follow_window_changes(websocket, view))
            try:
                await asyncio.wait({runner, follower}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                runner.cancel()
                follower.cancel()
                outcomes = await asyncio.gather(runner, follower, return_exceptions=True)
    except WebSocketDisconnect:
        logger.info("Live summary client disconnected")
        return
    except BookingError as e:
        logger.warning(f"Live summary for {window.from_date}..{window.to_date} refused: {e.message}")
        await _close_with_error(websocket, e.message, code=1008)
        return

    for outcome in outcomes:
        if isinstance(outcome, WebSocketDisconnect):
            logger.info("Live summary client disconnected")
        elif isinstance(outcome, BookingError):
            await _close_with_error(websocket, outcome.message)
        elif isinstance(outcome, Exception):
            logger.error("Live summary stream failed", exc_info=outcome)
            await _close_with_error(websocket, "Live summary stream failed")


def _is_open(websocket: WebSocket) -> bool:
    return (
        websocket.client_state == WebSocketState.CONNECTED
        and websocket.application_state == WebSocketState.CONNECTED
    )


async def _close_with_error(websocket: WebSocket, message: str, code: int = 1011) -> None:
    """Send a final error frame and close, unless the client is already gone."""
    if not _is_open(websocket):
        return
    await websocket.send_json({"error": message})
    await websocket.close(code=code)


async def _follow_window_changes(websocket: WebSocket, view: SummaryView) -> None:
    while True:
        message = await websocket.receive_json()
        try:
            new_window = DateWindow.model_validate(message)
        except PydanticValidationError as e:
            await websocket.send_json({"error": str(e)})
            continue
        try:
            await view.set_window(new_window)
        except BookingError as e:
            await websocket.send_json({"error": e.message})
