"""API schemas."""
from app.schemas.reservation import (
    ReservationCreate,
    ReservationUpdate,
    ReservationInDB,
    ReservationListItem,
    ScheduleCell,
    ScheduleGrid,
)
from app.schemas.ledger import (
    TransactionCreate,
    TransactionInDB,
    LedgerDrift,
    LedgerAuditResult,
)
from app.schemas.court import (
    CourtGroupCreate,
    CourtGroupUpdate,
    CourtGroupInDB,
    CourtCreate,
    CourtUpdate,
    CourtInDB,
)
from app.schemas.client import ClientCreate, ClientUpdate, ClientInDB
from app.schemas.expense import (
    ExpenseCategoryCreate,
    ExpenseCategoryInDB,
    ExpenseCreate,
    ExpenseUpdate,
    ExpenseInDB,
)
from app.schemas.summary import (
    DateWindow,
    SummaryFilters,
    CourtSales,
    GroupSales,
    RevenuePoint,
    WindowSummary,
    DaySummary,
)

__all__ = [
    "ReservationCreate",
    "ReservationUpdate",
    "ReservationInDB",
    "ReservationListItem",
    "ScheduleCell",
    "ScheduleGrid",
    "TransactionCreate",
    "TransactionInDB",
    "LedgerDrift",
    "LedgerAuditResult",
    "CourtGroupCreate",
    "CourtGroupUpdate",
    "CourtGroupInDB",
    "CourtCreate",
    "CourtUpdate",
    "CourtInDB",
    "ClientCreate",
    "ClientUpdate",
    "ClientInDB",
    "ExpenseCategoryCreate",
    "ExpenseCategoryInDB",
    "ExpenseCreate",
    "ExpenseUpdate",
    "ExpenseInDB",
    "DateWindow",
    "SummaryFilters",
    "CourtSales",
    "GroupSales",
    "RevenuePoint",
    "WindowSummary",
    "DaySummary",
]
