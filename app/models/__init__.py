"""Database models."""
from app.models.court_group import CourtGroup
from app.models.court import Court
from app.models.client import Client
from app.models.reservation import Reservation, TENDERS
from app.models.transaction import Transaction
from app.models.expense import Expense, ExpenseCategory

__all__ = [
    "CourtGroup",
    "Court",
    "Client",
    "Reservation",
    "TENDERS",
    "Transaction",
    "Expense",
    "ExpenseCategory",
]
