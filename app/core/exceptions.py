"""Errors raised by the booking and ledger core."""


class BookingError(Exception):
    """Base class for all core errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(BookingError):
    """Malformed or missing input. Reported to the caller, never retried."""


class ConflictError(BookingError):
    """Overlapping slot or a concurrent edit of the same record."""

    def __init__(self, message: str, conflicting_ids=None):
        super().__init__(message)
        self.conflicting_ids = list(conflicting_ids or [])


class NotFoundError(BookingError):
    """A referenced record does not exist (or was soft-deleted)."""


class StoreError(BookingError):
    """The record store failed. Writes are not retried automatically."""


class PartialReconciliationError(StoreError):
    """Ledger rows were removed but their replacements could not be written."""

    def __init__(self, message: str, reservation_id: int):
        super().__init__(message)
        self.reservation_id = reservation_id
