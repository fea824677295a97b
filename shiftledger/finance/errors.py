"""Mini README: Exception taxonomy shared by the ledger engine.

Every error the engine raises on purpose derives from ``LedgerError`` so
interfaces can translate them in one place. Validation errors also derive
from ``ValueError`` and IO failures from ``OSError`` so generic handlers
keep working.
"""

from __future__ import annotations

from typing import List, Optional


class LedgerError(Exception):
    """Base class for ledger engine failures."""


class ValidationError(LedgerError, ValueError):
    """Input was rejected before reaching any backing store."""


class ClosedLedgerError(LedgerError):
    """A mutation targeted a ledger that has already been closed."""

    def __init__(self, day_id: str) -> None:
        super().__init__(f"Ledger {day_id} is closed and can no longer change.")
        self.day_id = day_id


class ShiftEndedError(LedgerError):
    """A day is still open but its shift window has already ended."""

    def __init__(self, day_id: str) -> None:
        super().__init__(
            f"The shift for day {day_id} has ended; close the day before recording more."
        )
        self.day_id = day_id


class AlreadyOpenConflict(LedgerError):
    """The authority already holds an open day for this driver."""

    def __init__(self, message: str = "", open_day_id: Optional[str] = None) -> None:
        super().__init__(message or "Another day is already open for this driver.")
        self.open_day_id = open_day_id


class UnsupportedOperation(LedgerError, NotImplementedError):
    """The configured store does not allow the requested mutation."""


class TransientIOError(LedgerError, OSError):
    """The backing store could not be reached; the read may be retried."""


class DegradedRowError(LedgerError, ValueError):
    """A single transaction row could not be interpreted."""


class NoLedgerSelectedError(LedgerError):
    """A mutation was requested without a signed-in driver or selected day."""


class MultipleOpenLedgersError(LedgerError):
    """More than one open day was observed for the same driver."""

    def __init__(self, driver_id: str, day_ids: List[str]) -> None:
        super().__init__(
            f"Driver {driver_id} has {len(day_ids)} open days: {', '.join(day_ids)}"
        )
        self.driver_id = driver_id
        self.day_ids = list(day_ids)
