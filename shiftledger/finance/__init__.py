"""Mini README: Cash ledger domain for driver shifts.

This package holds the value types the rest of the engine exchanges:
transactions, per-day ledgers, driver identity and the error taxonomy.
Nothing here performs IO; stores, the reconciler and the manager build on
these types.
"""

from .errors import (
    AlreadyOpenConflict,
    ClosedLedgerError,
    DegradedRowError,
    LedgerError,
    MultipleOpenLedgersError,
    NoLedgerSelectedError,
    ShiftEndedError,
    TransientIOError,
    UnsupportedOperation,
    ValidationError,
)
from .ledger import (
    CloseReason,
    DayStatus,
    DaySummary,
    Driver,
    Ledger,
    LedgerNotice,
    NoticeKind,
    Transaction,
    TransactionDraft,
    TransactionSort,
    TransactionType,
    filter_transactions,
    summarise,
)

__all__ = [
    "AlreadyOpenConflict",
    "CloseReason",
    "ClosedLedgerError",
    "DayStatus",
    "DaySummary",
    "DegradedRowError",
    "Driver",
    "Ledger",
    "LedgerError",
    "LedgerNotice",
    "MultipleOpenLedgersError",
    "NoLedgerSelectedError",
    "NoticeKind",
    "ShiftEndedError",
    "Transaction",
    "TransactionDraft",
    "TransactionSort",
    "TransactionType",
    "TransientIOError",
    "UnsupportedOperation",
    "ValidationError",
    "filter_transactions",
    "summarise",
]
