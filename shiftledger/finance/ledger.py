"""Mini README: Value types for a driver's daily cash ledger.

Structure:
    * TransactionType / DayStatus - enums with forgiving string coercion.
    * Transaction - one income or expense entry, immutable once built.
    * TransactionDraft - validated fields of a transaction not yet stored.
    * Ledger - one driver's transactions and status for one shift day.
    * Driver - identity of the signed-in driver.
    * DaySummary / filter_transactions - read-side helpers for a day view.

All types are frozen dataclasses exchanged by copy. Edits go through
``Transaction.with_changes`` which validates the changed fields the same
way new entries are validated.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from .errors import ValidationError


class TransactionType(str, Enum):
    """Enumerate the supported transaction categories."""

    INCOME = "income"
    EXPENSE = "expense"

    @classmethod
    def from_str(cls, value: object) -> "TransactionType":
        """Coerce arbitrary casing into a valid transaction type."""

        if isinstance(value, cls):
            return value
        try:
            normalised = str(value).strip().lower()
            return cls(normalised)
        except (ValueError, AttributeError) as error:
            raise ValidationError(f"Unsupported transaction type: {value}") from error


class DayStatus(str, Enum):
    """Lifecycle state of a shift day."""

    OPEN = "open"
    CLOSED = "closed"

    @classmethod
    def from_str(cls, value: object) -> "DayStatus":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except (ValueError, AttributeError) as error:
            raise ValidationError(f"Unsupported day status: {value}") from error


class TransactionSort(str, Enum):
    TIME = "time"
    AMOUNT = "amount"


def ensure_aware(instant: datetime) -> datetime:
    """Reject naive datetimes so bucketing never depends on the host zone."""

    if not isinstance(instant, datetime):
        raise ValidationError(f"Expected a datetime, got {type(instant).__name__}")
    if instant.tzinfo is None or instant.utcoffset() is None:
        raise ValidationError(f"Instant {instant.isoformat()} has no timezone")
    return instant


def parse_instant(value: object) -> datetime:
    """Parse ISO-8601 strings, epoch milliseconds or aware datetimes.

    Strings may end in ``Z``. Values without an explicit offset are
    rejected rather than guessed, because a local string read in another
    zone would land in a different shift day.
    """

    if isinstance(value, datetime):
        return ensure_aware(value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if not math.isfinite(value):
            raise ValidationError(f"Timestamp {value!r} is not finite")
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as error:
            raise ValidationError(f"Timestamp {value!r} is out of range") from error
    if isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as error:
            raise ValidationError(f"Unparsable timestamp {value!r}") from error
        return ensure_aware(parsed)
    raise ValidationError(f"Unsupported timestamp value {value!r}")


def isoformat_utc(instant: Optional[datetime]) -> Optional[str]:
    """Render an aware instant as an ISO-8601 UTC string."""

    if instant is None:
        return None
    return ensure_aware(instant).astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def validate_client_name(value: object) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("Client name must be a non-empty string.")
    return value.strip()


def validate_amount(value: object) -> float:
    """Accept positive finite numbers, including numeric strings from forms."""

    if isinstance(value, bool):
        raise ValidationError("Amount must be a number.")
    try:
        amount = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as error:
        raise ValidationError(f"Amount must be a number, got {value!r}") from error
    if not math.isfinite(amount) or amount <= 0:
        raise ValidationError("Amount must be greater than zero.")
    return amount


@dataclass(frozen=True, slots=True)
class Transaction:
    """Represent a ledger entry owned by exactly one shift day."""

    transaction_id: str
    client_name: str
    amount: float
    transaction_type: TransactionType
    occurred_at: datetime

    def with_changes(
        self,
        *,
        client_name: Optional[str] = None,
        amount: Optional[object] = None,
        transaction_type: Optional[object] = None,
    ) -> "Transaction":
        """Return a copy applying validated edits to the editable fields."""

        changes: Dict[str, object] = {}
        if client_name is not None:
            changes["client_name"] = validate_client_name(client_name)
        if amount is not None:
            changes["amount"] = validate_amount(amount)
        if transaction_type is not None:
            changes["transaction_type"] = TransactionType.from_str(transaction_type)
        if not changes:
            raise ValidationError("No changes supplied for transaction edit.")
        return replace(self, **changes)

    def as_dict(self) -> Dict[str, object]:
        """Export the transaction with serialisable values."""

        return {
            "id": self.transaction_id,
            "client_name": self.client_name,
            "amount": self.amount,
            "type": self.transaction_type.value,
            "occurred_at": isoformat_utc(self.occurred_at),
        }


@dataclass(frozen=True, slots=True)
class TransactionDraft:
    """Validated transaction fields handed to a store for persistence."""

    client_name: str
    amount: float
    transaction_type: TransactionType
    occurred_at: datetime

    @classmethod
    def build(
        cls,
        client_name: object,
        amount: object,
        transaction_type: object,
        occurred_at: datetime,
    ) -> "TransactionDraft":
        return cls(
            client_name=validate_client_name(client_name),
            amount=validate_amount(amount),
            transaction_type=TransactionType.from_str(transaction_type),
            occurred_at=ensure_aware(occurred_at),
        )

    def to_transaction(self, transaction_id: str) -> Transaction:
        return Transaction(
            transaction_id=transaction_id,
            client_name=self.client_name,
            amount=self.amount,
            transaction_type=self.transaction_type,
            occurred_at=self.occurred_at,
        )


@dataclass(frozen=True, slots=True)
class DaySummary:
    """Totals shown on a day header."""

    income: float
    expense: float
    transaction_count: int

    @property
    def net(self) -> float:
        return self.income - self.expense

    def as_dict(self) -> Dict[str, object]:
        return {
            "income": self.income,
            "expense": self.expense,
            "net": self.net,
            "transaction_count": self.transaction_count,
        }


def summarise(transactions: Iterable[Transaction]) -> DaySummary:
    income = 0.0
    expense = 0.0
    count = 0
    for transaction in transactions:
        count += 1
        if transaction.transaction_type is TransactionType.INCOME:
            income += transaction.amount
        else:
            expense += transaction.amount
    return DaySummary(income=income, expense=expense, transaction_count=count)


def filter_transactions(
    transactions: Iterable[Transaction],
    *,
    query: Optional[str] = None,
    transaction_type: Optional[object] = None,
    sort_by: object = TransactionSort.TIME,
) -> List[Transaction]:
    """Search, filter and order transactions for display.

    ``query`` matches client names case-insensitively. Sorting by time puts
    the newest entry first; sorting by amount puts the largest first and
    breaks ties by recency so the order stays deterministic.
    """

    selected = list(transactions)
    if query and query.strip():
        needle = query.strip().lower()
        selected = [item for item in selected if needle in item.client_name.lower()]
    if transaction_type is not None:
        wanted = TransactionType.from_str(transaction_type)
        selected = [item for item in selected if item.transaction_type is wanted]

    try:
        order = TransactionSort(str(getattr(sort_by, "value", sort_by)).strip().lower())
    except ValueError as error:
        raise ValidationError(f"Unsupported sort order: {sort_by}") from error

    if order is TransactionSort.AMOUNT:
        return sorted(
            selected,
            key=lambda item: (item.amount, item.occurred_at, item.transaction_id),
            reverse=True,
        )
    return sorted(
        selected,
        key=lambda item: (item.occurred_at, item.transaction_id),
        reverse=True,
    )


@dataclass(frozen=True, slots=True)
class Ledger:
    """One driver's transactions and status for a single shift day."""

    day_id: str
    driver_id: str
    shift_start: datetime
    status: DayStatus = DayStatus.CLOSED
    transactions: Tuple[Transaction, ...] = field(default_factory=tuple)
    opened_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        return self.status is DayStatus.OPEN

    @property
    def is_closed(self) -> bool:
        return self.status is DayStatus.CLOSED

    def get_transaction(self, transaction_id: str) -> Transaction:
        """Retrieve a transaction, raising informative errors when missing."""

        for transaction in self.transactions:
            if transaction.transaction_id == transaction_id:
                return transaction
        raise KeyError(f"Transaction {transaction_id} not found in ledger {self.day_id}")

    def summary(self) -> DaySummary:
        return summarise(self.transactions)

    def as_dict(self) -> Dict[str, object]:
        """Export the ledger with serialisable values."""

        return {
            "id": self.day_id,
            "driver_id": self.driver_id,
            "shift_start": isoformat_utc(self.shift_start),
            "status": self.status.value,
            "opened_at": isoformat_utc(self.opened_at),
            "closed_at": isoformat_utc(self.closed_at),
            "summary": self.summary().as_dict(),
            "transactions": [transaction.as_dict() for transaction in self.transactions],
        }


@dataclass(frozen=True, slots=True)
class Driver:
    """Identity of a driver; never mutated by the engine."""

    driver_id: str
    name: str
    mobile: str

    def as_dict(self) -> Dict[str, str]:
        return {"id": self.driver_id, "name": self.name, "mobile": self.mobile}


class CloseReason(str, Enum):
    """Why a day was closed; shown to the driver in the closing notice."""

    MANUAL = "manual"
    AUTOMATIC = "automatic"


class NoticeKind(str, Enum):
    DAY_OPENED = "day_opened"
    DAY_CLOSED = "day_closed"
    TRANSACTION_RETRACTED = "transaction_retracted"
    OPEN_DAY_CONFLICT = "open_day_conflict"


@dataclass(frozen=True, slots=True)
class LedgerNotice:
    """User-facing message emitted once per state change."""

    kind: NoticeKind
    day_id: Optional[str]
    message: str
    reason: Optional[CloseReason] = None

    def as_dict(self) -> Dict[str, Optional[str]]:
        return {
            "kind": self.kind.value,
            "day_id": self.day_id,
            "message": self.message,
            "reason": self.reason.value if self.reason else None,
        }
