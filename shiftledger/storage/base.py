"""Mini README: Abstract contract every ledger store implements.

Structure:
    * CurrentDayStatus - the store's view of the driver's active day.
    * LedgerStore - abstract read/write contract used by the manager.

Stores exchange raw rows (plain mappings) for reads so the reconciler
stays the single place where rows are interpreted. Capability flags
declare whether a backend can edit or delete stored transactions; the
default implementations reject both with ``UnsupportedOperation`` so a
backend never silently ignores a request.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from ..finance.errors import UnsupportedOperation
from ..finance.ledger import DayStatus, Transaction, TransactionDraft, isoformat_utc
from ..logging_utils import get_logger

LOGGER = get_logger(__name__)

RawRow = Mapping[str, Any]


@dataclass(frozen=True, slots=True)
class CurrentDayStatus:
    """Authoritative status record for the driver's current day."""

    day_id: str
    status: DayStatus
    opened_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        return self.status is DayStatus.OPEN

    def as_dict(self) -> Dict[str, Optional[str]]:
        return {
            "day_id": self.day_id,
            "status": self.status.value,
            "opened_at": isoformat_utc(self.opened_at),
            "closed_at": isoformat_utc(self.closed_at),
        }


class LedgerStore(ABC):
    """Base interface for ledger persistence backends."""

    backend_name: str = "generic"
    supports_edit: bool = False
    supports_delete: bool = False

    @abstractmethod
    def fetch_transactions(self, driver_id: str) -> List[RawRow]:
        """Return every stored transaction row for the driver."""

    @abstractmethod
    def fetch_current_day_status(self, driver_id: str) -> Optional[CurrentDayStatus]:
        """Return the active day record, or ``None`` when no day exists.

        Implementations raise ``TransientIOError`` when the answer is unknown;
        ``None`` always means the store positively reported no day.
        """

    @abstractmethod
    def persist_transaction(self, driver_id: str, draft: TransactionDraft) -> Transaction:
        """Durably store a new transaction and return it as stored."""

    @abstractmethod
    def set_day_status(
        self, driver_id: str, day_id: str, status: DayStatus, *, at: datetime
    ) -> CurrentDayStatus:
        """Open or close a day, returning the confirmed record.

        Opening raises ``AlreadyOpenConflict`` when another day is open.
        Closing a day that is already closed returns its record unchanged.
        """

    def update_transaction(self, driver_id: str, transaction: Transaction) -> Transaction:
        """Replace a stored transaction's editable fields."""

        raise UnsupportedOperation(f"The {self.backend_name} store does not support editing transactions.")

    def delete_transaction(self, driver_id: str, transaction_id: str) -> None:
        """Remove a stored transaction."""

        raise UnsupportedOperation(f"The {self.backend_name} store does not support deleting transactions.")

    def close(self) -> None:
        """Release held resources; the default store holds none."""

        LOGGER.debug("Closing %s store", self.backend_name)

    def metadata(self) -> Dict[str, object]:
        """Return diagnostic metadata for status displays."""

        return {
            "backend": self.backend_name,
            "supports_edit": self.supports_edit,
            "supports_delete": self.supports_delete,
        }
