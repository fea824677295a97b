"""Mini README: Shared fixtures for the shift ledger tests.

Structure:
    * MutableClock - settable clock handed to managers and monitors.
    * InMemoryLedgerStore - scriptable store recording every call.
    * TimerRecorder - stand-in for ``threading.Timer`` that fires on demand.
    * Fixtures wiring a manager to the in-memory store with a fixed clock.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

import pytest

from shiftledger.finance import (
    AlreadyOpenConflict,
    DayStatus,
    Driver,
    Transaction,
    TransactionDraft,
)
from shiftledger.ledgers import LedgerManager
from shiftledger.storage import CurrentDayStatus, LedgerStore, SessionContext

DRIVER = Driver(driver_id="0551234567", name="Ali", mobile="0551234567")


class MutableClock:
    """Clock returning ``now`` until a test moves it."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class InMemoryLedgerStore(LedgerStore):
    """Store keeping rows in a list; errors are injected through attributes."""

    backend_name = "memory"
    supports_edit = True
    supports_delete = True

    def __init__(self) -> None:
        self.rows: List[Dict[str, Any]] = []
        self.day: Optional[CurrentDayStatus] = None
        self.rows_error: Optional[Exception] = None
        self.day_error: Optional[Exception] = None
        self.persist_error: Optional[Exception] = None
        self.on_persist: Optional[Callable[[], None]] = None
        self.status_calls: List[DayStatus] = []
        self._counter = 0

    def add_row(self, transaction_id: str, occurred_at: datetime, amount: float = 10.0,
                kind: str = "income", name: str = "Ali") -> None:
        self.rows.append(
            {
                "id": transaction_id,
                "client_name": name,
                "amount": amount,
                "type": kind,
                "occurred_at": occurred_at.isoformat(),
            }
        )

    def fetch_transactions(self, driver_id: str) -> List[Dict[str, Any]]:
        if self.rows_error is not None:
            raise self.rows_error
        return [dict(row) for row in self.rows]

    def fetch_current_day_status(self, driver_id: str) -> Optional[CurrentDayStatus]:
        if self.day_error is not None:
            raise self.day_error
        return self.day

    def persist_transaction(self, driver_id: str, draft: TransactionDraft) -> Transaction:
        if self.on_persist is not None:
            self.on_persist()
        if self.persist_error is not None:
            raise self.persist_error
        self._counter += 1
        transaction = draft.to_transaction(f"txn-{self._counter}")
        self.rows.append(transaction.as_dict())
        return transaction

    def set_day_status(
        self, driver_id: str, day_id: str, status: DayStatus, *, at: datetime
    ) -> CurrentDayStatus:
        self.status_calls.append(status)
        if status is DayStatus.OPEN:
            if self.day is not None and self.day.is_open and self.day.day_id != day_id:
                raise AlreadyOpenConflict("A day is already open.")
            self.day = CurrentDayStatus(day_id=day_id, status=DayStatus.OPEN, opened_at=at)
            return self.day
        if self.day is not None and self.day.day_id == day_id and not self.day.is_open:
            return self.day
        opened_at = self.day.opened_at if self.day is not None and self.day.day_id == day_id else None
        self.day = CurrentDayStatus(
            day_id=day_id, status=DayStatus.CLOSED, opened_at=opened_at, closed_at=at
        )
        return self.day

    def update_transaction(self, driver_id: str, transaction: Transaction) -> Transaction:
        for index, row in enumerate(self.rows):
            if row["id"] == transaction.transaction_id:
                self.rows[index] = transaction.as_dict()
                return transaction
        raise KeyError(transaction.transaction_id)

    def delete_transaction(self, driver_id: str, transaction_id: str) -> None:
        before = len(self.rows)
        self.rows = [row for row in self.rows if row["id"] != transaction_id]
        if len(self.rows) == before:
            raise KeyError(transaction_id)


class RecordedTimer:
    def __init__(self, interval: float, function: Callable[..., None], args: tuple = ()) -> None:
        self.interval = interval
        self.function = function
        self.args = args
        self.daemon = False
        self.started = False
        self.cancelled = False
        self.fired = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        self.fired = True
        self.function(*self.args)


class TimerRecorder:
    """Timer factory whose timers only run when a test fires them."""

    def __init__(self) -> None:
        self.timers: List[RecordedTimer] = []

    def __call__(self, interval: float, function: Callable[..., None], args: tuple = ()) -> RecordedTimer:
        timer = RecordedTimer(interval, function, args)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> List[RecordedTimer]:
        return [t for t in self.timers if t.started and not t.cancelled and not t.fired]


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock(datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def store() -> InMemoryLedgerStore:
    return InMemoryLedgerStore()


@pytest.fixture
def manager(store: InMemoryLedgerStore, clock: MutableClock) -> LedgerManager:
    return LedgerManager(
        store,
        SessionContext(driver=DRIVER),
        clock=clock,
        tz=timezone.utc,
    )


@pytest.fixture
def timers() -> TimerRecorder:
    return TimerRecorder()
