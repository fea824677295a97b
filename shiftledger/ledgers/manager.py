"""Mini README: The ledger workflow a driver session runs through.

Structure:
    * RefreshResult - ledgers after a refresh plus the sources that failed.
    * LedgerManager - refresh, selection, open/close day and transaction edits.

The manager is the single writer for one driver session. It keeps three
pieces of state: the last good transaction rows, the last good current-day
record and an overlay of optimistic rows that have not been confirmed by a
successful refresh yet. The visible ledgers are always re-derived from
those three with ``reconcile``, so an optimistic row disappears the moment
a refresh brings back the authoritative list.

Refresh reads both sources in parallel and treats them independently: a
source that fails keeps its previous value and is reported in
``RefreshResult.failed_sources``; the other source is still applied.
"""

from __future__ import annotations

import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from datetime import timezone, tzinfo
from typing import Any, Callable, Dict, List, Optional, Union

from ..finance.errors import (
    AlreadyOpenConflict,
    ClosedLedgerError,
    LedgerError,
    NoLedgerSelectedError,
    ShiftEndedError,
    TransientIOError,
    UnsupportedOperation,
)
from ..finance.ledger import (
    CloseReason,
    DayStatus,
    Driver,
    Ledger,
    LedgerNotice,
    NoticeKind,
    Transaction,
    TransactionDraft,
)
from ..logging_utils import get_logger
from ..reconciliation import find_stale_open_ledger, reconcile, select_ledger
from ..reconciliation.rows import RowLike
from ..shifts.monitor import Clock, utc_now
from ..shifts.window import DEFAULT_START_HOUR, ShiftWindow, shift_day_for, shift_window
from ..storage.base import CurrentDayStatus, LedgerStore
from ..storage.session import SessionContext, SessionStore

LOGGER = get_logger(__name__)

SOURCE_TRANSACTIONS = "transactions"
SOURCE_DAY_STATUS = "day_status"
PENDING_PREFIX = "pending-"

SelectionListener = Callable[[Optional[str]], None]


@dataclass(slots=True)
class RefreshResult:
    """Outcome of one refresh pass."""

    ledgers: List[Ledger]
    failed_sources: Dict[str, str] = field(default_factory=dict)

    @property
    def complete(self) -> bool:
        return not self.failed_sources


class LedgerManager:
    """Serialise every ledger mutation for one driver session."""

    def __init__(
        self,
        store: LedgerStore,
        session: Optional[SessionContext] = None,
        *,
        session_store: Optional[SessionStore] = None,
        clock: Clock = utc_now,
        tz: tzinfo = timezone.utc,
        start_hour: int = DEFAULT_START_HOUR,
        notifier: Optional[Callable[[LedgerNotice], None]] = None,
    ) -> None:
        self.store = store
        self.session = session or SessionContext()
        self.session_store = session_store
        self.clock = clock
        self.tz = tz
        self.start_hour = start_hour
        self.notifier = notifier
        self.notices: List[LedgerNotice] = []
        self._lock = threading.RLock()
        self._rows: List[RowLike] = []
        self._day_status: Optional[CurrentDayStatus] = None
        self._overlay: Dict[str, Transaction] = {}
        self._ledgers: List[Ledger] = []
        self._listeners: List[SelectionListener] = []
        LOGGER.debug(
            "Ledger manager ready with %s store (edit=%s delete=%s)",
            store.backend_name,
            store.supports_edit,
            store.supports_delete,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Any,
        *,
        store: Optional[LedgerStore] = None,
        clock: Clock = utc_now,
        notifier: Optional[Callable[[LedgerNotice], None]] = None,
    ) -> "LedgerManager":
        """Build a manager from configuration, restoring the saved session."""

        from ..storage.registry import create_store

        session_store = SessionStore(settings.database_path)
        return cls(
            store or create_store(settings),
            session_store.load_context(),
            session_store=session_store,
            clock=clock,
            tz=settings.resolve_timezone(),
            start_hour=settings.shift_start_hour,
            notifier=notifier,
        )

    # -- session -----------------------------------------------------------------

    @property
    def driver(self) -> Optional[Driver]:
        return self.session.driver

    @property
    def current_day_id(self) -> Optional[str]:
        return self.session.current_day_id

    def sign_in(self, driver: Driver) -> RefreshResult:
        """Switch the session to ``driver`` and load their ledgers."""

        with self._lock:
            self.session.driver = driver
            if self.session_store is not None:
                self.session_store.save_driver(driver)
            self._rows = []
            self._day_status = None
            self._overlay.clear()
            self._ledgers = []
            self._set_selection(None)
            return self.refresh()

    def sign_out(self) -> None:
        with self._lock:
            self._set_selection(None)
            self.session.driver = None
            self._rows = []
            self._day_status = None
            self._overlay.clear()
            self._ledgers = []
            if self.session_store is not None:
                self.session_store.logout()

    def _require_driver(self) -> str:
        driver_id = self.session.driver_id
        if driver_id is None:
            raise NoLedgerSelectedError("No driver is signed in.")
        return driver_id

    # -- read side ---------------------------------------------------------------

    @property
    def ledgers(self) -> List[Ledger]:
        return list(self._ledgers)

    @property
    def current_ledger(self) -> Optional[Ledger]:
        return select_ledger(self._ledgers, self.session.current_day_id)

    @property
    def pending_transaction_ids(self) -> List[str]:
        return list(self._overlay)

    def get_ledger(self, day_id: str) -> Ledger:
        ledger = select_ledger(self._ledgers, day_id)
        if ledger is None:
            raise KeyError(f"Ledger {day_id} not found")
        return ledger

    def window_for(self, day_id: str) -> ShiftWindow:
        return shift_window(day_id, tz=self.tz, start_hour=self.start_hour)

    def today_day_id(self) -> str:
        return shift_day_for(self.clock(), tz=self.tz, start_hour=self.start_hour)

    def stale_open_ledger(self) -> Optional[Ledger]:
        """Return an open day whose window already ended, if any."""

        return find_stale_open_ledger(
            self._ledgers, self.clock(), tz=self.tz, start_hour=self.start_hour
        )

    # -- selection ---------------------------------------------------------------

    def add_selection_listener(self, listener: SelectionListener) -> None:
        self._listeners.append(listener)

    def select_day(self, day_id: Optional[str]) -> Optional[Ledger]:
        """Make ``day_id`` the viewed ledger; ``None`` clears the selection."""

        with self._lock:
            if day_id is not None and select_ledger(self._ledgers, day_id) is None:
                raise KeyError(f"Ledger {day_id} not found")
            self._set_selection(day_id)
            return self.current_ledger

    def _set_selection(self, day_id: Optional[str]) -> None:
        if self.session.current_day_id == day_id:
            return
        self.session.current_day_id = day_id
        if self.session_store is not None and self.session.driver is not None:
            self.session_store.save_current_day(day_id)
        LOGGER.debug("Selected day %s", day_id)
        for listener in list(self._listeners):
            listener(day_id)

    # -- reconciliation ----------------------------------------------------------

    def _rebuild(self) -> None:
        driver_id = self._require_driver()
        rows: List[RowLike] = list(self._rows)
        rows.extend(self._overlay.values())
        self._ledgers = reconcile(
            rows,
            self._day_status,
            driver_id=driver_id,
            tz=self.tz,
            start_hour=self.start_hour,
        )
        selected = self.session.current_day_id
        if selected is not None and select_ledger(self._ledgers, selected) is None:
            LOGGER.info("Selected day %s is no longer present; clearing selection", selected)
            self._set_selection(None)

    def refresh(self) -> RefreshResult:
        """Pull both sources and rebuild the ledgers.

        A ``TransientIOError`` from one source leaves that source's previous
        data in place. Any other ledger error (for example an observed
        second open day) is raised after the healthy source was applied.
        """

        with self._lock:
            driver_id = self._require_driver()
            failures: Dict[str, str] = {}
            surfaced: Optional[LedgerError] = None

            with ThreadPoolExecutor(max_workers=2, thread_name_prefix="ledger-refresh") as pool:
                rows_future = pool.submit(self.store.fetch_transactions, driver_id)
                day_future = pool.submit(self.store.fetch_current_day_status, driver_id)

                rows: Optional[List[RowLike]] = None
                try:
                    rows = list(rows_future.result())
                except LedgerError as error:
                    failures[SOURCE_TRANSACTIONS] = str(error)
                    if not isinstance(error, TransientIOError):
                        surfaced = error

                day_fetched = False
                day_status: Optional[CurrentDayStatus] = None
                try:
                    day_status = day_future.result()
                    day_fetched = True
                except LedgerError as error:
                    failures[SOURCE_DAY_STATUS] = str(error)
                    if not isinstance(error, TransientIOError) and surfaced is None:
                        surfaced = error

            if rows is not None:
                self._rows = rows
                self._overlay.clear()
            if day_fetched:
                self._day_status = day_status
            self._rebuild()

            for source, message in failures.items():
                LOGGER.warning("Refresh kept previous %s data: %s", source, message)
            if surfaced is not None:
                raise surfaced
            return RefreshResult(ledgers=self.ledgers, failed_sources=failures)

    def _refresh_after_write(self) -> None:
        try:
            result = self.refresh()
        except LedgerError as error:
            LOGGER.warning("Refresh after write failed: %s", error)
            return
        if not result.complete:
            LOGGER.info("Showing locally confirmed state until the next full refresh")

    # -- mutations ---------------------------------------------------------------

    def _require_current_ledger(self) -> Ledger:
        self._require_driver()
        ledger = self.current_ledger
        if ledger is None:
            raise NoLedgerSelectedError("No day is selected.")
        return ledger

    def _require_open_ledger(self) -> Ledger:
        ledger = self._require_current_ledger()
        if ledger.is_closed:
            raise ClosedLedgerError(ledger.day_id)
        return ledger

    def open_day(self) -> Ledger:
        """Open today's shift day, or return it if it is already open."""

        with self._lock:
            driver_id = self._require_driver()
            today = self.today_day_id()
            existing = select_ledger(self._ledgers, today)
            if existing is not None and existing.is_open:
                self._set_selection(today)
                return existing

            now = self.clock()
            try:
                record = self.store.set_day_status(driver_id, today, DayStatus.OPEN, at=now)
            except AlreadyOpenConflict as conflict:
                return self._resolve_open_conflict(conflict, today)

            self._day_status = record
            self._rebuild()
            self._refresh_after_write()
            ledger = select_ledger(self._ledgers, record.day_id)
            if ledger is None or not ledger.is_open:
                raise LedgerError(f"Day {record.day_id} was opened but the store no longer reports it open.")
            self._set_selection(record.day_id)
            self._emit(NoticeKind.DAY_OPENED, record.day_id, f"Day {record.day_id} is open.")
            return ledger

    def _resolve_open_conflict(self, conflict: AlreadyOpenConflict, today: str) -> Ledger:
        LOGGER.warning("Open day refused: %s", conflict)
        self.refresh()
        real_open = next((ledger for ledger in self._ledgers if ledger.is_open), None)
        if real_open is not None and real_open.day_id == today:
            self._set_selection(today)
            return real_open

        open_day_id = real_open.day_id if real_open is not None else conflict.open_day_id
        if real_open is not None:
            self._set_selection(real_open.day_id)
        message = (
            f"Day {open_day_id} is still open; close it before opening {today}."
            if open_day_id
            else f"The server refused to open {today} because another day is open."
        )
        self._emit(NoticeKind.OPEN_DAY_CONFLICT, open_day_id, message)
        raise AlreadyOpenConflict(message, open_day_id=open_day_id) from conflict

    def add_transaction(
        self, client_name: str, amount: Union[float, str], transaction_type: object
    ) -> Transaction:
        """Record a transaction on the selected day.

        The entry is visible in ``current_ledger`` while the store write is
        in flight. If the write fails it is retracted, a notice is emitted
        and the error propagates.
        """

        with self._lock:
            driver_id = self._require_driver()
            now = self.clock()
            draft = TransactionDraft.build(client_name, amount, transaction_type, now)
            ledger = self._require_open_ledger()
            if self.window_for(ledger.day_id).has_expired(now):
                raise ShiftEndedError(ledger.day_id)

            provisional = draft.to_transaction(f"{PENDING_PREFIX}{uuid.uuid4().hex[:8]}")
            self._overlay[provisional.transaction_id] = provisional
            self._rebuild()

            try:
                stored = self.store.persist_transaction(driver_id, draft)
            except LedgerError as error:
                self._overlay.pop(provisional.transaction_id, None)
                self._rebuild()
                self._emit(
                    NoticeKind.TRANSACTION_RETRACTED,
                    ledger.day_id,
                    f"'{draft.client_name}' was not saved and has been removed: {error}",
                )
                raise

            self._overlay.pop(provisional.transaction_id, None)
            self._overlay[stored.transaction_id] = stored
            self._rebuild()
            LOGGER.info(
                "Added %s %.2f for %s on %s",
                stored.transaction_type.value,
                stored.amount,
                stored.client_name,
                ledger.day_id,
            )
            self._refresh_after_write()
            return stored

    def edit_transaction(
        self,
        transaction_id: str,
        *,
        client_name: Optional[str] = None,
        amount: Optional[Union[float, str]] = None,
        transaction_type: Optional[object] = None,
    ) -> Transaction:
        """Change a stored transaction on the selected, open day."""

        with self._lock:
            if not self.store.supports_edit:
                raise UnsupportedOperation(
                    f"The {self.store.backend_name} store does not allow editing transactions."
                )
            driver_id = self._require_driver()
            ledger = self._require_open_ledger()
            original = ledger.get_transaction(transaction_id)
            updated = original.with_changes(
                client_name=client_name, amount=amount, transaction_type=transaction_type
            )
            stored = self.store.update_transaction(driver_id, updated)
            self._replace_cached_row(transaction_id, stored)
            LOGGER.info("Edited transaction %s on %s", transaction_id, ledger.day_id)
            self._refresh_after_write()
            return stored

    def delete_transaction(self, transaction_id: str) -> None:
        """Remove a stored transaction from the selected, open day."""

        with self._lock:
            if not self.store.supports_delete:
                raise UnsupportedOperation(
                    f"The {self.store.backend_name} store does not allow deleting transactions."
                )
            driver_id = self._require_driver()
            ledger = self._require_open_ledger()
            ledger.get_transaction(transaction_id)
            self.store.delete_transaction(driver_id, transaction_id)
            self._replace_cached_row(transaction_id, None)
            LOGGER.info("Deleted transaction %s from %s", transaction_id, ledger.day_id)
            self._refresh_after_write()

    def _replace_cached_row(self, transaction_id: str, transaction: Optional[Transaction]) -> None:
        rows: List[RowLike] = []
        for row in self._rows:
            row_id = row.transaction_id if isinstance(row, Transaction) else row.get("id")
            if str(row_id) == transaction_id:
                if transaction is not None:
                    rows.append(transaction)
                continue
            rows.append(row)
        self._rows = rows
        if transaction_id in self._overlay:
            if transaction is None:
                del self._overlay[transaction_id]
            else:
                self._overlay[transaction_id] = transaction
        self._rebuild()

    def close_day(self, *, reason: CloseReason = CloseReason.MANUAL) -> Ledger:
        """Close the selected day; closing a closed day changes nothing."""

        with self._lock:
            driver_id = self._require_driver()
            ledger = self._require_current_ledger()
            if ledger.is_closed:
                LOGGER.debug("Day %s already closed; nothing to do", ledger.day_id)
                return ledger

            now = self.clock()
            record = self.store.set_day_status(driver_id, ledger.day_id, DayStatus.CLOSED, at=now)
            if record.closed_at is None:
                record = replace(record, closed_at=now)
            self._day_status = record
            self._rebuild()
            self._refresh_after_write()

            closed = select_ledger(self._ledgers, ledger.day_id) or replace(
                ledger, status=DayStatus.CLOSED, closed_at=record.closed_at
            )
            if reason is CloseReason.AUTOMATIC:
                message = f"Day {ledger.day_id} was closed automatically because its shift ended."
            else:
                message = f"Day {ledger.day_id} was closed."
            self._emit(NoticeKind.DAY_CLOSED, ledger.day_id, message, reason=reason)
            return closed

    # -- notices -----------------------------------------------------------------

    def _emit(
        self,
        kind: NoticeKind,
        day_id: Optional[str],
        message: str,
        *,
        reason: Optional[CloseReason] = None,
    ) -> None:
        notice = LedgerNotice(kind=kind, day_id=day_id, message=message, reason=reason)
        self.notices.append(notice)
        LOGGER.info("Notice [%s] %s", kind.value, message)
        if self.notifier is not None:
            self.notifier(notice)
