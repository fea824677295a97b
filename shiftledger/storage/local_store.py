"""Mini README: SQLite-backed ledger store for offline use.

Structure:
    * sqlite_connection - context manager yielding a committed-per-block connection.
    * LocalLedgerStore - ``LedgerStore`` implementation with edit and delete support.

Every public method runs inside one SQLite transaction, so a write is
either fully applied or not at all, and a read issued after a write on the
same database file always sees it. Lock contention and IO failures surface
as ``TransientIOError``.
"""

from __future__ import annotations

import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Iterator, List, Mapping, Optional, Union

from ..finance.errors import (
    AlreadyOpenConflict,
    ClosedLedgerError,
    MultipleOpenLedgersError,
    TransientIOError,
    ValidationError,
)
from ..finance.ledger import (
    DayStatus,
    Transaction,
    TransactionDraft,
    TransactionType,
    isoformat_utc,
    parse_instant,
    validate_amount,
    validate_client_name,
)
from ..logging_utils import get_logger
from ..shifts.window import parse_day_id
from .base import CurrentDayStatus, LedgerStore, RawRow

LOGGER = get_logger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS transactions (
      transaction_id TEXT PRIMARY KEY,
      driver_id TEXT NOT NULL,
      client_name TEXT NOT NULL,
      amount REAL NOT NULL,
      transaction_type TEXT NOT NULL,
      occurred_at TEXT NOT NULL
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_transactions_driver ON transactions (driver_id);",
    """
    CREATE TABLE IF NOT EXISTS days (
      driver_id TEXT NOT NULL,
      day_id TEXT NOT NULL,
      status TEXT NOT NULL,
      opened_at TEXT,
      closed_at TEXT,
      PRIMARY KEY (driver_id, day_id)
    );
    """,
)


@contextmanager
def sqlite_connection(path: Union[str, Path]) -> Iterator[sqlite3.Connection]:
    """Open the database, commit on success and translate IO failures."""

    try:
        con = sqlite3.connect(str(path), timeout=5.0)
    except sqlite3.OperationalError as error:
        raise TransientIOError(f"Cannot open ledger database {path}: {error}") from error
    con.row_factory = sqlite3.Row
    try:
        con.execute("PRAGMA journal_mode=WAL;")
        yield con
        con.commit()
    except sqlite3.OperationalError as error:
        con.rollback()
        raise TransientIOError(f"Ledger database {path} is unavailable: {error}") from error
    except BaseException:
        con.rollback()
        raise
    finally:
        con.close()


def _day_record(row: Mapping[str, Any]) -> CurrentDayStatus:
    return CurrentDayStatus(
        day_id=row["day_id"],
        status=DayStatus.from_str(row["status"]),
        opened_at=parse_instant(row["opened_at"]) if row["opened_at"] else None,
        closed_at=parse_instant(row["closed_at"]) if row["closed_at"] else None,
    )


class LocalLedgerStore(LedgerStore):
    """Ledger store persisting to a local SQLite file."""

    backend_name = "local"
    supports_edit = True
    supports_delete = True

    def __init__(self, database_path: Union[str, Path]) -> None:
        self.database_path = Path(database_path)
        self.database_path.parent.mkdir(parents=True, exist_ok=True)
        with sqlite_connection(self.database_path) as con:
            for statement in _SCHEMA:
                con.execute(statement)
        LOGGER.debug("Local ledger store ready at %s", self.database_path)

    @classmethod
    def from_settings(cls, settings: Any) -> "LocalLedgerStore":
        return cls(settings.database_path)

    def fetch_transactions(self, driver_id: str) -> List[RawRow]:
        with sqlite_connection(self.database_path) as con:
            rows = con.execute(
                "SELECT transaction_id, client_name, amount, transaction_type, occurred_at"
                " FROM transactions WHERE driver_id=?",
                (driver_id,),
            ).fetchall()
        return [
            {
                "id": row["transaction_id"],
                "client_name": row["client_name"],
                "amount": row["amount"],
                "type": row["transaction_type"],
                "occurred_at": row["occurred_at"],
            }
            for row in rows
        ]

    def fetch_current_day_status(self, driver_id: str) -> Optional[CurrentDayStatus]:
        with sqlite_connection(self.database_path) as con:
            return self._current_day(con, driver_id)

    def _current_day(self, con: sqlite3.Connection, driver_id: str) -> Optional[CurrentDayStatus]:
        open_rows = con.execute(
            "SELECT * FROM days WHERE driver_id=? AND status=? ORDER BY day_id DESC",
            (driver_id, DayStatus.OPEN.value),
        ).fetchall()
        if len(open_rows) > 1:
            raise MultipleOpenLedgersError(driver_id, [row["day_id"] for row in open_rows])
        if open_rows:
            return _day_record(open_rows[0])
        latest = con.execute(
            "SELECT * FROM days WHERE driver_id=? ORDER BY day_id DESC LIMIT 1",
            (driver_id,),
        ).fetchone()
        return _day_record(latest) if latest else None

    def persist_transaction(self, driver_id: str, draft: TransactionDraft) -> Transaction:
        transaction = draft.to_transaction(uuid.uuid4().hex[:12])
        with sqlite_connection(self.database_path) as con:
            self._insert_transaction(con, driver_id, transaction)
        LOGGER.info(
            "Stored %s transaction %s for driver %s",
            transaction.transaction_type.value,
            transaction.transaction_id,
            driver_id,
        )
        return transaction

    @staticmethod
    def _insert_transaction(
        con: sqlite3.Connection, driver_id: str, transaction: Transaction
    ) -> None:
        con.execute(
            "INSERT INTO transactions"
            " (transaction_id, driver_id, client_name, amount, transaction_type, occurred_at)"
            " VALUES (?, ?, ?, ?, ?, ?)",
            (
                transaction.transaction_id,
                driver_id,
                transaction.client_name,
                transaction.amount,
                transaction.transaction_type.value,
                isoformat_utc(transaction.occurred_at),
            ),
        )

    def set_day_status(
        self, driver_id: str, day_id: str, status: DayStatus, *, at: datetime
    ) -> CurrentDayStatus:
        status = DayStatus.from_str(status)
        with sqlite_connection(self.database_path) as con:
            existing = con.execute(
                "SELECT * FROM days WHERE driver_id=? AND day_id=?",
                (driver_id, day_id),
            ).fetchone()
            if status is DayStatus.OPEN:
                return self._open_day(con, driver_id, day_id, existing, at)
            return self._close_day(con, driver_id, day_id, existing, at)

    def _open_day(
        self,
        con: sqlite3.Connection,
        driver_id: str,
        day_id: str,
        existing: Optional[sqlite3.Row],
        at: datetime,
    ) -> CurrentDayStatus:
        current = self._current_day(con, driver_id)
        if current is not None and current.is_open and current.day_id != day_id:
            raise AlreadyOpenConflict(
                f"Day {current.day_id} is still open for driver {driver_id}.",
                open_day_id=current.day_id,
            )
        if existing is not None:
            record = _day_record(existing)
            if record.status is DayStatus.CLOSED:
                raise ClosedLedgerError(day_id)
            return record
        con.execute(
            "INSERT INTO days (driver_id, day_id, status, opened_at, closed_at)"
            " VALUES (?, ?, ?, ?, NULL)",
            (driver_id, day_id, DayStatus.OPEN.value, isoformat_utc(at)),
        )
        LOGGER.info("Opened day %s for driver %s", day_id, driver_id)
        return CurrentDayStatus(day_id=day_id, status=DayStatus.OPEN, opened_at=at)

    @staticmethod
    def _close_day(
        con: sqlite3.Connection,
        driver_id: str,
        day_id: str,
        existing: Optional[sqlite3.Row],
        at: datetime,
    ) -> CurrentDayStatus:
        if existing is not None:
            record = _day_record(existing)
            if record.status is DayStatus.CLOSED:
                LOGGER.debug("Day %s already closed for driver %s", day_id, driver_id)
                return record
            con.execute(
                "UPDATE days SET status=?, closed_at=? WHERE driver_id=? AND day_id=?",
                (DayStatus.CLOSED.value, isoformat_utc(at), driver_id, day_id),
            )
            LOGGER.info("Closed day %s for driver %s", day_id, driver_id)
            return CurrentDayStatus(
                day_id=day_id, status=DayStatus.CLOSED, opened_at=record.opened_at, closed_at=at
            )
        con.execute(
            "INSERT INTO days (driver_id, day_id, status, opened_at, closed_at)"
            " VALUES (?, ?, ?, NULL, ?)",
            (driver_id, day_id, DayStatus.CLOSED.value, isoformat_utc(at)),
        )
        LOGGER.info("Recorded day %s as closed for driver %s", day_id, driver_id)
        return CurrentDayStatus(day_id=day_id, status=DayStatus.CLOSED, closed_at=at)

    def update_transaction(self, driver_id: str, transaction: Transaction) -> Transaction:
        with sqlite_connection(self.database_path) as con:
            cursor = con.execute(
                "UPDATE transactions SET client_name=?, amount=?, transaction_type=?"
                " WHERE transaction_id=? AND driver_id=?",
                (
                    transaction.client_name,
                    transaction.amount,
                    transaction.transaction_type.value,
                    transaction.transaction_id,
                    driver_id,
                ),
            )
            if cursor.rowcount == 0:
                raise KeyError(f"Transaction {transaction.transaction_id} not found")
        LOGGER.info("Updated transaction %s for driver %s", transaction.transaction_id, driver_id)
        return transaction

    def delete_transaction(self, driver_id: str, transaction_id: str) -> None:
        with sqlite_connection(self.database_path) as con:
            cursor = con.execute(
                "DELETE FROM transactions WHERE transaction_id=? AND driver_id=?",
                (transaction_id, driver_id),
            )
            if cursor.rowcount == 0:
                raise KeyError(f"Transaction {transaction_id} not found")
        LOGGER.info("Deleted transaction %s for driver %s", transaction_id, driver_id)

    def import_ledgers(self, driver_id: str, ledgers: Iterable[Mapping[str, Any]]) -> int:
        """Restore exported ledgers, keeping rows that already exist.

        Returns the number of transactions inserted. The whole import runs
        in one database transaction and is rejected if it would leave more
        than one open day.
        """

        inserted = 0
        with sqlite_connection(self.database_path) as con:
            for entry in ledgers:
                day_id = str(entry.get("id", ""))
                parse_day_id(day_id)
                status = DayStatus.from_str(entry.get("status", DayStatus.CLOSED.value))
                con.execute(
                    "INSERT OR IGNORE INTO days (driver_id, day_id, status, opened_at, closed_at)"
                    " VALUES (?, ?, ?, ?, ?)",
                    (
                        driver_id,
                        day_id,
                        status.value,
                        _optional_instant(entry.get("opened_at")),
                        _optional_instant(entry.get("closed_at")),
                    ),
                )
                for item in entry.get("transactions", []):
                    transaction = _transaction_from_export(item)
                    exists = con.execute(
                        "SELECT 1 FROM transactions WHERE transaction_id=?",
                        (transaction.transaction_id,),
                    ).fetchone()
                    if exists:
                        continue
                    self._insert_transaction(con, driver_id, transaction)
                    inserted += 1
            self._current_day(con, driver_id)
        LOGGER.info("Imported %s transactions for driver %s", inserted, driver_id)
        return inserted


def _transaction_from_export(item: Mapping[str, Any]) -> Transaction:
    try:
        transaction_id = str(item["id"])
        occurred_at = parse_instant(item["occurred_at"])
    except KeyError as error:
        raise ValidationError(f"Exported transaction is missing {error}") from error
    return Transaction(
        transaction_id=transaction_id,
        client_name=validate_client_name(item.get("client_name")),
        amount=validate_amount(item.get("amount")),
        transaction_type=TransactionType.from_str(item.get("type")),
        occurred_at=occurred_at,
    )


def _optional_instant(value: Any) -> Optional[str]:
    if value in (None, ""):
        return None
    return isoformat_utc(parse_instant(value))
