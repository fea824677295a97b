"""Mini README: Durable session pointer and driver identity.

Structure:
    * SessionContext - explicit, per-session state (driver + viewed day).
    * SessionStore - SQLite key-value persistence of that state.

The manager receives a ``SessionContext`` instead of reading globals, so
several sessions (or tests) can run side by side. ``SessionStore`` is the
optional durable copy used by the CLI and the API between restarts.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from ..finance.ledger import Driver
from ..logging_utils import get_logger
from .local_store import sqlite_connection

LOGGER = get_logger(__name__)

CURRENT_DRIVER_KEY = "current_driver_id"
CURRENT_DAY_KEY = "current_day_id"


@dataclass(slots=True)
class SessionContext:
    """Who is signed in and which day they are looking at."""

    driver: Optional[Driver] = None
    current_day_id: Optional[str] = None

    @property
    def driver_id(self) -> Optional[str]:
        return self.driver.driver_id if self.driver else None


class SessionStore:
    """Persist the driver identity and the viewed-day pointer."""

    def __init__(self, database_path: Union[str, Path]) -> None:
        self.database_path = Path(database_path)
        self.database_path.parent.mkdir(parents=True, exist_ok=True)
        with sqlite_connection(self.database_path) as con:
            con.execute(
                "CREATE TABLE IF NOT EXISTS drivers ("
                " driver_id TEXT PRIMARY KEY, name TEXT NOT NULL, mobile TEXT NOT NULL)"
            )
            con.execute(
                "CREATE TABLE IF NOT EXISTS session (key TEXT PRIMARY KEY, value TEXT)"
            )

    def _set(self, key: str, value: Optional[str]) -> None:
        with sqlite_connection(self.database_path) as con:
            if value is None:
                con.execute("DELETE FROM session WHERE key=?", (key,))
            else:
                con.execute(
                    "INSERT INTO session (key, value) VALUES (?, ?)"
                    " ON CONFLICT(key) DO UPDATE SET value=excluded.value",
                    (key, value),
                )

    def _get(self, key: str) -> Optional[str]:
        with sqlite_connection(self.database_path) as con:
            row = con.execute("SELECT value FROM session WHERE key=?", (key,)).fetchone()
        return row["value"] if row else None

    def save_driver(self, driver: Driver) -> None:
        """Store the driver and mark them as the signed-in driver."""

        with sqlite_connection(self.database_path) as con:
            con.execute(
                "INSERT INTO drivers (driver_id, name, mobile) VALUES (?, ?, ?)"
                " ON CONFLICT(driver_id) DO UPDATE SET name=excluded.name, mobile=excluded.mobile",
                (driver.driver_id, driver.name, driver.mobile),
            )
        self._set(CURRENT_DRIVER_KEY, driver.driver_id)
        LOGGER.info("Driver %s signed in", driver.driver_id)

    def load_driver(self) -> Optional[Driver]:
        driver_id = self._get(CURRENT_DRIVER_KEY)
        if driver_id is None:
            return None
        with sqlite_connection(self.database_path) as con:
            row = con.execute(
                "SELECT driver_id, name, mobile FROM drivers WHERE driver_id=?", (driver_id,)
            ).fetchone()
        if row is None:
            LOGGER.warning("Session points at unknown driver %s", driver_id)
            return None
        return Driver(driver_id=row["driver_id"], name=row["name"], mobile=row["mobile"])

    def save_current_day(self, day_id: Optional[str]) -> None:
        self._set(CURRENT_DAY_KEY, day_id)

    def load_current_day(self) -> Optional[str]:
        return self._get(CURRENT_DAY_KEY)

    def load_context(self) -> SessionContext:
        """Rebuild the session context saved by a previous run."""

        driver = self.load_driver()
        return SessionContext(
            driver=driver,
            current_day_id=self.load_current_day() if driver else None,
        )

    def logout(self) -> None:
        """Forget the signed-in driver; stored ledgers are kept."""

        self._set(CURRENT_DRIVER_KEY, None)
        self._set(CURRENT_DAY_KEY, None)
        LOGGER.info("Session cleared")
