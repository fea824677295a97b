"""Mini README: Ledger storage backends.

``base`` defines the contract, ``local_store`` keeps ledgers in SQLite,
``remote_store`` talks to the hosted driver API, ``session`` persists who
is signed in and which day is being viewed, and ``registry`` picks the
backend named in the configuration.
"""

from .base import CurrentDayStatus, LedgerStore
from .local_store import LocalLedgerStore
from .registry import REGISTRY, StoreRegistry, create_store
from .remote_store import RemoteLedgerStore
from .session import SessionContext, SessionStore

__all__ = [
    "CurrentDayStatus",
    "LedgerStore",
    "LocalLedgerStore",
    "REGISTRY",
    "RemoteLedgerStore",
    "SessionContext",
    "SessionStore",
    "StoreRegistry",
    "create_store",
]
