"""Mini README: Ledger workflow package.

``manager`` hosts ``LedgerManager``, the single writer for a driver
session: it refreshes ledgers from the configured store, applies
optimistic updates and enforces the open/closed rules.
"""

from .manager import LedgerManager, RefreshResult

__all__ = ["LedgerManager", "RefreshResult"]
