"""Mini README: Ledger reconciliation package.

``rows`` turns store rows into transactions; ``reconciler`` groups them
into per-day ledgers and applies the authoritative current-day status.
"""

from .reconciler import find_stale_open_ledger, reconcile, select_ledger
from .rows import coerce_row

__all__ = ["coerce_row", "find_stale_open_ledger", "reconcile", "select_ledger"]
