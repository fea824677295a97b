"""Mini README: Utility helpers for the shift ledger (backup and restore)."""

from .snapshot import export_snapshot, import_snapshot

__all__ = ["export_snapshot", "import_snapshot"]
