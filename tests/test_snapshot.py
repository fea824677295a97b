"""Mini README: Tests for JSON backup and restore.

Structure:
    * test_export_then_import_into_fresh_database - days, statuses and totals survive.
    * test_import_skips_existing_transactions - restoring twice inserts nothing new.
    * test_import_rejects_bad_payloads - invalid JSON and shapes raise ValidationError.
    * test_import_requires_capable_store - remote-style stores refuse imports.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from conftest import DRIVER, InMemoryLedgerStore, MutableClock
from shiftledger.finance import UnsupportedOperation, ValidationError
from shiftledger.ledgers import LedgerManager
from shiftledger.storage import LocalLedgerStore, SessionStore
from shiftledger.utils import export_snapshot, import_snapshot

UTC = timezone.utc
EXPORTED_AT = datetime(2024, 3, 12, 8, 0, tzinfo=UTC)


def _populated_manager(database: Path) -> LedgerManager:
    clock = MutableClock(datetime(2024, 3, 9, 12, 0, tzinfo=UTC))
    manager = LedgerManager(LocalLedgerStore(database), clock=clock, tz=UTC)
    manager.sign_in(DRIVER)
    manager.open_day()
    manager.add_transaction("Airport", 150, "income")
    manager.close_day()
    clock.now = datetime(2024, 3, 10, 12, 0, tzinfo=UTC)
    manager.open_day()
    manager.add_transaction("Fuel", 40, "expense")
    return manager


def test_export_then_import_into_fresh_database(tmp_path: Path) -> None:
    source = _populated_manager(tmp_path / "source.db")
    payload = export_snapshot(source.driver, source.ledgers, exported_at=EXPORTED_AT)

    assert json.loads(payload)["exported_at"] == "2024-03-12T08:00:00Z"

    target_db = tmp_path / "target.db"
    store = LocalLedgerStore(target_db)
    sessions = SessionStore(target_db)
    outcome = import_snapshot(payload, store, sessions)

    assert outcome == {"driver": DRIVER, "ledgers": 2, "transactions": 2}
    restored = LedgerManager(store, sessions.load_context(), tz=UTC)
    restored.refresh()
    assert [(ledger.day_id, ledger.status.value) for ledger in restored.ledgers] == [
        ("2024-03-10", "open"),
        ("2024-03-09", "closed"),
    ]
    assert restored.get_ledger("2024-03-09").summary().income == pytest.approx(150.0)


def test_import_skips_existing_transactions(tmp_path: Path) -> None:
    database = tmp_path / "ledger.db"
    source = _populated_manager(database)
    payload = export_snapshot(source.driver, source.ledgers, exported_at=EXPORTED_AT)

    outcome = import_snapshot(payload, LocalLedgerStore(database), SessionStore(database))

    assert outcome["transactions"] == 0


def test_import_rejects_bad_payloads(tmp_path: Path) -> None:
    store = LocalLedgerStore(tmp_path / "ledger.db")
    sessions = SessionStore(tmp_path / "ledger.db")

    for payload in ("{not json", "[]", json.dumps({"driver": {"name": "Ali"}, "ledgers": []})):
        with pytest.raises(ValidationError):
            import_snapshot(payload, store, sessions)

    bad_day = json.dumps({"driver": DRIVER.as_dict(), "ledgers": [{"id": "10/03/2024"}]})
    with pytest.raises(ValidationError):
        import_snapshot(bad_day, store, sessions)
    assert sessions.load_driver() is None


def test_import_requires_capable_store(tmp_path: Path) -> None:
    payload = json.dumps({"driver": DRIVER.as_dict(), "ledgers": []})

    with pytest.raises(UnsupportedOperation):
        import_snapshot(payload, InMemoryLedgerStore(), SessionStore(tmp_path / "ledger.db"))
