"""Mini README: JSON backup and restore of a driver's ledgers.

Structure:
    * export_snapshot - serialise the driver and every ledger to JSON text.
    * import_snapshot - validate a backup and replay it into a local store.

Backups carry absolute UTC instants only, so restoring on a device in a
different timezone re-buckets transactions consistently.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Dict, Iterable, Mapping

from ..finance.errors import UnsupportedOperation, ValidationError
from ..finance.ledger import Driver, Ledger, isoformat_utc
from ..logging_utils import get_logger
from ..storage.base import LedgerStore
from ..storage.session import SessionStore

LOGGER = get_logger(__name__)

SNAPSHOT_VERSION = 1


def export_snapshot(driver: Driver, ledgers: Iterable[Ledger], *, exported_at: datetime) -> str:
    """Return a JSON document holding the driver and all their ledgers."""

    payload = {
        "version": SNAPSHOT_VERSION,
        "exported_at": isoformat_utc(exported_at),
        "driver": driver.as_dict(),
        "ledgers": [ledger.as_dict() for ledger in ledgers],
    }
    LOGGER.info("Exported %s ledgers for driver %s", len(payload["ledgers"]), driver.driver_id)
    return json.dumps(payload, ensure_ascii=False, indent=2)


def _parse_driver(raw: Any) -> Driver:
    if not isinstance(raw, Mapping):
        raise ValidationError("Snapshot driver must be an object.")
    mobile = str(raw.get("mobile") or "").strip()
    name = str(raw.get("name") or "").strip()
    driver_id = str(raw.get("id") or mobile).strip()
    if not driver_id or not name:
        raise ValidationError("Snapshot driver needs a name and an id or mobile number.")
    return Driver(driver_id=driver_id, name=name, mobile=mobile or driver_id)


def import_snapshot(
    payload: str, store: LedgerStore, session_store: SessionStore
) -> Dict[str, Any]:
    """Restore a backup produced by ``export_snapshot``.

    The driver becomes the signed-in driver. Only stores that expose
    ``import_ledgers`` can take the ledgers; others raise
    ``UnsupportedOperation`` before anything is written.
    """

    try:
        data = json.loads(payload)
    except (TypeError, ValueError) as error:
        raise ValidationError(f"Snapshot is not valid JSON: {error}") from error
    if not isinstance(data, Mapping) or not isinstance(data.get("ledgers"), list):
        raise ValidationError("Snapshot must contain a driver and a list of ledgers.")

    driver = _parse_driver(data.get("driver"))
    importer = getattr(store, "import_ledgers", None)
    if importer is None:
        raise UnsupportedOperation(f"The {store.backend_name} store cannot import snapshots.")

    ledgers = [entry for entry in data["ledgers"] if isinstance(entry, Mapping)]
    inserted = importer(driver.driver_id, ledgers)
    session_store.save_driver(driver)
    LOGGER.info("Imported snapshot for driver %s", driver.driver_id)
    return {"driver": driver, "ledgers": len(ledgers), "transactions": inserted}
