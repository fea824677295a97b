"""Mini README: Rebuild per-day ledgers from a flat transaction stream.

Structure:
    * reconcile - rows + current-day record -> ledgers, newest day first.
    * select_ledger - look a day up without ever substituting another one.
    * find_stale_open_ledger - spot an open day whose window has ended.

``reconcile`` is total and idempotent. Malformed rows are logged and
dropped; feeding the flattened output back in with the same current-day
record reproduces the same ledgers bucket for bucket. Rows are ordered
newest first with a stable sort, so equal timestamps keep their input
order and the per-day order never depends on how a store returned them.

Days are bucketed by shift day (the window starting at ``start_hour``
local time), not by calendar midnight, so every transaction lands in the
ledger whose shift window contains it.
"""

from __future__ import annotations

from datetime import datetime, timezone, tzinfo
from typing import Dict, Iterable, List, Optional, Set

from ..finance.errors import DegradedRowError, ValidationError
from ..finance.ledger import DayStatus, Ledger, Transaction
from ..logging_utils import get_logger
from ..shifts.window import DEFAULT_START_HOUR, shift_day_for, shift_window
from ..storage.base import CurrentDayStatus
from .rows import RowLike, coerce_row

LOGGER = get_logger(__name__)


def _parse_rows(rows: Iterable[RowLike]) -> List[Transaction]:
    parsed: List[Transaction] = []
    seen: Set[str] = set()
    dropped = 0
    for row in rows:
        try:
            transaction = coerce_row(row)
        except DegradedRowError as error:
            dropped += 1
            LOGGER.warning("Dropping transaction row: %s", error)
            continue
        if transaction.transaction_id in seen:
            LOGGER.debug("Ignoring repeated transaction id %s", transaction.transaction_id)
            continue
        seen.add(transaction.transaction_id)
        parsed.append(transaction)
    if dropped:
        LOGGER.warning("Reconciliation continued without %s malformed rows", dropped)
    return parsed


def reconcile(
    rows: Iterable[RowLike],
    current_day: Optional[CurrentDayStatus] = None,
    *,
    driver_id: str,
    tz: tzinfo,
    start_hour: int = DEFAULT_START_HOUR,
) -> List[Ledger]:
    """Group rows into per-day ledgers and apply the authoritative day status."""

    transactions = sorted(
        _parse_rows(rows),
        key=lambda transaction: transaction.occurred_at.astimezone(timezone.utc),
        reverse=True,
    )

    buckets: Dict[str, List[Transaction]] = {}
    for transaction in transactions:
        try:
            day_id = shift_day_for(transaction.occurred_at, tz=tz, start_hour=start_hour)
        except (OverflowError, ValidationError) as error:
            LOGGER.warning(
                "Dropping transaction %s outside the supported date range: %s",
                transaction.transaction_id,
                error,
            )
            continue
        buckets.setdefault(day_id, []).append(transaction)

    ledgers: Dict[str, Ledger] = {
        day_id: Ledger(
            day_id=day_id,
            driver_id=driver_id,
            shift_start=shift_window(day_id, tz=tz, start_hour=start_hour).start,
            status=DayStatus.CLOSED,
            transactions=tuple(items),
        )
        for day_id, items in buckets.items()
    }

    if current_day is not None:
        _apply_current_day(ledgers, current_day, driver_id=driver_id, tz=tz, start_hour=start_hour)

    ordered = sorted(ledgers.values(), key=lambda ledger: ledger.day_id, reverse=True)
    LOGGER.debug(
        "Reconciled %s transactions into %s ledgers for driver %s",
        len(transactions),
        len(ordered),
        driver_id,
    )
    return ordered


def _apply_current_day(
    ledgers: Dict[str, Ledger],
    current_day: CurrentDayStatus,
    *,
    driver_id: str,
    tz: tzinfo,
    start_hour: int,
) -> None:
    try:
        window = shift_window(current_day.day_id, tz=tz, start_hour=start_hour)
    except ValidationError as error:
        LOGGER.warning("Ignoring current-day record with bad id: %s", error)
        return

    existing = ledgers.get(current_day.day_id)
    if existing is not None:
        ledgers[current_day.day_id] = Ledger(
            day_id=existing.day_id,
            driver_id=existing.driver_id,
            shift_start=existing.shift_start,
            status=current_day.status,
            transactions=existing.transactions,
            opened_at=current_day.opened_at,
            closed_at=current_day.closed_at,
        )
    else:
        # A day without transactions still exists; closing it keeps it in history.
        ledgers[current_day.day_id] = Ledger(
            day_id=current_day.day_id,
            driver_id=driver_id,
            shift_start=window.start,
            status=current_day.status,
            opened_at=current_day.opened_at,
            closed_at=current_day.closed_at,
        )


def select_ledger(ledgers: Iterable[Ledger], day_id: Optional[str]) -> Optional[Ledger]:
    """Return the ledger for ``day_id`` or ``None`` if it is not present."""

    if day_id is None:
        return None
    for ledger in ledgers:
        if ledger.day_id == day_id:
            return ledger
    return None


def find_stale_open_ledger(
    ledgers: Iterable[Ledger],
    now: datetime,
    *,
    tz: tzinfo,
    start_hour: int = DEFAULT_START_HOUR,
) -> Optional[Ledger]:
    """Return an open ledger whose shift window has already ended."""

    for ledger in ledgers:
        if not ledger.is_open:
            continue
        if shift_window(ledger.day_id, tz=tz, start_hour=start_hour).has_expired(now):
            return ledger
    return None
