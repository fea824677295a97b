"""Mini README: Tests for rebuilding per-day ledgers from raw rows.

Structure:
    * test_buckets_by_shift_day_newest_first - grouping, day order and late-night rows.
    * test_order_is_independent_of_input_order - shuffled input gives the same view.
    * test_equal_timestamps_keep_input_order - stable sort on ties.
    * test_reconcile_is_idempotent - feeding output back in changes nothing.
    * test_status_defaults_to_closed_until_confirmed - authoritative record wins.
    * test_current_day_without_rows_is_synthesised - empty open or closed day stays visible.
    * test_malformed_rows_are_dropped - degraded rows never fail the pass.
    * test_remote_style_rows_are_accepted - description/timestamp spelling.
    * test_select_ledger_never_substitutes - absent day gives None.
    * test_find_stale_open_ledger - open day whose window has ended.
"""

from __future__ import annotations

import logging
import random
from datetime import datetime, timezone

import pytest

from shiftledger.finance import DayStatus, TransactionType
from shiftledger.reconciliation import find_stale_open_ledger, reconcile, select_ledger
from shiftledger.storage import CurrentDayStatus

UTC = timezone.utc


def _row(transaction_id: str, occurred_at: str, amount: float = 10.0, kind: str = "income") -> dict:
    return {
        "id": transaction_id,
        "client_name": f"Client {transaction_id}",
        "amount": amount,
        "type": kind,
        "occurred_at": occurred_at,
    }


ROWS = [
    _row("a", "2024-03-10T05:00:00Z"),
    _row("b", "2024-03-10T09:00:00Z", kind="expense"),
    _row("c", "2024-03-10T23:00:00Z"),
    _row("d", "2024-03-11T02:00:00Z"),
    _row("e", "2024-03-09T10:00:00Z"),
]


def _ids(ledger) -> list:
    return [transaction.transaction_id for transaction in ledger.transactions]


def test_buckets_by_shift_day_newest_first() -> None:
    ledgers = reconcile(ROWS, driver_id="drv", tz=UTC)

    assert [ledger.day_id for ledger in ledgers] == ["2024-03-10", "2024-03-09"]
    assert _ids(ledgers[0]) == ["d", "c", "b", "a"]
    assert _ids(ledgers[1]) == ["e"]
    assert ledgers[0].shift_start == datetime(2024, 3, 10, 4, 0, tzinfo=UTC)
    assert all(ledger.driver_id == "drv" for ledger in ledgers)


def test_order_is_independent_of_input_order() -> None:
    expected = reconcile(ROWS, driver_id="drv", tz=UTC)
    shuffled = list(ROWS)
    random.Random(7).shuffle(shuffled)

    assert reconcile(shuffled, driver_id="drv", tz=UTC) == expected
    assert reconcile(list(reversed(ROWS)), driver_id="drv", tz=UTC) == expected


def test_equal_timestamps_keep_input_order() -> None:
    rows = [
        _row("first", "2024-03-10T08:00:00Z"),
        _row("second", "2024-03-10T08:00:00Z"),
        _row("later", "2024-03-10T09:00:00Z"),
    ]

    ledgers = reconcile(rows, driver_id="drv", tz=UTC)

    assert _ids(ledgers[0]) == ["later", "first", "second"]


def test_reconcile_is_idempotent() -> None:
    current = CurrentDayStatus(day_id="2024-03-10", status=DayStatus.OPEN)
    first = reconcile(ROWS, current, driver_id="drv", tz=UTC)
    flattened = [transaction for ledger in first for transaction in ledger.transactions]

    second = reconcile(flattened, current, driver_id="drv", tz=UTC)

    assert second == first


def test_status_defaults_to_closed_until_confirmed() -> None:
    rows = ROWS[:3]
    opened_at = datetime(2024, 3, 10, 4, 30, tzinfo=UTC)

    unconfirmed = reconcile(rows, driver_id="drv", tz=UTC)
    confirmed = reconcile(
        rows,
        CurrentDayStatus(day_id="2024-03-10", status=DayStatus.OPEN, opened_at=opened_at),
        driver_id="drv",
        tz=UTC,
    )

    assert unconfirmed[0].status is DayStatus.CLOSED
    assert len(unconfirmed[0].transactions) == 3
    assert confirmed[0].status is DayStatus.OPEN
    assert confirmed[0].opened_at == opened_at


def test_current_day_without_rows_is_synthesised() -> None:
    open_today = CurrentDayStatus(day_id="2024-03-12", status=DayStatus.OPEN)
    closed_today = CurrentDayStatus(day_id="2024-03-12", status=DayStatus.CLOSED)

    with_open = reconcile(ROWS, open_today, driver_id="drv", tz=UTC)
    with_closed = reconcile(ROWS, closed_today, driver_id="drv", tz=UTC)

    assert with_open[0].day_id == "2024-03-12"
    assert with_open[0].is_open
    assert with_open[0].transactions == ()
    assert [ledger.day_id for ledger in with_closed] == ["2024-03-12", "2024-03-10", "2024-03-09"]
    assert with_closed[0].is_closed
    assert with_closed[0].transactions == ()
    assert reconcile(ROWS, closed_today, driver_id="drv", tz=UTC) == with_closed


def test_current_day_with_bad_id_is_ignored() -> None:
    bogus = CurrentDayStatus(day_id="10/03/2024", status=DayStatus.OPEN)

    ledgers = reconcile(ROWS, bogus, driver_id="drv", tz=UTC)

    assert all(ledger.is_closed for ledger in ledgers)


def test_malformed_rows_are_dropped(caplog: pytest.LogCaptureFixture) -> None:
    rows = [
        _row("good", "2024-03-10T05:00:00Z"),
        _row("no-time", "not a time"),
        _row("naive", "2024-03-10T05:00:00"),
        _row("negative", "2024-03-10T05:00:00Z", amount=-5),
        _row("weird", "2024-03-10T05:00:00Z", kind="refund"),
        {"client_name": "No id", "amount": 5, "type": "income", "occurred_at": "2024-03-10T05:00:00Z"},
        "garbage",
        _row("good", "2024-03-10T06:00:00Z"),
    ]

    with caplog.at_level(logging.WARNING):
        ledgers = reconcile(rows, driver_id="drv", tz=UTC)

    assert len(ledgers) == 1
    assert _ids(ledgers[0]) == ["good"]
    assert ledgers[0].transactions[0].occurred_at == datetime(2024, 3, 10, 5, 0, tzinfo=UTC)
    assert "Dropping transaction row" in caplog.text


def test_remote_style_rows_are_accepted() -> None:
    rows = [
        {
            "id": 17,
            "amount": "25.5",
            "type": "EXPENSE",
            "description": "Fuel",
            "timestamp": "2024-03-10T06:00:00Z",
        },
        {"id": 18, "amount": 40, "type": "income", "description": "Airport", "timestamp": 1710050400000},
    ]

    ledgers = reconcile(rows, driver_id="drv", tz=UTC)
    fuel = ledgers[0].get_transaction("17")

    assert fuel.client_name == "Fuel"
    assert fuel.amount == pytest.approx(25.5)
    assert fuel.transaction_type is TransactionType.EXPENSE
    assert ledgers[0].get_transaction("18").client_name == "Airport"


def test_select_ledger_never_substitutes() -> None:
    ledgers = reconcile(ROWS, driver_id="drv", tz=UTC)

    assert select_ledger(ledgers, "2024-03-09").day_id == "2024-03-09"
    assert select_ledger(ledgers, "2024-01-01") is None
    assert select_ledger(ledgers, None) is None


def test_find_stale_open_ledger() -> None:
    current = CurrentDayStatus(day_id="2024-03-09", status=DayStatus.OPEN)
    ledgers = reconcile(ROWS, current, driver_id="drv", tz=UTC)

    stale = find_stale_open_ledger(ledgers, datetime(2024, 3, 10, 12, 0, tzinfo=UTC), tz=UTC)
    fresh = find_stale_open_ledger(ledgers, datetime(2024, 3, 10, 3, 0, tzinfo=UTC), tz=UTC)

    assert stale is not None and stale.day_id == "2024-03-09"
    assert fresh is None
