"""Mini README: Tests covering the ledger value types and read-side helpers.

Structure:
    * test_with_changes_validates_edits - edits go through the same validation as new entries.
    * test_draft_build_rejects_bad_input - empty names, non-positive amounts, naive times.
    * test_filter_and_sort_transactions - search, kind filter and both sort orders.
    * test_summary_totals - income, expense and net for a day header.
    * test_parse_instant_formats - ISO strings with Z, epoch milliseconds, naive rejection.
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from shiftledger.finance import (
    Ledger,
    Transaction,
    TransactionDraft,
    TransactionType,
    ValidationError,
    filter_transactions,
)
from shiftledger.finance.ledger import isoformat_utc, parse_instant

UTC = timezone.utc


def _transaction(transaction_id: str, name: str, amount: float, kind: TransactionType, hour: int) -> Transaction:
    return Transaction(
        transaction_id=transaction_id,
        client_name=name,
        amount=amount,
        transaction_type=kind,
        occurred_at=datetime(2024, 3, 10, hour, 0, tzinfo=UTC),
    )


TRANSACTIONS = [
    _transaction("t1", "Airport run", 120.0, TransactionType.INCOME, 6),
    _transaction("t2", "Fuel", 40.0, TransactionType.EXPENSE, 8),
    _transaction("t3", "Mall pickup", 120.0, TransactionType.INCOME, 9),
    _transaction("t4", "airport drop", 60.0, TransactionType.INCOME, 11),
]


def test_with_changes_validates_edits() -> None:
    original = TRANSACTIONS[0]

    edited = original.with_changes(amount="95.5", transaction_type="EXPENSE")

    assert edited.amount == pytest.approx(95.5)
    assert edited.transaction_type is TransactionType.EXPENSE
    assert edited.transaction_id == original.transaction_id
    assert original.amount == pytest.approx(120.0)
    with pytest.raises(ValidationError):
        original.with_changes(client_name="   ")
    with pytest.raises(ValidationError):
        original.with_changes(amount=-1)
    with pytest.raises(ValidationError):
        original.with_changes()


def test_draft_build_rejects_bad_input() -> None:
    now = datetime(2024, 3, 10, 12, 0, tzinfo=UTC)

    with pytest.raises(ValidationError):
        TransactionDraft.build("", 100, "income", now)
    with pytest.raises(ValidationError):
        TransactionDraft.build("Ali", 0, "expense", now)
    with pytest.raises(ValidationError):
        TransactionDraft.build("Ali", float("nan"), "expense", now)
    with pytest.raises(ValidationError):
        TransactionDraft.build("Ali", True, "expense", now)
    with pytest.raises(ValidationError):
        TransactionDraft.build("Ali", 10, "income", datetime(2024, 3, 10, 12, 0))

    draft = TransactionDraft.build("  Ali  ", "12.5", "Income", now)
    assert draft.client_name == "Ali"
    assert draft.transaction_type is TransactionType.INCOME


def test_filter_and_sort_transactions() -> None:
    by_time = filter_transactions(TRANSACTIONS)
    by_amount = filter_transactions(TRANSACTIONS, sort_by="amount")
    airport = filter_transactions(TRANSACTIONS, query="AIRPORT")
    expenses = filter_transactions(TRANSACTIONS, transaction_type="expense")

    assert [t.transaction_id for t in by_time] == ["t4", "t3", "t2", "t1"]
    assert [t.transaction_id for t in by_amount] == ["t3", "t1", "t4", "t2"]
    assert [t.transaction_id for t in airport] == ["t4", "t1"]
    assert [t.transaction_id for t in expenses] == ["t2"]
    with pytest.raises(ValidationError):
        filter_transactions(TRANSACTIONS, sort_by="colour")


def test_summary_totals() -> None:
    ledger = Ledger(
        day_id="2024-03-10",
        driver_id="drv",
        shift_start=datetime(2024, 3, 10, 4, 0, tzinfo=UTC),
        transactions=tuple(TRANSACTIONS),
    )

    summary = ledger.summary()

    assert summary.income == pytest.approx(300.0)
    assert summary.expense == pytest.approx(40.0)
    assert summary.net == pytest.approx(260.0)
    assert summary.transaction_count == 4
    assert ledger.is_closed
    assert ledger.as_dict()["summary"]["net"] == pytest.approx(260.0)
    with pytest.raises(KeyError):
        ledger.get_transaction("missing")


def test_parse_instant_formats() -> None:
    expected = datetime(2024, 3, 10, 6, 0, tzinfo=UTC)

    assert parse_instant("2024-03-10T06:00:00Z") == expected
    assert parse_instant("2024-03-10T09:00:00+03:00") == expected
    assert parse_instant(1710050400000) == expected
    assert isoformat_utc(parse_instant("2024-03-10T09:00:00+03:00")) == "2024-03-10T06:00:00Z"
    with pytest.raises(ValidationError):
        parse_instant("2024-03-10T06:00:00")
    with pytest.raises(ValidationError):
        parse_instant(None)
