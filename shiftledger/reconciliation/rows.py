"""Mini README: Interpreting raw transaction rows.

Rows arrive from two very different stores: the local SQLite store writes
``client_name``/``type``/``occurred_at`` while the remote API answers with
``description``/``type``/``timestamp`` and numeric ids. ``coerce_row``
accepts either spelling (and ready-made ``Transaction`` objects) and
raises ``DegradedRowError`` for anything it cannot trust.
"""

from __future__ import annotations

import math
from typing import Any, Mapping, Sequence, Union

from ..finance.errors import DegradedRowError, ValidationError
from ..finance.ledger import (
    Transaction,
    TransactionType,
    parse_instant,
)

RowLike = Union[Transaction, Mapping[str, Any]]

ID_FIELDS = ("id", "transaction_id")
NAME_FIELDS = ("client_name", "clientName", "description")
TYPE_FIELDS = ("type", "kind", "transaction_type")
TIME_FIELDS = ("occurred_at", "occurredAt", "timestamp")


def _first(row: Mapping[str, Any], names: Sequence[str]) -> Any:
    for name in names:
        if name in row and row[name] is not None:
            return row[name]
    return None


def coerce_row(row: RowLike) -> Transaction:
    """Build a ``Transaction`` from a store row or pass one through."""

    if isinstance(row, Transaction):
        return row
    if not isinstance(row, Mapping):
        raise DegradedRowError(f"Row of type {type(row).__name__} is not a mapping")

    raw_id = _first(row, ID_FIELDS)
    if raw_id is None or str(raw_id).strip() == "":
        raise DegradedRowError(f"Row has no id: {dict(row)!r}")
    transaction_id = str(raw_id)

    try:
        occurred_at = parse_instant(_first(row, TIME_FIELDS))
        amount = _coerce_amount(_first(row, ("amount",)))
        transaction_type = TransactionType.from_str(_first(row, TYPE_FIELDS))
    except ValidationError as error:
        raise DegradedRowError(f"Row {transaction_id} is malformed: {error}") from error

    name = _first(row, NAME_FIELDS)
    return Transaction(
        transaction_id=transaction_id,
        client_name=str(name).strip() if name is not None else "",
        amount=amount,
        transaction_type=transaction_type,
        occurred_at=occurred_at,
    )


def _coerce_amount(value: Any) -> float:
    """Stored amounts may be zero or numeric strings; negatives are corrupt."""

    if isinstance(value, bool) or value is None:
        raise ValidationError(f"Amount {value!r} is not a number")
    try:
        amount = float(value)
    except (TypeError, ValueError) as error:
        raise ValidationError(f"Amount {value!r} is not a number") from error
    if not math.isfinite(amount) or amount < 0:
        raise ValidationError(f"Amount {value!r} must be a non-negative number")
    return amount
