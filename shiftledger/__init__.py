"""Mini README: Core package initializer for the shift ledger engine.

The engine records a driver's cash income and expenses, groups them into
shift days that start at a configurable local hour, and closes days
automatically once their 24-hour window has passed. Subpackages:
``finance`` (value types), ``shifts`` (window maths and auto-close),
``reconciliation`` (rebuilding ledgers from raw rows), ``storage``
(local and remote stores) and ``ledgers`` (the mutation workflow).
"""

from .logging_utils import get_logger

__all__ = ["get_logger"]
