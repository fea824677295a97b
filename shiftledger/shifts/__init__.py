"""Mini README: Shift timing utilities.

``window`` maps a day id to its 24-hour shift window and measures progress
through it; ``monitor`` closes the viewed day automatically once that
window has passed.
"""

from .monitor import AutoCloseMonitor, utc_now
from .window import ShiftWindow, parse_day_id, shift_day_for, shift_window

__all__ = [
    "AutoCloseMonitor",
    "ShiftWindow",
    "parse_day_id",
    "shift_day_for",
    "shift_window",
    "utc_now",
]
