"""Mini README: Shift window maths.

Structure:
    * ShiftWindow - the [start, end) interval of one shift day plus progress helpers.
    * shift_window - build the window for a ``YYYY-MM-DD`` day id.
    * shift_day_for - find the day id whose window contains an instant.
    * parse_day_id - strict day id parser.

A shift day starts at ``start_hour`` local time (04:00 by default) so late
night trips count towards the evening they started in, and lasts exactly
24 hours of elapsed time. Everything here is pure: the same day id, zone
and ``now`` always give the same answer. Arithmetic happens in UTC so a
daylight saving change inside a shift cannot skew the progress figures.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Dict

from ..finance.errors import ValidationError
from ..finance.ledger import ensure_aware, isoformat_utc

DEFAULT_START_HOUR = 4
SHIFT_LENGTH = timedelta(hours=24)
_DAY_ID_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_day_id(day_id: str) -> date:
    """Parse a ``YYYY-MM-DD`` identifier, rejecting every other spelling."""

    if not isinstance(day_id, str) or not _DAY_ID_PATTERN.match(day_id):
        raise ValidationError(f"Day id must look like YYYY-MM-DD, got {day_id!r}")
    try:
        return date.fromisoformat(day_id)
    except ValueError as error:
        raise ValidationError(f"Day id {day_id} is not a calendar date") from error


@dataclass(frozen=True, slots=True)
class ShiftWindow:
    """Concrete instants bounding one shift day."""

    day_id: str
    start: datetime
    end: datetime

    def contains(self, instant: datetime) -> bool:
        moment = _to_utc(instant)
        return _to_utc(self.start) <= moment < _to_utc(self.end)

    def has_expired(self, now: datetime) -> bool:
        return _to_utc(now) > _to_utc(self.end)

    def progress_percent(self, now: datetime) -> float:
        """Share of the window elapsed at ``now``, clamped to 0-100."""

        moment = _to_utc(now)
        start = _to_utc(self.start)
        end = _to_utc(self.end)
        if moment < start:
            return 0.0
        if moment > end:
            return 100.0
        return (moment - start) / (end - start) * 100

    def remaining_hours(self, now: datetime) -> int:
        """Whole hours left in the window, rounded up, never negative."""

        remaining = max(timedelta(0), _to_utc(self.end) - _to_utc(now))
        return math.ceil(remaining / timedelta(hours=1))

    def as_dict(self, now: datetime) -> Dict[str, object]:
        return {
            "day_id": self.day_id,
            "shift_start": isoformat_utc(self.start),
            "shift_end": isoformat_utc(self.end),
            "progress_percent": round(self.progress_percent(now), 2),
            "remaining_hours": self.remaining_hours(now),
            "expired": self.has_expired(now),
        }


def shift_window(day_id: str, *, tz: tzinfo, start_hour: int = DEFAULT_START_HOUR) -> ShiftWindow:
    """Return the window that starts on ``day_id`` at ``start_hour`` in ``tz``."""

    if not 0 <= start_hour <= 23:
        raise ValidationError(f"Shift start hour must be between 0 and 23, got {start_hour}")
    day = parse_day_id(day_id)
    local_start = datetime.combine(day, time(hour=start_hour), tzinfo=tz)
    end = local_start.astimezone(timezone.utc) + SHIFT_LENGTH
    return ShiftWindow(day_id=day_id, start=local_start, end=end.astimezone(tz))


def shift_day_for(
    instant: datetime, *, tz: tzinfo, start_hour: int = DEFAULT_START_HOUR
) -> str:
    """Return the day id whose shift window contains ``instant``."""

    local = ensure_aware(instant).astimezone(tz)
    candidate = (local - timedelta(hours=start_hour)).date()
    window = shift_window(candidate.isoformat(), tz=tz, start_hour=start_hour)
    # Wall-clock and elapsed-time boundaries differ by an hour on DST days.
    if _to_utc(instant) >= _to_utc(window.end):
        candidate += timedelta(days=1)
    elif _to_utc(instant) < _to_utc(window.start):
        candidate -= timedelta(days=1)
    return candidate.isoformat()


def _to_utc(instant: datetime) -> datetime:
    return ensure_aware(instant).astimezone(timezone.utc)
