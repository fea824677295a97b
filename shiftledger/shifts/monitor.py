"""Mini README: Automatic closing of expired shift days.

Structure:
    * ShiftLedgerSource - the slice of the ledger manager the monitor needs.
    * AutoCloseMonitor - cancellable polling task bound to the viewed day.
    * utc_now - default clock.

The monitor watches exactly one day: the one the driver currently has
selected. It checks once as soon as a day is watched and then every
``interval_seconds``. When the day is still open and ``now`` is past its
shift end it asks the manager to close it with ``CloseReason.AUTOMATIC``
and stops. Switching days, closing the day by hand or calling ``stop``
cancels the pending timer; timers that were already in flight carry a
generation number and do nothing once it is stale.

Locks are never held while calling into the manager, which keeps the
manager free to notify the monitor from inside its own critical section.
"""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Protocol, Set

from ..finance.errors import LedgerError
from ..finance.ledger import CloseReason, Ledger
from ..logging_utils import get_logger
from .window import ShiftWindow

LOGGER = get_logger(__name__)

Clock = Callable[[], datetime]
TimerFactory = Callable[..., Any]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ShiftLedgerSource(Protocol):
    current_day_id: Optional[str]

    @property
    def current_ledger(self) -> Optional[Ledger]: ...

    def window_for(self, day_id: str) -> ShiftWindow: ...

    def close_day(self, *, reason: CloseReason = ...) -> Optional[Ledger]: ...

    def add_selection_listener(self, listener: Callable[[Optional[str]], None]) -> None: ...


class AutoCloseMonitor:
    """Poll the watched day and close it once its shift window has passed."""

    def __init__(
        self,
        manager: ShiftLedgerSource,
        *,
        interval_seconds: float = 60.0,
        clock: Clock = utc_now,
        timer_factory: TimerFactory = threading.Timer,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._manager = manager
        self._interval = interval_seconds
        self._clock = clock
        self._timer_factory = timer_factory
        self._lock = threading.RLock()
        self._timer: Optional[Any] = None
        self._generation = 0
        self._day_id: Optional[str] = None
        self._closed_days: Set[str] = set()

    @property
    def watched_day_id(self) -> Optional[str]:
        return self._day_id

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._timer is not None

    def attach(self) -> "AutoCloseMonitor":
        """Follow the manager's selection and start watching its current day."""

        self._manager.add_selection_listener(self.watch)
        self.watch(self._manager.current_day_id)
        return self

    def watch(self, day_id: Optional[str]) -> None:
        """Watch ``day_id`` from now on, replacing any previous schedule."""

        with self._lock:
            self._cancel_timer()
            self._generation += 1
            self._day_id = day_id
            generation = self._generation
        if day_id is None:
            return
        LOGGER.debug("Auto-close monitor watching day %s", day_id)
        self.tick()
        self._schedule(generation)

    def stop(self) -> None:
        """Cancel the pending check; safe to call repeatedly."""

        with self._lock:
            self._cancel_timer()
            self._generation += 1
            if self._day_id is not None:
                LOGGER.debug("Auto-close monitor stopped watching day %s", self._day_id)
            self._day_id = None

    def tick(self) -> bool:
        """Run one check; return ``True`` when this call closed the day."""

        with self._lock:
            day_id = self._day_id
        if day_id is None:
            return False

        if self._manager.current_day_id != day_id:
            LOGGER.debug("Selection moved away from %s; stopping auto-close", day_id)
            self.stop()
            return False
        ledger = self._manager.current_ledger
        if ledger is None or ledger.day_id != day_id or ledger.is_closed:
            self.stop()
            return False

        now = self._clock()
        if not self._manager.window_for(day_id).has_expired(now):
            return False

        with self._lock:
            if day_id in self._closed_days or self._day_id != day_id:
                return False
            self._closed_days.add(day_id)

        LOGGER.info("Shift window for %s ended; closing it automatically", day_id)
        try:
            self._manager.close_day(reason=CloseReason.AUTOMATIC)
        except LedgerError as error:
            with self._lock:
                self._closed_days.discard(day_id)
            LOGGER.warning("Automatic close of %s failed, will retry: %s", day_id, error)
            return False
        self.stop()
        return True

    def _schedule(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or self._day_id is None:
                return
            timer = self._timer_factory(self._interval, self._on_timer, args=(generation,))
            timer.daemon = True
            self._timer = timer
        timer.start()

    def _on_timer(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._timer = None
        self.tick()
        self._schedule(generation)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def __enter__(self) -> "AutoCloseMonitor":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()
