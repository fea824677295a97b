"""Mini README: Tests for the auto-close monitor.

Structure:
    * test_closes_exactly_once_when_shift_ends - polling across the end closes once.
    * test_checks_immediately_on_activation - an already expired day closes on attach.
    * test_manual_close_wins_race - a pending timer does nothing after a manual close.
    * test_switching_day_cancels_timer - no timer survives a selection change.
    * test_stop_cancels_pending_timer - stale timers are ignored after stop.
    * test_failed_close_is_retried - a store error leaves the day open for the next tick.
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from conftest import InMemoryLedgerStore, MutableClock, TimerRecorder
from shiftledger.finance import CloseReason, DayStatus, NoticeKind, TransientIOError
from shiftledger.ledgers import LedgerManager
from shiftledger.shifts import AutoCloseMonitor

UTC = timezone.utc
SHIFT_END = datetime(2024, 3, 11, 4, 0, tzinfo=UTC)


@pytest.fixture
def open_manager(manager: LedgerManager) -> LedgerManager:
    manager.open_day()
    manager.add_transaction("Airport", 100, "income")
    return manager


def _monitor(manager: LedgerManager, clock: MutableClock, timers: TimerRecorder) -> AutoCloseMonitor:
    return AutoCloseMonitor(manager, interval_seconds=60, clock=clock, timer_factory=timers).attach()


def _close_calls(store: InMemoryLedgerStore) -> int:
    return store.status_calls.count(DayStatus.CLOSED)


def test_closes_exactly_once_when_shift_ends(
    open_manager: LedgerManager, store: InMemoryLedgerStore, clock: MutableClock, timers: TimerRecorder
) -> None:
    monitor = _monitor(open_manager, clock, timers)

    assert monitor.watched_day_id == "2024-03-10"
    assert len(timers.pending) == 1
    assert timers.pending[0].interval == 60
    assert timers.pending[0].daemon

    clock.now = SHIFT_END
    timers.pending[0].fire()
    assert open_manager.current_ledger.is_open
    assert len(timers.pending) == 1

    clock.advance(minutes=1)
    timers.pending[0].fire()

    assert open_manager.current_ledger.is_closed
    assert _close_calls(store) == 1
    assert timers.pending == []
    assert not monitor.is_running
    closing = [notice for notice in open_manager.notices if notice.kind is NoticeKind.DAY_CLOSED]
    assert len(closing) == 1
    assert closing[0].reason is CloseReason.AUTOMATIC
    assert "automatically" in closing[0].message

    clock.advance(hours=2)
    assert monitor.tick() is False
    monitor.watch("2024-03-10")
    assert _close_calls(store) == 1
    assert timers.pending == []


def test_checks_immediately_on_activation(
    open_manager: LedgerManager, store: InMemoryLedgerStore, clock: MutableClock, timers: TimerRecorder
) -> None:
    clock.now = datetime(2024, 3, 11, 9, 0, tzinfo=UTC)

    _monitor(open_manager, clock, timers)

    assert open_manager.current_ledger.is_closed
    assert _close_calls(store) == 1
    assert timers.pending == []


def test_manual_close_wins_race(
    open_manager: LedgerManager, store: InMemoryLedgerStore, clock: MutableClock, timers: TimerRecorder
) -> None:
    _monitor(open_manager, clock, timers)
    open_manager.close_day()
    clock.now = datetime(2024, 3, 11, 9, 0, tzinfo=UTC)

    timers.pending[0].fire()

    assert _close_calls(store) == 1
    reasons = [notice.reason for notice in open_manager.notices if notice.kind is NoticeKind.DAY_CLOSED]
    assert reasons == [CloseReason.MANUAL]
    assert timers.pending == []


def test_switching_day_cancels_timer(
    open_manager: LedgerManager, store: InMemoryLedgerStore, clock: MutableClock, timers: TimerRecorder
) -> None:
    store.add_row("old", datetime(2024, 3, 9, 10, 0, tzinfo=UTC))
    open_manager.refresh()
    monitor = _monitor(open_manager, clock, timers)
    first = timers.pending[0]

    open_manager.select_day("2024-03-09")

    assert first.cancelled
    assert timers.pending == []
    assert monitor.watched_day_id is None

    clock.now = datetime(2024, 3, 11, 9, 0, tzinfo=UTC)
    first.fire()
    assert _close_calls(store) == 0


def test_stop_cancels_pending_timer(
    open_manager: LedgerManager, store: InMemoryLedgerStore, clock: MutableClock, timers: TimerRecorder
) -> None:
    with _monitor(open_manager, clock, timers) as monitor:
        pending = timers.pending[0]
    clock.now = datetime(2024, 3, 11, 9, 0, tzinfo=UTC)

    pending.fire()

    assert pending.cancelled
    assert not monitor.is_running
    assert _close_calls(store) == 0
    assert open_manager.current_ledger.is_open


def test_failed_close_is_retried(
    open_manager: LedgerManager,
    store: InMemoryLedgerStore,
    clock: MutableClock,
    timers: TimerRecorder,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    _monitor(open_manager, clock, timers)

    def offline(*args: object, **kwargs: object) -> None:
        raise TransientIOError("offline")

    monkeypatch.setattr(store, "set_day_status", offline)
    clock.now = datetime(2024, 3, 11, 4, 30, tzinfo=UTC)
    timers.pending[0].fire()

    assert open_manager.current_ledger.is_open
    assert len(timers.pending) == 1

    monkeypatch.undo()
    timers.pending[0].fire()

    assert open_manager.current_ledger.is_closed
    assert _close_calls(store) == 1


def test_rejects_non_positive_interval(manager: LedgerManager) -> None:
    with pytest.raises(ValueError):
        AutoCloseMonitor(manager, interval_seconds=0)
