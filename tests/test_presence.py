from __future__ import annotations

from eiscpctl.core.presence import PresenceTracker
from eiscpctl.core.scheduler import Scheduler


class FakeClock:
    def __init__(self, now_ms: int = 1_000_000) -> None:
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms


def test_mark_seen_reports_only_the_transition() -> None:
    presence = PresenceTracker(timeout_ms=6000)
    assert presence.mark_seen(1000) is True
    assert presence.mark_seen(2000) is False
    assert presence.connected is True
    assert presence.last_seen_ms == 2000


def test_check_waits_for_sustained_silence() -> None:
    presence = PresenceTracker(timeout_ms=6000)
    presence.mark_seen(1000)
    assert presence.check(7000) is False
    assert presence.connected is True
    assert presence.check(7001) is True
    assert presence.connected is False
    assert presence.check(20000) is False


def test_check_never_fires_before_first_contact() -> None:
    presence = PresenceTracker(timeout_ms=6000)
    assert presence.check(10_000_000) is False


def test_driver_interval_follows_connectivity() -> None:
    presence = PresenceTracker(timeout_ms=6000)
    assert presence.driver_interval_ms(5000, 10000) == 10000
    presence.mark_seen(0)
    assert presence.driver_interval_ms(5000, 10000) == 5000


def test_force_disconnected_and_reset() -> None:
    presence = PresenceTracker(timeout_ms=6000)
    presence.mark_seen(100)
    assert presence.force_disconnected() is True
    assert presence.force_disconnected() is False
    presence.reset()
    assert presence.last_seen_ms is None


def test_single_shot_timer_fires_once() -> None:
    clock = FakeClock()
    scheduler = Scheduler(clock)
    fired: list[str] = []
    scheduler.start("once", 1500, lambda: fired.append("once"), single_shot=True)

    clock.now_ms += 1499
    assert scheduler.run_due() == 0
    clock.now_ms += 1
    assert scheduler.run_due() == 1
    clock.now_ms += 5000
    assert scheduler.run_due() == 0
    assert fired == ["once"]
    assert scheduler.is_active("once") is False


def test_repeating_timer_and_interval_change() -> None:
    clock = FakeClock()
    scheduler = Scheduler(clock)
    fired: list[int] = []
    scheduler.start("poll", 10000, lambda: fired.append(clock.now_ms))

    clock.now_ms += 10000
    scheduler.run_due()
    scheduler.set_interval("poll", 5000)
    assert scheduler.interval_ms("poll") == 5000
    assert scheduler.next_due_ms() == clock.now_ms + 5000

    clock.now_ms += 5000
    scheduler.run_due()
    assert len(fired) == 2


def test_callback_can_stop_other_timers() -> None:
    clock = FakeClock()
    scheduler = Scheduler(clock)
    fired: list[str] = []

    def first() -> None:
        fired.append("first")
        scheduler.stop("second")

    scheduler.start("first", 100, first)
    scheduler.start("second", 200, lambda: fired.append("second"))
    clock.now_ms += 500
    scheduler.run_due()
    assert fired == ["first"]


def test_stop_all_clears_deadlines() -> None:
    scheduler = Scheduler(FakeClock())
    scheduler.start("a", 100, lambda: None)
    scheduler.stop_all()
    assert scheduler.next_due_ms() is None
