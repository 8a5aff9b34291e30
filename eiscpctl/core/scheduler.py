"""Named timers driven cooperatively by the adapter's worker."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass


@dataclass
class _Timer:
    name: str
    interval_ms: int
    callback: Callable[[], None]
    due_ms: int
    single_shot: bool = False


class Scheduler:
    """Timers that fire only when ``run_due`` is called; nothing runs in the background."""

    def __init__(self, clock_ms: Callable[[], int]) -> None:
        self._clock_ms = clock_ms
        self._timers: dict[str, _Timer] = {}

    def now_ms(self) -> int:
        return self._clock_ms()

    def start(
        self,
        name: str,
        interval_ms: int,
        callback: Callable[[], None],
        *,
        single_shot: bool = False,
    ) -> None:
        self._timers[name] = _Timer(
            name=name,
            interval_ms=interval_ms,
            callback=callback,
            due_ms=self._clock_ms() + interval_ms,
            single_shot=single_shot,
        )

    def set_interval(self, name: str, interval_ms: int) -> None:
        """Change a running timer's interval; the countdown restarts only if it changed."""
        timer = self._timers.get(name)
        if timer is None or timer.interval_ms == interval_ms:
            return
        timer.interval_ms = interval_ms
        timer.due_ms = self._clock_ms() + interval_ms

    def stop(self, name: str) -> None:
        self._timers.pop(name, None)

    def stop_all(self) -> None:
        self._timers.clear()

    def is_active(self, name: str) -> bool:
        return name in self._timers

    def interval_ms(self, name: str) -> int | None:
        timer = self._timers.get(name)
        return timer.interval_ms if timer else None

    def next_due_ms(self) -> int | None:
        if not self._timers:
            return None
        return min(timer.due_ms for timer in self._timers.values())

    def run_due(self) -> int:
        """Fire every timer whose deadline has passed; return how many fired."""
        fired = 0
        now_ms = self._clock_ms()
        for timer in sorted(self._timers.values(), key=lambda t: t.due_ms):
            # An earlier callback may have stopped or rescheduled this timer.
            if self._timers.get(timer.name) is not timer or timer.due_ms > now_ms:
                continue
            if timer.single_shot:
                del self._timers[timer.name]
            else:
                timer.due_ms = now_ms + timer.interval_ms
            fired += 1
            timer.callback()
        return fired
