"""Single-thread worker that serializes adapter calls and timer callbacks."""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable
from concurrent.futures import Future
from typing import Any

from eiscpctl.core.adapter import ReceiverAdapter

IDLE_WAIT_S = 0.5
LOGGER = logging.getLogger(__name__)

_Job = tuple[Future, Callable[..., Any], tuple[Any, ...], dict[str, Any]]


class AdapterWorker:
    """Owns the adapter's only execution context.

    Host requests are queued with ``submit`` and run between timer callbacks,
    so no two transactions ever overlap.
    """

    def __init__(self, adapter: ReceiverAdapter, *, name: str = "eiscpctl-worker") -> None:
        self.adapter = adapter
        self._jobs: queue.Queue[_Job | None] = queue.Queue()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._closed = threading.Event()

    @property
    def running(self) -> bool:
        return self._thread.is_alive()

    def start(self) -> Future:
        self._thread.start()
        return self.submit(self.adapter.start)

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        if self._closed.is_set():
            raise RuntimeError("Worker is stopped")
        future: Future = Future()
        self._jobs.put((future, fn, args, kwargs))
        return future

    def stop(self, timeout: float = 5.0) -> None:
        if self._closed.is_set():
            return
        # Abort in-flight I/O right away instead of waiting for its turn.
        self.adapter.request_abort()
        stopped = self.submit(self.adapter.stop)
        self._closed.set()
        self._jobs.put(None)
        if self._thread.is_alive():
            stopped.result(timeout=timeout)
            self._thread.join(timeout=timeout)

    def _next_wait_s(self) -> float:
        due_ms = self.adapter.scheduler.next_due_ms()
        if due_ms is None:
            return IDLE_WAIT_S
        now_ms = self.adapter.scheduler.now_ms()
        return min(max((due_ms - now_ms) / 1000.0, 0.0), IDLE_WAIT_S)

    def _run(self) -> None:
        while True:
            try:
                job = self._jobs.get(timeout=self._next_wait_s())
            except queue.Empty:
                job = ()
            if job is None:
                return
            if job:
                self._run_job(*job)
            if self._closed.is_set():
                continue
            try:
                self.adapter.scheduler.run_due()
            except Exception:
                LOGGER.exception("Timer callback failed")

    def _run_job(
        self,
        future: Future,
        fn: Callable[..., Any],
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
    ) -> None:
        if not future.set_running_or_notify_cancel():
            return
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as exc:
            future.set_exception(exc)
