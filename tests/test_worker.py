from __future__ import annotations

import threading
import time

import pytest

from eiscpctl.core.adapter import ReceiverAdapter
from eiscpctl.core.config import build_config
from eiscpctl.core.model import DeviceSnapshot
from eiscpctl.core.worker import AdapterWorker


def _worker(receiver, **settings) -> AdapterWorker:
    adapter = ReceiverAdapter(build_config(settings).config, transport=receiver)
    return AdapterWorker(adapter)


def test_jobs_run_on_worker_thread(receiver) -> None:
    worker = _worker(receiver)
    worker.start().result(timeout=5.0)
    try:
        name = worker.submit(lambda: threading.current_thread().name).result(timeout=5.0)
        assert name == "eiscpctl-worker"
        events = worker.submit(worker.adapter.drain_events).result(timeout=5.0)
        assert any(isinstance(event, DeviceSnapshot) for event in events)
    finally:
        worker.stop()
    assert worker.running is False
    assert worker.adapter.is_stopping() is True


def test_job_exceptions_reach_the_caller(receiver) -> None:
    worker = _worker(receiver)
    worker.start().result(timeout=5.0)
    try:
        future = worker.submit(int, "not a number")
        with pytest.raises(ValueError):
            future.result(timeout=5.0)
    finally:
        worker.stop()


def test_stop_cancels_a_blocked_job(receiver) -> None:
    worker = _worker(receiver)
    worker.start().result(timeout=5.0)
    started = threading.Event()

    def slow_io() -> str:
        started.set()
        deadline = time.monotonic() + 5.0
        while not worker.adapter.is_stopping() and time.monotonic() < deadline:
            time.sleep(0.01)
        return "aborted" if worker.adapter.is_stopping() else "timed out"

    blocked = worker.submit(slow_io)
    assert started.wait(timeout=5.0)
    begin = time.monotonic()
    worker.stop()
    assert blocked.result(timeout=1.0) == "aborted"
    assert time.monotonic() - begin < 2.0


def test_submit_after_stop_is_rejected(receiver) -> None:
    worker = _worker(receiver)
    worker.start().result(timeout=5.0)
    worker.stop()
    with pytest.raises(RuntimeError):
        worker.submit(lambda: None)


def test_initial_refresh_runs_on_timer(receiver) -> None:
    worker = _worker(receiver, host="192.0.2.10")
    worker.start().result(timeout=5.0)
    try:
        deadline = time.monotonic() + 5.0
        while len(receiver.calls) < 4 and time.monotonic() < deadline:
            time.sleep(0.05)
        assert receiver.calls[:4] == ["PWRQSTN", "AMTQSTN", "MVLQSTN", "SLIQSTN"]
    finally:
        worker.stop()
