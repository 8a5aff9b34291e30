from __future__ import annotations

import struct
from collections.abc import Callable

import pytest

from eiscpctl.core.codec import decode_lines
from eiscpctl.core.errors import TransportError

DEFAULT_REPLIES = {
    "PWRQSTN": "PWR01",
    "AMTQSTN": "AMT00",
    "MVLQSTN": "MVL50",
    "SLIQSTN": "SLI23",
}


def receiver_frame(line: str) -> bytes:
    """Frame a reply the way receivers send it: !1 prefix, EOF, CR LF."""
    payload = b"!1" + line.encode("ascii") + b"\x1a\r\n"
    return b"ISCP" + struct.pack(">II", 16, len(payload)) + b"\x01\x00\x00\x00" + payload


class FakeClock:
    def __init__(self, now_ms: int = 1_000_000) -> None:
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms


class FakeReceiverTransport:
    def __init__(self, replies: dict[str, str] | None = None) -> None:
        self.replies = dict(DEFAULT_REPLIES if replies is None else replies)
        self.error: TransportError | None = None
        self.calls: list[str] = []
        self.targets: list[tuple[str, int]] = []

    def send(
        self,
        host: str,
        port: int,
        payload: bytes,
        *,
        connect_timeout_s: float = 1.5,
        reply_timeout_s: float = 0.0,
        should_abort: Callable[[], bool] | None = None,
        on_connect: Callable[[], None] | None = None,
    ) -> bytes:
        lines = decode_lines(payload, binary=payload.startswith(b"ISCP"))
        self.calls.append(lines[0])
        self.targets.append((host, port))
        if self.error is not None:
            raise self.error
        if on_connect is not None:
            on_connect()
        if reply_timeout_s <= 0:
            return b""
        reply = self.replies.get(lines[0])
        return receiver_frame(reply) if reply else b""


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def receiver() -> FakeReceiverTransport:
    return FakeReceiverTransport()
