"""Transport interfaces."""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol


class Transport(Protocol):
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
        """Open a connection, write payload, collect any reply, and close."""
