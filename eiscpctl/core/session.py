"""Per-transaction command execution with back-off gating."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from eiscpctl.core.codec import CR, CRLF, decode_lines, encode_command
from eiscpctl.core.config import AdapterConfig
from eiscpctl.core.errors import (
    SessionUnavailableError,
    TransportCancelledError,
    TransportError,
)
from eiscpctl.core.model import WireCommand
from eiscpctl.transports.base import Transport

CONNECT_TIMEOUT_S = 1.5
LOGGER = logging.getLogger(__name__)


@dataclass
class AttemptLog:
    """Connect attempt bookkeeping used for back-off and warning suppression."""

    last_attempt_ms: int | None = None
    last_failure_key: tuple[str, str] | None = None
    last_failure_log_ms: int | None = None

    def can_attempt(self, now_ms: int, retry_interval_ms: int) -> bool:
        if self.last_attempt_ms is None:
            return True
        return now_ms - self.last_attempt_ms >= retry_interval_ms

    def mark_attempt(self, now_ms: int) -> None:
        self.last_attempt_ms = now_ms

    def should_log_failure(self, message: str, host: str, now_ms: int, retry_interval_ms: int) -> bool:
        key = (message, host)
        if (
            key == self.last_failure_key
            and self.last_failure_log_ms is not None
            and now_ms - self.last_failure_log_ms < retry_interval_ms
        ):
            return False
        self.last_failure_key = key
        self.last_failure_log_ms = now_ms
        return True

    def reset(self) -> None:
        self.last_attempt_ms = None
        self.last_failure_key = None
        self.last_failure_log_ms = None


class TransportSession:
    """Runs one wire command as a self-contained TCP transaction.

    No socket outlives ``execute``. A reachable receiver is reported through
    ``on_reachable`` as soon as the connection opens; decoded reply lines are
    handed to ``on_line`` one at a time.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        clock_ms: Callable[[], int],
        should_abort: Callable[[], bool],
        is_connected: Callable[[], bool],
        on_reachable: Callable[[], None],
        on_line: Callable[[str], None],
    ) -> None:
        self.transport = transport
        self.config = AdapterConfig()
        self.attempts = AttemptLog()
        self._clock_ms = clock_ms
        self._should_abort = should_abort
        self._is_connected = is_connected
        self._on_reachable = on_reachable
        self._on_line = on_line

    def configure(self, config: AdapterConfig) -> None:
        self.config = config

    def encode(self, command: WireCommand) -> bytes:
        return encode_command(
            command,
            terminator=CRLF if self.config.use_crlf else CR,
            binary=self.config.use_eiscp,
        )

    def execute(
        self,
        command: WireCommand,
        *,
        expect_reply: bool = False,
        reply_timeout_ms: int = 0,
    ) -> None:
        """Send ``command``; raise a TransportError subclass on failure."""
        config = self.config
        if not config.is_addressable:
            raise SessionUnavailableError("Receiver host is not configured")
        if self._should_abort():
            raise SessionUnavailableError("Adapter is stopping")
        now_ms = self._clock_ms()
        if not self._is_connected() and not self.attempts.can_attempt(now_ms, config.retry_interval_ms):
            raise SessionUnavailableError("Waiting for retry interval")

        self.attempts.mark_attempt(now_ms)
        reply_timeout_s = reply_timeout_ms / 1000.0 if expect_reply else 0.0
        LOGGER.debug("Sending %s to %s:%s", command, config.host, config.port)
        try:
            data = self.transport.send(
                config.host,
                config.port,
                self.encode(command),
                connect_timeout_s=CONNECT_TIMEOUT_S,
                reply_timeout_s=reply_timeout_s,
                should_abort=self._should_abort,
                on_connect=self._on_reachable,
            )
        except TransportCancelledError:
            raise
        except TransportError as exc:
            self._log_failure(str(exc), config)
            raise

        for line in decode_lines(data, binary=config.use_eiscp):
            LOGGER.debug("Received %r", line)
            self._on_line(line)

    def _log_failure(self, message: str, config: AdapterConfig) -> None:
        if self.attempts.should_log_failure(message, config.host, self._clock_ms(), config.retry_interval_ms):
            LOGGER.warning(
                "Receiver connect failed: %s host %s port %s", message, config.host, config.port
            )
