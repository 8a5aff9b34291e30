"""Short-lived TCP transport with bounded, cancellable waits."""

from __future__ import annotations

import errno
import logging
import os
import select
import socket
import time
from collections.abc import Callable

from eiscpctl.core.errors import (
    TransportCancelledError,
    TransportConnectError,
    TransportSendError,
    TransportTimeoutError,
)

POLL_INTERVAL_S = 0.1
DRAIN_INTERVAL_S = 0.05
CLOSE_BUDGET_S = 0.3
CLOSE_POLL_S = 0.05
_CONNECT_PENDING = {0, errno.EINPROGRESS, errno.EWOULDBLOCK, errno.EALREADY}
LOGGER = logging.getLogger(__name__)


def _never() -> bool:
    return False


class TCPTransport:
    """One connection per call: connect, write, optionally read, close."""

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
        abort = should_abort or _never
        if abort():
            raise TransportCancelledError("Transaction cancelled before connect")

        try:
            family, socktype, proto, _, address = socket.getaddrinfo(
                host, port, type=socket.SOCK_STREAM
            )[0]
        except (OSError, IndexError) as exc:
            raise TransportConnectError(f"Could not resolve {host}: {exc}") from exc

        try:
            sock = socket.socket(family, socktype, proto)
        except OSError as exc:
            raise TransportConnectError(f"Could not create TCP socket: {exc}") from exc

        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
            self._connect(sock, address, connect_timeout_s, abort)
        except BaseException:
            sock.close()
            raise

        try:
            if on_connect is not None:
                on_connect()
            try:
                sock.settimeout(connect_timeout_s)
                sock.sendall(payload)
            except OSError as exc:
                raise TransportSendError(f"TCP send to {host}:{port} failed: {exc}") from exc
            if reply_timeout_s <= 0:
                return b""
            return self._read_reply(sock, reply_timeout_s, abort)
        finally:
            self._close(sock, abort)

    def _connect(
        self,
        sock: socket.socket,
        address: tuple,
        timeout_s: float,
        abort: Callable[[], bool],
    ) -> None:
        sock.setblocking(False)
        err = sock.connect_ex(address)
        if err not in _CONNECT_PENDING:
            raise TransportConnectError(os.strerror(err))

        waited = 0.0
        while True:
            _, writable, _ = select.select([], [sock], [], POLL_INTERVAL_S)
            if writable:
                err = sock.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR)
                if err:
                    raise TransportConnectError(os.strerror(err))
                return
            waited += POLL_INTERVAL_S
            if abort():
                raise TransportCancelledError("Connect cancelled")
            if waited >= timeout_s:
                raise TransportTimeoutError(f"Connect timed out after {timeout_s:.1f}s")

    def _read_reply(self, sock: socket.socket, timeout_s: float, abort: Callable[[], bool]) -> bytes:
        data = bytearray()
        deadline = time.monotonic() + timeout_s
        interval = POLL_INTERVAL_S
        try:
            while time.monotonic() < deadline:
                if abort():
                    raise TransportCancelledError("Reply wait cancelled")
                readable, _, _ = select.select([sock], [], [], interval)
                if not readable:
                    if data:
                        break
                    continue
                chunk = sock.recv(4096)
                if not chunk:
                    break
                data.extend(chunk)
                # Drain whatever follows the first bytes, still inside the deadline.
                interval = DRAIN_INTERVAL_S
        except OSError as exc:
            raise TransportSendError(f"TCP receive failed: {exc}") from exc
        return bytes(data)

    def _close(self, sock: socket.socket, abort: Callable[[], bool]) -> None:
        try:
            sock.shutdown(socket.SHUT_WR)
            waited = 0.0
            while waited < CLOSE_BUDGET_S and not abort():
                readable, _, _ = select.select([sock], [], [], CLOSE_POLL_S)
                if readable and not sock.recv(4096):
                    break
                waited += CLOSE_POLL_S
        except OSError as exc:
            LOGGER.debug("Graceful close did not complete: %s", exc)
        finally:
            sock.close()
