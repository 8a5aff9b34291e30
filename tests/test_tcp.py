from __future__ import annotations

import socket
import threading
import time

import pytest

from eiscpctl.core.codec import decode_lines, encode_command
from eiscpctl.core.errors import TransportCancelledError, TransportConnectError
from eiscpctl.transports.tcp import TCPTransport


def _serve_once(reply: bytes | None) -> tuple[int, list[bytes], threading.Thread]:
    server = socket.create_server(("127.0.0.1", 0))
    port = server.getsockname()[1]
    received: list[bytes] = []

    def run() -> None:
        try:
            conn, _ = server.accept()
            with conn:
                conn.settimeout(5.0)
                received.append(conn.recv(1024))
                if reply:
                    conn.sendall(reply)
                while conn.recv(1024):
                    pass
        except OSError:
            pass
        finally:
            server.close()

    thread = threading.Thread(target=run, daemon=True)
    thread.start()
    return port, received, thread


def _closed_port() -> int:
    probe = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    probe.bind(("127.0.0.1", 0))
    port = probe.getsockname()[1]
    probe.close()
    return port


def test_round_trip_against_loopback_server() -> None:
    reply = encode_command("PWR01")
    port, received, thread = _serve_once(reply)
    connected: list[bool] = []

    data = TCPTransport().send(
        "127.0.0.1",
        port,
        encode_command("PWRQSTN"),
        reply_timeout_s=2.0,
        on_connect=lambda: connected.append(True),
    )
    thread.join(timeout=5.0)

    assert data == reply
    assert received == [encode_command("PWRQSTN")]
    assert connected == [True]


def test_write_only_returns_empty() -> None:
    port, received, thread = _serve_once(None)
    data = TCPTransport().send("127.0.0.1", port, encode_command("PWR01"))
    thread.join(timeout=5.0)
    assert data == b""
    assert received == [encode_command("PWR01")]


def test_refused_connection_raises_connect_error() -> None:
    with pytest.raises(TransportConnectError):
        TCPTransport().send("127.0.0.1", _closed_port(), encode_command("PWRQSTN"))


def test_abort_during_reply_wait() -> None:
    port, _, thread = _serve_once(None)
    state = {"abort": False}

    with pytest.raises(TransportCancelledError):
        TCPTransport().send(
            "127.0.0.1",
            port,
            encode_command("PWRQSTN"),
            reply_timeout_s=5.0,
            should_abort=lambda: state["abort"],
            on_connect=lambda: state.update(abort=True),
        )
    thread.join(timeout=5.0)


def test_abort_before_connect() -> None:
    with pytest.raises(TransportCancelledError):
        TCPTransport().send("127.0.0.1", 9, b"", should_abort=lambda: True)


def _serve_stream(frame: bytes, stop: threading.Event) -> tuple[int, threading.Thread]:
    server = socket.create_server(("127.0.0.1", 0))
    port = server.getsockname()[1]

    def run() -> None:
        try:
            conn, _ = server.accept()
            with conn:
                conn.recv(1024)
                while not stop.is_set():
                    conn.sendall(frame)
                    time.sleep(0.02)
        except OSError:
            pass
        finally:
            server.close()

    thread = threading.Thread(target=run, daemon=True)
    thread.start()
    return port, thread


def test_reply_read_is_bounded_while_receiver_keeps_sending() -> None:
    stop = threading.Event()
    port, thread = _serve_stream(encode_command("MVL20"), stop)
    try:
        begin = time.monotonic()
        data = TCPTransport().send("127.0.0.1", port, encode_command("MVLQSTN"), reply_timeout_s=0.5)
        elapsed = time.monotonic() - begin
    finally:
        stop.set()
        thread.join(timeout=5.0)

    assert elapsed < 1.5
    assert decode_lines(data, binary=True)[0] == "MVL20"


def test_abort_while_receiver_keeps_sending() -> None:
    stop = threading.Event()
    port, thread = _serve_stream(encode_command("MVL20"), stop)
    abort_at = time.monotonic() + 0.3
    try:
        begin = time.monotonic()
        with pytest.raises(TransportCancelledError):
            TCPTransport().send(
                "127.0.0.1",
                port,
                encode_command("MVLQSTN"),
                reply_timeout_s=5.0,
                should_abort=lambda: time.monotonic() >= abort_at,
            )
        elapsed = time.monotonic() - begin
    finally:
        stop.set()
        thread.join(timeout=5.0)

    assert elapsed < 1.5
