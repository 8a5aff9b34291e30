"""eISCP frame encoding and tolerant stream decoding."""

from __future__ import annotations

import struct
from collections.abc import Iterator

from eiscpctl.core.model import WireCommand

MAGIC = b"ISCP"
HEADER_SIZE = 16
PROTOCOL_VERSION = 1
UNIT_PREFIX = b"!1"
CR = b"\r"
CRLF = b"\r\n"

_HEADER = struct.Struct(">4sIIB3x")
_LENGTHS = struct.Struct(">II")


def encode_command(
    command: WireCommand | str,
    *,
    terminator: bytes = CR,
    binary: bool = True,
) -> bytes:
    if terminator not in (CR, CRLF):
        raise ValueError(f"Unsupported line terminator {terminator!r}")
    text = command.text if isinstance(command, WireCommand) else command
    payload = UNIT_PREFIX + text.encode("ascii") + terminator
    if not binary:
        return payload
    return _HEADER.pack(MAGIC, HEADER_SIZE, len(payload), PROTOCOL_VERSION) + payload


def iter_payloads(buffer: bytes, *, binary: bool = True) -> Iterator[bytes]:
    """Yield the payload of every complete frame in ``buffer``.

    Garbage before a magic marker is skipped. A truncated trailing frame ends
    iteration quietly; the caller keeps its buffer and retries with more bytes.
    """
    if not buffer:
        return
    if not binary:
        yield bytes(buffer)
        return

    offset = 0
    while offset + HEADER_SIZE <= len(buffer):
        start = buffer.find(MAGIC, offset)
        if start < 0 or start + HEADER_SIZE > len(buffer):
            return
        header_size, data_size = _LENGTHS.unpack_from(buffer, start + len(MAGIC))
        if header_size < HEADER_SIZE:
            # Not a real header; resume scanning after this marker.
            offset = start + len(MAGIC)
            continue
        end = start + header_size + data_size
        if end > len(buffer):
            return
        yield bytes(buffer[start + header_size:end])
        offset = end


def _sanitize(line: bytes) -> bytes:
    line = line.strip()
    while line and (line[-1] < 0x20 or line[-1] == 0x7F):
        line = line[:-1]
    return line


def split_lines(payload: bytes) -> list[str]:
    lines: list[str] = []
    for part in payload.split(CR):
        line = _sanitize(part)
        if line.startswith(UNIT_PREFIX):
            line = _sanitize(line[len(UNIT_PREFIX):])
        if line:
            lines.append(line.decode("latin-1"))
    return lines


def decode_lines(buffer: bytes, *, binary: bool = True) -> list[str]:
    lines: list[str] = []
    for payload in iter_payloads(buffer, binary=binary):
        lines.extend(split_lines(payload))
    return lines
