"""Translation between channel writes and ISCP command lines."""

from __future__ import annotations

import logging
import math
import re
from typing import Any

from eiscpctl.core.errors import InvalidArgumentError, NotSupportedError
from eiscpctl.core.inputs import InputLabelMap, normalize_input_code
from eiscpctl.core.model import (
    CHANNEL_INPUT,
    CHANNEL_MUTE,
    CHANNEL_POWER,
    CHANNEL_VOLUME,
    ChannelUpdate,
    WireCommand,
)

MNEMONIC_POWER = "PWR"
MNEMONIC_MUTE = "AMT"
MNEMONIC_VOLUME = "MVL"
MNEMONIC_INPUT = "SLI"
QUERY = "QSTN"

STATE_QUERIES = (
    WireCommand(MNEMONIC_POWER, QUERY),
    WireCommand(MNEMONIC_MUTE, QUERY),
    WireCommand(MNEMONIC_VOLUME, QUERY),
    WireCommand(MNEMONIC_INPUT, QUERY),
)

_FALSE_STRINGS = {"", "0", "false", "off", "no"}
_HEX_RE = re.compile(r"^[0-9A-Fa-f]+$")
_INPUT_CODE_RE = re.compile(r"[0-9A-Z]{2}")
LOGGER = logging.getLogger(__name__)


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in _FALSE_STRINGS
    return bool(value)


def _to_float(value: Any) -> float | None:
    if isinstance(value, str):
        value = value.strip()
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _switch(mnemonic: str, on: bool) -> WireCommand:
    return WireCommand(mnemonic, "01" if on else "00")


class CommandTranslator:
    """Maps channel values to wire commands and wire lines to channel updates."""

    def __init__(self, *, volume_max_raw: int = 160, labels: InputLabelMap | None = None) -> None:
        self.volume_max_raw = volume_max_raw
        self.labels = labels or InputLabelMap()
        self.last_input_code: str | None = None

    def percent_to_raw(self, percent: float) -> int:
        clamped = min(max(percent, 0.0), 100.0)
        raw = int(math.floor(clamped / 100.0 * self.volume_max_raw + 0.5))
        return min(max(raw, 0), self.volume_max_raw)

    def raw_to_percent(self, raw: int) -> float:
        clamped = min(max(raw, 0), self.volume_max_raw)
        return clamped / self.volume_max_raw * 100.0

    def resolve_input(self, value: Any) -> str:
        text = str(value).strip() if value is not None else ""
        code = self.labels.code_for_label(text) if text else None
        if code is None and text.startswith(MNEMONIC_INPUT):
            text = text[len(MNEMONIC_INPUT):].strip()
            code = self.labels.code_for_label(text) if text else None
        if code is None:
            code = normalize_input_code(text)
        if not _INPUT_CODE_RE.fullmatch(code):
            raise InvalidArgumentError("Input expects 2-digit code (e.g. 01)")
        return code

    def translate_write(self, channel: str, value: Any) -> tuple[WireCommand, Any]:
        """Return the wire command for a channel write and the value it settles on."""
        if channel == CHANNEL_POWER:
            on = _to_bool(value)
            return _switch(MNEMONIC_POWER, on), on
        if channel == CHANNEL_MUTE:
            muted = _to_bool(value)
            return _switch(MNEMONIC_MUTE, muted), muted
        if channel == CHANNEL_VOLUME:
            requested = _to_float(value)
            if requested is None:
                raise InvalidArgumentError("Volume must be numeric")
            clamped = min(max(requested, 0.0), 100.0)
            return WireCommand(MNEMONIC_VOLUME, f"{self.percent_to_raw(clamped):02X}"), clamped
        if channel == CHANNEL_INPUT:
            code = self.resolve_input(value)
            return WireCommand(MNEMONIC_INPUT, code), code
        raise NotSupportedError(f"Channel '{channel}' not supported")

    def translate_line(self, line: str) -> ChannelUpdate | None:
        mnemonic, value = line[:3], line[3:]
        if mnemonic == MNEMONIC_POWER:
            LOGGER.info("Parsed PWR: %s", value)
            if value in ("00", "01"):
                return ChannelUpdate(CHANNEL_POWER, value == "01")
            return None
        if mnemonic == MNEMONIC_MUTE:
            if value in ("00", "01"):
                return ChannelUpdate(CHANNEL_MUTE, value == "01")
            return None
        if mnemonic == MNEMONIC_VOLUME:
            if not _HEX_RE.match(value):
                LOGGER.debug("Ignoring volume value %r", value)
                return None
            return ChannelUpdate(CHANNEL_VOLUME, self.raw_to_percent(int(value, 16)))
        if mnemonic == MNEMONIC_INPUT:
            if not value:
                return None
            self.last_input_code = value
            return ChannelUpdate(CHANNEL_INPUT, value)
        LOGGER.debug("Ignoring unhandled line %r", line)
        return None
