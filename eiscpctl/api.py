"""Stable public API for building tooling on top of eiscpctl.

This module is the supported integration surface for third-party callers.
Avoid importing from private/internal modules unless intentionally depending on
non-stable internals.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from eiscpctl.core.adapter import ACTION_PROBE, ACTION_PROBE_CURRENT_INPUT, ReceiverAdapter
from eiscpctl.core.config import AdapterConfig, LoadedConfig, build_config, load_config
from eiscpctl.core.errors import (
    ConfigLoadError,
    ConfigValidationError,
    EiscpctlError,
    InvalidArgumentError,
    NotSupportedError,
    ProtocolError,
    SessionUnavailableError,
    TransportCancelledError,
    TransportConnectError,
    TransportError,
    TransportSendError,
    TransportTimeoutError,
)
from eiscpctl.core.model import (
    ActionResponse,
    AdapterEvent,
    ChannelStateUpdated,
    CmdResponse,
    CmdStatus,
    ConfigPatch,
    WireCommand,
)
from eiscpctl.core.worker import AdapterWorker
from eiscpctl.transports.base import Transport

__all__ = [
    "EiscpctlError",
    "ConfigLoadError",
    "ConfigValidationError",
    "InvalidArgumentError",
    "NotSupportedError",
    "ProtocolError",
    "TransportError",
    "SessionUnavailableError",
    "TransportConnectError",
    "TransportSendError",
    "TransportTimeoutError",
    "TransportCancelledError",
    "ActionResponse",
    "AdapterConfig",
    "AdapterEvent",
    "AdapterWorker",
    "CmdResponse",
    "CmdStatus",
    "LoadedConfig",
    "ReceiverAdapter",
    "WireCommand",
    "build_config",
    "load_config",
    "Client",
]


class Client:
    """Synchronous client for one receiver.

    Each call runs to completion on the calling thread; use ``AdapterWorker``
    instead when the poll and heartbeat timers should run in the background.
    """

    def __init__(
        self,
        config: AdapterConfig | dict[str, Any] | None = None,
        *,
        transport: Transport | None = None,
    ) -> None:
        if isinstance(config, dict):
            config = build_config(config).config
        self._adapter = ReceiverAdapter(config, transport=transport)

    @classmethod
    def from_file(cls, path: Path | None = None, *, transport: Transport | None = None) -> Client:
        return cls(load_config(path).config, transport=transport)

    @property
    def adapter(self) -> ReceiverAdapter:
        return self._adapter

    @property
    def connected(self) -> bool:
        return self._adapter.connected

    def input_labels(self) -> dict[str, str]:
        return dict(self._adapter.translator.labels.choices())

    def refresh(self) -> dict[str, Any]:
        """Query the receiver and return the latest known channel values."""
        self._adapter.refresh()
        return dict(self._adapter.channel_values)

    def set_channel(self, channel: str, value: Any) -> CmdResponse:
        return self._adapter.update_channel_state(self._adapter.device_id, channel, value)

    def probe_current_input(self) -> tuple[ActionResponse, ConfigPatch | None]:
        response = self._adapter.invoke_action(ACTION_PROBE_CURRENT_INPUT)
        patches = [event for event in self.drain_events() if isinstance(event, ConfigPatch)]
        return response, patches[-1] if patches else None

    def test_connection(self) -> ActionResponse:
        return self._adapter.invoke_action(ACTION_PROBE)

    def drain_events(self) -> list[AdapterEvent]:
        return self._adapter.drain_events()

    def channel_updates(self) -> list[ChannelStateUpdated]:
        return [event for event in self.drain_events() if isinstance(event, ChannelStateUpdated)]
