"""Core data models shared by the codec, translator, adapter, and CLI."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

CHANNEL_POWER = "power"
CHANNEL_VOLUME = "volume"
CHANNEL_MUTE = "mute"
CHANNEL_INPUT = "input"
CHANNEL_CONNECTIVITY = "connectivity"

CONNECTIVITY_CONNECTED = "connected"
CONNECTIVITY_DISCONNECTED = "disconnected"


class CmdStatus(str, Enum):
    SUCCESS = "Success"
    INVALID_ARGUMENT = "InvalidArgument"
    NOT_SUPPORTED = "NotSupported"
    TEMPORARILY_OFFLINE = "TemporarilyOffline"
    FAILURE = "Failure"


@dataclass(frozen=True)
class WireCommand:
    """A 3-letter ISCP mnemonic plus its parameter string, e.g. PWR + 01."""

    mnemonic: str
    params: str

    @property
    def text(self) -> str:
        return f"{self.mnemonic}{self.params}"

    def __str__(self) -> str:
        return self.text


@dataclass(frozen=True)
class ChannelUpdate:
    channel: str
    value: bool | float | str


@dataclass(frozen=True)
class ChannelChoice:
    value: str
    label: str


@dataclass(frozen=True)
class Channel:
    id: str
    name: str
    kind: str
    data_type: str
    writable: bool = True
    min_value: float | None = None
    max_value: float | None = None
    step_value: float | None = None
    choices: tuple[ChannelChoice, ...] = ()


@dataclass(frozen=True)
class Device:
    id: str
    name: str
    manufacturer: str
    model: str
    device_class: str = "media_player"
    meta: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CmdResponse:
    cmd_id: int | None
    status: CmdStatus
    ts_ms: int
    final_value: Any = None
    error: str | None = None


@dataclass(frozen=True)
class ActionResponse:
    cmd_id: int | None
    status: CmdStatus
    ts_ms: int
    result: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class DeviceSnapshot:
    device: Device
    channels: tuple[Channel, ...]


@dataclass(frozen=True)
class ChannelDefinitionUpdated:
    device_id: str
    channel: Channel


@dataclass(frozen=True)
class ChannelStateUpdated:
    device_id: str
    channel: str
    value: Any
    ts_ms: int


@dataclass(frozen=True)
class ConnectionStateChanged:
    connected: bool


@dataclass(frozen=True)
class FullSyncCompleted:
    pass


@dataclass(frozen=True)
class CommandResult:
    response: CmdResponse


@dataclass(frozen=True)
class ActionResult:
    response: ActionResponse


@dataclass(frozen=True)
class ConfigPatch:
    """Configuration changes the host should persist in its config store."""

    values: dict[str, Any]


AdapterEvent = Union[
    DeviceSnapshot,
    ChannelDefinitionUpdated,
    ChannelStateUpdated,
    ConnectionStateChanged,
    FullSyncCompleted,
    CommandResult,
    ActionResult,
    ConfigPatch,
]
