"""Receiver adapter: the host-facing service that ties codec, session, and presence together."""

from __future__ import annotations

import logging
import queue
import re
import threading
import time
from collections.abc import Callable, Mapping
from typing import Any

from eiscpctl.core.codec import decode_lines
from eiscpctl.core.config import AdapterConfig
from eiscpctl.core.errors import (
    InvalidArgumentError,
    NotSupportedError,
    TransportError,
)
from eiscpctl.core.inputs import LABEL_KEY_PREFIX, build_input_labels, fallback_label
from eiscpctl.core.model import (
    CHANNEL_CONNECTIVITY,
    CHANNEL_INPUT,
    CHANNEL_MUTE,
    CHANNEL_POWER,
    CHANNEL_VOLUME,
    CONNECTIVITY_CONNECTED,
    CONNECTIVITY_DISCONNECTED,
    ActionResponse,
    ActionResult,
    AdapterEvent,
    Channel,
    ChannelChoice,
    ChannelDefinitionUpdated,
    ChannelStateUpdated,
    CmdResponse,
    CmdStatus,
    CommandResult,
    ConfigPatch,
    ConnectionStateChanged,
    Device,
    DeviceSnapshot,
    FullSyncCompleted,
    WireCommand,
)
from eiscpctl.core.presence import HEARTBEAT_INTERVAL_MS, PresenceTracker
from eiscpctl.core.scheduler import Scheduler
from eiscpctl.core.session import CONNECT_TIMEOUT_S, TransportSession
from eiscpctl.core.translator import MNEMONIC_INPUT, MNEMONIC_POWER, QUERY, STATE_QUERIES, CommandTranslator
from eiscpctl.transports.base import Transport
from eiscpctl.transports.tcp import TCPTransport

ACTION_PROBE_CURRENT_INPUT = "probeCurrentInput"
ACTION_PROBE = "probe"

TIMER_HEARTBEAT = "heartbeat"
TIMER_POLL = "poll"
TIMER_INITIAL_QUERY = "initial-query"

INITIAL_QUERY_DELAY_MS = 1500
QUERY_REPLY_TIMEOUT_MS = 800
PROBE_REPLY_TIMEOUT_MS = 1500

DEFAULT_DEVICE_ID = "onkyo-pioneer"
DEFAULT_MANUFACTURER = "Onkyo & Pioneer"

_MODEL_RE = re.compile(r"^(?:Pioneer|Onkyo)[-_ ]?(.+?)(?:-[0-9A-F]{4,12})?$", re.IGNORECASE)
_DIGIT_RE = re.compile(r"\d")
LOGGER = logging.getLogger(__name__)


def _monotonic_ms() -> int:
    return int(time.monotonic() * 1000)


def _wall_ms() -> int:
    return int(time.time() * 1000)


def infer_model(identifier: str) -> str:
    """Guess a model name from an mDNS-style identifier such as ``Onkyo-TX-NR686-1A2B3C.local``."""
    trimmed = identifier.strip()
    if not trimmed:
        return ""
    port_index = trimmed.rfind(":")
    if port_index > 0:
        trimmed = trimmed[:port_index]
    if trimmed.lower().endswith(".local"):
        trimmed = trimmed[:-6]
    match = _MODEL_RE.match(trimmed)
    if match:
        model = match.group(1).strip()
        if model and _DIGIT_RE.search(model):
            return model
    return ""


class ReceiverAdapter:
    """Adapter for a single Onkyo/Pioneer receiver.

    All methods must be called from one execution context (see
    ``eiscpctl.core.worker.AdapterWorker``); only ``request_abort`` is safe to
    call from another thread. Results are returned to the caller and every
    outward notification is also put on ``events``.
    """

    def __init__(
        self,
        config: AdapterConfig | None = None,
        *,
        transport: Transport | None = None,
        clock_ms: Callable[[], int] | None = None,
        events: queue.Queue[AdapterEvent] | None = None,
    ) -> None:
        self.config = config or AdapterConfig()
        self.events: queue.Queue[AdapterEvent] = events if events is not None else queue.Queue()
        self._clock_ms = clock_ms or _monotonic_ms
        self._abort = threading.Event()
        self.scheduler = Scheduler(self._clock_ms)
        self.presence = PresenceTracker(timeout_ms=self.config.presence_timeout_ms)
        self.translator = CommandTranslator()
        self.session = TransportSession(
            transport or TCPTransport(),
            clock_ms=self._clock_ms,
            should_abort=self.is_stopping,
            is_connected=lambda: self.presence.connected,
            on_reachable=self._mark_seen,
            on_line=self._handle_line,
        )
        self.device_id = ""
        self.synced = False
        self.channel_values: dict[str, Any] = {}
        self._apply_config(self.config)

    @property
    def connected(self) -> bool:
        return self.presence.connected

    def is_stopping(self) -> bool:
        return self._abort.is_set()

    def request_abort(self) -> None:
        self._abort.set()

    def start(self) -> None:
        self._abort.clear()
        self._apply_config(self.config)
        config = self.config
        LOGGER.info(
            "Starting receiver adapter %s host %s port %s eISCP %s CRLF %s initialDelayMs %s "
            "presenceTimeoutMs %s pollIntervalMs %s volumeMaxRaw %s",
            self.device_id,
            config.host,
            config.port,
            config.use_eiscp,
            config.use_crlf,
            INITIAL_QUERY_DELAY_MS,
            config.presence_timeout_ms,
            config.poll_interval_ms,
            config.volume_max_raw,
        )
        if not config.is_addressable:
            LOGGER.warning("Receiver host not configured; staying disconnected")

        self.synced = False
        self.presence.reset()
        self.session.attempts.reset()
        self.scheduler.start(TIMER_HEARTBEAT, HEARTBEAT_INTERVAL_MS, self.heartbeat)
        self._emit_snapshot()
        self.scheduler.start(TIMER_INITIAL_QUERY, INITIAL_QUERY_DELAY_MS, self.refresh, single_shot=True)
        if config.poll_interval_ms > 0:
            self.scheduler.start(TIMER_POLL, self._driver_interval_ms(), self.refresh)

    def stop(self) -> None:
        LOGGER.info("Stopping receiver adapter %s", self.device_id)
        self._abort.set()
        self.synced = False
        self.scheduler.stop_all()
        if self.presence.force_disconnected():
            self._on_connection_changed(False)

    def request_full_sync(self) -> None:
        if self.synced:
            return
        self._emit_snapshot()
        self.refresh()

    def config_updated(self, config: AdapterConfig) -> None:
        self._apply_config(config)
        if self.synced and self.device_id:
            self._emit(ChannelDefinitionUpdated(device_id=self.device_id, channel=self.build_input_channel()))
        else:
            self._emit_snapshot()
        self.refresh()

    def refresh(self) -> None:
        """Query power, mute, volume and input; each query succeeds or fails on its own."""
        if self.is_stopping() or not self.config.is_addressable:
            return
        for command in STATE_QUERIES:
            if self.is_stopping():
                return
            try:
                self.session.execute(command, expect_reply=True, reply_timeout_ms=QUERY_REPLY_TIMEOUT_MS)
            except TransportError as exc:
                LOGGER.debug("Query %s failed: %s", command, exc)

    def heartbeat(self) -> None:
        if self.presence.check(self._clock_ms()):
            self._on_connection_changed(False)

    def update_channel_state(
        self,
        device_id: str,
        channel: str,
        value: Any,
        cmd_id: int | None = None,
    ) -> CmdResponse:
        if device_id != self.device_id:
            return self._command_result(cmd_id, CmdStatus.NOT_SUPPORTED, error="Unknown device")
        try:
            command, final_value = self.translator.translate_write(channel, value)
        except InvalidArgumentError as exc:
            return self._command_result(cmd_id, CmdStatus.INVALID_ARGUMENT, error=str(exc))
        except NotSupportedError as exc:
            return self._command_result(cmd_id, CmdStatus.NOT_SUPPORTED, error=str(exc))

        try:
            self.session.execute(command)
        except TransportError as exc:
            LOGGER.debug("Write %s failed: %s", command, exc)
            return self._command_result(cmd_id, CmdStatus.TEMPORARILY_OFFLINE, error="Receiver unavailable")
        return self._command_result(cmd_id, CmdStatus.SUCCESS, final_value=final_value)

    def invoke_action(
        self,
        action_id: str,
        params: Mapping[str, Any] | None = None,
        cmd_id: int | None = None,
    ) -> ActionResponse:
        if action_id == ACTION_PROBE_CURRENT_INPUT:
            response = self._probe_current_input(cmd_id)
        elif action_id == ACTION_PROBE:
            response = self._probe_connection(cmd_id)
        else:
            response = ActionResponse(
                cmd_id=cmd_id,
                status=CmdStatus.NOT_SUPPORTED,
                ts_ms=_wall_ms(),
                error="Adapter action not supported",
            )
        self._emit(ActionResult(response=response))
        return response

    def build_input_channel(self) -> Channel:
        choices = tuple(
            ChannelChoice(value=code, label=label) for code, label in self.translator.labels.choices()
        )
        return Channel(id=CHANNEL_INPUT, name="Input", kind="hdmi_input", data_type="string", choices=choices)

    def build_device(self) -> Device:
        config = self.config
        name = config.name or config.meta_str("deviceName") or config.host
        manufacturer = config.meta_str("manufacturer") or DEFAULT_MANUFACTURER
        model = config.meta_str("model")
        if not model:
            for candidate in (
                config.host,
                config.meta_str("deviceUuid"),
                config.meta_str("uuid"),
                config.meta_str("deviceName"),
                config.name,
            ):
                model = infer_model(candidate)
                if model:
                    break
        meta = {key: True for key in ("supportsSpotify", "supportsTranscoder") if config.meta.get(key) is True}
        return Device(id=self.device_id, name=name, manufacturer=manufacturer, model=model, meta=meta)

    def build_channels(self) -> tuple[Channel, ...]:
        return (
            Channel(id=CHANNEL_POWER, name="Power", kind="power_on_off", data_type="bool"),
            Channel(
                id=CHANNEL_VOLUME,
                name="Volume",
                kind="volume",
                data_type="float",
                min_value=0.0,
                max_value=100.0,
                step_value=1.0,
            ),
            Channel(id=CHANNEL_MUTE, name="Mute", kind="mute", data_type="bool"),
            self.build_input_channel(),
            Channel(
                id=CHANNEL_CONNECTIVITY,
                name="Connectivity",
                kind="connectivity_status",
                data_type="enum",
                writable=False,
            ),
        )

    def drain_events(self) -> list[AdapterEvent]:
        drained: list[AdapterEvent] = []
        while True:
            try:
                drained.append(self.events.get_nowait())
            except queue.Empty:
                return drained

    def _apply_config(self, config: AdapterConfig) -> None:
        self.config = config
        self.device_id = self._resolve_device_id()
        self.presence.timeout_ms = config.presence_timeout_ms
        self.translator.volume_max_raw = config.volume_max_raw
        self.translator.labels = build_input_labels(config.active_sli_codes, config.input_labels)
        self.session.configure(config)
        self.scheduler.set_interval(TIMER_POLL, self._driver_interval_ms())

    def _resolve_device_id(self) -> str:
        config = self.config
        return (
            config.meta_str("deviceUuid")
            or config.meta_str("uuid")
            or config.id
            or config.host
            or DEFAULT_DEVICE_ID
        )

    def _driver_interval_ms(self) -> int:
        return self.presence.driver_interval_ms(self.config.poll_interval_ms, self.config.retry_interval_ms)

    def _emit(self, event: AdapterEvent) -> None:
        self.events.put(event)

    def _emit_snapshot(self) -> None:
        if self.synced:
            return
        self._emit(DeviceSnapshot(device=self.build_device(), channels=self.build_channels()))
        self._emit(FullSyncCompleted())
        self.synced = True

    def _emit_channel_state(self, channel: str, value: Any) -> None:
        self.channel_values[channel] = value
        self._emit(ChannelStateUpdated(device_id=self.device_id, channel=channel, value=value, ts_ms=_wall_ms()))

    def _on_connection_changed(self, connected: bool) -> None:
        self.scheduler.set_interval(TIMER_POLL, self._driver_interval_ms())
        self._emit(ConnectionStateChanged(connected=connected))
        self._emit_channel_state(
            CHANNEL_CONNECTIVITY,
            CONNECTIVITY_CONNECTED if connected else CONNECTIVITY_DISCONNECTED,
        )

    def _mark_seen(self) -> None:
        if self.presence.mark_seen(self._clock_ms()):
            self._on_connection_changed(True)

    def _handle_line(self, line: str) -> None:
        update = self.translator.translate_line(line)
        if update is None:
            return
        self._emit_channel_state(update.channel, update.value)
        self._mark_seen()

    def _command_result(
        self,
        cmd_id: int | None,
        status: CmdStatus,
        *,
        final_value: Any = None,
        error: str | None = None,
    ) -> CmdResponse:
        response = CmdResponse(cmd_id=cmd_id, status=status, ts_ms=_wall_ms(), final_value=final_value, error=error)
        self._emit(CommandResult(response=response))
        return response

    def _probe_current_input(self, cmd_id: int | None) -> ActionResponse:
        before = self.translator.last_input_code
        self.translator.last_input_code = None
        offline = False
        try:
            self.session.execute(
                WireCommand(MNEMONIC_INPUT, QUERY),
                expect_reply=True,
                reply_timeout_ms=PROBE_REPLY_TIMEOUT_MS,
            )
        except TransportError as exc:
            LOGGER.debug("Input probe failed: %s", exc)
            offline = True
        observed = self.translator.last_input_code
        if observed is None:
            self.translator.last_input_code = before
        code = observed or before

        if not code:
            if offline:
                return ActionResponse(
                    cmd_id=cmd_id,
                    status=CmdStatus.TEMPORARILY_OFFLINE,
                    ts_ms=_wall_ms(),
                    error="Receiver unavailable",
                )
            return ActionResponse(cmd_id=cmd_id, status=CmdStatus.FAILURE, ts_ms=_wall_ms(), error="No input reported")

        self._emit(ConfigPatch(values=self._input_patch(code)))
        return ActionResponse(cmd_id=cmd_id, status=CmdStatus.SUCCESS, ts_ms=_wall_ms(), result=code)

    def _input_patch(self, code: str) -> dict[str, Any]:
        active = sorted(set(self.config.active_sli_codes) | {code})
        patch: dict[str, Any] = {"activeSliCodes": active}
        if not self.config.input_labels.get(code):
            patch[f"{LABEL_KEY_PREFIX}{code}"] = fallback_label(code)
        return patch

    def _probe_connection(self, cmd_id: int | None) -> ActionResponse:
        config = self.config
        if not config.host:
            return ActionResponse(
                cmd_id=cmd_id, status=CmdStatus.INVALID_ARGUMENT, ts_ms=_wall_ms(), error="Host is required"
            )
        try:
            data = self.session.transport.send(
                config.host,
                config.port,
                self.session.encode(WireCommand(MNEMONIC_POWER, QUERY)),
                connect_timeout_s=CONNECT_TIMEOUT_S,
                reply_timeout_s=PROBE_REPLY_TIMEOUT_MS / 1000.0,
                should_abort=self.is_stopping,
            )
        except TransportError as exc:
            return ActionResponse(
                cmd_id=cmd_id, status=CmdStatus.FAILURE, ts_ms=_wall_ms(), error=f"Connection failed: {exc}"
            )
        if not data:
            error = "Empty response from receiver"
        elif not any(line.startswith(MNEMONIC_POWER) for line in decode_lines(data, binary=config.use_eiscp)):
            error = "Unexpected response from receiver"
        else:
            return ActionResponse(cmd_id=cmd_id, status=CmdStatus.SUCCESS, ts_ms=_wall_ms())
        return ActionResponse(cmd_id=cmd_id, status=CmdStatus.FAILURE, ts_ms=_wall_ms(), error=error)
