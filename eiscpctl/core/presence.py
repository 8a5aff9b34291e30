"""Presence tracking: connected while the receiver keeps being seen."""

from __future__ import annotations

from dataclasses import dataclass

HEARTBEAT_INTERVAL_MS = 2000


@dataclass
class PresenceTracker:
    """Connectivity derived from the time since the receiver was last seen.

    Only ``check`` can move the state back to disconnected, and only after
    ``timeout_ms`` of silence; failed transactions never touch it.
    """

    timeout_ms: int
    connected: bool = False
    last_seen_ms: int | None = None

    def mark_seen(self, now_ms: int) -> bool:
        """Record contact; return True when this flips the state to connected."""
        self.last_seen_ms = now_ms
        if self.connected:
            return False
        self.connected = True
        return True

    def check(self, now_ms: int) -> bool:
        """Return True when silence past the timeout flips the state to disconnected."""
        if self.last_seen_ms is None or not self.connected:
            return False
        if now_ms - self.last_seen_ms <= self.timeout_ms:
            return False
        self.connected = False
        return True

    def force_disconnected(self) -> bool:
        was_connected = self.connected
        self.connected = False
        return was_connected

    def reset(self) -> None:
        self.connected = False
        self.last_seen_ms = None

    def driver_interval_ms(self, poll_interval_ms: int, retry_interval_ms: int) -> int:
        return poll_interval_ms if self.connected else retry_interval_ms
