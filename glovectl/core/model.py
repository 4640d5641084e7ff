"""Core data models used across the connection core, service, and CLI."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

DEFAULT_NAME_PREFIX = "BlueBuzzah"
DEFAULT_SCAN_TIMEOUT_S = 10.0
DEFAULT_CONNECT_TIMEOUT_S = 15.0


def _new_id() -> str:
    return uuid.uuid4().hex


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


@dataclass(eq=False)
class GloveDevice:
    """A glove seen during a scan.

    `connection_state` is a cached copy of the connection manager's state at
    the last observation, not the source of truth. Equality uses `id` only.
    """

    id: str
    name: str = ""
    mac_address: str | None = None
    battery_level: int = 0
    connection_state: ConnectionState = ConnectionState.DISCONNECTED
    signal_strength: int = 0
    firmware_version: str | None = None
    last_connected: datetime | None = None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, GloveDevice):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)


@dataclass
class VibrationPattern:
    name: str
    intensity: int = 50
    duration_ms: int = 1000
    frequency_hz: int = 100
    is_continuous: bool = True
    interval_ms: int = 500
    description: str | None = None
    id: str = field(default_factory=_new_id)
    is_active: bool = False

    def copy(self) -> VibrationPattern:
        """Return an inactive clone that keeps the same id."""
        return replace(self, is_active=False)


@dataclass
class TherapySession:
    start_time: datetime = field(default_factory=datetime.now)
    end_time: datetime | None = None
    pattern_id: str | None = None
    pattern_name: str | None = None
    device_id: str | None = None
    notes: str | None = None
    is_completed: bool = False
    effectiveness_rating: int | None = None
    id: str = field(default_factory=_new_id)

    @property
    def duration(self) -> timedelta:
        end = self.end_time if self.end_time is not None else datetime.now()
        return end - self.start_time


class TransportEventKind(str, Enum):
    DISCOVERED = "discovered"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    CONNECTION_LOST = "connection_lost"


@dataclass(frozen=True)
class TransportDevice:
    id: str
    name: str | None
    rssi: int = 0
    address: str | None = None


@dataclass(frozen=True)
class TransportEvent:
    kind: TransportEventKind
    device: TransportDevice
    error: str | None = None


@dataclass(frozen=True)
class ConnectOptions:
    auto_connect: bool = False
    force_direct: bool = True


@dataclass(frozen=True)
class CharacteristicHandle:
    device_id: str
    service_uuid: str
    characteristic_uuid: str
    native: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class GattSpec:
    service_uuid: str
    vibration_char_uuid: str
    battery_char_uuid: str
    status_char_uuid: str
    pattern_config_char_uuid: str


@dataclass(frozen=True)
class GloveProfile:
    id: str
    name: str
    name_prefix: str
    gatt: GattSpec
    write_with_response: bool = True
    scan_timeout_s: float = DEFAULT_SCAN_TIMEOUT_S
    connect_timeout_s: float = DEFAULT_CONNECT_TIMEOUT_S
