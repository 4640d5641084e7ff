"""Stable public API for building tooling on top of glovectl.

This module is the supported integration surface for third-party callers.
Avoid importing from private/internal modules unless intentionally depending on
non-stable internals.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

from glovectl.core.codec import CommandCodec, PlaceholderCodec, decode_battery_level, encode_start, encode_stop
from glovectl.core.controller import default_patterns
from glovectl.core.errors import (
    DeviceSelectionError,
    GlovectlError,
    PatternResolutionError,
    ProfileLoadError,
    ProfileValidationError,
    StorageError,
    TransportConnectError,
    TransportError,
    TransportSendError,
    TransportTimeoutError,
    TransportUnavailableError,
)
from glovectl.core.model import (
    ConnectionState,
    GloveDevice,
    GloveProfile,
    TherapySession,
    VibrationPattern,
)
from glovectl.core.profile_loader import DEFAULT_PROFILE_ID
from glovectl.core.service import GloveService
from glovectl.core.storage import JsonFileStorage, Storage
from glovectl.transports.base import Transport
from glovectl.transports.ble_gatt import BLEGATTTransport

__all__ = [
    "GlovectlError",
    "DeviceSelectionError",
    "PatternResolutionError",
    "ProfileLoadError",
    "ProfileValidationError",
    "StorageError",
    "TransportError",
    "TransportConnectError",
    "TransportSendError",
    "TransportTimeoutError",
    "TransportUnavailableError",
    "ConnectionState",
    "GloveDevice",
    "GloveProfile",
    "TherapySession",
    "VibrationPattern",
    "CommandCodec",
    "PlaceholderCodec",
    "encode_start",
    "encode_stop",
    "decode_battery_level",
    "default_patterns",
    "BLEGATTTransport",
    "JsonFileStorage",
    "Storage",
    "Transport",
    "Client",
]


class Client:
    """Public async client for driving a glove.

    A `Client` instance wraps profile loading, scanning, the single glove
    connection and the vibration interlock behind a stable API intended for
    third-party tools (GUI/TUI/services/scripts).
    """

    def __init__(
        self,
        *,
        profile_id: str = DEFAULT_PROFILE_ID,
        transport: Transport | None = None,
        storage: Storage | None = None,
        codec: CommandCodec | None = None,
    ) -> None:
        self._service = GloveService(
            profile_id=profile_id,
            transport=transport,
            storage=storage,
            codec=codec,
        )

    @property
    def load_warnings(self) -> tuple[str, ...]:
        return self._service.load_warnings

    @property
    def profile(self) -> GloveProfile:
        return self._service.profile

    @property
    def state(self) -> ConnectionState:
        return self._service.state

    @property
    def is_vibrating(self) -> bool:
        return self._service.controller.is_vibrating

    @property
    def connected_device(self) -> GloveDevice | None:
        return self._service.connection.connected_device

    def on_state_changed(self, listener: Callable[[ConnectionState], None]) -> Callable[[], None]:
        return self._service.connection.state_changed.subscribe(listener)

    def on_device_discovered(self, listener: Callable[[GloveDevice], None]) -> Callable[[], None]:
        return self._service.connection.device_discovered.subscribe(listener)

    def on_vibration_changed(self, listener: Callable[[bool], None]) -> Callable[[], None]:
        return self._service.controller.vibration_changed.subscribe(listener)

    async def scan(
        self,
        *,
        timeout_s: float | None = None,
        cancel: asyncio.Event | None = None,
    ) -> list[GloveDevice]:
        return await self._service.scan(timeout_s=timeout_s, cancel=cancel)

    async def stop_scan(self) -> None:
        await self._service.connection.stop_scan()

    async def connect(self, device: GloveDevice) -> bool:
        return await self._service.connect_device(device)

    async def connect_hint(self, device_hint: str, *, scan_timeout_s: float | None = None) -> GloveDevice:
        return await self._service.connect(device_hint, scan_timeout_s=scan_timeout_s)

    async def disconnect(self) -> None:
        await self._service.disconnect()

    def list_patterns(self) -> list[VibrationPattern]:
        return self._service.list_patterns()

    def find_pattern(self, name: str) -> VibrationPattern:
        return self._service.find_pattern(name)

    def save_pattern(self, pattern: VibrationPattern) -> None:
        self._service.save_pattern(pattern)

    async def start(self, pattern: VibrationPattern) -> bool:
        return await self._service.start(pattern)

    async def stop(self) -> bool:
        return await self._service.stop()

    async def set_intensity(self, value: int) -> bool:
        return await self._service.set_intensity(value)

    async def battery_level(self) -> int | None:
        return await self._service.battery_level()

    async def test_connection(self) -> bool:
        return await self._service.test_connection()

    def session_history(self, *, limit: int = 0) -> list[TherapySession]:
        return self._service.session_history(limit)

    def last_device(self) -> GloveDevice | None:
        return self._service.last_device()
