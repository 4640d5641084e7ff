"""Service layer used by CLI and future UI frontends."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Any

from glovectl.core.codec import CommandCodec
from glovectl.core.connection import ConnectionManager
from glovectl.core.controller import VibrationController, default_patterns
from glovectl.core.errors import DeviceSelectionError, PatternResolutionError, StorageError
from glovectl.core.model import ConnectionState, GloveDevice, GloveProfile, TherapySession, VibrationPattern
from glovectl.core.profile_loader import DEFAULT_PROFILE_ID, load_profiles
from glovectl.core.storage import JsonFileStorage, Storage
from glovectl.transports.base import Transport
from glovectl.transports.ble_gatt import BLEGATTTransport

LOGGER = logging.getLogger(__name__)


class GloveService:
    """Wires a profile, transport, storage, connection manager and controller.

    Persistence is best effort: storage failures are logged and never change
    the outcome of a glove operation.
    """

    def __init__(
        self,
        *,
        profile_id: str = DEFAULT_PROFILE_ID,
        transport: Transport | None = None,
        storage: Storage | None = None,
        codec: CommandCodec | None = None,
    ) -> None:
        loaded = load_profiles()
        self.profiles = loaded.profiles
        self.load_warnings = loaded.warnings
        profile = self.profiles.get(profile_id)
        if profile is None:
            available = ", ".join(sorted(self.profiles))
            raise DeviceSelectionError(f"Unknown profile '{profile_id}'. Available: {available}")
        self.profile: GloveProfile = profile
        self.transport = transport or BLEGATTTransport()
        self.storage: Storage = storage or JsonFileStorage()
        self.connection = ConnectionManager(self.transport, profile=profile)
        self.controller = VibrationController(self.connection, codec=codec)
        self._devices: list[GloveDevice] = []
        self._session: TherapySession | None = None

    @property
    def state(self) -> ConnectionState:
        return self.connection.state

    @property
    def current_session(self) -> TherapySession | None:
        return self._session

    def list_profiles(self) -> list[GloveProfile]:
        return sorted(self.profiles.values(), key=lambda p: p.id)

    async def scan(
        self,
        timeout_s: float | None = None,
        cancel: asyncio.Event | None = None,
    ) -> list[GloveDevice]:
        self._devices = await self.connection.scan(timeout_s=timeout_s, cancel=cancel)
        return list(self._devices)

    def resolve_device(self, device_hint: str, devices: Sequence[GloveDevice] | None = None) -> GloveDevice:
        candidates = list(self._devices if devices is None else devices)
        if not candidates:
            raise DeviceSelectionError("No gloves found. Ensure the glove is powered on and advertising.")

        hint = device_hint.lower()
        exact = [d for d in candidates if d.id.lower() == hint or (d.mac_address or "").lower() == hint]
        if len(exact) == 1:
            return exact[0]

        hinted = [d for d in candidates if hint in d.id.lower() or hint in d.name.lower()]
        if not hinted:
            raise DeviceSelectionError(f"No glove found matching '{device_hint}'")
        if len(hinted) > 1:
            candidate_desc = ", ".join(f"{d.id} ({d.name})" for d in hinted)
            raise DeviceSelectionError(
                f"Multiple candidate gloves found: {candidate_desc}. Use a more specific device hint."
            )
        return hinted[0]

    async def connect(self, device_hint: str, *, scan_timeout_s: float | None = None) -> GloveDevice:
        """Scan, pick the glove matching `device_hint` and connect to it."""
        devices = await self.scan(timeout_s=scan_timeout_s)
        device = self.resolve_device(device_hint, devices)
        if not await self.connect_device(device):
            raise DeviceSelectionError(f"Could not connect to {device.id} ({device.name})")
        return device

    async def connect_device(self, device: GloveDevice) -> bool:
        connected = await self.connection.connect(device)
        if connected:
            self._persist(self.storage.save_last_device, device)
        return connected

    async def disconnect(self) -> None:
        if self._session is not None:
            self._close_session(completed=False)
        await self.connection.disconnect()

    def list_patterns(self) -> list[VibrationPattern]:
        """Built-in presets followed by saved patterns, all fresh objects."""
        saved = self._recall(self.storage.get_patterns, [])
        return default_patterns() + saved

    def find_pattern(self, name: str) -> VibrationPattern:
        wanted = name.strip().lower()
        for pattern in self.list_patterns():
            if pattern.name.lower() == wanted or pattern.id == name:
                return pattern
        available = ", ".join(p.name for p in self.list_patterns())
        raise PatternResolutionError(f"Unknown pattern '{name}'. Available: {available}")

    def save_pattern(self, pattern: VibrationPattern) -> None:
        self._persist(self.storage.save_pattern, pattern)

    def delete_pattern(self, pattern_id: str) -> None:
        self._persist(self.storage.delete_pattern, pattern_id)

    async def start(self, pattern: VibrationPattern) -> bool:
        started = await self.controller.start(pattern)
        if started and self._session is None:
            device = self.connection.connected_device
            self._session = TherapySession(
                pattern_id=pattern.id,
                pattern_name=pattern.name,
                device_id=device.id if device else None,
            )
        return started

    async def stop(self) -> bool:
        stopped = await self.controller.stop()
        if stopped and self._session is not None:
            self._close_session(completed=True)
        return stopped

    async def set_intensity(self, value: int) -> bool:
        return await self.controller.set_intensity(value)

    async def battery_level(self) -> int | None:
        level = await self.controller.get_battery_level()
        device = self.connection.connected_device
        if level is not None and device is not None:
            device.battery_level = level
        return level

    async def test_connection(self) -> bool:
        return await self.controller.test_connection()

    def session_history(self, limit: int = 0) -> list[TherapySession]:
        return self._recall(lambda: self.storage.get_session_history(limit), [])

    def last_device(self) -> GloveDevice | None:
        return self._recall(self.storage.get_last_device, None)

    def _close_session(self, *, completed: bool) -> None:
        session = self._session
        self._session = None
        if session is None:
            return
        session.end_time = datetime.now()
        session.is_completed = completed
        self._persist(self.storage.save_session, session)

    def _persist(self, action: Callable[..., None], *args: Any) -> None:
        try:
            action(*args)
        except StorageError as exc:
            LOGGER.warning("Could not persist data: %s", exc)

    def _recall(self, loader: Callable[[], Any], default: Any) -> Any:
        try:
            return loader()
        except StorageError as exc:
            LOGGER.warning("Could not load stored data: %s", exc)
            return default
