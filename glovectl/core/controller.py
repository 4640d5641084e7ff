"""Actuator interlock: the only writer of the vibration-control characteristic."""

from __future__ import annotations

import asyncio
import logging

from glovectl.core.codec import CommandCodec, PlaceholderCodec
from glovectl.core.connection import ConnectionManager
from glovectl.core.events import Signal
from glovectl.core.model import ConnectionState, VibrationPattern

LOGGER = logging.getLogger(__name__)


def default_patterns() -> list[VibrationPattern]:
    """Return fresh instances of the five built-in presets, in display order."""
    return [
        VibrationPattern(
            name="Gentle",
            description="Low intensity, continuous vibration",
            intensity=30,
            duration_ms=1000,
            frequency_hz=80,
            is_continuous=True,
        ),
        VibrationPattern(
            name="Moderate",
            description="Medium intensity, continuous vibration",
            intensity=50,
            duration_ms=1000,
            frequency_hz=100,
            is_continuous=True,
        ),
        VibrationPattern(
            name="Strong",
            description="High intensity, continuous vibration",
            intensity=75,
            duration_ms=1000,
            frequency_hz=120,
            is_continuous=True,
        ),
        VibrationPattern(
            name="Pulsed",
            description="Medium intensity, pulsed vibration",
            intensity=50,
            duration_ms=500,
            frequency_hz=100,
            is_continuous=False,
            interval_ms=500,
        ),
        VibrationPattern(
            name="Rapid Pulse",
            description="Medium intensity, rapid pulsed vibration",
            intensity=60,
            duration_ms=200,
            frequency_hz=120,
            is_continuous=False,
            interval_ms=200,
        ),
    ]


def probe_pattern() -> VibrationPattern:
    return VibrationPattern(
        name="Test",
        intensity=50,
        duration_ms=200,
        frequency_hz=100,
        is_continuous=False,
    )


class VibrationController:
    """Sequences codec, connection manager and transport for the actuator.

    Every command requires a Connected manager. The active pattern is held by
    reference, so `set_intensity` mutates the caller's object. `start`, `stop`
    and `set_intensity` read and write controller state without a lock;
    callers must not run them concurrently on one instance.

    When the link drops to Disconnected or Error the active pattern is
    cleared and `vibration_changed(False)` fires.
    """

    def __init__(
        self,
        connection: ConnectionManager,
        *,
        codec: CommandCodec | None = None,
    ) -> None:
        self.connection = connection
        self.codec: CommandCodec = codec or PlaceholderCodec()
        self.vibration_changed: Signal[bool] = Signal("vibration_state_changed")
        self._current: VibrationPattern | None = None
        self._vibrating = False
        self._unsubscribe = connection.state_changed.subscribe(self._on_connection_state)

    @property
    def is_vibrating(self) -> bool:
        return self._vibrating

    @property
    def current_pattern(self) -> VibrationPattern | None:
        return self._current

    async def start(self, pattern: VibrationPattern) -> bool:
        if not self.connection.is_connected:
            LOGGER.info("Refusing to start '%s': not connected", pattern.name)
            return False

        frame = self.codec.encode_start(pattern)
        if not await self._write(frame):
            return False

        if self._current is not None and self._current is not pattern:
            self._current.is_active = False
        self._current = pattern
        pattern.is_active = True
        self._vibrating = True
        self.vibration_changed.emit(True)
        return True

    async def stop(self) -> bool:
        """Send the stop frame; also sent when nothing is running."""
        if not self.connection.is_connected:
            LOGGER.info("Refusing to stop: not connected")
            return False

        if not await self._write(self.codec.encode_stop()):
            return False

        if self._current is not None:
            self._current.is_active = False
        self._current = None
        self._vibrating = False
        self.vibration_changed.emit(False)
        return True

    async def set_intensity(self, value: int) -> bool:
        """Change intensity by re-issuing a full start frame.

        The frame format has no differential update, so this is a restart.
        """
        pattern = self._current
        if pattern is None or not self._vibrating:
            return False
        pattern.intensity = max(0, min(100, int(value)))
        return await self.start(pattern)

    async def test_connection(self) -> bool:
        pattern = probe_pattern()
        started = await self.start(pattern)
        if started:
            await asyncio.sleep(pattern.duration_ms / 1000)
            await self.stop()
        return started

    async def get_battery_level(self) -> int | None:
        if not self.connection.is_connected:
            return None
        gatt = self.connection.profile.gatt
        data = await self.connection.read_characteristic(gatt.service_uuid, gatt.battery_char_uuid)
        return self.codec.decode_battery_level(data)

    def default_patterns(self) -> list[VibrationPattern]:
        return default_patterns()

    def close(self) -> None:
        """Stop following connection state changes."""
        self._unsubscribe()

    def _on_connection_state(self, state: ConnectionState) -> None:
        if state not in (ConnectionState.DISCONNECTED, ConnectionState.ERROR):
            return
        if self._current is None and not self._vibrating:
            return
        LOGGER.info("Link went %s; clearing active vibration", state.value)
        if self._current is not None:
            self._current.is_active = False
        self._current = None
        self._vibrating = False
        self.vibration_changed.emit(False)

    async def _write(self, frame: bytes) -> bool:
        gatt = self.connection.profile.gatt
        ok = await self.connection.write_characteristic(gatt.service_uuid, gatt.vibration_char_uuid, frame)
        if not ok:
            LOGGER.warning("Vibration frame %s was not delivered", frame.hex())
        return ok
