"""Vibration command and battery telemetry frames.

The byte layout is a placeholder until the glove firmware publishes its real
protocol. Everything above this module talks to a `CommandCodec`, so a real
codec can be swapped in without touching the connection core.

Start frame (6 bytes)::

    0     opcode 0x01
    1     intensity, clamped to 0..100
    2..3  duration in ms, u16 little-endian, truncated modulo 65536
    4     frequency in Hz, clamped to 0..255
    5     mode, 0x00 continuous / 0x01 pulsed

Stop frame (1 byte): ``0x00``.
"""

from __future__ import annotations

import logging
import struct
from typing import Protocol

from glovectl.core.model import VibrationPattern

OP_STOP = 0x00
OP_START = 0x01
MODE_CONTINUOUS = 0x00
MODE_PULSED = 0x01

_START_FRAME = struct.Struct("<BBHBB")
LOGGER = logging.getLogger(__name__)


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, int(value)))


def encode_start(pattern: VibrationPattern) -> bytes:
    duration = int(pattern.duration_ms)
    if not 0 <= duration <= 0xFFFF:
        LOGGER.debug("Truncating duration %d ms to 16 bits", duration)
    return _START_FRAME.pack(
        OP_START,
        _clamp(pattern.intensity, 0, 100),
        duration & 0xFFFF,
        _clamp(pattern.frequency_hz, 0, 255),
        MODE_CONTINUOUS if pattern.is_continuous else MODE_PULSED,
    )


def encode_stop() -> bytes:
    return bytes([OP_STOP])


def decode_battery_level(data: bytes | bytearray) -> int | None:
    """Return the first byte as an unsigned int, or None for an empty buffer.

    Values above 100 are passed through as-is; the firmware range has not been
    confirmed.
    """
    if not data:
        return None
    return data[0]


class CommandCodec(Protocol):
    def encode_start(self, pattern: VibrationPattern) -> bytes:
        """Build the frame that starts the actuator with `pattern`."""

    def encode_stop(self) -> bytes:
        """Build the frame that stops the actuator."""

    def decode_battery_level(self, data: bytes | bytearray) -> int | None:
        """Decode a battery characteristic value."""


class PlaceholderCodec:
    def encode_start(self, pattern: VibrationPattern) -> bytes:
        return encode_start(pattern)

    def encode_stop(self) -> bytes:
        return encode_stop()

    def decode_battery_level(self, data: bytes | bytearray) -> int | None:
        return decode_battery_level(data)
