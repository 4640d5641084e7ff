from __future__ import annotations

import asyncio

import pytest

from glovectl.core.connection import ConnectionManager
from glovectl.core.controller import VibrationController, default_patterns, probe_pattern
from glovectl.core.errors import TransportSendError
from glovectl.core.model import ConnectionState, TransportEventKind, VibrationPattern


@pytest.fixture
def controller(manager: ConnectionManager) -> VibrationController:
    return VibrationController(manager)


def _connect(manager: ConnectionManager) -> None:
    async def scenario() -> None:
        devices = await manager.scan()
        assert await manager.connect(devices[0])

    asyncio.run(scenario())


def _record_vibration(controller: VibrationController) -> list[bool]:
    changes: list[bool] = []
    controller.vibration_changed.subscribe(changes.append)
    return changes


def _gentle() -> VibrationPattern:
    return default_patterns()[0]


def test_default_patterns_catalog() -> None:
    patterns = default_patterns()
    assert [p.name for p in patterns] == ["Gentle", "Moderate", "Strong", "Pulsed", "Rapid Pulse"]

    gentle, moderate, strong, pulsed, rapid = patterns
    assert (gentle.intensity, gentle.duration_ms, gentle.frequency_hz, gentle.is_continuous) == (30, 1000, 80, True)
    assert (moderate.intensity, moderate.frequency_hz) == (50, 100)
    assert (strong.intensity, strong.frequency_hz) == (75, 120)
    assert pulsed.is_continuous is False
    assert pulsed.interval_ms == 500
    assert (pulsed.intensity, pulsed.duration_ms) == (50, 500)
    assert (rapid.intensity, rapid.duration_ms, rapid.interval_ms, rapid.is_continuous) == (60, 200, 200, False)
    assert not any(p.is_active for p in patterns)


def test_default_patterns_are_fresh_objects() -> None:
    first = default_patterns()
    first[0].intensity = 99
    assert default_patterns()[0].intensity == 30


def test_start_while_disconnected_is_rejected(controller, transport) -> None:
    changes = _record_vibration(controller)
    pattern = _gentle()

    assert asyncio.run(controller.start(pattern)) is False

    assert changes == []
    assert transport.writes == []
    assert pattern.is_active is False
    assert controller.current_pattern is None


def test_stop_while_disconnected_is_rejected(controller, transport) -> None:
    assert asyncio.run(controller.stop()) is False
    assert transport.writes == []


def test_start_then_stop_end_to_end(controller, manager, transport, profile) -> None:
    _connect(manager)
    changes = _record_vibration(controller)
    gentle = _gentle()

    assert asyncio.run(controller.start(gentle)) is True
    assert controller.is_vibrating is True
    assert controller.current_pattern is gentle
    assert gentle.is_active is True

    assert asyncio.run(controller.stop()) is True
    assert controller.is_vibrating is False
    assert controller.current_pattern is None
    assert gentle.is_active is False

    assert transport.writes == [
        (profile.gatt.vibration_char_uuid, bytes([0x01, 0x1E, 0xE8, 0x03, 0x50, 0x00])),
        (profile.gatt.vibration_char_uuid, bytes([0x00])),
    ]
    assert changes == [True, False]


def test_failed_write_leaves_state_unchanged(controller, manager, transport) -> None:
    _connect(manager)
    changes = _record_vibration(controller)
    transport.write_error = TransportSendError("gatt write failed")
    pattern = _gentle()

    assert asyncio.run(controller.start(pattern)) is False

    assert controller.is_vibrating is False
    assert controller.current_pattern is None
    assert pattern.is_active is False
    assert changes == []


def test_failed_stop_keeps_pattern_active(controller, manager, transport) -> None:
    _connect(manager)
    pattern = _gentle()
    asyncio.run(controller.start(pattern))

    transport.write_error = TransportSendError("gatt write failed")
    assert asyncio.run(controller.stop()) is False
    assert controller.current_pattern is pattern
    assert pattern.is_active is True


def test_stop_without_active_pattern_still_sends_stop_frame(controller, manager, transport) -> None:
    _connect(manager)
    changes = _record_vibration(controller)

    assert asyncio.run(controller.stop()) is True

    assert [data for _, data in transport.writes] == [b"\x00"]
    assert changes == [False]


def test_set_intensity_without_active_pattern_is_rejected(controller, manager, transport) -> None:
    _connect(manager)
    assert asyncio.run(controller.set_intensity(50)) is False
    assert transport.writes == []


def test_set_intensity_restarts_same_pattern_object(controller, manager, transport) -> None:
    _connect(manager)
    pattern = _gentle()
    asyncio.run(controller.start(pattern))
    changes = _record_vibration(controller)

    assert asyncio.run(controller.set_intensity(150)) is True

    assert pattern.intensity == 100
    assert controller.current_pattern is pattern
    assert transport.writes[-1][1] == bytes([0x01, 100, 0xE8, 0x03, 0x50, 0x00])
    assert changes == [True]


def test_set_intensity_clamps_low(controller, manager, transport) -> None:
    _connect(manager)
    pattern = _gentle()
    asyncio.run(controller.start(pattern))

    assert asyncio.run(controller.set_intensity(-20)) is True
    assert pattern.intensity == 0


def test_starting_another_pattern_deactivates_previous(controller, manager) -> None:
    _connect(manager)
    first, second = default_patterns()[:2]

    asyncio.run(controller.start(first))
    asyncio.run(controller.start(second))

    assert first.is_active is False
    assert second.is_active is True
    assert controller.current_pattern is second


def test_test_connection_pulses_and_stops(controller, manager, transport) -> None:
    _connect(manager)
    changes = _record_vibration(controller)

    assert asyncio.run(controller.test_connection()) is True

    probe = probe_pattern()
    assert [data for _, data in transport.writes] == [bytes([0x01, 50, 0xC8, 0x00, 100, 0x01]), b"\x00"]
    assert probe.duration_ms == 200
    assert changes == [True, False]
    assert controller.is_vibrating is False


def test_test_connection_while_disconnected(controller, transport) -> None:
    assert asyncio.run(controller.test_connection()) is False
    assert transport.writes == []


def test_battery_level(controller, manager, transport) -> None:
    assert asyncio.run(controller.get_battery_level()) is None

    _connect(manager)
    assert asyncio.run(controller.get_battery_level()) == 85

    transport.read_value = b""
    assert asyncio.run(controller.get_battery_level()) is None

    transport.read_value = bytes([0xFA])
    assert asyncio.run(controller.get_battery_level()) == 250

    transport.read_error = TransportSendError("read failed")
    assert asyncio.run(controller.get_battery_level()) is None


def test_custom_codec_is_used(manager, transport) -> None:
    class ReversedCodec:
        def encode_start(self, pattern: VibrationPattern) -> bytes:
            return b"\xaa" + bytes([pattern.intensity])

        def encode_stop(self) -> bytes:
            return b"\xab"

        def decode_battery_level(self, data: bytes) -> int | None:
            return 100 - data[0] if data else None

    controller = VibrationController(manager, codec=ReversedCodec())
    _connect(manager)

    asyncio.run(controller.start(_gentle()))
    asyncio.run(controller.stop())

    assert [data for _, data in transport.writes] == [b"\xaa\x1e", b"\xab"]
    assert asyncio.run(controller.get_battery_level()) == 15


@pytest.mark.parametrize("kind", [TransportEventKind.CONNECTION_LOST, TransportEventKind.DISCONNECTED])
def test_link_drop_clears_active_vibration(controller, manager, transport, kind) -> None:
    _connect(manager)
    pattern = _gentle()
    asyncio.run(controller.start(pattern))
    changes = _record_vibration(controller)

    transport.emit(kind, transport.advertisements[0])

    assert manager.state in (ConnectionState.ERROR, ConnectionState.DISCONNECTED)
    assert controller.is_vibrating is False
    assert controller.current_pattern is None
    assert pattern.is_active is False
    assert changes == [False]


def test_disconnect_clears_active_vibration(controller, manager) -> None:
    _connect(manager)
    pattern = _gentle()
    asyncio.run(controller.start(pattern))

    asyncio.run(manager.disconnect())

    assert controller.is_vibrating is False
    assert pattern.is_active is False


def test_link_drop_while_idle_does_not_notify(controller, manager, transport) -> None:
    _connect(manager)
    changes = _record_vibration(controller)

    transport.emit(TransportEventKind.CONNECTION_LOST, transport.advertisements[0])

    assert manager.state is ConnectionState.ERROR
    assert changes == []


def test_closed_controller_ignores_link_drop(controller, manager, transport) -> None:
    _connect(manager)
    asyncio.run(controller.start(_gentle()))
    controller.close()

    transport.emit(TransportEventKind.CONNECTION_LOST, transport.advertisements[0])

    assert controller.is_vibrating is True
