from __future__ import annotations

import asyncio
from collections.abc import Callable
from pathlib import Path

import pytest

from glovectl.core.connection import ConnectionManager
from glovectl.core.errors import TransportError
from glovectl.core.model import (
    CharacteristicHandle,
    ConnectOptions,
    GloveProfile,
    TransportDevice,
    TransportEvent,
    TransportEventKind,
)
from glovectl.core.profile_loader import load_profiles

GLOVE_ID = "F1:E2:D3:C4:B5:A6"


class FakeTransport:
    """In-memory transport that records every call made against it."""

    def __init__(self) -> None:
        self.listeners: list[Callable[[TransportEvent], None]] = []
        self.calls: list[tuple] = []
        self.writes: list[tuple[str, bytes]] = []
        self.advertisements: list[TransportDevice] = [
            TransportDevice(id=GLOVE_ID, name="BlueBuzzah Left", rssi=-60, address=GLOVE_ID),
        ]
        self.discovered: dict[str, TransportDevice] = {}
        self.connected: dict[str, TransportDevice] = {}
        self.radio_enabled = True
        self.scan_error: TransportError | None = None
        self.connect_error: TransportError | None = None
        self.disconnect_error: TransportError | None = None
        self.write_error: TransportError | None = None
        self.read_error: TransportError | None = None
        self.read_value = b"\x55"
        self.missing_characteristics: set[str] = set()
        self.emit_connected = True

    def subscribe(self, listener: Callable[[TransportEvent], None]) -> Callable[[], None]:
        self.listeners.append(listener)
        return lambda: self.listeners.remove(listener)

    def emit(self, kind: TransportEventKind, device: TransportDevice, error: str | None = None) -> None:
        for listener in list(self.listeners):
            listener(TransportEvent(kind, device, error))

    async def is_radio_enabled(self) -> bool:
        self.calls.append(("is_radio_enabled",))
        return self.radio_enabled

    async def start_scan(self, timeout_s: float, cancel: asyncio.Event | None = None) -> None:
        self.calls.append(("start_scan", timeout_s))
        for advertisement in self.advertisements:
            self.discovered[advertisement.id] = advertisement
            self.emit(TransportEventKind.DISCOVERED, advertisement)
        if self.scan_error is not None:
            raise self.scan_error

    async def stop_scan(self) -> None:
        self.calls.append(("stop_scan",))

    def connected_devices(self) -> list[TransportDevice]:
        return list(self.connected.values())

    def discovered_devices(self) -> list[TransportDevice]:
        return list(self.discovered.values())

    async def connect(self, device: TransportDevice, *, options: ConnectOptions, timeout_s: float) -> None:
        self.calls.append(("connect", device, options, timeout_s))
        if self.connect_error is not None:
            raise self.connect_error
        self.connected[device.id] = device
        if self.emit_connected:
            self.emit(TransportEventKind.CONNECTED, device)

    async def disconnect(self, device: TransportDevice) -> None:
        self.calls.append(("disconnect", device.id))
        self.connected.pop(device.id, None)
        if self.disconnect_error is not None:
            raise self.disconnect_error
        self.emit(TransportEventKind.DISCONNECTED, device)

    async def get_characteristic(
        self,
        device: TransportDevice,
        service_uuid: str,
        characteristic_uuid: str,
    ) -> CharacteristicHandle | None:
        if characteristic_uuid in self.missing_characteristics:
            return None
        return CharacteristicHandle(device.id, service_uuid, characteristic_uuid)

    async def write_characteristic(self, handle: CharacteristicHandle, data: bytes, *, response: bool = True) -> None:
        if self.write_error is not None:
            raise self.write_error
        self.writes.append((handle.characteristic_uuid, bytes(data)))

    async def read_characteristic(self, handle: CharacteristicHandle) -> bytes:
        if self.read_error is not None:
            raise self.read_error
        return self.read_value


@pytest.fixture(autouse=True)
def isolated_xdg(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    return tmp_path


@pytest.fixture
def profile() -> GloveProfile:
    return load_profiles().profiles["bluebuzzah"]


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def manager(transport: FakeTransport, profile: GloveProfile) -> ConnectionManager:
    return ConnectionManager(transport, profile=profile)
