"""Transport interfaces."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from typing import Protocol

from glovectl.core.model import CharacteristicHandle, ConnectOptions, TransportDevice, TransportEvent

TransportListener = Callable[[TransportEvent], None]


class Transport(Protocol):
    """Asynchronous BLE-like radio consumed by the connection core.

    Failures surface as `glovectl.core.errors.TransportError` subclasses.
    Lifecycle changes (discovered, connected, disconnected, connection lost)
    are delivered to subscribed listeners as `TransportEvent` values.
    """

    def subscribe(self, listener: TransportListener) -> Callable[[], None]:
        """Register a lifecycle listener and return its unsubscribe function."""

    async def is_radio_enabled(self) -> bool:
        """Return whether the Bluetooth adapter is present and powered on."""

    async def start_scan(self, timeout_s: float, cancel: asyncio.Event | None = None) -> None:
        """Scan until `timeout_s` elapses or `cancel` is set."""

    async def stop_scan(self) -> None:
        """Stop an in-progress scan, if any."""

    def connected_devices(self) -> Sequence[TransportDevice]:
        """Devices with an open link held by this transport."""

    def discovered_devices(self) -> Sequence[TransportDevice]:
        """Devices seen by the most recent scan."""

    async def connect(
        self,
        device: TransportDevice,
        *,
        options: ConnectOptions,
        timeout_s: float,
    ) -> None:
        """Open a link to `device`."""

    async def disconnect(self, device: TransportDevice) -> None:
        """Close the link to `device`."""

    async def get_characteristic(
        self,
        device: TransportDevice,
        service_uuid: str,
        characteristic_uuid: str,
    ) -> CharacteristicHandle | None:
        """Look up a characteristic on a connected device."""

    async def write_characteristic(
        self,
        handle: CharacteristicHandle,
        data: bytes,
        *,
        response: bool = True,
    ) -> None:
        """Write `data` to a characteristic."""

    async def read_characteristic(self, handle: CharacteristicHandle) -> bytes:
        """Read the current value of a characteristic."""
