"""BLE GATT transport implementation on top of bleak."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from types import ModuleType
from typing import Any

from glovectl.core.errors import (
    TransportConnectError,
    TransportError,
    TransportSendError,
    TransportTimeoutError,
    TransportUnavailableError,
)
from glovectl.core.events import Signal
from glovectl.core.model import (
    CharacteristicHandle,
    ConnectOptions,
    TransportDevice,
    TransportEvent,
    TransportEventKind,
)
from glovectl.transports.base import TransportListener

LOGGER = logging.getLogger(__name__)


def _bleak() -> ModuleType:
    try:
        import bleak  # type: ignore
        import bleak.exc  # type: ignore
    except Exception as exc:  # pragma: no cover - import failure path
        raise TransportUnavailableError(
            "BLE transport requires 'bleak'. Install dependency and retry."
        ) from exc
    return bleak


async def _wait_any(events: Sequence[asyncio.Event], timeout_s: float) -> None:
    waiters = [asyncio.ensure_future(event.wait()) for event in events]
    try:
        await asyncio.wait(waiters, timeout=timeout_s, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for waiter in waiters:
            waiter.cancel()


class BLEGATTTransport:
    """`Transport` backed by `bleak.BleakScanner` and `bleak.BleakClient`.

    Device ids are the addresses bleak reports (a MAC on Linux/Windows, a
    CoreBluetooth UUID on macOS). Every bleak failure is re-raised as a
    `TransportError` subclass.
    """

    def __init__(self) -> None:
        self._events: Signal[TransportEvent] = Signal("transport")
        self._discovered: dict[str, TransportDevice] = {}
        self._ble_devices: dict[str, Any] = {}
        self._clients: dict[str, tuple[TransportDevice, Any]] = {}
        self._scan_stop: asyncio.Event | None = None
        self._connecting: set[str] = set()

    def subscribe(self, listener: TransportListener) -> Callable[[], None]:
        return self._events.subscribe(listener)

    async def is_radio_enabled(self) -> bool:
        bleak = _bleak()
        try:
            async with bleak.BleakScanner():
                pass
        except bleak.exc.BleakBluetoothNotAvailableError as exc:
            LOGGER.info("Bluetooth not available: %s", exc)
            return False
        except (bleak.exc.BleakError, OSError) as exc:
            LOGGER.warning("Bluetooth adapter probe failed: %s", exc)
            return False
        return True

    async def start_scan(self, timeout_s: float, cancel: asyncio.Event | None = None) -> None:
        bleak = _bleak()
        self._discovered.clear()
        self._scan_stop = asyncio.Event()
        events = [self._scan_stop] + ([cancel] if cancel is not None else [])

        scanner = bleak.BleakScanner(detection_callback=self._on_detection)
        try:
            await scanner.start()
        except bleak.exc.BleakBluetoothNotAvailableError as exc:
            raise TransportUnavailableError(f"Bluetooth not available: {exc}") from exc
        except Exception as exc:
            raise TransportError(f"BLE scan failed to start: {exc}") from exc

        try:
            await _wait_any(events, timeout_s)
        finally:
            self._scan_stop = None
            try:
                await scanner.stop()
            except Exception as exc:
                LOGGER.debug("Ignoring scanner stop failure: %s", exc)

    async def stop_scan(self) -> None:
        if self._scan_stop is not None:
            self._scan_stop.set()

    def connected_devices(self) -> Sequence[TransportDevice]:
        return [device for device, client in self._clients.values() if client.is_connected]

    def discovered_devices(self) -> Sequence[TransportDevice]:
        return list(self._discovered.values())

    async def connect(
        self,
        device: TransportDevice,
        *,
        options: ConnectOptions,
        timeout_s: float,
    ) -> None:
        bleak = _bleak()
        if options.auto_connect:
            LOGGER.debug("bleak has no background auto-connect; connecting directly to %s", device.id)

        held = self._clients.get(device.id)
        if held is not None and held[1].is_connected:
            LOGGER.debug("BLE link to %s already open", device.id)
            return

        target = self._ble_devices.get(device.id) or device.address or device.id
        client = bleak.BleakClient(
            target,
            disconnected_callback=self._disconnect_handler(device),
            timeout=timeout_s,
        )
        self._connecting.add(device.id)
        try:
            if held is not None:
                self._clients.pop(device.id, None)
                await self._abandon(held[1])
            await asyncio.wait_for(client.connect(), timeout=timeout_s)
        except asyncio.TimeoutError as exc:
            await self._abandon(client)
            raise TransportTimeoutError(
                f"BLE connect to {device.id} timed out after {timeout_s}s"
            ) from exc
        except Exception as exc:
            await self._abandon(client)
            raise TransportConnectError(f"BLE connect failed for {device.id}: {exc}") from exc
        except asyncio.CancelledError:
            await self._abandon(client)
            raise
        finally:
            self._connecting.discard(device.id)

        if not client.is_connected:
            raise TransportConnectError(f"BLE connect failed for {device.id}")

        self._clients[device.id] = (device, client)
        self._events.emit(TransportEvent(TransportEventKind.CONNECTED, device))

    async def disconnect(self, device: TransportDevice) -> None:
        entry = self._clients.pop(device.id, None)
        if entry is None:
            return
        _, client = entry
        try:
            await client.disconnect()
        except Exception as exc:
            raise TransportError(f"BLE disconnect failed for {device.id}: {exc}") from exc

    async def get_characteristic(
        self,
        device: TransportDevice,
        service_uuid: str,
        characteristic_uuid: str,
    ) -> CharacteristicHandle | None:
        entry = self._clients.get(device.id)
        if entry is None:
            return None
        _, client = entry
        try:
            service = client.services.get_service(service_uuid)
        except Exception as exc:
            raise TransportSendError(f"GATT service lookup failed on {device.id}: {exc}") from exc
        if service is None:
            return None
        characteristic = service.get_characteristic(characteristic_uuid)
        if characteristic is None:
            return None
        return CharacteristicHandle(
            device_id=device.id,
            service_uuid=service_uuid,
            characteristic_uuid=characteristic_uuid,
            native=characteristic,
        )

    async def write_characteristic(
        self,
        handle: CharacteristicHandle,
        data: bytes,
        *,
        response: bool = True,
    ) -> None:
        client = self._client_for(handle)
        try:
            await client.write_gatt_char(handle.native, data, response=response)
        except Exception as exc:
            raise TransportSendError(
                f"BLE write to {handle.characteristic_uuid} failed: {exc}"
            ) from exc

    async def read_characteristic(self, handle: CharacteristicHandle) -> bytes:
        client = self._client_for(handle)
        try:
            data = await client.read_gatt_char(handle.native)
        except Exception as exc:
            raise TransportSendError(
                f"BLE read from {handle.characteristic_uuid} failed: {exc}"
            ) from exc
        return bytes(data)

    def _client_for(self, handle: CharacteristicHandle) -> Any:
        entry = self._clients.get(handle.device_id)
        if entry is None:
            raise TransportSendError(f"No open BLE link to {handle.device_id}")
        return entry[1]

    def _on_detection(self, ble_device: Any, advertisement: Any) -> None:
        device = TransportDevice(
            id=ble_device.address,
            name=advertisement.local_name or ble_device.name,
            rssi=advertisement.rssi,
            address=ble_device.address,
        )
        self._ble_devices[device.id] = ble_device
        self._discovered[device.id] = device
        self._events.emit(TransportEvent(TransportEventKind.DISCOVERED, device))

    def _disconnect_handler(self, device: TransportDevice) -> Callable[[Any], None]:
        def _on_disconnected(client: Any) -> None:
            if device.id in self._connecting:
                return
            entry = self._clients.get(device.id)
            if entry is not None and entry[1] is not client:
                LOGGER.debug("Ignoring disconnect from replaced BLE client for %s", device.id)
                return
            # disconnect() pops the client before closing; a client still
            # registered here dropped the link on its own.
            if self._clients.pop(device.id, None) is None:
                self._events.emit(TransportEvent(TransportEventKind.DISCONNECTED, device))
            else:
                LOGGER.warning("BLE link to %s lost", device.id)
                self._events.emit(
                    TransportEvent(
                        TransportEventKind.CONNECTION_LOST,
                        device,
                        error="link lost",
                    )
                )

        return _on_disconnected

    async def _abandon(self, client: Any) -> None:
        try:
            await client.disconnect()
        except Exception as exc:
            LOGGER.debug("Ignoring cleanup disconnect failure: %s", exc)
