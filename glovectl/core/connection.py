"""Connection state machine for a single glove link."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from glovectl.core.errors import TransportError
from glovectl.core.events import Signal
from glovectl.core.model import (
    ConnectionState,
    ConnectOptions,
    GloveDevice,
    GloveProfile,
    TransportDevice,
    TransportEvent,
    TransportEventKind,
)
from glovectl.core.registry import DeviceRegistry, matches_name_prefix
from glovectl.transports.base import Transport

LOGGER = logging.getLogger(__name__)


class ConnectionManager:
    """Owns the connection state and the at-most-one active glove link.

    States are Disconnected, Connecting, Connected and Error; every state
    accepts a new connect attempt. `state_changed` fires only when the state
    actually changes. Scan, connect and disconnect are serialized by a lock,
    so two overlapping `connect()` calls cannot race each other. The lock
    belongs to the event loop running the call, so one manager can be driven
    from successive `asyncio.run()` calls.

    No `TransportError` escapes this class: every transport call site logs
    the failure and reports it as a state transition or a failure value.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        profile: GloveProfile,
        registry: DeviceRegistry | None = None,
    ) -> None:
        self.transport = transport
        self.profile = profile
        self.registry = registry or DeviceRegistry()
        self.state_changed: Signal[ConnectionState] = Signal("connection_state_changed")
        self.device_discovered: Signal[GloveDevice] = Signal("device_discovered")

        self._state = ConnectionState.DISCONNECTED
        self._lock: asyncio.Lock | None = None
        self._lock_loop: asyncio.AbstractEventLoop | None = None
        self._target_id: str | None = None
        self._connected_handle: TransportDevice | None = None
        self._connected_device: GloveDevice | None = None
        self._scanning = False
        self._scan_cancel: asyncio.Event | None = None
        self._unsubscribe = transport.subscribe(self._on_transport_event)

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def connected_device(self) -> GloveDevice | None:
        return self._connected_device

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    def close(self) -> None:
        """Stop listening to transport events."""
        self._unsubscribe()

    async def is_radio_enabled(self) -> bool:
        try:
            return await self.transport.is_radio_enabled()
        except TransportError as exc:
            LOGGER.warning("Radio state query failed: %s", exc)
            return False

    async def scan(
        self,
        timeout_s: float | None = None,
        cancel: asyncio.Event | None = None,
    ) -> list[GloveDevice]:
        """Scan for gloves and return the deduplicated snapshot.

        Resolves when the time bound elapses or `cancel` is set. A powered-off
        radio yields an empty list; transport failures are logged and the
        partial snapshot is returned.
        """
        timeout = self.profile.scan_timeout_s if timeout_s is None else timeout_s
        async with self._guard():
            self.registry.clear()
            if not await self.is_radio_enabled():
                LOGGER.info("Bluetooth radio is off; skipping scan")
                return []

            self._scan_cancel = cancel or asyncio.Event()
            self._scanning = True
            try:
                await self.transport.start_scan(timeout, self._scan_cancel)
            except TransportError as exc:
                LOGGER.warning("Scan failed: %s", exc)
            finally:
                self._scanning = False
                self._scan_cancel = None
            return self.registry.snapshot()

    async def stop_scan(self) -> None:
        if self._scan_cancel is not None:
            self._scan_cancel.set()
        try:
            await self.transport.stop_scan()
        except TransportError as exc:
            LOGGER.warning("Stopping scan failed: %s", exc)

    async def connect(self, device: GloveDevice) -> bool:
        async with self._guard():
            self._target_id = device.id
            self._set_state(ConnectionState.CONNECTING)
            device.connection_state = ConnectionState.CONNECTING

            if self._connected_handle is not None and self._connected_handle.id != device.id:
                await self._release_quietly()

            handle = self._resolve_handle(device.id)
            if handle is None:
                LOGGER.warning("Device %s not found among connected or discovered devices", device.id)
                device.connection_state = ConnectionState.ERROR
                self._set_state(ConnectionState.ERROR)
                return False

            try:
                await self.transport.connect(
                    handle,
                    options=ConnectOptions(auto_connect=False, force_direct=True),
                    timeout_s=self.profile.connect_timeout_s,
                )
            except TransportError as exc:
                LOGGER.warning("Connection to %s failed: %s", device.id, exc)
                device.connection_state = ConnectionState.ERROR
                self._set_state(ConnectionState.ERROR)
                return False
            except asyncio.CancelledError:
                LOGGER.info("Connection to %s cancelled", device.id)
                self._target_id = None
                device.connection_state = ConnectionState.DISCONNECTED
                self._set_state(ConnectionState.DISCONNECTED)
                raise

            self._connected_handle = handle
            self._connected_device = device
            device.connection_state = ConnectionState.CONNECTED
            device.last_connected = datetime.now()
            self._set_state(ConnectionState.CONNECTED)
            return True

    async def disconnect(self) -> None:
        """Close the held link; never fails from the caller's point of view."""
        async with self._guard():
            handle = self._connected_handle
            if handle is None:
                return
            try:
                await self.transport.disconnect(handle)
            except TransportError as exc:
                LOGGER.warning("Disconnect from %s failed: %s", handle.id, exc)
            finally:
                self._clear_active(ConnectionState.DISCONNECTED)
                self._target_id = None
                self._set_state(ConnectionState.DISCONNECTED)

    async def write_characteristic(self, service_uuid: str, characteristic_uuid: str, data: bytes) -> bool:
        handle = self._connected_handle
        if handle is None:
            return False
        try:
            characteristic = await self.transport.get_characteristic(handle, service_uuid, characteristic_uuid)
            if characteristic is None:
                LOGGER.warning("Characteristic %s not found on %s", characteristic_uuid, handle.id)
                return False
            await self.transport.write_characteristic(
                characteristic,
                data,
                response=self.profile.write_with_response,
            )
        except TransportError as exc:
            LOGGER.warning("Write to %s failed: %s", characteristic_uuid, exc)
            return False
        LOGGER.debug("Wrote %s to %s", data.hex(), characteristic_uuid)
        return True

    async def read_characteristic(self, service_uuid: str, characteristic_uuid: str) -> bytes:
        handle = self._connected_handle
        if handle is None:
            return b""
        try:
            characteristic = await self.transport.get_characteristic(handle, service_uuid, characteristic_uuid)
            if characteristic is None:
                LOGGER.warning("Characteristic %s not found on %s", characteristic_uuid, handle.id)
                return b""
            return await self.transport.read_characteristic(characteristic)
        except TransportError as exc:
            LOGGER.warning("Read from %s failed: %s", characteristic_uuid, exc)
            return b""

    def _guard(self) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock

    def _resolve_handle(self, device_id: str) -> TransportDevice | None:
        for candidate in self.transport.connected_devices():
            if candidate.id == device_id:
                return candidate
        for candidate in self.transport.discovered_devices():
            if candidate.id == device_id:
                return candidate
        return None

    async def _release_quietly(self) -> None:
        handle = self._connected_handle
        self._clear_active(ConnectionState.DISCONNECTED)
        if handle is None:
            return
        try:
            await self.transport.disconnect(handle)
        except TransportError as exc:
            LOGGER.warning("Releasing %s failed: %s", handle.id, exc)

    def _clear_active(self, cached_state: ConnectionState) -> None:
        if self._connected_device is not None:
            self._connected_device.connection_state = cached_state
        self._connected_handle = None
        self._connected_device = None

    def _tracks(self, device_id: str) -> bool:
        tracked = self._target_id
        if self._connected_handle is not None:
            tracked = self._connected_handle.id
        return tracked is None or tracked == device_id

    def _on_transport_event(self, event: TransportEvent) -> None:
        if event.kind is TransportEventKind.DISCOVERED:
            self._on_discovered(event.device)
            return

        if not self._tracks(event.device.id):
            LOGGER.debug("Ignoring %s event for untracked device %s", event.kind.value, event.device.id)
            return

        if event.kind is TransportEventKind.CONNECTED:
            if self._target_id == event.device.id:
                if self._connected_device is not None:
                    self._connected_device.connection_state = ConnectionState.CONNECTED
                self._set_state(ConnectionState.CONNECTED)
        elif event.kind is TransportEventKind.DISCONNECTED:
            self._clear_active(ConnectionState.DISCONNECTED)
            self._set_state(ConnectionState.DISCONNECTED)
        elif event.kind is TransportEventKind.CONNECTION_LOST:
            if self._state in (ConnectionState.CONNECTED, ConnectionState.CONNECTING):
                LOGGER.warning("Connection to %s lost: %s", event.device.id, event.error)
                self._clear_active(ConnectionState.ERROR)
                self._set_state(ConnectionState.ERROR)

    def _on_discovered(self, advertised: TransportDevice) -> None:
        if not self._scanning:
            return
        if not matches_name_prefix(advertised.name, self.profile.name_prefix):
            return
        device = GloveDevice(
            id=advertised.id,
            name=advertised.name or "",
            mac_address=advertised.address,
            signal_strength=advertised.rssi,
        )
        _, was_new = self.registry.add_if_absent(device)
        if was_new:
            LOGGER.debug("Discovered %s (%s, rssi=%d)", device.name, device.id, device.signal_strength)
            self.device_discovered.emit(device)

    def _set_state(self, new_state: ConnectionState) -> None:
        if new_state is self._state:
            return
        LOGGER.debug("Connection state %s -> %s", self._state.value, new_state.value)
        self._state = new_state
        self.state_changed.emit(new_state)
