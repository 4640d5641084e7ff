"""Scan-scoped catalog of discovered gloves."""

from __future__ import annotations

from glovectl.core.model import GloveDevice


def matches_name_prefix(name: str | None, prefix: str) -> bool:
    if not name:
        return False
    return name.lower().startswith(prefix.lower())


class DeviceRegistry:
    """Deduplicates advertisements by device id for one scan session.

    The first record seen for an id is kept; later advertisements for the same
    id do not overwrite it. There is no removal: the registry is cleared at the
    start of the next scan.
    """

    def __init__(self) -> None:
        self._devices: dict[str, GloveDevice] = {}

    def clear(self) -> None:
        self._devices.clear()

    def add_if_absent(self, device: GloveDevice) -> tuple[GloveDevice, bool]:
        existing = self._devices.get(device.id)
        if existing is not None:
            return existing, False
        self._devices[device.id] = device
        return device, True

    def get(self, device_id: str) -> GloveDevice | None:
        return self._devices.get(device_id)

    def snapshot(self) -> list[GloveDevice]:
        return list(self._devices.values())

    def __len__(self) -> int:
        return len(self._devices)
