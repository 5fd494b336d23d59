"""BLE GATT transport implementation backed by bleak."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence

from bleak import BleakClient, BleakScanner
from bleak.backends.device import BLEDevice
from bleak.exc import BleakError

from volcanoctl.core.errors import (
    DeviceDiscoveryError,
    TransportConnectError,
    TransportReadError,
    TransportWriteError,
)

_LINK_ERRORS = (BleakError, asyncio.TimeoutError, OSError)


class BleakRemoteCharacteristic:
    """A single characteristic, addressed by UUID on a shared client."""

    def __init__(self, client: BleakClient, uuid: str, *, write_with_response: bool = True) -> None:
        self._client = client
        self.uuid = uuid.lower()
        self.write_with_response = write_with_response

    async def read(self) -> bytes:
        try:
            data = await self._client.read_gatt_char(self.uuid)
        except _LINK_ERRORS as exc:
            raise TransportReadError(f"BLE read of {self.uuid} failed: {exc}") from exc
        return bytes(data)

    async def write(self, data: bytes) -> None:
        try:
            await self._client.write_gatt_char(self.uuid, data, response=self.write_with_response)
        except _LINK_ERRORS as exc:
            raise TransportWriteError(f"BLE write of {self.uuid} failed: {exc}") from exc

    def __repr__(self) -> str:
        return f"BleakRemoteCharacteristic({self.uuid!r})"


class BleakDeviceLink:
    def __init__(self, device: BLEDevice | str, *, timeout_s: float = 10.0) -> None:
        if isinstance(device, BLEDevice):
            self.name = device.name
            self.address = device.address
        else:
            self.name = None
            self.address = device
        self._client = BleakClient(device, timeout=timeout_s)

    @property
    def is_connected(self) -> bool:
        return self._client.is_connected

    async def connect(self) -> None:
        try:
            await self._client.connect()
        except _LINK_ERRORS as exc:
            raise TransportConnectError(f"BLE connect failed for {self.address}: {exc}") from exc
        if not self._client.is_connected:
            raise TransportConnectError(f"BLE connect failed for {self.address}")

    async def disconnect(self) -> None:
        try:
            await self._client.disconnect()
        except _LINK_ERRORS as exc:
            raise TransportConnectError(f"BLE disconnect failed for {self.address}: {exc}") from exc

    def services(self) -> Mapping[str, Sequence[BleakRemoteCharacteristic]]:
        mapping: dict[str, list[BleakRemoteCharacteristic]] = {}
        for service in self._client.services:
            mapping[service.uuid.lower()] = [
                BleakRemoteCharacteristic(self._client, char.uuid) for char in service.characteristics
            ]
        return mapping


async def scan_devices(name_contains: str, *, timeout_s: float = 10.0) -> list[BLEDevice]:
    token = name_contains.lower()
    try:
        devices = await BleakScanner.discover(timeout=timeout_s)
    except _LINK_ERRORS as exc:
        raise DeviceDiscoveryError(f"BLE scan failed. Ensure a working adapter. Details: {exc}") from exc
    return sorted(
        (d for d in devices if d.name and token in d.name.lower()),
        key=lambda d: d.address,
    )


async def find_device(name_contains: str, *, timeout_s: float = 10.0) -> BLEDevice:
    token = name_contains.lower()
    try:
        device = await BleakScanner.find_device_by_filter(
            lambda d, _adv: bool(d.name) and token in d.name.lower(),
            timeout=timeout_s,
        )
    except _LINK_ERRORS as exc:
        raise DeviceDiscoveryError(f"BLE scan failed. Ensure a working adapter. Details: {exc}") from exc
    if device is None:
        raise DeviceDiscoveryError(
            f"No BLE device with a name containing '{name_contains}' found within {timeout_s:g}s"
        )
    return device
