"""Stable public API for building tooling on top of volcanoctl.

This module is the supported integration surface for third-party callers
(accessory servers, scripts). Avoid importing from internal modules unless
intentionally depending on non-stable internals.
"""

from __future__ import annotations

import logging
from typing import Any, TypeVar

from volcanoctl.core.config import Settings
from volcanoctl.core.dispatcher import Dispatcher
from volcanoctl.core.errors import (
    ConfigError,
    ConfigLoadError,
    ConfigValidationError,
    ConnectionRetriesExhaustedError,
    DeviceDiscoveryError,
    MissingCharacteristicError,
    RequestAbandonedError,
    TransportConnectError,
    TransportError,
    TransportReadError,
    TransportWriteError,
    VolcanoctlError,
)
from volcanoctl.core.model import (
    DeviceInfo,
    ReadCurrentTemperature,
    ReadTargetTemperature,
    ReadThermalMode,
    Request,
    Shutdown,
    Temperature,
    ThermalMode,
    WriteTargetTemperature,
    WriteThermalMode,
)
from volcanoctl.transports.base import DeviceLink

__all__ = [
    "VolcanoctlError",
    "ConfigError",
    "ConfigLoadError",
    "ConfigValidationError",
    "ConnectionRetriesExhaustedError",
    "DeviceDiscoveryError",
    "MissingCharacteristicError",
    "RequestAbandonedError",
    "TransportError",
    "TransportConnectError",
    "TransportReadError",
    "TransportWriteError",
    "DeviceInfo",
    "Settings",
    "Temperature",
    "ThermalMode",
    "Client",
]

T = TypeVar("T")
LOGGER = logging.getLogger(__name__)


class Client:
    """Public client for talking to the device.

    Every call posts one request to the dispatcher and waits for its reply.
    A request that cannot be queued, or that is dropped before being answered,
    yields `None`; the reason is only visible in the logs.
    """

    def __init__(self, dispatcher: Dispatcher) -> None:
        self._dispatcher = dispatcher

    @classmethod
    async def connect(
        cls,
        settings: Settings | None = None,
        *,
        link: DeviceLink | None = None,
    ) -> Client:
        settings = settings or Settings()
        if link is None:
            link = await _open_ble_link(settings)
        dispatcher = await Dispatcher.start(link, settings)
        return cls(dispatcher)

    @property
    def device_info(self) -> DeviceInfo:
        return self._dispatcher.device_info

    @property
    def closed(self) -> bool:
        return self._dispatcher.closed

    async def join(self) -> None:
        await self._dispatcher.join()

    async def current_temperature(self) -> Temperature | None:
        return await self._request(ReadCurrentTemperature())

    async def target_temperature(self) -> Temperature | None:
        return await self._request(ReadTargetTemperature())

    async def thermal_mode(self) -> ThermalMode | None:
        return await self._request(ReadThermalMode())

    async def set_target_temperature(self, temperature: Temperature) -> bool | None:
        return await self._request(WriteTargetTemperature(temperature))

    async def set_thermal_mode(self, mode: ThermalMode) -> bool | None:
        return await self._request(WriteThermalMode(mode))

    async def shutdown(self) -> bool | None:
        return await self._request(Shutdown())

    async def _request(self, request: Request) -> Any:
        if not self._dispatcher.mailbox.post(request):
            LOGGER.debug("%s not queued: dispatcher closed or busy", type(request).__name__)
        try:
            return await request.reply.wait()
        except RequestAbandonedError:
            return None


async def _open_ble_link(settings: Settings) -> DeviceLink:
    from volcanoctl.transports.ble_gatt import BleakDeviceLink, find_device

    if settings.device_address:
        return BleakDeviceLink(settings.device_address, timeout_s=settings.connect_timeout_s)
    device = await find_device(settings.device_name_contains, timeout_s=settings.scan_timeout_s)
    return BleakDeviceLink(device, timeout_s=settings.connect_timeout_s)
