"""Resource workers: one task per group of owned characteristics.

Each worker is the only code that touches its characteristics. Requests are
handled one at a time in arrival order, which is all the synchronization the
characteristics get.

After a write the device takes a while to report the new value, so the
written value is cached and flagged fresh: the next read answers from the
cache without asking the device, and the read after that goes remote again.
A failed write leaves the cache and flag as they are.
"""

from __future__ import annotations

import asyncio
import logging
from typing import ClassVar, Generic, TypeVar

from volcanoctl.core import codec
from volcanoctl.core.errors import TransportError, TransportReadError
from volcanoctl.core.model import (
    Mailbox,
    ReadCurrentTemperature,
    ReadTargetTemperature,
    ReadThermalMode,
    Request,
    Temperature,
    ThermalMode,
    WriteTargetTemperature,
    WriteThermalMode,
)
from volcanoctl.transports.base import RemoteCharacteristic

V = TypeVar("V")
LOGGER = logging.getLogger(__name__)

TOGGLE_ON = b"\x01"


async def _read_temperature(characteristic: RemoteCharacteristic) -> Temperature:
    data = await characteristic.read()
    if len(data) < 2:
        raise TransportReadError(f"short temperature payload from {characteristic.uuid}: {bytes(data).hex()!r}")
    return codec.temperature_from_wire(data)


class ResourceWorker(Generic[V]):
    name: ClassVar[str] = "resource"
    read_request: ClassVar[type]
    write_request: ClassVar[type | None] = None

    def __init__(self, initial: V, *, capacity: int = 32) -> None:
        self.mailbox = Mailbox(capacity)
        self.cache: V = initial
        self.fresh = False

    def handles(self) -> tuple[type, ...]:
        if self.write_request is None:
            return (self.read_request,)
        return (self.read_request, self.write_request)

    async def run(self) -> None:
        LOGGER.debug("%s worker started", self.name)
        request: Request | None = None
        try:
            while (request := await self.mailbox.receive()) is not None:
                await self.handle(request)
        finally:
            if request is not None:
                request.reply.abandon()
            self.mailbox.close()
            dropped = self.mailbox.abandon_pending()
            if dropped:
                LOGGER.warning("%s worker stopped with %d unanswered requests", self.name, dropped)
        LOGGER.debug("%s worker stopped", self.name)

    async def handle(self, request: Request) -> None:
        if isinstance(request, self.read_request):
            request.reply.deliver(await self.read())
        elif self.write_request is not None and isinstance(request, self.write_request):
            request.reply.deliver(await self.write(request.value))
        else:
            LOGGER.warning("%s worker dropped unsupported request %s", self.name, type(request).__name__)
            request.reply.abandon()

    async def read(self) -> V:
        if self.fresh:
            self.fresh = False
            return self.cache

        try:
            self.cache = await self._read_remote()
        except TransportError as exc:
            LOGGER.debug("%s read failed, keeping last value %r: %s", self.name, self.cache, exc)
        return self.cache

    async def write(self, value: V) -> bool:
        self.cache = value
        self.fresh = True
        try:
            await self._write_remote(value)
        except TransportError as exc:
            LOGGER.warning("%s write of %r failed: %s", self.name, value, exc)
            return False
        return True

    async def _read_remote(self) -> V:
        raise NotImplementedError

    async def _write_remote(self, value: V) -> None:
        raise NotImplementedError(f"{self.name} is read-only")


class CurrentTemperatureWorker(ResourceWorker[Temperature]):
    name = "current-temperature"
    read_request = ReadCurrentTemperature

    def __init__(self, characteristic: RemoteCharacteristic, *, capacity: int = 32) -> None:
        super().__init__(Temperature.zero(), capacity=capacity)
        self._characteristic = characteristic

    async def _read_remote(self) -> Temperature:
        return await _read_temperature(self._characteristic)


class TargetTemperatureWorker(ResourceWorker[Temperature]):
    name = "target-temperature"
    read_request = ReadTargetTemperature
    write_request = WriteTargetTemperature

    def __init__(self, characteristic: RemoteCharacteristic, *, capacity: int = 32) -> None:
        super().__init__(Temperature.zero(), capacity=capacity)
        self._characteristic = characteristic

    async def _read_remote(self) -> Temperature:
        return await _read_temperature(self._characteristic)

    async def _write_remote(self, value: Temperature) -> None:
        payload = codec.temperature_to_wire(value)
        LOGGER.debug("writing target temperature %s", payload.hex())
        await self._characteristic.write(payload)


class ThermalModeWorker(ResourceWorker[ThermalMode]):
    name = "thermal-mode"
    read_request = ReadThermalMode
    write_request = WriteThermalMode

    def __init__(
        self,
        status: RemoteCharacteristic,
        *,
        start_heat: RemoteCharacteristic,
        stop_heat: RemoteCharacteristic,
        start_air: RemoteCharacteristic,
        stop_air: RemoteCharacteristic,
        capacity: int = 32,
    ) -> None:
        super().__init__(ThermalMode.OFF, capacity=capacity)
        self._status = status
        self._toggles = {
            ThermalMode.OFF: (stop_heat, stop_air),
            ThermalMode.HEATING: (start_heat, stop_air),
            ThermalMode.COOLING: (start_heat, start_air),
        }

    async def _read_remote(self) -> ThermalMode:
        return codec.thermal_mode_from_wire(await self._status.read())

    async def _write_remote(self, value: ThermalMode) -> None:
        toggles = self._toggles[value]
        results = await asyncio.gather(
            *(toggle.write(TOGGLE_ON) for toggle in toggles),
            return_exceptions=True,
        )
        # the mode counts as written once both toggles were attempted
        for toggle, result in zip(toggles, results):
            if isinstance(result, TransportError):
                LOGGER.warning("%s toggle %s failed: %s", self.name, toggle.uuid, result)
            elif isinstance(result, BaseException):
                raise result
