"""Core data models shared by the codec, workers, dispatcher and façade."""

from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from volcanoctl.core.errors import RequestAbandonedError

T = TypeVar("T")


@dataclass(frozen=True)
class Temperature:
    celsius: float

    @classmethod
    def zero(cls) -> Temperature:
        return cls(0.0)


class ThermalMode(enum.Enum):
    OFF = "off"
    HEATING = "heating"
    COOLING = "cooling"


@dataclass(frozen=True)
class DeviceInfo:
    name: str | None = None
    address: str | None = None
    firmware: str | None = None
    model: str | None = None
    serial: str | None = None


class ReplySlot(Generic[T]):
    """Single-use answer channel from a worker back to the original caller.

    Exactly one of `deliver` or `abandon` takes effect; anything after that is
    ignored, as is a delivery to a caller that already stopped waiting.
    """

    def __init__(self) -> None:
        self._future: asyncio.Future[T] = asyncio.get_running_loop().create_future()

    @property
    def done(self) -> bool:
        return self._future.done()

    def deliver(self, value: T) -> None:
        if not self._future.done():
            self._future.set_result(value)

    def abandon(self) -> None:
        if not self._future.done():
            self._future.set_exception(RequestAbandonedError("request was dropped without a reply"))

    async def wait(self) -> T:
        return await self._future


@dataclass(frozen=True)
class ReadCurrentTemperature:
    reply: ReplySlot[Temperature] = field(default_factory=ReplySlot)


@dataclass(frozen=True)
class ReadTargetTemperature:
    reply: ReplySlot[Temperature] = field(default_factory=ReplySlot)


@dataclass(frozen=True)
class ReadThermalMode:
    reply: ReplySlot[ThermalMode] = field(default_factory=ReplySlot)


@dataclass(frozen=True)
class WriteTargetTemperature:
    value: Temperature
    reply: ReplySlot[bool] = field(default_factory=ReplySlot)


@dataclass(frozen=True)
class WriteThermalMode:
    value: ThermalMode
    reply: ReplySlot[bool] = field(default_factory=ReplySlot)


@dataclass(frozen=True)
class Shutdown:
    reply: ReplySlot[bool] = field(default_factory=ReplySlot)


Request = (
    ReadCurrentTemperature
    | ReadTargetTemperature
    | ReadThermalMode
    | WriteTargetTemperature
    | WriteThermalMode
    | Shutdown
)


_CLOSED: Any = object()


class Mailbox:
    """Bounded FIFO of requests feeding exactly one consumer task.

    Closing stops new posts; the consumer drains what is already queued and
    then sees `None`. `abandon_pending` drops the queued requests instead.
    """

    def __init__(self, capacity: int = 32) -> None:
        if capacity < 1:
            raise ValueError("mailbox capacity must be at least 1")
        self.capacity = capacity
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=capacity)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def post(self, request: Request) -> bool:
        """Enqueue without waiting. Refused requests are abandoned."""
        if self._closed:
            request.reply.abandon()
            return False
        try:
            self._queue.put_nowait(request)
        except asyncio.QueueFull:
            request.reply.abandon()
            return False
        return True

    async def put(self, request: Request) -> bool:
        """Enqueue, waiting for space when the mailbox is full."""
        if self._closed:
            request.reply.abandon()
            return False
        await self._queue.put(request)
        return True

    async def receive(self) -> Request | None:
        if self._closed and self._queue.empty():
            return None
        item = await self._queue.get()
        if item is _CLOSED:
            return None
        return item

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._queue.put_nowait(_CLOSED)
        except asyncio.QueueFull:
            # consumer is busy with queued items and will see closed+empty afterwards
            pass

    def abandon_pending(self) -> int:
        dropped = 0
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if item is _CLOSED:
                continue
            item.reply.abandon()
            dropped += 1
        if self._closed:
            # keep the wake-up marker for a consumer blocked in receive()
            self._queue.put_nowait(_CLOSED)
        return dropped
