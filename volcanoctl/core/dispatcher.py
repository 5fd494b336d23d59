"""Dispatcher: owner of the device link and router of every request.

The dispatcher discovers the characteristics once at startup and hands each
group to the worker that will own it for the rest of the process. From then
on it only keeps the workers' mailboxes. Every request is forwarded as-is, so
the worker answers the original caller directly.

A link that cannot be re-established within the retry budget is fatal: the
dispatcher stops, and everything it has not forwarded yet goes unanswered.
"""

from __future__ import annotations

import asyncio
import logging

from volcanoctl.core.config import Settings
from volcanoctl.core.errors import ConnectionRetriesExhaustedError, TransportConnectError, TransportError
from volcanoctl.core.gatt import DeviceCharacteristics, discover_characteristics, read_device_info
from volcanoctl.core.model import DeviceInfo, Mailbox, Request, Shutdown
from volcanoctl.core.retry import retry_async
from volcanoctl.core.workers import (
    CurrentTemperatureWorker,
    ResourceWorker,
    TargetTemperatureWorker,
    ThermalModeWorker,
)
from volcanoctl.transports.base import DeviceLink

LOGGER = logging.getLogger(__name__)


async def connect_if_needed(link: DeviceLink, *, retries: int) -> None:
    if link.is_connected:
        return
    result = await retry_async(
        link.connect,
        attempts=retries + 1,
        retry_on=(TransportConnectError,),
        description=f"connect to {link.address}",
    )
    if result.exhausted:
        raise ConnectionRetriesExhaustedError(
            f"Could not connect to {link.address} after {result.attempts} attempts"
        ) from result.last_error


async def _release(link: DeviceLink) -> None:
    """Disconnect after a failed start without masking the original error."""
    try:
        await link.disconnect()
    except TransportError as exc:
        LOGGER.warning("Disconnect after failed start failed: %s", exc)


def build_workers(chars: DeviceCharacteristics, *, capacity: int = 32) -> list[ResourceWorker]:
    return [
        CurrentTemperatureWorker(chars.current_temperature, capacity=capacity),
        TargetTemperatureWorker(chars.target_temperature, capacity=capacity),
        ThermalModeWorker(
            chars.heat_air_status,
            start_heat=chars.start_heat,
            stop_heat=chars.stop_heat,
            start_air=chars.start_air,
            stop_air=chars.stop_air,
            capacity=capacity,
        ),
    ]


class Dispatcher:
    def __init__(
        self,
        link: DeviceLink,
        workers: list[ResourceWorker],
        *,
        device_info: DeviceInfo | None = None,
        capacity: int = 32,
        connect_retries: int = 2,
    ) -> None:
        self.link = link
        self.mailbox = Mailbox(capacity)
        self.device_info = device_info or DeviceInfo(name=link.name, address=link.address)
        self.connect_retries = connect_retries
        self._worker_mailboxes = [worker.mailbox for worker in workers]
        self._routes: dict[type, Mailbox] = {}
        for worker in workers:
            for kind in worker.handles():
                self._routes[kind] = worker.mailbox
        self._workers = workers
        self._tasks: list[asyncio.Task[None]] = []
        self._task: asyncio.Task[None] | None = None

    @classmethod
    async def start(cls, link: DeviceLink, settings: Settings | None = None) -> Dispatcher:
        settings = settings or Settings()
        await connect_if_needed(link, retries=settings.connect_retries)
        try:
            await asyncio.sleep(settings.settle_interval_s)
            chars = discover_characteristics(link)
            info = await read_device_info(link, chars)
        except BaseException:
            await _release(link)
            raise

        LOGGER.info(
            "Connected to %s (%s) firmware=%s model=%s serial=%s",
            info.name,
            info.address,
            info.firmware,
            info.model,
            info.serial,
        )

        dispatcher = cls(
            link,
            build_workers(chars, capacity=settings.queue_capacity),
            device_info=info,
            capacity=settings.queue_capacity,
            connect_retries=settings.connect_retries,
        )
        dispatcher.spawn()
        return dispatcher

    @property
    def closed(self) -> bool:
        return self.mailbox.closed

    def spawn(self) -> None:
        if self._task is not None:
            raise RuntimeError("dispatcher already running")
        self._tasks = [asyncio.create_task(worker.run(), name=f"volcanoctl-{worker.name}") for worker in self._workers]
        self._task = asyncio.create_task(self.run(), name="volcanoctl-dispatcher")

    async def join(self) -> None:
        """Wait for the dispatcher and workers to stop; re-raises a fatal dispatcher error."""
        if self._task is None:
            return
        try:
            await self._task
        finally:
            results = await asyncio.gather(*self._tasks, return_exceptions=True)
            for worker, result in zip(self._workers, results):
                if result is not None:
                    LOGGER.error("%s worker crashed: %r", worker.name, result)

    async def run(self) -> None:
        request: Request | None = None
        try:
            while (request := await self.mailbox.receive()) is not None:
                if isinstance(request, Shutdown):
                    request.reply.deliver(await self._disconnect())
                    request = None
                    LOGGER.info("Dispatcher shut down")
                    return
                await connect_if_needed(self.link, retries=self.connect_retries)
                await self._route(request)
                # the worker owns the reply from here on
                request = None
        except ConnectionRetriesExhaustedError as exc:
            LOGGER.error("Stopping: %s", exc)
            raise
        finally:
            if request is not None:
                request.reply.abandon()
            self._stop()

    async def _route(self, request: Request) -> None:
        mailbox = self._routes.get(type(request))
        if mailbox is None:
            LOGGER.warning("No worker for request %s", type(request).__name__)
            request.reply.abandon()
            return
        await mailbox.put(request)

    async def _disconnect(self) -> bool:
        if not self.link.is_connected:
            return True
        try:
            await self.link.disconnect()
        except TransportError as exc:
            LOGGER.warning("Disconnect failed: %s", exc)
            return False
        return True

    def _stop(self) -> None:
        self.mailbox.close()
        dropped = self.mailbox.abandon_pending()
        if dropped:
            LOGGER.warning("Dropped %d requests queued behind shutdown", dropped)
        for mailbox in self._worker_mailboxes:
            mailbox.close()
