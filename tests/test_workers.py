from __future__ import annotations

import asyncio

import pytest

from fakes import FakeCharacteristic, make_characteristics
from volcanoctl.core.errors import RequestAbandonedError
from volcanoctl.core.model import (
    ReadCurrentTemperature,
    ReadTargetTemperature,
    ReadThermalMode,
    Temperature,
    ThermalMode,
    WriteTargetTemperature,
    WriteThermalMode,
)
from volcanoctl.core.workers import (
    CurrentTemperatureWorker,
    TargetTemperatureWorker,
    ThermalModeWorker,
)


def _mode_worker(chars: dict[str, FakeCharacteristic]) -> ThermalModeWorker:
    return ThermalModeWorker(
        chars["heat_air_status"],
        start_heat=chars["start_heat"],
        stop_heat=chars["stop_heat"],
        start_air=chars["start_air"],
        stop_air=chars["stop_air"],
    )


@pytest.mark.asyncio
async def test_cache_starts_stale_at_zero() -> None:
    char = FakeCharacteristic("current", b"\xcd\x00")
    char.fail_reads = True
    worker = CurrentTemperatureWorker(char)

    assert worker.fresh is False
    assert await worker.read() == Temperature.zero()
    assert char.reads == 1


@pytest.mark.asyncio
async def test_read_failure_falls_back_to_last_value() -> None:
    char = FakeCharacteristic("current", b"\xcd\x00")
    worker = CurrentTemperatureWorker(char)

    assert await worker.read() == Temperature(20.5)
    char.fail_reads = True
    char.value = b"\x00\x01"
    assert await worker.read() == Temperature(20.5)
    assert char.reads == 2


@pytest.mark.asyncio
async def test_freshness_law_after_write() -> None:
    char = FakeCharacteristic("target", b"\x3a\x07")
    worker = TargetTemperatureWorker(char)

    assert await worker.write(Temperature(190.0)) is True
    assert char.writes == [b"\x6c\x07"]

    # device has not caught up yet
    char.value = b"\x3a\x07"
    assert await worker.read() == Temperature(190.0)
    assert char.reads == 0

    assert await worker.read() == Temperature(185.0)
    assert char.reads == 1
    assert worker.fresh is False


@pytest.mark.asyncio
async def test_failed_write_keeps_optimistic_cache() -> None:
    char = FakeCharacteristic("target", b"\x3a\x07")
    char.fail_writes = True
    worker = TargetTemperatureWorker(char)

    assert await worker.write(Temperature(200.0)) is False
    assert worker.fresh is True
    assert await worker.read() == Temperature(200.0)
    assert char.reads == 0


@pytest.mark.asyncio
async def test_thermal_mode_read_decodes_status() -> None:
    chars = make_characteristics()
    chars["heat_air_status"].value = b"\x23\x30"
    worker = _mode_worker(chars)

    assert await worker.read() == ThermalMode.COOLING


@pytest.mark.parametrize(
    ("mode", "expected"),
    [
        (ThermalMode.OFF, {"stop_heat", "stop_air"}),
        (ThermalMode.HEATING, {"start_heat", "stop_air"}),
        (ThermalMode.COOLING, {"start_heat", "start_air"}),
    ],
)
@pytest.mark.asyncio
async def test_thermal_mode_write_toggles(mode: ThermalMode, expected: set[str]) -> None:
    chars = make_characteristics()
    worker = _mode_worker(chars)

    assert await worker.write(mode) is True

    toggles = ("start_heat", "stop_heat", "start_air", "stop_air")
    written = {name for name in toggles if chars[name].writes}
    assert written == expected
    for name in expected:
        assert chars[name].writes == [b"\x01"]


@pytest.mark.asyncio
async def test_thermal_mode_partial_failure_still_reports_success() -> None:
    chars = make_characteristics()
    chars["start_air"].fail_writes = True
    worker = _mode_worker(chars)

    assert await worker.write(ThermalMode.COOLING) is True
    assert chars["start_heat"].writes == [b"\x01"]
    assert chars["start_air"].writes == [b"\x01"]
    assert await worker.read() == ThermalMode.COOLING


@pytest.mark.asyncio
async def test_unsupported_request_is_abandoned() -> None:
    worker = CurrentTemperatureWorker(FakeCharacteristic("current", b"\xcd\x00"))
    request = WriteTargetTemperature(Temperature(10.0))

    await worker.handle(request)

    with pytest.raises(RequestAbandonedError):
        await request.reply.wait()


@pytest.mark.asyncio
async def test_requests_are_answered_in_order() -> None:
    char = FakeCharacteristic("target", b"\x3a\x07", delay_s=0.01)
    worker = TargetTemperatureWorker(char)
    task = asyncio.create_task(worker.run())

    requests = [
        ReadTargetTemperature(),
        WriteTargetTemperature(Temperature(190.0)),
        ReadTargetTemperature(),  # cache hit
        ReadTargetTemperature(),
        ReadTargetTemperature(),
    ]
    order: list[int] = []

    async def _wait(index: int, request) -> object:
        value = await request.reply.wait()
        order.append(index)
        return value

    for request in requests:
        assert worker.mailbox.post(request)
    results = await asyncio.gather(*(_wait(i, r) for i, r in enumerate(requests)))

    assert order == list(range(len(requests)))
    assert results == [
        Temperature(185.0),
        True,
        Temperature(190.0),
        Temperature(190.0),
        Temperature(190.0),
    ]
    assert char.reads == 3

    worker.mailbox.close()
    await task


@pytest.mark.asyncio
async def test_worker_drains_queue_before_stopping() -> None:
    worker = CurrentTemperatureWorker(FakeCharacteristic("current", b"\xcd\x00"))
    first, second = ReadCurrentTemperature(), ReadCurrentTemperature()
    worker.mailbox.post(first)
    worker.mailbox.post(second)
    worker.mailbox.close()

    await worker.run()

    assert await first.reply.wait() == Temperature(20.5)
    assert await second.reply.wait() == Temperature(20.5)
    assert worker.mailbox.post(ReadCurrentTemperature()) is False


@pytest.mark.asyncio
async def test_crashed_worker_abandons_pending_requests() -> None:
    class ExplodingCharacteristic(FakeCharacteristic):
        async def read(self) -> bytes:
            raise RuntimeError("boom")

    chars = make_characteristics()
    chars["heat_air_status"] = ExplodingCharacteristic("status")
    worker = _mode_worker(chars)
    first, second = ReadThermalMode(), ReadThermalMode()
    worker.mailbox.post(first)
    worker.mailbox.post(second)

    with pytest.raises(RuntimeError):
        await worker.run()

    for request in (first, second):
        with pytest.raises(RequestAbandonedError):
            await request.reply.wait()


@pytest.mark.asyncio
@pytest.mark.parametrize("worker_cls", [CurrentTemperatureWorker, TargetTemperatureWorker])
async def test_short_temperature_payload_keeps_last_value(worker_cls) -> None:
    char = FakeCharacteristic("temperature", b"\x6c\x07")
    worker = worker_cls(char)
    task = asyncio.create_task(worker.run())

    requests = [worker_cls.read_request() for _ in range(3)]
    worker.mailbox.post(requests[0])
    assert await requests[0].reply.wait() == Temperature(190.0)

    char.value = b"\x01"
    worker.mailbox.post(requests[1])
    assert await requests[1].reply.wait() == Temperature(190.0)

    char.value = b"\xac\x07"
    worker.mailbox.post(requests[2])
    assert await requests[2].reply.wait() == Temperature(196.4)

    assert not task.done()
    worker.mailbox.close()
    await task
