"""Typer CLI entrypoint."""

from __future__ import annotations

import asyncio
import enum
from pathlib import Path
from typing import Any

import typer

from volcanoctl.api import Client
from volcanoctl.bridge import InMemoryCharacteristicStore, poll_loop
from volcanoctl.core import codec
from volcanoctl.core.config import Settings, load_settings
from volcanoctl.core.errors import VolcanoctlError
from volcanoctl.core.model import ThermalMode
from volcanoctl.logging_setup import setup_logging
from volcanoctl.transports.ble_gatt import scan_devices

app = typer.Typer(help="Control a Volcano heater over BLE and bridge it to a thermostat accessory")


class ModeChoice(str, enum.Enum):
    off = "off"
    heat = "heat"
    cool = "cool"


_MODES = {
    ModeChoice.off: ThermalMode.OFF,
    ModeChoice.heat: ThermalMode.HEATING,
    ModeChoice.cool: ThermalMode.COOLING,
}


@app.callback()
def main(
    ctx: typer.Context,
    config: Path | None = typer.Option(None, "--config", help="Path to a YAML config file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    setup_logging(verbose=verbose)
    ctx.obj = {"config": config}


def _settings(ctx: typer.Context) -> Settings:
    return load_settings(ctx.obj["config"] if ctx.obj else None)


async def _with_client(settings: Settings, action: Any) -> Any:
    client = await Client.connect(settings)
    try:
        result = await action(client)
    finally:
        await client.shutdown()
    # surfaces a connection loss that stopped the dispatcher
    await client.join()
    return result


@app.command("scan")
def scan(ctx: typer.Context) -> None:
    """List nearby BLE devices whose name matches the configured filter."""
    try:
        settings = _settings(ctx)
        devices = asyncio.run(
            scan_devices(settings.device_name_contains, timeout_s=settings.scan_timeout_s)
        )
    except VolcanoctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None

    if not devices:
        typer.echo(f"No devices matching '{settings.device_name_contains}' found")
        return
    for device in devices:
        typer.echo(f"{device.address} {device.name}")


@app.command("status")
def status(ctx: typer.Context) -> None:
    """Print device info, temperatures and heat/air mode."""

    async def _read(client: Client) -> tuple[Any, ...]:
        return (
            client.device_info,
            await client.current_temperature(),
            await client.target_temperature(),
            await client.thermal_mode(),
        )

    try:
        settings = _settings(ctx)
        info, current, target, mode = asyncio.run(_with_client(settings, _read))
    except VolcanoctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None

    typer.echo(f"Device: {info.name or '<unknown>'} ({info.address})")
    typer.echo(f"  firmware: {info.firmware or '-'}  model: {info.model or '-'}  serial: {info.serial or '-'}")
    for label, temperature in (("current", current), ("target", target)):
        if temperature is None:
            typer.echo(f"  {label} temperature: unavailable")
            continue
        external = codec.temperature_to_external(temperature, settings.apply_offset)
        typer.echo(f"  {label} temperature: {temperature.celsius:.1f} C (accessory {external:.2f})")
    typer.echo(f"  mode: {mode.value if mode is not None else 'unavailable'}")


@app.command("set-temp")
def set_temp(
    ctx: typer.Context,
    value: float,
    celsius: bool = typer.Option(
        False,
        "--celsius/--external",
        help="Interpret VALUE as device Celsius instead of the accessory scale",
    ),
) -> None:
    """Set the target temperature."""
    try:
        settings = _settings(ctx)
        temperature = codec.temperature_from_external(value, settings.apply_offset and not celsius)
        ok = asyncio.run(_with_client(settings, lambda c: c.set_target_temperature(temperature)))
    except VolcanoctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None

    if not ok:
        typer.echo("Error: target temperature was not written", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Target temperature set to {temperature.celsius:.1f} C")


@app.command("set-mode")
def set_mode(ctx: typer.Context, mode: ModeChoice) -> None:
    """Switch heat/air on or off."""
    try:
        settings = _settings(ctx)
        ok = asyncio.run(_with_client(settings, lambda c: c.set_thermal_mode(_MODES[mode])))
    except VolcanoctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None

    if not ok:
        typer.echo("Error: mode was not written", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Mode set to {_MODES[mode].value}")


@app.command("bridge")
def bridge(
    ctx: typer.Context,
    polls: int | None = typer.Option(None, "--polls", min=1, help="Stop after this many polls"),
) -> None:
    """Poll the device and print accessory-side characteristic updates."""
    store = InMemoryCharacteristicStore()
    store.add_listener(lambda key, value: typer.echo(f"{key} = {value}"))

    try:
        settings = _settings(ctx)
        asyncio.run(
            _with_client(
                settings,
                lambda c: poll_loop(
                    c,
                    store,
                    interval_s=settings.poll_interval_s,
                    apply_offset=settings.apply_offset,
                    max_polls=polls,
                ),
            )
        )
    except VolcanoctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None
    except KeyboardInterrupt:
        typer.echo("Interrupted", err=True)


def run() -> None:
    app()


if __name__ == "__main__":
    run()
