from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest
from typer.testing import CliRunner

from volcanoctl import cli
from volcanoctl.core.config import Settings
from volcanoctl.core.errors import DeviceDiscoveryError
from volcanoctl.core.model import DeviceInfo, Temperature, ThermalMode


class FakeClient:
    last: FakeClient | None = None

    def __init__(self) -> None:
        self.device_info = DeviceInfo(
            name="VOLCANO H 1234",
            address="AA:BB:CC:DD:EE:FF",
            firmware="V6.01",
            model="VOLCANO HYBRID",
        )
        self.closed = False
        self.write_ok = True
        self.temperature_writes: list[Temperature] = []
        self.mode_writes: list[ThermalMode] = []
        self.shutdowns = 0

    @classmethod
    async def connect(cls, settings=None, *, link=None):
        cls.last = cls()
        return cls.last

    async def current_temperature(self):
        return Temperature(190.0)

    async def target_temperature(self):
        return None

    async def thermal_mode(self):
        return ThermalMode.HEATING

    async def set_target_temperature(self, temperature):
        self.temperature_writes.append(temperature)
        return self.write_ok

    async def set_thermal_mode(self, mode):
        self.mode_writes.append(mode)
        return self.write_ok

    async def shutdown(self):
        self.shutdowns += 1
        self.closed = True
        return True

    async def join(self):
        return None


runner = CliRunner()


@pytest.fixture
def fake_client(monkeypatch: pytest.MonkeyPatch) -> type[FakeClient]:
    monkeypatch.setattr(cli, "Client", FakeClient)
    monkeypatch.setattr(cli, "load_settings", lambda path=None: Settings(poll_interval_s=0.0))
    return FakeClient


def test_status_command(fake_client) -> None:
    result = runner.invoke(cli.app, ["status"])
    assert result.exit_code == 0
    assert "Device: VOLCANO H 1234 (AA:BB:CC:DD:EE:FF)" in result.stdout
    assert "firmware: V6.01" in result.stdout
    assert "current temperature: 190.0 C (accessory 362.22)" in result.stdout
    assert "target temperature: unavailable" in result.stdout
    assert "mode: heating" in result.stdout
    assert fake_client.last.shutdowns == 1


def test_set_temp_in_celsius(fake_client) -> None:
    result = runner.invoke(cli.app, ["set-temp", "200", "--celsius"])
    assert result.exit_code == 0
    assert "Target temperature set to 200.0 C" in result.stdout
    assert fake_client.last.temperature_writes == [Temperature(200.0)]


def test_set_temp_in_accessory_scale(fake_client) -> None:
    result = runner.invoke(cli.app, ["set-temp", "372.2222222"])
    assert result.exit_code == 0
    assert fake_client.last.temperature_writes[0].celsius == pytest.approx(200.0)


def test_set_mode_command(fake_client) -> None:
    result = runner.invoke(cli.app, ["set-mode", "cool"])
    assert result.exit_code == 0
    assert "Mode set to cooling" in result.stdout
    assert fake_client.last.mode_writes == [ThermalMode.COOLING]


def test_set_mode_rejects_unknown_mode(fake_client) -> None:
    result = runner.invoke(cli.app, ["set-mode", "turbo"])
    assert result.exit_code != 0


def test_failed_write_exits_non_zero(monkeypatch: pytest.MonkeyPatch, fake_client) -> None:
    class RefusingClient(FakeClient):
        def __init__(self) -> None:
            super().__init__()
            self.write_ok = False

    monkeypatch.setattr(cli, "Client", RefusingClient)
    result = runner.invoke(cli.app, ["set-mode", "off"])
    assert result.exit_code == 1
    assert "Error: mode was not written" in result.stderr


def test_connect_error_is_clean(monkeypatch: pytest.MonkeyPatch, fake_client) -> None:
    class MissingClient(FakeClient):
        @classmethod
        async def connect(cls, settings=None, *, link=None):
            raise DeviceDiscoveryError("No BLE device with a name containing 'VOLCANO' found within 10s")

    monkeypatch.setattr(cli, "Client", MissingClient)
    result = runner.invoke(cli.app, ["status"])
    assert result.exit_code == 1
    assert "Error: No BLE device with a name containing 'VOLCANO'" in result.stderr
    assert "Traceback" not in result.stdout
    assert "Traceback" not in result.stderr


def test_scan_command(monkeypatch: pytest.MonkeyPatch, fake_client) -> None:
    async def fake_scan(name_contains: str, *, timeout_s: float = 10.0):
        assert name_contains == "VOLCANO"
        return [SimpleNamespace(address="AA:BB:CC:DD:EE:FF", name="VOLCANO H 1234")]

    monkeypatch.setattr(cli, "scan_devices", fake_scan)
    result = runner.invoke(cli.app, ["scan"])
    assert result.exit_code == 0
    assert "AA:BB:CC:DD:EE:FF VOLCANO H 1234" in result.stdout


def test_scan_without_matches(monkeypatch: pytest.MonkeyPatch, fake_client) -> None:
    async def fake_scan(name_contains: str, *, timeout_s: float = 10.0):
        return []

    monkeypatch.setattr(cli, "scan_devices", fake_scan)
    result = runner.invoke(cli.app, ["scan"])
    assert result.exit_code == 0
    assert "No devices matching 'VOLCANO' found" in result.stdout


def test_bridge_command_prints_updates(fake_client) -> None:
    result = runner.invoke(cli.app, ["bridge", "--polls", "2"])
    assert result.exit_code == 0
    assert result.stdout.count("current_heating_cooling_state = 1") == 2
    assert "current_temperature = 362.22" in result.stdout
    assert "target_temperature" not in result.stdout
    assert fake_client.last.shutdowns == 1


def test_invalid_config_file_is_reported(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setattr(cli, "Client", FakeClient)
    config = tmp_path / "config.yaml"
    config.write_text("queue_capacity: none\n", encoding="utf-8")

    result = runner.invoke(cli.app, ["--config", str(config), "status"])
    assert result.exit_code == 1
    assert "Error: Schema validation failed" in result.stderr
