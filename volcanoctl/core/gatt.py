"""GATT layout of the device and characteristic discovery."""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields

from volcanoctl.core.errors import MissingCharacteristicError, TransportError
from volcanoctl.core.model import DeviceInfo
from volcanoctl.transports.base import DeviceLink, RemoteCharacteristic

LOGGER = logging.getLogger(__name__)

_UUID_SUFFIX = "-5354-4f52-5a26-4249434b454c"

DEVICE_SERVICE_UUID = f"10100000{_UUID_SUFFIX}"
CONTROL_SERVICE_UUID = f"10110000{_UUID_SUFFIX}"
SERVICE_UUIDS = frozenset({DEVICE_SERVICE_UUID, CONTROL_SERVICE_UUID})

FIRMWARE_CHAR_UUID = f"10100005{_UUID_SUFFIX}"
MODEL_CHAR_UUID = f"10100007{_UUID_SUFFIX}"
SERIAL_CHAR_UUID = f"10100008{_UUID_SUFFIX}"
CURRENT_TEMPERATURE_CHAR_UUID = f"10110001{_UUID_SUFFIX}"
TARGET_TEMPERATURE_CHAR_UUID = f"10110003{_UUID_SUFFIX}"
HEAT_AIR_STATUS_CHAR_UUID = f"1010000c{_UUID_SUFFIX}"
START_HEAT_CHAR_UUID = f"1011000f{_UUID_SUFFIX}"
STOP_HEAT_CHAR_UUID = f"10110010{_UUID_SUFFIX}"
START_AIR_CHAR_UUID = f"10110013{_UUID_SUFFIX}"
STOP_AIR_CHAR_UUID = f"10110014{_UUID_SUFFIX}"

CHARACTERISTIC_SLOTS: dict[str, str] = {
    FIRMWARE_CHAR_UUID: "firmware",
    MODEL_CHAR_UUID: "model",
    SERIAL_CHAR_UUID: "serial",
    CURRENT_TEMPERATURE_CHAR_UUID: "current_temperature",
    TARGET_TEMPERATURE_CHAR_UUID: "target_temperature",
    HEAT_AIR_STATUS_CHAR_UUID: "heat_air_status",
    START_HEAT_CHAR_UUID: "start_heat",
    STOP_HEAT_CHAR_UUID: "stop_heat",
    START_AIR_CHAR_UUID: "start_air",
    STOP_AIR_CHAR_UUID: "stop_air",
}


@dataclass(frozen=True)
class DeviceCharacteristics:
    firmware: RemoteCharacteristic
    model: RemoteCharacteristic
    serial: RemoteCharacteristic
    current_temperature: RemoteCharacteristic
    target_temperature: RemoteCharacteristic
    heat_air_status: RemoteCharacteristic
    start_heat: RemoteCharacteristic
    stop_heat: RemoteCharacteristic
    start_air: RemoteCharacteristic
    stop_air: RemoteCharacteristic


class CharacteristicSetBuilder:
    """Collects discovered characteristics and validates completeness once."""

    def __init__(self) -> None:
        self._found: dict[str, RemoteCharacteristic] = {}

    def offer(self, characteristic: RemoteCharacteristic) -> bool:
        slot = CHARACTERISTIC_SLOTS.get(characteristic.uuid.lower())
        if slot is None:
            return False
        if slot in self._found:
            LOGGER.debug("Duplicate characteristic for slot %s ignored", slot)
            return False
        self._found[slot] = characteristic
        return True

    def missing(self) -> tuple[str, ...]:
        return tuple(f.name for f in fields(DeviceCharacteristics) if f.name not in self._found)

    def build(self) -> DeviceCharacteristics:
        missing = self.missing()
        if missing:
            raise MissingCharacteristicError(missing[0])
        return DeviceCharacteristics(**self._found)


def discover_characteristics(link: DeviceLink) -> DeviceCharacteristics:
    builder = CharacteristicSetBuilder()
    for service_uuid, characteristics in link.services().items():
        if service_uuid.lower() not in SERVICE_UUIDS:
            continue
        for characteristic in characteristics:
            builder.offer(characteristic)
    return builder.build()


async def read_device_info(link: DeviceLink, chars: DeviceCharacteristics) -> DeviceInfo:
    async def _read_text(characteristic: RemoteCharacteristic, label: str) -> str | None:
        try:
            raw = await characteristic.read()
        except TransportError as exc:
            LOGGER.debug("Could not read %s: %s", label, exc)
            return None
        text = raw.rstrip(b"\x00").decode("utf-8", errors="replace").strip()
        return text or None

    return DeviceInfo(
        name=link.name,
        address=link.address,
        firmware=await _read_text(chars.firmware, "firmware"),
        model=await _read_text(chars.model, "model"),
        serial=await _read_text(chars.serial, "serial"),
    )
