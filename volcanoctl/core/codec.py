"""Conversions between device wire bytes, domain values and the accessory scale.

Temperatures travel over the wire as a signed 16-bit little-endian count of
tenths of a degree Celsius. The accessory side sees the same value shifted by
a fixed calibration offset and never below `MIN_EXTERNAL_TEMPERATURE_C`.

The heat/air status characteristic is two bytes of independent relay flags.
Air without heat cannot be told apart from "off" and decodes as such.
"""

from __future__ import annotations

import math
import struct
from collections.abc import Sequence

from volcanoctl.core.model import Temperature, ThermalMode

TEMPERATURE_OFFSET_C = 172.2222222
MIN_EXTERNAL_TEMPERATURE_C = 10.0

HEAT_ACTIVE_BYTE = 0x23
AIR_ACTIVE_NIBBLE = 0x3

_I16 = struct.Struct("<h")
_I16_MIN = -(2**15)
_I16_MAX = 2**15 - 1

_EXTERNAL_MODES = {
    ThermalMode.OFF: 0,
    ThermalMode.HEATING: 1,
    ThermalMode.COOLING: 2,
}


def temperature_from_wire(data: bytes | bytearray | Sequence[int]) -> Temperature:
    (tenths,) = _I16.unpack_from(bytes(data[:2]))
    return Temperature(tenths / 10.0)


def temperature_to_wire(temperature: Temperature) -> bytes:
    scaled = temperature.celsius * 10.0
    tenths = int(math.copysign(math.floor(abs(scaled) + 0.5), scaled))
    tenths = max(_I16_MIN, min(_I16_MAX, tenths))
    return _I16.pack(tenths)


def temperature_to_external(temperature: Temperature, apply_offset: bool = True) -> float:
    offset = TEMPERATURE_OFFSET_C if apply_offset else 0.0
    return max(temperature.celsius + offset, MIN_EXTERNAL_TEMPERATURE_C)


def temperature_from_external(value: float, apply_offset: bool = True) -> Temperature:
    offset = TEMPERATURE_OFFSET_C if apply_offset else 0.0
    return Temperature(float(value) - offset)


def thermal_mode_from_wire(data: bytes | bytearray | Sequence[int]) -> ThermalMode:
    if len(data) < 2:
        return ThermalMode.OFF

    heat_on = data[0] == HEAT_ACTIVE_BYTE
    air_on = (data[1] >> 4) == AIR_ACTIVE_NIBBLE

    if heat_on and air_on:
        return ThermalMode.COOLING
    if heat_on:
        return ThermalMode.HEATING
    return ThermalMode.OFF


def thermal_mode_from_external(value: int) -> ThermalMode:
    if value == 1:
        return ThermalMode.HEATING
    if value == 2:
        return ThermalMode.COOLING
    return ThermalMode.OFF


def thermal_mode_to_external(mode: ThermalMode) -> int:
    return _EXTERNAL_MODES[mode]
