"""Accessory-side glue: background polling and forwarding of accessory writes.

The accessory server itself lives outside this package. It only has to offer
a `CharacteristicStore` for the polled values and call the
`AccessoryBridge.on_*_update` hooks when a controller changes a target value.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any, Protocol

from volcanoctl.api import Client
from volcanoctl.core import codec

LOGGER = logging.getLogger(__name__)

CURRENT_HEATING_COOLING_STATE = "current_heating_cooling_state"
TARGET_HEATING_COOLING_STATE = "target_heating_cooling_state"
CURRENT_TEMPERATURE = "current_temperature"
TARGET_TEMPERATURE = "target_temperature"

CHARACTERISTIC_KEYS = (
    CURRENT_HEATING_COOLING_STATE,
    TARGET_HEATING_COOLING_STATE,
    CURRENT_TEMPERATURE,
    TARGET_TEMPERATURE,
)


class CharacteristicStore(Protocol):
    async def set_value(self, key: str, value: Any) -> None:
        """Publish a new characteristic value to the accessory."""


class InMemoryCharacteristicStore:
    def __init__(self) -> None:
        self.values: dict[str, Any] = {}
        self._listeners: list[Callable[[str, Any], None]] = []

    def add_listener(self, listener: Callable[[str, Any], None]) -> None:
        self._listeners.append(listener)

    async def set_value(self, key: str, value: Any) -> None:
        if key not in CHARACTERISTIC_KEYS:
            raise KeyError(f"Unknown characteristic '{key}'")
        self.values[key] = value
        for listener in self._listeners:
            listener(key, value)


async def poll_once(client: Client, store: CharacteristicStore, *, apply_offset: bool = True) -> int:
    """Read all three values once and push the ones that came back. Returns the push count."""
    mode, current, target = await asyncio.gather(
        client.thermal_mode(),
        client.current_temperature(),
        client.target_temperature(),
    )

    updates: list[tuple[str, Any]] = []
    if mode is not None:
        external_mode = codec.thermal_mode_to_external(mode)
        updates.append((CURRENT_HEATING_COOLING_STATE, external_mode))
        updates.append((TARGET_HEATING_COOLING_STATE, external_mode))
    if current is not None:
        updates.append((CURRENT_TEMPERATURE, codec.temperature_to_external(current, apply_offset)))
    if target is not None:
        updates.append((TARGET_TEMPERATURE, codec.temperature_to_external(target, apply_offset)))

    for key, value in updates:
        LOGGER.debug("background write %s: %r", key, value)
        await store.set_value(key, value)
    return len(updates)


async def poll_loop(
    client: Client,
    store: CharacteristicStore,
    *,
    interval_s: float = 2.0,
    apply_offset: bool = True,
    max_polls: int | None = None,
) -> int:
    """Push device state into `store` every `interval_s` until the client closes.

    Returns the number of completed polls.
    """
    polls = 0
    while max_polls is None or polls < max_polls:
        await asyncio.sleep(interval_s)
        if client.closed:
            LOGGER.info("Poll loop stopped: client closed")
            break
        await poll_once(client, store, apply_offset=apply_offset)
        polls += 1
    return polls


class AccessoryBridge:
    """Forwards accessory-side target changes to the device."""

    def __init__(self, client: Client, *, apply_offset: bool = True) -> None:
        self._client = client
        self.apply_offset = apply_offset

    async def on_target_mode_update(self, old_value: int, new_value: int) -> bool | None:
        if old_value == new_value:
            return None
        mode = codec.thermal_mode_from_external(new_value)
        return await self._client.set_thermal_mode(mode)

    async def on_target_temperature_update(self, old_value: float, new_value: float) -> bool | None:
        if old_value == new_value:
            return None

        # only forward if the device still agrees with the old value; otherwise
        # this update is the device's own change echoing back. An unreadable
        # device counts as agreeing: round-tripping old_value through the
        # external scale instead would fail below the 10.0 floor clamp.
        device_value = await self._client.target_temperature()
        if (
            device_value is not None
            and codec.temperature_to_external(device_value, self.apply_offset) != old_value
        ):
            LOGGER.debug("Ignoring target temperature echo %r -> %r", old_value, new_value)
            return None

        new_temperature = codec.temperature_from_external(new_value, self.apply_offset)
        return await self._client.set_target_temperature(new_temperature)
