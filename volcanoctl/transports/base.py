"""Transport interfaces."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Protocol


class RemoteCharacteristic(Protocol):
    uuid: str

    async def read(self) -> bytes:
        """Read the current characteristic value."""

    async def write(self, data: bytes) -> None:
        """Write a value to the characteristic."""


class DeviceLink(Protocol):
    name: str | None
    address: str

    @property
    def is_connected(self) -> bool:
        """Whether the link to the device is currently up."""

    async def connect(self) -> None:
        """Open the link; raises TransportConnectError on failure."""

    async def disconnect(self) -> None:
        """Close the link; raises TransportConnectError on failure."""

    def services(self) -> Mapping[str, Sequence[RemoteCharacteristic]]:
        """Map each discovered service UUID to its characteristics."""
