"""Domain-specific errors for volcanoctl."""


class VolcanoctlError(Exception):
    """Base error for volcanoctl."""


class ConfigError(VolcanoctlError):
    """Base configuration error."""


class ConfigLoadError(ConfigError):
    """Raised when the configuration file cannot be read."""


class ConfigValidationError(ConfigError):
    """Raised when the configuration does not conform to schema or semantics."""


class DeviceDiscoveryError(VolcanoctlError):
    """Raised when no matching device can be found over BLE."""


class MissingCharacteristicError(VolcanoctlError):
    """Raised when a required GATT characteristic is absent after enumeration."""

    def __init__(self, name: str) -> None:
        super().__init__(f"missing required characteristic: {name}")
        self.name = name


class ConnectionRetriesExhaustedError(VolcanoctlError):
    """Raised when the device link cannot be (re)established within the retry budget."""


class RequestAbandonedError(VolcanoctlError):
    """Raised on a reply slot that was dropped without an answer."""


class TransportError(VolcanoctlError):
    """Base transport error."""


class TransportConnectError(TransportError):
    """Raised on BLE connect/disconnect failures."""


class TransportReadError(TransportError):
    """Raised when a characteristic read fails."""


class TransportWriteError(TransportError):
    """Raised when a characteristic write fails."""
