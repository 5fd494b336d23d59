"""Configuration loading and validation for volcanoctl."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from volcanoctl.core.errors import ConfigLoadError, ConfigValidationError

LOGGER = logging.getLogger(__name__)


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise ConfigValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class Settings:
    device_name_contains: str = "VOLCANO"
    device_address: str | None = None
    scan_timeout_s: float = 10.0
    connect_timeout_s: float = 10.0
    connect_retries: int = 2
    settle_interval_s: float = 1.0
    queue_capacity: int = 32
    poll_interval_s: float = 2.0
    apply_offset: bool = True


def _load_schema_validator() -> Any:
    schema_text = resources.files("volcanoctl.schemas").joinpath("config.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def default_config_path() -> Path:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return xdg_config / "volcanoctl/config.yaml"


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigLoadError(f"Could not read config file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ConfigValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigValidationError(f"Config file {path} must contain a mapping at root")
    return loaded


def settings_from_mapping(doc: dict[str, Any], source: str = "<config>") -> Settings:
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise ConfigValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc

    defaults = Settings()
    device = doc.get("device", {})
    connection = doc.get("connection", {})
    accessory = doc.get("accessory", {})
    return Settings(
        device_name_contains=device.get("name_contains", defaults.device_name_contains),
        device_address=device.get("address", defaults.device_address),
        scan_timeout_s=float(device.get("scan_timeout_s", defaults.scan_timeout_s)),
        connect_timeout_s=float(connection.get("timeout_s", defaults.connect_timeout_s)),
        connect_retries=int(connection.get("retries", defaults.connect_retries)),
        settle_interval_s=float(connection.get("settle_interval_s", defaults.settle_interval_s)),
        queue_capacity=int(doc.get("queue_capacity", defaults.queue_capacity)),
        poll_interval_s=float(accessory.get("poll_interval_s", defaults.poll_interval_s)),
        apply_offset=accessory.get("apply_offset", defaults.apply_offset),
    )


def load_settings(path: Path | None = None) -> Settings:
    """Load settings from `path`, or from the XDG default location if present.

    An explicit path must exist; a missing default file just yields defaults.
    """
    if path is None:
        path = default_config_path()
        if not path.exists():
            LOGGER.debug("No config file at %s, using defaults", path)
            return Settings()

    doc = _read_yaml(path)
    settings = settings_from_mapping(doc, str(path))
    LOGGER.debug("Loaded settings from %s: %s", path, settings)
    return settings
