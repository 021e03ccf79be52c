"""Configuration loading: environment defaults overlaid with an optional YAML file.

Example ``config.yaml``::

    mqtt:
      broker: 192.168.1.10
      port: 1883
      username: homekit
      password: secret
    base_topic: habeetat
    bridge:
      name: Habeetat Bridge
      port: 51826
      pincode: 031-45-154
    devices:
      - unique_id: kitchen_light
        name: Kitchen
        type: dimmer
        state_topic: habeetat/kitchen_light/state
        command_topic: habeetat/kitchen_light/set

Environment variables are read when load_config() runs (not at import), so a
``--env`` dotenv file loaded beforehand is honoured.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from habeetat_homekit.const import YES_ANSWER
from habeetat_homekit.exceptions import ConfigError
from habeetat_homekit.logging_abstraction import get_logger
from habeetat_homekit.structs import DeviceDescriptor

logger = get_logger(__name__)

__all__ = [
    "BridgeSettings",
    "HabeetatConfig",
    "MqttSettings",
    "default_config_path",
    "load_config",
    "parse_devices",
]


class MqttSettings(BaseModel):
    """Broker connection settings."""

    broker: str | None = None
    port: int = 1883
    username: str | None = None
    password: str | None = None
    conn_delay: float = 5.0


class BridgeSettings(BaseModel):
    """HomeKit bridge accessory settings."""

    name: str = "Habeetat Bridge"
    port: int = 51826
    pincode: str | None = None


class HabeetatConfig(BaseModel):
    mqtt: MqttSettings = Field(default_factory=MqttSettings)
    bridge: BridgeSettings = Field(default_factory=BridgeSettings)
    base_topic: str = "habeetat"
    devices: list[DeviceDescriptor] = Field(default_factory=list)
    persistent_dir: str = "~/.habeetat-homekit"
    debug: bool = False

    @property
    def persistent_path(self) -> Path:
        return Path(self.persistent_dir).expanduser()

    @property
    def accessory_cache_path(self) -> Path:
        return self.persistent_path / "accessories.json"

    @property
    def hap_persist_path(self) -> Path:
        return self.persistent_path / "hap.state"


def _env_defaults(environ: Mapping[str, str]) -> dict[str, Any]:
    """Collect HABEETAT_* variables into the raw config layout."""
    mqtt: dict[str, Any] = {}
    bridge: dict[str, Any] = {}
    data: dict[str, Any] = {"mqtt": mqtt, "bridge": bridge}

    for env_name, section, key in (
        ("HABEETAT_MQTT_HOST", mqtt, "broker"),
        ("HABEETAT_MQTT_PORT", mqtt, "port"),
        ("HABEETAT_MQTT_USER", mqtt, "username"),
        ("HABEETAT_MQTT_PASS", mqtt, "password"),
        ("HABEETAT_MQTT_CONN_DELAY", mqtt, "conn_delay"),
        ("HABEETAT_BRIDGE_NAME", bridge, "name"),
        ("HABEETAT_HAP_PORT", bridge, "port"),
        ("HABEETAT_HAP_PINCODE", bridge, "pincode"),
        ("HABEETAT_TOPIC", data, "base_topic"),
        ("HABEETAT_PERSISTENT_BASE_DIR", data, "persistent_dir"),
    ):
        value = environ.get(env_name)
        if value:
            section[key] = value

    data["debug"] = environ.get("HABEETAT_DEBUG", "0").casefold() in YES_ANSWER
    return data


def _read_yaml(config_file: Path) -> dict[str, Any]:
    logger.debug("Parsing config file: %s", config_file)
    try:
        with config_file.open() as f:
            config_data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"cannot read YAML ({e})", config_file) from e

    if config_data is None:
        return {}
    if not isinstance(config_data, dict):
        raise ConfigError("top level must be a mapping", config_file)
    return config_data


def parse_devices(raw_devices: object) -> list[DeviceDescriptor]:
    """Validate the static device list, skipping (and logging) bad entries."""
    if raw_devices is None:
        return []
    if not isinstance(raw_devices, list):
        logger.warning("'devices' must be a list, ignoring it", extra={"type": type(raw_devices).__name__})
        return []

    devices: list[DeviceDescriptor] = []
    for index, device_data in enumerate(raw_devices):
        try:
            devices.append(DeviceDescriptor.model_validate(device_data))
        except ValidationError as e:
            logger.warning(
                "Skipping invalid static device #%d: %s",
                index,
                e.errors(include_url=False)[0]["msg"],
                extra={"device": device_data if isinstance(device_data, dict) else repr(device_data)},
            )
    return devices


def load_config(config_file: Path | None = None, environ: Mapping[str, str] | None = None) -> HabeetatConfig:
    """Resolve the effective configuration.

    Args:
        config_file: Optional YAML file; values in it override the environment
        environ: Environment to read (defaults to os.environ)

    Raises:
        ConfigError: the file exists but cannot be parsed, or a section is invalid

    """
    data = _env_defaults(os.environ if environ is None else environ)

    if config_file is not None and config_file.exists():
        file_data = _read_yaml(config_file)
        for section in ("mqtt", "bridge"):
            overrides = file_data.get(section)
            if overrides is None:
                continue
            if not isinstance(overrides, dict):
                raise ConfigError(f"'{section}' must be a mapping", config_file)
            data[section].update(overrides)
        base_topic = file_data.get("base_topic", file_data.get("baseTopic"))
        if base_topic:
            data["base_topic"] = base_topic
        for key in ("persistent_dir", "debug"):
            if key in file_data:
                data[key] = file_data[key]
        data["devices"] = parse_devices(file_data.get("devices"))
    elif config_file is not None:
        logger.debug("Config file not found, using environment only: %s", config_file)

    try:
        config = HabeetatConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"invalid configuration ({e.error_count()} errors)", config_file) from e

    logger.info(
        "Configuration loaded",
        extra={
            "broker": config.mqtt.broker,
            "base_topic": config.base_topic,
            "static_devices": len(config.devices),
        },
    )
    return config


def default_config_path(environ: Mapping[str, str] | None = None) -> Path:
    """``$HABEETAT_CONFIG_FILE``, else ``config.yaml`` in the persistent directory."""
    environ = os.environ if environ is None else environ
    explicit = environ.get("HABEETAT_CONFIG_FILE")
    if explicit:
        return Path(explicit).expanduser()
    base_dir = environ.get("HABEETAT_PERSISTENT_BASE_DIR") or "~/.habeetat-homekit"
    return Path(base_dir).expanduser() / "config.yaml"
