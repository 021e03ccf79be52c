"""Home Assistant discovery announcements -> DeviceDescriptor.

habeetat-bridge announces every device on
``homeassistant/<component>/habeetat_<id>/config`` with a Home Assistant
style JSON config. The resolver turns that into a normalized descriptor, or
rejects it.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from habeetat_homekit.exceptions import MalformedPayloadError, UnsupportedCapabilityError
from habeetat_homekit.logging_abstraction import get_logger
from habeetat_homekit.structs import CapabilityType, DeviceDescriptor

logger = get_logger(__name__)

COLOR_MODES = frozenset({"hs", "rgb"})

_COMPONENT_TYPES: dict[str, CapabilityType] = {
    "switch": CapabilityType.SWITCH,
    "cover": CapabilityType.COVER,
    "climate": CapabilityType.CLIMATE,
}


class DiscoveryResolver:
    """Classify discovery announcements into device descriptors."""

    lp: str = "discovery:"

    def resolve(self, topic: str, payload: str | bytes | Mapping[str, Any]) -> DeviceDescriptor | None:
        """Build a descriptor from one announcement, or None to reject it."""
        lp = f"{self.lp}resolve:"
        try:
            config = self._decode(payload)
            capability = self.classify(self.component(topic), config)
            return self._descriptor(config, capability)
        except MalformedPayloadError as e:
            logger.debug("%s Rejected announcement on %s: %s", lp, topic, e.reason)
        except UnsupportedCapabilityError as e:
            logger.debug("%s Ignoring announcement on %s: %s", lp, topic, e)
        return None

    @staticmethod
    def component(topic: str) -> str:
        """``homeassistant/<component>/...`` -> ``<component>``."""
        parts = topic.split("/")
        if len(parts) < 2:
            raise MalformedPayloadError("discovery topic has no component segment", topic)
        return parts[1]

    @staticmethod
    def classify(component: str, config: Mapping[str, Any]) -> CapabilityType:
        """Map a Home Assistant component and its config to a capability.

        Raises:
            UnsupportedCapabilityError: the component is not one habeetat-bridge exposes

        """
        if component == "light":
            color_modes = config.get("supported_color_modes")
            if isinstance(color_modes, list) and COLOR_MODES.intersection(m for m in color_modes if isinstance(m, str)):
                return CapabilityType.RGB
            if config.get("brightness"):
                return CapabilityType.DIMMER
            return CapabilityType.LIGHT

        if component == "sensor":
            if config.get("device_class") == "temperature":
                return CapabilityType.TEMPERATURE_SENSOR
            return CapabilityType.LIGHT_SENSOR

        capability = _COMPONENT_TYPES.get(component)
        if capability is None:
            raise UnsupportedCapabilityError(component)
        return capability

    @staticmethod
    def _decode(payload: str | bytes | Mapping[str, Any]) -> Mapping[str, Any]:
        if isinstance(payload, Mapping):
            return payload
        try:
            text = payload.decode() if isinstance(payload, bytes) else payload
            config = json.loads(text)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise MalformedPayloadError(f"not valid JSON ({e})", payload) from e
        if not isinstance(config, dict):
            raise MalformedPayloadError("announcement is not a JSON object", payload)
        return config

    @staticmethod
    def _descriptor(config: Mapping[str, Any], capability: CapabilityType) -> DeviceDescriptor:
        unique_id = config.get("unique_id")
        name = config.get("name")
        if not unique_id or not name:
            raise MalformedPayloadError("unique_id and name are required", dict(config))

        device = config.get("device")
        device_info: Mapping[str, Any] = device if isinstance(device, Mapping) else {}
        try:
            return DeviceDescriptor(
                unique_id=str(unique_id),
                name=str(name),
                capability=capability,
                state_topic=config.get("state_topic"),
                command_topic=config.get("command_topic"),
                manufacturer=device_info.get("manufacturer"),
                model=device_info.get("model"),
            )
        except ValidationError as e:
            raise MalformedPayloadError(f"invalid field types ({e.error_count()} errors)", dict(config)) from e
