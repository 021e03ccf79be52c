"""Capability handlers, one per HomeKit service the bridge exposes."""

from __future__ import annotations

from habeetat_homekit.accessories.base import CapabilityHandler
from habeetat_homekit.accessories.cover import CoverHandler
from habeetat_homekit.accessories.light import LightHandler
from habeetat_homekit.accessories.switch import SwitchHandler
from habeetat_homekit.accessories.temperature_sensor import TemperatureSensorHandler
from habeetat_homekit.accessories.thermostat import ThermostatHandler
from habeetat_homekit.exceptions import UnsupportedCapabilityError
from habeetat_homekit.structs import CapabilityType

__all__ = [
    "HANDLER_TYPES",
    "CapabilityHandler",
    "CoverHandler",
    "LightHandler",
    "SwitchHandler",
    "TemperatureSensorHandler",
    "ThermostatHandler",
    "handler_type_for",
]

# light_sensor is announced by habeetat-bridge but has no handler
HANDLER_TYPES: dict[CapabilityType, type[CapabilityHandler]] = {
    CapabilityType.SWITCH: SwitchHandler,
    CapabilityType.LIGHT: SwitchHandler,
    CapabilityType.DIMMER: LightHandler,
    CapabilityType.RGB: LightHandler,
    CapabilityType.RGB_LIGHT: LightHandler,
    CapabilityType.COVER: CoverHandler,
    CapabilityType.CURTAIN: CoverHandler,
    CapabilityType.CLIMATE: ThermostatHandler,
    CapabilityType.TEMPERATURE_SENSOR: TemperatureSensorHandler,
}


def handler_type_for(capability: CapabilityType) -> type[CapabilityHandler]:
    """Look up the handler class for a capability.

    Raises:
        UnsupportedCapabilityError: no handler exists for the capability

    """
    handler_type = HANDLER_TYPES.get(capability)
    if handler_type is None:
        raise UnsupportedCapabilityError(capability)
    return handler_type
