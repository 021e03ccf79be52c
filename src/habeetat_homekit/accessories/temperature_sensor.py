"""Read-only temperature sensor handler."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from habeetat_homekit.accessories.base import CapabilityHandler
from habeetat_homekit.codecs import parse_temperature
from habeetat_homekit.logging_abstraction import get_logger
from habeetat_homekit.structs import CharacteristicValue

logger = get_logger(__name__)

CURRENT_TEMPERATURE_PROPS: dict[str, CharacteristicValue] = {
    "minValue": -40,
    "maxValue": 100,
}


@dataclass
class TemperatureSensorState:
    current_temperature: float = 20


class TemperatureSensorHandler(CapabilityHandler):
    service_kind = "TemperatureSensor"

    def _initial_state(self) -> TemperatureSensorState:
        return TemperatureSensorState()

    def bind(self) -> None:
        _ = self.service.on_get("CurrentTemperature", lambda: self._state.current_temperature).set_props(
            "CurrentTemperature", CURRENT_TEMPERATURE_PROPS
        )

    def update_state(self, payload: object) -> None:
        """Accept a number, a numeric string, or ``{"state": <either>}``."""
        reading = payload.get("state") if isinstance(payload, Mapping) else payload
        if reading is None:
            return

        temperature = parse_temperature(reading)
        if temperature is None:
            logger.debug("%s Ignoring unparseable temperature: %r", self.lp, reading)
            return

        self._state.current_temperature = temperature
        _ = self.service.update_characteristic("CurrentTemperature", temperature)
        logger.debug("%s Updated temperature: %s", self.lp, temperature)
