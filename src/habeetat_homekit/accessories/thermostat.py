"""Climate (HVAC) handler."""

from __future__ import annotations

from dataclasses import dataclass

from habeetat_homekit.accessories.base import CapabilityHandler
from habeetat_homekit.codecs import (
    format_number,
    heating_cooling_to_mode,
    is_number,
    mode_to_heating_cooling,
    rewrite_command_topic,
)
from habeetat_homekit.const import MODE_SUFFIX, TEMPERATURE_SUFFIX
from habeetat_homekit.logging_abstraction import get_logger
from habeetat_homekit.structs import CharacteristicValue, HeatingCoolingState

logger = get_logger(__name__)

CELSIUS = 0
TARGET_TEMPERATURE_PROPS: dict[str, CharacteristicValue] = {
    "minValue": 16,
    "maxValue": 30,
    "minStep": 0.5,
}


@dataclass
class ThermostatState:
    current_temperature: float = 20
    target_temperature: float = 22
    current_heating_cooling_state: HeatingCoolingState = HeatingCoolingState.OFF
    target_heating_cooling_state: HeatingCoolingState = HeatingCoolingState.OFF


class ThermostatHandler(CapabilityHandler):
    service_kind = "Thermostat"

    def _initial_state(self) -> ThermostatState:
        return ThermostatState()

    def bind(self) -> None:
        _ = self.service.set_characteristic("TemperatureDisplayUnits", CELSIUS)
        _ = self.service.on_get("CurrentTemperature", lambda: self._state.current_temperature)
        _ = (
            self.service.on_set("TargetTemperature", self.set_target_temperature)
            .on_get("TargetTemperature", lambda: self._state.target_temperature)
            .set_props("TargetTemperature", TARGET_TEMPERATURE_PROPS)
        )
        _ = self.service.on_get(
            "CurrentHeatingCoolingState",
            lambda: int(self._state.current_heating_cooling_state),
        )
        _ = self.service.on_set("TargetHeatingCoolingState", self.set_target_heating_cooling_state).on_get(
            "TargetHeatingCoolingState",
            lambda: int(self._state.target_heating_cooling_state),
        )

    def _command_topic(self, suffix: str) -> str | None:
        if not self.device.command_topic:
            return None
        return rewrite_command_topic(self.device.command_topic, suffix)

    def set_target_temperature(self, value: CharacteristicValue) -> None:
        self._state.target_temperature = float(value)
        self._publish(self._command_topic(TEMPERATURE_SUFFIX), format_number(self._state.target_temperature))
        logger.debug("%s Set TargetTemperature -> %s", self.lp, value)

    def set_target_heating_cooling_state(self, value: CharacteristicValue) -> None:
        mode = heating_cooling_to_mode(value)
        try:
            self._state.target_heating_cooling_state = HeatingCoolingState(value)
        except (ValueError, TypeError):
            self._state.target_heating_cooling_state = HeatingCoolingState.OFF
        self._publish(self._command_topic(MODE_SUFFIX), mode)
        logger.debug("%s Set TargetHeatingCoolingState -> %s (%s)", self.lp, value, mode)

    def update_state(self, payload: object) -> None:
        state = self._as_mapping(payload)
        if state is None:
            return

        if "current_temperature" in state:
            current = state["current_temperature"]
            if is_number(current):
                self._state.current_temperature = current
                _ = self.service.update_characteristic("CurrentTemperature", current)
            else:
                logger.debug("%s Ignoring malformed current_temperature: %r", self.lp, current)

        if "temperature" in state:
            target = state["temperature"]
            if is_number(target):
                self._state.target_temperature = target
                _ = self.service.update_characteristic("TargetTemperature", target)
            else:
                logger.debug("%s Ignoring malformed temperature: %r", self.lp, target)

        if "mode" in state:
            mode = state["mode"]
            heating_cooling = mode_to_heating_cooling(mode) if isinstance(mode, str) else None
            if heating_cooling is None:
                logger.debug("%s Unknown mode %r, keeping current states", self.lp, mode)
            else:
                self._state.target_heating_cooling_state = heating_cooling
                self._state.current_heating_cooling_state = heating_cooling
            _ = self.service.update_characteristic(
                "TargetHeatingCoolingState", int(self._state.target_heating_cooling_state)
            )
            _ = self.service.update_characteristic(
                "CurrentHeatingCoolingState", int(self._state.current_heating_cooling_state)
            )

        self._log_update()
