"""On/off handler for switches and plain (non-dimmable) lights."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from habeetat_homekit.accessories.base import CapabilityHandler
from habeetat_homekit.codecs import on_off_payload, parse_on_off
from habeetat_homekit.logging_abstraction import get_logger
from habeetat_homekit.structs import CharacteristicValue

logger = get_logger(__name__)


@dataclass
class SwitchState:
    on: bool = False


class SwitchHandler(CapabilityHandler):
    service_kind = "Switch"

    def _initial_state(self) -> SwitchState:
        return SwitchState()

    def bind(self) -> None:
        _ = self.service.on_set("On", self.set_on).on_get("On", self.get_on)

    def get_on(self) -> bool:
        return self._state.on

    def set_on(self, value: CharacteristicValue) -> None:
        self._state.on = bool(value)
        self._publish(self.device.command_topic, on_off_payload(self._state.on))
        logger.debug("%s Set On -> %s", self.lp, value)

    def update_state(self, payload: object) -> None:
        """Accept a bare ``ON``/``OFF`` string or ``{"state": ...}``."""
        if isinstance(payload, str):
            self._state.on = parse_on_off(payload)
        elif isinstance(payload, Mapping) and "state" in payload:
            self._state.on = parse_on_off(payload["state"])

        _ = self.service.update_characteristic("On", self._state.on)
        self._log_update()
