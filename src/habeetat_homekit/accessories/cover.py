"""Positional cover (curtain, blind) handler."""

from __future__ import annotations

from dataclasses import dataclass

from habeetat_homekit.accessories.base import CapabilityHandler
from habeetat_homekit.codecs import (
    format_number,
    is_number,
    position_state_for_target,
    position_state_from_string,
    rewrite_command_topic,
)
from habeetat_homekit.const import POSITION_SUFFIX
from habeetat_homekit.logging_abstraction import get_logger
from habeetat_homekit.structs import CharacteristicValue, PositionState

logger = get_logger(__name__)


@dataclass
class CoverState:
    current_position: float = 0
    target_position: float = 0
    position_state: PositionState = PositionState.STOPPED


class CoverHandler(CapabilityHandler):
    service_kind = "WindowCovering"

    def _initial_state(self) -> CoverState:
        return CoverState()

    def bind(self) -> None:
        _ = self.service.on_get("CurrentPosition", lambda: self._state.current_position)
        _ = self.service.on_set("TargetPosition", self.set_target_position).on_get(
            "TargetPosition", lambda: self._state.target_position
        )
        _ = self.service.on_get("PositionState", lambda: int(self._state.position_state))

    def set_target_position(self, value: CharacteristicValue) -> None:
        """Record the target, infer direction and send it to ``/set_position``."""
        target = float(value)
        self._state.target_position = target
        self._state.position_state = position_state_for_target(
            target,
            self._state.current_position,
            self._state.position_state,
        )

        topic = rewrite_command_topic(self.device.command_topic, POSITION_SUFFIX) if self.device.command_topic else None
        self._publish(topic, format_number(target))
        logger.debug("%s Set TargetPosition -> %s", self.lp, value)

    def update_state(self, payload: object) -> None:
        state = self._as_mapping(payload)
        if state is None:
            return

        if "position" in state:
            position = state["position"]
            if is_number(position):
                self._state.current_position = position
                self._state.target_position = position
                self._state.position_state = PositionState.STOPPED
                _ = self.service.update_characteristic("CurrentPosition", position)
                _ = self.service.update_characteristic("TargetPosition", position)
                _ = self.service.update_characteristic("PositionState", int(self._state.position_state))
            else:
                logger.debug("%s Ignoring malformed position: %r", self.lp, position)

        if "state" in state:
            movement = state["state"]
            position_state = position_state_from_string(movement) if isinstance(movement, str) else None
            if position_state is None:
                logger.debug("%s Unknown cover state %r, keeping %s", self.lp, movement, self._state.position_state.name)
            else:
                self._state.position_state = position_state
            _ = self.service.update_characteristic("PositionState", int(self._state.position_state))

        self._log_update()
