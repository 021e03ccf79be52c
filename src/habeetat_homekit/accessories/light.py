"""Dimmable and color light handler.

Every HomeKit write publishes the whole light state as one JSON command, the
way habeetat-bridge expects it:

    {"state": "ON", "brightness": 128, "hs_color": [180, 50]}

``hs_color`` is only sent (and only accepted) for color capable devices.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from habeetat_homekit.accessories.base import CapabilityHandler
from habeetat_homekit.codecs import (
    brightness_to_percent,
    decode_hs_color,
    encode_hs_color,
    encode_json,
    is_number,
    on_off_payload,
    parse_on_off,
    percent_to_brightness,
)
from habeetat_homekit.exceptions import MalformedPayloadError
from habeetat_homekit.logging_abstraction import get_logger
from habeetat_homekit.structs import CapabilityType, CharacteristicValue

logger = get_logger(__name__)

COLOR_CAPABILITIES = frozenset({CapabilityType.RGB, CapabilityType.RGB_LIGHT})


@dataclass
class LightState:
    on: bool = False
    brightness: float = 100
    hue: float = 0
    saturation: float = 0


class LightHandler(CapabilityHandler):
    service_kind = "Lightbulb"

    @property
    def color_capable(self) -> bool:
        return self.device.capability in COLOR_CAPABILITIES

    def _initial_state(self) -> LightState:
        return LightState()

    def optional_characteristics(self) -> Sequence[str]:
        if self.color_capable:
            return ("Brightness", "Hue", "Saturation")
        return ("Brightness",)

    def bind(self) -> None:
        _ = self.service.on_set("On", self.set_on).on_get("On", lambda: self._state.on)
        _ = self.service.on_set("Brightness", self.set_brightness).on_get(
            "Brightness", lambda: self._state.brightness
        )
        if self.color_capable:
            _ = self.service.on_set("Hue", self.set_hue).on_get("Hue", lambda: self._state.hue)
            _ = self.service.on_set("Saturation", self.set_saturation).on_get(
                "Saturation", lambda: self._state.saturation
            )

    def set_on(self, value: CharacteristicValue) -> None:
        self._state.on = bool(value)
        self._publish_state()
        logger.debug("%s Set On -> %s", self.lp, value)

    def set_brightness(self, value: CharacteristicValue) -> None:
        self._state.brightness = float(value)
        self._publish_state()
        logger.debug("%s Set Brightness -> %s", self.lp, value)

    def set_hue(self, value: CharacteristicValue) -> None:
        self._state.hue = float(value)
        self._publish_state()
        logger.debug("%s Set Hue -> %s", self.lp, value)

    def set_saturation(self, value: CharacteristicValue) -> None:
        self._state.saturation = float(value)
        self._publish_state()
        logger.debug("%s Set Saturation -> %s", self.lp, value)

    def command_payload(self) -> dict[str, Any]:
        """The full command derived from the current mirror."""
        payload: dict[str, Any] = {
            "state": on_off_payload(self._state.on),
            "brightness": percent_to_brightness(self._state.brightness),
        }
        if self.color_capable:
            payload["hs_color"] = encode_hs_color(self._state.hue, self._state.saturation)
        return payload

    def _publish_state(self) -> None:
        self._publish(self.device.command_topic, encode_json(self.command_payload()))

    def update_state(self, payload: object) -> None:
        state = self._as_mapping(payload)
        if state is None:
            return

        if "state" in state:
            self._state.on = parse_on_off(state["state"])
            _ = self.service.update_characteristic("On", self._state.on)

        if "brightness" in state:
            brightness = state["brightness"]
            if is_number(brightness):
                self._state.brightness = brightness_to_percent(brightness)
                _ = self.service.update_characteristic("Brightness", self._state.brightness)
            else:
                logger.debug("%s Ignoring malformed brightness: %r", self.lp, brightness)

        if "hs_color" in state and self.color_capable:
            try:
                hue, saturation = decode_hs_color(state["hs_color"])
            except MalformedPayloadError as e:
                logger.debug("%s Ignoring hs_color: %s", self.lp, e)
            else:
                self._state.hue = hue
                self._state.saturation = saturation
                _ = self.service.update_characteristic("Hue", hue)
                _ = self.service.update_characteristic("Saturation", saturation)

        self._log_update()
