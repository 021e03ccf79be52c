"""Stateless converters between habeetat-bridge wire values and HomeKit values.

habeetat-bridge speaks 0-255 brightness, lower-case mode strings and Home
Assistant style ``hs_color`` pairs; HomeKit wants percentages and small
integer enums. Rounding is half-up (not banker's rounding) so that
brightness survives a decode/encode round trip within one step.
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Mapping, Sequence

from habeetat_homekit.const import COMMAND_SUFFIX
from habeetat_homekit.exceptions import MalformedPayloadError
from habeetat_homekit.structs import HeatingCoolingState, PositionState

__all__ = [
    "MODE_TO_STATE",
    "STATE_TO_MODE",
    "brightness_to_percent",
    "decode_hs_color",
    "encode_hs_color",
    "encode_json",
    "format_number",
    "heating_cooling_to_mode",
    "is_number",
    "mode_to_heating_cooling",
    "on_off_payload",
    "parse_on_off",
    "parse_temperature",
    "percent_to_brightness",
    "position_state_for_target",
    "position_state_from_string",
    "rewrite_command_topic",
    "round_half_up",
    "wire_number",
]

MODE_TO_STATE: dict[str, HeatingCoolingState] = {
    "off": HeatingCoolingState.OFF,
    "heat": HeatingCoolingState.HEAT,
    "cool": HeatingCoolingState.COOL,
    # no HomeKit equivalent for fan_only
    "fan_only": HeatingCoolingState.OFF,
}

# habeetat-bridge has no auto mode
STATE_TO_MODE: dict[HeatingCoolingState, str] = {
    HeatingCoolingState.OFF: "off",
    HeatingCoolingState.HEAT: "heat",
    HeatingCoolingState.COOL: "cool",
    HeatingCoolingState.AUTO: "cool",
}

_POSITION_STATES: dict[str, PositionState] = {
    "opening": PositionState.INCREASING,
    "closing": PositionState.DECREASING,
    "stopped": PositionState.STOPPED,
    "open": PositionState.STOPPED,
    "closed": PositionState.STOPPED,
}

_LEADING_FLOAT = re.compile(r"^\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


def round_half_up(value: float) -> int:
    """Round to the nearest integer, .5 going up."""
    return math.floor(value + 0.5)


def percent_to_brightness(percent: float) -> int:
    """Convert HomeKit brightness (0-100) to habeetat brightness (0-255)."""
    return round_half_up(percent / 100 * 255)


def brightness_to_percent(brightness: float) -> int:
    """Convert habeetat brightness (0-255) to HomeKit brightness (0-100)."""
    return round_half_up(brightness / 255 * 100)


def on_off_payload(on: bool) -> str:
    return "ON" if on else "OFF"


def parse_on_off(value: object) -> bool:
    """Only the literal string ``ON`` means on."""
    return value == "ON"


def decode_hs_color(value: object) -> tuple[float, float]:
    """Split an ``hs_color`` pair into (hue, saturation).

    Raises:
        MalformedPayloadError: value is not a pair of numbers

    """
    if isinstance(value, str | bytes) or not isinstance(value, Sequence) or len(value) != 2:
        raise MalformedPayloadError("hs_color must be a [hue, saturation] pair", value)
    hue, saturation = value
    if not is_number(hue) or not is_number(saturation):
        raise MalformedPayloadError("hs_color values must be numbers", value)
    return hue, saturation


def encode_hs_color(hue: float, saturation: float) -> list[int | float]:
    return [wire_number(hue), wire_number(saturation)]


def encode_json(payload: Mapping[str, object]) -> str:
    """Compact JSON, the form habeetat-bridge expects on command topics."""
    return json.dumps(payload, separators=(",", ":"))


def wire_number(value: float) -> int | float:
    """Integral floats become ints so they serialize as ``80``, not ``80.0``."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def format_number(value: float) -> str:
    """Render a number as a bare bus payload."""
    return str(wire_number(value))


def parse_temperature(value: object) -> float | None:
    """Parse a reading the way habeetat-bridge sends it.

    Numbers pass through; strings are parsed from their leading numeric part
    (``"21.5"`` and ``"21.5 C"`` both give 21.5). Anything else, or a result
    that is not finite, gives None.
    """
    if is_number(value):
        number = float(value)
    elif isinstance(value, str):
        match = _LEADING_FLOAT.match(value)
        if match is None:
            return None
        number = float(match.group(0))
    else:
        return None
    if not math.isfinite(number):
        return None
    return number


def position_state_from_string(state: str) -> PositionState | None:
    """Map a cover state string (opening, closing, stopped, open, closed)."""
    return _POSITION_STATES.get(state)


def position_state_for_target(target: float, current: float, previous: PositionState) -> PositionState:
    """Direction implied by moving from current to target; unchanged when equal."""
    if target > current:
        return PositionState.INCREASING
    if target < current:
        return PositionState.DECREASING
    return previous


def mode_to_heating_cooling(mode: str) -> HeatingCoolingState | None:
    return MODE_TO_STATE.get(mode)


def heating_cooling_to_mode(state: object) -> str:
    """Map a target heating/cooling state to a habeetat mode string."""
    try:
        return STATE_TO_MODE[HeatingCoolingState(state)]
    except (ValueError, TypeError):
        return "off"


def rewrite_command_topic(command_topic: str, suffix: str) -> str:
    """Swap the first ``/set`` for an operation specific suffix."""
    return command_topic.replace(COMMAND_SUFFIX, suffix, 1)


def is_number(value: object) -> bool:
    """True for finite ints and floats. Booleans, NaN and infinities are not numbers here."""
    return isinstance(value, int | float) and not isinstance(value, bool) and math.isfinite(value)
