"""Core data structures and typing protocols for the Habeetat HomeKit bridge."""

from __future__ import annotations

from collections.abc import Callable, Iterable, MutableMapping, Sequence
from enum import IntEnum, StrEnum
from typing import Any, Protocol

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from habeetat_homekit.const import DEFAULT_MANUFACTURER, DEFAULT_MODEL

CharacteristicValue = bool | int | float | str
GetCallback = Callable[[], CharacteristicValue]
SetCallback = Callable[[CharacteristicValue], None]


class CapabilityType(StrEnum):
    """Device classes announced by habeetat-bridge."""

    SWITCH = "switch"
    LIGHT = "light"
    DIMMER = "dimmer"
    RGB = "rgb"
    RGB_LIGHT = "rgb_light"
    COVER = "cover"
    CURTAIN = "curtain"
    CLIMATE = "climate"
    TEMPERATURE_SENSOR = "temperature_sensor"
    LIGHT_SENSOR = "light_sensor"


class PositionState(IntEnum):
    """HomeKit WindowCovering PositionState values."""

    DECREASING = 0
    INCREASING = 1
    STOPPED = 2


class HeatingCoolingState(IntEnum):
    """HomeKit heating/cooling state values (AUTO is only valid as a target)."""

    OFF = 0
    HEAT = 1
    COOL = 2
    AUTO = 3


class BusState(StrEnum):
    """MQTT connection lifecycle as seen by the synchronizer."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"
    ACTIVE = "active"


class DeviceDescriptor(BaseModel):
    """Normalized description of one Habeetat device.

    Built by the discovery resolver or from the static device list. Accepts
    both snake_case keys and the camelCase keys used by older config files
    (``uniqueId``, ``stateTopic``, ``type``...).
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    unique_id: str = Field(validation_alias=AliasChoices("unique_id", "uniqueId"), min_length=1)
    name: str = Field(min_length=1)
    capability: CapabilityType = Field(validation_alias=AliasChoices("capability", "type"))
    state_topic: str | None = Field(default=None, validation_alias=AliasChoices("state_topic", "stateTopic"))
    command_topic: str | None = Field(default=None, validation_alias=AliasChoices("command_topic", "commandTopic"))
    manufacturer: str | None = None
    model: str | None = None

    @property
    def display_manufacturer(self) -> str:
        return self.manufacturer or DEFAULT_MANUFACTURER

    @property
    def display_model(self) -> str:
        return self.model or DEFAULT_MODEL

    def to_context(self) -> dict[str, Any]:
        """Plain JSON-safe dict stored in the accessory context."""
        return self.model_dump(mode="json")


class Publisher(Protocol):
    """Fire-and-forget publish capability lent to capability handlers."""

    def publish(self, topic: str, payload: str) -> None:
        """Publish payload to topic; silently dropped when the bus is down."""
        ...


class ServiceHandle(Protocol):
    """One HAP service on an accessory, as seen by a capability handler."""

    def set_characteristic(self, name: str, value: CharacteristicValue) -> ServiceHandle:
        """Set a characteristic value without notifying paired controllers."""
        ...

    def update_characteristic(self, name: str, value: CharacteristicValue) -> ServiceHandle:
        """Push a characteristic value to paired controllers."""
        ...

    def on_get(self, name: str, callback: GetCallback) -> ServiceHandle:
        """Bind a read callback to a characteristic."""
        ...

    def on_set(self, name: str, callback: SetCallback) -> ServiceHandle:
        """Bind a write callback to a characteristic."""
        ...

    def set_props(self, name: str, props: dict[str, CharacteristicValue]) -> ServiceHandle:
        """Override characteristic properties (minValue, maxValue, minStep)."""
        ...


class AccessoryHandle(Protocol):
    """A framework accessory lent to a capability handler."""

    uuid: str
    display_name: str
    context: MutableMapping[str, Any]

    @property
    def information(self) -> ServiceHandle:
        """The AccessoryInformation service."""
        ...

    def get_service(self, kind: str) -> ServiceHandle | None:
        """Return the service of this kind, or None if not yet added."""
        ...

    def add_service(self, kind: str, characteristics: Sequence[str] = ()) -> ServiceHandle:
        """Add a service of this kind, with the given optional characteristics."""
        ...


class AccessoryHost(Protocol):
    """The accessory framework, reduced to what the synchronizer needs."""

    def generate_uuid(self, unique_id: str) -> str:
        """Derive the stable accessory UUID for a device identity."""
        ...

    def create_accessory(self, name: str, uuid: str) -> AccessoryHandle:
        """Create an accessory that is not yet registered."""
        ...

    def register_accessories(self, accessories: Iterable[AccessoryHandle]) -> None:
        """Register new accessories (published to HomeKit and cached)."""
        ...

    def update_accessories(self, accessories: Iterable[AccessoryHandle]) -> None:
        """Persist refreshed context of already registered accessories."""
        ...
