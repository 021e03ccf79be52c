"""Shared fixtures for unit tests.

Provides in-memory stand-ins for the accessory framework and the bus so
handlers and the synchronizer can be exercised without HAP or a broker.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Iterable, Sequence
from typing import Any

import pytest

from habeetat_homekit.structs import CapabilityType, CharacteristicValue, DeviceDescriptor


class FakeService:
    """ServiceHandle that records every interaction."""

    def __init__(self, kind: str, characteristics: Sequence[str] = ()) -> None:
        self.kind = kind
        self.characteristics = list(characteristics)
        self.values: dict[str, CharacteristicValue] = {}
        self.updates: list[tuple[str, CharacteristicValue]] = []
        self.getters: dict[str, Callable[[], CharacteristicValue]] = {}
        self.setters: dict[str, Callable[[CharacteristicValue], None]] = {}
        self.props: dict[str, dict[str, CharacteristicValue]] = {}

    def set_characteristic(self, name: str, value: CharacteristicValue) -> FakeService:
        self.values[name] = value
        return self

    def update_characteristic(self, name: str, value: CharacteristicValue) -> FakeService:
        self.values[name] = value
        self.updates.append((name, value))
        return self

    def on_get(self, name: str, callback: Callable[[], CharacteristicValue]) -> FakeService:
        self.getters[name] = callback
        return self

    def on_set(self, name: str, callback: Callable[[CharacteristicValue], None]) -> FakeService:
        self.setters[name] = callback
        return self

    def set_props(self, name: str, props: dict[str, CharacteristicValue]) -> FakeService:
        self.props[name] = props
        return self

    def get(self, name: str) -> CharacteristicValue:
        """Read through the bound getter, the way a HomeKit controller would."""
        return self.getters[name]()

    def set(self, name: str, value: CharacteristicValue) -> None:
        """Write through the bound setter, the way a HomeKit controller would."""
        self.setters[name](value)


class FakeAccessory:
    """AccessoryHandle with services kept in a dict."""

    def __init__(self, display_name: str, accessory_uuid: str) -> None:
        self.uuid = accessory_uuid
        self.display_name = display_name
        self.context: dict[str, Any] = {}
        self.services: dict[str, FakeService] = {}
        self._information = FakeService("AccessoryInformation")

    @property
    def information(self) -> FakeService:
        return self._information

    def get_service(self, kind: str) -> FakeService | None:
        return self.services.get(kind)

    def add_service(self, kind: str, characteristics: Sequence[str] = ()) -> FakeService:
        service = FakeService(kind, characteristics)
        self.services[kind] = service
        return service


class FakeAccessoryHost:
    """AccessoryHost that keeps registrations in lists."""

    def __init__(self) -> None:
        self.created: list[FakeAccessory] = []
        self.registered: list[FakeAccessory] = []
        self.updated: list[FakeAccessory] = []

    def generate_uuid(self, unique_id: str) -> str:
        return str(uuid.uuid5(uuid.NAMESPACE_OID, unique_id))

    def create_accessory(self, name: str, uuid: str) -> FakeAccessory:
        accessory = FakeAccessory(name, uuid)
        self.created.append(accessory)
        return accessory

    def register_accessories(self, accessories: Iterable[FakeAccessory]) -> None:
        self.registered.extend(accessories)

    def update_accessories(self, accessories: Iterable[FakeAccessory]) -> None:
        self.updated.extend(accessories)


class RecordingPublisher:
    """Publisher that remembers what it was asked to send."""

    def __init__(self) -> None:
        self.published: list[tuple[str, str]] = []

    def publish(self, topic: str, payload: str) -> None:
        self.published.append((topic, payload))


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def accessory_host() -> FakeAccessoryHost:
    return FakeAccessoryHost()


@pytest.fixture
def accessory() -> FakeAccessory:
    return FakeAccessory("Test Accessory", str(uuid.uuid4()))


@pytest.fixture
def make_device() -> Callable[..., DeviceDescriptor]:
    """Factory for descriptors with habeetat-bridge style topics."""

    def _make(
        capability: CapabilityType | str,
        unique_id: str = "d1",
        name: str = "Device",
        **overrides: Any,
    ) -> DeviceDescriptor:
        fields: dict[str, Any] = {
            "unique_id": unique_id,
            "name": name,
            "capability": capability,
            "state_topic": f"habeetat/{unique_id}/state",
            "command_topic": f"habeetat/{unique_id}/set",
        }
        fields.update(overrides)
        return DeviceDescriptor(**fields)

    return _make


@pytest.fixture
def make_accessory(accessory_host: FakeAccessoryHost) -> Callable[[str, str], FakeAccessory]:
    """Factory for accessories as they come back from the cache."""

    def _make(name: str, unique_id: str) -> FakeAccessory:
        return FakeAccessory(name, accessory_host.generate_uuid(unique_id))

    return _make
