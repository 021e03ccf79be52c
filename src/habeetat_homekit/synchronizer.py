"""Device registry and bus <-> accessory synchronization.

The Synchronizer owns three tables, all scoped to the instance:

- ``devices``: unique_id -> DeviceDescriptor (grows monotonically)
- ``accessories``: accessory UUID -> framework accessory (restored or created)
- ``handlers``: unique_id -> capability handler

Inbound messages are routed purely by topic shape. Discovery announcements go
through the resolver and add_device(); ``<base>/<id>/state`` messages go to the
handler bound to ``<id>``.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from typing import TYPE_CHECKING

from habeetat_homekit import metrics
from habeetat_homekit.accessories import handler_type_for
from habeetat_homekit.const import DISCOVERY_PREFIX, HABEETAT_TOPIC, STATE_SUFFIX
from habeetat_homekit.exceptions import UnsupportedCapabilityError
from habeetat_homekit.instrumentation import timed
from habeetat_homekit.logging_abstraction import get_logger
from habeetat_homekit.mqtt.discovery import DiscoveryResolver

if TYPE_CHECKING:
    from habeetat_homekit.accessories import CapabilityHandler
    from habeetat_homekit.structs import AccessoryHandle, AccessoryHost, DeviceDescriptor, Publisher

logger = get_logger(__name__)


class Synchronizer:
    """Registry of known devices and router for bus messages."""

    lp: str = "sync:"

    def __init__(
        self,
        host: AccessoryHost,
        publisher: Publisher,
        *,
        base_topic: str = HABEETAT_TOPIC,
        static_devices: Iterable[DeviceDescriptor] = (),
        resolver: DiscoveryResolver | None = None,
    ) -> None:
        self.host: AccessoryHost = host
        self.publisher: Publisher = publisher
        self.base_topic: str = base_topic
        self.static_devices: list[DeviceDescriptor] = list(static_devices)
        self.resolver: DiscoveryResolver = resolver or DiscoveryResolver()
        self.devices: dict[str, DeviceDescriptor] = {}
        self.accessories: dict[str, AccessoryHandle] = {}
        self.handlers: dict[str, CapabilityHandler] = {}

    def configure_accessory(self, accessory: AccessoryHandle) -> None:
        """Take over a cached accessory; it is rebound when its device shows up."""
        logger.info("%s Loading accessory from cache: %s", self.lp, accessory.display_name)
        self.accessories[accessory.uuid] = accessory

    def on_connected(self) -> None:
        """Replay the static device list once the bus is subscribed."""
        lp = f"{self.lp}on_connected:"
        if self.static_devices:
            logger.info("%s Adding %d static device(s)", lp, len(self.static_devices))
        for device in self.static_devices:
            self.add_device(device)

    @timed("handle_message")
    def handle_message(self, topic: str, payload: bytes | bytearray | str | float | None) -> None:
        """Route one inbound bus message by topic shape."""
        lp = f"{self.lp}handle_message:"
        try:
            text = _payload_text(payload)
        except UnicodeDecodeError:
            logger.debug("%s Undecodable payload on %s, dropping", lp, topic)
            metrics.record_message_received("other", "malformed")
            return

        if topic.startswith(f"{DISCOVERY_PREFIX}/"):
            self._handle_discovery(topic, text)
            return

        device_id = self._state_topic_device(topic)
        if device_id is not None:
            self._handle_state(device_id, text)
            return

        logger.debug("%s Ignoring message on unrelated topic %s", lp, topic)
        metrics.record_message_received("other", "ignored")

    def _state_topic_device(self, topic: str) -> str | None:
        """``<base>/<id>/state`` -> ``<id>``, anything else -> None."""
        prefix = f"{self.base_topic}/"
        if not topic.startswith(prefix) or not topic.endswith(STATE_SUFFIX):
            return None
        device_id = topic[len(prefix) : -len(STATE_SUFFIX)]
        if not device_id or "/" in device_id:
            return None
        return device_id

    def _handle_discovery(self, topic: str, text: str) -> None:
        descriptor = self.resolver.resolve(topic, text)
        if descriptor is None:
            metrics.record_message_received("discovery", "rejected")
            return
        metrics.record_message_received("discovery", "accepted")
        self.add_device(descriptor)

    def _handle_state(self, device_id: str, text: str) -> None:
        lp = f"{self.lp}state:"
        handler = self.handlers.get(device_id)
        if handler is None:
            logger.debug("%s No handler bound for %s, dropping state", lp, device_id)
            metrics.record_message_received("state", "unbound")
            return

        try:
            state: object = json.loads(text)
        except json.JSONDecodeError:
            # plain string states such as "ON" or "21.5"
            state = text

        handler.update_state(state)
        metrics.record_message_received("state", "applied")

    def add_device(self, device: DeviceDescriptor) -> None:
        """Register a device and bind its accessory; known ids are ignored."""
        lp = f"{self.lp}add_device:"
        if device.unique_id in self.devices:
            logger.debug("%s Device %s already registered, ignoring", lp, device.unique_id)
            return

        self.devices[device.unique_id] = device
        metrics.record_device_discovered(device.capability.value)
        logger.info(
            "%s Discovered device: %s (%s)",
            lp,
            device.name,
            device.capability,
            extra=device.to_context(),
        )

        try:
            handler_type = handler_type_for(device.capability)
        except UnsupportedCapabilityError as e:
            logger.warning("%s %s", lp, e, extra={"unique_id": device.unique_id})
            return

        uuid = self.host.generate_uuid(device.unique_id)
        existing = self.accessories.get(uuid)
        if existing is not None:
            logger.info("%s Restoring existing accessory: %s", lp, device.name)
            existing.context["device"] = device.to_context()
            self._setup_accessory(existing, device, handler_type)
            self.host.update_accessories([existing])
            return

        logger.info("%s Adding new accessory: %s", lp, device.name)
        accessory = self.host.create_accessory(device.name, uuid)
        accessory.context["device"] = device.to_context()
        self._setup_accessory(accessory, device, handler_type)
        self.accessories[uuid] = accessory
        self.host.register_accessories([accessory])

    def _setup_accessory(
        self,
        accessory: AccessoryHandle,
        device: DeviceDescriptor,
        handler_type: type[CapabilityHandler],
    ) -> None:
        """Write accessory information and build the capability handler."""
        _ = (
            accessory.information.set_characteristic("Manufacturer", device.display_manufacturer)
            .set_characteristic("Model", device.display_model)
            .set_characteristic("SerialNumber", device.unique_id)
        )

        self.handlers[device.unique_id] = handler_type(accessory, device, self.publisher)

    def unbound_accessories(self) -> list[AccessoryHandle]:
        """Cached accessories whose device has not been announced (yet)."""
        bound = {self.host.generate_uuid(unique_id) for unique_id in self.devices}
        return [accessory for uuid, accessory in self.accessories.items() if uuid not in bound]


def _payload_text(payload: bytes | bytearray | str | float | None) -> str:
    if payload is None:
        return ""
    if isinstance(payload, bytes | bytearray):
        return bytes(payload).decode()
    return str(payload)
