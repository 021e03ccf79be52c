"""Shared plumbing for capability handlers.

A handler is built with the accessory handle and publisher lent to it by the
synchronizer. It owns a private state mirror, binds its HAP get/set callbacks
once at construction and exposes a single update_state() entry point for
inbound bus messages.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any, ClassVar

from habeetat_homekit import metrics
from habeetat_homekit.logging_abstraction import get_logger

if TYPE_CHECKING:
    from habeetat_homekit.structs import AccessoryHandle, DeviceDescriptor, Publisher, ServiceHandle

logger = get_logger(__name__)


class CapabilityHandler:
    """Base class for the five capability handlers."""

    service_kind: ClassVar[str]
    lp: str

    def __init__(
        self,
        accessory: AccessoryHandle,
        device: DeviceDescriptor,
        publisher: Publisher,
    ) -> None:
        self.accessory: AccessoryHandle = accessory
        self.device: DeviceDescriptor = device
        self.publisher: Publisher = publisher
        self.lp = f"{type(self).__name__}[{device.name}]:"
        self._state: Any = self._initial_state()

        self.service: ServiceHandle = accessory.get_service(self.service_kind) or accessory.add_service(
            self.service_kind,
            self.optional_characteristics(),
        )
        _ = self.service.set_characteristic("Name", device.name)
        self.bind()

    def _initial_state(self) -> Any:
        raise NotImplementedError

    def optional_characteristics(self) -> Sequence[str]:
        """Optional HAP characteristics this handler needs on its service."""
        return ()

    def bind(self) -> None:
        """Register characteristic get/set callbacks with the framework."""
        raise NotImplementedError

    def update_state(self, payload: object) -> None:
        """Apply an inbound state message (decoded JSON or raw string)."""
        raise NotImplementedError

    def snapshot(self) -> dict[str, Any]:
        """Copy of the state mirror, for logging and tests."""
        return dataclasses.asdict(self._state)

    def _publish(self, topic: str | None, payload: str) -> None:
        if not topic:
            logger.warning("%s No command topic for device %s, command dropped", self.lp, self.device.unique_id)
            metrics.record_publish("dropped")
            return
        self.publisher.publish(topic, payload)

    def _as_mapping(self, payload: object) -> Mapping[str, Any] | None:
        if isinstance(payload, Mapping):
            return payload
        logger.debug("%s Ignoring non-object state payload: %r", self.lp, payload)
        return None

    def _log_update(self) -> None:
        logger.debug("%s Updated state: %s", self.lp, self.snapshot())
