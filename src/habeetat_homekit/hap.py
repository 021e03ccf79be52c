"""HAP-python adapter: the accessory framework behind the structs protocols.

One ``pyhap`` Bridge carries every Habeetat accessory. Accessories get a
deterministic AID derived from their UUID so HomeKit sees the same accessory
after a restart, and their context is cached on disk so they can be handed
back to the synchronizer before the bus connects.
"""

from __future__ import annotations

import json
import os
import tempfile
import uuid
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field, ValidationError
from pyhap.accessory import Accessory, Bridge

from habeetat_homekit.const import HABEETAT_BRIDGE_NAME
from habeetat_homekit.logging_abstraction import get_logger

if TYPE_CHECKING:
    from pyhap.accessory_driver import AccessoryDriver
    from pyhap.service import Service

    from habeetat_homekit.structs import CharacteristicValue, GetCallback, SetCallback
    from habeetat_homekit.synchronizer import Synchronizer

logger = get_logger(__name__)

__all__ = [
    "HAP_UUID_NAMESPACE",
    "AccessoryCache",
    "CachedAccessory",
    "HapAccessory",
    "HapAccessoryHost",
    "HapService",
    "aid_for_uuid",
]

HAP_UUID_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, "https://habeetat.local/homekit")
# AID 1 is the bridge itself
AID_MIN = 2
AID_MAX = 2**32 - 1


def aid_for_uuid(accessory_uuid: str) -> int:
    """Stable accessory id in [2, 2**32 - 1] derived from the accessory UUID."""
    return uuid.UUID(accessory_uuid).int % (AID_MAX - AID_MIN + 1) + AID_MIN


class HapService:
    """ServiceHandle over a pyhap Service."""

    def __init__(self, service: Service) -> None:
        self.service: Service = service

    def _char(self, name: str):
        return self.service.get_characteristic(name)

    def set_characteristic(self, name: str, value: CharacteristicValue) -> HapService:
        self._char(name).set_value(value, should_notify=False)
        return self

    def update_characteristic(self, name: str, value: CharacteristicValue) -> HapService:
        self._char(name).set_value(value)
        return self

    def on_get(self, name: str, callback: GetCallback) -> HapService:
        self._char(name).getter_callback = callback
        return self

    def on_set(self, name: str, callback: SetCallback) -> HapService:
        self._char(name).setter_callback = callback
        return self

    def set_props(self, name: str, props: dict[str, CharacteristicValue]) -> HapService:
        self._char(name).override_properties(properties=props)
        return self


class HapAccessory:
    """AccessoryHandle over a pyhap Accessory."""

    def __init__(self, accessory: Accessory, accessory_uuid: str, context: dict[str, Any] | None = None) -> None:
        self.accessory: Accessory = accessory
        self.uuid: str = accessory_uuid
        self.display_name: str = accessory.display_name
        self.context: dict[str, Any] = context if context is not None else {}

    @property
    def aid(self) -> int:
        return self.accessory.aid

    @property
    def information(self) -> HapService:
        return HapService(self.accessory.get_service("AccessoryInformation"))

    def get_service(self, kind: str) -> HapService | None:
        service = self.accessory.get_service(kind)
        return HapService(service) if service is not None else None

    def add_service(self, kind: str, characteristics: Sequence[str] = ()) -> HapService:
        # optional characteristics must be loaded before the service gets its IIDs
        chars = ["Name", *(c for c in characteristics if c != "Name")]
        return HapService(self.accessory.add_preload_service(kind, chars=chars))


class CachedAccessory(BaseModel):
    uuid: str
    display_name: str
    aid: int
    context: dict[str, Any] = Field(default_factory=dict)


class AccessoryCache:
    """JSON file of registered accessories, rewritten atomically on change."""

    lp: str = "cache:"

    def __init__(self, path: str | Path) -> None:
        self.path: Path = Path(path).expanduser()

    def load(self) -> list[CachedAccessory]:
        lp = f"{self.lp}load:"
        if not self.path.exists():
            logger.debug("%s No accessory cache at %s", lp, self.path)
            return []
        try:
            raw = json.loads(self.path.read_text())
            if not isinstance(raw, list):
                raise TypeError("accessory cache must be a JSON list")
            records = [CachedAccessory.model_validate(item) for item in raw]
        except (OSError, ValueError, TypeError, ValidationError) as e:
            logger.error("%s Ignoring corrupt accessory cache %s: %s", lp, self.path, e)
            return []
        logger.info("%s Loaded %d cached accessories", lp, len(records))
        return records

    def save(self, records: Iterable[CachedAccessory]) -> None:
        lp = f"{self.lp}save:"
        data = [record.model_dump(mode="json") for record in records]
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_name, self.path)
        except OSError:
            logger.exception("%s Failed to write accessory cache %s", lp, self.path)
            Path(tmp_name).unlink(missing_ok=True)
            return
        logger.debug("%s Saved %d accessories to %s", lp, len(data), self.path)


class HapAccessoryHost:
    """AccessoryHost backed by a pyhap AccessoryDriver and a single Bridge."""

    lp: str = "hap:"

    def __init__(
        self,
        driver: AccessoryDriver,
        cache: AccessoryCache,
        bridge_name: str = HABEETAT_BRIDGE_NAME,
    ) -> None:
        self.driver: AccessoryDriver = driver
        self.cache: AccessoryCache = cache
        self.bridge: Bridge = Bridge(driver, bridge_name)
        self.accessories: dict[str, HapAccessory] = {}
        self.running: bool = False

    def generate_uuid(self, unique_id: str) -> str:
        return str(uuid.uuid5(HAP_UUID_NAMESPACE, unique_id))

    def create_accessory(self, name: str, accessory_uuid: str, aid: int | None = None) -> HapAccessory:
        if aid is None:
            aid = self._allocate_aid(accessory_uuid)
        return HapAccessory(Accessory(self.driver, name, aid=aid), accessory_uuid)

    def register_accessories(self, accessories: Iterable[HapAccessory]) -> None:
        lp = f"{self.lp}register:"
        for accessory in accessories:
            self._attach(accessory)
            logger.info("%s Registered %s (aid=%s)", lp, accessory.display_name, accessory.aid)
        self._persist()

    def update_accessories(self, accessories: Iterable[HapAccessory]) -> None:
        for accessory in accessories:
            logger.debug("%s Updated %s", f"{self.lp}update:", accessory.display_name)
        self._persist()

    def restore(self, synchronizer: Synchronizer) -> int:
        """Rebuild cached accessories and hand them to the synchronizer."""
        lp = f"{self.lp}restore:"
        restored = 0
        for record in self.cache.load():
            if record.uuid in self.accessories:
                continue
            aid = record.aid if record.aid not in self.bridge.accessories else None
            if aid is None:
                logger.warning("%s AID %s of %s already taken, allocating a new one", lp, record.aid, record.display_name)
            accessory = self.create_accessory(record.display_name, record.uuid, aid=aid)
            accessory.context.update(record.context)
            self._attach(accessory)
            synchronizer.configure_accessory(accessory)
            restored += 1
        return restored

    async def start(self) -> None:
        lp = f"{self.lp}start:"
        self.driver.add_accessory(self.bridge)
        await self.driver.async_start()
        self.running = True
        logger.info("%s HAP server started with %d accessories", lp, len(self.accessories))

    async def stop(self) -> None:
        lp = f"{self.lp}stop:"
        if not self.running:
            return
        self.running = False
        await self.driver.async_stop()
        logger.info("%s HAP server stopped", lp)

    def _attach(self, accessory: HapAccessory) -> None:
        if accessory.uuid not in self.accessories:
            self.bridge.add_accessory(accessory.accessory)
            self.accessories[accessory.uuid] = accessory

    def _allocate_aid(self, accessory_uuid: str) -> int:
        aid = aid_for_uuid(accessory_uuid)
        while aid in self.bridge.accessories:
            aid = aid + 1 if aid < AID_MAX else AID_MIN
        return aid

    def _persist(self) -> None:
        self.cache.save(
            CachedAccessory(
                uuid=accessory.uuid,
                display_name=accessory.display_name,
                aid=accessory.aid,
                context=accessory.context,
            )
            for accessory in self.accessories.values()
        )
        if self.running:
            self.driver.config_changed()
