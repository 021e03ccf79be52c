"""MQTT bus client for the Habeetat HomeKit bridge.

Owns the aiomqtt connection lifecycle: connect, subscribe, feed every inbound
message to the synchronizer in delivery order and reconnect after a fixed
delay when the broker goes away. Outbound publishes are fire-and-forget.
"""

from __future__ import annotations

import asyncio
import secrets
from typing import TYPE_CHECKING

import aiomqtt

from habeetat_homekit import metrics
from habeetat_homekit.const import (
    DISCOVERY_TOPIC,
    HABEETAT_TOPIC,
    STATE_SUFFIX,
)
from habeetat_homekit.correlation import correlation_context
from habeetat_homekit.logging_abstraction import get_logger
from habeetat_homekit.structs import BusState

if TYPE_CHECKING:
    from habeetat_homekit.config import MqttSettings
    from habeetat_homekit.synchronizer import Synchronizer

logger = get_logger(__name__)


class BusClient:
    """aiomqtt wrapper implementing the Publisher protocol."""

    lp: str = "mqtt:"

    def __init__(
        self,
        settings: MqttSettings,
        base_topic: str = HABEETAT_TOPIC,
        synchronizer: Synchronizer | None = None,
    ) -> None:
        self.settings: MqttSettings = settings
        self.base_topic: str = base_topic
        self.synchronizer: Synchronizer | None = synchronizer
        self.client_id: str = f"homekit-habeetat-{secrets.token_hex(3)}"
        self.client: aiomqtt.Client | None = None
        self.start_task: asyncio.Task[None] | None = None
        self._state: BusState = BusState.DISCONNECTED
        self._publish_tasks: set[asyncio.Task[None]] = set()

    @property
    def state(self) -> BusState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state in (BusState.SUBSCRIBED, BusState.ACTIVE)

    @property
    def subscriptions(self) -> list[str]:
        return [f"{self.base_topic}/+{STATE_SUFFIX}", DISCOVERY_TOPIC]

    def _set_state(self, state: BusState) -> None:
        if state != self._state:
            logger.debug("%s %s -> %s", self.lp, self._state, state)
        self._state = state
        metrics.record_bus_state(state.value)

    def _get_connection_delay(self, lp: str) -> float:
        """Reconnect delay, defaulting to 5 seconds."""
        delay = self.settings.conn_delay
        if delay <= 0:
            logger.debug(
                "%s MQTT connection delay is less than or equal to 0, which is probably a typo, setting to 5...",
                lp,
            )
            return 5.0
        return delay

    async def start(self) -> None:
        """Connect and receive until cancelled, reconnecting on failure."""
        lp = f"{self.lp}start:"
        if not self.settings.broker:
            logger.error("%s MQTT broker not configured, bus client not started", lp)
            return

        try:
            while True:
                if await self.connect():
                    try:
                        await self._receive()
                    except aiomqtt.MqttError as e:
                        logger.error("%s Connection to MQTT broker lost: %s", lp, e)
                    await self._close(self.client, lp)
                    self.client = None
                    self._set_state(BusState.DISCONNECTED)

                delay = self._get_connection_delay(lp)
                logger.info("%s Reconnecting to MQTT broker in %s seconds...", lp, delay)
                await asyncio.sleep(delay)
        except asyncio.CancelledError:
            logger.debug("%s Bus client task cancelled", lp)
            raise

    async def connect(self) -> bool:
        """Open the connection, subscribe and replay static devices."""
        lp = f"{self.lp}connect:"
        self._set_state(BusState.CONNECTING)
        logger.info("%s Connecting to MQTT broker: %s:%s", lp, self.settings.broker, self.settings.port)

        username = self.settings.username or None
        self.client = aiomqtt.Client(
            hostname=self.settings.broker,
            port=self.settings.port,
            username=username,
            password=self.settings.password if username else None,
            identifier=self.client_id,
        )
        entered = False
        try:
            _ = await self.client.__aenter__()
            entered = True
            for topic in self.subscriptions:
                await self.client.subscribe(topic, qos=0)
                logger.debug("%s Subscribed to %s", lp, topic)
        except aiomqtt.MqttError as e:
            # [code:134] Bad user name or password
            logger.error("%s Connection failed [MqttError]: %s", lp, e)
            if entered:
                await self._close(self.client, lp)
            self.client = None
            self._set_state(BusState.DISCONNECTED)
            return False

        logger.info("%s Connected to MQTT broker as %s", lp, self.client_id)
        self._set_state(BusState.SUBSCRIBED)
        if self.synchronizer is not None:
            self.synchronizer.on_connected()
        self._set_state(BusState.ACTIVE)
        return True

    async def _close(self, client: aiomqtt.Client | None, lp: str) -> None:
        """Release a connection that is being abandoned."""
        if client is None:
            return
        try:
            await client.__aexit__(None, None, None)
        except aiomqtt.MqttError as e:
            logger.debug("%s Ignoring error while closing abandoned connection: %s", lp, e)

    async def _receive(self) -> None:
        lp = f"{self.lp}rcv:"
        assert self.client is not None, "client must be connected"
        async for message in self.client.messages:
            topic = message.topic.value
            if self.synchronizer is None:
                logger.debug("%s No synchronizer attached, dropping message on %s", lp, topic)
                continue
            with correlation_context():
                try:
                    self.synchronizer.handle_message(topic, message.payload)
                except Exception:
                    logger.exception("%s Unhandled error processing message on %s", lp, topic)

    def publish(self, topic: str, payload: str) -> None:
        """Schedule a publish; dropped silently while disconnected."""
        lp = f"{self.lp}publish:"
        if not self.is_connected or self.client is None:
            logger.debug("%s Not connected, dropping message for %s", lp, topic)
            metrics.record_publish("dropped")
            return
        task = asyncio.get_running_loop().create_task(self._publish(self.client, topic, payload))
        self._publish_tasks.add(task)
        task.add_done_callback(self._publish_tasks.discard)

    async def _publish(self, client: aiomqtt.Client, topic: str, payload: str) -> None:
        lp = f"{self.lp}publish:"
        try:
            await client.publish(topic, payload.encode(), qos=0, retain=False)
        except aiomqtt.MqttError as e:
            logger.warning("%s [MqttError] -> %s", lp, e)
            metrics.record_publish("failed")
        else:
            logger.debug("%s %s <- %s", lp, topic, payload)
            metrics.record_publish("sent")

    async def stop(self) -> None:
        lp = f"{self.lp}stop:"
        client = self.client
        self.client = None
        self._set_state(BusState.DISCONNECTED)
        for task in list(self._publish_tasks):
            _ = task.cancel()
        try:
            if client is not None:
                logger.debug("%s Disconnecting from broker...", lp)
                await client.__aexit__(None, None, None)
        except aiomqtt.MqttError as e:
            logger.warning("%s MQTT disconnect failed: %s", lp, e)
        else:
            logger.info("%s Disconnected from MQTT broker", lp)
        finally:
            if self.start_task and not self.start_task.done():
                logger.debug("%s FINISHING: Cancelling start task", lp)
                _ = self.start_task.cancel()
