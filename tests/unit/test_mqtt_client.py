"""Unit tests for the aiomqtt bus client."""

from __future__ import annotations

import asyncio
from collections.abc import Generator
from unittest.mock import AsyncMock, MagicMock, patch

import aiomqtt
import pytest

from habeetat_homekit.config import MqttSettings
from habeetat_homekit.mqtt import BusClient
from habeetat_homekit.structs import BusState


@pytest.fixture
def mock_aiomqtt_client() -> Generator[MagicMock]:
    """Patch aiomqtt.Client with a connected-looking mock."""
    with patch("habeetat_homekit.mqtt.client.aiomqtt.Client") as client_cls:
        client = client_cls.return_value
        client.__aenter__ = AsyncMock(return_value=client)
        client.__aexit__ = AsyncMock(return_value=None)
        client.subscribe = AsyncMock()
        client.publish = AsyncMock()
        yield client_cls


@pytest.fixture
def synchronizer() -> MagicMock:
    return MagicMock()


@pytest.fixture
def bus(synchronizer) -> BusClient:
    return BusClient(MqttSettings(broker="broker.local", username="homekit", password="secret"), synchronizer=synchronizer)


def _message(topic: str, payload: bytes) -> MagicMock:
    message = MagicMock()
    message.topic.value = topic
    message.payload = payload
    return message


class TestBusClientSetup:
    """Tests for construction-time properties."""

    def test_subscriptions(self, bus):
        assert bus.subscriptions == ["habeetat/+/state", "homeassistant/+/habeetat_+/config"]

    def test_subscriptions_follow_base_topic(self):
        bus = BusClient(MqttSettings(broker="b"), base_topic="home/hbt")
        assert bus.subscriptions[0] == "home/hbt/+/state"

    def test_client_id_is_randomized(self, bus):
        other = BusClient(MqttSettings(broker="broker.local"))
        assert bus.client_id.startswith("homekit-habeetat-")
        assert len(bus.client_id) == len("homekit-habeetat-") + 6
        assert bus.client_id != other.client_id

    def test_starts_disconnected(self, bus):
        assert bus.state is BusState.DISCONNECTED
        assert bus.is_connected is False

    @pytest.mark.parametrize(("delay", "expected"), [(2.5, 2.5), (0, 5.0), (-1, 5.0)])
    def test_connection_delay(self, delay, expected):
        bus = BusClient(MqttSettings(broker="b", conn_delay=delay))
        assert bus._get_connection_delay("test:") == expected


class TestBusClientConnect:
    """Tests for connect()."""

    @pytest.mark.asyncio
    async def test_connect_subscribes_and_replays(self, bus, synchronizer, mock_aiomqtt_client):
        assert await bus.connect() is True

        mock_aiomqtt_client.assert_called_once_with(
            hostname="broker.local",
            port=1883,
            username="homekit",
            password="secret",
            identifier=bus.client_id,
        )
        client = mock_aiomqtt_client.return_value
        assert [c.args[0] for c in client.subscribe.await_args_list] == bus.subscriptions
        synchronizer.on_connected.assert_called_once_with()
        assert bus.state is BusState.ACTIVE
        assert bus.is_connected is True

    @pytest.mark.asyncio
    async def test_password_ignored_without_username(self, mock_aiomqtt_client):
        bus = BusClient(MqttSettings(broker="broker.local", password="orphan"))
        _ = await bus.connect()

        kwargs = mock_aiomqtt_client.call_args.kwargs
        assert kwargs["username"] is None
        assert kwargs["password"] is None

    @pytest.mark.asyncio
    async def test_connect_failure(self, bus, synchronizer, mock_aiomqtt_client):
        mock_aiomqtt_client.return_value.__aenter__.side_effect = aiomqtt.MqttError("[code:134] Bad user name or password")

        assert await bus.connect() is False
        assert bus.state is BusState.DISCONNECTED
        assert bus.client is None
        synchronizer.on_connected.assert_not_called()
        mock_aiomqtt_client.return_value.__aexit__.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_subscribe_failure_closes_connection(self, bus, synchronizer, mock_aiomqtt_client):
        """Test that a refused subscription does not leave the connection open."""
        client = mock_aiomqtt_client.return_value
        client.subscribe.side_effect = aiomqtt.MqttError("suback refused")

        assert await bus.connect() is False

        client.__aexit__.assert_awaited_once_with(None, None, None)
        assert bus.client is None
        assert bus.state is BusState.DISCONNECTED
        synchronizer.on_connected.assert_not_called()

    @pytest.mark.asyncio
    async def test_close_error_after_subscribe_failure_is_ignored(self, bus, mock_aiomqtt_client):
        client = mock_aiomqtt_client.return_value
        client.subscribe.side_effect = aiomqtt.MqttError("suback refused")
        client.__aexit__.side_effect = aiomqtt.MqttError("already gone")

        assert await bus.connect() is False
        assert bus.client is None

    @pytest.mark.asyncio
    async def test_lost_connection_is_closed_before_reconnect(self, bus, mock_aiomqtt_client):
        """Test that start() releases the dropped client before sleeping."""

        async def messages():
            yield _message("habeetat/s1/state", b"ON")
            raise aiomqtt.MqttError("Disconnected during message iteration")

        client = mock_aiomqtt_client.return_value
        client.messages = messages()

        with (
            patch("habeetat_homekit.mqtt.client.asyncio.sleep", new=AsyncMock(side_effect=asyncio.CancelledError)),
            pytest.raises(asyncio.CancelledError),
        ):
            await bus.start()

        client.__aexit__.assert_awaited_once_with(None, None, None)
        assert bus.client is None
        assert bus.state is BusState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_start_without_broker_returns(self, mock_aiomqtt_client):
        bus = BusClient(MqttSettings())
        await bus.start()

        mock_aiomqtt_client.assert_not_called()
        assert bus.state is BusState.DISCONNECTED


class TestBusClientMessages:
    """Tests for inbound dispatch."""

    @pytest.mark.asyncio
    async def test_messages_dispatched_in_order(self, bus, synchronizer, mock_aiomqtt_client):
        async def messages():
            yield _message("homeassistant/switch/habeetat_s1/config", b"{}")
            yield _message("habeetat/s1/state", b"ON")
            yield _message("habeetat/s1/state", b"OFF")

        mock_aiomqtt_client.return_value.messages = messages()
        _ = await bus.connect()
        await bus._receive()

        assert [c.args for c in synchronizer.handle_message.call_args_list] == [
            ("homeassistant/switch/habeetat_s1/config", b"{}"),
            ("habeetat/s1/state", b"ON"),
            ("habeetat/s1/state", b"OFF"),
        ]

    @pytest.mark.asyncio
    async def test_handler_error_does_not_stop_receiving(self, bus, synchronizer, mock_aiomqtt_client):
        async def messages():
            yield _message("habeetat/a/state", b"1")
            yield _message("habeetat/b/state", b"2")

        mock_aiomqtt_client.return_value.messages = messages()
        synchronizer.handle_message.side_effect = [RuntimeError("boom"), None]
        _ = await bus.connect()
        await bus._receive()

        assert synchronizer.handle_message.call_count == 2


class TestBusClientPublish:
    """Tests for fire-and-forget publishing."""

    def test_publish_while_disconnected_is_dropped(self, bus, mock_aiomqtt_client):
        bus.publish("habeetat/s1/set", "ON")
        mock_aiomqtt_client.return_value.publish.assert_not_called()

    @pytest.mark.asyncio
    async def test_publish_when_connected(self, bus, mock_aiomqtt_client):
        _ = await bus.connect()
        bus.publish("habeetat/s1/set", "ON")
        await asyncio.sleep(0)

        mock_aiomqtt_client.return_value.publish.assert_awaited_once_with(
            "habeetat/s1/set",
            b"ON",
            qos=0,
            retain=False,
        )

    @pytest.mark.asyncio
    async def test_publish_failure_is_logged_not_raised(self, bus, mock_aiomqtt_client):
        mock_aiomqtt_client.return_value.publish.side_effect = aiomqtt.MqttError("gone")
        _ = await bus.connect()
        bus.publish("habeetat/s1/set", "ON")
        await asyncio.sleep(0)

        assert mock_aiomqtt_client.return_value.publish.await_count == 1


class TestBusClientStop:
    """Tests for stop()."""

    @pytest.mark.asyncio
    async def test_stop_disconnects_and_cancels(self, bus, mock_aiomqtt_client):
        _ = await bus.connect()
        bus.start_task = asyncio.create_task(asyncio.sleep(3600))

        await bus.stop()
        with pytest.raises(asyncio.CancelledError):
            await bus.start_task

        mock_aiomqtt_client.return_value.__aexit__.assert_awaited_once_with(None, None, None)
        assert bus.state is BusState.DISCONNECTED
        assert bus.client is None
