"""Unit tests for the device registry and message routing."""

from __future__ import annotations

import json

import pytest

from habeetat_homekit.accessories import CoverHandler, LightHandler, SwitchHandler, TemperatureSensorHandler
from habeetat_homekit.structs import CapabilityType, HeatingCoolingState, PositionState
from habeetat_homekit.synchronizer import Synchronizer


@pytest.fixture
def synchronizer(accessory_host, publisher) -> Synchronizer:
    return Synchronizer(accessory_host, publisher)


def _discovery(component: str, **config) -> tuple[str, bytes]:
    unique_id = config["unique_id"]
    config.setdefault("state_topic", f"habeetat/{unique_id}/state")
    config.setdefault("command_topic", f"habeetat/{unique_id}/set")
    return f"homeassistant/{component}/habeetat_{unique_id}/config", json.dumps(config).encode()


class TestScenarios:
    """End-to-end flows through the synchronizer."""

    def test_rgb_discovery_then_state(self, synchronizer, accessory_host):
        """Test discovery of an hs light followed by a full state message."""
        synchronizer.handle_message(*_discovery("light", unique_id="d1", name="Lamp", supported_color_modes=["hs"]))

        assert list(synchronizer.devices) == ["d1"]
        assert synchronizer.devices["d1"].capability is CapabilityType.RGB
        assert synchronizer.devices["d1"].name == "Lamp"
        assert len(accessory_host.registered) == 1

        synchronizer.handle_message(
            "habeetat/d1/state",
            b'{"state": "ON", "brightness": 128, "hs_color": [180, 50]}',
        )
        handler = synchronizer.handlers["d1"]
        assert isinstance(handler, LightHandler)
        assert handler.snapshot() == {"on": True, "brightness": 50, "hue": 180, "saturation": 50}

    def test_cover_target_publishes_position(self, synchronizer, accessory_host, publisher):
        synchronizer.handle_message(*_discovery("cover", unique_id="c1", name="Blind"))
        synchronizer.handle_message("habeetat/c1/state", b'{"position": 30}')

        accessory_host.registered[0].services["WindowCovering"].set("TargetPosition", 80)

        assert publisher.published == [("habeetat/c1/set_position", "80")]
        assert synchronizer.handlers["c1"].snapshot()["position_state"] is PositionState.INCREASING

    def test_switch_bare_string(self, synchronizer):
        synchronizer.handle_message(*_discovery("switch", unique_id="s1", name="Plug"))
        synchronizer.handle_message("habeetat/s1/state", b"ON")
        synchronizer.handle_message("habeetat/s1/state", b"OFF")

        assert synchronizer.handlers["s1"].snapshot() == {"on": False}

    def test_climate_nan_reading_keeps_mode(self, synchronizer, accessory_host):
        """Test that JSON NaN or Infinity in a state message is skipped field by field."""
        synchronizer.handle_message(*_discovery("climate", unique_id="t", name="Heat pump"))
        synchronizer.handle_message("habeetat/t/state", b'{"temperature": NaN, "current_temperature": Infinity, "mode": "heat"}')

        snapshot = synchronizer.handlers["t"].snapshot()
        assert snapshot["target_temperature"] == 22
        assert snapshot["current_temperature"] == 20
        assert snapshot["target_heating_cooling_state"] is HeatingCoolingState.HEAT

    def test_cover_infinite_position_is_skipped(self, synchronizer):
        synchronizer.handle_message(*_discovery("cover", unique_id="c1", name="Blind"))
        synchronizer.handle_message("habeetat/c1/state", b'{"position": Infinity}')

        assert synchronizer.handlers["c1"].snapshot()["current_position"] == 0

    def test_temperature_sensor_ignores_garbage(self, synchronizer, accessory_host):
        synchronizer.handle_message(
            *_discovery("sensor", unique_id="t1", name="Hall", device_class="temperature")
        )
        synchronizer.handle_message("habeetat/t1/state", b"abc")

        handler = synchronizer.handlers["t1"]
        assert isinstance(handler, TemperatureSensorHandler)
        assert handler.snapshot() == {"current_temperature": 20}
        assert accessory_host.registered[0].services["TemperatureSensor"].updates == []


class TestRegistration:
    """Tests for add_device()."""

    def test_duplicate_announcement_is_ignored(self, synchronizer, accessory_host, make_device):
        synchronizer.add_device(make_device(CapabilityType.SWITCH, unique_id="s1", name="First"))
        synchronizer.add_device(make_device(CapabilityType.SWITCH, unique_id="s1", name="Second"))

        assert len(synchronizer.devices) == 1
        assert synchronizer.devices["s1"].name == "First"
        assert len(synchronizer.accessories) == 1
        assert len(accessory_host.created) == 1
        assert len(accessory_host.registered) == 1

    def test_new_accessory_carries_device_information(self, synchronizer, accessory_host, make_device):
        synchronizer.add_device(make_device(CapabilityType.DIMMER, unique_id="l1", name="Desk", model="HBT-D"))

        accessory = accessory_host.registered[0]
        assert accessory.uuid == accessory_host.generate_uuid("l1")
        assert accessory.display_name == "Desk"
        assert accessory.context["device"]["unique_id"] == "l1"
        assert accessory.information.values == {
            "Manufacturer": "Solidmation",
            "Model": "HBT-D",
            "SerialNumber": "l1",
        }

    def test_cached_accessory_is_rebound_in_place(self, synchronizer, accessory_host, make_device, make_accessory):
        """Test that a restored accessory is reused, not re-registered."""
        cached = make_accessory("Old Name", "c1")
        cached.context["device"] = {"unique_id": "c1", "name": "Old Name", "capability": "cover"}
        synchronizer.configure_accessory(cached)

        synchronizer.add_device(make_device(CapabilityType.CURTAIN, unique_id="c1", name="Curtain"))

        assert accessory_host.created == []
        assert accessory_host.registered == []
        assert accessory_host.updated == [cached]
        assert cached.context["device"]["capability"] == "curtain"
        assert isinstance(synchronizer.handlers["c1"], CoverHandler)
        assert synchronizer.handlers["c1"].accessory is cached

    def test_unbound_accessories(self, synchronizer, make_device, make_accessory):
        stale = make_accessory("Gone", "gone")
        kept = make_accessory("Kept", "s1")
        synchronizer.configure_accessory(stale)
        synchronizer.configure_accessory(kept)
        synchronizer.add_device(make_device(CapabilityType.SWITCH, unique_id="s1"))

        assert synchronizer.unbound_accessories() == [stale]

    def test_unsupported_capability_has_no_accessory(self, synchronizer, accessory_host, make_device):
        """Test that light sensors are recorded but never get a handler."""
        synchronizer.add_device(make_device(CapabilityType.LIGHT_SENSOR, unique_id="lux1"))

        assert "lux1" in synchronizer.devices
        assert "lux1" not in synchronizer.handlers
        assert accessory_host.created == []

    def test_plain_light_uses_switch_handler(self, synchronizer, make_device):
        synchronizer.add_device(make_device(CapabilityType.LIGHT, unique_id="l1"))
        assert isinstance(synchronizer.handlers["l1"], SwitchHandler)

    def test_static_devices_replayed_on_connect(self, accessory_host, publisher, make_device):
        synchronizer = Synchronizer(
            accessory_host,
            publisher,
            static_devices=[make_device(CapabilityType.SWITCH, unique_id="s1")],
        )
        assert synchronizer.devices == {}

        synchronizer.on_connected()
        synchronizer.on_connected()

        assert list(synchronizer.devices) == ["s1"]
        assert len(accessory_host.registered) == 1


class TestRouting:
    """Tests for handle_message() topic routing."""

    def test_custom_base_topic(self, accessory_host, publisher, make_device):
        synchronizer = Synchronizer(accessory_host, publisher, base_topic="home/habeetat")
        synchronizer.add_device(make_device(CapabilityType.SWITCH, unique_id="s1"))

        synchronizer.handle_message("habeetat/s1/state", "ON")
        assert synchronizer.handlers["s1"].snapshot() == {"on": False}

        synchronizer.handle_message("home/habeetat/s1/state", "ON")
        assert synchronizer.handlers["s1"].snapshot() == {"on": True}

    @pytest.mark.parametrize(
        "topic",
        ["habeetat/s1/set", "habeetat/s1/extra/state", "habeetat//state", "other/s1/state", "habeetat/s1"],
    )
    def test_unrelated_topics_are_ignored(self, topic, synchronizer, make_device):
        synchronizer.add_device(make_device(CapabilityType.SWITCH, unique_id="s1"))
        synchronizer.handle_message(topic, b"ON")
        assert synchronizer.handlers["s1"].snapshot() == {"on": False}

    def test_state_for_unknown_device_is_dropped(self, synchronizer):
        synchronizer.handle_message("habeetat/nobody/state", b"ON")
        assert synchronizer.handlers == {}

    def test_json_string_is_decoded_before_dispatch(self, synchronizer, make_device):
        """Test that a JSON encoded string reaches the handler as a plain string."""
        synchronizer.add_device(make_device(CapabilityType.SWITCH, unique_id="s1"))
        synchronizer.handle_message("habeetat/s1/state", b'"ON"')
        assert synchronizer.handlers["s1"].snapshot() == {"on": True}

    def test_numeric_state_reaches_sensor(self, synchronizer, make_device):
        synchronizer.add_device(make_device(CapabilityType.TEMPERATURE_SENSOR, unique_id="t1"))
        synchronizer.handle_message("habeetat/t1/state", b"21.5")
        assert synchronizer.handlers["t1"].snapshot() == {"current_temperature": 21.5}

    def test_undecodable_payload_is_dropped(self, synchronizer, make_device):
        synchronizer.add_device(make_device(CapabilityType.SWITCH, unique_id="s1"))
        synchronizer.handle_message("habeetat/s1/state", b"\xff\xfe")
        assert synchronizer.handlers["s1"].snapshot() == {"on": False}

    def test_rejected_discovery_registers_nothing(self, synchronizer, accessory_host):
        synchronizer.handle_message("homeassistant/light/habeetat_x/config", b"{not json")
        synchronizer.handle_message(*_discovery("fan", unique_id="f1", name="Fan"))

        assert synchronizer.devices == {}
        assert accessory_host.created == []

    def test_messages_apply_in_delivery_order(self, synchronizer, make_device):
        synchronizer.add_device(make_device(CapabilityType.DIMMER, unique_id="l1"))
        for brightness in (10, 200, 64):
            synchronizer.handle_message("habeetat/l1/state", json.dumps({"brightness": brightness}))
        assert synchronizer.handlers["l1"].snapshot()["brightness"] == 25
