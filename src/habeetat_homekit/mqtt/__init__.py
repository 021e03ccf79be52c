"""MQTT side of the bridge: the aiomqtt bus client and the discovery resolver."""

from habeetat_homekit.mqtt.client import BusClient
from habeetat_homekit.mqtt.discovery import DiscoveryResolver

__all__ = [
    "BusClient",
    "DiscoveryResolver",
]
