"""HomeKit bridge for Habeetat devices exposed over MQTT by habeetat-bridge."""

__version__ = "0.1.0"
