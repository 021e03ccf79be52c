import logging
import os

from habeetat_homekit import __version__

__all__ = [
    "COMMAND_SUFFIX",
    "DEFAULT_MANUFACTURER",
    "DEFAULT_MODEL",
    "DISCOVERY_PREFIX",
    "DISCOVERY_TOPIC",
    "FOREIGN_LOG_FORMATTER",
    "HABEETAT_BRIDGE_NAME",
    "HABEETAT_DEBUG",
    "HABEETAT_LOG_CORRELATION_ENABLED",
    "HABEETAT_LOG_FORMAT",
    "HABEETAT_LOG_HUMAN_OUTPUT",
    "HABEETAT_LOG_JSON_FILE",
    "HABEETAT_METRICS_PORT",
    "HABEETAT_PERF_THRESHOLD_MS",
    "HABEETAT_PERF_TRACKING",
    "HABEETAT_TOPIC",
    "HABEETAT_VERSION",
    "HAP_START_TASK_NAME",
    "MODE_SUFFIX",
    "MQTT_CLIENT_START_TASK_NAME",
    "POSITION_SUFFIX",
    "STATE_SUFFIX",
    "TEMPERATURE_SUFFIX",
    "YES_ANSWER",
]

YES_ANSWER = ("true", "1", "yes", "y", "t", 1, "on", "o")

# adds logger name
FOREIGN_LOG_FORMATTER = logging.Formatter(
    "%(asctime)s.%(msecs)d %(levelname)s <%(name)s> [%(module)s:%(lineno)d] > %(message)s",
    "%m/%d/%y %H:%M:%S",
)
HABEETAT_VERSION: str = __version__

# habeetat-bridge topic layout
STATE_SUFFIX: str = "/state"
COMMAND_SUFFIX: str = "/set"
POSITION_SUFFIX: str = "/set_position"
TEMPERATURE_SUFFIX: str = "/set_temperature"
MODE_SUFFIX: str = "/set_mode"
DISCOVERY_PREFIX: str = "homeassistant"
DISCOVERY_TOPIC: str = f"{DISCOVERY_PREFIX}/+/habeetat_+/config"

DEFAULT_MANUFACTURER: str = "Solidmation"
DEFAULT_MODEL: str = "Habeetat"

# Connection settings (broker, ports, persistent dir) are resolved at runtime by config.load_config()
HABEETAT_TOPIC: str = os.environ.get("HABEETAT_TOPIC", "habeetat") or "habeetat"
HABEETAT_BRIDGE_NAME: str = os.environ.get("HABEETAT_BRIDGE_NAME", "Habeetat Bridge") or "Habeetat Bridge"
HABEETAT_DEBUG = os.environ.get("HABEETAT_DEBUG", "0").casefold() in YES_ANSWER

MQTT_CLIENT_START_TASK_NAME = "BusClient_START"
HAP_START_TASK_NAME = "HapDriver_START"

# Logging Configuration
HABEETAT_LOG_FORMAT: str = os.environ.get("HABEETAT_LOG_FORMAT", "human")  # "json", "human", or "both"
HABEETAT_LOG_JSON_FILE: str = os.environ.get("HABEETAT_LOG_JSON_FILE", "/var/log/habeetat_homekit.json")
HABEETAT_LOG_HUMAN_OUTPUT: str = os.environ.get("HABEETAT_LOG_HUMAN_OUTPUT", "stdout")  # "stdout", "stderr", or path
HABEETAT_LOG_CORRELATION_ENABLED: bool = (
    os.environ.get("HABEETAT_LOG_CORRELATION_ENABLED", "true").casefold() in YES_ANSWER
)

# Performance Instrumentation
HABEETAT_PERF_TRACKING: bool = os.environ.get("HABEETAT_PERF_TRACKING", "false").casefold() in YES_ANSWER
_perf_threshold = os.environ.get("HABEETAT_PERF_THRESHOLD_MS", "50")
HABEETAT_PERF_THRESHOLD_MS: int = int(_perf_threshold) if _perf_threshold and _perf_threshold.isdigit() else 50

_metrics_port = os.environ.get("HABEETAT_METRICS_PORT", "")
HABEETAT_METRICS_PORT: int | None = int(_metrics_port) if _metrics_port.isdigit() else None
