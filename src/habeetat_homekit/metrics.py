"""Prometheus metrics for the bus side of the bridge."""

import threading
from typing import Final

from prometheus_client import (  # type: ignore[import-untyped]
    Counter,
    Gauge,
    start_http_server,
)

habeetat_messages_received_total: Final = Counter(  # type: ignore[assignment]
    "habeetat_messages_received_total",
    "Inbound MQTT messages",
    ["kind", "outcome"],
)

habeetat_messages_published_total: Final = Counter(  # type: ignore[assignment]
    "habeetat_messages_published_total",
    "Outbound MQTT publishes",
    ["outcome"],
)

habeetat_devices_discovered_total: Final = Counter(  # type: ignore[assignment]
    "habeetat_devices_discovered_total",
    "Devices added to the registry",
    ["capability"],
)

habeetat_bus_connection_state: Final = Gauge(  # type: ignore[assignment]
    "habeetat_bus_connection_state",
    "Current MQTT connection state",
    ["state"],
)

_server_state = {"started": False}
_server_lock = threading.Lock()

_BUS_STATES = ("disconnected", "connecting", "subscribed", "active")


def start_metrics_server(port: int) -> None:
    """Start Prometheus HTTP metrics server (idempotent)."""
    with _server_lock:
        if not _server_state["started"]:
            start_http_server(port)  # type: ignore[no-untyped-call]
            _server_state["started"] = True


def record_message_received(kind: str, outcome: str) -> None:
    """Record an inbound message (kind: discovery/state/other)."""
    habeetat_messages_received_total.labels(kind=kind, outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_publish(outcome: str) -> None:
    """Record an outbound publish (sent/dropped/failed)."""
    habeetat_messages_published_total.labels(outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_device_discovered(capability: str) -> None:
    habeetat_devices_discovered_total.labels(capability=capability).inc()  # type: ignore[no-untyped-call]


def record_bus_state(state: str) -> None:
    """Set gauge to 1 for the current state, 0 for all others."""
    for s in _BUS_STATES:
        habeetat_bus_connection_state.labels(state=s).set(1 if s == state else 0)  # type: ignore[no-untyped-call]
