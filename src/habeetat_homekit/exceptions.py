"""Exception hierarchy for the Habeetat HomeKit bridge.

None of these escape to the event loop: the synchronizer and the discovery
resolver catch them at their boundary and log them, so a bad payload or an
unsupported device never takes the bridge down.
"""

from __future__ import annotations

from pathlib import Path

__all__ = [
    "ConfigError",
    "HabeetatError",
    "MalformedPayloadError",
    "UnsupportedCapabilityError",
]


class HabeetatError(Exception):
    """Base class for all bridge errors."""


class MalformedPayloadError(HabeetatError):
    """A discovery or state payload could not be interpreted.

    Attributes:
        reason: What was wrong with the payload
        payload: The offending payload (as received)

    """

    def __init__(self, reason: str, payload: object = None) -> None:
        """Initialize with the failure reason and the raw payload."""
        self.reason: str = reason
        self.payload: object = payload
        super().__init__(f"Malformed payload: {reason}")


class UnsupportedCapabilityError(HabeetatError):
    """A device announced a capability type that has no handler."""

    def __init__(self, capability: str) -> None:
        """Initialize with the capability type name."""
        self.capability: str = capability
        super().__init__(f"Unsupported capability type: {capability}")


class ConfigError(HabeetatError):
    """The configuration file is missing required data or cannot be parsed."""

    def __init__(self, reason: str, path: str | Path | None = None) -> None:
        """Initialize with the failure reason and the offending file path."""
        self.reason: str = reason
        self.path: str | None = str(path) if path is not None else None
        where = f" ({self.path})" if self.path else ""
        super().__init__(f"Configuration error: {reason}{where}")
