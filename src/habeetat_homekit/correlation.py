"""
Correlation IDs for tracing one bus message through discovery, handlers and HAP.

Each inbound MQTT message runs inside its own correlation_context(), so every
log line emitted while handling it carries the same short ID.
"""

from __future__ import annotations

import contextvars
import uuid
from collections.abc import Generator
from contextlib import contextmanager

__all__ = [
    "correlation_context",
    "ensure_correlation_id",
    "get_correlation_id",
    "set_correlation_id",
]

_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "habeetat_correlation_id",
    default=None,
)


def get_correlation_id() -> str | None:
    """Return the correlation ID of the current context, if any."""
    return _correlation_id.get()


def set_correlation_id(correlation_id: str | None) -> None:
    """Set (or clear, with None) the correlation ID of the current context."""
    _correlation_id.set(correlation_id)


@contextmanager
def correlation_context(correlation_id: str | None = None) -> Generator[str]:
    """
    Scope a correlation ID, generating one when none is given.

    The previous ID is restored on exit.

    Example:
        with correlation_context() as corr_id:
            synchronizer.handle_message(topic, payload)
    """
    previous_id = get_correlation_id()
    current_id = correlation_id or uuid.uuid4().hex
    set_correlation_id(current_id)
    try:
        yield current_id
    finally:
        set_correlation_id(previous_id)


def ensure_correlation_id() -> str:
    """Return the current correlation ID, creating one for task entry points."""
    current_id = get_correlation_id()
    if current_id is None:
        current_id = uuid.uuid4().hex
        set_correlation_id(current_id)
    return current_id
