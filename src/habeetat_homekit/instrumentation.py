"""
Timing instrumentation for message handling.

Handlers run on the single event loop shared with the HAP server, so a slow
handler delays every accessory. timed() logs how long each call took and
warns past HABEETAT_PERF_THRESHOLD_MS.
"""

from __future__ import annotations

import functools
import time
from collections.abc import Callable
from typing import Any, ParamSpec, TypeVar

__all__ = [
    "measure_time",
    "timed",
]

P = ParamSpec("P")
T = TypeVar("T")


def measure_time(start_time: float) -> float:
    """Elapsed milliseconds since a time.perf_counter() reading."""
    return (time.perf_counter() - start_time) * 1000


def timed(operation_name: str | None = None) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """
    Decorator for timing synchronous functions with a threshold warning.

    Disabled unless HABEETAT_PERF_TRACKING is set.

    Example:
        @timed("handle_message")
        def handle_message(self, topic, payload):
            ...
    """

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @functools.wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            # Import here to avoid circular dependency
            from habeetat_homekit.const import (  # noqa: PLC0415
                HABEETAT_PERF_THRESHOLD_MS,
                HABEETAT_PERF_TRACKING,
            )
            from habeetat_homekit.logging_abstraction import get_logger  # noqa: PLC0415

            if not HABEETAT_PERF_TRACKING:
                return func(*args, **kwargs)

            logger = get_logger(__name__)
            op_name = operation_name or func.__name__

            start_time = time.perf_counter()
            try:
                return func(*args, **kwargs)
            finally:
                _log_timing(logger, op_name, measure_time(start_time), HABEETAT_PERF_THRESHOLD_MS)

        return wrapper

    return decorator


def _log_timing(logger: Any, operation_name: str, elapsed_ms: float, threshold_ms: int) -> None:
    context = {
        "operation": operation_name,
        "duration_ms": round(elapsed_ms, 2),
        "threshold_ms": threshold_ms,
        "exceeded_threshold": elapsed_ms > threshold_ms,
    }
    if elapsed_ms > threshold_ms:
        logger.warning(
            "[%s] completed in %.1fms (threshold: %dms)",
            operation_name,
            elapsed_ms,
            threshold_ms,
            extra=context,
        )
    else:
        logger.debug("[%s] completed in %.1fms", operation_name, elapsed_ms, extra=context)
