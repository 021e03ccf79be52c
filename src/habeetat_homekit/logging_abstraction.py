"""Logging abstraction layer for the Habeetat HomeKit bridge.

Handlers live on the ``habeetat_homekit`` package logger and are attached
once, the first time any module asks for a logger. Module loggers carry no
handlers of their own and propagate to it, so a single set_package_level()
call re-levels the whole bridge.

Two outputs are available (``HABEETAT_LOG_FORMAT``): a human-readable stream
and a JSON-lines file. Both stamp each record with the correlation id of the
bus message being handled, and both render the ``extra=`` context passed to
the logger methods.
"""

from __future__ import annotations

import json
import logging
import sys
import threading
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import TextIO

if sys.version_info >= (3, 12):
    from typing import override
else:
    from typing_extensions import override

__all__ = [
    "PACKAGE_LOGGER",
    "HabeetatLogger",
    "HumanReadableFormatter",
    "JSONFormatter",
    "configure_logging",
    "get_logger",
    "quiet_foreign_loggers",
    "set_package_level",
]

PACKAGE_LOGGER = "habeetat_homekit"

_configure_lock = threading.Lock()
_configured = {"done": False}


def _correlation_id() -> str | None:
    # Import here to avoid circular dependency
    from habeetat_homekit.const import HABEETAT_LOG_CORRELATION_ENABLED
    from habeetat_homekit.correlation import get_correlation_id

    if not HABEETAT_LOG_CORRELATION_ENABLED:
        return None
    return get_correlation_id()


def _context(record: logging.LogRecord) -> dict[str, object]:
    extra_data = getattr(record, "extra_data", None)
    if isinstance(extra_data, Mapping):
        return {str(k): v for k, v in extra_data.items()}
    return {}


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for log shippers."""

    @override
    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "ts": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "where": f"{record.module}:{record.lineno}",
            "msg": record.getMessage(),
            "correlation_id": _correlation_id(),
        }
        if context := _context(record):
            entry["context"] = context
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """``<time> <LEVEL> [module:line] [corr-id] > message | key=value ...``"""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s.%(msecs)03d %(levelname)s [%(module)s:%(lineno)d] %(correlation_id)s > %(message)s",
            datefmt="%m/%d/%y %H:%M:%S",
        )

    @override
    def format(self, record: logging.LogRecord) -> str:
        correlation_id = _correlation_id()
        record.correlation_id = f"[{correlation_id[:8]}]" if correlation_id else "[--------]"
        formatted = super().format(record)
        if context := _context(record):
            formatted += " | " + " | ".join(f"{k}={v}" for k, v in context.items())
        return formatted


def _human_stream(human_output: str) -> logging.Handler:
    streams: dict[str, TextIO] = {"stdout": sys.stdout, "stderr": sys.stderr}
    if human_output in streams:
        return logging.StreamHandler(streams[human_output])
    try:
        path = Path(human_output)
        path.parent.mkdir(parents=True, exist_ok=True)
        return logging.FileHandler(path, mode="a")
    except OSError as e:
        print(f"Warning: cannot log to {human_output} ({e}), using stdout", file=sys.stderr)
        return logging.StreamHandler(sys.stdout)


def configure_logging(
    log_format: str | None = None,
    json_file: str | Path | None = None,
    human_output: str | None = None,
    *,
    force: bool = False,
) -> logging.Logger:
    """Attach output handlers to the package logger (once, unless forced).

    Args:
        log_format: "json", "human" or "both"; defaults to HABEETAT_LOG_FORMAT
        json_file: JSON-lines file; defaults to HABEETAT_LOG_JSON_FILE
        human_output: "stdout", "stderr" or a file path; defaults to HABEETAT_LOG_HUMAN_OUTPUT
        force: Drop existing handlers and configure again

    """
    from habeetat_homekit.const import (
        HABEETAT_DEBUG,
        HABEETAT_LOG_FORMAT,
        HABEETAT_LOG_HUMAN_OUTPUT,
        HABEETAT_LOG_JSON_FILE,
    )

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    with _configure_lock:
        if _configured["done"] and not force:
            return package_logger

        for handler in list(package_logger.handlers):
            package_logger.removeHandler(handler)
            handler.close()

        log_format = log_format or HABEETAT_LOG_FORMAT
        level = logging.DEBUG if HABEETAT_DEBUG else logging.INFO
        package_logger.setLevel(level)

        handlers: list[logging.Handler] = []
        if log_format in ("json", "both"):
            json_path = Path(json_file or HABEETAT_LOG_JSON_FILE)
            try:
                json_path.parent.mkdir(parents=True, exist_ok=True)
                json_handler = logging.FileHandler(json_path, mode="a")
            except OSError as e:
                print(f"Warning: cannot open JSON log file {json_path} ({e})", file=sys.stderr)
            else:
                json_handler.setFormatter(JSONFormatter())
                handlers.append(json_handler)
        if log_format in ("human", "both") or not handlers:
            human_handler = _human_stream(human_output or HABEETAT_LOG_HUMAN_OUTPUT)
            human_handler.setFormatter(HumanReadableFormatter())
            handlers.append(human_handler)

        for handler in handlers:
            handler.setLevel(level)
            package_logger.addHandler(handler)
        _configured["done"] = True
    return package_logger


class HabeetatLogger:
    """Thin wrapper nesting ``extra=`` context under ``extra_data``.

    Nesting keeps keys such as ``name`` or ``module`` (which device
    descriptors carry) from clashing with LogRecord attributes.
    """

    def __init__(self, name: str) -> None:
        self.name: str = name
        self.logger: logging.Logger = logging.getLogger(name)

    def _log(
        self,
        level: int,
        msg: str,
        *args: object,
        extra: Mapping[str, object] | None = None,
        exc_info: bool = False,
    ) -> None:
        if not self.logger.isEnabledFor(level):
            return
        payload = {"extra_data": dict(extra)} if extra else None
        # stacklevel 3: report the caller of debug()/info()/..., not this wrapper
        self.logger.log(level, msg, *args, extra=payload, exc_info=exc_info, stacklevel=3)

    def debug(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.DEBUG, msg, *args, extra=extra)

    def info(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.INFO, msg, *args, extra=extra)

    def warning(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.WARNING, msg, *args, extra=extra)

    def error(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.ERROR, msg, *args, extra=extra)

    def exception(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        """Log at error level with the active exception's traceback."""
        self._log(logging.ERROR, msg, *args, extra=extra, exc_info=True)


def get_logger(name: str) -> HabeetatLogger:
    """Logger for a module of the bridge; configures output on first use."""
    _ = configure_logging()
    return HabeetatLogger(name)


def quiet_foreign_loggers(level: int = logging.WARNING) -> None:
    """Route aiomqtt / pyhap logs through one handler at a reduced level."""
    from habeetat_homekit.const import FOREIGN_LOG_FORMATTER

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(FOREIGN_LOG_FORMATTER)
    for name in ("aiomqtt", "mqtt", "pyhap", "zeroconf"):
        foreign = logging.getLogger(name)
        foreign.setLevel(level)
        foreign.propagate = False
        if not foreign.handlers:
            foreign.addHandler(handler)


def set_package_level(level: int) -> None:
    """Re-level the package logger and its handlers."""
    package_logger = configure_logging()
    package_logger.setLevel(level)
    for handler in package_logger.handlers:
        handler.setLevel(level)
