from __future__ import annotations

import sys
from pathlib import Path

from habeetat_homekit.logging_abstraction import get_logger

logger = get_logger(__name__)


def ensure_persistent_dir(persistent_dir: Path) -> Path:
    """Create the directory holding the accessory cache and HAP pairing state."""
    lp = "persistent_dir:"
    persistent_dir = persistent_dir.expanduser().resolve()
    if not persistent_dir.exists():
        try:
            persistent_dir.mkdir(parents=True, exist_ok=True)
            logger.info("%s Created persistent directory: %s", lp, persistent_dir.as_posix())
        except OSError:
            logger.exception("%s Failed to create persistent directory: %s - Exiting...", lp, persistent_dir)
            sys.exit(1)
    return persistent_dir


def parse_pincode(pincode: str | None) -> bytes | None:
    """HomeKit setup code as pyhap wants it (``b"123-45-678"``); None lets pyhap generate one."""
    if not pincode:
        return None
    digits = pincode.replace("-", "").strip()
    if len(digits) != 8 or not digits.isdigit():
        logger.warning("Ignoring malformed HomeKit pincode (expected XXX-XX-XXX)")
        return None
    return f"{digits[:3]}-{digits[3:5]}-{digits[5:]}".encode()
