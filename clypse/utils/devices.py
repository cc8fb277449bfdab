# clypse/utils/devices.py
# Device labels and identifiers shown next to room messages

import logging
import os
import platform
import re
import secrets
import time

logger = logging.getLogger(__name__)

_UA_RULES: list[tuple[str, str]] = [
    (r"Mobile", "Mobile"),
    (r"Tablet", "Tablet"),
    (r"Mac", "Mac"),
    (r"Windows", "Windows"),
]

_PLATFORM_LABELS: dict[str, str] = {
    "Darwin": "Mac",
    "Windows": "Windows",
    "iOS": "Mobile",
    "Android": "Mobile",
}

_SIZE_UNITS: list[str] = ["Bytes", "KB", "MB", "GB"]


def generate_id() -> str:
    """Time-prefixed random id, e.g. 'lx3k9a2f' + 12 hex chars."""
    millis = int(time.time() * 1000)
    return f"{_base36(millis)}{secrets.token_hex(6)}"


def load_or_create_device_id(path: str) -> str:
    """Return the id saved at `path`, creating and saving one on first run.

    A restarted device keeps its id, so it is not counted as a second participant.
    When the file cannot be written the id lasts for this run only.
    """
    try:
        with open(path, encoding="utf-8") as fh:
            saved = fh.read().strip()
        if saved:
            return saved
    except OSError:
        pass

    device_id = generate_id()
    try:
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        with open(path, "w", encoding="utf-8") as fh:
            fh.write(device_id)
    except OSError as e:
        logger.warning(f"Could not save device id to {path}: {e}")
    return device_id


def _base36(value: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    out = ""
    while value:
        value, rem = divmod(value, 36)
        out = digits[rem] + out
    return out or "0"


def device_label(user_agent: str | None) -> str:
    """Map a User-Agent string to a coarse device label."""
    for pattern, label in _UA_RULES:
        if user_agent and re.search(pattern, user_agent):
            return label
    return "Desktop"


def local_device_label() -> str:
    """Device label for the machine running this process."""
    return _PLATFORM_LABELS.get(platform.system(), "Desktop")


def format_file_size(size: int) -> str:
    if size <= 0:
        return "0 Bytes"
    value = float(size)
    i = 0
    while value >= 1024 and i < len(_SIZE_UNITS) - 1:
        value /= 1024
        i += 1
    # 1.0 -> "1", 1.5 -> "1.5"
    return f"{round(value, 2):g} {_SIZE_UNITS[i]}"
