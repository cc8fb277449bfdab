# clypse/constants.py
# Code alphabet and storage key layout shared by every backend

# Uppercase letters and digits without O, I, 0 and 1
CODE_ALPHABET: str = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_LENGTH: int = 4
CODE_PATTERN: str = r"^[A-HJ-NP-Z2-9]{4}$"

FILES_PREFIX: str = "files:"
ROOMS_PREFIX: str = "rooms:"
MESSAGES_SUFFIX: str = ":messages"
DEVICES_SUFFIX: str = ":devices"

DEFAULT_CONTENT_TYPE: str = "application/octet-stream"


def file_key(code: str) -> str:
    return f"{FILES_PREFIX}{code}"


def room_messages_key(code: str) -> str:
    return f"{ROOMS_PREFIX}{code}{MESSAGES_SUFFIX}"


def room_devices_key(code: str) -> str:
    return f"{ROOMS_PREFIX}{code}{DEVICES_SUFFIX}"
