# clypse/utils/codes.py
# Short human-enterable codes for files and rooms

from __future__ import annotations

import re
import secrets
import random
from typing import Awaitable, Callable, Optional

from clypse.constants import CODE_ALPHABET, CODE_LENGTH, CODE_PATTERN
from clypse.middleware.error_handler import CodeSpaceExhausted, InvalidCodeError

_CODE_RE = re.compile(CODE_PATTERN)
_NON_ALNUM_RE = re.compile(r"[^A-Z0-9]")


def generate_code(rng: Optional[random.Random] = None) -> str:
    """Draw CODE_LENGTH symbols uniformly from CODE_ALPHABET."""
    choice = rng.choice if rng is not None else secrets.choice
    return "".join(choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


async def allocate_code(
    is_live: Callable[[str], Awaitable[bool]],
    max_attempts: int = 20,
    rng: Optional[random.Random] = None,
) -> str:
    """Return a code for which `is_live` is false.

    Resamples on collision; raises CodeSpaceExhausted after `max_attempts` tries.
    """
    for _ in range(max_attempts):
        code = generate_code(rng)
        if not await is_live(code):
            return code
    raise CodeSpaceExhausted(max_attempts)


def normalize_code(raw: str) -> str:
    """Uppercase, drop anything but letters and digits, keep the first four."""
    return _NON_ALNUM_RE.sub("", (raw or "").upper())[:CODE_LENGTH]


def is_valid_code(code: str) -> bool:
    return _CODE_RE.fullmatch(code or "") is not None


def validate_code(raw: str) -> str:
    """Return the canonical form of `raw` or raise InvalidCodeError."""
    code = (raw or "").strip().upper()
    if not is_valid_code(code):
        raise InvalidCodeError(raw or "")
    return code
