"""Identifier generation.

Issue and attachment ids: 9 characters from a URL-safe alphabet.
Comment ids: UUID version 7 (48-bit unix-ms prefix), so they sort by creation time.
"""

from __future__ import annotations

import secrets
import time
import uuid

NANO_ALPHABET = "_-0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"
NANO_LENGTH = 9

_MS_MASK = (1 << 48) - 1
_RAND_B_MASK = (1 << 62) - 1


def new_nano_id(length: int = NANO_LENGTH) -> str:
    return "".join(secrets.choice(NANO_ALPHABET) for _ in range(length))


def uuid7(unix_ms: int | None = None) -> uuid.UUID:
    """Build an RFC 9562 version-7 UUID."""
    ms = time.time_ns() // 1_000_000 if unix_ms is None else unix_ms
    rand = secrets.randbits(74)
    value = (ms & _MS_MASK) << 80
    value |= 0x7 << 76                  # version
    value |= (rand >> 62) << 64         # rand_a, 12 bits
    value |= 0b10 << 62                 # variant
    value |= rand & _RAND_B_MASK        # rand_b, 62 bits
    return uuid.UUID(int=value)


class IdGenerator:
    """Default id source. Swap in a scripted subclass for deterministic tests."""

    def issue_id(self) -> str:
        return new_nano_id()

    def attachment_id(self) -> str:
        return new_nano_id()

    def comment_id(self) -> str:
        return str(uuid7())
