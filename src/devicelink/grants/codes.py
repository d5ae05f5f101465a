"""Device id and pairing code generation.

The device id is the private, high-entropy half of a grant; the pairing code
is the short half a human reads off the terminal and types into a browser.
The 32-symbol alphabet drops 0/O and 1/I. 32 divides 256, so masking a random
byte to its low 5 bits selects every symbol with equal probability.

8 symbols give 40 bits of code space, but a code is only worth guessing while
its grant is pending: it dies on first use and after ``grant_ttl_seconds``.
"""

from __future__ import annotations

import secrets

PAIRING_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
PAIRING_GROUP_SIZE = 4
PAIRING_GROUPS = 2
PAIRING_SEPARATOR = "-"
DEVICE_ID_BYTES = 32

_ALPHABET_MASK = len(PAIRING_CODE_ALPHABET) - 1


def generate_device_id() -> str:
    """Return a 256-bit device id as 64 hex characters."""
    return secrets.token_hex(DEVICE_ID_BYTES)


def generate_pairing_code() -> str:
    """Generate a short, human-friendly code like ABCD-EF23."""
    length = PAIRING_GROUP_SIZE * PAIRING_GROUPS
    raw = "".join(PAIRING_CODE_ALPHABET[b & _ALPHABET_MASK] for b in secrets.token_bytes(length))
    return _group(raw)


def generate() -> tuple[str, str]:
    """Return a fresh ``(device_id, pairing_code)`` pair."""
    return generate_device_id(), generate_pairing_code()


def normalize_pairing_code(value: str | None) -> str | None:
    """Normalize typed input to canonical form (ABCD-EF23) or return None."""
    if not value:
        return None
    cleaned = value.strip().upper().replace(" ", "").replace(PAIRING_SEPARATOR, "")
    if len(cleaned) != PAIRING_GROUP_SIZE * PAIRING_GROUPS:
        return None
    if any(ch not in PAIRING_CODE_ALPHABET for ch in cleaned):
        return None
    return _group(cleaned)


def _group(raw: str) -> str:
    return PAIRING_SEPARATOR.join(
        raw[i : i + PAIRING_GROUP_SIZE] for i in range(0, len(raw), PAIRING_GROUP_SIZE)
    )
