from __future__ import annotations

import hashlib

ORACLE_KEY_SEPARATOR = ","
_FLOAT_BITS = 53


def oracle_key(*parts: int | str) -> str:
    """Join key parts into a stable oracle key, e.g. ``oracle_key(3, -2) == "3,-2"``."""
    if not parts:
        raise ValueError("oracle key requires at least one part")
    rendered: list[str] = []
    for part in parts:
        if isinstance(part, bool) or not isinstance(part, (int, str)):
            raise ValueError(f"oracle key parts must be int or str, got {type(part).__name__}")
        text = str(part)
        if isinstance(part, str) and (not text or ORACLE_KEY_SEPARATOR in text):
            raise ValueError(f"oracle key discriminator must be non-empty and free of {ORACLE_KEY_SEPARATOR!r}")
        rendered.append(text)
    return ORACLE_KEY_SEPARATOR.join(rendered)


def luck(key: str, *, seed: int = 0) -> float:
    """Deterministic float in [0, 1) derived from (seed, key)."""
    digest = hashlib.sha256(f"{seed}:{key}".encode("utf-8")).digest()
    value = int.from_bytes(digest[:8], byteorder="big", signed=False) >> (64 - _FLOAT_BITS)
    return value / float(1 << _FLOAT_BITS)
