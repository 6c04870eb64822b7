"""Identifier and content-hash utilities."""

from __future__ import annotations

import hashlib
import secrets
import threading
import time

_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"
_state = {"millis": 0, "counter": 0}
_lock = threading.Lock()


def _base36(value: int) -> str:
    digits: list[str] = []
    while True:
        value, remainder = divmod(value, 36)
        digits.append(_ALPHABET[remainder])
        if value == 0:
            break
    return "".join(reversed(digits))


def generate_cuid(length: int = 24) -> str:
    """Generate a sortable lowercase identifier with a `c` prefix.

    Layout: `c` + base36 millis + 4-char per-millisecond counter + random fill.
    """
    now_millis = time.time_ns() // 1_000_000
    with _lock:
        if now_millis == _state["millis"]:
            _state["counter"] += 1
        else:
            _state["millis"] = now_millis
            _state["counter"] = 0
        counter = _state["counter"]

    prefix = _base36(now_millis) + _base36(counter).rjust(4, "0")
    body_len = max(length - 1, 8)
    fill = "".join(secrets.choice(_ALPHABET) for _ in range(max(body_len - len(prefix), 0)))
    return "c" + (prefix + fill)[:body_len]


def content_hash(payload: bytes) -> str:
    """Return the SHA-256 hex digest used to deduplicate uploaded media."""
    return hashlib.sha256(payload).hexdigest()
