from __future__ import annotations

import os
import threading
import time

# Crockford base32
ENCODING = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"

_RANDOM_BITS = 80
_RANDOM_MAX = (1 << _RANDOM_BITS) - 1


def _encode(num: int) -> str:
    out = []
    for _ in range(26):
        out.append(ENCODING[num & 31])
        num >>= 5
    return "".join(reversed(out))


class UlidGenerator:
    """Monotonic ULID source: 48-bit millisecond timestamp + 80-bit random part.

    Inside one millisecond the random part of the previous id is incremented,
    so ids from one generator sort strictly in generation order.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._last_ms = -1
        self._last_rand = 0

    def new(self) -> str:
        with self._lock:
            ts_ms = int(time.time() * 1000)
            if ts_ms <= self._last_ms and self._last_rand < _RANDOM_MAX:
                ts_ms = self._last_ms
                rand = self._last_rand + 1
            else:
                rand = int.from_bytes(os.urandom(10), "big")
            self._last_ms, self._last_rand = ts_ms, rand
        return _encode((ts_ms << _RANDOM_BITS) | rand)


_default = UlidGenerator()


def new_ulid() -> str:
    return _default.new()


__all__ = ["UlidGenerator", "new_ulid"]
