from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import TypeVar

REDACTED = "[REDACTED]"

V = TypeVar("V")


def redact_headers(
    headers: Mapping[str, V] | None, deny_list: Iterable[str]
) -> dict[str, V | str]:
    """Replace the value of every header named in ``deny_list`` with ``[REDACTED]``.

    Matching is case-insensitive; key casing and order are preserved.
    """
    denied = {name.strip().lower() for name in deny_list}
    redacted: dict[str, V | str] = {}
    for key, value in (headers or {}).items():
        redacted[key] = REDACTED if key.lower() in denied else value
    return redacted


__all__ = ["REDACTED", "redact_headers"]
