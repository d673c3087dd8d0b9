"""
Defensive readers for remote payloads.

Remote responses are open-ended JSON; a missing key or a value of the wrong
type reads as empty instead of raising.
"""
from __future__ import annotations

from typing import Any, Mapping, Optional


def as_record(value: Any) -> dict[str, Any]:
    if not isinstance(value, Mapping):
        return {}
    return dict(value)


def as_string(value: Any) -> Optional[str]:
    """Return the stripped string, or None for non-strings and blanks."""

    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def as_boolean(value: Any) -> Optional[bool]:
    return value if isinstance(value, bool) else None


def read_nested(root: Any, *keys: str) -> dict[str, Any]:
    current: Any = root
    for key in keys:
        current = as_record(current).get(key)
    return as_record(current)


def mask_api_key(key: str) -> str:
    if len(key) <= 8:
        return "***"
    return f"{key[:5]}...{key[-3:]}"
