"""Helpers for safe debug logging.

Request descriptors routinely carry credentials in headers or query
params. This module masks those fields before they reach DEBUG logs.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import BaseModel

# Compared after lower-casing and dropping "-" / "_", so "X-Api-Key",
# "api_key" and "apikey" all match.
_SENSITIVE_KEYS: frozenset[str] = frozenset(
    {
        "authorization",
        "proxyauthorization",
        "cookie",
        "setcookie",
        "password",
        "token",
        "accesstoken",
        "refreshtoken",
        "apikey",
        "xapikey",
        "clientsecret",
    }
)

_MAX_DEPTH = 20


def _normalize_key(key: object) -> str:
    return str(key).lower().replace("-", "").replace("_", "")


def is_sensitive_key(key: object) -> bool:
    """Return ``True`` when values stored under *key* must not be logged."""
    return _normalize_key(key) in _SENSITIVE_KEYS


def redact_for_log(value: Any, *, max_string: int = 256, _depth: int = 0) -> Any:
    """Return a copy of *value* with secrets masked and long strings cut."""
    if _depth > _MAX_DEPTH:
        return "<max-depth>"

    if value is None or isinstance(value, (bool, int, float)):
        return value

    if isinstance(value, str):
        return value if len(value) <= max_string else f"{value[:max_string]}…<truncated>"

    if isinstance(value, (bytes, bytearray)):
        return f"<bytes:{len(value)}b>"

    if isinstance(value, BaseModel):
        value = value.model_dump()

    if isinstance(value, Mapping):
        return {
            str(key): "<redacted>"
            if is_sensitive_key(key)
            else redact_for_log(item, max_string=max_string, _depth=_depth + 1)
            for key, item in value.items()
        }

    if isinstance(value, Sequence):
        return [redact_for_log(item, max_string=max_string, _depth=_depth + 1) for item in value]

    return repr(value)
