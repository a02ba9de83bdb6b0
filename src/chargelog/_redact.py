"""Redaction of JSON payloads before they reach DEBUG logs.

Request bodies sent to the auth API and the document store carry
passwords, identity tokens and email addresses; none of those may be
logged.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

REDACTED = "<redacted>"
_MAX_ITEMS = 20

_SECRET_KEYS: frozenset[str] = frozenset(
    {
        "password",
        "idtoken",
        "refreshtoken",
        "accesstoken",
        "token",
        "postbody",
        "authorization",
        "key",
        "email",
    }
)


def _is_secret(key: str) -> bool:
    return key.replace("_", "").lower() in _SECRET_KEYS


def redact_for_log(value: Any, *, max_string: int = 256) -> Any:
    """Return a copy of a JSON-like *value* with secrets masked.

    Long strings are truncated and lists are capped at twenty items.
    """
    if isinstance(value, Mapping):
        return {
            str(key): REDACTED if _is_secret(str(key)) else redact_for_log(item, max_string=max_string)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        shown = [redact_for_log(item, max_string=max_string) for item in value[:_MAX_ITEMS]]
        if len(value) > _MAX_ITEMS:
            shown.append(f"<{len(value) - _MAX_ITEMS} more>")
        return shown
    if isinstance(value, str) and len(value) > max_string:
        return f"{value[:max_string]}…<truncated>"
    return value
