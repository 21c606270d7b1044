"""Helpers for compact debug logging.

Hub traffic carries large base64 blobs (``.z`` topics) and, on some
deployments, access tokens in negotiate responses. This module shortens and
redacts such values before they reach DEBUG logs.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

_SENSITIVE_VALUE_KEYS: frozenset[str] = frozenset(
    {
        "accesstoken",
        "access_token",
        "authorization",
        "cookie",
        "connectiontoken",
    }
)


def summarize_for_log(value: Any, *, max_string: int = 128, max_items: int = 20, _depth: int = 0) -> Any:
    """Return a shortened, redacted copy of *value* suitable for debug logs."""
    if _depth > 20:
        return "<max-depth>"

    if value is None or isinstance(value, (bool, int, float)):
        return value

    if isinstance(value, str):
        if len(value) > max_string:
            return f"{value[:max_string]}…<{len(value)} chars>"
        return value

    if isinstance(value, bytes):
        return f"<bytes:{len(value)}b>"

    if isinstance(value, Mapping):
        summarized: dict[str, Any] = {}
        for index, (k, v) in enumerate(value.items()):
            if index >= max_items:
                summarized["…"] = f"<{len(value) - max_items} more keys>"
                break
            key = str(k)
            if key.lower() in _SENSITIVE_VALUE_KEYS:
                summarized[key] = "<redacted>"
            else:
                summarized[key] = summarize_for_log(
                    v, max_string=max_string, max_items=max_items, _depth=_depth + 1
                )
        return summarized

    if isinstance(value, Sequence):
        items = [
            summarize_for_log(v, max_string=max_string, max_items=max_items, _depth=_depth + 1)
            for v in list(value)[:max_items]
        ]
        if len(value) > max_items:
            items.append(f"<{len(value) - max_items} more items>")
        return items

    return f"<{type(value).__name__}>"
