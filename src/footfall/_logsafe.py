"""Helpers for logging untrusted payloads.

Rejected broker messages are logged so operators can see what was dropped,
but they come from outside the process and may be arbitrarily large. This
module shortens them before they reach a log line.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any


def summarize_for_log(value: Any, *, max_string: int = 256, max_items: int = 20, _depth: int = 0) -> Any:
    """Return a shortened copy of *value* suitable for log messages."""
    if _depth > 8:
        return "<max-depth>"

    if value is None or isinstance(value, (bool, int, float)):
        return value

    if isinstance(value, str):
        if len(value) > max_string:
            return f"{value[:max_string]}…<truncated>"
        return value

    if isinstance(value, (bytes, bytearray)):
        return f"<bytes:{len(value)}b>"

    if isinstance(value, Mapping):
        summary: dict[str, Any] = {}
        for index, (k, v) in enumerate(value.items()):
            if index >= max_items:
                summary["…"] = f"<{len(value) - max_items} more>"
                break
            summary[str(k)] = summarize_for_log(v, max_string=max_string, max_items=max_items, _depth=_depth + 1)
        return summary

    if isinstance(value, Sequence):
        items = [
            summarize_for_log(v, max_string=max_string, max_items=max_items, _depth=_depth + 1)
            for v in list(value)[:max_items]
        ]
        if len(value) > max_items:
            items.append(f"<{len(value) - max_items} more>")
        return items

    # Unknown objects: repr, shortened like any other string.
    return summarize_for_log(repr(value), max_string=max_string, _depth=_depth + 1)
