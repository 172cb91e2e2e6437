from __future__ import annotations

from collections.abc import Mapping
from datetime import date, datetime
from typing import Any


def build_changed_paths(before: Mapping[str, Any], after: Mapping[str, Any]) -> dict[str, dict[str, Any]]:
    """Dotted paths whose values differ, split into their before/after values."""
    changed_before: dict[str, Any] = {}
    changed_after: dict[str, Any] = {}
    _collect_changes(before, after, "", changed_before, changed_after)
    return {"before": changed_before, "after": changed_after}


def _collect_changes(
    before: Any,
    after: Any,
    prefix: str,
    changed_before: dict[str, Any],
    changed_after: dict[str, Any],
) -> None:
    if isinstance(before, Mapping) and isinstance(after, Mapping):
        for key in sorted(set(before.keys()) | set(after.keys()), key=str):
            path = f"{prefix}.{key}" if prefix else str(key)
            _collect_changes(before.get(key), after.get(key), path, changed_before, changed_after)
        return

    if _normalize(before) != _normalize(after):
        changed_before[prefix] = before
        changed_after[prefix] = after


def _normalize(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value
