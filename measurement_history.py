"""Derive per-category change values from raw measurement records."""

from collections import defaultdict
from typing import Any, Iterable, Mapping

from models import parse_timestamp


def _newest_first(record: Mapping[str, Any]):
    # equal timestamps fall back to insertion order, newest id first
    return (parse_timestamp(record["date"]), record.get("id") or 0)


def with_changes(measurements: Iterable[Mapping[str, Any]]) -> list[dict]:
    """Return every measurement with a ``change`` against the previous one.

    Records are grouped by ``type``. Within a group the newest record's
    ``change`` is its value minus the next-older record's value; the oldest
    record of each group gets ``None``. The result is ordered newest-first
    across all groups.
    """
    groups: dict[str, list[Mapping[str, Any]]] = defaultdict(list)
    for m in measurements:
        groups[m["type"]].append(m)

    result: list[dict] = []
    for records in groups.values():
        ordered = sorted(records, key=_newest_first, reverse=True)
        for i, m in enumerate(ordered):
            change = None
            if i + 1 < len(ordered):
                change = m["value"] - ordered[i + 1]["value"]
            result.append({**m, "change": change})

    result.sort(key=_newest_first, reverse=True)
    return result


def latest_by_type(measurements: Iterable[Mapping[str, Any]]) -> dict[str, dict]:
    """Return the newest measurement of each category, with its change."""
    latest: dict[str, dict] = {}
    for m in with_changes(measurements):
        latest.setdefault(m["type"], m)
    return latest
