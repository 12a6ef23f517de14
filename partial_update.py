"""Compile sparse field updates for both storage backends."""

from typing import Any, Iterable, Mapping, Optional, Tuple

from field_mapper import camel_keys, to_snake_case


def quote_identifier(name: str) -> str:
    """Quote a table or column name so reserved words such as ``order`` are safe."""
    if not name.isidentifier():
        raise ValueError(f"invalid identifier: {name!r}")
    return '"' + name + '"'


def build_update(
    table: str,
    record_id: int,
    changes: Mapping[str, Any],
    columns: Iterable[str],
) -> Optional[Tuple[str, Tuple[Any, ...]]]:
    """Return ``(sql, params)`` updating only the keys present in ``changes``.

    ``changes`` uses camelCase keys. Keys are translated to column names and
    checked against ``columns``; values are always bound parameters. ``id`` is
    silently skipped. ``None`` is returned when nothing is left to update.
    """
    allowed = set(columns)
    assignments: list[str] = []
    params: list[Any] = []
    for key, value in changes.items():
        column = to_snake_case(key)
        if column == "id":
            continue
        if column not in allowed:
            raise ValueError(f"unknown column for {table}: {column}")
        assignments.append(f"{quote_identifier(column)} = ?")
        params.append(value)
    if not assignments:
        return None
    params.append(record_id)
    query = (
        f"UPDATE {quote_identifier(table)} SET {', '.join(assignments)} WHERE id = ?;"
    )
    return query, tuple(params)


def apply_changes(record: Mapping[str, Any], changes: Mapping[str, Any]) -> dict:
    """Return a copy of ``record`` with ``changes`` merged in, keeping ``id``."""
    merged = dict(record)
    for key, value in camel_keys(dict(changes)).items():
        if key == "id":
            continue
        merged[key] = value
    return merged
