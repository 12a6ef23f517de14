"""Translate field names between the API (camelCase) and SQL (snake_case)."""

from typing import Any


def to_snake_case(key: str) -> str:
    """Return ``key`` with every uppercase letter turned into ``_`` + lowercase.

    ``workoutProgramId`` becomes ``workout_program_id``. Keys that are already
    snake_case pass through unchanged.
    """
    out: list[str] = []
    for i, ch in enumerate(key):
        if ch.isupper():
            if i > 0:
                out.append("_")
            out.append(ch.lower())
        else:
            out.append(ch)
    return "".join(out)


def to_camel_case(key: str) -> str:
    """Inverse of :func:`to_snake_case` for column names read from SQL."""
    head, *rest = key.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def _convert(value: Any, fn) -> Any:
    if isinstance(value, dict):
        return {fn(k) if isinstance(k, str) else k: _convert(v, fn) for k, v in value.items()}
    if isinstance(value, list):
        return [_convert(v, fn) for v in value]
    if isinstance(value, tuple):
        return tuple(_convert(v, fn) for v in value)
    return value


def snake_keys(value: Any) -> Any:
    """Recursively convert every mapping key in ``value`` to snake_case."""
    return _convert(value, to_snake_case)


def camel_keys(value: Any) -> Any:
    """Recursively convert every mapping key in ``value`` to camelCase."""
    return _convert(value, to_camel_case)
