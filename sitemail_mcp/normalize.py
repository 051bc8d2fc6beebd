from __future__ import annotations

# Helpers for reshaping loosely-typed upstream records.

from typing import Any, Mapping, Optional


def get_string_field(record: Mapping[str, Any], snake_key: str, camel_key: str) -> Optional[str]:
    """Read a field that upstream spells either snake_case or camelCase.

    Falsy values (``""``, ``0``, ``False``) count as absent. Upstream never
    sends meaningful falsy timestamps or element IDs, and callers rely on
    this to keep optional output fields out of the result.
    """
    if record.get(snake_key):
        return str(record[snake_key])
    if record.get(camel_key):
        return str(record[camel_key])
    return None


def to_string_list(value: Any) -> list[str]:
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value]
    if isinstance(value, str):
        return [value]
    return []


def optional_str(value: Any) -> Optional[str]:
    return str(value) if value else None


def optional_true(value: Any) -> Optional[bool]:
    return True if value else None


def as_records(value: Any) -> list[dict[str, Any]]:
    """Return the mapping items of a list payload, skipping anything else."""
    if not isinstance(value, list):
        return []
    return [dict(item) for item in value if isinstance(item, Mapping)]
