"""Safe accessors for loosely typed marketplace JSON payloads."""

import math
from typing import Any


def get_field(obj: Any, *path: str | int) -> Any:
    """Walk a nested dict/list path, returning None on any miss."""
    current = obj
    for key in path:
        if isinstance(current, dict):
            current = current.get(key)
        elif isinstance(current, list) and isinstance(key, int):
            current = current[key] if -len(current) <= key < len(current) else None
        else:
            return None
        if current is None:
            return None
    return current


def get_str(obj: Any, *path: str | int) -> str | None:
    """Trimmed non-empty string, or a finite number rendered as text."""
    value = get_field(obj, *path)
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        return value or None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float) and math.isfinite(value):
        return str(int(value)) if value.is_integer() else str(value)
    return None


def get_num(obj: Any, *path: str | int) -> float | None:
    """Finite number, parsing numeric strings."""
    value = get_field(obj, *path)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str) and value.strip():
        try:
            parsed = float(value.strip())
        except ValueError:
            return None
        return parsed if math.isfinite(parsed) else None
    return None


def get_arr(obj: Any, *path: str | int) -> list[Any]:
    value = get_field(obj, *path)
    return value if isinstance(value, list) else []
