"""Lookups in parsed JSON documents (dicts and lists)."""

from __future__ import annotations

from typing import Any

_INT32_MIN = -(2**31)
_INT32_MAX = 2**31 - 1
_KINDS = (object, str, int, bool)


def add_unique_item_to_array(array: Any, item: str) -> None:
    """Append ``item`` to ``array`` unless it is empty or already present as a string."""
    if not isinstance(array, list) or not item:
        return
    if any(isinstance(element, str) and element == item for element in array):
        return
    array.append(item)


def _convert(value: Any, kind: type) -> Any:
    if kind is object:
        return value
    if kind is str:
        return value if isinstance(value, str) else None
    if kind is bool:
        return value if isinstance(value, bool) else None
    # kind is int: numbers only, and only those that fit a 32-bit integer exactly.
    if isinstance(value, bool):
        return None
    if isinstance(value, float):
        if not value.is_integer():
            return None
        value = int(value)
    if not isinstance(value, int):
        return None
    if not _INT32_MIN <= value <= _INT32_MAX:
        return None
    return value


def get_value(json: Any, *keys: str, kind: type = object) -> Any:
    """Return the value under one to three nested keys, or None.

    Every key but the last must lead to an object. ``kind`` selects the
    expected type of the final value: ``object`` (anything), ``str``,
    ``int`` (a number that fits a 32-bit integer) or ``bool``. None is
    returned when a key is missing or the value has the wrong type.
    """
    if not 1 <= len(keys) <= 3:
        raise TypeError(f"get_value takes one to three keys, got {len(keys)}")
    if kind not in _KINDS:
        raise ValueError(f"unsupported kind: {kind!r}")

    node = json
    for key in keys[:-1]:
        if not isinstance(node, dict) or key not in node:
            return None
        node = node[key]
        if not isinstance(node, dict):
            return None

    last = keys[-1]
    if not isinstance(node, dict) or last not in node:
        return None
    return _convert(node[last], kind)


def has_key(json: Any, first_key: str, second_key: str = "", third_key: str = "") -> bool:
    """Tell whether the nested keys exist; empty trailing keys are not checked."""
    if not isinstance(json, dict) or first_key not in json:
        return False
    first = json[first_key]
    if second_key and (not isinstance(first, dict) or second_key not in first):
        return False
    if third_key:
        second = first.get(second_key) if isinstance(first, dict) else None
        if not isinstance(second, dict) or third_key not in second:
            return False
    return True