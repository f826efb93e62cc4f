"""Helpers for reading and writing nested dicts by key sequence.

Every key-addressed structure in lifespine (config layer data, attribute
snapshots, parameter bags) is a tree of plain dicts. These helpers walk it
with a key sequence given either as varargs or as one list/tuple/KeyPath:

    >>> data = {}
    >>> nested_set(data, 1, "a", "b")
    1
    >>> nested_get(data, ("a", "b"))
    1
    >>> nested_lexist(data, "a", "x")
    1
"""

from __future__ import annotations

from copy import deepcopy
from typing import Any

from lifespine.core.keypath import KeyPath


def _keys(keys: tuple[Any, ...]) -> list[Any]:
    flat: list[Any] = []
    for key in keys:
        if isinstance(key, KeyPath):
            flat.extend(key.tree)
        elif isinstance(key, (list, tuple)):
            flat.extend(_keys(tuple(key)))
        else:
            flat.append(key)
    return flat


def nested_lexist(data: dict, *keys: Any) -> int:
    """Return how many leading keys of the sequence exist in data."""
    found = 0
    current: Any = data
    for key in _keys(keys):
        if not isinstance(current, dict) or key not in current:
            break
        found += 1
        current = current[key]
    return found


def nested_exist(data: dict, *keys: Any) -> bool:
    """True when the whole key sequence exists."""
    path = _keys(keys)
    if not path:
        return False
    return nested_lexist(data, path) == len(path)


def nested_get(data: dict, *keys: Any) -> Any:
    """Return the value at the key sequence, or None. No keys returns data."""
    current: Any = data
    for key in _keys(keys):
        if not isinstance(current, dict) or key not in current:
            return None
        current = current[key]
    return current


def nested_set(data: dict, value: Any, *keys: Any) -> Any:
    """Set value at the key sequence, creating intermediate dicts."""
    path = _keys(keys)
    if not path:
        return None
    current = data
    for key in path[:-1]:
        if not isinstance(current.get(key), dict):
            current[key] = {}
        current = current[key]
    current[path[-1]] = value
    return value


def nested_delete(data: dict, *keys: Any) -> Any:
    """Remove the leaf at the key sequence and return its value (or None)."""
    path = _keys(keys)
    if not path:
        return None
    parent = nested_get(data, path[:-1]) if len(path) > 1 else data
    if not isinstance(parent, dict):
        return None
    return parent.pop(path[-1], None)


def nested_clone(data: Any) -> Any:
    """Deep copy of a nested structure."""
    return deepcopy(data)


def nested_merge(base: dict, other: dict) -> dict:
    """Return a new dict with other merged into base.

    Dicts merge recursively, lists merge as an ordered union, any other
    value from other replaces the one in base.
    """
    result = deepcopy(base)
    for key, value in other.items():
        current = result.get(key)
        if isinstance(value, dict) and isinstance(current, dict):
            result[key] = nested_merge(current, value)
        elif isinstance(value, list) and isinstance(current, list):
            merged = list(current)
            merged.extend(item for item in value if item not in current)
            result[key] = merged
        else:
            result[key] = deepcopy(value)
    return result


__all__ = [
    "nested_lexist",
    "nested_exist",
    "nested_get",
    "nested_set",
    "nested_delete",
    "nested_clone",
    "nested_merge",
]
