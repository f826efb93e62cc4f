"""
Parameter bag: handler parameters and the loaded-object cache.

A ``ParameterBag`` maps object types (or attribute paths) to scalars or
``Data`` wrappers. The dispatcher keeps one as its cache of loaded objects
and builds a fresh one for every handler call.

Two views are selected at construction:

- ``internal=True`` (process view): ``bag["server", "name"]`` reads the
  server's attribute snapshot
- ``internal=False`` (controller view): ``bag["server"]`` is the external
  object the controller returned, and the bag carries an ``hdata`` dict of
  flattened external parameters

At most one single wrapper and one list wrapper are cached per object type;
list wrappers live under ``bag["query", object_type]``.

Examples:
    >>> bag = ParameterBag(internal=True)
    >>> bag.add(Data.wrap({"id": 1}, "network", lambda t, ext: dict(ext)))
    >>> bag["network", "id"]
    1
    >>> bag["network", WRAPPER].object
    {'id': 1}
    >>> bag.fetch("server").is_err()
    True
"""

from __future__ import annotations

from typing import Any

from lifespine.core.errors import CacheMissError, ContractViolationError
from lifespine.core.keypath import as_keypath
from lifespine.core.nested import nested_exist, nested_get, nested_set
from lifespine.core.result import Err, Ok, Result
from lifespine.framework.data import ATTRS_KEY, OBJECT_KEY, QUERY_KEY, Data, DataKind

WRAPPER = "__data__"
HDATA_KEY = "hdata"


def _tree(keys: tuple[Any, ...]) -> list[Any]:
    tree: list[Any] = []
    for key in keys:
        tree.extend(as_keypath(key).tree)
    return tree


class ParameterBag:
    """Addressable holder of parameters and cached wrappers."""

    def __init__(self, internal: bool = False):
        self.internal = internal
        self._params: dict[Any, Any] = {}
        if not internal:
            self._params[HDATA_KEY] = {}

    @property
    def hdata(self) -> dict | None:
        return self._params.get(HDATA_KEY)

    # =========================================================================
    # Access
    # =========================================================================

    def get(self, *keys: Any) -> Any:
        tree = _tree(keys)
        if not tree:
            return self._params
        head = self._params.get(tree[0])
        value = self._data_get(head, tree) if isinstance(head, Data) else None
        if value is None:
            value = nested_get(self._params, tree)
        return value

    def _data_get(self, data: Data, tree: list[Any]) -> Any:
        rest = tree[1:]
        if rest and rest[0] == WRAPPER:
            return data
        if rest and rest[0] == ATTRS_KEY:
            return data.get(ATTRS_KEY, *rest[1:])
        if self.internal:
            return data.get(ATTRS_KEY, *rest)
        return data.get(OBJECT_KEY, *rest)

    def set(self, keys: Any, value: Any) -> Any:
        tree = as_keypath(keys).tree
        if not tree or tree[0] in (OBJECT_KEY, QUERY_KEY):
            return None
        return nested_set(self._params, value, tree)

    def __getitem__(self, keys: Any) -> Any:
        if isinstance(keys, tuple):
            return self.get(*keys)
        return self.get(keys)

    def __setitem__(self, keys: Any, value: Any) -> None:
        if isinstance(keys, tuple):
            keys = list(keys)
        self.set(keys, value)

    def exist(self, *keys: Any) -> bool:
        tree = _tree(keys)
        if not tree:
            return False
        head = self._params.get(tree[0])
        if head is None:
            return False
        if not isinstance(head, Data):
            return nested_exist(self._params, tree)
        if len(tree) == 1:
            return True
        if tree[1] == WRAPPER:
            return head.kind is DataKind.OBJECT
        if tree[1] == ATTRS_KEY:
            return len(tree) == 2 or head.exist(*tree[2:])
        return head.exist(*tree[1:])

    def __contains__(self, keys: Any) -> bool:
        if isinstance(keys, tuple):
            return self.exist(*keys)
        return self.exist(keys)

    def update(self, values: dict | None) -> None:
        """Merge plain values into the bag."""
        if values:
            self._params.update(values)

    def keys(self) -> list[Any]:
        return list(self._params)

    # =========================================================================
    # Cached wrappers
    # =========================================================================

    def add(self, data: Data) -> Data:
        """Cache a wrapper, replacing (and unregistering) the previous one."""
        if not isinstance(data, Data):
            raise ContractViolationError(
                f"Invalid framework object type '{type(data).__name__}', expected Data."
            )
        object_type = data.object_type
        if data.kind is DataKind.LIST:
            queries = self._params.setdefault(QUERY_KEY, {})
            previous = queries.get(object_type)
            queries[object_type] = data
        else:
            previous = self._params.get(object_type)
            self._params[object_type] = data
        if isinstance(previous, Data) and previous is not data:
            previous.unregister()
        return data.register()

    def delete(self, target: str | Data) -> Data | None:
        """Drop a cached wrapper, by object type (single slot) or by wrapper."""
        if isinstance(target, Data):
            if target.kind is DataKind.LIST:
                removed = self._params.get(QUERY_KEY, {}).pop(target.object_type, None)
            else:
                removed = self._params.pop(target.object_type, None)
        else:
            removed = self._params.pop(target, None)
        if isinstance(removed, Data):
            removed.unregister()
        return removed

    def has_object(self, object_type: str) -> bool:
        """True when a single wrapper of object_type is cached."""
        data = self._params.get(object_type)
        return isinstance(data, Data) and data.kind is DataKind.OBJECT

    def fetch(self, object_type: str) -> Result[Data]:
        """The cached single wrapper of object_type."""
        if self.has_object(object_type):
            return Ok(self._params[object_type])
        return Err(CacheMissError(object_type).with_context(object_type=object_type))

    def query_list(self, object_type: str) -> Data | None:
        data = self._params.get(QUERY_KEY, {}).get(object_type)
        return data if isinstance(data, Data) else None

    def __str__(self) -> str:
        lines = ["-- ParameterBag --"]
        if self.internal:
            lines.append("Usage internal")
        for key, value in self._params.items():
            lines.append(f"{key}:\n{value}")
        return "\n".join(lines)


__all__ = ["HDATA_KEY", "ParameterBag", "WRAPPER"]
