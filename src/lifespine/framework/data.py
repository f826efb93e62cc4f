"""
Data wrapper for external objects.

A ``Data`` holds what a controller returned (the external value) together
with the attribute snapshot extracted from it through the object type's
return mapping. Process code reads attributes from the snapshot; only the
controller ever touches the external value.

Manifesto:
    - **Uniform access:** one object and a list of objects are addressed the
      same way (``data["name"]``, ``data[0, "name"]``)
    - **Explicit refresh:** attributes are extracted once, at wrap time, and
      recomputed only by ``refresh()``
    - **Reserved segments:** ``object`` (external value), ``attrs`` (snapshot)
      and, on lists, ``query``

Architecture:
    ::

        Data(OBJECT)                     Data(LIST)
        ├── object_type  "server"        ├── object_type  "server"
        ├── object       <external>      ├── object       <external collection>
        └── attrs        {id, name, ..}  ├── query        {"status": "active"}
                                         └── elements     [Data(OBJECT), ...]

Examples:
    >>> data = Data.wrap({"id": 7}, "item", lambda t, ext: {"id": ext["id"]})
    >>> data["id"]
    7
    >>> data["object"]
    {'id': 7}
    >>> len(data)
    1

Tags:
    data-wrapper, attributes, extraction, lifespine

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from copy import deepcopy
from enum import Enum
from typing import Any

from lifespine.core.errors import MappingError
from lifespine.core.keypath import as_keypath
from lifespine.core.nested import nested_exist, nested_get, nested_set

Extractor = Callable[[str, Any], dict | None]


class DataKind(str, Enum):
    OBJECT = "object"
    LIST = "list"


class _Remove:
    """Marker returned by ``each`` callbacks to drop the current element."""

    _instance: _Remove | None = None

    def __new__(cls) -> _Remove:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "REMOVE"


REMOVE = _Remove()

OBJECT_KEY = "object"
ATTRS_KEY = "attrs"
QUERY_KEY = "query"


def _tree(path: tuple[Any, ...]) -> list[Any]:
    tree: list[Any] = []
    for item in path:
        tree.extend(as_keypath(item).tree)
    return tree


def _extract(extractor: Extractor | None, object_type: str | None, external: Any) -> dict:
    if extractor is None:
        return {}
    try:
        attrs = extractor(object_type, external)
    except MappingError:
        raise
    except Exception as e:
        raise MappingError(
            f"'{object_type}' Mapping attributes issue: {e}", cause=e
        ).with_context(object_type=object_type) from e
    if attrs is None:
        return {}
    if not isinstance(attrs, dict):
        raise MappingError(
            f"'{object_type}' extractor returned {type(attrs).__name__}, expected dict"
        ).with_context(object_type=object_type)
    return attrs


class Data:
    """One external object, or a list of them, with extracted attributes."""

    def __init__(self, kind: DataKind | str = DataKind.OBJECT):
        self.kind = DataKind(kind)
        self._object_type: str | None = None
        self._object: Any = None
        self._attrs: dict = {}
        self._query: dict | None = None
        self._elements: list[Data] = []
        self.is_registered = False

    # =========================================================================
    # Construction
    # =========================================================================

    @classmethod
    def wrap(cls, external: Any, object_type: str | None, extractor: Extractor | None = None) -> Data:
        return cls(DataKind.OBJECT).set(external, object_type, extractor=extractor)

    @classmethod
    def wrap_list(
        cls,
        collection: Any,
        object_type: str | None,
        query: dict | None = None,
        extractor: Extractor | None = None,
    ) -> Data:
        return cls(DataKind.LIST).set(collection, object_type, query, extractor=extractor)

    def set(
        self,
        external: Any,
        object_type: str | None = None,
        query: dict | None = None,
        *,
        extractor: Extractor | None = None,
    ) -> Data:
        """Wrap external (or copy another Data) into this wrapper."""
        if isinstance(external, Data):
            return self._copy_from(external, object_type)

        self._object_type = object_type
        self._object = external
        if self.kind is DataKind.OBJECT:
            self._attrs = _extract(extractor, object_type, external)
            return self

        self._query = deepcopy(query) if query is not None else {}
        self._elements = []
        if external is None:
            return self
        try:
            items = iter(external)
        except TypeError as e:
            raise MappingError(
                f"'{object_type}': {type(external).__name__} is not a collection", cause=e
            ).with_context(object_type=object_type) from e
        for item in items:
            if item is None:
                continue
            self._elements.append(Data.wrap(item, object_type, extractor))
        return self

    def _copy_from(self, other: Data, object_type: str | None) -> Data:
        self.kind = other.kind
        self._object_type = object_type if object_type is not None else other.object_type
        self._object = other.object
        self._attrs = deepcopy(other.attrs)
        self._query = deepcopy(other.query)
        self._elements = list(other.elements)
        return self

    def refresh(self, extractor: Extractor | None) -> Data:
        """Re-extract the attributes from the external value."""
        if self.kind is DataKind.OBJECT:
            self._attrs = _extract(extractor, self._object_type, self._object)
        else:
            for element in self._elements:
                element.refresh(extractor)
        return self

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def object_type(self) -> str | None:
        return self._object_type

    @property
    def object(self) -> Any:
        return self._object

    @property
    def attrs(self) -> dict:
        return self._attrs

    @property
    def query(self) -> dict | None:
        return self._query

    @property
    def elements(self) -> list[Data]:
        return self._elements

    @property
    def is_empty(self) -> bool:
        return self._object is None

    @property
    def length(self) -> int:
        if self.kind is DataKind.LIST:
            return len(self._elements)
        return 0 if self.is_empty else 1

    # =========================================================================
    # Addressing
    # =========================================================================

    def get(self, *path: Any) -> Any:
        """Value at path.

        ``object`` is the external value, ``attrs`` the snapshot, any other
        path an attribute. On lists, an int first segment selects an element
        and ``query`` is the query signature. Without a path: the snapshot
        (or the element list).
        """
        tree = _tree(path)
        if self.kind is DataKind.LIST:
            return self._list_get(tree)
        if not tree:
            return self._attrs
        if tree[0] == OBJECT_KEY:
            if len(tree) == 1:
                return self._object
            return nested_get(self._object, tree[1:]) if isinstance(self._object, dict) else None
        if tree[0] == ATTRS_KEY:
            return nested_get(self._attrs, tree[1:])
        return nested_get(self._attrs, tree)

    def _list_get(self, tree: list[Any]) -> Any:
        if not tree:
            return self._elements
        head = tree[0]
        if head == OBJECT_KEY:
            return self._object
        if head == QUERY_KEY:
            return self._query
        if isinstance(head, int):
            try:
                element = self._elements[head]
            except IndexError:
                return None
            return element.get(*tree[1:]) if len(tree) > 1 else element
        return None

    def exist(self, *path: Any) -> bool:
        tree = _tree(path)
        if not tree:
            return False
        head = tree[0]
        if head == OBJECT_KEY:
            if self._object is None:
                return False
            return len(tree) == 1 or (isinstance(self._object, dict) and nested_exist(self._object, tree[1:]))
        if self.kind is DataKind.LIST:
            if head == QUERY_KEY:
                return self._query is not None
            if not isinstance(head, int) or not -len(self._elements) <= head < len(self._elements):
                return False
            return len(tree) == 1 or self._elements[head].exist(*tree[1:])
        if head == ATTRS_KEY:
            return len(tree) == 1 or nested_exist(self._attrs, tree[1:])
        return nested_exist(self._attrs, tree)

    def set_attr(self, path: Any, value: Any) -> bool:
        """Write one attribute of the snapshot. Lists are read-only."""
        if self.kind is DataKind.LIST:
            return False
        tree = as_keypath(path).tree
        if tree == [OBJECT_KEY]:
            self._object = value
            return True
        if tree and tree[0] == ATTRS_KEY:
            tree = tree[1:]
        if not tree:
            return False
        nested_set(self._attrs, value, tree)
        return True

    def __getitem__(self, path: Any) -> Any:
        if isinstance(path, tuple):
            return self.get(*path)
        return self.get(path)

    def __setitem__(self, path: Any, value: Any) -> None:
        self.set_attr(path, value)

    def __contains__(self, path: Any) -> bool:
        if isinstance(path, tuple):
            return self.exist(*path)
        return self.exist(path)

    # =========================================================================
    # Iteration
    # =========================================================================

    def __len__(self) -> int:
        return self.length

    def __iter__(self) -> Iterator[Data]:
        return iter(list(self._elements))

    def each(self, callback: Callable[[Data], Any]) -> None:
        """Call callback on each element; drop those it answers REMOVE for."""
        if self.kind is not DataKind.LIST:
            return
        to_remove = [element for element in list(self._elements) if callback(element) is REMOVE]
        self._drop(to_remove)

    def each_index(self, callback: Callable[[int], Any]) -> None:
        if self.kind is not DataKind.LIST:
            return
        to_remove = [
            self._elements[index]
            for index in range(len(self._elements))
            if callback(index) is REMOVE
        ]
        self._drop(to_remove)

    def _drop(self, to_remove: list[Data]) -> None:
        if to_remove:
            self._elements = [e for e in self._elements if not any(e is r for r in to_remove)]

    def to_list(self) -> list[dict]:
        """Attribute snapshots of the elements (of this object when single)."""
        if self.kind is DataKind.LIST:
            return [element.attrs for element in self._elements]
        return [] if self.is_empty else [self._attrs]

    # =========================================================================
    # Cache bookkeeping
    # =========================================================================

    def register(self) -> Data:
        self.is_registered = True
        return self

    def unregister(self) -> Data:
        self.is_registered = False
        return self

    def __repr__(self) -> str:
        if self.kind is DataKind.LIST:
            return (
                f"Data(kind=list, object_type={self._object_type!r}, "
                f"query={self._query!r}, count={len(self._elements)})"
            )
        return f"Data(kind=object, object_type={self._object_type!r}, attrs={self._attrs!r})"

    def __str__(self) -> str:
        lines = [
            f"-- Data ({self.kind.value}) --",
            f"{self._object_type} <= ({type(self._object).__name__})",
        ]
        if self.kind is DataKind.OBJECT:
            lines.append(f"attrs: {self._attrs!r}")
        else:
            lines.append(f"query: {self._query!r}")
            lines.append(f"list count: {len(self._elements)}")
            lines.extend(f"  {element.attrs!r}" for element in self._elements)
        return "\n".join(lines)


__all__ = ["Data", "DataKind", "Extractor", "REMOVE"]
