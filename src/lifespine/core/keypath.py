"""
Addressable key paths.

A KeyPath is the normalized, ordered list of segments used to address an
attribute or a configuration value. The same path can be written several
ways and they all compare equal:

    >>> KeyPath(":network/:name") == KeyPath(["network", "name"])
    True
    >>> KeyPath("name") == KeyPath(("name",))
    True

Manifesto:
    Registry tables are keyed by rendered paths and the dispatcher walks
    nested dicts by segment lists. Normalizing once, here, keeps both views
    consistent.

    - **Structural equality:** Two paths are equal when their segments are
    - **Canonical rendering:** ``fpath`` (":a/:b") is the registry table key
    - **Escapes:** ``\\/`` keeps a literal slash inside one segment

Architecture:
    ::

        "a/:b"  ─┐
        ["a","b"]├─> KeyPath.tree == ["a", "b"]
        KeyPath ─┘        │
                          ├─ fpath  -> ":a/:b"
                          ├─ str()  -> "a/b"
                          └─ key()  -> "b"

Tags:
    keypath, addressing, attributes, lifespine

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

from lifespine.core.errors import KeyPathError

Segment = str | int


class KeyPath:
    """Ordered list of path segments.

    Args:
        path: str, int, list/tuple of segments, another KeyPath, or None
        max_level: maximum number of segments (-1 for no limit)

    Raises:
        KeyPathError: unsupported type, empty segment or too many segments
    """

    __slots__ = ("_tree", "max_level")

    def __init__(self, path: Any = None, max_level: int = -1):
        self.max_level = max_level
        self._tree: list[Segment] = []
        if path is not None:
            self.set(path)

    def set(self, path: Any) -> None:
        if isinstance(path, KeyPath):
            tree = list(path.tree)
        elif isinstance(path, bool):
            raise KeyPathError(f"Invalid key path segment: {path!r}")
        elif isinstance(path, int):
            tree = [path]
        elif isinstance(path, str):
            tree = self._split(path)
        elif isinstance(path, (list, tuple)):
            tree = [self._segment(item) for item in path]
        else:
            raise KeyPathError(f"Invalid key path type: {type(path).__name__}")

        if self.max_level > 0 and len(tree) > self.max_level:
            raise KeyPathError(
                f"key path size limit ({self.max_level}) reached: {tree!r}"
            )
        self._tree = tree

    @staticmethod
    def _segment(item: Any) -> Segment:
        if isinstance(item, bool) or not isinstance(item, (str, int)):
            raise KeyPathError(f"Invalid key path segment: {item!r}")
        if isinstance(item, str):
            if item.startswith(":") and len(item) > 1:
                item = item[1:]
            if not item:
                raise KeyPathError("Empty key path segment")
        return item

    @classmethod
    def _split(cls, path: str) -> list[Segment]:
        if not path:
            raise KeyPathError("Empty key path")
        segments: list[str] = []
        for part in path.split("/"):
            if segments and segments[-1].endswith("\\"):
                segments[-1] = segments[-1][:-1] + "/" + part
            else:
                segments.append(part)
        return [cls._segment(segment) for segment in segments]

    @property
    def tree(self) -> list[Segment]:
        """The segment list."""
        return self._tree

    @property
    def fpath(self) -> str | None:
        """Canonical rendering: ``:a/:b`` (int segments are not prefixed)."""
        if not self._tree:
            return None
        return "/".join(
            ":" + seg.replace("/", "\\/") if isinstance(seg, str) else str(seg)
            for seg in self._tree
        )

    @property
    def key_tree(self) -> Segment | str | None:
        """The single segment for one-level paths, else ``fpath``."""
        if len(self._tree) == 1:
            return self._tree[0]
        return self.fpath

    def key(self, index: int = -1) -> Segment | None:
        """Segment at index (last one by default)."""
        if not self._tree:
            return None
        return self._tree[index]

    def __len__(self) -> int:
        return len(self._tree)

    def __iter__(self) -> Iterator[Segment]:
        return iter(self._tree)

    def __bool__(self) -> bool:
        return bool(self._tree)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, KeyPath):
            return self._tree == other._tree
        return NotImplemented

    def __hash__(self) -> int:
        return hash(tuple(self._tree))

    def __str__(self) -> str:
        return "/".join(
            seg.replace("/", "\\/") if isinstance(seg, str) else str(seg)
            for seg in self._tree
        )

    def __repr__(self) -> str:
        return f"KeyPath({self.fpath!r})"


def as_keypath(path: Any) -> KeyPath:
    """Return path as a KeyPath without copying an existing one."""
    if isinstance(path, KeyPath):
        return path
    return KeyPath(path)


__all__ = ["KeyPath", "Segment", "as_keypath"]
