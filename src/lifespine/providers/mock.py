"""Mock controller: in-memory backend for tests and examples.

Manifesto:
    Process code must be testable without a real backend. ``MockController``
    keeps every created object as a plain dict, per object type, and records
    each primitive call so tests can assert what crossed the boundary.

ARCHITECTURE
────────────
::

    MockController
      ├── .connect / .create   → dict (params + hdata, with an "id")
      ├── .query               → list of stored dicts matching the query
      ├── .get                 → stored dict by id, or None
      ├── .update / .refresh   → True when the object is still stored
      ├── .delete              → removes the stored dict
      ├── .get_attr/.set_attr  → nested dict access on the external dict
      ├── .store               → {object_type: [dict, ...]}
      └── .calls               → list of (primitive, object_type) made

Example::

    controller = MockController()
    core = Core(registry, ServerProcess, controller, config=LayeredConfig())
    core.create("server")
    assert controller.call_count("create") == 1

Tags:
    controller, mock, testing, in-memory, lifespine

Doc-Types:
    api-reference
"""

from __future__ import annotations

from collections import defaultdict
from typing import Any

from lifespine.core.logging import get_logger
from lifespine.core.nested import nested_get, nested_set
from lifespine.framework.controller import BaseController
from lifespine.framework.data import Data
from lifespine.framework.params import HDATA_KEY, ParameterBag

logger = get_logger(__name__)


class MockController(BaseController):
    """In-memory controller. Each instance owns its own store."""

    def __init__(self) -> None:
        self.store: dict[str, list[dict[str, Any]]] = defaultdict(list)
        self.calls: list[tuple[str, str | None]] = []
        self._next_id: dict[str, int] = defaultdict(int)

    def _track(self, primitive: str, object_type: str | None) -> None:
        self.calls.append((primitive, object_type))

    def call_count(self, primitive: str | None = None, object_type: str | None = None) -> int:
        """Calls made, optionally filtered by primitive and object type."""
        return sum(
            1
            for name, kind in self.calls
            if (primitive is None or name == primitive)
            and (object_type is None or kind == object_type)
        )

    def reset(self) -> None:
        self.calls.clear()

    @staticmethod
    def _plain_params(params: ParameterBag) -> dict[str, Any]:
        result = {
            key: value
            for key, value in params.get().items()
            if key != HDATA_KEY and not isinstance(value, Data)
        }
        result.update(params.hdata or {})
        return result

    def _find(self, object_type: str, external: Any) -> int | None:
        for index, stored in enumerate(self.store.get(object_type, [])):
            if stored is external:
                return index
        return None

    # =========================================================================
    # Primitives
    # =========================================================================

    def connect(self, object_type: str, params: ParameterBag) -> dict[str, Any]:
        self._track("connect", object_type)
        return self._insert(object_type, {**self._plain_params(params), "connected": True})

    def create(self, object_type: str, params: ParameterBag) -> dict[str, Any]:
        self._track("create", object_type)
        logger.debug("mock.create", object_type=object_type, hdata=params.hdata)
        return self._insert(object_type, self._plain_params(params))

    def _insert(self, object_type: str, result: dict[str, Any]) -> dict[str, Any]:
        result["id"] = self._next_id[object_type]
        self._next_id[object_type] += 1
        self.store[object_type].append(result)
        logger.debug("mock.created", object_type=object_type, id=result["id"])
        return result

    def query(self, object_type: str, query: dict, params: ParameterBag) -> list[dict[str, Any]]:
        self._track("query", object_type)
        logger.debug("mock.query", object_type=object_type, query=query, hdata=params.hdata)
        return self.ctrl_query_each(self.store.get(object_type, []), query)

    def get(self, object_type: str, uid: Any, params: ParameterBag) -> dict[str, Any] | None:
        self._track("get", object_type)
        for stored in self.store.get(object_type, []):
            if stored.get("id") == uid:
                return stored
        return None

    def delete(self, object_type: str, params: ParameterBag) -> bool:
        self._track("delete", object_type)
        external = params.get(object_type)
        index = self._find(object_type, external)
        if index is None:
            return False
        del self.store[object_type][index]
        logger.debug("mock.deleted", object_type=object_type, id=external.get("id"))
        return True

    def update(self, object_type: str, data: Data, params: ParameterBag) -> bool:
        self._track("update", object_type)
        # set_attr already wrote into the stored dict
        return self._find(object_type, data.object) is not None

    def refresh(self, object_type: str, external: Any) -> bool:
        self._track("refresh", object_type)
        return self._find(object_type, external) is not None

    def get_attr(self, external: Any, path: list[Any]) -> Any:
        return nested_get(external, path)

    def set_attr(self, external: Any, path: list[Any], value: Any) -> None:
        nested_set(external, value, path)


__all__ = ["MockController"]
