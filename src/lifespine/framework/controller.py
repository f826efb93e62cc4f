"""
Base class of controllers (backend plugins).

A controller implements the backend calls of every declared object type:
``connect``, ``create``, ``delete``, ``get``, ``query``, ``update``,
``refresh`` plus ``get_attr``/``set_attr`` to read and write attributes of
the external objects it returns. Primitives a backend does not redefine
raise ``ControllerNotImplementedError`` instead of silently doing nothing.

Controllers receive a controller-view ``ParameterBag``: ``params["network"]``
is the external network object and ``params.hdata`` holds the flattened
parameters declared with ``map_hdata``.

The ``ctrl_*`` helpers filter in-memory collections for backends whose API
cannot query by attribute.

Tags:
    controller, backend, plugin, lifespine

Doc-Types:
    - API Reference
    - Plugin Guide
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from lifespine.core.errors import ControllerError, ControllerNotImplementedError
from lifespine.core.logging import get_logger
from lifespine.framework.data import Data
from lifespine.framework.params import WRAPPER, ParameterBag

logger = get_logger(__name__)

Extract = Callable[[Any, Any], Any]


class BaseController:
    """Controller contract. Subclasses redefine the primitives they support."""

    # =========================================================================
    # Primitives
    # =========================================================================

    def connect(self, object_type: str, params: ParameterBag) -> Any:
        raise self._not_implemented("connect")

    def create(self, object_type: str, params: ParameterBag) -> Any:
        raise self._not_implemented("create")

    def delete(self, object_type: str, params: ParameterBag) -> bool:
        raise self._not_implemented("delete")

    def get(self, object_type: str, uid: Any, params: ParameterBag) -> Any:
        raise self._not_implemented("get")

    def query(self, object_type: str, query: dict, params: ParameterBag) -> Iterable[Any]:
        raise self._not_implemented("query")

    def update(self, object_type: str, data: Data, params: ParameterBag) -> bool:
        raise self._not_implemented("update")

    def refresh(self, object_type: str, external: Any) -> bool:
        raise self._not_implemented("refresh")

    def get_attr(self, external: Any, path: list[Any]) -> Any:
        raise self._not_implemented("get_attr")

    def set_attr(self, external: Any, path: list[Any], value: Any) -> None:
        raise self._not_implemented("set_attr")

    def _not_implemented(self, primitive: str) -> ControllerNotImplementedError:
        return ControllerNotImplementedError(type(self).__name__, primitive)

    # =========================================================================
    # Helpers
    # =========================================================================

    def controller_error(self, message: str) -> None:
        raise ControllerError(f"{type(self).__name__}: {message}")

    def require(self, params: ParameterBag, *key: Any) -> None:
        """Fail unless key is set in params (and is not an empty object)."""
        if params.exist(*key):
            data = params.get(*key, WRAPPER) if len(key) == 1 else None
            if isinstance(data, Data) and data.is_empty:
                self.controller_error(f"{'/'.join(map(str, key))} is empty.")
            return
        self.controller_error(f"{'/'.join(map(str, key))} is not set.")

    def ctrl_query_each(
        self,
        objects: Iterable[Any],
        query: Mapping[Any, Any],
        *,
        before: Callable[[Any], bool] | None = None,
        extract: Extract | None = None,
        after: Callable[[Any, Mapping[Any, Any], bool], bool] | None = None,
    ) -> list[Any]:
        """Objects matching every field of query.

        ``before`` can skip an object, ``extract(obj, key)`` reads fields the
        object does not expose, ``after`` can override the decision.
        """
        results = []
        logger.debug("controller.query_filter", query=dict(query))
        for obj in objects:
            if before is not None and not before(obj):
                continue
            selected = self.ctrl_do_query_match(obj, query, extract)
            if after is not None:
                selected = after(obj, query, selected)
            if selected:
                results.append(obj)
        logger.debug("controller.query_selected", count=len(results))
        return results

    def ctrl_do_query_match(self, obj: Any, query: Mapping[Any, Any], extract: Extract | None = None) -> bool:
        for key, match_value in query.items():
            _found, value = self._get_from(obj, key, extract)
            if not (_match_pattern(value, match_value) or value == match_value):
                return False
        return True

    @staticmethod
    def ctrl_query_select(query: Mapping[Any, Any], *types: type) -> dict[Any, Any]:
        """Fields of query whose value is one of types."""
        if not types:
            return {}
        return {key: value for key, value in query.items() if isinstance(value, types)}

    @staticmethod
    def _get_from(obj: Any, key: Any, extract: Extract | None) -> tuple[bool, Any]:
        if isinstance(obj, Mapping):
            if key in obj:
                return True, obj[key]
        elif isinstance(key, str) and hasattr(obj, key):
            return True, getattr(obj, key)
        if extract is not None:
            return True, extract(obj, key)
        return False, None


def _match_pattern(value: Any, match_value: Any) -> bool:
    if not isinstance(match_value, re.Pattern) or value is None:
        return False
    return match_value.search(str(value)) is not None


__all__ = ["BaseController"]
