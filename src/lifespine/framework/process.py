"""
Base class of processes (business-logic plugins).

A process implements the handlers declared in the registry. Handlers are
called as ``handler(process, object_type, [query | uid,] params)`` and reach
the backend through the ``controller_*`` forwarding methods, or other object
types through ``process_*``.

Example:
    >>> class ItemProcess(BaseProcess):
    ...     def create_item(self, object_type, params):
    ...         return self.controller_create(object_type)
    >>> registry = Registry(ItemProcess)
    >>> registry.declare_type("item", create_e="create_item")

Tags:
    process, business-logic, plugin, lifespine

Doc-Types:
    - API Reference
    - Plugin Guide
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from lifespine.core.errors import ProcessError
from lifespine.core.logging import get_logger
from lifespine.framework.data import REMOVE, Data, DataKind

if TYPE_CHECKING:
    from lifespine.core.config.resolver import LayeredConfig
    from lifespine.framework.dispatcher import Dispatcher

logger = get_logger(__name__)

QUERY_SINGLE_MESSAGES = {
    "notfound": "No {object_type} '{name}' found",
    "checkmatch": "Found 1 {object_type}. checking exact match for '{name}'.",
    "nomatch": "No {object_type} '{name}' match",
    "found": "Found {object_type} '{item}'.",
    "more": "Found several {object_type}. Searching for '{name}'.",
    "items_form": "{}",
    "items": ["name"],
}


class BaseProcess:
    """Handlers container attached to a Dispatcher."""

    def __init__(self) -> None:
        self._dispatcher: Dispatcher | None = None

    def attach(self, dispatcher: Dispatcher) -> None:
        self._dispatcher = dispatcher

    @property
    def dispatcher(self) -> Dispatcher:
        if self._dispatcher is None:
            raise ProcessError(f"{type(self).__name__}: No dispatcher attached.")
        return self._dispatcher

    @property
    def config(self) -> LayeredConfig:
        return self.dispatcher.config

    def process_error(self, message: str) -> None:
        raise ProcessError(f"{type(self).__name__}: {message}")

    # =========================================================================
    # Controller level
    # =========================================================================

    def controller_connect(self, object_type: str, config: dict | None = None) -> Data | None:
        return self.dispatcher.controller_connect(object_type, config)

    def controller_create(self, object_type: str, config: dict | None = None) -> Data | None:
        return self.dispatcher.controller_create(object_type, config)

    def controller_query(self, object_type: str, query: dict, config: dict | None = None) -> Data | None:
        return self.dispatcher.controller_query(object_type, query, config)

    def controller_update(self, object_type: str, config: dict | None = None) -> bool:
        return self.dispatcher.controller_update(object_type, config)

    def controller_delete(self, object_type: str, config: dict | None = None) -> bool:
        return self.dispatcher.controller_delete(object_type, config)

    def controller_get(self, object_type: str, uid: Any, config: dict | None = None) -> Data | None:
        return self.dispatcher.controller_get(object_type, uid, config)

    def controller_refresh(self, object_type: str, data: Data) -> bool:
        return self.dispatcher.controller_refresh(object_type, data)

    # =========================================================================
    # Process level
    # =========================================================================

    def process_create(self, object_type: str, config: dict | None = None) -> Data | None:
        return self.dispatcher.process_create(object_type, config)

    def process_query(self, object_type: str, query: dict, config: dict | None = None) -> Data | None:
        return self.dispatcher.process_query(object_type, query, config)

    def process_update(self, object_type: str, config: dict | None = None) -> bool | None:
        return self.dispatcher.process_update(object_type, config)

    def process_get(self, object_type: str, uid: Any, config: dict | None = None) -> Data | None:
        return self.dispatcher.process_get(object_type, uid, config)

    def process_delete(self, object_type: str, config: dict | None = None) -> Any:
        return self.dispatcher.process_delete(object_type, config)

    # =========================================================================
    # Cache
    # =========================================================================

    def query_cache_cleanup(self, object_type: str) -> None:
        self.dispatcher.query_cleanup(object_type)

    def object_cache_cleanup(self, object_type: str) -> None:
        self.dispatcher.object_cleanup(object_type)

    def data_objects(self, object_type: str, *keys: Any) -> Any:
        return self.dispatcher.data_objects(object_type, *keys)

    def register(self, obj: Any, object_type: str | None = None, kind: DataKind = DataKind.OBJECT) -> Data:
        return self.dispatcher.register(obj, object_type, kind)

    # =========================================================================
    # Helpers
    # =========================================================================

    def query_single(
        self,
        object_type: str,
        query: dict,
        name: str,
        messages: dict[str, Any] | None = None,
    ) -> Data | None:
        """Query, then keep only the elements matching every query field exactly."""
        info = {**QUERY_SINGLE_MESSAGES, **(messages or {})}
        result = self.controller_query(object_type, query)
        if result is None:
            return None

        if len(result) == 0:
            logger.info(
                "process.query_single_not_found",
                object_type=object_type,
                message=info["notfound"].format(object_type=object_type, name=name),
            )
            return result

        key = "checkmatch" if len(result) == 1 else "more"
        logger.debug(
            "process.query_single_check",
            object_type=object_type,
            message=info[key].format(object_type=object_type, name=name),
        )

        def _exact(element: Data) -> Any:
            for field, value in query.items():
                if element[field] != value:
                    return REMOVE
            return None

        result.each(_exact)
        if len(result) == 0:
            missing = "nomatch" if key == "checkmatch" else "notfound"
            logger.info(
                "process.query_single_not_found",
                object_type=object_type,
                message=info[missing].format(object_type=object_type, name=name),
            )
            return result

        items = info["items"] if isinstance(info["items"], list) else [info["items"]]
        values = [
            result.get(0, item) if result.get(0, item) is not None else f"\"key '{item}' unknown\""
            for item in items
        ]
        logger.info(
            "process.query_single_found",
            object_type=object_type,
            message=info["found"].format(
                object_type=object_type, item=info["items_form"].format(*values)
            ),
        )
        return result


__all__ = ["BaseProcess"]
