"""
Resource-lifecycle dispatcher.

The dispatcher runs every create/delete/query/get/update of a declared
object type: it resolves the type's dependencies (creating missing ones),
builds the handler's parameter bag from the layered configuration and the
loaded objects, calls the handler, wraps the result with the return mapping
and keeps the single-slot object/query cache up to date.

Manifesto:
    Process code states what it needs; the dispatcher makes it available.
    A handler never loads its own dependencies and never maps attributes by
    hand.

    - **One shape for all events:** type check, handler lookup, dependency
      resolution, parameters, call, result mapping, cache
    - **Fail whole:** fatal errors unwind the operation with object_type and
      event attached; dependencies created before the failure stay cached
    - **Coarse invalidation:** any create/update/delete drops the type's
      cached query

Architecture:
    ::

        process_create("item", {"flavor": "small"})
          │  push instant layer {"flavor": "small"}
          ├─ registry.lookup("item")                   UnknownObjectTypeError
          ├─ missing object inputs ── process_create("connection") (recursive)
          │                           still missing?   DependencyLoopError
          ├─ ParameterBag(internal) from config + cache
          ├─ handler(process, "item", params)          HandlerError
          │     └─ process.controller_create("item")
          │           ├─ ParameterBag(controller view, hdata)
          │           ├─ controller.create("item", params)
          │           └─ Data.wrap(external, extractor) ─► cache
          ├─ query_cleanup("item"), cache["item"] = data
          │  pop instant layer
          ▼
        Data(item)

Examples:
    >>> dispatcher = Dispatcher(registry, LayeredConfig(), ItemProcess(), MockController())
    >>> item = dispatcher.process_create("item")
    >>> item["id"]
    0
    >>> dispatcher.data_objects("item", "id")
    0

Performance:
    - update reads back every mapped attribute through ``get_attr`` before
      deciding whether to call the backend

Tags:
    dispatcher, lifecycle, dependency-resolution, cache, lifespine

Doc-Types:
    - API Reference
    - Architecture Guide
"""

from __future__ import annotations

import itertools
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from lifespine.core.config.resolver import ConfigLayer, LayeredConfig
from lifespine.core.config.store import ConfigStore
from lifespine.core.errors import (
    ContractViolationError,
    ControllerError,
    DependencyLoopError,
    DispatchError,
    HandlerError,
    LifespineError,
    MappingError,
    MissingRequirementError,
    ProcessError,
    ValueMappingError,
)
from lifespine.core.keypath import KeyPath, as_keypath
from lifespine.core.logging import get_logger
from lifespine.core.nested import nested_get, nested_set
from lifespine.framework.controller import BaseController
from lifespine.framework.data import Data, DataKind, Extractor
from lifespine.framework.model import (
    Event,
    Handler,
    InputKind,
    ObjectTypeDescriptor,
    Registry,
    RequiredInput,
)
from lifespine.framework.params import ParameterBag
from lifespine.framework.process import BaseProcess

logger = get_logger(__name__)


def _read_mapping(external: Any, tree: list[Any]) -> Any:
    """Attribute reader used when neither a get_attr handler nor a controller is available."""
    return nested_get(external, tree) if isinstance(external, dict) else None


class Dispatcher:
    """Lifecycle engine binding a registry, a config, a process and a controller."""

    def __init__(
        self,
        registry: Registry,
        config: LayeredConfig,
        process: BaseProcess,
        controller: BaseController | None = None,
    ):
        if not isinstance(config, LayeredConfig):
            raise DispatchError(f"'{type(config).__name__}' is not a valid LayeredConfig object.")
        if not isinstance(process, BaseProcess):
            raise ProcessError(f"'{type(process).__name__}' is not a valid BaseProcess object.")
        if controller is not None and not isinstance(controller, BaseController):
            raise ControllerError(f"'{type(controller).__name__}' is not a valid BaseController object.")

        self.registry = registry
        self.config = config
        self.process = process
        self.controller = controller
        self._objects = ParameterBag(internal=True)
        self._creating: list[str] = []
        self._instant_ids = itertools.count(1)
        process.attach(self)

    # =========================================================================
    # Operation scaffolding
    # =========================================================================

    @contextmanager
    def _operation(self, object_type: str, event: str, config: dict | None = None) -> Iterator[None]:
        """Scope of one entry point: instant config layer and error context."""
        layer_name = self._push_instant(config)
        try:
            yield
        except LifespineError as e:
            context: dict[str, Any] = {}
            if e.context.object_type is None:
                context["object_type"] = object_type
            if e.context.event is None:
                context["event"] = event
            if context:
                e.with_context(**context)
            raise
        except Exception as e:
            raise DispatchError(
                f"{event} '{object_type}' failed: {e}", cause=e
            ).with_context(object_type=object_type, event=event) from e
        finally:
            if layer_name is not None:
                self.config.layer_remove(layer_name)

    def _push_instant(self, config: dict | None) -> str | None:
        if not isinstance(config, dict):
            return None
        name = f"instant-{next(self._instant_ids)}"
        self.config.layer_add(ConfigLayer(name, ConfigStore(config), settable=False))
        return name

    def _descriptor(self, object_type: str) -> ObjectTypeDescriptor:
        return self.registry.lookup(object_type).unwrap()

    def _call_handler(
        self,
        descriptor: ObjectTypeDescriptor,
        event: Event,
        handler: Handler,
        *args: Any,
    ) -> Any:
        name = getattr(handler, "__name__", repr(handler))
        logger.debug(
            "dispatch.handler_call",
            object_type=descriptor.name,
            lifecycle_event=event.value,
            handler=name,
        )
        try:
            return handler(self.process, descriptor.name, *args)
        except LifespineError:
            raise
        except Exception as e:
            raise HandlerError(
                f"'{name}' failed for '{descriptor.name}': {e}", cause=e
            ).with_context(object_type=descriptor.name, event=event.value, handler=name) from e

    def _as_data(self, descriptor: ObjectTypeDescriptor, result: Any, query: dict | None = None) -> Data:
        if isinstance(result, Data):
            return result
        extractor = self._extractor(descriptor)
        if query is not None:
            return Data.wrap_list(result, descriptor.name, query, extractor)
        return Data.wrap(result, descriptor.name, extractor)

    # =========================================================================
    # Process level
    # =========================================================================

    def process_create(self, object_type: str, config: dict | None = None) -> Data | None:
        with self._operation(object_type, Event.CREATE.value, config):
            descriptor = self._descriptor(object_type)
            if object_type in self._creating:
                chain = [*self._creating, object_type]
                raise DependencyLoopError(
                    object_type,
                    chain=chain,
                    message=f"loop detection: '{object_type}' is already being created "
                    f"({' -> '.join(chain)}).",
                )

            self._creating.append(object_type)
            try:
                self._load_dependencies(descriptor, Event.CREATE)
                handler = descriptor.handler(Event.CREATE)
                if handler is None:
                    logger.debug("dispatch.meta_object", object_type=object_type)
                    result: Any = Data.wrap({}, object_type)
                else:
                    params = self._build_params(descriptor, Event.CREATE)
                    result = self._call_handler(descriptor, Event.CREATE, handler, params)
            finally:
                self._creating.pop()

            if result is None:
                logger.warning("dispatch.no_data", object_type=object_type, lifecycle_event=Event.CREATE.value)
                return None
            data = self._as_data(descriptor, result)
            self.query_cleanup(object_type)
            logger.debug("dispatch.created", object_type=object_type)
            return self._objects.add(data)

    def process_delete(self, object_type: str, config: dict | None = None) -> Any:
        with self._operation(object_type, Event.DELETE.value, config):
            descriptor = self._descriptor(object_type)
            handler = descriptor.handler(Event.DELETE)
            if handler is None:
                return None
            self._load_dependencies(descriptor, Event.DELETE)
            params = self._build_params(descriptor, Event.DELETE)
            state = self._call_handler(descriptor, Event.DELETE, handler, params)
            if state:
                self._objects.delete(object_type)
                self.query_cleanup(object_type)
                logger.debug("dispatch.deleted", object_type=object_type)
            return state

    def process_query(self, object_type: str, query: dict | None, config: dict | None = None) -> Data | None:
        query = query if query is not None else {}
        with self._operation(object_type, Event.QUERY.value, config):
            descriptor = self._descriptor(object_type)
            cached = self.query_cache(object_type, query)
            if cached is not None:
                return cached
            handler = descriptor.handler(Event.QUERY)
            if handler is None:
                return None
            self._load_dependencies(descriptor, Event.QUERY)
            params = self._build_params(descriptor, Event.QUERY)
            result = self._call_handler(descriptor, Event.QUERY, handler, query, params)
            if result is None:
                logger.warning("dispatch.no_data", object_type=object_type, lifecycle_event=Event.QUERY.value)
                return None
            return self._objects.add(self._as_data(descriptor, result, query))

    def process_get(self, object_type: str, uid: Any, config: dict | None = None) -> Data | None:
        with self._operation(object_type, Event.GET.value, config):
            descriptor = self._descriptor(object_type)
            handler = descriptor.handler(Event.GET)
            if handler is None:
                return None
            self._load_dependencies(descriptor, Event.GET)
            params = self._build_params(descriptor, Event.GET)
            result = self._call_handler(descriptor, Event.GET, handler, uid, params)
            if result is None:
                return None
            return self._objects.add(self._as_data(descriptor, result))

    def process_update(self, object_type: str, config: dict | None = None) -> bool | None:
        with self._operation(object_type, Event.UPDATE.value, config):
            descriptor = self._descriptor(object_type)
            handler = descriptor.handler(Event.UPDATE)
            if handler is None:
                return None
            self._load_dependencies(descriptor, Event.UPDATE)
            params = self._build_params(descriptor, Event.UPDATE)
            result = self._call_handler(descriptor, Event.UPDATE, handler, params)
            if result is None:
                return None
            if not isinstance(result, bool):
                raise ContractViolationError(
                    f"update handler must return True or False. Returned: '{type(result).__name__}'"
                )
            if result:
                self.query_cleanup(object_type)
            return result

    def process_refresh(self, data: Data) -> bool:
        """Re-read a loaded object from the backend."""
        if not isinstance(data, Data) or data.is_empty or data.kind is not DataKind.OBJECT:
            return False
        object_type = data.object_type
        with self._operation(object_type, "refresh"):
            self._descriptor(object_type)
            return self.controller_refresh(object_type, data)

    # =========================================================================
    # Dependencies and parameters
    # =========================================================================

    def _missing(self, descriptor: ObjectTypeDescriptor, event: Event) -> list[str]:
        """Object inputs not loaded yet. Unset required data inputs raise."""
        missing: list[str] = []
        for item in descriptor.inputs_for(event, InputKind.OBJECT):
            if event is Event.DELETE and item.key == descriptor.name:
                continue
            if item.required and not self._objects.has_object(item.key) and item.key not in missing:
                missing.append(item.key)
        if missing:
            return missing

        for item in descriptor.inputs_for(event, InputKind.DATA):
            if not item.required:
                continue
            if item.extract_from is not None:
                if not self._objects.exist(item.extract_from):
                    raise MissingRequirementError(
                        str(item.path),
                        f"key '{item.path}' was not extracted from '{item.extract_from}'.",
                    ).with_context(object_type=descriptor.name, event=event.value, path=item.fpath)
            elif self.config.get(item.path, item.default) is None:
                where = self.config.where(item.path) or ["runtime"]
                raise MissingRequirementError(
                    str(item.path),
                    f"key '{where[0]}/{item.path}' is not set.",
                ).with_context(object_type=descriptor.name, event=event.value, path=item.fpath)
        return missing

    def _load_dependencies(self, descriptor: ObjectTypeDescriptor, event: Event) -> None:
        if event is Event.DELETE and not self._objects.has_object(descriptor.name):
            logger.debug("dispatch.not_loaded", object_type=descriptor.name)

        missing = self._missing(descriptor, event)
        while missing:
            dependency = missing.pop(0)
            logger.debug(
                "dispatch.dependency_create",
                object_type=descriptor.name,
                dependency=dependency,
            )
            self.process_create(dependency)
            missing = self._missing(descriptor, event)
            if dependency in missing:
                raise DependencyLoopError(
                    dependency,
                    chain=[*self._creating, descriptor.name, dependency],
                    message=f"loop detection: '{dependency}' is required but "
                    f"create('{dependency}') did not load it.",
                )

    def _build_params(
        self,
        descriptor: ObjectTypeDescriptor,
        event: Event,
        as_controller: bool = False,
    ) -> ParameterBag:
        params = ParameterBag(internal=not as_controller)
        if event is Event.DELETE and self._objects.has_object(descriptor.name):
            params.add(self._objects.fetch(descriptor.name).unwrap())

        for item in descriptor.inputs_for(event):
            if item.kind is InputKind.OBJECT:
                self._build_object(descriptor, event, params, item)
                continue
            value = self._build_data(params, item)
            if as_controller and value is not None:
                self._build_hdata(descriptor, params, item, value)
        return params

    def _build_object(
        self,
        descriptor: ObjectTypeDescriptor,
        event: Event,
        params: ParameterBag,
        item: RequiredInput,
    ) -> None:
        cached = self._objects.fetch(item.key)
        if cached.is_ok():
            params.add(cached.unwrap())
        elif event is Event.DELETE and item.key == descriptor.name:
            logger.debug("dispatch.self_not_loaded", object_type=descriptor.name)
        elif item.required:
            raise MissingRequirementError(
                str(item.key), f"Object '{item.key}' is not loaded."
            ).with_context(object_type=descriptor.name, path=item.fpath)
        else:
            logger.debug("dispatch.optional_skipped", object_type=descriptor.name, dependency=item.key)

    def _build_data(self, params: ParameterBag, item: RequiredInput) -> Any:
        if item.extract_from is not None:
            value = self._objects.get(item.extract_from)
            params.set(item.path, value)
            return value
        if not item.has_default and not self.config.exist(item.path):
            return None
        value = self.config.get(item.path, item.default)
        params.set(item.path, value)
        return value

    def _build_hdata(
        self,
        descriptor: ObjectTypeDescriptor,
        params: ParameterBag,
        item: RequiredInput,
        value: Any,
    ) -> None:
        table = descriptor.value_mapping.get(item.fpath)
        if table is not None:
            if value not in table:
                raise ValueMappingError(descriptor.name, str(item.path), value)
            value = table[value]
        if item.mapping is not None:
            nested_set(params.hdata, value, item.mapping.tree)

    # =========================================================================
    # Attribute mapping
    # =========================================================================

    def _extractor(self, descriptor: ObjectTypeDescriptor) -> Extractor:
        get_attr = self._attr_reader(descriptor)

        def extract(object_type: str, external: Any) -> dict:
            attrs: dict = {}
            for fpath, external_path in descriptor.returns.items():
                if external_path is None:
                    continue
                key_path = KeyPath(fpath)
                value = get_attr(external, KeyPath(external_path).tree)
                nested_set(attrs, self._unmap_value(descriptor, key_path, value), key_path.tree)
            return attrs

        return extract

    def _attr_reader(self, descriptor: ObjectTypeDescriptor) -> Any:
        handler = descriptor.handler(Event.GET_ATTR)
        if handler is not None:
            return lambda external, tree: handler(self.process, external, tree)
        if descriptor.use_controller and self.controller is not None:
            return self.controller.get_attr
        return _read_mapping

    @staticmethod
    def _unmap_value(descriptor: ObjectTypeDescriptor, key_path: KeyPath, value: Any) -> Any:
        table = descriptor.value_mapping.get(key_path.fpath)
        if not table or value is None:
            return value
        for process_value, external_value in table.items():
            if external_value == value:
                return process_value
        raise ValueMappingError(
            descriptor.name,
            str(key_path),
            value,
            f"'{descriptor.name}.{key_path}': No controller value mapping for {value!r}",
        )

    def _query_map(self, descriptor: ObjectTypeDescriptor, query: dict | None) -> dict:
        """Translate a process query into the controller's field names and values."""
        result: dict = {}
        for key, value in (query or {}).items():
            key_path = as_keypath(key)
            if key_path.fpath not in descriptor.query_mapping:
                raise MappingError(
                    f"query field '{descriptor.name}.{key_path}' is not defined. "
                    "Missing map_return() or map_query_field()?"
                ).with_context(object_type=descriptor.name, path=key_path.fpath)
            external_path = descriptor.query_mapping[key_path.fpath]
            if external_path is None:
                continue
            table = descriptor.value_mapping.get(key_path.fpath)
            if table is not None:
                if value not in table:
                    raise ValueMappingError(descriptor.name, str(key_path), value)
                value = table[value]
            nested_set(result, value, KeyPath(external_path).tree)
        return result

    # =========================================================================
    # Controller level
    # =========================================================================

    def _controller(self) -> BaseController:
        if self.controller is None:
            raise ControllerError("No controller loaded.")
        return self.controller

    def _controller_call(self, primitive: str, object_type: str, *args: Any) -> Any:
        controller = self._controller()
        logger.debug("dispatch.controller_call", object_type=object_type, primitive=primitive)
        try:
            return getattr(controller, primitive)(object_type, *args)
        except LifespineError:
            raise
        except Exception as e:
            raise ControllerError(
                f"{type(controller).__name__}.{primitive} failed for '{object_type}': {e}", cause=e
            ).with_context(object_type=object_type) from e

    def _controller_wrap(self, primitive: str, descriptor: ObjectTypeDescriptor, external: Any) -> Data | None:
        if external is None:
            logger.warning("dispatch.controller_no_data", object_type=descriptor.name, primitive=primitive)
            return None
        return self._objects.add(self._as_data(descriptor, external))

    def controller_connect(self, object_type: str, config: dict | None = None) -> Data | None:
        with self._operation(object_type, "controller_connect", config):
            descriptor = self._descriptor(object_type)
            params = self._build_params(descriptor, Event.CREATE, as_controller=True)
            external = self._controller_call("connect", object_type, params)
            return self._controller_wrap("connect", descriptor, external)

    def controller_create(self, object_type: str, config: dict | None = None) -> Data | None:
        with self._operation(object_type, "controller_create", config):
            descriptor = self._descriptor(object_type)
            params = self._build_params(descriptor, Event.CREATE, as_controller=True)
            external = self._controller_call("create", object_type, params)
            return self._controller_wrap("create", descriptor, external)

    def controller_get(self, object_type: str, uid: Any, config: dict | None = None) -> Data | None:
        with self._operation(object_type, "controller_get", config):
            descriptor = self._descriptor(object_type)
            params = self._build_params(descriptor, Event.GET, as_controller=True)
            external = self._controller_call("get", object_type, uid, params)
            return self._controller_wrap("get", descriptor, external)

    def controller_delete(self, object_type: str, config: dict | None = None) -> bool:
        with self._operation(object_type, "controller_delete", config):
            descriptor = self._descriptor(object_type)
            self._objects.fetch(object_type).unwrap()
            params = self._build_params(descriptor, Event.DELETE, as_controller=True)
            state = self._controller_call("delete", object_type, params)
            if state:
                self._objects.delete(object_type)
            return state

    def controller_query(self, object_type: str, query: dict | None, config: dict | None = None) -> Data:
        query = query if query is not None else {}
        with self._operation(object_type, "controller_query", config):
            descriptor = self._descriptor(object_type)
            cached = self.query_cache(object_type, query)
            if cached is not None:
                return cached
            params = self._build_params(descriptor, Event.QUERY, as_controller=True)
            external_query = self._query_map(descriptor, query)
            collection = self._controller_call("query", object_type, external_query, params)
            data = Data.wrap_list(collection, object_type, query, self._extractor(descriptor))
            logger.debug("dispatch.queried", object_type=object_type, count=len(data))
            return self._objects.add(data)

    def controller_update(self, object_type: str, config: dict | None = None) -> bool:
        """Push the changed attributes of the loaded object to the backend.

        Every mapped attribute is read back with ``get_attr``; the backend's
        ``update`` is called only when at least one differs.
        """
        with self._operation(object_type, "controller_update", config):
            descriptor = self._descriptor(object_type)
            controller = self._controller()
            params = self._build_params(descriptor, Event.UPDATE, as_controller=True)
            data = self._objects.fetch(object_type).unwrap()
            external = data.object

            values = []
            for fpath, external_path in descriptor.returns.items():
                if external_path is None:
                    continue
                key_path = KeyPath(fpath)
                if not data.exist(key_path):
                    continue
                value = data.get(key_path)
                table = descriptor.value_mapping.get(fpath)
                if table and value is not None:
                    if value not in table:
                        raise ValueMappingError(descriptor.name, str(key_path), value)
                    value = table[value]
                values.append((key_path, KeyPath(external_path).tree, value))

            is_updated = False
            for key_path, tree, value in values:
                old_value = controller.get_attr(external, tree)
                if old_value == value:
                    continue
                is_updated = True
                controller.set_attr(external, tree, value)
                logger.debug(
                    "dispatch.attr_updating",
                    object_type=object_type,
                    attr=str(key_path),
                    value=value,
                    old_value=old_value,
                )

            if not is_updated:
                logger.debug("dispatch.update_skipped", object_type=object_type)
                return False

            is_done = self._controller_call("update", object_type, data, params)
            if not isinstance(is_done, bool):
                raise ContractViolationError(
                    "Controller function 'update' must return True or False. "
                    f"Returned: '{type(is_done).__name__}'"
                )
            if is_done:
                logger.debug("dispatch.updated", object_type=object_type)
            data.refresh(self._extractor(descriptor))
            return is_done

    def controller_refresh(self, object_type: str, data: Data) -> bool:
        if not isinstance(data, Data) or data.is_empty:
            return False
        with self._operation(object_type, "controller_refresh"):
            descriptor = self._descriptor(object_type)
            is_refreshed = self._controller_call("refresh", object_type, data.object)
            if not isinstance(is_refreshed, bool):
                raise ContractViolationError(
                    "Controller function 'refresh' must return True or False. "
                    f"Returned: '{type(is_refreshed).__name__}'"
                )
            if is_refreshed:
                logger.debug("dispatch.refreshed", object_type=object_type)
            data.refresh(self._extractor(descriptor))
            return is_refreshed

    # =========================================================================
    # Cache
    # =========================================================================

    def query_cache(self, object_type: str, query: dict | None) -> Data | None:
        """The cached list of object_type if it was queried with query."""
        cached = self._objects.query_list(object_type)
        if cached is not None and cached.query == (query if query is not None else {}):
            logger.debug("dispatch.query_cache_hit", object_type=object_type, query=query)
            return cached
        return None

    def query_cleanup(self, object_type: str) -> None:
        cached = self._objects.query_list(object_type)
        if cached is not None:
            self._objects.delete(cached)
            logger.debug("dispatch.query_cache_cleaned", object_type=object_type)

    def object_cleanup(self, object_type: str) -> None:
        if self._objects.has_object(object_type):
            self._objects.delete(object_type)

    def register(self, obj: Any, object_type: str | None = None, kind: DataKind = DataKind.OBJECT) -> Data:
        """Cache an object loaded outside of a handler."""
        if isinstance(obj, Data):
            return self._objects.add(obj)
        if object_type is None:
            raise DispatchError(
                f"Unable to register a '{type(obj).__name__}' object without its object type."
            )
        kind = DataKind(kind)
        descriptor = self._descriptor(object_type)
        extractor = self._extractor(descriptor)
        if kind is DataKind.LIST:
            data = Data.wrap_list(obj, object_type, {}, extractor)
        else:
            data = Data.wrap(obj, object_type, extractor)
        return self._objects.add(data)

    def data_objects(self, object_type: str, *keys: Any) -> Any:
        return self._objects.get(object_type, *keys)

    def cache_objects_keys(self) -> list[Any]:
        return self._objects.keys()


__all__ = ["Dispatcher"]
