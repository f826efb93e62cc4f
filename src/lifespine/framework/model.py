"""
Object-type registry.

The registry is the model of an application: one ``ObjectTypeDescriptor``
per abstract object type, holding the handler of each lifecycle event, the
inputs the handlers need, and the tables translating attribute names and
values between the process view and the controller view.

Manifesto:
    Declarations are ordinary method calls on a ``Registry`` instance, made
    once at startup. Every declaration error is raised immediately so that a
    broken model never reaches the dispatcher.

    - **Explicit state:** the registry owns the current type and attribute
      context; nothing is module-level
    - **First-class handlers:** names are resolved against the process class
      at declaration time and stored as callables
    - **Merge on redeclaration:** declaring a type twice keeps the union of
      its handler slots (last write wins per slot)

Architecture:
    ::

        Registry(process=ServerProcess)
          declare_type("server", create_e="create_server")   ─┐ current type
          require_input("network", kind="object")              │
          require_input("flavor")                              │
          map_return("status", "state")      ─┐ current attr  │
          map_value("active", "ACTIVE")       ─┘               ┘
                │
                ▼
        ObjectTypeDescriptor("server")
          handlers      {create_e: ServerProcess.create_server, ...}
          inputs        {":network": RequiredInput(kind=object), ...}
          returns       {":id": ":id", ":status": ":state", ...}
          query_mapping {":id": ":id", ":status": ":state", ...}
          value_mapping {":status": {"active": "ACTIVE"}}

Examples:
    >>> registry = Registry(ServerProcess)
    >>> registry.declare_type("network", create_e="default")
    >>> registry.declare_type("server", create_e="create_server")
    >>> registry.require_input("network", kind="object")
    >>> registry.lookup("server").unwrap().inputs_for(Event.CREATE)[0].key
    'network'

Tags:
    registry, model, declaration, handlers, mapping, lifespine

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from lifespine.core.errors import (
    DeclarationError,
    UndeclaredObjectTypeError,
    UnknownHandlerError,
    UnknownObjectTypeError,
)
from lifespine.core.keypath import KeyPath, as_keypath
from lifespine.core.logging import get_logger
from lifespine.core.result import Err, Ok, Result

logger = get_logger(__name__)

Handler = Callable[..., Any]


class Event(str, Enum):
    """Handler slots of an object type."""

    CREATE = "create_e"
    DELETE = "delete_e"
    UPDATE = "update_e"
    GET = "get_e"
    QUERY = "query_e"
    GET_ATTR = "get_attr_e"


LIFECYCLE_EVENTS: frozenset[Event] = frozenset(
    {Event.CREATE, Event.DELETE, Event.UPDATE, Event.GET, Event.QUERY}
)


class InputKind(str, Enum):
    """What a required input refers to."""

    DATA = "data"
    OBJECT = "object"


DEFAULT_MAPPING = {":id": ":id", ":name": ":name"}

_INPUT_OPTIONS = {"required", "events", "default", "extract_from", "mapping", "decrypt"}
_PROCESS_OPTIONS = {"use_controller"}


@dataclass
class RequiredInput:
    """One input a handler needs, addressed by key path."""

    path: KeyPath
    kind: InputKind = InputKind.DATA
    required: bool = True
    events: frozenset[Event] = LIFECYCLE_EVENTS
    default: Any = None
    has_default: bool = False
    extract_from: KeyPath | None = None
    mapping: KeyPath | None = None
    decrypt: bool = False

    @property
    def key(self) -> Any:
        """Last path segment (the object type name for object inputs)."""
        return self.path.key()

    @property
    def fpath(self) -> str:
        return self.path.fpath

    def applies_to(self, event: Event) -> bool:
        return event in self.events


@dataclass
class ObjectTypeDescriptor:
    """Registry entry for one object type."""

    name: str
    handlers: dict[Event, Handler | None] = field(
        default_factory=lambda: {event: None for event in Event}
    )
    inputs: dict[str, RequiredInput] = field(default_factory=dict)
    returns: dict[str, str | None] = field(default_factory=lambda: dict(DEFAULT_MAPPING))
    query_mapping: dict[str, str | None] = field(default_factory=lambda: dict(DEFAULT_MAPPING))
    value_mapping: dict[str, dict[Any, Any]] = field(default_factory=dict)
    use_controller: bool = True

    def handler(self, event: Event) -> Handler | None:
        return self.handlers.get(event)

    def inputs_for(self, event: Event, kind: InputKind | None = None) -> list[RequiredInput]:
        """Inputs applicable to event, in declaration order."""
        return [
            item
            for item in self.inputs.values()
            if item.applies_to(event) and (kind is None or item.kind == kind)
        ]


class Registry:
    """Declaration surface and lookup table of object types.

    Args:
        process: Process class that handler names are resolved against
    """

    def __init__(self, process: type | None = None):
        self._types: dict[str, ObjectTypeDescriptor] = {}
        self._process = process
        self._object_context: str | None = None
        self._attribute_context: KeyPath | None = None
        self._optional = False
        self._use_controller = True

    # =========================================================================
    # Context
    # =========================================================================

    def current_process(self, process_class: type) -> None:
        self._process = process_class

    def process_default(self, **options: Any) -> None:
        """Set defaults applied to the types declared afterwards."""
        for key, value in options.items():
            if key not in _PROCESS_OPTIONS:
                raise DeclarationError(
                    f"Unknown default process option '{key}'. "
                    f"Supported are '{', '.join(sorted(_PROCESS_OPTIONS))}'"
                )
            if isinstance(value, bool):
                self._use_controller = value

    def needs_optional(self) -> None:
        """Inputs declared from now on are optional unless told otherwise."""
        self._optional = True

    def needs_required(self) -> None:
        self._optional = False

    def _current(self) -> ObjectTypeDescriptor:
        if self._object_context is None:
            raise DeclarationError("No object type declared. Missing declare_type()?")
        return self._types[self._object_context]

    def _current_attribute(self) -> KeyPath:
        if self._attribute_context is None:
            raise DeclarationError(
                f"'{self._object_context}': no attribute declared. Missing map_return()?"
            )
        return self._attribute_context

    # =========================================================================
    # Object types
    # =========================================================================

    def declare_type(self, name: str, *, nohandler: bool = False, **handlers: Any) -> ObjectTypeDescriptor:
        """Create or extend an object type and make it the current one.

        Handler values are either callables, called as
        ``handler(process, object_type, ...)``, or names of methods of the
        current process class. ``"default"`` names the method called like
        the event itself.
        """
        if not isinstance(name, str) or not name:
            raise DeclarationError(f"Invalid object type name: {name!r}")

        slots = self._resolve_handlers(name, handlers)
        descriptor = self._types.get(name)
        if descriptor is None:
            if not slots and not nohandler:
                raise DeclarationError(
                    f"A new declared object '{name}' requires at least one handler. "
                    f"Ex: declare_type('{name}', create_e=handler) or nohandler=True"
                )
            descriptor = ObjectTypeDescriptor(name=name, use_controller=self._use_controller)
            self._types[name] = descriptor
            logger.debug(
                "registry.type_declared",
                object_type=name,
                meta=not slots,
            )

        descriptor.handlers.update(slots)
        self._object_context = name
        self._attribute_context = None
        return descriptor

    def _resolve_handlers(self, name: str, handlers: dict[str, Any]) -> dict[Event, Handler]:
        resolved: dict[Event, Handler] = {}
        for key, value in handlers.items():
            try:
                event = Event(key)
            except ValueError:
                raise UnknownHandlerError(
                    f"'{key}' parameter is invalid. Use '{', '.join(e.value for e in Event)}'"
                ).with_context(object_type=name) from None

            if callable(value):
                resolved[event] = value
                continue
            if not isinstance(value, str):
                raise UnknownHandlerError(
                    f"'{key}' handler must be a callable or a method name, got {value!r}"
                ).with_context(object_type=name, event=event.value)

            method = event.value if value == "default" else value
            handler = getattr(self._process, method, None) if self._process else None
            if not callable(handler):
                raise DeclarationError(
                    f"'{key}' parameter requires a valid instance method "
                    f"'{method}' in the process '{getattr(self._process, '__name__', None)}'."
                ).with_context(object_type=name, event=event.value, handler=method)
            resolved[event] = handler
        return resolved

    # =========================================================================
    # Inputs
    # =========================================================================

    def require_input(self, path: Any, kind: InputKind | str = InputKind.DATA, **options: Any) -> RequiredInput:
        """Add or update an input of the current object type.

        Options: ``required``, ``events``, ``default``, ``extract_from``,
        ``mapping`` (external parameter path) and ``decrypt``.
        """
        descriptor = self._current()
        unknown = set(options) - _INPUT_OPTIONS
        if unknown:
            raise DeclarationError(
                f"Unknown input option(s) {sorted(unknown)}"
            ).with_context(object_type=descriptor.name)
        try:
            kind = InputKind(kind)
        except ValueError:
            raise DeclarationError(
                f"Object parameter type '{kind}' unknown."
            ).with_context(object_type=descriptor.name) from None

        key_path = as_keypath(path)
        if kind is InputKind.OBJECT and key_path.key() not in self._types:
            raise UndeclaredObjectTypeError(str(key_path.key())).with_context(
                object_type=descriptor.name, path=key_path.fpath
            )

        self._attribute_context = key_path
        entry = descriptor.inputs.get(key_path.fpath)
        action = "updated"
        if entry is None:
            entry = RequiredInput(path=key_path, required=not self._optional)
            descriptor.inputs[key_path.fpath] = entry
            action = "added"

        entry.kind = kind
        if "required" in options:
            entry.required = bool(options["required"])
        if "events" in options:
            entry.events = self._events(options["events"])
        if "default" in options:
            entry.default = options["default"]
            entry.has_default = True
        if "extract_from" in options:
            extract = options["extract_from"]
            entry.extract_from = as_keypath(extract) if extract is not None else None
        if "mapping" in options:
            mapping = options["mapping"]
            entry.mapping = as_keypath(mapping) if mapping is not None else None
        if "decrypt" in options:
            entry.decrypt = bool(options["decrypt"])

        logger.debug(
            "registry.input_declared",
            object_type=descriptor.name,
            path=key_path.fpath,
            kind=kind.value,
            action=action,
        )
        return entry

    @staticmethod
    def _events(events: Event | str | Iterable[Event | str]) -> frozenset[Event]:
        if isinstance(events, (str, Event)):
            events = [events]
        try:
            return frozenset(Event(event) for event in events)
        except ValueError as e:
            raise DeclarationError(f"Invalid event in {events!r}", cause=e) from e

    def map_hdata(self, path: Any, mapping: Any = None) -> RequiredInput:
        """Expose an input in the controller's ``hdata`` view."""
        descriptor = self._current()
        key_path = as_keypath(path)
        entry = descriptor.inputs.get(key_path.fpath)
        if entry is None:
            raise DeclarationError(
                f"'{key_path.fpath}' is not an input of '{descriptor.name}'. Missing require_input()?"
            ).with_context(object_type=descriptor.name, path=key_path.fpath)
        entry.mapping = as_keypath(mapping if mapping is not None else key_path)
        self._attribute_context = key_path
        logger.debug(
            "registry.hdata_mapped",
            object_type=descriptor.name,
            path=key_path.fpath,
            mapping=entry.mapping.fpath,
        )
        return entry

    # =========================================================================
    # Attribute mappings
    # =========================================================================

    def map_return(self, path: Any, external_path: Any = None, *, queriable: bool = True) -> None:
        """Map a process attribute to an attribute of the external object."""
        descriptor = self._current()
        key_path = as_keypath(path)
        map_path = as_keypath(external_path if external_path is not None else key_path)
        descriptor.returns[key_path.fpath] = map_path.fpath
        self._attribute_context = key_path
        if queriable:
            descriptor.query_mapping[key_path.fpath] = map_path.fpath
        logger.debug(
            "registry.attr_mapped",
            object_type=descriptor.name,
            path=key_path.fpath,
            external=map_path.fpath,
        )

    def unmap_return(self, path: Any) -> None:
        """Stop extracting an attribute (and stop accepting it in queries)."""
        descriptor = self._current()
        key_path = as_keypath(path)
        descriptor.returns[key_path.fpath] = None
        descriptor.query_mapping[key_path.fpath] = None
        self._attribute_context = key_path

    def map_query_field(self, path: Any, external_path: Any = None) -> None:
        descriptor = self._current()
        key_path = as_keypath(path)
        map_path = as_keypath(external_path if external_path is not None else key_path)
        descriptor.query_mapping[key_path.fpath] = map_path.fpath
        self._attribute_context = key_path

    def map_value(self, process_value: Any, external_value: Any, *, path: Any = None) -> None:
        """Translate one value of an attribute (current attribute by default)."""
        descriptor = self._current()
        key_path = as_keypath(path) if path is not None else self._current_attribute()
        table = descriptor.value_mapping.setdefault(key_path.fpath, {})
        table[process_value] = external_value
        logger.debug(
            "registry.value_mapped",
            object_type=descriptor.name,
            path=key_path.fpath,
            process_value=process_value,
            external_value=external_value,
        )

    # =========================================================================
    # Lookup
    # =========================================================================

    def lookup(self, name: str) -> Result[ObjectTypeDescriptor]:
        descriptor = self._types.get(name)
        if descriptor is None:
            return Err(UnknownObjectTypeError(name).with_context(object_type=name))
        return Ok(descriptor)

    def types(self) -> list[str]:
        return list(self._types)

    def __contains__(self, name: object) -> bool:
        return name in self._types

    def __getitem__(self, name: str) -> ObjectTypeDescriptor:
        return self.lookup(name).unwrap()

    def __len__(self) -> int:
        return len(self._types)


__all__ = [
    "DEFAULT_MAPPING",
    "Event",
    "Handler",
    "InputKind",
    "LIFECYCLE_EVENTS",
    "ObjectTypeDescriptor",
    "Registry",
    "RequiredInput",
]
