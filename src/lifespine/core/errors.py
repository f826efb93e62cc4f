"""
Structured error types for the lifespine framework.

Provides a typed hierarchy of errors carrying the metadata needed to
explain *why* a lifecycle operation did not complete: which object type
was being handled, which event was running, which configuration layer or
attribute path was involved, and the underlying cause.

Every fatal condition raised by the dispatcher, the registry or the
configuration resolver is a LifespineError subclass. Callers can catch a
single base class and still get a rich, serializable description of the
failure instead of a raw low-level exception.

Manifesto:
    - **Typed Error Hierarchy:** One subclass per failure domain
    - **Rich Context:** object_type, event, layer and path travel with the error
    - **Error Chaining:** Handler exceptions are preserved as cause
    - **Fatal vs recoverable:** Recoverable conditions are Result values
      (see lifespine.core.result), only unrecoverable ones are raised

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                       LifespineError                             │
        │              (category, context, cause)                          │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  ConfigError        DeclarationError       DispatchError         │
        │  (CONFIG)           (DECLARATION)          (DISPATCH)            │
        │       │                   │                     │                │
        │  ConfigFileError    UndeclaredObjectType   UnknownObjectType     │
        │                     UnknownHandler         DependencyLoop        │
        │                                            MissingRequirement    │
        │  KeyPathError       MappingError           ContractViolation     │
        │  (VALIDATION)       (MAPPING)              HandlerError          │
        │                          │                                       │
        │                     ValueMappingError                            │
        │                                                                  │
        │  ControllerError    ProcessError           CacheMissError        │
        │  (CONTROLLER)       (PROCESS)              (CACHE, recoverable)  │
        │       │                                                          │
        │  ControllerNotImplemented                                        │
        └─────────────────────────────────────────────────────────────────┘

Examples:
    Adding dispatch context to an error:

    >>> error = DispatchError("handler returned garbage")
    >>> error.with_context(object_type="server", event="create_e")
    DispatchError('handler returned garbage', category=DISPATCH)
    >>> error.context.object_type
    'server'

    Chaining a handler failure:

    >>> try:
    ...     raise KeyError("flavor")
    ... except KeyError as e:
    ...     raise HandlerError("create_e handler failed", cause=e)
    Traceback (most recent call last):
    ...
    HandlerError: create_e handler failed

Guardrails:
    ❌ DON'T: Raise plain Exception from framework code
    ✅ DO: Raise the LifespineError subclass matching the failure

    ❌ DON'T: Raise for recoverable conditions (optional dependency missing)
    ✅ DO: Return Err(...) and let the caller decide

Tags:
    error-handling, exception-hierarchy, error-context, lifespine,
    dispatcher, registry, configuration

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """
    Standard error categories for classification.

    Categories follow the component that detected the failure so that logs
    can be filtered per subsystem.

    Attributes:
        CONFIG: Layer definition, file load/save issues
        VALIDATION: Malformed input such as a bad key path
        DECLARATION: Registry misuse detected at declaration time
        DISPATCH: Lifecycle operation failures at runtime
        MAPPING: Attribute, query or value mapping failures
        CONTROLLER: Backend plugin failures
        PROCESS: Process plugin failures
        CACHE: Parameter-bag cache lookups
        INTERNAL: Bugs, unexpected state
        UNKNOWN: Uncategorized errors
    """

    CONFIG = "CONFIG"
    VALIDATION = "VALIDATION"
    DECLARATION = "DECLARATION"
    DISPATCH = "DISPATCH"
    MAPPING = "MAPPING"
    CONTROLLER = "CONTROLLER"
    PROCESS = "PROCESS"
    CACHE = "CACHE"
    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """
    Structured metadata context for errors.

    Only the fields relevant to a failure are set; ``to_dict()`` drops the
    others so the structured log line stays small.

    Attributes:
        object_type: Object type being handled
        event: Lifecycle event (create_e, query_e, ...)
        layer: Configuration layer name
        path: Attribute or configuration key path (rendered)
        handler: Name of the process handler involved
        metadata: Additional key-value pairs
    """

    object_type: str | None = None
    event: str | None = None
    layer: str | None = None
    path: str | None = None
    handler: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["object_type", "event", "layer", "path", "handler"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class LifespineError(Exception):
    """
    Base exception for all lifespine errors.

    All LifespineError instances carry:
    - **category:** ErrorCategory for classification
    - **context:** ErrorContext with object type, event and path metadata
    - **cause:** Optional underlying exception for chaining

    Subclasses set ``default_category`` to place themselves in the right
    failure domain.

    Examples:
        >>> error = LifespineError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.with_context(object_type="network").context.object_type
        'network'
        >>> error.to_dict()["category"]
        'INTERNAL'

    Tags:
        exception, error-hierarchy, error-context, lifespine, base-class
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> LifespineError:
        """
        Add context to this error (fluent API).

        Usage:
            raise DispatchError("Failed").with_context(
                object_type="server",
                event="create_e",
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(LifespineError):
    """Configuration layer error."""

    default_category = ErrorCategory.CONFIG


class ConfigFileError(ConfigError):
    """A configuration layer file could not be read or written."""

    def __init__(self, filename: str | None, message: str | None = None, **kwargs: Any):
        self.filename = filename
        super().__init__(message or f"Config file error: {filename}", **kwargs)


class KeyPathError(LifespineError):
    """A key path is malformed (bad type, empty segment, too deep)."""

    default_category = ErrorCategory.VALIDATION


# =============================================================================
# DECLARATION ERRORS
# =============================================================================


class DeclarationError(LifespineError):
    """
    Registry misuse detected while declaring object types.

    Raised immediately, at declaration time, so that a broken model never
    reaches the dispatcher.
    """

    default_category = ErrorCategory.DECLARATION


class UndeclaredObjectTypeError(DeclarationError):
    """A nested-object requirement references a type never declared."""

    def __init__(self, object_type: str, message: str | None = None):
        self.object_type = object_type
        super().__init__(
            message or f"'{object_type}' not declared. Missing declare_type('{object_type}')?"
        )


class UnknownHandlerError(DeclarationError):
    """A handler slot or handler name is invalid."""

    pass


# =============================================================================
# DISPATCH ERRORS
# =============================================================================


class DispatchError(LifespineError):
    """Lifecycle operation failure."""

    default_category = ErrorCategory.DISPATCH


class UnknownObjectTypeError(DispatchError):
    """Object type referenced at runtime was never registered."""

    def __init__(self, object_type: str, message: str | None = None):
        self.object_type = object_type
        super().__init__(message or f"'{object_type}' is not a known object type.")


class DependencyLoopError(DispatchError):
    """A required dependency could not be resolved by auto-creation."""

    def __init__(self, object_type: str, chain: list[str] | None = None, message: str | None = None):
        self.object_type = object_type
        self.chain = chain or []
        super().__init__(
            message
            or f"loop detection: '{object_type}' is required but its creation did not load it."
        )


class MissingRequirementError(DispatchError):
    """A required data input is not set anywhere."""

    def __init__(self, key: str, message: str | None = None, **kwargs: Any):
        self.key = key
        super().__init__(message or f"key '{key}' is not set.", **kwargs)


class ContractViolationError(DispatchError):
    """A handler or controller returned a value of the wrong type."""

    pass


class HandlerError(DispatchError):
    """A process handler raised a non-framework exception."""

    pass


# =============================================================================
# MAPPING ERRORS
# =============================================================================


class MappingError(LifespineError):
    """Attribute or query field mapping failure."""

    default_category = ErrorCategory.MAPPING


class ValueMappingError(MappingError):
    """A value-mapping table exists but does not know the given value."""

    def __init__(self, object_type: str, path: str, value: Any, message: str | None = None):
        self.object_type = object_type
        self.path = path
        self.value = value
        super().__init__(message or f"'{object_type}.{path}': No value mapping for {value!r}")


# =============================================================================
# PLUGIN ERRORS
# =============================================================================


class ControllerError(LifespineError):
    """Error reported by a controller (backend plugin)."""

    default_category = ErrorCategory.CONTROLLER


class ControllerNotImplementedError(ControllerError):
    """A required controller primitive was not redefined by the controller."""

    def __init__(self, controller: str, primitive: str):
        self.controller = controller
        self.primitive = primitive
        super().__init__(f"{controller}: {primitive} has not been redefined by the controller.")


class ProcessError(LifespineError):
    """Error reported by a process (business-logic plugin)."""

    default_category = ErrorCategory.PROCESS


class CacheMissError(LifespineError):
    """Object type not present in the parameter-bag cache.

    Recoverable: returned inside ``Err`` rather than raised.
    """

    default_category = ErrorCategory.CACHE

    def __init__(self, object_type: str):
        self.object_type = object_type
        super().__init__(f"'{object_type}' is not loaded.")


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def categorize_error(error: Exception) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, LifespineError):
        return error.category
    if isinstance(error, (KeyError, AttributeError)):
        return ErrorCategory.MAPPING
    if isinstance(error, (TypeError, ValueError)):
        return ErrorCategory.VALIDATION
    if isinstance(error, OSError):
        return ErrorCategory.CONFIG
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "LifespineError",
    # Config
    "ConfigError",
    "ConfigFileError",
    "KeyPathError",
    # Declaration
    "DeclarationError",
    "UndeclaredObjectTypeError",
    "UnknownHandlerError",
    # Dispatch
    "DispatchError",
    "UnknownObjectTypeError",
    "DependencyLoopError",
    "MissingRequirementError",
    "ContractViolationError",
    "HandlerError",
    # Mapping
    "MappingError",
    "ValueMappingError",
    # Plugins
    "ControllerError",
    "ControllerNotImplementedError",
    "ProcessError",
    "CacheMissError",
    # Utilities
    "categorize_error",
]
