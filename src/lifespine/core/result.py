"""
Result envelope for recoverable conditions.

Provides a typed Result[T] pattern used wherever a lifecycle step can fail
without aborting the operation: an optional dependency that is not cached,
a registry lookup the caller wants to inspect before deciding whether the
miss is fatal.

Only the conditions that must abort an operation (unknown object type,
dependency loop, contract violation) are raised as exceptions. Everything
else travels as Ok/Err so the calling code states explicitly what happens
on a miss.

Manifesto:
    - **Explicit over Implicit:** A cache miss is a value, not a surprise
    - **Fatal path is separate:** ``unwrap()`` re-raises the carried error
      when the caller decides the miss is unrecoverable

Architecture:
    ::

        ┌─────────────────┬─────────────────┐
        │     Ok[T]       │     Err[T]      │
        │   (Success)     │   (Failure)     │
        ├─────────────────┼─────────────────┤
        │ value: T        │ error: Exception│
        │ unwrap() -> T   │ unwrap() raises │
        └─────────────────┴─────────────────┘

Examples:
    >>> from lifespine.core.result import Ok, Err
    >>> Ok(2).unwrap()
    2
    >>> Err(KeyError("server")).is_err()
    True

Tags:
    result-type, error-handling, lifespine

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Successful result containing a value."""

    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        """Get the value. Safe for Ok."""
        return self.value

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[T]):
    """Failed result containing an error, preferably a LifespineError."""

    error: Exception

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> T:
        """Raise the error. Use only when the miss is fatal."""
        raise self.error

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


# Type alias for Result
Result = Ok[T] | Err[T]


__all__ = ["Ok", "Err", "Result"]
