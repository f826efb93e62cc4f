"""
Interactive setup interface.

The framework never prompts by itself. An application that fills the
local configuration interactively passes an object satisfying
``Prompter``; the terminal (or test double) behind it is its own business.

Design Principles:
- Protocol over inheritance: any object with ``ask`` and
  ``choose_from_list`` qualifies
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Prompter(Protocol):
    """Two primitives used to collect configuration values."""

    def ask(
        self,
        description: str,
        default: str | None = None,
        pattern: str | None = None,
        masked: bool = False,
        required: bool = False,
    ) -> str:
        """Read one value. ``pattern`` is a regex the answer must match."""
        ...

    def choose_from_list(self, values: Sequence[Any], default: Any = None) -> Any:
        """Let the user pick one of values."""
        ...


__all__ = ["Prompter"]
