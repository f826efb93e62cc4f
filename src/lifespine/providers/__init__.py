"""Bundled controllers."""

from lifespine.providers.mock import MockController

__all__ = ["MockController"]
