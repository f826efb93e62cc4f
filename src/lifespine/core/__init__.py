"""Lifespine Core -- leaf utilities and the ambient stack.

Manifesto:
    The lifecycle engine in ``lifespine.framework`` stands on a small set of
    primitives that know nothing about object types: nested-dict helpers,
    key paths, the layered configuration resolver, structured errors,
    Result values, logging and settings.

    - **No framework imports:** core never imports lifespine.framework
    - **One error base:** every failure is a LifespineError
    - **Layered config:** one resolver for settings and per-call parameters

Architecture::

    Layer 1 -- Type System & Errors
        errors.py          Structured error hierarchy (LifespineError)
        result.py          Result[T] envelope (Ok / Err)
        logging.py         structlog setup + LogContext
        settings.py        LIFESPINE_* environment settings

    Layer 2 -- Addressing
        keypath.py         KeyPath normalization
        nested.py          nested dict get/set/delete/merge

    Layer 3 -- Configuration
        config/store.py    ConfigStore, SectionConfig (YAML)
        config/resolver.py LayeredConfig
        config/app.py      AppConfig (runtime/local/controller/default)
"""

from lifespine.core.errors import ErrorCategory, ErrorContext, LifespineError
from lifespine.core.keypath import KeyPath
from lifespine.core.logging import LogContext, configure_logging, get_logger
from lifespine.core.result import Err, Ok, Result

__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "LifespineError",
    "KeyPath",
    "LogContext",
    "configure_logging",
    "get_logger",
    "Ok",
    "Err",
    "Result",
]
