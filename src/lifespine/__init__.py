"""
Lifespine - process/controller abstraction framework.

Applications declare abstract object types once, implement the business
logic in a process and reach any backend through a controller:
- lifespine.core: errors, Result, key paths, layered configuration, logging
- lifespine.framework: registry, dispatcher, data wrappers, Core facade
- lifespine.providers: bundled controllers (mock)
"""

__version__ = "0.1.0"

from lifespine.core import *  # noqa
from lifespine.framework import BaseController, BaseProcess, Core, Data, Registry  # noqa: E402
