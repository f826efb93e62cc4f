"""
Application facade.

``Core`` wires a registry, a process, a controller and a configuration into
a ``Dispatcher`` and exposes the lifecycle operations an application calls.
Every call runs inside a structlog context carrying the operation and the
object type.

Example:
    >>> core = Core(registry, ServerProcess, MockController(), config=LayeredConfig())
    >>> server = core.create("server", {"name": "web-1"})
    >>> core.query("server", {"name": "web-1"}).length
    1

Tags:
    facade, application, lifespine

Doc-Types:
    - API Reference
    - Getting Started
"""

from __future__ import annotations

from typing import Any

from lifespine.core.config.app import AppConfig
from lifespine.core.config.resolver import LayeredConfig
from lifespine.core.errors import ProcessError
from lifespine.core.logging import LogContext, get_logger
from lifespine.framework.controller import BaseController
from lifespine.framework.data import Data, DataKind
from lifespine.framework.dispatcher import Dispatcher
from lifespine.framework.model import Registry
from lifespine.framework.params import WRAPPER
from lifespine.framework.process import BaseProcess

logger = get_logger(__name__)


class Core:
    """Entry point of a lifespine application.

    Args:
        registry: Declared object types
        process: Process instance, or a BaseProcess subclass to instantiate
        controller: Backend plugin (optional for process-only models)
        config: Configuration stack, ``AppConfig()`` by default
    """

    def __init__(
        self,
        registry: Registry,
        process: BaseProcess | type[BaseProcess],
        controller: BaseController | None = None,
        config: LayeredConfig | None = None,
    ):
        if isinstance(process, type):
            if not issubclass(process, BaseProcess):
                raise ProcessError(f"'{process.__name__}' is not a BaseProcess class.")
            process = process()
        self.config = config if config is not None else AppConfig()
        self.dispatcher = Dispatcher(registry, self.config, process, controller)
        logger.debug(
            "core.initialized",
            process=type(process).__name__,
            controller=type(controller).__name__ if controller is not None else None,
            layers=self.config.layers,
        )

    @property
    def registry(self) -> Registry:
        return self.dispatcher.registry

    @property
    def process(self) -> BaseProcess:
        return self.dispatcher.process

    @property
    def controller(self) -> BaseController | None:
        return self.dispatcher.controller

    def connect(self, object_type: str, config: dict | None = None) -> Data | None:
        with LogContext(operation="connect", object_type=object_type):
            return self.dispatcher.process_create(object_type, config)

    def create(self, object_type: str, config: dict | None = None) -> Data | None:
        with LogContext(operation="create", object_type=object_type):
            return self.dispatcher.process_create(object_type, config)

    def get_or_create(self, object_type: str, config: dict | None = None) -> Data | None:
        """The loaded object_type, created first when it is not loaded."""
        with LogContext(operation="get_or_create", object_type=object_type):
            cached = self.dispatcher.data_objects(object_type, WRAPPER)
            if isinstance(cached, Data):
                return cached
            return self.dispatcher.process_create(object_type, config)

    def delete(self, object_type: str, config: dict | None = None) -> Any:
        with LogContext(operation="delete", object_type=object_type):
            return self.dispatcher.process_delete(object_type, config)

    def query(self, object_type: str, query: dict | None = None, config: dict | None = None) -> Data | None:
        with LogContext(operation="query", object_type=object_type):
            return self.dispatcher.process_query(object_type, query, config)

    def get(self, object_type: str, uid: Any, config: dict | None = None) -> Data | None:
        if uid is None:
            logger.debug("core.get_skipped", object_type=object_type, reason="uid is None")
            return None
        with LogContext(operation="get", object_type=object_type):
            return self.dispatcher.process_get(object_type, uid, config)

    def update(self, object_type: str, config: dict | None = None) -> bool | None:
        with LogContext(operation="update", object_type=object_type):
            return self.dispatcher.process_update(object_type, config)

    def refresh(self, data: Data) -> bool:
        with LogContext(operation="refresh", object_type=getattr(data, "object_type", None)):
            return self.dispatcher.process_refresh(data)

    def register(self, obj: Any, object_type: str | None = None, kind: DataKind = DataKind.OBJECT) -> Data:
        return self.dispatcher.register(obj, object_type, kind)


__all__ = ["Core"]
