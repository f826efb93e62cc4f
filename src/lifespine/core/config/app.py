"""
Application configuration stack.

``AppConfig`` is the ``LayeredConfig`` every ``Core`` starts from:

    runtime     settable, in-memory (highest priority)
    local       SectionConfig bound to <data_path>/config.yaml
    controller  settable, filled by the backend at connect time
    default     read-only application defaults (optional YAML file)

The data path, the local file name and the defaults file come from
``LifespineSettings`` (``LIFESPINE_*`` environment variables).

Tags:
    configuration, application, yaml, lifespine

Doc-Types:
    - API Reference
    - Configuration Guide
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from lifespine.core.config.resolver import ConfigLayer, LayeredConfig
from lifespine.core.config.store import ConfigStore, SectionConfig
from lifespine.core.errors import ConfigFileError
from lifespine.core.logging import get_logger
from lifespine.core.settings import LifespineSettings, get_settings

logger = get_logger(__name__)

DEFAULT_SECTION = SectionConfig.DEFAULT_SECTION


class AppConfig(LayeredConfig):
    """Standard runtime/local/controller/default stack.

    Args:
        config_name: Local config file. A bare file name is taken relative to
            the data path; a missing file falls back to the default one.
        settings: Settings to use instead of ``get_settings()``
        defaults: Application defaults, used instead of ``settings.defaults_file``
    """

    def __init__(
        self,
        config_name: str | Path | None = None,
        *,
        settings: LifespineSettings | None = None,
        defaults: dict[str, Any] | None = None,
    ):
        self.settings = settings or get_settings()

        default_store = ConfigStore(defaults)
        local_store = SectionConfig()

        super().__init__(
            [
                ConfigLayer("runtime"),
                ConfigLayer("local", local_store, loadable=True, persistable=True),
                ConfigLayer("controller"),
                ConfigLayer("default", default_store, settable=False, loadable=True),
            ]
        )

        if defaults is None and self.settings.defaults_file is not None:
            self.load("default", self.settings.defaults_file)

        self._initialize_local(local_store, config_name)

    def _local_filename(self, config_name: str | Path | None) -> Path:
        default_path = self.settings.config_path
        if config_name is None:
            return default_path

        path = Path(config_name).expanduser()
        if not path.is_absolute() and path.parent == Path("."):
            path = self.settings.data_path.expanduser() / path
        if not path.exists():
            logger.warning("config.file_missing", filename=str(path), fallback=str(default_path))
            return default_path
        return path

    def _initialize_local(self, store: SectionConfig, config_name: str | Path | None) -> None:
        filename = self._local_filename(config_name)
        if filename.exists():
            store.load(filename)
            return

        store.data[DEFAULT_SECTION] = None
        logger.info("config.file_created", filename=str(filename))
        store.save(filename)

    # =========================================================================
    # Layer shortcuts
    # =========================================================================

    def config_filename(self, name: str = "local") -> Path | None:
        layer = self.layer(name) or self.layer("local")
        return layer.config.filename if layer else None

    def config_dump(self, names: list[str] | None = None) -> dict[str, Any]:
        """Data of the given layers (local and default by default).

        A single name returns that layer's data directly.
        """
        names = names or ["local", "default"]
        layers = [self.layer(name) for name in names]
        layers = [layer for layer in layers if layer is not None]
        if len(names) == 1:
            return layers[0].config.data if layers else {}
        return {layer.name: layer.config.data for layer in layers}

    def runtime_exist(self, path: Any) -> bool:
        return self.exist(path, names="runtime")

    def runtime_get(self, path: Any) -> Any:
        return self.get(path, name="runtime")

    def local_exist(self, path: Any, section: str = DEFAULT_SECTION) -> bool:
        return self.exist(path, names="local", data_options={"section": section})

    def local_get(self, path: Any, section: str = DEFAULT_SECTION, default: Any = None) -> Any:
        if not self.local_exist(path, section):
            return default
        return self.get(path, name="local", data_options={"section": section})

    def local_set(self, path: Any, value: Any, section: str = DEFAULT_SECTION) -> Any:
        if value is None:
            return False
        return self.set(path, value, name="local", data_options={"section": section})

    def local_del(self, path: Any, section: str = DEFAULT_SECTION) -> Any:
        return self.delete(path, name="local", data_options={"section": section})

    def save_local_config(self) -> bool:
        """Write the local layer back to its file. False on failure."""
        filename = self.config_filename("local")
        try:
            saved = self.save("local")
        except ConfigFileError as e:
            logger.error("config.save_failed", filename=str(filename), error=str(e))
            return False

        if saved:
            logger.info("config.file_updated", filename=str(filename))
        else:
            logger.debug("config.file_not_updated", filename=str(filename))
        return saved


__all__ = ["AppConfig"]
