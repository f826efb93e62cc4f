"""
Layered configuration resolver.

``LayeredConfig`` is an ordered stack of named ``ConfigStore`` layers.
Reads scan the stack in priority order, writes target exactly one layer,
and every answer can be traced back to the layer that supplied it.

Manifesto:
    The same resolver serves ordinary settings and the parameters of every
    lifecycle operation. Per-call parameters are pushed as a temporary layer
    on top of the stack and removed afterwards, so a handler sees one
    consistent view without any copy of the underlying data.

    - **Precedence:** index 0 is the highest-priority layer
    - **Provenance:** ``where()`` names the layers holding a key
    - **No resolved-value cache:** every call re-scans, since layers can be
      added or removed between calls
    - **Silent refusal:** writes to read-only layers return None instead of
      raising; callers check the return value or ``where()``

Architecture:
    ::

        layers (highest first)          get("flavor")
        ┌──────────────┐                     │
        │ <instant>    │  set=False          ├─ not here
        │ runtime      │  set=True  ◄── set()├─ found -> "large"
        │ local (yaml) │  load/save          │
        │ default      │  set=False          │
        └──────────────┘

        merge("tags"): default ─► local ─► runtime   (higher wins)

Examples:
    >>> config = LayeredConfig([
    ...     ConfigLayer("runtime"),
    ...     ConfigLayer("default", ConfigStore({"flavor": "small"}), settable=False),
    ... ])
    >>> config.get("flavor")
    'small'
    >>> config.set("flavor", "large")
    'large'
    >>> config.where("flavor")
    ['runtime', 'default']

Performance:
    - get/exist/where: O(layers x path depth) per call

Tags:
    configuration, layers, precedence, merge, provenance, lifespine

Doc-Types:
    - API Reference
    - Configuration Guide
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

from lifespine.core.config.store import ConfigStore
from lifespine.core.errors import ConfigError
from lifespine.core.keypath import as_keypath
from lifespine.core.logging import get_logger
from lifespine.core.nested import nested_merge

logger = get_logger(__name__)


@dataclass
class ConfigLayer:
    """One named layer of the stack and its access policy.

    Attributes:
        name: Unique layer name
        config: Backing store
        settable: set()/delete() allowed
        loadable: load() allowed
        persistable: save() allowed
        file_settable: filename may be replaced once set
        static: declared at construction (cannot be removed)
    """

    name: str = "runtime"
    config: ConfigStore = field(default_factory=ConfigStore)
    settable: bool = True
    loadable: bool = False
    persistable: bool = False
    file_settable: bool = False
    static: bool = True


class LayeredConfig:
    """Ordered stack of configuration layers.

    Args:
        layers: Layers in priority order, highest first. Defaults to a single
            settable ``runtime`` layer.

    Raises:
        ConfigError: duplicate layer names
    """

    def __init__(self, layers: Sequence[ConfigLayer] | None = None):
        if layers is None:
            layers = [ConfigLayer()]
        self._layers: list[ConfigLayer] = []
        for layer in layers:
            if self.layer_index(layer.name) is not None:
                raise ConfigError(f"Duplicate config layer name '{layer.name}'").with_context(
                    layer=layer.name
                )
            layer.static = True
            self._layers.append(layer)

    # =========================================================================
    # Layer management
    # =========================================================================

    @staticmethod
    def define_layer(name: str = "runtime", config: ConfigStore | None = None, **flags: Any) -> ConfigLayer:
        """Build a layer with the default policy (settable, nothing else)."""
        return ConfigLayer(name=name, config=config if config is not None else ConfigStore(), **flags)

    @property
    def layers(self) -> list[str]:
        """Layer names, highest priority first."""
        return [layer.name for layer in self._layers]

    def layer(self, name: str) -> ConfigLayer | None:
        index = self.layer_index(name)
        return None if index is None else self._layers[index]

    def layer_index(self, name: str) -> int | None:
        for index, layer in enumerate(self._layers):
            if layer.name == name:
                return index
        return None

    def layer_indexes(self, names: str | Iterable[str]) -> list[int] | None:
        if isinstance(names, str):
            names = [names]
        indexes = [i for i in (self.layer_index(name) for name in names) if i is not None]
        return indexes or None

    def layer_add(self, layer: ConfigLayer, index: int = 0) -> bool:
        """Insert a runtime layer. False if the name is already used."""
        if self.layer_index(layer.name) is not None:
            return False
        layer.static = False
        self._layers.insert(index, layer)
        logger.debug("config.layer_added", layer=layer.name, index=index)
        return True

    def layer_remove(self, name: str | None = None, index: int | None = None) -> bool:
        """Remove a runtime layer by name (preferred) or index.

        Static layers are never removed; the refusal is reported by returning
        False.
        """
        if name is not None:
            index = self.layer_index(name)
        if index is None or not 0 <= index < len(self._layers):
            return False
        if self._layers[index].static:
            return False
        removed = self._layers.pop(index)
        logger.debug("config.layer_removed", layer=removed.name)
        return True

    def _select(self, names: str | Iterable[str] | None = None) -> list[ConfigLayer]:
        if names is None:
            return list(self._layers)
        indexes = self.layer_indexes(names)
        if indexes is None:
            return []
        return [self._layers[i] for i in sorted(indexes)]

    def _target(self, name: str | None) -> ConfigLayer | None:
        if name is not None:
            return self.layer(name)
        for layer in self._layers:
            if layer.settable:
                return layer
        return None

    @staticmethod
    def _apply_options(layer: ConfigLayer, data_options: dict[str, Any] | None) -> None:
        if data_options is not None:
            layer.config.data_options(data_options)

    # =========================================================================
    # Read operations
    # =========================================================================

    def exist(
        self,
        path: Any,
        *,
        names: str | Iterable[str] | None = None,
        data_options: dict[str, Any] | None = None,
    ) -> bool:
        for layer in self._select(names):
            self._apply_options(layer, data_options)
            if layer.config.exist(path):
                return True
        return False

    def where(
        self,
        path: Any,
        *,
        names: str | Iterable[str] | None = None,
        data_options: dict[str, Any] | None = None,
    ) -> list[str] | Literal[False]:
        """Names of the layers holding path, or False when none does."""
        found = []
        for layer in self._select(names):
            self._apply_options(layer, data_options)
            if layer.config.exist(path):
                found.append(layer.name)
        return found or False

    def get(
        self,
        path: Any,
        default: Any = None,
        *,
        names: str | Iterable[str] | None = None,
        name: str | None = None,
        data_options: dict[str, Any] | None = None,
    ) -> Any:
        """First value found in priority order, else default."""
        if name is not None:
            names = [name]
        for layer in self._select(names):
            self._apply_options(layer, data_options)
            if layer.config.exist(path):
                return layer.config.get(path)
        return default

    def merge(
        self,
        path: Any,
        *,
        names: str | Iterable[str] | None = None,
        data_options: dict[str, Any] | None = None,
    ) -> Any:
        """Deep-merge the values of path from lowest to highest priority.

        If the highest-priority value is not a container, that value is
        returned as is.
        """
        values = []
        for layer in self._select(names):
            self._apply_options(layer, data_options)
            if layer.config.exist(path):
                values.append(layer.config.get(path))
        if not values:
            return None
        if not isinstance(values[0], (dict, list)):
            return values[0]

        result: Any = None
        for value in reversed(values):
            if isinstance(value, dict) and isinstance(result, dict):
                result = nested_merge(result, value)
            elif isinstance(value, list) and isinstance(result, list):
                result = result + [item for item in value if item not in result]
            elif isinstance(value, dict):
                result = nested_merge({}, value)
            elif isinstance(value, list):
                result = list(value)
            else:
                result = value
        return result

    def is_mergeable(
        self,
        path: Any,
        *,
        names: str | Iterable[str] | None = None,
        exclusive: bool = False,
        data_options: dict[str, Any] | None = None,
    ) -> bool:
        """True if a holding layer has a container value (all of them with exclusive)."""
        containers = []
        for layer in self._select(names):
            self._apply_options(layer, data_options)
            if layer.config.exist(path):
                containers.append(isinstance(layer.config.get(path), (dict, list)))
        if not containers:
            return False
        if exclusive:
            return all(containers)
        return any(containers)

    # =========================================================================
    # Write operations
    # =========================================================================

    def set(
        self,
        path: Any,
        value: Any,
        *,
        name: str | None = None,
        data_options: dict[str, Any] | None = None,
    ) -> Any:
        """Write into one layer. None when the layer refuses the write."""
        layer = self._target(name)
        if layer is None or not layer.settable or not as_keypath(path):
            logger.debug("config.set_refused", layer=name, path=str(as_keypath(path)))
            return None
        self._apply_options(layer, data_options)
        return layer.config.set(path, value)

    def delete(
        self,
        path: Any,
        *,
        name: str | None = None,
        data_options: dict[str, Any] | None = None,
    ) -> Any:
        """Remove path from exactly one layer and return the removed value."""
        layer = self._target(name)
        if layer is None or not layer.settable:
            return None
        self._apply_options(layer, data_options)
        return layer.config.delete(path)

    def __getitem__(self, path: Any) -> Any:
        return self.get(path)

    def __setitem__(self, path: Any, value: Any) -> None:
        self.set(path, value)

    def __contains__(self, path: Any) -> bool:
        return self.exist(path)

    # =========================================================================
    # Files and versions
    # =========================================================================

    def file(self, name: str, filename: str | Path | None = None) -> Path | Literal[False] | None:
        """Get the filename of a layer, or set it when filename is given."""
        layer = self.layer(name)
        if layer is None:
            return None
        if filename is None:
            return layer.config.filename
        if not (layer.loadable or layer.persistable):
            return False
        if layer.config.filename is not None and not layer.file_settable:
            return False
        layer.config.filename = filename
        return layer.config.filename

    def load(self, name: str, filename: str | Path | None = None) -> bool:
        layer = self.layer(name)
        if layer is None or not layer.loadable:
            return False
        return layer.config.load(filename)

    def save(self, name: str, filename: str | Path | None = None) -> bool:
        layer = self.layer(name)
        if layer is None or not layer.persistable:
            return False
        return layer.config.save(filename)

    def version(self, name: str) -> str | None:
        layer = self.layer(name)
        return None if layer is None else layer.config.version

    def set_version(self, name: str, version: str) -> str | None:
        layer = self.layer(name)
        if layer is None:
            return None
        layer.config.version = version
        return version

    def is_latest_version(self, name: str) -> bool | None:
        layer = self.layer(name)
        return None if layer is None else layer.config.is_latest_version()

    def __str__(self) -> str:
        lines = ["Configs list ordered:"]
        for layer in self._layers:
            flags = ["predefined"] if layer.static else []
            flags.append("data RW" if layer.settable else "data RO")
            if layer.loadable:
                access = "RW" if layer.persistable else "RO"
                file_flags = f"File {access}"
                if layer.file_settable:
                    file_flags += ", filename updatable"
            else:
                file_flags = "File None"
            flags.append(file_flags)
            lines.append(f"---- Config : {layer.name} ----")
            lines.append("options: " + ", ".join(flags))
            lines.append(str(layer.config))
        return "\n".join(lines)


__all__ = ["ConfigLayer", "LayeredConfig"]
