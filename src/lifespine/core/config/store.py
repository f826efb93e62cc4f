"""
Single-layer key/value stores backing the layered configuration resolver.

A ``ConfigStore`` is one layer's data: a nested dict addressed by key
paths, optionally bound to a YAML file. ``SectionConfig`` scopes every
access to one top-level section of that document, which is the
``{section: {key: value}}`` shape used by local configuration files.

Manifesto:
    Stores know nothing about precedence. They answer exist/get/set/delete
    for their own data and load/save their own file. Precedence, merge and
    provenance belong to LayeredConfig.

    - **Data options:** ``data_readonly`` refuses writes, ``file_readonly``
      refuses saves, ``section`` scopes SectionConfig
    - **Versioned files:** ``file_version`` is lifted out of the document on
      load and written back on save

Examples:
    >>> store = ConfigStore({"network": {"name": "private"}})
    >>> store.get("network/name")
    'private'
    >>> section = SectionConfig({"default": {"flavor": "small"}})
    >>> section.get("flavor")
    'small'

Tags:
    configuration, yaml, layer-store, lifespine

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from lifespine.core.errors import ConfigFileError
from lifespine.core.keypath import as_keypath
from lifespine.core.logging import get_logger
from lifespine.core.nested import (
    nested_delete,
    nested_exist,
    nested_get,
    nested_set,
)

logger = get_logger(__name__)

FILE_VERSION_KEY = "file_version"


class ConfigStore:
    """In-memory nested dict with optional YAML persistence.

    Args:
        data: Initial data (used as is, not copied)
        latest_version: Version written by this code base; a loaded file with
            another ``file_version`` is reported by ``is_latest_version()``
    """

    def __init__(self, data: dict | None = None, latest_version: str | None = None):
        self._data: dict = data if isinstance(data, dict) else {}
        self._data_options: dict[str, Any] = {}
        self._filename: Path | None = None
        self.latest_version = latest_version
        self.version = latest_version

    @property
    def data(self) -> dict:
        return self._data

    @property
    def filename(self) -> Path | None:
        return self._filename

    @filename.setter
    def filename(self, value: str | Path | None) -> None:
        self._filename = Path(value).expanduser().resolve() if value is not None else None

    def data_options(self, options: dict[str, Any] | None = None) -> dict[str, Any]:
        """Set (when given) and return the options used by the next accesses."""
        if options is not None:
            self._data_options = dict(options)
        return self._data_options

    def _tree(self, path: Any) -> list:
        return as_keypath(path).tree

    def exist(self, path: Any) -> bool:
        tree = self._tree(path)
        if not tree:
            return False
        return nested_exist(self._data, tree)

    def get(self, path: Any) -> Any:
        tree = self._tree(path)
        if not tree:
            return None
        return nested_get(self._data, tree)

    def set(self, path: Any, value: Any) -> Any:
        tree = self._tree(path)
        if not tree:
            return None
        if self._data_options.get("data_readonly"):
            return self.get(path)
        return nested_set(self._data, value, tree)

    def delete(self, path: Any) -> Any:
        tree = self._tree(path)
        if not tree:
            return None
        return nested_delete(self._data, tree)

    def __getitem__(self, path: Any) -> Any:
        return self.get(path)

    def __setitem__(self, path: Any, value: Any) -> None:
        self.set(path, value)

    def __contains__(self, path: Any) -> bool:
        return self.exist(path)

    def erase(self) -> None:
        """Drop all data and reset the version."""
        self.version = self.latest_version
        self._data = {}

    def is_latest_version(self) -> bool:
        return self.version == self.latest_version

    def load(self, filename: str | Path | None = None) -> bool:
        """Replace the data with the YAML document in filename."""
        if filename is not None:
            self.filename = filename
        if self._filename is None:
            raise ConfigFileError(None, "Config filename not set.")

        try:
            with open(self._filename, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigFileError(
                str(self._filename), f"Unable to load {self._filename}: {e}", cause=e
            ) from e

        self._data = data if isinstance(data, dict) else {}
        if FILE_VERSION_KEY in self._data:
            self.version = self._data.pop(FILE_VERSION_KEY)
        logger.debug("config.file_loaded", filename=str(self._filename))
        return True

    def save(self, filename: str | Path | None = None) -> bool:
        """Write the data as YAML. Refused (False) when file_readonly."""
        if self._data_options.get("file_readonly"):
            return False
        if filename is not None:
            self.filename = filename
        if self._filename is None:
            raise ConfigFileError(None, "Config filename not set.")

        document = dict(self._data)
        if self.version is not None:
            document[FILE_VERSION_KEY] = self.version

        try:
            self._filename.parent.mkdir(parents=True, exist_ok=True)
            with open(self._filename, "w", encoding="utf-8") as out:
                yaml.safe_dump(document, out, default_flow_style=False, sort_keys=False)
        except OSError as e:
            raise ConfigFileError(
                str(self._filename), f"Unable to save {self._filename}: {e}", cause=e
            ) from e
        logger.debug("config.file_saved", filename=str(self._filename))
        return True

    def __str__(self) -> str:
        return f"File : {self._filename}\n" + yaml.safe_dump(self._data, default_flow_style=False)


class SectionConfig(ConfigStore):
    """ConfigStore scoped to one top-level section.

    The section comes from ``data_options(section=...)`` and defaults to
    ``"default"``.
    """

    DEFAULT_SECTION = "default"

    def _tree(self, path: Any) -> list:
        tree = as_keypath(path).tree
        if not tree:
            return []
        section = self._data_options.get("section") or self.DEFAULT_SECTION
        return [section, *tree]


__all__ = ["ConfigStore", "SectionConfig", "FILE_VERSION_KEY"]
