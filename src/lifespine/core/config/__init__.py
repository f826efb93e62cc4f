"""Layered configuration: stores, resolver and the application stack."""

from lifespine.core.config.app import AppConfig
from lifespine.core.config.resolver import ConfigLayer, LayeredConfig
from lifespine.core.config.store import ConfigStore, SectionConfig

__all__ = [
    "AppConfig",
    "ConfigLayer",
    "ConfigStore",
    "LayeredConfig",
    "SectionConfig",
]
