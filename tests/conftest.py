"""
Shared pytest fixtures and configuration for lifespine tests.

This module provides:
- Settings isolated in a temporary data path
- A small "cloud" model (connection, network, server) declared on a fresh
  Registry, its process and a mock-backed Core
- Auto-marking of tests as unit/integration by location

Usage:
    Fixtures are auto-discovered by pytest:

    def test_something(cloud_core):
        server = cloud_core.create("server")
"""

from pathlib import Path
from typing import Any, Generator

import pytest
import structlog

from lifespine.core.config.resolver import ConfigLayer, LayeredConfig
from lifespine.core.config.store import ConfigStore
from lifespine.core.settings import LifespineSettings, reset_settings
from lifespine.framework import BaseProcess, Core, Registry
from lifespine.providers import MockController


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(__file__).parent)

        if "integration" in str(test_path) or "_scenario" in item.name:
            item.add_marker(pytest.mark.integration)

        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration", "slow"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def reset_logging_and_settings() -> Generator[None, None, None]:
    """Forget cached settings and structlog configuration between tests."""
    reset_settings()
    yield
    reset_settings()
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


@pytest.fixture
def settings(tmp_path: Path) -> LifespineSettings:
    """Settings whose data path is a fresh temporary directory."""
    return LifespineSettings(data_path=tmp_path, config_filename="config.yaml")


# =============================================================================
# Sample Model
# =============================================================================


class CloudProcess(BaseProcess):
    """Process of the sample model: every handler forwards to the controller."""

    def create_connection(self, object_type: str, params: Any):
        return self.controller_connect(object_type)

    def create_network(self, object_type: str, params: Any):
        found = self.query_single(object_type, {"name": params["network_name"]}, params["network_name"])
        if found is not None and len(found) == 1:
            return self.register(found[0])
        return self.controller_create(object_type)

    def create_server(self, object_type: str, params: Any):
        return self.controller_create(object_type)

    def query_server(self, object_type: str, query: dict, params: Any):
        return self.controller_query(object_type, query)

    def get_server(self, object_type: str, uid: Any, params: Any):
        return self.controller_get(object_type, uid)

    def update_server(self, object_type: str, params: Any):
        return self.controller_update(object_type)

    def delete_server(self, object_type: str, params: Any):
        return self.controller_delete(object_type)


def declare_cloud(registry: Registry) -> Registry:
    """connection <- network <- server, with an hdata mapping and a value mapping."""
    registry.current_process(CloudProcess)

    registry.declare_type("connection", create_e="create_connection")
    registry.require_input("account", default="demo")
    registry.map_hdata("account", "account_name")

    registry.declare_type("network", create_e="create_network", query_e="query_server")
    registry.require_input("connection", kind="object")
    registry.require_input("network_name", events=["create_e"])
    registry.map_hdata("network_name", "name")

    registry.declare_type(
        "server",
        create_e="create_server",
        query_e="query_server",
        get_e="get_server",
        update_e="update_server",
        delete_e="delete_server",
    )
    registry.require_input("connection", kind="object")
    registry.require_input("network", kind="object", events=["create_e"])
    registry.require_input("server_name", events=["create_e"])
    registry.map_hdata("server_name", "name")
    registry.require_input("size", default="small", events=["create_e"])
    registry.map_hdata("size", "flavor")
    registry.map_return("size", "flavor")
    registry.map_value("small", "m1.small")
    registry.map_value("large", "m1.large")
    registry.map_return("status", "state")
    registry.map_value("active", "ACTIVE")
    registry.map_value("stopped", "SHUTOFF")
    return registry


@pytest.fixture
def cloud_registry() -> Registry:
    return declare_cloud(Registry())


@pytest.fixture
def controller() -> MockController:
    return MockController()


@pytest.fixture
def config() -> LayeredConfig:
    """runtime + read-only defaults, no files."""
    return LayeredConfig(
        [
            ConfigLayer("runtime"),
            ConfigLayer(
                "default",
                ConfigStore({"network_name": "private", "server_name": "web-1"}),
                settable=False,
            ),
        ]
    )


@pytest.fixture
def cloud_core(cloud_registry: Registry, controller: MockController, config: LayeredConfig) -> Core:
    return Core(cloud_registry, CloudProcess, controller, config=config)
