"""Tests for lifespine.framework.dispatcher (lifecycle engine)."""

import pytest
import structlog

from lifespine.core.config.resolver import ConfigLayer, LayeredConfig
from lifespine.core.config.store import ConfigStore
from lifespine.core.errors import (
    CacheMissError,
    ContractViolationError,
    ControllerError,
    DependencyLoopError,
    DispatchError,
    HandlerError,
    MappingError,
    MissingRequirementError,
    ProcessError,
    UnknownObjectTypeError,
    ValueMappingError,
)
from lifespine.framework.controller import BaseController
from lifespine.framework.data import Data, DataKind
from lifespine.framework.dispatcher import Dispatcher
from lifespine.framework.model import Registry
from lifespine.framework.process import BaseProcess
from lifespine.providers.mock import MockController


class RecordingProcess(BaseProcess):
    """Process whose handlers are plain callables declared per test."""

    def __init__(self):
        super().__init__()
        self.calls = []


def make_dispatcher(registry, config=None, controller=None):
    process = RecordingProcess()
    return Dispatcher(registry, config or LayeredConfig(), process, controller)


def returning(value, name="handler"):
    def handler(process, object_type, *args):
        process.calls.append((name, object_type, args))
        return value() if callable(value) else value

    return handler


class TestConstruction:
    def test_rejects_bad_config(self):
        with pytest.raises(DispatchError):
            Dispatcher(Registry(), {}, RecordingProcess())

    def test_rejects_bad_process(self):
        with pytest.raises(ProcessError):
            Dispatcher(Registry(), LayeredConfig(), object())

    def test_rejects_bad_controller(self):
        with pytest.raises(ControllerError):
            Dispatcher(Registry(), LayeredConfig(), RecordingProcess(), object())

    def test_attaches_process(self):
        dispatcher = make_dispatcher(Registry())
        assert dispatcher.process.dispatcher is dispatcher


class TestUnknownType:
    @pytest.mark.parametrize("operation", ["process_create", "process_delete", "process_update"])
    def test_unknown_type_is_fatal(self, operation):
        dispatcher = make_dispatcher(Registry())
        with pytest.raises(UnknownObjectTypeError) as exc_info:
            getattr(dispatcher, operation)("ghost")
        assert exc_info.value.context.object_type == "ghost"

    def test_unknown_type_query(self):
        with pytest.raises(UnknownObjectTypeError):
            make_dispatcher(Registry()).process_query("ghost", {})


class TestHandlerLookup:
    """Missing handlers."""

    def test_create_without_handler_builds_meta_object(self):
        registry = Registry()
        registry.declare_type("group", nohandler=True)
        dispatcher = make_dispatcher(registry)
        data = dispatcher.process_create("group")
        assert data.object == {}
        assert data.attrs == {}
        assert dispatcher.data_objects("group", "__data__") is data

    @pytest.mark.parametrize(
        "operation, args",
        [
            ("process_delete", ()),
            ("process_update", ()),
            ("process_query", ({},)),
            ("process_get", (1,)),
        ],
    )
    def test_other_events_are_noops(self, operation, args):
        registry = Registry()
        registry.declare_type("group", nohandler=True)
        assert getattr(make_dispatcher(registry), operation)("group", *args) is None


class TestDependencies:
    """Automatic creation of missing required objects."""

    def test_dependencies_are_created_first(self):
        registry = Registry()
        registry.declare_type("connection", create_e=returning({"id": "c"}, "connection"))
        registry.declare_type("network", create_e=returning({"id": "n"}, "network"))
        registry.require_input("connection", kind="object")
        registry.declare_type("server", create_e=returning({"id": "s"}, "server"))
        registry.require_input("network", kind="object")
        registry.require_input("connection", kind="object")
        dispatcher = make_dispatcher(registry)

        dispatcher.process_create("server")

        assert [name for name, _, _ in dispatcher.process.calls] == ["connection", "network", "server"]
        assert set(dispatcher.cache_objects_keys()) == {"connection", "network", "server"}

    def test_loaded_dependency_is_not_recreated(self):
        registry = Registry()
        registry.declare_type("network", create_e=returning({"id": "n"}, "network"))
        registry.declare_type("server", create_e=returning({"id": "s"}, "server"))
        registry.require_input("network", kind="object")
        dispatcher = make_dispatcher(registry)

        dispatcher.process_create("network")
        dispatcher.process_create("server")
        dispatcher.process_create("server")

        assert [name for name, _, _ in dispatcher.process.calls] == ["network", "server", "server"]

    def test_handler_sees_dependency_attributes(self):
        seen = {}

        def create_server(process, object_type, params):
            seen["network"] = params["network", "__data__"]
            return {"id": 1}

        registry = Registry()
        registry.declare_type("network", create_e=returning(lambda: Data.wrap({"id": 5}, "network")))
        registry.declare_type("server", create_e=create_server)
        registry.require_input("network", kind="object")
        dispatcher = make_dispatcher(registry)

        dispatcher.process_create("server")
        assert seen["network"].object == {"id": 5}

    def test_optional_object_is_not_created(self):
        registry = Registry()
        registry.declare_type("network", create_e=returning({"id": "n"}, "network"))
        registry.declare_type("server", create_e=returning({"id": "s"}, "server"))
        registry.require_input("network", kind="object", required=False)
        dispatcher = make_dispatcher(registry)

        dispatcher.process_create("server")
        assert [name for name, _, _ in dispatcher.process.calls] == ["server"]

    def test_dependency_loop_detected(self):
        registry = Registry()
        registry.declare_type("a", create_e=returning({"id": "a"}, "a"))
        registry.declare_type("b", create_e=returning({"id": "b"}, "b"))
        registry.declare_type("a")
        registry.require_input("b", kind="object")
        registry.declare_type("b")
        registry.require_input("a", kind="object")
        dispatcher = make_dispatcher(registry)

        with pytest.raises(DependencyLoopError) as exc_info:
            dispatcher.process_create("a")
        assert exc_info.value.chain == ["a", "b", "a"]
        assert dispatcher.process.calls == []

    def test_dependency_not_loaded_by_its_create(self):
        registry = Registry()
        registry.declare_type("network", create_e=returning(None, "network"))
        registry.declare_type("server", create_e=returning({"id": "s"}, "server"))
        registry.require_input("network", kind="object")
        dispatcher = make_dispatcher(registry)

        with pytest.raises(DependencyLoopError):
            dispatcher.process_create("server")

    def test_dependencies_survive_a_later_failure(self):
        def broken(process, object_type, params):
            raise RuntimeError("backend down")

        registry = Registry()
        registry.declare_type("network", create_e=returning({"id": "n"}, "network"))
        registry.declare_type("server", create_e=broken)
        registry.require_input("network", kind="object")
        dispatcher = make_dispatcher(registry)

        with pytest.raises(HandlerError):
            dispatcher.process_create("server")
        assert dispatcher.data_objects("network", "__data__") is not None
        assert dispatcher.data_objects("server") is None


class TestDataInputs:
    """Parameters built from the configuration."""

    def test_missing_required_input(self):
        registry = Registry()
        registry.declare_type("server", create_e=returning({"id": 1}))
        registry.require_input("flavor")
        with pytest.raises(MissingRequirementError) as exc_info:
            make_dispatcher(registry).process_create("server")
        assert exc_info.value.context.object_type == "server"
        assert exc_info.value.context.event == "create_e"

    def test_default_satisfies_requirement(self):
        seen = {}

        def create(process, object_type, params):
            seen["flavor"] = params["flavor"]
            return {"id": 1}

        registry = Registry()
        registry.declare_type("server", create_e=create)
        registry.require_input("flavor", default="small")
        make_dispatcher(registry).process_create("server")
        assert seen["flavor"] == "small"

    def test_requirement_limited_to_events(self):
        registry = Registry()
        registry.declare_type("server", create_e=returning({"id": 1}), query_e=returning([]))
        registry.require_input("flavor", events=["create_e"])
        dispatcher = make_dispatcher(registry)
        assert dispatcher.process_query("server", {}) is not None
        with pytest.raises(MissingRequirementError):
            dispatcher.process_create("server")

    def test_optional_input_absent(self):
        seen = {}

        def create(process, object_type, params):
            seen["has_image"] = "image" in params
            return {"id": 1}

        registry = Registry()
        registry.declare_type("server", create_e=create)
        registry.require_input("image", required=False)
        make_dispatcher(registry).process_create("server")
        assert seen["has_image"] is False

    def test_extract_from_loaded_object(self):
        seen = {}

        def create(process, object_type, params):
            seen["network_id"] = params["network_id"]
            return {"id": 1}

        registry = Registry()
        registry.declare_type(
            "network",
            create_e=returning(lambda: Data.wrap({"id": 42}, "network", lambda t, ext: {"id": ext["id"]})),
        )
        registry.declare_type("server", create_e=create)
        registry.require_input("network", kind="object")
        registry.require_input("network_id", extract_from="network/id")
        make_dispatcher(registry).process_create("server")
        assert seen["network_id"] == 42


class TestInstantConfig:
    """Per-call configuration layer."""

    def test_instant_values_win_and_are_removed(self):
        seen = []

        def create(process, object_type, params):
            seen.append(params["flavor"])
            return {"id": 1}

        registry = Registry()
        registry.declare_type("server", create_e=create)
        registry.require_input("flavor")
        config = LayeredConfig([ConfigLayer("runtime", ConfigStore({"flavor": "small"}))])
        dispatcher = make_dispatcher(registry, config)

        dispatcher.process_create("server", {"flavor": "large"})
        dispatcher.process_create("server")

        assert seen == ["large", "small"]
        assert config.layers == ["runtime"]

    def test_instant_layer_removed_after_failure(self):
        def broken(process, object_type, params):
            raise ValueError("bad")

        registry = Registry()
        registry.declare_type("server", create_e=broken)
        config = LayeredConfig()
        dispatcher = make_dispatcher(registry, config)

        with pytest.raises(HandlerError):
            dispatcher.process_create("server", {"flavor": "large"})
        assert config.layers == ["runtime"]

    def test_instant_layer_is_read_only(self):
        def create(process, object_type, params):
            process.config.set("flavor", "set-by-handler")
            return {"id": 1}

        registry = Registry()
        registry.declare_type("server", create_e=create)
        config = LayeredConfig()
        make_dispatcher(registry, config).process_create("server", {"flavor": "large"})
        assert config.get("flavor") == "set-by-handler"


class TestResultHandling:
    """Wrapping, caching and contracts."""

    def test_raw_result_is_wrapped(self):
        registry = Registry()
        registry.declare_type("server", create_e=returning({"id": 3, "name": "web"}))
        registry.declare_type("server", get_attr_e=lambda process, external, tree: external.get(tree[0]))
        data = make_dispatcher(registry).process_create("server")
        assert isinstance(data, Data)
        assert data.attrs == {"id": 3, "name": "web"}

    def test_none_result_is_not_cached(self):
        registry = Registry()
        registry.declare_type("server", create_e=returning(None), get_e=returning(None))
        dispatcher = make_dispatcher(registry)
        assert dispatcher.process_create("server") is None
        assert dispatcher.process_get("server", 1) is None
        assert dispatcher.cache_objects_keys() == []

    def test_get_caches_result(self):
        registry = Registry()
        registry.declare_type("server", get_e=returning({"id": 1}))
        dispatcher = make_dispatcher(registry)
        data = dispatcher.process_get("server", 1)
        assert dispatcher.data_objects("server", "__data__") is data
        assert dispatcher.process.calls[0][2][0] == 1

    def test_update_must_return_bool(self):
        registry = Registry()
        registry.declare_type("server", update_e=returning("yes"))
        with pytest.raises(ContractViolationError) as exc_info:
            make_dispatcher(registry).process_update("server")
        assert exc_info.value.context.event == "update_e"

    def test_handler_exception_is_wrapped(self):
        def broken(process, object_type, params):
            raise KeyError("flavor")

        registry = Registry()
        registry.declare_type("server", create_e=broken)
        with pytest.raises(HandlerError) as exc_info:
            make_dispatcher(registry).process_create("server")
        assert isinstance(exc_info.value.cause, KeyError)
        assert exc_info.value.context.handler == "broken"

    def test_framework_errors_pass_through(self):
        def strict(process, object_type, params):
            raise MappingError("bad field")

        registry = Registry()
        registry.declare_type("server", create_e=strict)
        with pytest.raises(MappingError) as exc_info:
            make_dispatcher(registry).process_create("server")
        assert exc_info.value.context.object_type == "server"


class TestQueryCache:
    """Query results are reused until the type changes."""

    @pytest.fixture
    def dispatcher(self):
        registry = Registry()
        registry.declare_type(
            "server",
            create_e=returning({"id": 9}, "create"),
            query_e=returning([{"id": 1}, {"id": 2}], "query"),
            update_e=returning(True, "update"),
            delete_e=returning(True, "delete"),
        )
        return make_dispatcher(registry)

    def query_calls(self, dispatcher):
        return sum(1 for name, _, _ in dispatcher.process.calls if name == "query")

    def test_same_query_reuses_result(self, dispatcher):
        first = dispatcher.process_query("server", {"status": "active"})
        second = dispatcher.process_query("server", {"status": "active"})
        assert first is second
        assert first.kind is DataKind.LIST
        assert len(first) == 2
        assert self.query_calls(dispatcher) == 1

    def test_other_query_runs_again(self, dispatcher):
        dispatcher.process_query("server", {"status": "active"})
        dispatcher.process_query("server", {"status": "stopped"})
        assert self.query_calls(dispatcher) == 2

    @pytest.mark.parametrize("operation", ["process_create", "process_update", "process_delete"])
    def test_changes_invalidate(self, dispatcher, operation):
        dispatcher.process_query("server", {"status": "active"})
        getattr(dispatcher, operation)("server")
        dispatcher.process_query("server", {"status": "active"})
        assert self.query_calls(dispatcher) == 2

    def test_failed_update_keeps_cache(self):
        registry = Registry()
        registry.declare_type("server", query_e=returning([], "query"), update_e=returning(False))
        dispatcher = make_dispatcher(registry)
        dispatcher.process_query("server", {})
        assert dispatcher.process_update("server") is False
        dispatcher.process_query("server", {})
        assert self.query_calls(dispatcher) == 1

    def test_caller_mutating_its_query_gets_a_new_result(self, dispatcher):
        query = {"status": "active"}
        first = dispatcher.process_query("server", query)
        query["status"] = "stopped"
        second = dispatcher.process_query("server", query)
        assert second is not first
        assert first.query == {"status": "active"}
        assert self.query_calls(dispatcher) == 2


class TestDelete:
    def test_success_clears_slot(self):
        registry = Registry()
        registry.declare_type("server", create_e=returning({"id": 1}), delete_e=returning(True))
        dispatcher = make_dispatcher(registry)
        dispatcher.process_create("server")
        assert dispatcher.process_delete("server") is True
        assert dispatcher.data_objects("server") is None

    def test_failure_keeps_slot(self):
        registry = Registry()
        registry.declare_type("server", create_e=returning({"id": 1}), delete_e=returning(False))
        dispatcher = make_dispatcher(registry)
        data = dispatcher.process_create("server")
        assert dispatcher.process_delete("server") is False
        assert dispatcher.data_objects("server", "__data__") is data

    def test_handler_receives_loaded_object(self):
        seen = {}

        def delete(process, object_type, params):
            seen["server"] = params["server", "__data__"]
            return True

        registry = Registry()
        registry.declare_type("server", create_e=returning({"id": 1}), delete_e=delete)
        dispatcher = make_dispatcher(registry)
        data = dispatcher.process_create("server")
        dispatcher.process_delete("server")
        assert seen["server"] is data

    def test_unloaded_self_is_not_created(self):
        registry = Registry()
        registry.declare_type("server", create_e=returning({"id": 1}, "create"), delete_e=returning(False, "delete"))
        registry.require_input("server", kind="object", events=["delete_e"])
        dispatcher = make_dispatcher(registry)
        assert dispatcher.process_delete("server") is False
        calls = dispatcher.process.calls
        assert [name for name, _, _ in calls] == ["delete"]
        assert "server" not in calls[0][2][0]
        assert dispatcher.data_objects("server") is None


class TestControllerLevel:
    """controller_* operations with the mock backend."""

    @pytest.fixture
    def registry(self):
        registry = Registry()
        registry.declare_type("server", nohandler=True)
        registry.require_input("name", default="web-1")
        registry.map_hdata("name")
        registry.require_input("status", default="active", events=["create_e"])
        registry.map_hdata("status", "state")
        registry.map_return("status", "state")
        registry.map_value("active", "ACTIVE")
        registry.map_value("stopped", "SHUTOFF")
        return registry

    def test_create_maps_hdata_and_values(self, registry):
        controller = MockController()
        dispatcher = make_dispatcher(registry, controller=controller)
        data = dispatcher.controller_create("server")
        assert controller.store["server"][0]["state"] == "ACTIVE"
        assert data["status"] == "active"
        assert data["name"] == "web-1"

    def test_unmapped_value_is_fatal(self, registry):
        dispatcher = make_dispatcher(
            registry,
            config=LayeredConfig([ConfigLayer("runtime", ConfigStore({"status": "exploded"}))]),
            controller=MockController(),
        )
        with pytest.raises(ValueMappingError):
            dispatcher.controller_create("server")

    def test_query_translates_fields(self, registry):
        controller = MockController()
        dispatcher = make_dispatcher(registry, controller=controller)
        dispatcher.controller_create("server")
        result = dispatcher.controller_query("server", {"status": "active"})
        assert len(result) == 1
        assert result[0, "status"] == "active"
        assert result.query == {"status": "active"}

    def test_query_unknown_field(self, registry):
        dispatcher = make_dispatcher(registry, controller=MockController())
        with pytest.raises(MappingError):
            dispatcher.controller_query("server", {"colour": "red"})

    def test_update_pushes_changes_only(self, registry):
        controller = MockController()
        dispatcher = make_dispatcher(registry, controller=controller)
        data = dispatcher.controller_create("server")

        assert dispatcher.controller_update("server") is False
        assert controller.call_count("update") == 0

        data["status"] = "stopped"
        assert dispatcher.controller_update("server") is True
        assert controller.call_count("update") == 1
        assert controller.store["server"][0]["state"] == "SHUTOFF"
        assert data["status"] == "stopped"

    def test_unmapped_update_value_is_rejected_before_writing(self, registry):
        controller = MockController()
        dispatcher = make_dispatcher(registry, controller=controller)
        data = dispatcher.controller_create("server")
        data["name"] = "web-9"
        data["status"] = "bogus"
        with pytest.raises(ValueMappingError):
            dispatcher.controller_update("server")
        assert controller.call_count("update") == 0
        assert controller.store["server"][0]["state"] == "ACTIVE"
        assert controller.store["server"][0]["name"] == "web-1"

    def test_update_requires_bool(self, registry):
        class SloppyController(MockController):
            def update(self, object_type, data, params):
                return "done"

        dispatcher = make_dispatcher(registry, controller=SloppyController())
        data = dispatcher.controller_create("server")
        data["name"] = "web-2"
        with pytest.raises(ContractViolationError):
            dispatcher.controller_update("server")

    def test_update_needs_loaded_object(self, registry):
        dispatcher = make_dispatcher(registry, controller=MockController())
        with pytest.raises(CacheMissError):
            dispatcher.controller_update("server")

    def test_get_and_delete(self, registry):
        controller = MockController()
        dispatcher = make_dispatcher(registry, controller=controller)
        dispatcher.controller_create("server")
        fetched = dispatcher.controller_get("server", 0)
        assert fetched["name"] == "web-1"
        assert dispatcher.controller_delete("server") is True
        assert controller.store["server"] == []
        assert dispatcher.data_objects("server") is None

    def test_refresh(self, registry):
        controller = MockController()
        dispatcher = make_dispatcher(registry, controller=controller)
        data = dispatcher.controller_create("server")
        controller.store["server"][0]["state"] = "SHUTOFF"
        assert dispatcher.process_refresh(data) is True
        assert data["status"] == "stopped"
        assert dispatcher.process_refresh(Data()) is False

    def test_no_controller(self, registry):
        with pytest.raises(ControllerError):
            make_dispatcher(registry).controller_create("server")

    def test_controller_exception_is_wrapped(self, registry):
        class BrokenController(BaseController):
            def create(self, object_type, params):
                raise OSError("connection refused")

        with pytest.raises(ControllerError) as exc_info:
            make_dispatcher(registry, controller=BrokenController()).controller_create("server")
        assert isinstance(exc_info.value.cause, OSError)

    def test_not_implemented_primitive(self, registry):
        dispatcher = make_dispatcher(registry, controller=BaseController())
        with pytest.raises(ControllerError, match="has not been redefined"):
            dispatcher.controller_create("server")


class TestRegister:
    def test_register_raw_object(self):
        registry = Registry()
        registry.declare_type("server", nohandler=True)
        dispatcher = make_dispatcher(registry, controller=MockController())
        data = dispatcher.register({"id": 4, "name": "x"}, "server")
        assert data["id"] == 4
        assert dispatcher.data_objects("server", "name") == "x"

    def test_register_list(self):
        registry = Registry()
        registry.declare_type("server", nohandler=True)
        dispatcher = make_dispatcher(registry, controller=MockController())
        data = dispatcher.register([{"id": 1}], "server", DataKind.LIST)
        assert dispatcher.query_cache("server", {}) is data

    def test_register_needs_type(self):
        with pytest.raises(DispatchError):
            make_dispatcher(Registry()).register({"id": 1})

    def test_object_cleanup(self):
        registry = Registry()
        registry.declare_type("server", create_e=returning({"id": 1}))
        dispatcher = make_dispatcher(registry)
        dispatcher.process_create("server")
        dispatcher.object_cleanup("server")
        assert dispatcher.cache_objects_keys() == []


class TestWithoutController:
    """Process-only models map plain dict results themselves."""

    def test_item_with_connection_scenario(self):
        registry = Registry()
        registry.declare_type("connection", create_e=returning({"token": "abc"}, "connection"))
        registry.declare_type("item", create_e=returning({"id": 7, "name": "x"}, "item"))
        registry.require_input("connection", kind="object")
        registry.map_return("id")
        registry.map_return("name")
        dispatcher = make_dispatcher(registry)

        item = dispatcher.process_create("item", {})

        calls = dispatcher.process.calls
        assert [name for name, _, _ in calls] == ["connection", "item"]
        assert calls[1][2][0]["connection", "__data__"].object == {"token": "abc"}
        assert item.attrs == {"id": 7, "name": "x"}
        assert dispatcher.data_objects("item", "__data__") is item
        assert dispatcher.data_objects("item", "id") == 7
        assert len(dispatcher.process.calls) == 2

    def test_non_mapping_result_has_empty_values(self):
        registry = Registry()
        registry.declare_type("item", create_e=returning("opaque-handle"))
        registry.map_return("id")
        item = make_dispatcher(registry).process_create("item")
        assert item.object == "opaque-handle"
        assert item["id"] is None


class TestDefaultLogging:
    """Lifecycle logging with structlog left at its defaults."""

    def test_handlers_run(self):
        structlog.reset_defaults()
        registry = Registry()
        registry.declare_type(
            "server",
            create_e=returning({"id": 1}),
            query_e=returning(None),
            get_e=returning({"id": 1}),
            update_e=returning(True),
            delete_e=returning(True),
        )
        registry.map_return("id")
        dispatcher = make_dispatcher(registry)
        assert dispatcher.process_create("server")["id"] == 1
        assert dispatcher.process_query("server", {}) is None
        assert dispatcher.process_get("server", 1)["id"] == 1
        assert dispatcher.process_update("server") is True
        assert dispatcher.process_delete("server") is True
        assert len(dispatcher.process.calls) == 5
