"""Tests for lifespine.framework.data (Data wrapper)."""

import pytest

from lifespine.core.errors import MappingError
from lifespine.framework.data import REMOVE, Data, DataKind


def extract(object_type, external):
    return {"id": external["uid"], "name": external.get("label"), "zone": {"name": external.get("az")}}


@pytest.fixture
def server() -> Data:
    return Data.wrap({"uid": 7, "label": "web-1", "az": "eu-1"}, "server", extract)


@pytest.fixture
def servers() -> Data:
    collection = [{"uid": 1, "label": "a"}, None, {"uid": 2, "label": "b"}, {"uid": 3, "label": "c"}]
    return Data.wrap_list(collection, "server", {"status": "active"}, extract)


class TestDataObject:
    """Single wrapper."""

    def test_attributes(self, server):
        assert server.kind is DataKind.OBJECT
        assert server.object_type == "server"
        assert server["id"] == 7
        assert server["zone/name"] == "eu-1"
        assert server["zone", "name"] == "eu-1"
        assert server.get() == server.attrs

    def test_object_and_attrs_segments(self, server):
        assert server["object"] == {"uid": 7, "label": "web-1", "az": "eu-1"}
        assert server["object", "label"] == "web-1"
        assert server["attrs", "name"] == "web-1"

    def test_exist(self, server):
        assert "name" in server
        assert ("zone", "name") in server
        assert "missing" not in server
        assert server.exist("object")
        assert server.exist("attrs")
        assert not server.exist()

    def test_exist_object_segment(self, server):
        assert not Data().exist("object")
        assert server.exist("object", "label")
        assert not server.exist("object", "missing")

    def test_length_and_empty(self, server):
        assert len(server) == 1
        assert not server.is_empty
        empty = Data()
        assert empty.is_empty
        assert len(empty) == 0
        assert empty.to_list() == []

    def test_set_attr(self, server):
        server["name"] = "web-2"
        assert server["name"] == "web-2"
        assert server.set_attr("attrs/zone/name", "eu-2")
        assert server["zone/name"] == "eu-2"
        assert server.set_attr("object", {"uid": 8})
        assert server.object == {"uid": 8}
        assert server["id"] == 7

    def test_refresh(self, server):
        server.object["label"] = "renamed"
        assert server["name"] == "web-1"
        server.refresh(extract)
        assert server["name"] == "renamed"

    def test_no_extractor(self):
        data = Data.wrap({"a": 1}, "item")
        assert data.attrs == {}
        assert data["object", "a"] == 1

    def test_extractor_failure_is_mapping_error(self):
        with pytest.raises(MappingError) as exc_info:
            Data.wrap({}, "server", extract)
        assert isinstance(exc_info.value.cause, KeyError)
        assert exc_info.value.context.object_type == "server"

    def test_extractor_must_return_dict(self):
        with pytest.raises(MappingError):
            Data.wrap({}, "server", lambda t, ext: ["not", "a", "dict"])

    def test_extractor_none_is_empty(self):
        assert Data.wrap({}, "server", lambda t, ext: None).attrs == {}

    def test_copy(self, server):
        copy = Data().set(server)
        assert copy.object is server.object
        copy["name"] = "other"
        assert server["name"] == "web-1"
        assert Data().set(server, "host").object_type == "host"

    def test_registration(self, server):
        assert not server.is_registered
        assert server.register() is server
        assert server.is_registered
        server.unregister()
        assert not server.is_registered

    def test_repr_and_str(self, server):
        assert repr(server).startswith("Data(kind=object, object_type='server'")
        assert "-- Data (object) --" in str(server)


class TestDataList:
    """List wrapper."""

    def test_elements_skip_none(self, servers):
        assert servers.kind is DataKind.LIST
        assert len(servers) == 3
        assert [element["id"] for element in servers] == [1, 2, 3]
        assert all(element.object_type == "server" for element in servers)

    def test_addressing(self, servers):
        assert servers[0, "name"] == "a"
        assert servers[-1, "name"] == "c"
        assert isinstance(servers[1], Data)
        assert servers[9] is None
        assert servers["query"] == {"status": "active"}
        assert servers["name"] is None
        assert servers.get() == servers.elements

    def test_exist(self, servers):
        assert servers.exist(0, "name")
        assert servers.exist("query")
        assert not servers.exist(5)
        assert not servers.exist("name")

    def test_read_only(self, servers):
        assert servers.set_attr("name", "x") is False

    def test_each_remove(self, servers):
        seen = []

        def callback(element):
            seen.append(element["id"])
            return REMOVE if element["id"] == 2 else None

        servers.each(callback)
        assert seen == [1, 2, 3]
        assert [element["id"] for element in servers] == [1, 3]

    def test_each_index_remove(self, servers):
        servers.each_index(lambda index: REMOVE if index == 0 else None)
        assert [element["id"] for element in servers] == [2, 3]

    def test_each_on_object_is_noop(self, server):
        server.each(lambda element: REMOVE)
        assert len(server) == 1

    def test_to_list(self, servers):
        assert [attrs["name"] for attrs in servers.to_list()] == ["a", "b", "c"]

    def test_empty_collection(self):
        data = Data.wrap_list(None, "server")
        assert len(data) == 0
        assert data.query == {}

    def test_not_a_collection(self):
        with pytest.raises(MappingError):
            Data.wrap_list(42, "server")

    def test_refresh_elements(self, servers):
        servers[0].object["label"] = "z"
        servers.refresh(extract)
        assert servers[0, "name"] == "z"

    def test_remove_marker(self):
        assert repr(REMOVE) == "REMOVE"
        assert type(REMOVE)() is REMOVE
