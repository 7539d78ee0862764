"""
tests/test_graph.py - Component graph tests.

Declarations, proxies, dependencies and ordering.
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from comet.errors import DependencyCycle, DuplicateComponentName, InvalidComponentName
from comet.stack.graph import Component, ComponentGraph, ComponentProxy
from comet.stack.values import OutputRef


@pytest.fixture
def graph():
    return ComponentGraph()


class TestDeclare:
    def test_declare_returns_proxy(self, graph):
        vpc = graph.declare("vpc", "modules/vpc", {"cidr": "10.0.0.0/16"})
        assert isinstance(vpc, ComponentProxy)
        assert graph.names == ["vpc"]
        assert graph.get("vpc").config == {"cidr": "10.0.0.0/16"}

    def test_duplicate_name_raises(self, graph):
        graph.declare("vpc", "modules/vpc")
        with pytest.raises(DuplicateComponentName, match="vpc"):
            graph.declare("vpc", "modules/other")
        assert len(graph) == 1

    @pytest.mark.parametrize("name", ["", None, 42, "../escaped", "net.core", "a/b", "with space"])
    def test_invalid_name_raises(self, graph, name):
        with pytest.raises(InvalidComponentName):
            graph.declare(name, "modules/x")

    def test_declaration_order_kept(self, graph):
        for name in ["c", "a", "b"]:
            graph.declare(name, f"modules/{name}")
        assert [c.name for c in graph] == ["c", "a", "b"]

    def test_config_stored_as_given(self, graph):
        config = {"n": 1, "f": 1.5, "s": "x", "l": [1, "2"], "m": {"k": None}}
        graph.declare("x", "modules/x", config)
        assert graph.get("x").config == config


class TestProxy:
    def test_any_attribute_is_output_ref(self, graph):
        vpc = graph.declare("vpc", "modules/vpc")
        assert vpc.id == OutputRef("vpc", "id")
        assert vpc.self_link == OutputRef("vpc", "self_link")
        assert vpc.name == OutputRef("vpc", "name")

    def test_item_access(self, graph):
        vpc = graph.declare("vpc", "modules/vpc")
        assert vpc["private-ip"] == OutputRef("vpc", "private-ip")

    def test_ref_is_not_a_config_value(self, graph):
        vpc = graph.declare("vpc", "modules/vpc", {"id": "literal"})
        assert vpc.id == OutputRef("vpc", "id")

    def test_private_attribute_raises(self, graph):
        vpc = graph.declare("vpc", "modules/vpc")
        with pytest.raises(AttributeError):
            vpc.__wrapped__

    def test_read_only(self, graph):
        vpc = graph.declare("vpc", "modules/vpc")
        with pytest.raises(AttributeError):
            vpc.id = "x"

    def test_not_iterable(self, graph):
        vpc = graph.declare("vpc", "modules/vpc")
        with pytest.raises(TypeError, match="not iterable"):
            list(vpc)
        with pytest.raises(TypeError):
            "id" in vpc


class TestComponentViews:
    def test_inputs_from_root(self):
        c = Component("gke", "modules/gke", {"a": 1, "providers": {"google": {}}})
        assert c.inputs == {"a": 1}
        assert c.providers == {"google": {}}

    def test_inputs_subkey(self):
        c = Component("gke", "modules/gke", {"inputs": {"a": 1}, "other": 2})
        assert c.inputs == {"a": 1}
        assert c.providers == {}


class TestDependencies:
    def test_refs_and_embedded_expressions(self, graph):
        vpc = graph.declare("vpc", "modules/vpc")
        graph.declare("dns", "modules/dns")
        graph.declare("gke", "modules/gke", {
            "network": vpc.id,
            "zone": "${dns.zone}",
            "region": "${var.region}",
            "again": vpc.ip,
        })
        assert graph.dependencies("gke") == ["vpc", "dns"]
        assert graph.dependencies("vpc") == []

    def test_order_puts_dependencies_first(self, graph):
        graph.declare("app", "modules/app", {"db": "${db.host}"})
        graph.declare("db", "modules/db", {"net": "${vpc.id}"})
        graph.declare("vpc", "modules/vpc")
        graph.declare("dns", "modules/dns")
        assert [c.name for c in graph.order()] == ["vpc", "db", "app", "dns"]

    def test_cycle_raises(self, graph):
        graph.declare("a", "modules/a", {"x": "${b.out}"})
        graph.declare("b", "modules/b", {"x": "${a.out}"})
        with pytest.raises(DependencyCycle, match="a -> b -> a"):
            graph.order()
