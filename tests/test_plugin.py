from unittest.mock import Mock

import pytest

from plugsim.core.contracts import CompilationResult
from plugsim.core.exceptions import InvalidPluginSchema, PluginCompilationError, UnknownType
from plugsim.plugins.plugin import Plugin, describe_plugin, merge_result_types
from plugsim.runtime.model import Model
from plugsim.typesystem.types import (
    BOOLEAN,
    NUMBER,
    STRING,
    ArrayType,
    CustomObjectType,
    IntersectionType,
    LiteralType,
    RecordType,
    UnionType,
)

MINIMAL = """
class Node:
    label: str

class Edge:
    weight: int

class Graph:
    name: str

Nodes = Node
Edges = Edge

class State:
    at: Node

def start(graph: Graph, data: str) -> State:
    return State()

def step(current: State) -> State | int:
    return 1
"""


def test_minimal_plugin_types(compile_plugin):
    plugin = compile_plugin(MINIMAL)
    types = plugin.types

    assert types.arguments == [STRING]
    assert types.result == NUMBER
    assert types.state.name == "State"
    assert plugin.state_class is plugin.implementation.State
    assert plugin.validate_edge_hook is None
    assert plugin.name == "plugin.py"
    assert plugin.description == "No plugin description provided."


def test_drawable_kinds_get_derived_members(compile_plugin):
    plugin = compile_plugin(MINIMAL)
    types = plugin.types
    node_type, = types.node_types
    edge_type, = types.edge_types

    assert isinstance(node_type, IntersectionType)
    assert node_type.nominal.name == "Node"
    assert types.nodes is node_type
    assert types.edges is edge_type
    assert isinstance(node_type.member("children"), ArrayType)
    assert node_type.member("children").element is edge_type
    assert node_type.member("parents").element is edge_type
    assert edge_type.member("source") is node_type
    assert edge_type.member("destination") is node_type
    assert types.graph.member("nodes").element is node_type
    assert types.graph.member("edges").element is edge_type
    assert node_type.visibility["children"] is False
    assert node_type.member("label") == STRING


def test_native_classes_point_at_augmented_types(compile_plugin):
    plugin = compile_plugin(MINIMAL)
    module = plugin.implementation

    assert plugin.registry.type_for(module.Node) is plugin.types.node_types[0]
    assert plugin.registry.type_for(module.Graph) is plugin.types.graph
    assert plugin.registry.constructor_for(plugin.types.node_types[0]) is module.Node


def test_declared_adjacency_members_are_kept(compile_plugin):
    plugin = compile_plugin(
        """
        from __future__ import annotations

        class Node:
            children: list[Edge]

        class Edge:
            source: Node

        class Graph:
            pass

        Nodes = Node
        Edges = Edge

        class State:
            pass

        def start(graph: Graph) -> State:
            return State()

        def step(current: State) -> bool:
            return True
        """
    )
    node_type = plugin.types.node_types[0]
    edge_type = plugin.types.edge_types[0]

    assert "children" not in node_type.types[1].members
    assert "parents" in node_type.types[1].members
    assert node_type.member("children").element.name == "Edge"
    assert edge_type.member("source").name == "Node"


def test_declared_adjacency_members_must_have_the_right_shape(compile_plugin):
    with pytest.raises(InvalidPluginSchema, match="Node.children must be a list"):
        compile_plugin(MINIMAL.replace("    label: str", "    label: str\n    children: int"))


def test_multiple_node_kinds(shapes_plugin):
    types = shapes_plugin.types

    assert [k.nominal.name for k in types.node_types] == ["Circle", "Square"]
    assert isinstance(types.nodes, UnionType)
    assert types.nodes.types == tuple(types.node_types)
    assert types.edge_types[0].member("source") is types.nodes


@pytest.mark.parametrize(
    "old, new, message",
    [
        ("class State:\n    at: Node", "State = Node | Edge", "State must be an object type"),
        ("Nodes = Node", "Nodes = Node | int", "All members of Nodes must be classes"),
        ("Edges = Edge", "Edges = list[Edge]", "Edges must either be a class or a union of classes"),
        ("class Graph:\n    name: str", "Graph = Node | Edge", "Graph must be an object type"),
        ("def start(graph: Graph, data: str) -> State:", "def start() -> State:", "start must take the graph"),
    ],
)
def test_schema_violations(compile_plugin, old, new, message):
    source = MINIMAL.replace(old, new)
    assert source != MINIMAL

    with pytest.raises(InvalidPluginSchema, match=message):
        compile_plugin(source)


def test_missing_declarations(compile_plugin):
    with pytest.raises(InvalidPluginSchema, match='must declare "State"'):
        compile_plugin("from __future__ import annotations\n" + MINIMAL.replace("class State:", "class Status:"))
    with pytest.raises(InvalidPluginSchema, match='function "step" not found'):
        compile_plugin(MINIMAL.replace("def step(", "def advance("))


def test_overloaded_entry_points_are_rejected(compile_plugin):
    source = MINIMAL.replace(
        "def start(graph: Graph, data: str) -> State:",
        "from typing import overload\n"
        "@overload\n"
        "def start(graph: Graph, data: str) -> State: ...\n"
        "@overload\n"
        "def start(graph: Graph, data: int) -> State: ...\n"
        "def start(graph, data):",
    )

    with pytest.raises(InvalidPluginSchema, match="don't overload the start function"):
        compile_plugin(source)


def test_unknown_argument_types_are_rejected(compile_plugin):
    source = MINIMAL.replace("data: str", "data: object")

    with pytest.raises(UnknownType):
        compile_plugin(source)


def test_failed_compilation_cannot_become_a_plugin():
    failed = CompilationResult(source="def", module=None, file_name="broken.py")

    with pytest.raises(PluginCompilationError, match="broken.py"):
        Plugin(failed)


def test_result_types_drop_state_and_merge_booleans():
    state = CustomObjectType("State")

    assert merge_result_types(state, UnionType([state, LiteralType(True), LiteralType(False)])) == BOOLEAN
    assert merge_result_types(state, state, UnionType([state, NUMBER])) == NUMBER
    assert merge_result_types(state, UnionType([state, LiteralType(1)]), NUMBER) == NUMBER

    merged = merge_result_types(state, UnionType([state, STRING]), UnionType([state, NUMBER]))
    assert isinstance(merged, UnionType)
    assert merged.types == (STRING, NUMBER)


def test_result_types_drop_state_subtypes():
    state = CustomObjectType("State")
    waiting = CustomObjectType("Waiting", super_type=state)

    assert merge_result_types(state, UnionType([waiting, BOOLEAN])) == BOOLEAN


def test_countdown_result_collapses_literals(countdown_plugin):
    assert countdown_plugin.types.result == BOOLEAN
    assert countdown_plugin.types.arguments == [NUMBER]


def test_lookup_object_type(shapes_plugin):
    circle = shapes_plugin.lookup_object_type("Circle")
    tag = shapes_plugin.lookup_object_type("Tag")
    point = shapes_plugin.lookup_object_type("Point")

    assert circle is shapes_plugin.types.node_types[0]
    assert isinstance(tag, CustomObjectType)
    assert isinstance(point, RecordType)
    with pytest.raises(UnknownType, match="not an object type"):
        shapes_plugin.lookup_object_type("Nodes")


def test_validate_edge_defaults_to_true(dfa_plugin):
    assert dfa_plugin.validate_edge_hook is None
    assert dfa_plugin.validate_edge() is True


def test_validate_edge_delegates_to_the_plugin(shapes_plugin):
    model = Model(shapes_plugin)
    circle = model.make_node("Circle")
    square = model.make_node("Square")
    other_square = model.make_node("Square")

    assert shapes_plugin.validate_edge(circle, square) is True
    assert shapes_plugin.validate_edge(circle, circle) is False
    assert shapes_plugin.validate_edge(square, other_square) is False
    assert shapes_plugin.validate_edge() is True


def test_validate_edge_hook_failures_are_refusals(shapes_plugin):
    shapes_plugin.validate_edge_hook = Mock(side_effect=RuntimeError("boom"))

    assert shapes_plugin.validate_edge() is False
    shapes_plugin.validate_edge_hook.assert_called_once_with(None, None, None)


def test_describe_plugin(dfa_plugin):
    description = describe_plugin(dfa_plugin)

    assert description["kind"] == ["Formal Languages", "DFA"]
    assert description["arguments"] == ["string"]
    assert description["result"] == "boolean"
    assert description["nodes"]["DFANode"]["is_start_state"] == {
        "type": "boolean",
        "label": "Start State",
        "visible": True,
    }
    assert description["nodes"]["DFANode"]["children"]["visible"] is False
    assert description["graph"]["comment"]["visible"] is False
    assert description["validate_edge"] is False
