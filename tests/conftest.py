import textwrap
from pathlib import Path
from typing import Callable, Dict, Tuple

import pytest

from plugsim.plugins.compiler import PythonCompiler
from plugsim.plugins.loader import load_plugin_dir
from plugsim.plugins.plugin import Plugin
from plugsim.runtime.model import Model
from plugsim.typesystem.values import ObjectValue, unbox

PLUGINS_DIR = Path(__file__).parent / "plugins"

# Binary numbers divisible by three: the state is the value read so far mod 3.
MOD3_TRANSITIONS = [
    ("q0", "0", "q0"),
    ("q0", "1", "q1"),
    ("q1", "0", "q2"),
    ("q1", "1", "q0"),
    ("q2", "0", "q1"),
    ("q2", "1", "q2"),
]


@pytest.fixture
def plugins_dir() -> Path:
    return PLUGINS_DIR


@pytest.fixture
def compile_plugin() -> Callable[[str], Plugin]:
    """Compile inline plugin source into a Plugin."""

    def _compile(source: str) -> Plugin:
        result = PythonCompiler().compile(textwrap.dedent(source))
        assert result.ok, result.all_diagnostics()
        return Plugin(result)

    return _compile


@pytest.fixture
def dfa_plugin() -> Plugin:
    return load_plugin_dir(PLUGINS_DIR / "dfa")


@pytest.fixture
def shapes_plugin() -> Plugin:
    return load_plugin_dir(PLUGINS_DIR / "shapes")


@pytest.fixture
def flaky_plugin() -> Plugin:
    return load_plugin_dir(PLUGINS_DIR / "flaky")


@pytest.fixture
def countdown_plugin() -> Plugin:
    return load_plugin_dir(PLUGINS_DIR / "countdown")


def build_dfa(plugin: Plugin, transitions, start=("q0",), accept=("q0",)) -> Tuple[Model, Dict[str, ObjectValue]]:
    model = Model(plugin)
    env = model.environment
    states: Dict[str, ObjectValue] = {}
    for source, _, destination in transitions:
        for label in (source, destination):
            if label in states:
                continue
            node = model.make_node()
            node.set("label", env.make_primitive(label))
            node.set("is_start_state", env.make_primitive(label in start))
            node.set("is_accept_state", env.make_primitive(label in accept))
            states[label] = node
    for source, symbol, destination in transitions:
        edge = model.make_edge(states[source], states[destination])
        edge.set("label", env.make_primitive(symbol))
    return model, states


@pytest.fixture
def dfa_builder(dfa_plugin):
    return lambda transitions, **kwargs: build_dfa(dfa_plugin, transitions, **kwargs)


@pytest.fixture
def mod3_dfa(dfa_plugin):
    """(model, states by label) for the divisible-by-three automaton."""
    return build_dfa(dfa_plugin, MOD3_TRANSITIONS)


@pytest.fixture
def shapes_model(shapes_plugin) -> Model:
    """A circle and a square linked both ways, with every container kind populated."""
    model = Model(shapes_plugin)
    env = model.environment
    bridge = shapes_plugin.bridge
    module = shapes_plugin.implementation

    model.graph.set("title", env.make_primitive("sketch"))

    circle = model.make_node("Circle")
    circle.set("label", env.make_primitive("c1"))
    circle.set("radius", env.make_primitive(2.5))
    circle.set("center", bridge.wrap({"x": 1.0, "y": -1.0}, env, circle.type.member("center")))
    tags = bridge.wrap([module.Tag("red"), module.Tag("blue")], env, circle.type.member("tags"))
    circle.set("tags", tags)
    circle.set("owner", unbox(tags[0]))

    square = model.make_node("Square")
    square.set("label", env.make_primitive("s1"))
    square.set("side", env.make_primitive(3))
    square.set("corners", bridge.wrap((0, 3), env, square.type.member("corners")))
    square.set("style", bridge.wrap("dashed", env, square.type.member("style")))

    link = model.make_edge(circle, square)
    link.set("weight", env.make_primitive(4))
    link.set("labels", bridge.wrap({"a": 1, "b": 2}, env, link.type.member("labels")))
    link.set("seen", bridge.wrap({"x"}, env, link.type.member("seen")))
    link.set("note", bridge.wrap(7, env, link.type.member("note")))

    model.make_edge(square, circle)
    model.graph.set("focus", square)
    return model
