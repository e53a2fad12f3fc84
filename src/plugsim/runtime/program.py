"""
Program runner.

A program binds a model to its plugin, derives the graph adjacency once,
and drives the plugin's ``start``/``step`` entry points::

    Created -> Stepping* -> Terminated (result) | Failed (error + partial trace)

Exceptions raised by plugin code never escape ``run``; they come back as an
error record ``{kind, message, stack}`` next to the trace collected so far.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Any, List, Optional, Sequence

from plugsim.core.contracts import RunResult
from plugsim.core.exceptions import (
    ArgumentTypeMismatch,
    ArityMismatch,
    NoMatchingResultType,
    PluginRuntimeFailure,
    TypeMismatch,
)
from plugsim.core.logger import get_logger, push_run_id, reset_run_id
from plugsim.models.runner_settings import RunnerSettings
from plugsim.runtime.model import Model
from plugsim.typesystem.environment import Environment
from plugsim.typesystem.types import (
    STRING,
    ArrayType,
    LiteralType,
    MapType,
    PrimitiveType,
    RecordType,
    SetType,
    TupleType,
    Type,
    UnionType,
    describe,
    is_subtype,
)
from plugsim.typesystem.values import ObjectValue, RecordValue, Value, unbox

if TYPE_CHECKING:
    from plugsim.plugins.plugin import Plugin

logger = get_logger(__name__)

ERROR_TYPE = RecordType({"kind": STRING, "message": STRING, "stack": STRING})
STEP_LIMIT_EXCEEDED = "StepLimitExceeded"


def error_value(environment: Environment, kind: str, message: str, stack: str = "") -> RecordValue:
    record: RecordValue = environment.make(ERROR_TYPE)  # type: ignore[assignment]
    record.set("kind", environment.make_primitive(kind))
    record.set("message", environment.make_primitive(message))
    record.set("stack", environment.make_primitive(stack))
    return record


def placeholder(t: Optional[Type], _depth: int = 0) -> Any:
    """A minimal natural value of ``t``; used to smoke-test ``start``."""
    if t is None or _depth > 8:
        return None
    if isinstance(t, PrimitiveType):
        return t.default()
    if isinstance(t, LiteralType):
        return t.value
    if isinstance(t, UnionType):
        return placeholder(t.types[0], _depth + 1) if t.types else None
    if isinstance(t, ArrayType):
        return []
    if isinstance(t, TupleType):
        return tuple(placeholder(e, _depth + 1) for e in t.elements)
    if isinstance(t, MapType):
        return {}
    if isinstance(t, SetType):
        return set()
    if isinstance(t, RecordType):
        return {name: placeholder(m, _depth + 1) for name, m in t.members.items()}
    return None


class Program:
    def __init__(self, model: Model, plugin: "Plugin", settings: Optional[RunnerSettings] = None):
        self.model = model
        self.plugin = plugin
        self.settings = settings or RunnerSettings()
        self.environment = model.environment
        self._derive_adjacency()

    def _derive_adjacency(self) -> None:
        env = self.environment
        graph = self.model.graph
        nodes = env.make(graph.type.member("nodes"))  # type: ignore[attr-defined]
        edges = env.make(graph.type.member("edges"))  # type: ignore[attr-defined]

        for node in self.model.nodes:
            nodes.push(node)  # type: ignore[attr-defined]
            node.set("children", env.make(node.type.member("children")))  # type: ignore[attr-defined]
            node.set("parents", env.make(node.type.member("parents")))  # type: ignore[attr-defined]

        for edge in self.model.edges:
            edges.push(edge)  # type: ignore[attr-defined]
            source = unbox(edge.get("source"))
            if isinstance(source, ObjectValue):
                unbox(source.get("children")).push(edge)  # type: ignore[union-attr]
            destination = unbox(edge.get("destination"))
            if isinstance(destination, ObjectValue):
                unbox(destination.get("parents")).push(edge)  # type: ignore[union-attr]

        graph.set("nodes", nodes)
        graph.set("edges", edges)

    # -- run -------------------------------------------------------------------

    def run(self, arguments: Sequence[Value]) -> RunResult:
        """
        Run the plugin on the model.

        Raises:
            ArityMismatch: wrong number of arguments.
            ArgumentTypeMismatch: an argument is not a subtype of its parameter type.
            NoMatchingResultType: the terminal value fits no result alternative.
        """
        expected = self.plugin.types.arguments
        if len(arguments) != len(expected):
            raise ArityMismatch(len(expected), len(arguments))
        for index, (argument, parameter_type) in enumerate(zip(arguments, expected)):
            inner = unbox(argument)
            if inner is None or not is_subtype(inner.type, parameter_type):
                received = describe(inner.type) if inner is not None else "unset"
                raise ArgumentTypeMismatch(index, describe(parameter_type), received)

        run_id = uuid.uuid4().hex[:12]
        token = push_run_id(run_id)
        try:
            logger.info(f"Starting run of {self.plugin.name} with {len(arguments)} argument(s)")
            result = self._run(arguments, RunResult(run_id=run_id))
            if result.failed:
                logger.info(f"Run failed after {len(result.steps)} step(s)")
            else:
                logger.info(f"Run finished after {len(result.steps)} step(s): {describe(unbox(result.result).type)}")  # type: ignore[union-attr]
            return result
        finally:
            reset_run_id(token)

    def _run(self, arguments: Sequence[Value], result: RunResult) -> RunResult:
        bridge = self.plugin.bridge
        implementation = self.plugin.implementation
        state_class = self.plugin.state_class
        max_steps = self.settings.max_steps

        natural_graph, *natural_arguments = bridge.unwrap_all([self.model.graph, *arguments])
        try:
            state = implementation.start(natural_graph, *natural_arguments)
        except Exception as exc:
            return self._fail(result, exc)

        while isinstance(state, state_class):
            result.steps.append(bridge.wrap(state, self.environment, self.plugin.types.state))
            if max_steps is not None and len(result.steps) > max_steps:
                message = f"run exceeded the limit of {max_steps} step(s)"
                logger.warning(message)
                result.error = error_value(self.environment, STEP_LIMIT_EXCEEDED, message)
                return result
            try:
                state = implementation.step(state)
            except Exception as exc:
                return self._fail(result, exc)

        result.result = self._result_value(state)
        return result

    def _result_value(self, native: Any) -> Value:
        result_type = self.plugin.types.result
        try:
            return unbox(self.plugin.bridge.wrap(native, self.environment, result_type))  # type: ignore[return-value]
        except TypeMismatch as exc:
            raise NoMatchingResultType(
                f"{type(native).__name__} result matches none of {describe(result_type)}"
            ) from exc

    def _fail(self, result: RunResult, exc: Exception) -> RunResult:
        failure = PluginRuntimeFailure.from_exception(exc)
        logger.warning(f"Plugin raised after {len(result.steps)} step(s): {failure}")
        result.error = error_value(self.environment, failure.error_kind, failure.message, failure.stack)
        return result

    # -- validation --------------------------------------------------------------

    def validate(self) -> Optional[Value]:
        """Smoke-test the graph by calling ``start`` with placeholder arguments."""
        natural_graph = self.plugin.bridge.unwrap(self.model.graph)
        placeholders: List[Any] = [placeholder(t) for t in self.plugin.types.arguments]
        try:
            self.plugin.implementation.start(natural_graph, *placeholders)
        except Exception as exc:
            failure = PluginRuntimeFailure.from_exception(exc)
            logger.info(f"Validation of {self.plugin.name} failed: {failure}")
            return error_value(self.environment, failure.error_kind, failure.message, failure.stack)
        return None

    def validate_edge(
        self,
        source: Optional[Value] = None,
        destination: Optional[Value] = None,
        like: Optional[Value] = None,
    ) -> bool:
        return self.plugin.validate_edge(source, destination, like)

    def __repr__(self) -> str:
        return f"<Program {self.plugin.name} nodes={len(self.model.nodes)} edges={len(self.model.edges)}>"
