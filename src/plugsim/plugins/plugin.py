"""
A loaded plugin: its extracted type model, entry points and native bindings.

Node, edge and graph kinds declared by the plugin are augmented with the
members the runtime derives for every graph (``parents``/``children`` on
nodes, ``source``/``destination`` on edges, ``nodes``/``edges`` on the
graph). Each augmented kind is the intersection of the declared class and
a record of the derived members the class does not already declare.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import ModuleType
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Optional

from plugsim.bridge.natural import NaturalBridge
from plugsim.bridge.registry import NativeTypeRegistry
from plugsim.core.contracts import CompilationResult
from plugsim.core.exceptions import InvalidPluginSchema, PluginCompilationError, UnknownType
from plugsim.core.logger import get_logger
from plugsim.extraction.extractor import Signature, TypeExtractor
from plugsim.models.plugin_manifest import DEFAULT_DESCRIPTION, PluginManifest
from plugsim.models.runner_settings import RunnerSettings
from plugsim.typesystem.types import (
    BOOLEAN,
    ArrayType,
    CustomObjectType,
    IntersectionType,
    LiteralType,
    RecordType,
    Type,
    UnionType,
    describe,
    is_subtype,
    minimize_types,
    union_of,
)
from plugsim.typesystem.values import Value

if TYPE_CHECKING:
    from plugsim.runtime.model import Model
    from plugsim.runtime.program import Program

logger = get_logger(__name__)

REQUIRED_DECLARATIONS = ("Graph", "Nodes", "Edges", "State")
VALIDATE_EDGE_NAMES = ("validate_edge", "validateEdge")

_BOOLEAN_UNION = UnionType([LiteralType(True), LiteralType(False)])


def merge_result_types(state: Type, *returns: Type) -> Type:
    """
    Union of entry point return types with the State alternatives removed.

    ``Literal[True] | Literal[False]`` collapses to ``bool``.
    """
    flat: List[Type] = []
    for t in returns:
        flat.extend(t.types if isinstance(t, UnionType) else [t])
    kept = minimize_types(t for t in flat if not is_subtype(t, state))
    if len(kept) == 1:
        return kept[0]
    merged = UnionType(kept)
    if merged.equals(_BOOLEAN_UNION):
        return BOOLEAN
    return merged


def _is_object_type(t: Type) -> bool:
    if isinstance(t, UnionType):
        return bool(t.types) and all(_is_object_type(x) for x in t.types)
    return isinstance(t, (CustomObjectType, IntersectionType))


@dataclass
class PluginTypes:
    graph: IntersectionType
    nodes: Type
    edges: Type
    state: CustomObjectType
    arguments: List[Type]
    result: Type
    node_types: List[IntersectionType] = field(default_factory=list)
    edge_types: List[IntersectionType] = field(default_factory=list)

    def kind_names(self, kinds: Iterable[IntersectionType]) -> List[str]:
        return [k.nominal.name for k in kinds if k.nominal is not None]


class Plugin:
    """
    Validated plugin schema plus everything needed to run it.

    Construction either yields a complete plugin or raises; there is no
    partially initialized plugin.

    Example:
        >>> result = PythonCompiler().compile(source)
        >>> plugin = Plugin(result)
        >>> program = plugin.make_program(model)
    """

    def __init__(self, compilation: CompilationResult, manifest: Optional[PluginManifest] = None):
        if compilation.module is None:
            raise PluginCompilationError(compilation.file_name, compilation.diagnostics)
        self.compilation = compilation
        self.manifest = manifest
        self.implementation: ModuleType = compilation.module
        self.registry = NativeTypeRegistry()
        self.bridge = NaturalBridge(self.registry)
        self.extractor = TypeExtractor(
            compilation.module, self.bridge, self.registry, source=compilation.source
        )

        for name in REQUIRED_DECLARATIONS:
            if not self.extractor.has(name):
                raise InvalidPluginSchema(f'plugin must declare "{name}"')

        graph = self.extractor.lookup_type("Graph")
        if not isinstance(graph, CustomObjectType):
            raise InvalidPluginSchema(f"Graph must be an object type, got {describe(graph)}")
        state = self.extractor.lookup_type("State")
        if not isinstance(state, CustomObjectType):
            raise InvalidPluginSchema(f"State must be an object type, got {describe(state)}")

        start = self._single_signature("start")
        step = self._single_signature("step")
        if not start[0]:
            raise InvalidPluginSchema("start must take the graph as its first parameter")

        node_kinds = self._kinds("Nodes")
        edge_kinds = self._kinds("Edges")
        self.types = self._augment(
            graph,
            node_kinds,
            edge_kinds,
            state=state,
            arguments=start[0][1:],
            result=merge_result_types(state, start[1], step[1]),  # type: ignore[arg-type]
        )

        state_class = self.registry.constructor_for(state)
        if state_class is None:
            raise InvalidPluginSchema("State must be declared as a class")
        self.state_class: type = state_class
        self.validate_edge_hook: Optional[Callable[..., Any]] = self._validate_edge_hook()

        logger.info(
            f"Loaded plugin {self.name}: nodes={self.types.kind_names(self.types.node_types)} "
            f"edges={self.types.kind_names(self.types.edge_types)} "
            f"arguments=[{', '.join(describe(t) for t in self.types.arguments)}] "
            f"result={describe(self.types.result)}"
        )

    @property
    def name(self) -> str:
        if self.manifest is not None:
            return self.manifest.kind_path
        return self.compilation.file_name

    @property
    def description(self) -> str:
        if self.manifest is not None:
            return self.manifest.description
        return DEFAULT_DESCRIPTION

    # -- schema ----------------------------------------------------------------

    def _single_signature(self, name: str) -> Signature:
        signatures = self.extractor.function_signatures(name)
        if len(signatures) != 1:
            raise InvalidPluginSchema(f"don't overload the {name} function")
        return signatures[0]

    def _kinds(self, name: str) -> List[CustomObjectType]:
        declared = self.extractor.lookup_type(name)
        if isinstance(declared, UnionType):
            for t in declared.types:
                if not isinstance(t, CustomObjectType):
                    raise InvalidPluginSchema(f"All members of {name} must be classes")
            return list(declared.types)  # type: ignore[arg-type]
        if isinstance(declared, CustomObjectType):
            return [declared]
        raise InvalidPluginSchema(f"{name} must either be a class or a union of classes")

    def _augment(
        self,
        graph: CustomObjectType,
        node_kinds: List[CustomObjectType],
        edge_kinds: List[CustomObjectType],
        **rest: Any,
    ) -> PluginTypes:
        node_types = [IntersectionType([kind, RecordType()]) for kind in node_kinds]
        edge_types = [IntersectionType([kind, RecordType()]) for kind in edge_kinds]
        graph_type = IntersectionType([graph, RecordType()])
        nodes = union_of(node_types)
        edges = union_of(edge_types)

        for kind, drawable in zip(node_kinds, node_types):
            self._derived(kind, drawable, "parents", ArrayType(edges))
            self._derived(kind, drawable, "children", ArrayType(edges))
        for kind, drawable in zip(edge_kinds, edge_types):
            self._derived(kind, drawable, "source", nodes)
            self._derived(kind, drawable, "destination", nodes)
        self._derived(graph, graph_type, "nodes", ArrayType(nodes))
        self._derived(graph, graph_type, "edges", ArrayType(edges))

        for kind, drawable in zip([*node_kinds, *edge_kinds, graph], [*node_types, *edge_types, graph_type]):
            constructor = self.registry.constructor_for(kind)
            if constructor is not None:
                self.registry.bind_native(constructor, drawable)

        return PluginTypes(
            graph=graph_type,
            nodes=nodes,
            edges=edges,
            node_types=node_types,
            edge_types=edge_types,
            **rest,
        )

    @staticmethod
    def _derived(kind: CustomObjectType, drawable: IntersectionType, name: str, member_type: Type) -> None:
        declared = kind.members.get(name)
        if declared is None:
            record = drawable.types[-1]
            assert isinstance(record, RecordType)
            record.members[name] = member_type
            record.visibility[name] = False
            return
        if isinstance(member_type, ArrayType) and not isinstance(declared, ArrayType):
            raise InvalidPluginSchema(f"{kind.name}.{name} must be a list, got {describe(declared)}")
        if not isinstance(member_type, ArrayType) and not _is_object_type(declared):
            raise InvalidPluginSchema(f"{kind.name}.{name} must be an object type, got {describe(declared)}")

    def _validate_edge_hook(self) -> Optional[Callable[..., Any]]:
        for name in VALIDATE_EDGE_NAMES:
            hook = getattr(self.implementation, name, None)
            if hook is None:
                continue
            if not callable(hook):
                raise InvalidPluginSchema(f"{name} must be a function")
            return hook
        return None

    # -- operations --------------------------------------------------------------

    def lookup_object_type(self, name: str) -> Type:
        """Object type of a declaration; node, edge and graph kinds resolve to their augmented type."""
        for kind in [*self.types.node_types, *self.types.edge_types, self.types.graph]:
            if kind.nominal is not None and kind.nominal.name == name:
                return kind
        declared = self.extractor.lookup_type(name)
        if not isinstance(declared, (CustomObjectType, IntersectionType, RecordType)):
            raise UnknownType(name, "not an object type")
        return declared

    def make_program(self, model: "Model", settings: Optional[RunnerSettings] = None) -> "Program":
        from plugsim.runtime.program import Program

        return Program(model, self, settings)

    def validate_edge(
        self,
        source: Optional[Value] = None,
        destination: Optional[Value] = None,
        like: Optional[Value] = None,
    ) -> bool:
        """
        Ask the plugin whether an edge between ``source`` and ``destination`` is allowed.

        Always permitted when the plugin has no ``validate_edge`` hook. A hook
        that raises counts as a refusal.
        """
        if self.validate_edge_hook is None:
            return True
        natives = self.bridge.unwrap_all([source, destination, like])
        try:
            return bool(self.validate_edge_hook(*natives))
        except Exception as exc:
            logger.warning(f"validate_edge of plugin {self.name} raised {type(exc).__name__}: {exc}")
            return False

    def __repr__(self) -> str:
        return f"<Plugin {self.name}>"


def describe_plugin(plugin: Plugin) -> Dict[str, Any]:
    """Summary of a plugin's type model, used by ``plugsim inspect``."""

    def members(t: Type) -> Dict[str, Any]:
        result = {}
        for name, member_type in getattr(t, "members", {}).items():
            result[name] = {
                "type": describe(member_type),
                "label": t.pretty_names.get(name, name),  # type: ignore[attr-defined]
                "visible": t.visibility.get(name, True),  # type: ignore[attr-defined]
            }
        return result

    return {
        "kind": plugin.manifest.kind if plugin.manifest is not None else [],
        "description": plugin.description,
        "graph": members(plugin.types.graph),
        "nodes": {k.nominal.name: members(k) for k in plugin.types.node_types if k.nominal},
        "edges": {k.nominal.name: members(k) for k in plugin.types.edge_types if k.nominal},
        "state": members(plugin.types.state),
        "arguments": [describe(t) for t in plugin.types.arguments],
        "result": describe(plugin.types.result),
        "validate_edge": plugin.validate_edge_hook is not None,
    }
