from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

from plugsim.core.logger import get_logger
from plugsim.typesystem.environment import Environment
from plugsim.typesystem.types import IntersectionType, Type
from plugsim.typesystem.values import ObjectValue, Value, unbox

if TYPE_CHECKING:
    from plugsim.plugins.plugin import Plugin

logger = get_logger(__name__)


class Model:
    """
    A user-authored graph for one plugin.

    Owns the environment every value of the graph lives in, the graph value
    itself and the ordered node and edge lists.
    """

    def __init__(
        self,
        plugin: "Plugin",
        environment: Optional[Environment] = None,
        graph_uuid: Optional[str] = None,
    ):
        self.plugin = plugin
        self.environment = environment if environment is not None else Environment()
        self.graph: ObjectValue = self.environment.make(plugin.types.graph, graph_uuid)  # type: ignore[assignment]
        self.nodes: List[ObjectValue] = []
        self.edges: List[ObjectValue] = []

    def make_node(self, kind: Optional[str] = None, uuid: Optional[str] = None) -> ObjectValue:
        node_type = _kind_type(kind, self.plugin.types.node_types, "node")
        node: ObjectValue = self.environment.make(node_type, uuid)  # type: ignore[assignment]
        self.nodes.append(node)
        return node

    def make_edge(
        self,
        source: Optional[Value] = None,
        destination: Optional[Value] = None,
        kind: Optional[str] = None,
        uuid: Optional[str] = None,
    ) -> ObjectValue:
        edge_type = _kind_type(kind, self.plugin.types.edge_types, "edge")
        edge: ObjectValue = self.environment.make(edge_type, uuid)  # type: ignore[assignment]
        if source is not None:
            edge.set("source", source)
        if destination is not None:
            edge.set("destination", destination)
        self.edges.append(edge)
        return edge

    def delete(self, element: Value) -> None:
        """Remove a node (with every edge touching it) or an edge from the graph."""
        if any(element is n for n in self.nodes):
            self.nodes = [n for n in self.nodes if n is not element]
            self.edges = [e for e in self.edges if not _touches(e, element)]
        elif any(element is e for e in self.edges):
            self.edges = [e for e in self.edges if e is not element]
        else:
            raise ValueError(f"{element!r} is not an element of this model")

    def serialize(self) -> Dict[str, Any]:
        from plugsim.runtime.serialization import serialize_model

        return serialize_model(self)

    @classmethod
    def deserialize(cls, plugin: "Plugin", document: Dict[str, Any]) -> "Model":
        from plugsim.runtime.serialization import deserialize_model

        return deserialize_model(plugin, document)

    def __repr__(self) -> str:
        return f"<Model {self.plugin.name} nodes={len(self.nodes)} edges={len(self.edges)}>"


def kind_name(type_: Type) -> str:
    if isinstance(type_, IntersectionType) and type_.nominal is not None:
        return type_.nominal.name
    return getattr(type_, "name", type(type_).__name__)


def _kind_type(kind: Optional[str], kinds: Sequence[IntersectionType], what: str) -> IntersectionType:
    if kind is None:
        return kinds[0]
    for candidate in kinds:
        if kind_name(candidate) == kind:
            return candidate
    raise ValueError(f"no {what} kind named {kind!r} (known: {', '.join(kind_name(k) for k in kinds)})")


def _touches(edge: ObjectValue, node: Value) -> bool:
    return unbox(edge.get("source")) is node or unbox(edge.get("destination")) is node
