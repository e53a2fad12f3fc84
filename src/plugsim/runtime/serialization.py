"""
The persisted interchange form of a model.

A document is an ordered list of elements ``{kind, type, uuid, data}``:
the graph first, then nodes, edges and finally any other nominal object
reachable from them. Nominal objects inside ``data`` are written as
``{"kind": "pointer", "uuid": ...}`` markers, so object identity and
cycles survive a round trip. Records, maps and sets use tagged forms;
arrays and tuples are plain lists. Adjacency the runner derives
(``children``/``parents`` on nodes, ``nodes``/``edges`` on the graph) is
never written.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional, Set

from plugsim.core.exceptions import TypeMismatch
from plugsim.core.logger import get_logger
from plugsim.models.serialized_model import SerializedModel
from plugsim.runtime.model import Model, kind_name
from plugsim.typesystem.environment import Environment, is_pointer
from plugsim.typesystem.types import (
    ArrayType,
    CustomObjectType,
    IntersectionType,
    LiteralType,
    MapType,
    PrimitiveType,
    RecordType,
    SetType,
    TupleType,
    Type,
    UnionType,
    describe,
    primitive_kind_of,
)
from plugsim.typesystem.values import (
    ArrayObject,
    CustomObjectValue,
    IntersectionValue,
    LiteralValue,
    MapObject,
    ObjectValue,
    PrimitiveValue,
    RecordValue,
    SetObject,
    TupleObject,
    Value,
    unbox,
)

if TYPE_CHECKING:
    from plugsim.plugins.plugin import Plugin

logger = get_logger(__name__)

RECORD_KIND = "record"
MAP_KIND = "map"
SET_KIND = "set"

DERIVED_MEMBERS: Dict[str, frozenset] = {
    "Graph": frozenset({"nodes", "edges"}),
    "Node": frozenset({"children", "parents"}),
}


class _Encoder:
    def __init__(self, environment: Environment, elements: List[Value]):
        self.environment = environment
        self.known: Set[str] = {e.uuid for e in elements}
        self.pending: List[ObjectValue] = []
        self._active: Set[int] = set()

    def element(self, kind: str, value: ObjectValue) -> Dict[str, Any]:
        skipped = DERIVED_MEMBERS.get(kind, frozenset())
        data: Dict[str, Any] = {}
        for name, member in value.items():
            if name in skipped or unbox(member) is None:
                continue
            data[name] = self.encode(member)
        return {"kind": kind, "type": kind_name(value.type), "uuid": value.uuid, "data": data}

    def encode(self, value: Optional[Value]) -> Any:
        value = unbox(value)
        if value is None:
            return None
        if isinstance(value, (PrimitiveValue, LiteralValue)):
            return value.value
        if isinstance(value, (CustomObjectValue, IntersectionValue)):
            if value.uuid not in self.known:
                self.known.add(value.uuid)
                self.pending.append(value)
            return self.environment.reference(value)

        # Anonymous values are written inline and must not contain themselves.
        if id(value) in self._active:
            raise TypeMismatch(f"cannot serialize a cycle through anonymous {describe(value.type)}")
        self._active.add(id(value))
        try:
            return self._composite(value)
        finally:
            self._active.discard(id(value))

    def _composite(self, value: Value) -> Any:
        if isinstance(value, RecordValue):
            data = {name: self.encode(m) for name, m in value.items() if unbox(m) is not None}
            return {"kind": RECORD_KIND, "data": data}
        if isinstance(value, (ArrayObject, TupleObject)):
            return [self.encode(item) for item in value]
        if isinstance(value, MapObject):
            return {"kind": MAP_KIND, "entries": [[self.encode(k), self.encode(v)] for k, v in value.items()]}
        if isinstance(value, SetObject):
            return {"kind": SET_KIND, "items": [self.encode(item) for item in value]}
        raise TypeMismatch(f"cannot serialize {value!r}")


def serialize_model(model: Model) -> Dict[str, Any]:
    roots: List[Value] = [model.graph, *model.nodes, *model.edges]
    encoder = _Encoder(model.environment, roots)
    elements = [encoder.element("Graph", model.graph)]
    elements.extend(encoder.element("Node", node) for node in model.nodes)
    elements.extend(encoder.element("Edge", edge) for edge in model.edges)
    while encoder.pending:
        elements.append(encoder.element("Object", encoder.pending.pop(0)))
    return {"elements": elements}


def encode_value(value: Optional[Value]) -> Any:
    """
    JSON form of a single value, for display.

    A nominal object is written with its own members inline; objects it
    refers to become pointers.
    """
    inner = unbox(value)
    if inner is None:
        return None
    encoder = _Encoder(inner.environment, [inner])
    if isinstance(inner, ObjectValue) and not isinstance(inner, RecordValue):
        return encoder.element("Object", inner)
    return encoder.encode(inner)


class _Decoder:
    def __init__(self, environment: Environment):
        self.environment = environment

    def decode(self, raw: Any, expected: Type) -> Optional[Value]:
        if raw is None:
            return None
        if is_pointer(raw):
            return self.environment.resolve(raw)
        if isinstance(expected, UnionType):
            return self.decode(raw, self._alternative(raw, expected))

        env = self.environment
        if isinstance(expected, PrimitiveType):
            return PrimitiveValue(expected, env, raw)
        if isinstance(expected, LiteralType):
            if primitive_kind_of(raw) != expected.kind or raw != expected.value:
                raise TypeMismatch(f"{raw!r} is not the literal {expected.value!r}")
            return LiteralValue(expected, env)
        if isinstance(expected, RecordType):
            record = RecordValue(expected, env)
            for name, item in _tagged(raw, RECORD_KIND, "data").items():
                record.set(name, self.decode(item, expected.member(name)))
            return record
        if isinstance(expected, ArrayType):
            array = ArrayObject(expected, env)
            for item in _list(raw):
                array.push(self.decode(item, expected.element))  # type: ignore[arg-type]
            return array
        if isinstance(expected, TupleType):
            items = _list(raw)
            if len(items) != len(expected.elements):
                raise TypeMismatch(f"expected {len(expected.elements)} tuple element(s), got {len(items)}")
            tuple_value = TupleObject(expected, env)
            for index, (item, slot_type) in enumerate(zip(items, expected.elements)):
                tuple_value.set(index, self.decode(item, slot_type))  # type: ignore[arg-type]
            return tuple_value
        if isinstance(expected, MapType):
            mapping = MapObject(expected, env)
            for key, item in _tagged(raw, MAP_KIND, "entries"):
                mapping.set(self.decode(key, expected.key), self.decode(item, expected.value))  # type: ignore[arg-type]
            return mapping
        if isinstance(expected, SetType):
            members = SetObject(expected, env)
            for item in _tagged(raw, SET_KIND, "items"):
                members.add(self.decode(item, expected.element))  # type: ignore[arg-type]
            return members
        raise TypeMismatch(f"cannot read {raw!r} as {describe(expected)}")

    def _alternative(self, raw: Any, union: UnionType) -> Type:
        for alternative in union.types:
            if _shape_matches(raw, alternative):
                return alternative
        raise TypeMismatch(f"{raw!r} matches no alternative of {describe(union)}")


def _shape_matches(raw: Any, expected: Type) -> bool:
    kind = primitive_kind_of(raw)
    if isinstance(expected, PrimitiveType):
        return kind == expected.kind
    if isinstance(expected, LiteralType):
        return kind == expected.kind and raw == expected.value
    if isinstance(raw, list):
        if isinstance(expected, TupleType):
            return len(raw) == len(expected.elements)
        return isinstance(expected, ArrayType)
    if isinstance(raw, dict):
        tag = raw.get("kind")
        return (
            (tag == RECORD_KIND and isinstance(expected, RecordType))
            or (tag == MAP_KIND and isinstance(expected, MapType))
            or (tag == SET_KIND and isinstance(expected, SetType))
        )
    return False


def _tagged(raw: Any, kind: str, key: str) -> Any:
    if not isinstance(raw, dict) or raw.get("kind") != kind or key not in raw:
        raise TypeMismatch(f"expected a tagged {kind}, got {raw!r}")
    return raw[key]


def _list(raw: Any) -> List[Any]:
    if not isinstance(raw, list):
        raise TypeMismatch(f"expected a list, got {raw!r}")
    return raw


def deserialize_model(plugin: "Plugin", document: Dict[str, Any]) -> Model:
    """
    Rebuild a model from its interchange form.

    Elements are created first, with their persisted ids, so that pointers
    in any element's data can be resolved regardless of document order.
    """
    parsed = SerializedModel.model_validate(document)
    environment = Environment()
    graph_element = next(e for e in parsed.elements if e.kind == "Graph")
    model = Model(plugin, environment, graph_uuid=graph_element.uuid)

    created: List[ObjectValue] = []
    for element in parsed.elements:
        if element.kind == "Graph":
            created.append(model.graph)
        elif element.kind == "Node":
            created.append(model.make_node(element.type, element.uuid))
        elif element.kind == "Edge":
            created.append(model.make_edge(kind=element.type, uuid=element.uuid))
        else:
            object_type = plugin.lookup_object_type(element.type)
            if not isinstance(object_type, (CustomObjectType, IntersectionType)):
                raise TypeMismatch(f"element {element.uuid} has non-nominal type {element.type}")
            created.append(environment.make(object_type, element.uuid))  # type: ignore[arg-type]

    decoder = _Decoder(environment)
    for element, value in zip(parsed.elements, created):
        if not isinstance(element.data, dict):
            raise TypeMismatch(f"data of element {element.uuid} must be an object")
        for name, raw in element.data.items():
            value.set(name, decoder.decode(raw, value.type.member(name)))  # type: ignore[attr-defined]

    logger.debug(
        f"Deserialized model with {len(model.nodes)} node(s), {len(model.edges)} edge(s) "
        f"and {len(parsed.elements) - 1 - len(model.nodes) - len(model.edges)} other object(s)"
    )
    return model
