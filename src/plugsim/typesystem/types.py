"""
The type model.

Types are plain objects. Nominal types (``CustomObjectType``) and the
container/combinator types compare by identity; use ``equals`` for
structural comparison. Primitive and literal types compare by value so
``PrimitiveType("string") == STRING``.

Container parameters (``ArrayType.element`` and friends) may be ``None``
for a short while during extraction, until a deferred fix-up binds them.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple

PRIMITIVE_KINDS: Tuple[str, ...] = ("string", "number", "boolean")

_DEFAULTS: Dict[str, Any] = {"string": "", "number": 0, "boolean": False}

Implementation = Callable[[Any, List[Any]], Any]


def primitive_kind_of(native: Any) -> Optional[str]:
    """Return the primitive kind a native scalar belongs to, or None."""
    if isinstance(native, bool):
        return "boolean"
    if isinstance(native, (int, float)):
        return "number"
    if isinstance(native, str):
        return "string"
    return None


class Type:
    """Base class of every type in the model."""

    def equals(self, other: "Type") -> bool:
        return _equals(self, other, frozenset())

    def __str__(self) -> str:
        return describe(self)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {describe(self)}>"


class PrimitiveType(Type):
    __slots__ = ("kind",)

    def __init__(self, kind: str):
        if kind not in PRIMITIVE_KINDS:
            raise ValueError(f"unknown primitive kind {kind!r}")
        self.kind = kind

    def default(self) -> Any:
        return _DEFAULTS[self.kind]

    def __eq__(self, other: object) -> bool:
        return isinstance(other, PrimitiveType) and other.kind == self.kind

    def __hash__(self) -> int:
        return hash(("primitive", self.kind))


STRING = PrimitiveType("string")
NUMBER = PrimitiveType("number")
BOOLEAN = PrimitiveType("boolean")


class LiteralType(Type):
    __slots__ = ("value", "kind")

    def __init__(self, value: Any):
        kind = primitive_kind_of(value)
        if kind is None:
            raise ValueError(f"literal types hold strings, numbers or booleans, not {value!r}")
        self.value = value
        self.kind = kind

    @property
    def primitive(self) -> PrimitiveType:
        return PrimitiveType(self.kind)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, LiteralType) and other.kind == self.kind and other.value == self.value

    def __hash__(self) -> int:
        return hash(("literal", self.kind, self.value))


class MethodSignature:
    """
    Signature of a method or getter on a nominal type.

    The body is never stored here. ``implementation`` is a hook that is
    handed the receiver value and the argument values; the extractor wires
    it to the bridge so the call runs against the native object.
    """

    def __init__(
        self,
        arg_types: Sequence[Type],
        return_type: Optional[Type],
        is_getter: bool = False,
        implementation: Optional[Implementation] = None,
    ):
        self.arg_types: List[Type] = list(arg_types)
        self.return_type = return_type
        self.is_getter = is_getter
        self.implementation = implementation

    def invoke(self, receiver: Any, args: Sequence[Any] = ()) -> Any:
        if self.implementation is None:
            raise TypeError("method signature has no invocation hook bound")
        return self.implementation(receiver, list(args))


class ObjectType(Type):
    """Common shape of nominal objects and records."""

    def __init__(
        self,
        members: Optional[Dict[str, Type]] = None,
        pretty_names: Optional[Dict[str, str]] = None,
        visibility: Optional[Dict[str, bool]] = None,
    ):
        self.members: Dict[str, Type] = members if members is not None else {}
        self.pretty_names: Dict[str, str] = pretty_names if pretty_names is not None else {}
        self.visibility: Dict[str, bool] = visibility if visibility is not None else {}

    def member(self, name: str) -> Type:
        try:
            return self.members[name]
        except KeyError as exc:
            raise KeyError(f"{describe(self)} has no member {name!r}") from exc

    def is_visible(self, name: str) -> bool:
        return self.visibility.get(name, True)

    def pretty_name(self, name: str) -> str:
        return self.pretty_names.get(name, name)


class CustomObjectType(ObjectType):
    """A nominal object type, usually a class declared by a plugin."""

    def __init__(
        self,
        name: str,
        super_type: Optional["CustomObjectType"] = None,
        members: Optional[Dict[str, Type]] = None,
        methods: Optional[Dict[str, MethodSignature]] = None,
        pretty_names: Optional[Dict[str, str]] = None,
        visibility: Optional[Dict[str, bool]] = None,
    ):
        super().__init__(members, pretty_names, visibility)
        self.name = name
        self.super_type = super_type
        self.methods: Dict[str, MethodSignature] = methods if methods is not None else {}

    def ancestry(self) -> Iterable["CustomObjectType"]:
        current: Optional[CustomObjectType] = self
        seen = set()
        while current is not None and id(current) not in seen:
            seen.add(id(current))
            yield current
            current = current.super_type

    def method(self, name: str) -> MethodSignature:
        for t in self.ancestry():
            if name in t.methods:
                return t.methods[name]
        raise KeyError(f"{self.name} has no method {name!r}")


class RecordType(ObjectType):
    """An anonymous structural object shape."""

    pass


def _flatten(types: Iterable[Type], kind: type) -> List[Type]:
    flat: List[Type] = []
    for t in types:
        if isinstance(t, kind):
            flat.extend(t.types)  # type: ignore[attr-defined]
        else:
            flat.append(t)
    unique: List[Type] = []
    for t in flat:
        if not any(t is u or t == u for u in unique):
            unique.append(t)
    return unique


class UnionType(Type):
    """A union; the alternatives keep declaration order and never nest."""

    def __init__(self, types: Iterable[Type]):
        self.types: Tuple[Type, ...] = tuple(_flatten(types, UnionType))


class IntersectionType(Type):
    def __init__(self, types: Iterable[Type]):
        self.types: Tuple[Type, ...] = tuple(_flatten(types, IntersectionType))

    def _object_parts(self) -> List[ObjectType]:
        return [t for t in self.types if isinstance(t, ObjectType)]

    @property
    def members(self) -> Dict[str, Type]:
        merged: Dict[str, Type] = {}
        for part in self._object_parts():
            for name, member_type in part.members.items():
                merged.setdefault(name, member_type)
        return merged

    @property
    def pretty_names(self) -> Dict[str, str]:
        merged: Dict[str, str] = {}
        for part in self._object_parts():
            for name, pretty in part.pretty_names.items():
                merged.setdefault(name, pretty)
        return merged

    @property
    def visibility(self) -> Dict[str, bool]:
        merged: Dict[str, bool] = {}
        for part in self._object_parts():
            for name, visible in part.visibility.items():
                merged[name] = merged.get(name, True) and visible
        return merged

    @property
    def nominal(self) -> Optional[CustomObjectType]:
        for t in self.types:
            if isinstance(t, CustomObjectType):
                return t
        return None

    def member(self, name: str) -> Type:
        try:
            return self.members[name]
        except KeyError as exc:
            raise KeyError(f"{describe(self)} has no member {name!r}") from exc

    def method(self, name: str) -> MethodSignature:
        for t in self.types:
            if isinstance(t, CustomObjectType):
                try:
                    return t.method(name)
                except KeyError:
                    continue
        raise KeyError(f"{describe(self)} has no method {name!r}")


class ArrayType(Type):
    def __init__(self, element: Optional[Type]):
        self.element = element


class MapType(Type):
    def __init__(self, key: Optional[Type], value: Optional[Type]):
        self.key = key
        self.value = value


class SetType(Type):
    def __init__(self, element: Optional[Type]):
        self.element = element


class TupleType(Type):
    def __init__(self, elements: Iterable[Type] = ()):
        self.elements: List[Type] = list(elements)


# ---------------------------------------------------------------------------
# Relations
# ---------------------------------------------------------------------------

def is_subtype(a: Type, b: Type) -> bool:
    """True when every value of ``a`` is acceptable where ``b`` is expected."""
    return _is_subtype(a, b, frozenset())


def _is_subtype(a: Optional[Type], b: Optional[Type], assumed: FrozenSet[Tuple[int, int]]) -> bool:
    if a is b or (a is not None and a == b):
        return True
    if a is None or b is None:
        return False
    key = (id(a), id(b))
    if key in assumed:
        return True
    assumed = assumed | {key}

    if isinstance(a, UnionType):
        return all(_is_subtype(t, b, assumed) for t in a.types)
    if isinstance(b, UnionType):
        return any(_is_subtype(a, t, assumed) for t in b.types)
    if isinstance(b, IntersectionType):
        return all(_is_subtype(a, t, assumed) for t in b.types)
    if isinstance(a, IntersectionType):
        if any(_is_subtype(t, b, assumed) for t in a.types):
            return True
        if isinstance(b, RecordType):
            return _covers(a.members, b.members, assumed)
        return False

    if isinstance(b, PrimitiveType):
        return isinstance(a, LiteralType) and a.kind == b.kind
    if isinstance(b, LiteralType):
        return False
    if isinstance(b, CustomObjectType):
        return isinstance(a, CustomObjectType) and any(t is b for t in a.ancestry())
    if isinstance(b, RecordType):
        return isinstance(a, ObjectType) and _covers(a.members, b.members, assumed)
    if isinstance(b, ArrayType):
        return isinstance(a, ArrayType) and _is_subtype(a.element, b.element, assumed)
    if isinstance(b, SetType):
        return isinstance(a, SetType) and _is_subtype(a.element, b.element, assumed)
    if isinstance(b, MapType):
        return (
            isinstance(a, MapType)
            and _is_subtype(a.key, b.key, assumed)
            and _is_subtype(a.value, b.value, assumed)
        )
    if isinstance(b, TupleType):
        return (
            isinstance(a, TupleType)
            and len(a.elements) == len(b.elements)
            and all(_is_subtype(x, y, assumed) for x, y in zip(a.elements, b.elements))
        )
    return False


def _covers(have: Dict[str, Type], want: Dict[str, Type], assumed: FrozenSet[Tuple[int, int]]) -> bool:
    return all(name in have and _is_subtype(have[name], t, assumed) for name, t in want.items())


def _equals(a: Optional[Type], b: Optional[Type], assumed: FrozenSet[Tuple[int, int]]) -> bool:
    if a is b:
        return True
    if a is None or b is None or type(a) is not type(b):
        return False
    if isinstance(a, (PrimitiveType, LiteralType)):
        return a == b
    if isinstance(a, CustomObjectType):
        return False
    key = (id(a), id(b))
    if key in assumed:
        return True
    assumed = assumed | {key}

    if isinstance(a, RecordType):
        assert isinstance(b, RecordType)
        return a.members.keys() == b.members.keys() and all(
            _equals(t, b.members[name], assumed) for name, t in a.members.items()
        )
    if isinstance(a, (UnionType, IntersectionType)):
        other = b.types  # type: ignore[union-attr]
        return len(a.types) == len(other) and all(
            any(_equals(x, y, assumed) for y in other) for x in a.types
        )
    if isinstance(a, (ArrayType, SetType)):
        return _equals(a.element, b.element, assumed)  # type: ignore[union-attr]
    if isinstance(a, MapType):
        assert isinstance(b, MapType)
        return _equals(a.key, b.key, assumed) and _equals(a.value, b.value, assumed)
    if isinstance(a, TupleType):
        assert isinstance(b, TupleType)
        return len(a.elements) == len(b.elements) and all(
            _equals(x, y, assumed) for x, y in zip(a.elements, b.elements)
        )
    return False


def unique_types(types: Iterable[Type]) -> List[Type]:
    """Drop structurally equal duplicates, keeping first occurrences."""
    unique: List[Type] = []
    for t in types:
        if not any(t.equals(u) for u in unique):
            unique.append(t)
    return unique


def minimize_types(types: Iterable[Type]) -> List[Type]:
    """Drop every alternative that is a subtype of another one."""
    kept: List[Type] = []
    for t in types:
        if any(is_subtype(t, k) for k in kept):
            continue
        kept = [k for k in kept if not is_subtype(k, t)]
        kept.append(t)
    return kept


def union_of(types: Iterable[Type]) -> Type:
    """A union of the given types, or the type itself when only one remains."""
    unique = unique_types(types)
    if len(unique) == 1:
        return unique[0]
    return UnionType(unique)


def describe(t: Optional[Type], _seen: Optional[FrozenSet[int]] = None) -> str:
    """Readable rendering of a type; cycles through anonymous types print as ``...``."""
    if t is None:
        return "?"
    if isinstance(t, PrimitiveType):
        return t.kind
    if isinstance(t, LiteralType):
        return repr(t.value)
    if isinstance(t, CustomObjectType):
        return t.name
    seen = _seen or frozenset()
    if id(t) in seen:
        return "..."
    seen = seen | {id(t)}
    if isinstance(t, UnionType):
        return " | ".join(describe(x, seen) for x in t.types) or "never"
    if isinstance(t, IntersectionType):
        return " & ".join(describe(x, seen) for x in t.types)
    if isinstance(t, RecordType):
        inner = ", ".join(f"{name}: {describe(m, seen)}" for name, m in t.members.items())
        return "{" + inner + "}"
    if isinstance(t, ArrayType):
        return f"list[{describe(t.element, seen)}]"
    if isinstance(t, SetType):
        return f"set[{describe(t.element, seen)}]"
    if isinstance(t, MapType):
        return f"dict[{describe(t.key, seen)}, {describe(t.value, seen)}]"
    if isinstance(t, TupleType):
        return "tuple[" + ", ".join(describe(x, seen) for x in t.elements) + "]"
    return type(t).__name__
