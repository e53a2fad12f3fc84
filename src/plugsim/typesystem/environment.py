from __future__ import annotations

from typing import Any, Dict, Iterator, Mapping, Optional

from plugsim.core.exceptions import DanglingReference, TypeMismatch
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
    PrimitiveValue,
    RecordValue,
    SetObject,
    TupleObject,
    UnionValue,
    Value,
)

POINTER_KIND = "pointer"


class Environment:
    """
    Registry owning every value created for one model.

    Values register themselves on construction; ids are unique within an
    environment. Not safe for concurrent mutation.
    """

    def __init__(self) -> None:
        self.values: Dict[str, Value] = {}

    def add(self, value: Value) -> None:
        if value.uuid in self.values:
            raise ValueError(f"value {value.uuid} is already registered in this environment")
        self.values[value.uuid] = value

    def mark(self) -> int:
        """A checkpoint for ``rollback``: the number of values registered so far."""
        return len(self.values)

    def rollback(self, mark: int) -> None:
        """Forget every value registered after ``mark``."""
        for uuid in list(self.values)[mark:]:
            del self.values[uuid]

    def get(self, uuid: str) -> Optional[Value]:
        return self.values.get(uuid)

    def __contains__(self, value: object) -> bool:
        return isinstance(value, Value) and self.values.get(value.uuid) is value

    def __iter__(self) -> Iterator[Value]:
        return iter(list(self.values.values()))

    def __len__(self) -> int:
        return len(self.values)

    def make(self, type_: Type, uuid: Optional[str] = None) -> Value:
        """Create a default value of ``type_``."""
        if isinstance(type_, PrimitiveType):
            return PrimitiveValue(type_, self, uuid=uuid)
        if isinstance(type_, LiteralType):
            return LiteralValue(type_, self, uuid)
        if isinstance(type_, UnionType):
            return UnionValue(type_, self, uuid)
        if isinstance(type_, CustomObjectType):
            return CustomObjectValue(type_, self, uuid)
        if isinstance(type_, IntersectionType):
            return IntersectionValue(type_, self, uuid)
        if isinstance(type_, RecordType):
            return RecordValue(type_, self, uuid)
        if isinstance(type_, ArrayType):
            return ArrayObject(type_, self, uuid)
        if isinstance(type_, MapType):
            return MapObject(type_, self, uuid)
        if isinstance(type_, SetType):
            return SetObject(type_, self, uuid)
        if isinstance(type_, TupleType):
            return TupleObject(type_, self, uuid)
        raise TypeMismatch(f"cannot make a value of {describe(type_)}")

    def make_primitive(self, native: Any) -> PrimitiveValue:
        kind = primitive_kind_of(native)
        if kind is None:
            raise TypeMismatch(f"{native!r} is not a primitive")
        return PrimitiveValue(PrimitiveType(kind), self, native)

    def reference(self, value: Value) -> Dict[str, str]:
        if value not in self:
            raise DanglingReference(value.uuid)
        return {"kind": POINTER_KIND, "uuid": value.uuid}

    def resolve(self, pointer: Mapping[str, Any]) -> Value:
        if pointer.get("kind") != POINTER_KIND:
            raise ValueError(f"not a pointer: {pointer!r}")
        value = self.values.get(pointer["uuid"])
        if value is None:
            raise DanglingReference(pointer["uuid"])
        return value


def is_pointer(data: Any) -> bool:
    return isinstance(data, Mapping) and data.get("kind") == POINTER_KIND and "uuid" in data
