"""
Runtime values.

A value is a mutable, typed container owned by exactly one environment.
Slots declared with a union type (object members, container elements,
tuple slots) always hold a ``UnionValue`` box; ``fit`` does the boxing and
the type check for every assignment.
"""

from __future__ import annotations

import uuid as uuidlib
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Optional, Tuple

from plugsim.core.exceptions import TypeMismatch
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
    is_subtype,
    primitive_kind_of,
)

if TYPE_CHECKING:
    from plugsim.typesystem.environment import Environment


class Value:
    def __init__(self, type_: Type, environment: "Environment", uuid: Optional[str] = None):
        self.type = type_
        self.environment = environment
        self.uuid = uuid or str(uuidlib.uuid4())
        environment.add(self)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {describe(self.type)} {self.uuid[:8]}>"


def unbox(value: Optional[Value]) -> Optional[Value]:
    """Strip union boxes, returning the active alternative (or None when unset)."""
    while isinstance(value, UnionValue):
        value = value.value
    return value


def fit(value: Optional[Value], slot_type: Type, environment: "Environment") -> Optional[Value]:
    """Check ``value`` against a slot type, boxing it when the slot is a union."""
    if isinstance(slot_type, UnionType):
        if isinstance(value, UnionValue) and value.type is slot_type:
            return value
        box = UnionValue(slot_type, environment)
        box.value = value
        return box
    inner = unbox(value)
    if inner is None:
        return None
    if not is_subtype(inner.type, slot_type):
        raise TypeMismatch(f"{describe(inner.type)} is not assignable to {describe(slot_type)}")
    return inner


def _slot_default(slot_type: Type, environment: "Environment") -> Optional[Value]:
    if isinstance(slot_type, (CustomObjectType, IntersectionType)):
        return None
    return environment.make(slot_type)


class PrimitiveValue(Value):
    def __init__(
        self,
        type_: PrimitiveType,
        environment: "Environment",
        value: Any = None,
        uuid: Optional[str] = None,
    ):
        super().__init__(type_, environment, uuid)
        self._value = type_.default()
        if value is not None:
            self.value = value

    @property
    def value(self) -> Any:
        return self._value

    @value.setter
    def value(self, native: Any) -> None:
        if primitive_kind_of(native) != self.type.kind:  # type: ignore[attr-defined]
            raise TypeMismatch(f"{native!r} is not a {self.type.kind}")  # type: ignore[attr-defined]
        self._value = native


class LiteralValue(Value):
    def __init__(self, type_: LiteralType, environment: "Environment", uuid: Optional[str] = None):
        super().__init__(type_, environment, uuid)

    @property
    def value(self) -> Any:
        return self.type.value  # type: ignore[attr-defined]


class UnionValue(Value):
    """A union slot; holds at most one active alternative, or nothing while unset."""

    def __init__(self, type_: UnionType, environment: "Environment", uuid: Optional[str] = None):
        super().__init__(type_, environment, uuid)
        self._value: Optional[Value] = None

    @property
    def value(self) -> Optional[Value]:
        return self._value

    @value.setter
    def value(self, value: Optional[Value]) -> None:
        inner = unbox(value)
        if inner is not None and self.active_type_of(inner) is None:
            raise TypeMismatch(f"{describe(inner.type)} is not an alternative of {describe(self.type)}")
        self._value = inner

    def active_type_of(self, value: Value) -> Optional[Type]:
        for alternative in self.type.types:  # type: ignore[attr-defined]
            if is_subtype(value.type, alternative):
                return alternative
        return None

    @property
    def active_type(self) -> Optional[Type]:
        return None if self._value is None else self.active_type_of(self._value)


class ObjectValue(Value):
    """Shared behavior of nominal objects, intersections and records."""

    def __init__(self, type_: Type, environment: "Environment", uuid: Optional[str] = None):
        super().__init__(type_, environment, uuid)
        self._members: Dict[str, Optional[Value]] = {}
        for name, member_type in type_.members.items():  # type: ignore[attr-defined]
            self._members[name] = _slot_default(member_type, environment)

    def get(self, name: str) -> Optional[Value]:
        self.type.member(name)  # type: ignore[attr-defined]
        return self._members.get(name)

    def set(self, name: str, value: Optional[Value]) -> None:
        member_type = self.type.member(name)  # type: ignore[attr-defined]
        self._members[name] = fit(value, member_type, self.environment)

    def items(self) -> Iterator[Tuple[str, Optional[Value]]]:
        for name in self.type.members:  # type: ignore[attr-defined]
            yield name, self._members.get(name)

    @property
    def members(self) -> Dict[str, Optional[Value]]:
        return dict(self.items())


class _MethodsMixin:
    type: Any

    def call(self, name: str, *args: Value) -> Optional[Value]:
        signature = self.type.method(name)
        if signature.is_getter:
            raise TypeError(f"{name!r} is a getter, use call_getter()")
        if len(args) != len(signature.arg_types):
            raise TypeError(f"{name}() takes {len(signature.arg_types)} argument(s), got {len(args)}")
        for index, (arg, expected) in enumerate(zip(args, signature.arg_types)):
            if not is_subtype(arg.type, expected):
                raise TypeMismatch(
                    f"argument {index} of {name}() must be {describe(expected)}, got {describe(arg.type)}"
                )
        return signature.invoke(self, args)

    def call_getter(self, name: str) -> Value:
        signature = self.type.method(name)
        if not signature.is_getter:
            raise TypeError(f"{name!r} is a method, use call()")
        return signature.invoke(self, ())


class CustomObjectValue(_MethodsMixin, ObjectValue):
    pass


class IntersectionValue(_MethodsMixin, ObjectValue):
    pass


class RecordValue(ObjectValue):
    pass


def _same_key(a: Optional[Value], b: Optional[Value]) -> bool:
    a, b = unbox(a), unbox(b)
    if isinstance(a, (PrimitiveValue, LiteralValue)) and isinstance(b, (PrimitiveValue, LiteralValue)):
        return primitive_kind_of(a.value) == primitive_kind_of(b.value) and a.value == b.value
    return a is b


class ArrayObject(Value):
    def __init__(self, type_: ArrayType, environment: "Environment", uuid: Optional[str] = None):
        super().__init__(type_, environment, uuid)
        self._items: List[Optional[Value]] = []

    def push(self, value: Value) -> None:
        self._items.append(fit(value, self.type.element, self.environment))  # type: ignore[attr-defined]

    def set(self, index: int, value: Value) -> None:
        self._items[index] = fit(value, self.type.element, self.environment)  # type: ignore[attr-defined]

    def remove(self, value: Value) -> None:
        target = unbox(value)
        self._items = [item for item in self._items if unbox(item) is not target]

    def __getitem__(self, index: int) -> Optional[Value]:
        return self._items[index]

    def __iter__(self) -> Iterator[Optional[Value]]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)


class TupleObject(Value):
    def __init__(self, type_: TupleType, environment: "Environment", uuid: Optional[str] = None):
        super().__init__(type_, environment, uuid)
        self._items: List[Optional[Value]] = [_slot_default(t, environment) for t in type_.elements]

    def get(self, index: int) -> Optional[Value]:
        return self._items[index]

    def set(self, index: int, value: Value) -> None:
        self._items[index] = fit(value, self.type.elements[index], self.environment)  # type: ignore[attr-defined]

    def __iter__(self) -> Iterator[Optional[Value]]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)


class MapObject(Value):
    def __init__(self, type_: MapType, environment: "Environment", uuid: Optional[str] = None):
        super().__init__(type_, environment, uuid)
        self._entries: List[Tuple[Value, Optional[Value]]] = []

    def set(self, key: Value, value: Value) -> None:
        key = fit(key, self.type.key, self.environment)  # type: ignore[attr-defined,assignment]
        value = fit(value, self.type.value, self.environment)  # type: ignore[attr-defined,assignment]
        for index, (existing, _) in enumerate(self._entries):
            if _same_key(existing, key):
                self._entries[index] = (existing, value)
                return
        self._entries.append((key, value))

    def get(self, key: Value) -> Optional[Value]:
        for existing, value in self._entries:
            if _same_key(existing, key):
                return value
        return None

    def delete(self, key: Value) -> None:
        self._entries = [(k, v) for k, v in self._entries if not _same_key(k, key)]

    def items(self) -> Iterator[Tuple[Value, Optional[Value]]]:
        return iter(list(self._entries))

    def __len__(self) -> int:
        return len(self._entries)


class SetObject(Value):
    def __init__(self, type_: SetType, environment: "Environment", uuid: Optional[str] = None):
        super().__init__(type_, environment, uuid)
        self._items: List[Value] = []

    def add(self, value: Value) -> None:
        value = fit(value, self.type.element, self.environment)  # type: ignore[attr-defined,assignment]
        if not self.has(value):
            self._items.append(value)

    def has(self, value: Value) -> bool:
        return any(_same_key(item, value) for item in self._items)

    def delete(self, value: Value) -> None:
        self._items = [item for item in self._items if not _same_key(item, value)]

    def __iter__(self) -> Iterator[Value]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)
