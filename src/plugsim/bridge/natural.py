"""
Conversion between values and the natural (plain Python) objects plugin code works on.

Both directions keep a cache for the duration of one top-level call so that
shared and cyclic references come out shared and cyclic on the other side.
Composite natives produced by ``unwrap`` carry the id of the value they came
from in ``UUID_ATTR``; ``wrap`` resolves such tagged natives back to the
original value instead of building a new one.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Sequence

from plugsim.bridge.registry import NativeTypeRegistry
from plugsim.core.exceptions import DanglingReference, TypeMismatch
from plugsim.core.logger import get_logger
from plugsim.typesystem.environment import Environment
from plugsim.typesystem.types import (
    ArrayType,
    CustomObjectType,
    IntersectionType,
    LiteralType,
    MapType,
    ObjectType,
    PrimitiveType,
    RecordType,
    SetType,
    TupleType,
    Type,
    UnionType,
    describe,
    is_subtype,
    primitive_kind_of,
    unique_types,
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

log = get_logger(__name__)

UUID_ATTR = "__plugsim_uuid__"


class NaturalList(list):
    """Natural form of an array value."""


class NaturalRecord(dict):
    """Natural form of a record value."""


class NaturalMap(dict):
    """Natural form of a map value."""


class NaturalSet(set):
    """Natural form of a set value."""


class NaturalObject:
    """Natural form of a nominal object whose type has no registered class."""

    def __repr__(self) -> str:
        fields = ", ".join(f"{k}=..." for k in vars(self) if k != UUID_ATTR)
        return f"NaturalObject({fields})"


def uuid_of(native: Any) -> Optional[str]:
    """The id of the value a native was unwrapped from, if it carries one."""
    if isinstance(native, type):
        return None
    tag = getattr(native, UUID_ATTR, None)
    return tag if isinstance(tag, str) else None


class _Unwrapper:
    def __init__(self, registry: NativeTypeRegistry):
        self.registry = registry
        self.cache: Dict[int, Any] = {}

    def unwrap(self, value: Optional[Value]) -> Any:
        value = unbox(value)
        if value is None:
            return None
        if id(value) in self.cache:
            return self.cache[id(value)]

        if isinstance(value, (PrimitiveValue, LiteralValue)):
            return value.value
        if isinstance(value, (CustomObjectValue, IntersectionValue)):
            shell = self._object_shell(value)
            self._register(value, shell)
            for name, member in value.items():
                setattr(shell, name, self.unwrap(member))
            return shell
        if isinstance(value, RecordValue):
            record = NaturalRecord()
            self._register(value, record)
            for name, member in value.items():
                record[name] = self.unwrap(member)
            return record
        if isinstance(value, ArrayObject):
            items = NaturalList()
            self._register(value, items)
            items.extend(self.unwrap(item) for item in value)
            return items
        if isinstance(value, MapObject):
            mapping = NaturalMap()
            self._register(value, mapping)
            for key, item in value.items():
                mapping[self._hashable(self.unwrap(key))] = self.unwrap(item)
            return mapping
        if isinstance(value, SetObject):
            members = NaturalSet()
            self._register(value, members)
            for item in value:
                members.add(self._hashable(self.unwrap(item)))
            return members
        if isinstance(value, TupleObject):
            # Tuples are immutable, so they can only be cached once complete.
            items = tuple(self.unwrap(item) for item in value)
            self.cache[id(value)] = items
            return items
        raise TypeMismatch(f"cannot unwrap {value!r}")

    def _object_shell(self, value: ObjectValue) -> Any:
        constructor = self.registry.constructor_for(value.type)
        if constructor is None:
            return NaturalObject()
        return constructor.__new__(constructor)

    def _register(self, value: Value, shell: Any) -> None:
        self.cache[id(value)] = shell
        setattr(shell, UUID_ATTR, value.uuid)

    @staticmethod
    def _hashable(native: Any) -> Any:
        try:
            hash(native)
        except TypeError as exc:
            raise TypeMismatch(
                f"{type(native).__name__} cannot be used as a set element or map key"
            ) from exc
        return native


class _Wrapper:
    def __init__(self, registry: NativeTypeRegistry, environment: Environment):
        self.registry = registry
        self.environment = environment
        self.cache: Dict[int, Value] = {}
        # Keep natives alive so their ids stay unique for the whole call.
        self._seen: List[Any] = []

    def wrap(self, native: Any, expected: Optional[Type] = None) -> Value:
        if native is None:
            raise TypeMismatch("None has no value representation")

        uuid = uuid_of(native)
        if uuid is not None:
            existing = self.environment.get(uuid)
            if existing is None:
                raise DanglingReference(uuid)
            return self._check(existing, expected)

        if id(native) in self.cache:
            return self._check(self.cache[id(native)], expected)

        if isinstance(expected, UnionType):
            return self._alternative(native, expected)

        kind = primitive_kind_of(native)
        if kind is not None:
            return self._check(self._primitive(native, kind, expected), expected)
        if isinstance(native, (list, tuple)):
            return self._check(self._sequence(native, expected), expected)
        if isinstance(native, dict):
            return self._check(self._mapping(native, expected), expected)
        if isinstance(native, (set, frozenset)):
            return self._check(self._set(native, expected), expected)
        return self._check(self._object(native, expected), expected)

    # -- shape tests ---------------------------------------------------------

    def _alternative(self, native: Any, union: UnionType) -> Value:
        """Wrap against the first alternative, in declaration order, that the native fully fits."""
        failures: List[str] = []
        for alternative in union.types:
            if not self._accepts(native, alternative):
                continue
            mark = self.environment.mark()
            cache = dict(self.cache)
            try:
                return self.wrap(native, alternative)
            except TypeMismatch as exc:
                # Drop whatever the failed attempt built.
                self.environment.rollback(mark)
                self.cache = cache
                failures.append(f"{describe(alternative)}: {exc}")
        reason = f" ({'; '.join(failures)})" if failures else ""
        raise TypeMismatch(f"{type(native).__name__} matches no alternative of {describe(union)}{reason}")

    def _accepts(self, native: Any, expected: Type) -> bool:
        uuid = uuid_of(native)
        if uuid is not None:
            existing = unbox(self.environment.get(uuid))
            return existing is None or is_subtype(existing.type, expected)

        kind = primitive_kind_of(native)
        if isinstance(expected, PrimitiveType):
            return kind == expected.kind
        if isinstance(expected, LiteralType):
            return kind == expected.kind and native == expected.value
        if kind is not None:
            return False

        if isinstance(expected, (CustomObjectType, IntersectionType)):
            declared = self.registry.type_for(type(native))
            return declared is not None and is_subtype(declared, expected)
        if isinstance(expected, RecordType):
            if isinstance(native, dict):
                return all(name in native for name in expected.members)
            declared = self.registry.type_for(type(native))
            if declared is not None:
                return is_subtype(declared, expected)
            return hasattr(native, "__dict__") and all(hasattr(native, n) for n in expected.members)
        if isinstance(expected, TupleType):
            return isinstance(native, (list, tuple)) and len(native) == len(expected.elements)
        if isinstance(expected, ArrayType):
            return isinstance(native, (list, tuple))
        if isinstance(expected, MapType):
            return isinstance(native, dict)
        if isinstance(expected, SetType):
            return isinstance(native, (set, frozenset))
        return False

    def _check(self, value: Value, expected: Optional[Type]) -> Value:
        inner = unbox(value)
        if expected is not None and inner is not None and not is_subtype(inner.type, expected):
            raise TypeMismatch(f"{describe(inner.type)} is not assignable to {describe(expected)}")
        return value

    def _remember(self, native: Any, value: Value) -> None:
        self.cache[id(native)] = value
        self._seen.append(native)

    # -- builders ------------------------------------------------------------

    def _primitive(self, native: Any, kind: str, expected: Optional[Type]) -> Value:
        if isinstance(expected, LiteralType) and expected.kind == kind and expected.value == native:
            return LiteralValue(expected, self.environment)
        return PrimitiveValue(PrimitiveType(kind), self.environment, native)

    def _sequence(self, native: Sequence[Any], expected: Optional[Type]) -> Value:
        if isinstance(expected, TupleType):
            if len(native) != len(expected.elements):
                raise TypeMismatch(
                    f"expected {len(expected.elements)} tuple element(s), got {len(native)}"
                )
            tuple_value = TupleObject(expected, self.environment)
            self._remember(native, tuple_value)
            for index, (item, slot_type) in enumerate(zip(native, expected.elements)):
                tuple_value.set(index, self.wrap(item, slot_type))
            return tuple_value

        if isinstance(expected, ArrayType):
            array = ArrayObject(expected, self.environment)
            self._remember(native, array)
            for item in native:
                array.push(self.wrap(item, expected.element))
            return array

        if expected is not None:
            raise TypeMismatch(f"a sequence is not assignable to {describe(expected)}")

        inferred = ArrayType(None)
        array = ArrayObject(inferred, self.environment)
        self._remember(native, array)
        items = [self.wrap(item) for item in native]
        inferred.element = self._inferred_union(items)
        for item in items:
            array.push(item)
        return array

    def _mapping(self, native: Dict[Any, Any], expected: Optional[Type]) -> Value:
        if isinstance(expected, MapType):
            mapping = MapObject(expected, self.environment)
            self._remember(native, mapping)
            for key, item in native.items():
                mapping.set(self.wrap(key, expected.key), self.wrap(item, expected.value))
            return mapping

        if isinstance(expected, RecordType):
            missing = [name for name in expected.members if name not in native]
            if missing:
                raise TypeMismatch(f"record is missing member(s) {', '.join(missing)}")
            record = RecordValue(expected, self.environment)
            self._remember(native, record)
            for name, member_type in expected.members.items():
                record.set(name, self.wrap(native[name], member_type))
            return record

        if all(isinstance(key, str) for key in native):
            return self._record(native, native.items())

        inferred = MapType(None, None)
        mapping = MapObject(inferred, self.environment)
        self._remember(native, mapping)
        entries = [(self.wrap(key), self.wrap(item)) for key, item in native.items()]
        inferred.key = self._inferred_union(k for k, _ in entries)
        inferred.value = self._inferred_union(v for _, v in entries)
        for key, item in entries:
            mapping.set(key, item)
        return mapping

    def _set(self, native: Iterable[Any], expected: Optional[Type]) -> Value:
        if isinstance(expected, SetType):
            members = SetObject(expected, self.environment)
            self._remember(native, members)
            for item in native:
                members.add(self.wrap(item, expected.element))
            return members
        if expected is not None:
            raise TypeMismatch(f"a set is not assignable to {describe(expected)}")

        inferred = SetType(None)
        members = SetObject(inferred, self.environment)
        self._remember(native, members)
        items = [self.wrap(item) for item in native]
        inferred.element = self._inferred_union(items)
        for item in items:
            members.add(item)
        return members

    def _object(self, native: Any, expected: Optional[Type]) -> Value:
        declared = self.registry.type_for(type(native))
        if declared is None:
            if not hasattr(native, "__dict__"):
                raise TypeMismatch(f"cannot make a value of {type(native).__name__}")
            if isinstance(expected, RecordType):
                return self._mapping(vars(native), expected)
            return self._record(native, vars(native).items())

        if expected is not None and not is_subtype(declared, expected):
            raise TypeMismatch(f"{describe(declared)} is not assignable to {describe(expected)}")
        value = self.environment.make(declared)
        self._remember(native, value)
        for name, member_type in declared.members.items():  # type: ignore[attr-defined]
            attribute = getattr(native, name, None)
            if attribute is None:
                continue
            value.set(name, self.wrap(attribute, member_type))  # type: ignore[attr-defined]
        return value

    def _record(self, native: Any, fields: Iterable[Any]) -> RecordValue:
        record_type = RecordType()
        record = RecordValue(record_type, self.environment)
        self._remember(native, record)
        for name, item in list(fields):
            if item is None:
                continue
            wrapped = self.wrap(item)
            record_type.members[name] = unbox(wrapped).type  # type: ignore[union-attr]
            record.set(name, wrapped)
        return record

    @staticmethod
    def _inferred_union(values: Iterable[Value]) -> UnionType:
        return UnionType(unique_types(unbox(v).type for v in values))  # type: ignore[union-attr]


class NaturalBridge:
    """
    Converts values to natural objects and back, and dispatches method calls.

    The bridge is the ``MethodCaller`` handed to the type extractor, so every
    method or getter invoked on an object value runs against the native
    object the value unwraps to.
    """

    def __init__(self, registry: Optional[NativeTypeRegistry] = None):
        self.registry = registry if registry is not None else NativeTypeRegistry()

    def unwrap(self, value: Optional[Value]) -> Any:
        return _Unwrapper(self.registry).unwrap(value)

    def unwrap_all(self, values: Sequence[Optional[Value]]) -> List[Any]:
        """Unwrap several values with one shared cache so shared references stay shared."""
        unwrapper = _Unwrapper(self.registry)
        return [unwrapper.unwrap(v) for v in values]

    def wrap(self, native: Any, environment: Environment, expected: Optional[Type] = None) -> Value:
        """
        Build the value for ``native``. A conversion that fails leaves the
        environment exactly as it found it.
        """
        mark = environment.mark()
        try:
            return _Wrapper(self.registry, environment).wrap(native, expected)
        except (TypeMismatch, DanglingReference):
            environment.rollback(mark)
            raise

    def accepts(self, native: Any, environment: Environment, expected: Type) -> bool:
        return _Wrapper(self.registry, environment)._accepts(native, expected)

    # -- MethodCaller ----------------------------------------------------------

    def call(self, receiver: ObjectValue, name: str, args: Sequence[Value]) -> Optional[Value]:
        native_receiver, *native_args = self.unwrap_all([receiver, *args])
        log.debug("Calling %s.%s with %d argument(s)", describe(receiver.type), name, len(native_args))
        result = getattr(native_receiver, name)(*native_args)
        signature = receiver.type.method(name)  # type: ignore[attr-defined]
        if signature.return_type is None:
            return None
        return self.wrap(result, receiver.environment, signature.return_type)

    def call_getter(self, receiver: ObjectValue, name: str) -> Value:
        native_receiver = self.unwrap(receiver)
        result = getattr(native_receiver, name)
        signature = receiver.type.method(name)  # type: ignore[attr-defined]
        return self.wrap(result, receiver.environment, signature.return_type)
