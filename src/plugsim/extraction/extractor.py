"""
Structural type extraction.

Turns the declarations of a compiled plugin module (classes, aliases,
unions, generics and function signatures) into the type model.
"""

from __future__ import annotations

import ast
import inspect
import types
import typing
from types import ModuleType
from typing import Annotated, Any, Callable, ClassVar, Dict, List, Literal, Optional, Tuple

from plugsim.bridge.registry import NativeTypeRegistry
from plugsim.core.contracts import MethodCaller
from plugsim.core.exceptions import InvalidPluginSchema, UnknownType
from plugsim.core.logger import get_logger
from plugsim.extraction.hints import IntersectionAlias, hidden
from plugsim.typesystem.types import (
    BOOLEAN,
    NUMBER,
    STRING,
    ArrayType,
    CustomObjectType,
    IntersectionType,
    LiteralType,
    MapType,
    MethodSignature,
    RecordType,
    SetType,
    TupleType,
    Type,
    UnionType,
    primitive_kind_of,
)

log = get_logger(__name__)

Signature = Tuple[List[Type], Optional[Type]]

_SKIPPED_BASES = (object, typing.Generic, typing.Protocol)
_BARE_CONTAINERS = (list, dict, set, frozenset, tuple)


def attribute_docstrings(source: str) -> Dict[str, Dict[str, str]]:
    """
    Collect attribute docstrings per class name.

    An attribute docstring is a string literal statement directly after an
    annotated assignment in a class body::

        class Node:
            label: str
            \"\"\"Label\"\"\"
    """
    docs: Dict[str, Dict[str, str]] = {}
    for node in ast.walk(ast.parse(source)):
        if not isinstance(node, ast.ClassDef):
            continue
        class_docs = docs.setdefault(node.name, {})
        for stmt, following in zip(node.body, node.body[1:]):
            if (
                isinstance(stmt, ast.AnnAssign)
                and isinstance(stmt.target, ast.Name)
                and isinstance(following, ast.Expr)
                and isinstance(following.value, ast.Constant)
                and isinstance(following.value.value, str)
            ):
                class_docs[stmt.target.id] = inspect.cleandoc(following.value.value)
    return docs


def _module_source(module: ModuleType) -> Optional[str]:
    try:
        return inspect.getsource(module)
    except (OSError, TypeError):
        log.debug("No source available for module %s; pretty names disabled", module.__name__)
        return None


def _is_classvar(hint: Any) -> bool:
    return hint is ClassVar or typing.get_origin(hint) is ClassVar


def _is_hidden(hint: Any) -> bool:
    return typing.get_origin(hint) is Annotated and any(m is hidden for m in hint.__metadata__)


def _extends(cls: type) -> Optional[type]:
    for base in cls.__bases__:
        if base in _SKIPPED_BASES:
            continue
        return base
    return None


class TypeExtractor:
    """
    Store a mapping of declarations to our type objects.

    In order to avoid infinite loops on self-referential declarations, each
    object type is cached before its members are resolved and each container
    type is cached before its parameters are resolved. Container parameters
    are bound by follow-up closures that run once the outermost lookup has
    finished.
    """

    def __init__(
        self,
        module: ModuleType,
        method_caller: MethodCaller,
        registry: Optional[NativeTypeRegistry] = None,
        source: Optional[str] = None,
    ):
        self.module = module
        self.namespace: Dict[str, Any] = vars(module)
        self.method_caller = method_caller
        self.registry = registry if registry is not None else NativeTypeRegistry()
        self.declared: Dict[str, CustomObjectType] = {}
        self._types: Dict[Any, Type] = {}
        self._pending: List[Callable[[], None]] = []
        self._depth = 0
        if source is None:
            source = _module_source(module)
        self._docs = attribute_docstrings(source) if source else {}

    # -- public API ----------------------------------------------------------

    def has(self, name: str) -> bool:
        return name in self.namespace

    def lookup_type(self, name: str) -> Type:
        if name not in self.namespace:
            raise UnknownType(name, "no declaration named")
        return self.get_type(self.namespace[name])  # type: ignore[return-value]

    def get_type(self, hint: Any, void_ok: bool = False) -> Optional[Type]:
        return self._lookup(lambda: self._resolve(hint, void_ok))

    def function_signatures(self, name: str) -> List[Signature]:
        """Every declared signature of a module-level function (more than one when overloaded)."""
        func = self.namespace.get(name)
        if func is None:
            raise InvalidPluginSchema(f'function "{name}" not found')
        if not inspect.isfunction(func):
            raise InvalidPluginSchema(f'"{name}" must be a function')
        candidates = typing.get_overloads(func) or [func]
        return [self._lookup(lambda c=candidate: self._signature(c, name)) for candidate in candidates]

    def _lookup(self, resolve: Callable[[], Any]) -> Any:
        # Deferred container fix-ups run once the outermost lookup is done.
        outermost = self._depth == 0
        self._depth += 1
        try:
            resolved = resolve()
            if outermost:
                while self._pending:
                    self._pending.pop(0)()
        finally:
            self._depth -= 1
            if outermost:
                self._pending.clear()
        return resolved

    # -- resolution ----------------------------------------------------------

    def _evaluate(self, hint: Any) -> Any:
        # Forward references left in aliases (``Union["A", "B"]``) resolve like annotations.
        if isinstance(hint, (str, typing.ForwardRef)):
            holder = types.SimpleNamespace(__annotations__={"hint": hint})
            try:
                return typing.get_type_hints(holder, localns=self.namespace, include_extras=True)["hint"]
            except NameError as exc:
                raise UnknownType(hint, "unresolvable forward reference") from exc
        return hint

    def _hints(self, owner: Any) -> Dict[str, Any]:
        try:
            return typing.get_type_hints(owner, localns=self.namespace, include_extras=True)
        except NameError as exc:
            raise UnknownType(owner, f"unresolvable annotation ({exc})") from exc

    def _cache_key(self, hint: Any) -> Any:
        try:
            hash(hint)
        except TypeError:
            return ("unhashable", id(hint))
        return hint

    def _resolve(self, hint: Any, void_ok: bool = False) -> Optional[Type]:
        hint = self._evaluate(hint)
        if hint is None or hint is type(None):
            if void_ok:
                return None
            raise UnknownType(hint, "None is only allowed as a method return")

        key = self._cache_key(hint)
        cached = self._types.get(key)
        if cached is not None:
            return cached

        origin = typing.get_origin(hint)
        args = typing.get_args(hint)

        if origin is Annotated:
            wrapped = self._resolve(args[0])
        elif isinstance(hint, typing.TypeAliasType):
            wrapped = self._resolve(hint.__value__)
        elif hint is bool:
            wrapped = BOOLEAN
        elif hint is str:
            wrapped = STRING
        elif hint is int or hint is float:
            wrapped = NUMBER
        elif origin is Literal:
            if any(primitive_kind_of(v) is None for v in args):
                raise UnknownType(hint, "literal values must be strings, numbers or booleans")
            literals = [LiteralType(v) for v in args]
            wrapped = literals[0] if len(literals) == 1 else UnionType(literals)
        elif origin is typing.Union or origin is types.UnionType:
            wrapped = UnionType([self._resolve(a) for a in args])  # type: ignore[misc]
        elif isinstance(hint, IntersectionAlias):
            wrapped = IntersectionType([self._resolve(a) for a in hint.__args__])  # type: ignore[misc]
        elif origin in (list, set, frozenset, dict, tuple):
            wrapped = self._container(key, hint, origin, args)
        elif typing.is_typeddict(hint):
            wrapped = self._record(key, hint)
        elif hint is Any or hint is object:
            raise UnknownType(hint)
        elif isinstance(hint, type):
            if issubclass(hint, _BARE_CONTAINERS):
                raise UnknownType(hint, "containers need type parameters")
            wrapped = self._class(key, hint)
        else:
            raise UnknownType(hint)

        self._types[key] = wrapped  # type: ignore[assignment]
        return wrapped

    def _container(self, key: Any, hint: Any, origin: type, args: Tuple[Any, ...]) -> Type:
        wrapped: Type
        if origin is tuple:
            if Ellipsis in args:
                raise UnknownType(hint, "variable-length tuples are not supported")
            elements = [] if args == ((),) else list(args)
            wrapped = TupleType()
            bind = lambda t: t.elements.extend(self._resolve(a) for a in elements)  # noqa: E731
        elif origin is dict:
            if len(args) != 2:
                raise UnknownType(hint, "maps need a key and a value type")
            wrapped = MapType(None, None)

            def bind(t: MapType) -> None:
                t.key = self._resolve(args[0])
                t.value = self._resolve(args[1])
        else:
            if len(args) != 1:
                raise UnknownType(hint, "containers need exactly one element type")
            wrapped = ArrayType(None) if origin is list else SetType(None)

            def bind(t: Any) -> None:
                t.element = self._resolve(args[0])

        # Parameters may refer back to this container, so bind them after caching it.
        self._types[key] = wrapped
        self._pending.append(lambda: bind(wrapped))
        return wrapped

    def _record(self, key: Any, cls: type) -> RecordType:
        record = RecordType()
        self._types[key] = record
        docs = self._docs_for(cls)
        for name, hint in self._hints(cls).items():
            record.members[name] = self._resolve(hint)  # type: ignore[assignment]
            record.visibility[name] = not name.startswith("_") and not _is_hidden(hint)
            if name in docs:
                record.pretty_names[name] = docs[name]
        return record

    def _class(self, key: Any, cls: type) -> CustomObjectType:
        wrapped = CustomObjectType(cls.__name__)
        if key in self._types:
            raise UnknownType(cls, "type is already mapped")
        self._types[key] = wrapped
        self.registry.register(wrapped, cls)
        self.declared.setdefault(cls.__name__, wrapped)
        log.debug("Extracting class %s", cls.__qualname__)

        base = _extends(cls)
        if base is not None:
            super_type = self._resolve(base)
            if not isinstance(super_type, CustomObjectType):
                raise UnknownType(base, "invalid supertype")
            wrapped.super_type = super_type

        docs = self._docs_for(cls)
        for name, hint in self._hints(cls).items():
            if name.startswith("__") or _is_classvar(hint):
                continue
            wrapped.members[name] = self._resolve(hint)  # type: ignore[assignment]
            wrapped.visibility[name] = not name.startswith("_") and not _is_hidden(hint)
            if name in docs:
                wrapped.pretty_names[name] = docs[name]

        for name, attribute in vars(cls).items():
            if name.startswith("__"):
                continue
            if isinstance(attribute, property):
                wrapped.methods[name] = self._getter(attribute, name)
            elif inspect.isfunction(attribute):
                wrapped.methods[name] = self._method(attribute, name)
        return wrapped

    def _docs_for(self, cls: type) -> Dict[str, str]:
        docs: Dict[str, str] = {}
        for klass in reversed(cls.__mro__):
            if klass.__module__ == self.module.__name__:
                docs.update(self._docs.get(klass.__name__, {}))
        return docs

    # -- callables -----------------------------------------------------------

    def _parameters(self, func: Callable[..., Any], name: str, skip_first: bool) -> Signature:
        hints = self._hints(func)
        parameters = list(inspect.signature(func).parameters.values())
        if skip_first:
            parameters = parameters[1:]
        arg_types: List[Type] = []
        for parameter in parameters:
            if parameter.kind in (parameter.VAR_POSITIONAL, parameter.VAR_KEYWORD):
                raise UnknownType(func, f"variadic parameter {parameter.name!r} of {name}()")
            if parameter.name not in hints:
                raise UnknownType(func, f"parameter {parameter.name!r} of {name}() has no annotation")
            arg_types.append(self._resolve(hints[parameter.name]))  # type: ignore[arg-type]
        return_type = self._resolve(hints["return"], void_ok=True) if "return" in hints else None
        return arg_types, return_type

    def _signature(self, func: Callable[..., Any], name: str) -> Signature:
        if "return" not in self._hints(func):
            raise UnknownType(func, f"{name}() has no return annotation")
        arg_types, return_type = self._parameters(func, name, skip_first=False)
        if return_type is None:
            raise UnknownType(func, f"{name}() must return a value")
        return arg_types, return_type

    def _method(self, func: Callable[..., Any], name: str) -> MethodSignature:
        arg_types, return_type = self._parameters(func, name, skip_first=True)
        caller = self.method_caller

        def implementation(receiver: Any, args: List[Any]) -> Any:
            return caller.call(receiver, name, args)

        return MethodSignature(arg_types, return_type, is_getter=False, implementation=implementation)

    def _getter(self, prop: property, name: str) -> MethodSignature:
        if prop.fget is None or "return" not in self._hints(prop.fget):
            raise UnknownType(prop, f"getter {name!r} has no return annotation")
        return_type = self._resolve(self._hints(prop.fget)["return"])
        caller = self.method_caller

        def implementation(receiver: Any, args: List[Any]) -> Any:
            return caller.call_getter(receiver, name)

        return MethodSignature([], return_type, is_getter=True, implementation=implementation)
