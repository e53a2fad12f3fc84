from __future__ import annotations

from typing import Dict, Iterator, Optional, Tuple

from plugsim.typesystem.types import IntersectionType, Type


class NativeTypeRegistryError(RuntimeError):
    pass


class NativeTypeRegistry:
    """
    Two-way binding between object types and the native classes that implement them.

    ``register`` binds both directions. ``bind_native`` only redirects the
    native-to-type direction, which is how a plugin points its node and
    edge classes at their augmented types.
    """

    def __init__(self) -> None:
        self._constructors: Dict[Type, type] = {}
        self._types: Dict[type, Type] = {}

    def register(self, type_: Type, constructor: type, *, overwrite: bool = False) -> None:
        existing = self._types.get(constructor)
        if not overwrite and existing is not None and existing is not type_:
            raise NativeTypeRegistryError(
                f"Native class {constructor.__qualname__} is already bound to {existing}"
            )
        self._constructors[type_] = constructor
        self._types[constructor] = type_

    def bind_native(self, constructor: type, type_: Type) -> None:
        self._types[constructor] = type_

    def constructor_for(self, type_: Type) -> Optional[type]:
        constructor = self._constructors.get(type_)
        if constructor is None and isinstance(type_, IntersectionType):
            for part in type_.types:
                constructor = self._constructors.get(part)
                if constructor is not None:
                    break
        return constructor

    def type_for(self, constructor: type) -> Optional[Type]:
        for klass in constructor.__mro__:
            type_ = self._types.get(klass)
            if type_ is not None:
                return type_
        return None

    def items(self) -> Iterator[Tuple[Type, type]]:
        return iter(list(self._constructors.items()))

    def __len__(self) -> int:
        return len(self._constructors)
