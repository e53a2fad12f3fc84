"""
Annotation helpers for plugin authors.

Python has no intersection type and no visibility modifiers, so plugins
spell them with these markers::

    from typing import Annotated
    from plugsim import Intersection, hidden

    class Node:
        weight: Annotated[int, hidden]
        tagged: Intersection[Base, Mixin]
"""

from __future__ import annotations

from typing import Any, Tuple


class IntersectionAlias:
    __slots__ = ("__args__",)

    def __init__(self, args: Tuple[Any, ...]):
        self.__args__ = args

    def __eq__(self, other: object) -> bool:
        return isinstance(other, IntersectionAlias) and other.__args__ == self.__args__

    def __hash__(self) -> int:
        return hash(("Intersection", self.__args__))

    def __repr__(self) -> str:
        inner = ", ".join(getattr(a, "__name__", repr(a)) for a in self.__args__)
        return f"Intersection[{inner}]"


class Intersection:
    """``Intersection[A, B]`` declares a value that is both an ``A`` and a ``B``."""

    def __init__(self) -> None:
        raise TypeError("Intersection is only meant to be subscripted")

    def __class_getitem__(cls, params: Any) -> IntersectionAlias:
        if not isinstance(params, tuple):
            params = (params,)
        if not params:
            raise TypeError("Intersection[...] needs at least one type")
        return IntersectionAlias(params)


class _Hidden:
    __slots__ = ()

    def __repr__(self) -> str:
        return "hidden"


hidden = _Hidden()
