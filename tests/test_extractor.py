import textwrap
from unittest.mock import MagicMock

import pytest

from plugsim.bridge.registry import NativeTypeRegistry
from plugsim.core.exceptions import InvalidPluginSchema, UnknownType
from plugsim.extraction.extractor import TypeExtractor, attribute_docstrings
from plugsim.plugins.compiler import PythonCompiler
from plugsim.typesystem.types import (
    BOOLEAN,
    NUMBER,
    STRING,
    ArrayType,
    CustomObjectType,
    IntersectionType,
    LiteralType,
    MapType,
    RecordType,
    SetType,
    TupleType,
    UnionType,
)


def make_extractor(source: str, caller=None) -> TypeExtractor:
    source = textwrap.dedent(source)
    result = PythonCompiler().compile(source)
    assert result.ok, result.all_diagnostics()
    return TypeExtractor(result.module, caller or MagicMock(), NativeTypeRegistry(), source=source)


def test_primitives_and_containers():
    extractor = make_extractor(
        """
        class Holder:
            name: str
            count: int
            ratio: float
            flag: bool
            items: list[str]
            unique: set[int]
            frozen: frozenset[bool]
            index: dict[str, int]
            pair: tuple[str, int]
        """
    )
    holder = extractor.lookup_type("Holder")

    assert isinstance(holder, CustomObjectType)
    assert holder.members["name"] == STRING
    assert holder.members["count"] == NUMBER
    assert holder.members["ratio"] == NUMBER
    assert holder.members["flag"] == BOOLEAN
    assert isinstance(holder.members["items"], ArrayType) and holder.members["items"].element == STRING
    assert isinstance(holder.members["unique"], SetType) and holder.members["unique"].element == NUMBER
    assert isinstance(holder.members["frozen"], SetType)
    index = holder.members["index"]
    assert isinstance(index, MapType) and (index.key, index.value) == (STRING, NUMBER)
    pair = holder.members["pair"]
    assert isinstance(pair, TupleType) and pair.elements == [STRING, NUMBER]


def test_self_and_mutual_references_resolve_to_one_object():
    extractor = make_extractor(
        """
        from __future__ import annotations

        class A:
            b: B
            items: list[A]

        class B:
            a: A
            pairs: dict[str, list[B]]
        """
    )
    a = extractor.lookup_type("A")
    b = extractor.lookup_type("B")

    assert extractor.lookup_type("A") is a
    assert a.members["b"] is b
    assert b.members["a"] is a
    assert a.members["items"].element is a
    assert b.members["pairs"].value.element is b
    assert extractor.get_type(list[extractor.module.A]) is a.members["items"]


def test_attribute_docstrings_become_pretty_names():
    extractor = make_extractor(
        '''
        class Node:
            label: str
            """Label"""
            is_start_state: bool
            """
            Start State
            """
            weight: int
        '''
    )
    node = extractor.lookup_type("Node")

    assert node.pretty_name("label") == "Label"
    assert node.pretty_name("is_start_state") == "Start State"
    assert node.pretty_name("weight") == "weight"


def test_attribute_docstrings_from_source():
    docs = attribute_docstrings('class A:\n    x: int\n    """The x"""\n    y: int\n')

    assert docs == {"A": {"x": "The x"}}


def test_private_and_hidden_members_are_not_visible():
    extractor = make_extractor(
        """
        from typing import Annotated, ClassVar
        from plugsim import hidden

        class Node:
            label: str
            _cache: int
            weight: Annotated[int, hidden]
            counter: ClassVar[int] = 0
        """
    )
    node = extractor.lookup_type("Node")

    assert node.is_visible("label")
    assert not node.is_visible("_cache")
    assert not node.is_visible("weight")
    assert node.members["weight"] == NUMBER
    assert "counter" not in node.members


def test_literals_map_to_literal_types():
    extractor = make_extractor(
        """
        from typing import Literal

        class Square:
            style: Literal["solid", "dashed"]
            sides: Literal[4]
        """
    )
    square = extractor.lookup_type("Square")

    assert square.members["sides"] == LiteralType(4)
    style = square.members["style"]
    assert isinstance(style, UnionType)
    assert style.types == (LiteralType("solid"), LiteralType("dashed"))


def test_non_primitive_literals_are_unknown():
    extractor = make_extractor(
        """
        from typing import Literal

        class Broken:
            nothing: Literal[None]
        """
    )

    with pytest.raises(UnknownType, match="literal values"):
        extractor.lookup_type("Broken")


@pytest.mark.parametrize(
    "annotation, reason",
    [
        ("Any", "unknown type"),
        ("object", "unknown type"),
        ("list", "containers need type parameters"),
        ("tuple[int, ...]", "variable-length tuples"),
        ("Callable[[int], int]", "unknown type"),
    ],
)
def test_unsupported_annotations_raise_unknown_type(annotation, reason):
    extractor = make_extractor(
        f"""
        from typing import Any, Callable

        class Broken:
            member: {annotation}
        """
    )

    with pytest.raises(UnknownType, match=reason):
        extractor.lookup_type("Broken")


def test_unions_flatten_through_aliases():
    extractor = make_extractor(
        """
        class A: pass
        class B: pass
        class C: pass

        type AB = A | B
        type ABC = AB | C
        """
    )
    abc = extractor.lookup_type("ABC")

    assert isinstance(abc, UnionType)
    assert [t.name for t in abc.types] == ["A", "B", "C"]


def test_intersections_and_typed_dicts():
    extractor = make_extractor(
        """
        from typing import TypedDict
        from plugsim import Intersection

        class Named:
            name: str

        class Weighted:
            weight: int

        class Point(TypedDict):
            x: float
            y: float

        class Pin:
            at: Point
            both: Intersection[Named, Intersection[Weighted, Point]]
        """
    )
    pin = extractor.lookup_type("Pin")

    point = pin.members["at"]
    assert isinstance(point, RecordType)
    assert point.members == {"x": NUMBER, "y": NUMBER}
    both = pin.members["both"]
    assert isinstance(both, IntersectionType)
    assert len(both.types) == 3
    assert both.types[2] is point
    assert set(both.members) == {"name", "weight", "x", "y"}


def test_inheritance_sets_super_type():
    extractor = make_extractor(
        """
        class Base:
            name: str

        class Derived(Base):
            extra: int
        """
    )
    base = extractor.lookup_type("Base")
    derived = extractor.lookup_type("Derived")

    assert derived.super_type is base
    assert set(derived.members) == {"name", "extra"}


def test_methods_and_getters_route_through_the_caller():
    caller = MagicMock()
    extractor = make_extractor(
        """
        class Tag:
            name: str

            def shout(self, times: int) -> str:
                return self.name * times

            def touch(self) -> None:
                pass

            @property
            def length(self) -> int:
                return len(self.name)
        """,
        caller,
    )
    tag = extractor.lookup_type("Tag")

    shout = tag.method("shout")
    assert shout.arg_types == [NUMBER]
    assert shout.return_type == STRING
    assert not shout.is_getter
    assert tag.method("touch").return_type is None

    length = tag.method("length")
    assert length.is_getter and length.return_type == NUMBER

    receiver, argument = object(), object()
    shout.invoke(receiver, [argument])
    caller.call.assert_called_once_with(receiver, "shout", [argument])
    length.invoke(receiver)
    caller.call_getter.assert_called_once_with(receiver, "length")


def test_function_signatures_and_overloads():
    extractor = make_extractor(
        """
        from typing import overload

        class State:
            pass

        def start(graph: State, data: str) -> State:
            return State()

        @overload
        def step(current: State) -> State: ...
        @overload
        def step(current: State, extra: int) -> bool: ...
        def step(current, extra=0):
            return False

        def untyped(graph):
            return None
        """
    )
    state = extractor.lookup_type("State")

    assert extractor.function_signatures("start") == [([state, STRING], state)]
    assert len(extractor.function_signatures("step")) == 2
    with pytest.raises(UnknownType, match="no return annotation"):
        extractor.function_signatures("untyped")
    with pytest.raises(InvalidPluginSchema, match="not found"):
        extractor.function_signatures("missing")


def test_extracted_classes_are_registered():
    extractor = make_extractor(
        """
        class Node:
            label: str
        """
    )
    node = extractor.lookup_type("Node")

    assert extractor.registry.constructor_for(node) is extractor.module.Node
    assert extractor.registry.type_for(extractor.module.Node) is node
    assert extractor.declared == {"Node": node}


def test_unresolvable_forward_reference():
    extractor = make_extractor(
        """
        from __future__ import annotations

        class Node:
            next: Missing
        """
    )

    with pytest.raises(UnknownType, match="unresolvable"):
        extractor.lookup_type("Node")


def test_string_forward_references_in_aliases():
    extractor = make_extractor(
        """
        from typing import Union

        Shapes = Union["Circle", "Square"]
        Broken = Union["Missing", int]

        class Circle:
            radius: float

        class Square:
            side: float
        """
    )

    shapes = extractor.lookup_type("Shapes")

    assert isinstance(shapes, UnionType)
    assert [t.name for t in shapes.types] == ["Circle", "Square"]
    with pytest.raises(UnknownType, match="unresolvable forward reference"):
        extractor.lookup_type("Broken")
