from plugsim.typesystem.environment import Environment, is_pointer
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
    ObjectType,
    PrimitiveType,
    RecordType,
    SetType,
    TupleType,
    Type,
    UnionType,
    describe,
    is_subtype,
    minimize_types,
    union_of,
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
    UnionValue,
    Value,
    unbox,
)

__all__ = [
    "Environment",
    "is_pointer",
    "BOOLEAN",
    "NUMBER",
    "STRING",
    "ArrayType",
    "CustomObjectType",
    "IntersectionType",
    "LiteralType",
    "MapType",
    "MethodSignature",
    "ObjectType",
    "PrimitiveType",
    "RecordType",
    "SetType",
    "TupleType",
    "Type",
    "UnionType",
    "describe",
    "is_subtype",
    "minimize_types",
    "union_of",
    "ArrayObject",
    "CustomObjectValue",
    "IntersectionValue",
    "LiteralValue",
    "MapObject",
    "ObjectValue",
    "PrimitiveValue",
    "RecordValue",
    "SetObject",
    "TupleObject",
    "UnionValue",
    "Value",
    "unbox",
]
