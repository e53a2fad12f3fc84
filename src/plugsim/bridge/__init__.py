from plugsim.bridge.natural import (
    UUID_ATTR,
    NaturalBridge,
    NaturalList,
    NaturalMap,
    NaturalObject,
    NaturalRecord,
    NaturalSet,
    uuid_of,
)
from plugsim.bridge.registry import NativeTypeRegistry, NativeTypeRegistryError

__all__ = [
    "UUID_ATTR",
    "NaturalBridge",
    "NaturalList",
    "NaturalMap",
    "NaturalObject",
    "NaturalRecord",
    "NaturalSet",
    "uuid_of",
    "NativeTypeRegistry",
    "NativeTypeRegistryError",
]
