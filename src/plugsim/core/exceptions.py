"""
Custom exception classes for the plugsim framework.

Every failure the core can raise carries an ``ErrorKind`` so hosts can
branch on the failure class without matching on exception types.
Failures raised by plugin logic itself never propagate out of a program
run; they are converted into error values (see ``PluginRuntimeFailure``).
"""

from __future__ import annotations

import traceback
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorKind(Enum):
    """Failure classes of the core."""

    INVALID_PLUGIN_SCHEMA = "InvalidPluginSchema"
    UNKNOWN_TYPE = "UnknownType"
    ARITY_MISMATCH = "ArityMismatch"
    ARGUMENT_TYPE_MISMATCH = "ArgumentTypeMismatch"
    TYPE_MISMATCH = "TypeMismatch"
    DANGLING_REFERENCE = "DanglingReference"
    NO_MATCHING_RESULT_TYPE = "NoMatchingResultType"
    PLUGIN_RUNTIME_FAILURE = "PluginRuntimeFailure"


class PlugsimException(Exception):
    """Base exception class for all plugsim exceptions."""

    kind: Optional[ErrorKind] = None


class InvalidPluginSchema(PlugsimException):
    """
    Raised when a plugin module does not have the required shape.

    Covers missing or overloaded ``start``/``step`` functions and
    ``Graph``/``Nodes``/``Edges``/``State`` declarations that do not
    resolve to object types. No partial plugin is ever returned.
    """

    kind = ErrorKind.INVALID_PLUGIN_SCHEMA


class UnknownType(PlugsimException):
    """Raised when the extractor meets a declaration it cannot model."""

    kind = ErrorKind.UNKNOWN_TYPE

    def __init__(self, hint: Any, reason: str = "unknown type"):
        self.hint = hint
        super().__init__(f"{reason}: {hint!r}")


class ArityMismatch(PlugsimException):
    """Raised when a run receives the wrong number of arguments."""

    kind = ErrorKind.ARITY_MISMATCH

    def __init__(self, expected: int, received: int):
        self.expected = expected
        self.received = received
        super().__init__(f"incorrect arity: expected {expected} argument(s), got {received}")


class ArgumentTypeMismatch(PlugsimException):
    """Raised when a run argument is not a subtype of its declared parameter type."""

    kind = ErrorKind.ARGUMENT_TYPE_MISMATCH

    def __init__(self, index: int, expected: Any, received: Any):
        self.index = index
        self.expected = expected
        self.received = received
        super().__init__(
            f"argument at index {index} is of incorrect type: expected {expected}, got {received}"
        )


class TypeMismatch(PlugsimException):
    """Raised when a converted or assigned value does not fit the type it was checked against."""

    kind = ErrorKind.TYPE_MISMATCH


class DanglingReference(PlugsimException):
    """Raised when a native object refers to a value its environment no longer holds."""

    kind = ErrorKind.DANGLING_REFERENCE

    def __init__(self, uuid: str):
        self.uuid = uuid
        super().__init__(f"referenced value {uuid} no longer exists in the environment")


class NoMatchingResultType(PlugsimException):
    """Raised when the terminal value of a run matches none of the declared result alternatives."""

    kind = ErrorKind.NO_MATCHING_RESULT_TYPE


class PluginRuntimeFailure(PlugsimException):
    """
    An exception raised by plugin supplied ``start``/``step``/``validate_edge``.

    The runner never lets this escape: it is turned into an error value and
    returned together with the partial trace.

    Example:
        >>> try:
        ...     raise ValueError("boom")
        ... except ValueError as exc:
        ...     failure = PluginRuntimeFailure.from_exception(exc)
        >>> failure.error_kind
        'ValueError'
    """

    kind = ErrorKind.PLUGIN_RUNTIME_FAILURE

    def __init__(self, error_kind: str, message: str, stack: str = ""):
        self.error_kind = error_kind
        self.message = message
        self.stack = stack
        super().__init__(f"{error_kind}: {message}")

    @classmethod
    def from_exception(cls, exc: BaseException) -> "PluginRuntimeFailure":
        stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        return cls(type(exc).__name__, str(exc), stack)


class PluginCompilationError(PlugsimException):
    """Raised by the loader when plugin source could not be turned into a module."""

    def __init__(self, plugin_file: str, diagnostics: Optional[Dict[str, List[Any]]] = None):
        self.plugin_file = plugin_file
        self.diagnostics = diagnostics or {}
        count = sum(len(items) for items in self.diagnostics.values())
        super().__init__(f"failed to compile {plugin_file} ({count} diagnostic(s))")


class ManifestError(PlugsimException):
    """Raised when a plugin directory has no usable manifest."""

    pass
