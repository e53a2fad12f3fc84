from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from types import ModuleType
from typing import TYPE_CHECKING, Dict, List, Literal, Optional, Protocol, Sequence, runtime_checkable

if TYPE_CHECKING:
    from plugsim.typesystem.values import ObjectValue, Value

DiagnosticCategory = Literal["global", "syntactic", "semantic"]


@runtime_checkable
class MethodCaller(Protocol):
    """
    Capability through which method calls on object values reach native code.

    Injected into the type extractor; every method signature it produces
    routes its invocation through this interface.
    """

    def call(self, receiver: "ObjectValue", name: str, args: Sequence["Value"]) -> Optional["Value"]:
        ...

    def call_getter(self, receiver: "ObjectValue", name: str) -> "Value":
        ...


@dataclass(frozen=True)
class Diagnostic:
    line: int
    column: int
    length: int
    message: str
    file: Optional[str] = None


@dataclass
class CompilationResult:
    """Output of a compiler service: diagnostics plus the executable module (None on failure)."""

    source: str
    module: Optional[ModuleType]
    diagnostics: Dict[DiagnosticCategory, List[Diagnostic]] = field(
        default_factory=lambda: {"global": [], "syntactic": [], "semantic": []}
    )
    file_name: str = "plugin.py"

    @property
    def ok(self) -> bool:
        return self.module is not None

    def all_diagnostics(self) -> List[Diagnostic]:
        return [d for items in self.diagnostics.values() for d in items]


@runtime_checkable
class CompilerService(Protocol):
    def compile(
        self,
        source: str,
        directory: Optional[Path] = None,
        file_name: str = "plugin.py",
    ) -> CompilationResult:
        ...


@dataclass
class RunResult:
    """
    Outcome of one program run.

    ``steps`` is the trace of State values. Exactly one of ``result`` and
    ``error`` is set once the run has finished.
    """

    steps: List["Value"] = field(default_factory=list)
    result: Optional["Value"] = None
    error: Optional["Value"] = None
    run_id: str = "-"

    @property
    def failed(self) -> bool:
        return self.error is not None

    def __repr__(self) -> str:
        outcome = f"error={self.error!r}" if self.error is not None else f"result={self.result!r}"
        return f"RunResult(run_id='{self.run_id}', steps={len(self.steps)}, {outcome})"
