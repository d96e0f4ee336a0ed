"""Abstract interface for the compiler collaborator.

The build engine decides when and how often a target is compiled; the actual
type-checking and emit is delegated to an ICompiler implementation. A request
is fully self-contained (source contents already substituted, options already
resolved) so it can cross a process boundary, and the result lists emitted
files in memory so the caller decides where they are written.

Two modes are supported:
    full      - whole-program compile with type checking (and declarations
                when the options enable them)
    transpile - per-file syntax-directed emit without cross-file type
                resolution; only syntactic diagnostics are reported
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

MODE_FULL = "full"
MODE_TRANSPILE = "transpile"

ERROR = "error"
WARNING = "warning"
SUGGESTION = "suggestion"
MESSAGE = "message"


@dataclass(frozen=True)
class Diagnostic:
    """A single compiler diagnostic."""

    message: str
    category: str = ERROR
    code: Optional[int] = None
    file: Optional[str] = None
    line: Optional[int] = None
    column: Optional[int] = None

    @property
    def is_error(self) -> bool:
        return self.category == ERROR


@dataclass(frozen=True)
class SourceText:
    """A source file as one target sees it."""

    path: str
    content: str
    substituted_from: Optional[str] = None


@dataclass(frozen=True)
class CompileRequest:
    """Everything a compiler needs to compile one target."""

    target_name: str
    mode: str
    sources: Tuple[SourceText, ...]
    options: Dict[str, Any] = field(hash=False)
    root_dir: str
    out_dir: str
    module_format: str
    emit_declarations: bool


@dataclass(frozen=True)
class EmittedFile:
    """An output file, relative to the target's out_dir (POSIX separators)."""

    path: str
    content: str


@dataclass(frozen=True)
class EmitResult:
    """Result of one compiler invocation."""

    diagnostics: Tuple[Diagnostic, ...] = ()
    emitted: Tuple[EmittedFile, ...] = ()

    @property
    def success(self) -> bool:
        return not any(d.is_error for d in self.diagnostics)


class ICompiler(ABC):
    """Interface for compiler collaborators.

    Implementations must be picklable when used with the process-based
    parallel orchestrator.
    """

    @abstractmethod
    def compile(self, request: CompileRequest) -> EmitResult:
        """Compile or transpile a target.

        Args:
            request: Self-contained compile request

        Returns:
            EmitResult with diagnostics and emitted files

        Raises:
            CompilerError: If the compiler could not run at all
        """
        pass
