"""Compilation Executor.

This module executes one planned target according to its role: a full
type-checked compile for primaries, a transpile-only emit plus declaration
copy for secondaries, and a plain output-tree copy for duplicates.

Design:
    - prepare_task() builds a self-contained CompileTask (substituted sources,
      final options) in the calling process
    - run_compile_task() is a module-level function so it can run in a worker
      process; it only invokes the compiler and writes into the task's own
      out_dir
    - finish_secondary() and copy_duplicate() read other targets' output and
      always run in the coordinating process after their dependency settled
    - Compiler failures never propagate; they become one synthetic error
      diagnostic on the target's result
"""

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

from ..config.build_config import TargetConfig
from .build_logger import BuildLogger
from .build_utils import copy_declarations, copy_tree, write_emitted_files
from .classifier import (
    AMBIGUOUS_MODULE_KINDS,
    COMMONJS,
    BuildPlan,
    DuplicateRole,
    PlannedTarget,
    SecondaryRole,
    module_format_from_option,
)
from .compiler import MODE_FULL, MODE_TRANSPILE, CompileRequest, Diagnostic, ICompiler
from .polyfill import compile_roots, read_sources

# Options that only make sense for a whole-program declaration emit
_DECLARATION_OPTIONS = ("declaration", "declarationMap", "composite", "emitDeclarationOnly")
_INCREMENTAL_OPTIONS = ("incremental", "tsBuildInfoFile")


@dataclass(frozen=True)
class CompileResult:
    """Outcome of building one target."""

    target: TargetConfig
    diagnostics: Tuple[Diagnostic, ...]
    success: bool
    out_dir: Path
    root_dir: Path
    compile_time_ms: float
    deduped: bool
    role: str
    module_format: str = "esm"
    fast_path: bool = False
    emits_declarations: bool = False
    failed_dependency: Optional[str] = None

    @property
    def name(self) -> str:
        return self.target.name

    @property
    def error_count(self) -> int:
        return sum(1 for d in self.diagnostics if d.is_error)


@dataclass(frozen=True)
class CompileTask:
    """Self-contained unit of work for one compiler invocation."""

    request: CompileRequest
    fast_path: bool

    @property
    def target_name(self) -> str:
        return self.request.target_name


@dataclass(frozen=True)
class TaskOutcome:
    """What a compiler invocation produced, as seen by the coordinator."""

    target_name: str
    diagnostics: Tuple[Diagnostic, ...]
    written: Tuple[str, ...]
    compile_time_ms: float

    @property
    def success(self) -> bool:
        return not any(d.is_error for d in self.diagnostics)


def synthetic_diagnostic(target_name: str, error: BaseException) -> Diagnostic:
    """Describe a failed compiler invocation as a single error diagnostic."""
    return Diagnostic(
        message=f"Compiler invocation failed for target '{target_name}': {error}",
    )


def run_compile_task(compiler: ICompiler, task: CompileTask) -> TaskOutcome:
    """Run the compiler for one task and write its emitted files.

    Safe to call in a worker process: it touches nothing but the task's own
    out_dir.

    Args:
        compiler: Compiler collaborator
        task: Prepared compile task

    Returns:
        TaskOutcome with diagnostics and the written paths
    """
    start = time.perf_counter()
    request = task.request
    written: Tuple[str, ...] = ()
    try:
        result = compiler.compile(request)
        Path(request.out_dir).mkdir(parents=True, exist_ok=True)
        written = tuple(str(p) for p in write_emitted_files(Path(request.out_dir), result.emitted))
        diagnostics = tuple(result.diagnostics)
    except Exception as e:
        # CompilerError, bad emit paths or a crashing collaborator fail this
        # target only
        diagnostics = (synthetic_diagnostic(request.target_name, e),)
    elapsed = (time.perf_counter() - start) * 1000
    return TaskOutcome(
        target_name=request.target_name,
        diagnostics=diagnostics,
        written=written,
        compile_time_ms=elapsed,
    )


def secondary_options(options: Mapping[str, Any], module_format: str) -> Dict[str, Any]:
    """
    Derive transpile-only options for a secondary target.

    Declarations are switched off (they are copied from the primary). A
    module kind that does not select the resolved format is replaced by a
    concrete one: Node16/NodeNext because a per-file transpile cannot consult
    package.json, and any explicit kind overridden by moduleType.
    """
    result = dict(options)
    for key in _DECLARATION_OPTIONS:
        result[key] = False
    for key in _INCREMENTAL_OPTIONS:
        result.pop(key, None)

    if module_format_from_option(result.get("module")) != module_format:
        if module_format == COMMONJS:
            result["module"] = "commonjs"
            result["moduleResolution"] = "node10"
        else:
            result["module"] = "esnext"
            result["moduleResolution"] = "bundler"
    elif result.get("moduleResolution") in AMBIGUOUS_MODULE_KINDS:
        result["moduleResolution"] = "node10" if module_format == COMMONJS else "bundler"
    return result


class CompilationExecutor:
    """Executes planned targets against a compiler collaborator.

    This class handles:
    - Building compile tasks with polyfill substitution applied
    - Running full and transpile-only compiles
    - Copying declarations from primaries into secondaries
    - Copying duplicate output trees
    """

    def __init__(self, compiler: ICompiler, logger: Optional[BuildLogger] = None):
        """Initialize compilation executor.

        Args:
            compiler: Compiler collaborator
            logger: Build output reporter
        """
        self.compiler = compiler
        self.logger = logger or BuildLogger()

    def execute(
        self,
        planned: PlannedTarget,
        plan: BuildPlan,
        results: Mapping[str, CompileResult],
    ) -> CompileResult:
        """Execute one target.

        Args:
            planned: Target to execute
            plan: Frozen build plan
            results: Results of every earlier target, by name

        Returns:
            CompileResult for the target
        """
        role = planned.role
        if isinstance(role, DuplicateRole):
            return self.copy_duplicate(planned, results[role.source])

        try:
            task = self.prepare_task(planned, plan)
        except OSError as e:
            return self.failed_result(planned, synthetic_diagnostic(planned.name, e))

        outcome = run_compile_task(self.compiler, task)
        if isinstance(role, SecondaryRole):
            return self.finish_secondary(planned, task, outcome, results[role.primary])
        return self.finish_primary(planned, task, outcome)

    def prepare_task(self, planned: PlannedTarget, plan: BuildPlan) -> CompileTask:
        """Build the self-contained compile task for a primary or secondary.

        Args:
            planned: Target to prepare
            plan: Frozen build plan (for the build-wide override file set)

        Returns:
            CompileTask ready for run_compile_task()

        Raises:
            OSError: If a source file cannot be read
        """
        parsed = planned.parsed
        roots = compile_roots(parsed.files, parsed.target.polyfill_suffix, set(plan.polyfill_files))
        sources = tuple(read_sources(roots, dict(planned.polyfills)))

        role = planned.role
        if isinstance(role, SecondaryRole):
            primary = plan.get(role.primary).parsed
            # Declarations can only be copied when the primary produces them
            fast_path = primary.emits_declarations or not parsed.emits_declarations
        else:
            fast_path = False

        if fast_path:
            mode = MODE_TRANSPILE
            options = secondary_options(parsed.options, role.module_format)
            emit_declarations = False
        else:
            mode = MODE_FULL
            options = dict(parsed.options)
            emit_declarations = parsed.emits_declarations

        self.logger.verbose(
            f"  {planned.name}: {role.kind} ({mode}, {role.module_format}, "
            f"{len(sources)} file(s), {len(planned.polyfills)} polyfill(s))"
        )
        for original, override in sorted(planned.polyfills.items()):
            self.logger.verbose(f"    {Path(override).name} -> {Path(original).name}")

        request = CompileRequest(
            target_name=planned.name,
            mode=mode,
            sources=sources,
            options=options,
            root_dir=str(parsed.root_dir),
            out_dir=str(parsed.out_dir),
            module_format=role.module_format,
            emit_declarations=emit_declarations,
        )
        return CompileTask(request=request, fast_path=fast_path)

    def finish_primary(
        self,
        planned: PlannedTarget,
        task: CompileTask,
        outcome: TaskOutcome,
    ) -> CompileResult:
        """Turn a primary's compile outcome into its result."""
        return CompileResult(
            target=planned.parsed.target,
            diagnostics=outcome.diagnostics,
            success=outcome.success,
            out_dir=planned.parsed.out_dir,
            root_dir=planned.parsed.root_dir,
            compile_time_ms=outcome.compile_time_ms,
            deduped=False,
            role=planned.role.kind,
            module_format=planned.role.module_format,
            fast_path=task.fast_path,
            emits_declarations=planned.parsed.emits_declarations,
        )

    def finish_secondary(
        self,
        planned: PlannedTarget,
        task: CompileTask,
        outcome: TaskOutcome,
        primary_result: CompileResult,
    ) -> CompileResult:
        """Complete a secondary after its primary settled.

        Copies the primary's declarations into the secondary's out_dir when
        the transpile-only path was taken. A failed primary fails the
        secondary and no declarations are copied.
        """
        parsed = planned.parsed
        elapsed = outcome.compile_time_ms
        failed_dependency = None

        if not primary_result.success:
            failed_dependency = primary_result.failed_dependency or primary_result.name
            success = False
        else:
            success = outcome.success

        if success and task.fast_path and parsed.emits_declarations:
            start = time.perf_counter()
            try:
                copied = copy_declarations(
                    primary_result.out_dir,
                    primary_result.root_dir,
                    parsed.out_dir,
                    parsed.root_dir,
                )
            except OSError as e:
                return self.failed_result(planned, synthetic_diagnostic(planned.name, e))
            elapsed += (time.perf_counter() - start) * 1000
            self.logger.verbose(
                f"  {planned.name}: copied {copied} declaration file(s) from {primary_result.name}"
            )

        return CompileResult(
            target=parsed.target,
            diagnostics=outcome.diagnostics,
            success=success,
            out_dir=parsed.out_dir,
            root_dir=parsed.root_dir,
            compile_time_ms=elapsed,
            deduped=False,
            role=planned.role.kind,
            module_format=planned.role.module_format,
            fast_path=task.fast_path,
            emits_declarations=parsed.emits_declarations,
            failed_dependency=failed_dependency,
        )

    def copy_duplicate(self, planned: PlannedTarget, source_result: CompileResult) -> CompileResult:
        """Copy a completed source target's output tree into a duplicate.

        Args:
            planned: Duplicate target
            source_result: Result of the target it duplicates

        Returns:
            CompileResult with deduped=True and success mirroring the source
        """
        parsed = planned.parsed
        if not source_result.success:
            return CompileResult(
                target=parsed.target,
                diagnostics=(),
                success=False,
                out_dir=parsed.out_dir,
                root_dir=parsed.root_dir,
                compile_time_ms=0.0,
                deduped=True,
                role=planned.role.kind,
                module_format=planned.role.module_format,
                emits_declarations=source_result.emits_declarations,
                failed_dependency=source_result.failed_dependency or source_result.name,
            )

        start = time.perf_counter()
        try:
            parsed.out_dir.mkdir(parents=True, exist_ok=True)
            copied = copy_tree(source_result.out_dir, parsed.out_dir)
        except OSError as e:
            return self.failed_result(planned, synthetic_diagnostic(planned.name, e), deduped=True)
        elapsed = (time.perf_counter() - start) * 1000
        self.logger.verbose(
            f"  {planned.name}: copied {copied} file(s) from {source_result.name} "
            f"({elapsed:.0f}ms)"
        )
        return CompileResult(
            target=parsed.target,
            diagnostics=(),
            success=True,
            out_dir=parsed.out_dir,
            root_dir=parsed.root_dir,
            compile_time_ms=elapsed,
            deduped=True,
            role=planned.role.kind,
            module_format=planned.role.module_format,
            emits_declarations=source_result.emits_declarations,
        )

    def failed_result(
        self,
        planned: PlannedTarget,
        diagnostic: Diagnostic,
        deduped: bool = False,
    ) -> CompileResult:
        """Result for a target whose work could not be carried out."""
        return CompileResult(
            target=planned.parsed.target,
            diagnostics=(diagnostic,),
            success=False,
            out_dir=planned.parsed.out_dir,
            root_dir=planned.parsed.root_dir,
            compile_time_ms=0.0,
            deduped=deduped,
            role=planned.role.kind,
            module_format=planned.role.module_format,
            emits_declarations=planned.parsed.emits_declarations,
        )
