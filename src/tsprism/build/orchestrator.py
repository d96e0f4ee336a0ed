"""
Build orchestration for tsprism packages.

This module coordinates the entire build process, from locating the build
configuration to writing and verifying the package exports. It integrates
all build system components:
- Configuration parsing (tsprism.config.*, package.json, per-target tsconfig)
- Target classification (primary / secondary / duplicate)
- Compilation (sequential or on a worker pool)
- Export map synthesis and dist verification
- Build report
"""

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from ..config.build_config import (
    filter_targets,
    find_build_config,
    read_package_type,
    validate_options_files,
)
from ..config.target_options import ParsedTargetConfig, parse_target_options
from ..errors import ConfigError, DistMissingError, PrismError
from .build_logger import BuildLogger
from .build_report import write_build_report
from .build_utils import prepare_out_dirs, validate_out_dirs
from .classifier import ESM, BuildPlan, DuplicateRole, PrimaryRole, SecondaryRole, classify_targets
from .compilation_executor import CompilationExecutor, CompileResult
from .compiler import ICompiler
from .diagnostics import failed_targets, failure_summary, report_diagnostics
from .exports import ExportSynthesizer, verify_dist_files, write_module_type_shims
from .parallel_orchestrator import ParallelOrchestrator


class BuildOrchestratorError(PrismError):
    """Exception raised for build orchestration errors."""

    code = "BUILD_ERROR"


class SequentialOrchestrator:
    """
    Compiles every target one at a time in declared order.

    Declared order already guarantees that a duplicate's source and a
    secondary's primary finish before the dependent target runs.
    """

    def __init__(self, compiler: ICompiler, logger: Optional[BuildLogger] = None):
        """
        Initialize sequential orchestrator.

        Args:
            compiler: Compiler collaborator
            logger: Build output reporter
        """
        self.logger = logger or BuildLogger()
        self.executor = CompilationExecutor(compiler, self.logger)

    def compile_all(
        self,
        parsed_configs: Sequence[ParsedTargetConfig],
        clean: bool = True,
        default_format: str = ESM,
    ) -> List[CompileResult]:
        """
        Classify and compile all targets.

        Args:
            parsed_configs: Parsed targets in declared order
            clean: Remove each out_dir before compiling
            default_format: Module format for primaries the options leave open

        Returns:
            CompileResult per target, in declared order

        Raises:
            ValidationError: If targets share or nest output directories
        """
        validate_out_dirs(parsed_configs)
        plan = classify_targets(parsed_configs, default_format=default_format)
        return self.compile_plan(plan, clean=clean)

    def compile_plan(self, plan: BuildPlan, clean: bool = True) -> List[CompileResult]:
        """Run an already computed plan."""
        prepare_out_dirs((p.parsed for p in plan), clean=clean)
        results: Dict[str, CompileResult] = {}
        ordered = []
        for planned in plan:
            result = self.executor.execute(planned, plan, results)
            results[planned.name] = result
            ordered.append(result)
        return ordered


@dataclass
class BuildOptions:
    """Options for a single build invocation."""

    project_dir: Path
    config_path: Optional[Path] = None
    targets: Optional[List[str]] = None
    parallel: bool = False
    max_workers: Optional[int] = None
    clean: bool = True
    dry_run: bool = False
    report_path: Optional[Path] = None


@dataclass
class BuildResult:
    """Result of a complete build operation."""

    success: bool
    message: str
    compile_results: List[CompileResult] = field(default_factory=list)
    exports_map: Optional[Dict[str, Any]] = None
    missing_files: List[str] = field(default_factory=list)
    total_time_ms: float = 0.0
    phase_times_ms: Dict[str, float] = field(default_factory=dict)

    @property
    def failed_targets(self) -> List[str]:
        return [r.name for r in self.compile_results if not r.success]


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


class BuildOrchestrator:
    """
    Orchestrates the complete build process for a TypeScript package.

    This class coordinates all phases of the build:
    1. Locate and validate the build configuration
    2. Parse every target's tsconfig and classify the targets
    3. Compile (sequentially or in parallel) and report diagnostics
    4. Write package.json exports and module type shims
    5. Verify every exported dist file exists

    Example usage:
        orchestrator = BuildOrchestrator(TypeScriptCompiler(Path(".")))
        result = orchestrator.build(BuildOptions(project_dir=Path(".")))
        if result.success:
            print(result.exports_map)
    """

    def __init__(self, compiler: ICompiler, logger: Optional[BuildLogger] = None):
        """
        Initialize build orchestrator.

        Args:
            compiler: Compiler collaborator
            logger: Build output reporter
        """
        self.compiler = compiler
        self.logger = logger or BuildLogger()

    def build(self, options: BuildOptions) -> BuildResult:
        """
        Execute complete build process.

        Args:
            options: Build options

        Returns:
            BuildResult with build status, per-target results and timings
        """
        start_time = time.perf_counter()
        phase_times: Dict[str, float] = {}
        project_dir = Path(options.project_dir).resolve()
        result = BuildResult(success=False, message="")

        try:
            # Phase 1: Resolve configuration
            phase_start = time.perf_counter()
            self.logger.verbose("[1/4] Resolving build configuration...")
            resolved = find_build_config(project_dir, options.config_path, logger=self.logger)
            if resolved is None:
                raise ConfigError(
                    f"No build configuration found in {project_dir}. Create "
                    'tsprism.config.yml or add a "tsprism" key to package.json.',
                    code="CONFIG_NOT_FOUND",
                )
            self.logger.verbose(f"      Config: {resolved.label}")

            config = resolved.config
            filtered = bool(options.targets)
            if filtered:
                config = filter_targets(config, options.targets)
            validate_options_files(config, project_dir, resolved.label)

            parsed = [parse_target_options(t, project_dir, logger=self.logger) for t in config.targets]
            validate_out_dirs(parsed)
            plan = classify_targets(parsed, default_format=read_package_type(project_dir))
            phase_times["resolve"] = _elapsed_ms(phase_start)
            self._print_plan(plan)

            synthesizer = ExportSynthesizer(config.exports, project_dir)

            if options.dry_run:
                result.exports_map = synthesizer.resolve(self._planned_results(plan))
                self.logger.info(synthesizer.diff(result.exports_map))
                result.success = True
                result.message = "Dry run complete (nothing compiled)"
            else:
                self._compile_and_export(plan, options, synthesizer, filtered, result, phase_times)
                result.success = True
                result.message = (
                    f"Build successful: {len(result.compile_results)} target(s) in "
                    f"{_elapsed_ms(start_time):.0f}ms"
                )
                self.logger.info(result.message)
            self.logger.clear()

        except PrismError as e:
            result.success = False
            result.message = str(e)
            self.logger.error(f"[tsprism] {e}")
            self.logger.flush()
        except Exception as e:
            result.success = False
            result.message = f"Unexpected error: {e}"
            self.logger.error(f"[tsprism] {result.message}")
            self.logger.flush()
        finally:
            result.total_time_ms = _elapsed_ms(start_time)
            result.phase_times_ms = phase_times

        if options.report_path is not None:
            report_path = write_build_report(project_dir / options.report_path, result, project_dir)
            self.logger.verbose(f"Build report written to {report_path}")

        return result

    def _compile_and_export(
        self,
        plan: BuildPlan,
        options: BuildOptions,
        synthesizer: ExportSynthesizer,
        filtered: bool,
        result: BuildResult,
        phase_times: Dict[str, float],
    ) -> None:
        """
        Compile the plan, write exports and verify dist files.

        Fills ``result`` as it goes so a failure still reports what ran.

        Raises:
            BuildOrchestratorError: If any target failed
            DistMissingError: If exported files are missing after the build
        """
        project_dir = synthesizer.package_root

        # Phase 2: Compile
        phase_start = time.perf_counter()
        mode = "parallel" if options.parallel else "sequential"
        self.logger.info(
            f"[2/4] Compiling {len(plan)} target(s) ({plan.compile_count} compile(s), {mode})..."
        )
        if options.parallel:
            # The bar would interleave with per-target lines at verbose level
            orchestrator = ParallelOrchestrator(
                self.compiler,
                self.logger,
                max_workers=options.max_workers,
                show_progress=self.logger.level == "info",
            )
        else:
            orchestrator = SequentialOrchestrator(self.compiler, self.logger)
        compile_results = orchestrator.compile_plan(plan, clean=options.clean)
        phase_times["compile"] = _elapsed_ms(phase_start)
        result.compile_results = compile_results

        report_diagnostics(compile_results, self.logger, project_dir)
        for compile_result in compile_results:
            self._print_target(compile_result)

        if failed_targets(compile_results):
            raise BuildOrchestratorError(failure_summary(compile_results))

        # Phase 3: Exports
        phase_start = time.perf_counter()
        self.logger.verbose("[3/4] Writing package exports...")
        exports_map = synthesizer.resolve(compile_results)
        result.exports_map = exports_map
        if filtered:
            self.logger.info("      Filtered build: package.json exports not updated")
            write_module_type_shims(compile_results)
        elif synthesizer.write(exports_map, compile_results):
            self.logger.info("      Updated package.json exports")
        else:
            self.logger.verbose("      package.json exports unchanged")

        # Phase 4: Verify
        self.logger.verbose("[4/4] Verifying dist files...")
        missing = verify_dist_files(exports_map, project_dir)
        phase_times["exports"] = _elapsed_ms(phase_start)
        if missing:
            result.missing_files = missing
            raise DistMissingError(missing)

    def _planned_results(self, plan: BuildPlan) -> List[CompileResult]:
        """Placeholder results for resolving exports without compiling."""
        return [
            CompileResult(
                target=p.parsed.target,
                diagnostics=(),
                success=True,
                out_dir=p.parsed.out_dir,
                root_dir=p.parsed.root_dir,
                compile_time_ms=0.0,
                deduped=isinstance(p.role, DuplicateRole),
                role=p.role.kind,
                module_format=p.role.module_format,
                emits_declarations=p.parsed.emits_declarations,
            )
            for p in plan
        ]

    def _print_plan(self, plan: BuildPlan) -> None:
        self.logger.info(f"Targets ({len(plan)}):")
        for planned in plan:
            role = planned.role
            if isinstance(role, PrimaryRole):
                detail = "full compile"
            elif isinstance(role, SecondaryRole):
                detail = f"transpile, declarations from {role.primary}"
            else:
                detail = f"copy of {role.source}"
            suffix = planned.parsed.target.polyfill_suffix
            polyfills = f", polyfills {suffix} ({len(planned.polyfills)})" if suffix else ""
            self.logger.info(
                f"  {planned.name:<12} {planned.parsed.target.condition:<10} "
                f"{role.module_format:<9} {detail}{polyfills}"
            )

    def _print_target(self, result: CompileResult) -> None:
        status = "ok" if result.success else "FAILED"
        flags = []
        if result.deduped:
            flags.append("deduped")
        if result.fast_path:
            flags.append("fast path")
        extra = f" [{', '.join(flags)}]" if flags else ""
        self.logger.verbose(
            f"      {result.name}: {status} in {result.compile_time_ms:.0f}ms{extra}"
        )
