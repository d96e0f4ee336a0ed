"""
Parallel compilation of build targets.

The plan is classified once, before any work is dispatched, and is read-only
afterwards. Every primary and secondary compile is submitted to a
concurrent.futures pool as a self-contained CompileTask; workers only write
into their own target's out_dir. Once the whole pool has settled, the
coordinator copies secondary declarations and duplicate output trees in
declared order, so no copy ever reads a directory a worker is still writing.

Output trees are identical to SequentialOrchestrator's for the same plan.
"""

from concurrent.futures import Executor, ProcessPoolExecutor, ThreadPoolExecutor, as_completed
from typing import Dict, List, Optional, Sequence

import psutil
from tqdm import tqdm

from ..config.target_options import ParsedTargetConfig
from .build_logger import BuildLogger
from .build_utils import prepare_out_dirs, validate_out_dirs
from .classifier import ESM, BuildPlan, DuplicateRole, SecondaryRole, classify_targets
from .compilation_executor import (
    CompilationExecutor,
    CompileResult,
    CompileTask,
    TaskOutcome,
    run_compile_task,
    synthetic_diagnostic,
)
from .compiler import ICompiler


class ParallelOrchestrator:
    """
    Compiles independent targets concurrently on a worker pool.

    Example usage:
        orchestrator = ParallelOrchestrator(compiler, logger, max_workers=4)
        results = orchestrator.compile_all(parsed_configs)
    """

    def __init__(
        self,
        compiler: ICompiler,
        logger: Optional[BuildLogger] = None,
        max_workers: Optional[int] = None,
        use_processes: bool = True,
        show_progress: bool = False,
    ):
        """
        Initialize parallel orchestrator.

        Args:
            compiler: Compiler collaborator (must be picklable with processes)
            logger: Build output reporter
            max_workers: Upper bound on pool size (default: CPU count)
            use_processes: Use a process pool; threads otherwise
            show_progress: Show a tqdm progress bar while compiling
        """
        self.compiler = compiler
        self.logger = logger or BuildLogger()
        self.max_workers = max_workers
        self.use_processes = use_processes
        self.show_progress = show_progress
        self.executor = CompilationExecutor(compiler, self.logger)

    def pool_size(self, task_count: int) -> int:
        """Number of workers for a given number of compile tasks."""
        limit = self.max_workers or psutil.cpu_count(logical=True) or 1
        return max(1, min(limit, task_count))

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
        """Run an already computed plan on the worker pool."""
        prepare_out_dirs((p.parsed for p in plan), clean=clean)

        tasks: Dict[str, CompileTask] = {}
        early: Dict[str, CompileResult] = {}
        for planned in plan:
            if isinstance(planned.role, DuplicateRole):
                continue
            try:
                tasks[planned.name] = self.executor.prepare_task(planned, plan)
            except OSError as e:
                early[planned.name] = self.executor.failed_result(
                    planned, synthetic_diagnostic(planned.name, e)
                )

        outcomes = self._run_tasks(tasks)

        results: Dict[str, CompileResult] = {}
        ordered = []
        for planned in plan:
            name = planned.name
            role = planned.role
            if name in early:
                result = early[name]
            elif isinstance(role, DuplicateRole):
                result = self.executor.copy_duplicate(planned, results[role.source])
            elif isinstance(role, SecondaryRole):
                result = self.executor.finish_secondary(
                    planned, tasks[name], outcomes[name], results[role.primary]
                )
            else:
                result = self.executor.finish_primary(planned, tasks[name], outcomes[name])
            results[name] = result
            ordered.append(result)
        return ordered

    def _create_pool(self, workers: int) -> Executor:
        if self.use_processes:
            return ProcessPoolExecutor(max_workers=workers)
        return ThreadPoolExecutor(max_workers=workers)

    def _run_tasks(self, tasks: Dict[str, CompileTask]) -> Dict[str, TaskOutcome]:
        """Run every task and wait for all of them, failed or not."""
        outcomes: Dict[str, TaskOutcome] = {}
        if not tasks:
            return outcomes

        workers = self.pool_size(len(tasks))
        kind = "process" if self.use_processes else "thread"
        self.logger.verbose(f"      Worker pool: {workers} {kind}(s) for {len(tasks)} task(s)")

        with self._create_pool(workers) as pool:
            futures = {
                pool.submit(run_compile_task, self.compiler, task): name
                for name, task in tasks.items()
            }
            progress = tqdm(
                total=len(futures),
                desc="Compiling",
                unit="target",
                disable=not self.show_progress,
            )
            try:
                for future in as_completed(futures):
                    name = futures[future]
                    try:
                        outcomes[name] = future.result()
                    except Exception as e:
                        # Worker crashed or the task could not be sent to it
                        outcomes[name] = TaskOutcome(
                            target_name=name,
                            diagnostics=(synthetic_diagnostic(name, e),),
                            written=(),
                            compile_time_ms=0.0,
                        )
                    progress.update(1)
            finally:
                progress.close()
        return outcomes
