"""
Build system components for tsprism.

This module provides the build engine implementation including:
- Target classification (primary / secondary / duplicate)
- Polyfill substitution
- Compilation through a compiler collaborator
- Sequential and parallel orchestration
- Export map synthesis
- Watch mode
"""

from .build_logger import BuildLogger
from .classifier import BuildPlan, DuplicateRole, PrimaryRole, SecondaryRole, classify_targets
from .compilation_executor import CompilationExecutor, CompileResult
from .compiler import CompileRequest, Diagnostic, EmitResult, EmittedFile, ICompiler, SourceText
from .exports import ExportSynthesizer, resolve_exports_map, verify_dist_files
from .orchestrator import (
    BuildOptions,
    BuildOrchestrator,
    BuildOrchestratorError,
    BuildResult,
    SequentialOrchestrator,
)
from .parallel_orchestrator import ParallelOrchestrator
from .typescript_compiler import TypeScriptCompiler
from .watcher import BuildWatcher

__all__ = [
    'BuildLogger',
    'BuildOptions',
    'BuildOrchestrator',
    'BuildOrchestratorError',
    'BuildPlan',
    'BuildResult',
    'BuildWatcher',
    'CompilationExecutor',
    'CompileRequest',
    'CompileResult',
    'Diagnostic',
    'DuplicateRole',
    'EmitResult',
    'EmittedFile',
    'ExportSynthesizer',
    'ICompiler',
    'ParallelOrchestrator',
    'PrimaryRole',
    'SecondaryRole',
    'SequentialOrchestrator',
    'SourceText',
    'TypeScriptCompiler',
    'classify_targets',
    'resolve_exports_map',
    'verify_dist_files',
]
