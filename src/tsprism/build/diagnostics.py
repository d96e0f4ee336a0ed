"""Diagnostic formatting and failure summaries."""

import os
from pathlib import Path
from typing import List, Optional, Sequence

from .build_logger import BuildLogger
from .compiler import ERROR, WARNING, Diagnostic
from .compilation_executor import CompileResult


def format_single_diagnostic(diagnostic: Diagnostic, package_root: Optional[Path] = None) -> str:
    """
    Format a diagnostic the way tsc prints it.

    Example:
        src/index.ts(3,7): error TS2322: Type 'string' is not assignable to type 'number'.
    """
    prefix = ""
    if diagnostic.file:
        file_name = diagnostic.file
        if package_root is not None:
            try:
                file_name = os.path.relpath(file_name, package_root)
            except ValueError:
                # Different drive on Windows
                pass
        file_name = file_name.replace(os.sep, "/")
        if diagnostic.line is not None:
            prefix = f"{file_name}({diagnostic.line},{diagnostic.column or 1}): "
        else:
            prefix = f"{file_name}: "
    code = f" TS{diagnostic.code}" if diagnostic.code is not None else ""
    return f"{prefix}{diagnostic.category}{code}: {diagnostic.message}"


def format_diagnostics(result: CompileResult, package_root: Optional[Path] = None) -> List[str]:
    """Format every diagnostic of one target, prefixed with the target name."""
    return [
        f"[{result.name}] {format_single_diagnostic(d, package_root)}" for d in result.diagnostics
    ]


def report_diagnostics(
    results: Sequence[CompileResult],
    logger: BuildLogger,
    package_root: Optional[Path] = None,
) -> int:
    """
    Print diagnostics for all targets in declared order.

    Errors go through logger.error, warnings through logger.warn and
    suggestions/messages only in verbose mode.

    Returns:
        Total number of error diagnostics
    """
    errors = 0
    for result in results:
        for diagnostic, line in zip(result.diagnostics, format_diagnostics(result, package_root)):
            if diagnostic.category == ERROR:
                errors += 1
                logger.error(line)
            elif diagnostic.category == WARNING:
                logger.warn(line)
            else:
                logger.verbose(line)
    return errors


def failed_targets(results: Sequence[CompileResult]) -> List[CompileResult]:
    return [r for r in results if not r.success]


def failure_summary(results: Sequence[CompileResult]) -> str:
    """
    Describe every failed target in one message.

    Dependent failures are attributed to the target they depend on.
    """
    failed = failed_targets(results)
    if not failed:
        return ""
    parts = []
    for result in failed:
        if result.failed_dependency is not None:
            parts.append(f"{result.name} (dependency '{result.failed_dependency}' failed)")
        else:
            parts.append(f"{result.name} ({result.error_count} error(s))")
    return f"Compilation failed for {len(failed)} target(s): " + ", ".join(parts)
