"""Machine-readable build report.

Written as JSON when a build is run with ``--report PATH``. The report lists
per-target role, dedup and fast-path flags, timing and outcome, plus the
build's phase timings and any missing dist files.
"""

import json
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict

from .compilation_executor import CompileResult

if TYPE_CHECKING:
    from .orchestrator import BuildResult

REPORT_VERSION = 1


def target_entry(result: CompileResult, package_root: Path) -> Dict[str, Any]:
    return {
        "name": result.name,
        "condition": result.target.condition,
        "role": result.role,
        "moduleFormat": result.module_format,
        "deduped": result.deduped,
        "fastPath": result.fast_path,
        "success": result.success,
        "compileTimeMs": round(result.compile_time_ms, 3),
        "errorCount": result.error_count,
        "diagnosticCount": len(result.diagnostics),
        "failedDependency": result.failed_dependency,
        "outDir": os.path.relpath(result.out_dir, package_root).replace(os.sep, "/"),
    }


def build_report(result: "BuildResult", package_root: Path) -> Dict[str, Any]:
    """Assemble the report dictionary for a finished build."""
    return {
        "version": REPORT_VERSION,
        "success": result.success,
        "message": result.message,
        "totalTimeMs": round(result.total_time_ms, 3),
        "phaseTimesMs": {k: round(v, 3) for k, v in result.phase_times_ms.items()},
        "targets": [target_entry(r, package_root) for r in result.compile_results],
        "missingFiles": list(result.missing_files),
    }


def write_build_report(report_path: Path, result: "BuildResult", package_root: Path) -> Path:
    """
    Write the build report as JSON.

    Args:
        report_path: Destination file (parent directories are created)
        result: Finished build
        package_root: Base for the relative paths in the report

    Returns:
        Path written
    """
    report_path = Path(report_path)
    report_path.parent.mkdir(parents=True, exist_ok=True)
    with open(report_path, "w", encoding="utf-8") as f:
        json.dump(build_report(result, package_root), f, indent=2)
        f.write("\n")
    return report_path
