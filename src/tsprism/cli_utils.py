"""CLI utility functions for tsprism.

This module provides common utilities used by the CLI including:
- Error and success formatting
- Per-target result tables
- Project path validation
"""

import sys
from pathlib import Path
from typing import List, Optional, Sequence

from tsprism.build.compilation_executor import CompileResult


class ErrorFormatter:
    """Formats and displays status messages with ANSI color codes."""

    RED = "\033[1;31m"
    GREEN = "\033[1;32m"
    YELLOW = "\033[1;33m"
    RESET = "\033[0m"

    @staticmethod
    def print_error(title: str, message: str) -> None:
        """Print formatted error message to stderr.

        Args:
            title: Error title (e.g., "Build failed")
            message: Error message details
        """
        print(file=sys.stderr)
        print(f"{ErrorFormatter.RED}✗ {title}{ErrorFormatter.RESET}", file=sys.stderr)
        if message:
            print(file=sys.stderr)
            print(message, file=sys.stderr)
        print(file=sys.stderr)

    @staticmethod
    def print_success(message: str) -> None:
        print()
        print(f"{ErrorFormatter.GREEN}✓ {message}{ErrorFormatter.RESET}")

    @staticmethod
    def print_warning(message: str) -> None:
        print(file=sys.stderr)
        print(f"{ErrorFormatter.YELLOW}! {message}{ErrorFormatter.RESET}", file=sys.stderr)

    @staticmethod
    def handle_keyboard_interrupt() -> None:
        """Report an interrupted build and exit with the SIGINT status."""
        ErrorFormatter.print_warning("Build interrupted")
        sys.exit(130)

    @staticmethod
    def handle_unexpected_error(error: Exception, verbose: bool = False) -> None:
        """Report an unexpected error and exit.

        Args:
            error: The exception to report
            verbose: Whether to print the traceback
        """
        ErrorFormatter.print_error("Unexpected error", f"{type(error).__name__}: {error}")
        if verbose:
            import traceback

            print("Traceback:", file=sys.stderr)
            print(traceback.format_exc(), file=sys.stderr)
        sys.exit(1)


class ResultTableFormatter:
    """Formats per-target compile results as an aligned table."""

    HEADERS = ("Target", "Condition", "Role", "Format", "Time", "Status")

    @staticmethod
    def status(result: CompileResult) -> str:
        if result.success:
            if result.deduped:
                return "copied"
            return "transpiled" if result.fast_path else "compiled"
        if result.failed_dependency is not None:
            return f"failed ({result.failed_dependency})"
        return "failed"

    @staticmethod
    def format_table(results: Sequence[CompileResult]) -> str:
        """Format results, one row per target in declared order.

        Args:
            results: Compile results

        Returns:
            Table text without trailing newline
        """
        rows: List[Sequence[str]] = [ResultTableFormatter.HEADERS]
        for result in results:
            rows.append(
                (
                    result.name,
                    result.target.condition,
                    result.role,
                    result.module_format,
                    f"{result.compile_time_ms:.0f}ms",
                    ResultTableFormatter.status(result),
                )
            )
        widths = [max(len(row[i]) for row in rows) for i in range(len(ResultTableFormatter.HEADERS))]
        lines = []
        for row in rows:
            lines.append("  ".join(cell.ljust(width) for cell, width in zip(row, widths)).rstrip())
        return "\n".join(lines)


class PathValidator:
    """Validates project paths and directories."""

    @staticmethod
    def validate_project_dir(project_dir: Path) -> None:
        """Validate that project directory exists and contains package.json.

        Args:
            project_dir: Path to validate

        Raises:
            SystemExit: If the path is missing, not a directory or not a package
        """
        if not project_dir.exists():
            PathValidator._fail(f"Path does not exist: {project_dir}")
        if not project_dir.is_dir():
            PathValidator._fail(f"Path is not a directory: {project_dir}")
        if not (project_dir / "package.json").is_file():
            PathValidator._fail(f"No package.json found in {project_dir}")

    @staticmethod
    def validate_config_path(project_dir: Path, config_path: Optional[Path]) -> None:
        """Validate an explicit --config path relative to the project.

        Raises:
            SystemExit: If the config file does not exist
        """
        if config_path is None:
            return
        if not (project_dir / config_path).is_file():
            PathValidator._fail(f"Config file does not exist: {project_dir / config_path}")

    @staticmethod
    def _fail(message: str) -> None:
        print(f"{ErrorFormatter.RED}✗ Error: {message}{ErrorFormatter.RESET}", file=sys.stderr)
        sys.exit(2)
