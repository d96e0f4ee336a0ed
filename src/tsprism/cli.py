"""
Command-line interface for tsprism.

This module provides the `tsprism` CLI tool for building and watching
multi-target TypeScript packages.
"""

import argparse
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from tsprism.build import BuildLogger, BuildOptions, BuildOrchestrator, BuildWatcher, TypeScriptCompiler
from tsprism.cli_utils import ErrorFormatter, PathValidator, ResultTableFormatter
from tsprism.config import scaffold_config
from tsprism.errors import PrismError

VERSION = "0.1.0"


@dataclass
class BuildArgs:
    """Arguments for the build command."""

    project_dir: Path
    config: Optional[Path] = None
    targets: List[str] = field(default_factory=list)
    parallel: bool = False
    jobs: Optional[int] = None
    clean: bool = True
    dry_run: bool = False
    report: Optional[Path] = None
    quiet: bool = False
    verbose: bool = False
    node: str = "node"

    @property
    def log_level(self) -> str:
        if self.quiet:
            return "quiet"
        return "verbose" if self.verbose else "info"


def build_command(args: BuildArgs) -> None:
    """Build every target of a TypeScript package.

    Examples:
        tsprism build                      # Build the package in the current directory
        tsprism build packages/core        # Build a specific package
        tsprism build -t esm -t cjs        # Build only some targets
        tsprism build --parallel           # Compile targets on a worker pool
        tsprism build --dry-run            # Show the exports diff only
    """
    logger = BuildLogger(level=args.log_level)
    if not args.quiet:
        print(f"tsprism v{VERSION}")
        print()

    try:
        compiler = TypeScriptCompiler(args.project_dir, node=args.node)
        orchestrator = BuildOrchestrator(compiler, logger)
        result = orchestrator.build(
            BuildOptions(
                project_dir=args.project_dir,
                config_path=args.config,
                targets=args.targets or None,
                parallel=args.parallel,
                max_workers=args.jobs,
                clean=args.clean,
                dry_run=args.dry_run,
                report_path=args.report,
            )
        )

        if result.success:
            if not args.quiet:
                if result.compile_results:
                    print()
                    print(ResultTableFormatter.format_table(result.compile_results))
                ErrorFormatter.print_success(result.message)
                print(f"Build time: {result.total_time_ms / 1000:.2f}s")
            sys.exit(0)
        else:
            if result.compile_results and not args.quiet:
                print()
                print(ResultTableFormatter.format_table(result.compile_results))
            ErrorFormatter.print_error("Build failed!", result.message)
            sys.exit(1)

    except KeyboardInterrupt:
        ErrorFormatter.handle_keyboard_interrupt()
    except Exception as e:
        ErrorFormatter.handle_unexpected_error(e, args.verbose)


def watch_command(args: BuildArgs, poll_interval: float = 0.5) -> None:
    """Build, then rebuild whenever a source, the build config or a tsconfig changes.

    Examples:
        tsprism watch                      # Watch the package in the current directory
        tsprism watch -t esm               # Rebuild only one target
    """
    logger = BuildLogger(level=args.log_level)
    if not args.quiet:
        print(f"tsprism v{VERSION}")
        print()

    watcher = None
    try:
        compiler = TypeScriptCompiler(args.project_dir, node=args.node)
        orchestrator = BuildOrchestrator(compiler, logger)
        watcher = BuildWatcher(
            orchestrator,
            BuildOptions(
                project_dir=args.project_dir,
                config_path=args.config,
                targets=args.targets or None,
                parallel=args.parallel,
                max_workers=args.jobs,
                clean=args.clean,
            ),
            poll_interval=poll_interval,
        )
        watcher.run()
        sys.exit(0)

    except KeyboardInterrupt:
        # Ctrl+C is the normal way to leave watch mode
        rebuilds = watcher.rebuild_count if watcher is not None else 0
        print(f"\nWatch stopped after {rebuilds} rebuild(s)")
        sys.exit(0)
    except PrismError as e:
        ErrorFormatter.print_error("Watch failed!", str(e))
        sys.exit(1)
    except Exception as e:
        ErrorFormatter.handle_unexpected_error(e, args.verbose)


def init_command(project_dir: Path) -> None:
    """Write a starter tsprism.config.yml (and missing per-target tsconfigs).

    Examples:
        tsprism init                       # Scaffold the package in the current directory
    """
    try:
        config_path = scaffold_config(project_dir, BuildLogger(level="info"))
        ErrorFormatter.print_success(f"Created {config_path.name}")
        sys.exit(0)
    except PrismError as e:
        ErrorFormatter.print_error("Init failed!", str(e))
        sys.exit(1)


def _add_target_arguments(parser: argparse.ArgumentParser) -> None:
    """Options shared by the build and watch commands."""
    parser.add_argument(
        "project_dir",
        nargs="?",
        type=Path,
        default=Path.cwd(),
        help="Package directory (default: current directory)",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=None,
        help="Build config file, relative to the package (default: auto-detect)",
    )
    parser.add_argument(
        "-t",
        "--target",
        dest="targets",
        action="append",
        default=[],
        help="Build only this target (repeatable); skips the package.json update",
    )
    parser.add_argument(
        "--parallel",
        action="store_true",
        help="Compile independent targets in parallel",
    )
    parser.add_argument(
        "-j",
        "--jobs",
        type=int,
        default=None,
        help="Maximum parallel workers (default: CPU count)",
    )
    parser.add_argument(
        "--no-clean",
        dest="clean",
        action="store_false",
        help="Keep existing output directories",
    )
    parser.add_argument(
        "--node",
        default="node",
        help="Node.js executable (default: node)",
    )
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Only print errors",
    )
    verbosity.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show verbose build output",
    )


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tsprism",
        description="tsprism - Multi-target TypeScript package builder",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"tsprism {VERSION}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    build_parser = subparsers.add_parser(
        "build",
        help="Compile all targets and update package.json exports",
    )
    _add_target_arguments(build_parser)
    build_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Resolve targets and show the exports diff without compiling",
    )
    build_parser.add_argument(
        "--report",
        type=Path,
        default=None,
        help="Write a JSON build report to this path (relative to the package)",
    )

    watch_parser = subparsers.add_parser(
        "watch",
        help="Build, then rebuild on source or config changes",
    )
    _add_target_arguments(watch_parser)
    watch_parser.add_argument(
        "--poll-interval",
        type=float,
        default=0.5,
        help="Seconds between change checks (default: 0.5)",
    )

    init_parser = subparsers.add_parser(
        "init",
        help="Create a starter tsprism.config.yml",
    )
    init_parser.add_argument(
        "project_dir",
        nargs="?",
        type=Path,
        default=Path.cwd(),
        help="Package directory (default: current directory)",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """tsprism - Multi-target TypeScript package builder."""
    parser = create_parser()
    parsed_args = parser.parse_args(argv)

    if not parsed_args.command:
        parser.print_help()
        sys.exit(0)

    project_dir = parsed_args.project_dir.resolve()
    PathValidator.validate_project_dir(project_dir)

    if parsed_args.command == "init":
        init_command(project_dir)
        return

    PathValidator.validate_config_path(project_dir, parsed_args.config)
    if parsed_args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")
    build_args = BuildArgs(
        project_dir=project_dir,
        config=parsed_args.config,
        targets=parsed_args.targets,
        parallel=parsed_args.parallel,
        jobs=parsed_args.jobs,
        clean=parsed_args.clean,
        dry_run=getattr(parsed_args, "dry_run", False),
        report=getattr(parsed_args, "report", None),
        quiet=parsed_args.quiet,
        verbose=parsed_args.verbose,
        node=parsed_args.node,
    )
    if parsed_args.command == "build":
        build_command(build_args)
    elif parsed_args.command == "watch":
        watch_command(build_args, poll_interval=parsed_args.poll_interval)


if __name__ == "__main__":
    main()
