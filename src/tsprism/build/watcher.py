"""
Watch mode.

Rebuilds a package whenever one of its TypeScript sources, its build
configuration or a target tsconfig changes.

Design:
    - Changes are detected by polling (mtime, size) snapshots of the watched
      files, so it behaves the same on every platform
    - A burst of edits is debounced: the watcher waits until two consecutive
      snapshots agree before rebuilding once
    - Rebuilds never clean output directories and reuse the initial
      BuildOptions; a changed config or tsconfig re-resolves the watched
      source directories
"""

import logging
import os
import threading
import time
from dataclasses import replace
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from ..config.build_config import filter_targets, find_build_config
from ..config.target_options import parse_target_options
from ..errors import ConfigError, PrismError
from .build_utils import is_declaration_file
from .orchestrator import BuildOptions, BuildOrchestrator, BuildResult

logger = logging.getLogger(__name__)

WATCHED_EXTENSIONS = (".ts", ".tsx", ".mts", ".cts")

Snapshot = Dict[str, Tuple[int, int]]


def is_watched_source(name: str) -> bool:
    return name.endswith(WATCHED_EXTENSIONS) and not is_declaration_file(name)


def take_snapshot(watch_dirs: Iterable[Path], watch_files: Iterable[Path] = ()) -> Snapshot:
    """
    Record (mtime_ns, size) for every watched source and extra file.

    Args:
        watch_dirs: Directories scanned recursively for TypeScript sources
        watch_files: Individual files (configs) recorded when they exist

    Returns:
        Mapping of absolute path to (mtime_ns, size)
    """
    snapshot: Snapshot = {}

    def record(path: str) -> None:
        try:
            stat = os.stat(path)
        except FileNotFoundError:
            # Deleted between listing and stat
            return
        snapshot[path] = (stat.st_mtime_ns, stat.st_size)

    for directory in watch_dirs:
        for dirpath, dirnames, filenames in os.walk(directory):
            dirnames[:] = [d for d in dirnames if d != "node_modules" and not d.startswith(".")]
            for name in filenames:
                if is_watched_source(name):
                    record(os.path.join(dirpath, name))
    for path in watch_files:
        record(str(path))
    return snapshot


def changed_paths(before: Snapshot, after: Snapshot) -> List[str]:
    """Paths added, removed or modified between two snapshots."""
    return sorted(p for p in set(before) | set(after) if before.get(p) != after.get(p))


class BuildWatcher:
    """Runs an initial build, then rebuilds on every settled change.

    Example usage:
        watcher = BuildWatcher(orchestrator, BuildOptions(project_dir=Path(".")))
        watcher.run()  # until Ctrl+C
    """

    def __init__(
        self,
        orchestrator: BuildOrchestrator,
        options: BuildOptions,
        poll_interval: float = 0.5,
        debounce: float = 0.3,
        stop_event: Optional[threading.Event] = None,
    ):
        """
        Initialize the watcher.

        Args:
            orchestrator: Build pipeline to re-run
            options: Options of the initial build; rebuilds use clean=False
            poll_interval: Seconds between change checks
            debounce: Seconds a change must stay unchanged before rebuilding
            stop_event: Set to stop run() between polls
        """
        self.orchestrator = orchestrator
        self.logger = orchestrator.logger
        self.options = options
        self.project_dir = Path(options.project_dir).resolve()
        self.poll_interval = poll_interval
        self.debounce = debounce
        self.stop_event = stop_event or threading.Event()
        self.watch_dirs: List[Path] = []
        self.watch_files: List[Path] = []
        self.snapshot: Snapshot = {}
        self.rebuild_count = 0

    def resolve_watch_paths(self) -> Tuple[List[Path], List[Path]]:
        """
        Find the source directories and config files to watch.

        Returns:
            Tuple of (unique target root directories, config and tsconfig files)

        Raises:
            ConfigError: If no build configuration exists
            PrismError: If a target's tsconfig cannot be parsed
        """
        resolved = find_build_config(self.project_dir, self.options.config_path)
        if resolved is None:
            raise ConfigError(
                f"No build configuration found in {self.project_dir}. Create "
                'tsprism.config.yml or add a "tsprism" key to package.json.',
                code="CONFIG_NOT_FOUND",
            )
        config = resolved.config
        if self.options.targets:
            config = filter_targets(config, self.options.targets)

        watch_dirs: List[Path] = []
        watch_files: List[Path] = [resolved.source_path]
        for target in config.targets:
            parsed = parse_target_options(target, self.project_dir)
            if parsed.root_dir not in watch_dirs:
                watch_dirs.append(parsed.root_dir)
            options_file = (self.project_dir / target.options_file).resolve()
            if options_file not in watch_files:
                watch_files.append(options_file)
        return watch_dirs, watch_files

    def start(self) -> BuildResult:
        """Resolve the watched paths, run the initial build and take the first snapshot.

        Raises:
            ConfigError: If no build configuration exists
            PrismError: If a target's tsconfig cannot be parsed
        """
        self.watch_dirs, self.watch_files = self.resolve_watch_paths()
        self.logger.info("[tsprism] Watch: initial build...")
        result = self.orchestrator.build(self.options)
        self.snapshot = take_snapshot(self.watch_dirs, self.watch_files)
        self.logger.info(
            f"[tsprism] Watch: monitoring {len(self.watch_dirs)} source dir(s). "
            "Press Ctrl+C to stop."
        )
        return result

    def check(self) -> Optional[BuildResult]:
        """
        Rebuild once if anything changed since the last snapshot.

        Returns:
            The rebuild's result, or None when nothing changed or the watcher
            was stopped while waiting for changes to settle
        """
        current = take_snapshot(self.watch_dirs, self.watch_files)
        if not changed_paths(self.snapshot, current):
            return None

        # Wait until a burst of saves has settled
        while True:
            if self.stop_event.wait(self.debounce):
                return None
            settled = take_snapshot(self.watch_dirs, self.watch_files)
            if settled == current:
                break
            current = settled

        changes = changed_paths(self.snapshot, current)
        for path in changes:
            self.logger.verbose(f"[tsprism] Watch: changed {os.path.relpath(path, self.project_dir)}")
        watched_files = {str(p) for p in self.watch_files}
        if any(path in watched_files for path in changes):
            self.logger.info("[tsprism] Watch: configuration changed, re-resolving targets...")
            try:
                self.watch_dirs, self.watch_files = self.resolve_watch_paths()
            except PrismError as e:
                # Keep watching the previous paths; the rebuild reports the error too
                self.logger.error(f"[tsprism] Watch: {e}")

        result = self.rebuild()
        self.snapshot = take_snapshot(self.watch_dirs, self.watch_files)
        return result

    def rebuild(self) -> BuildResult:
        """Re-run the build without cleaning output directories."""
        self.logger.info("\n[tsprism] Watch: file change detected, rebuilding...")
        start = time.perf_counter()
        result = self.orchestrator.build(replace(self.options, clean=False))
        elapsed = (time.perf_counter() - start) * 1000
        self.rebuild_count += 1
        if result.success:
            self.logger.info(f"[tsprism] Watch: rebuild succeeded ({elapsed:.0f}ms)")
        else:
            self.logger.error(f"[tsprism] Watch: rebuild failed ({elapsed:.0f}ms)")
        logger.debug("rebuild %d finished: %s", self.rebuild_count, result.message)
        return result

    def stop(self) -> None:
        self.stop_event.set()

    def run(self, max_rebuilds: Optional[int] = None) -> int:
        """
        Build, then poll for changes until stopped.

        Args:
            max_rebuilds: Return after this many rebuilds (default: run until stopped)

        Returns:
            Number of rebuilds performed
        """
        self.start()
        while not self.stop_event.wait(self.poll_interval):
            if self.check() is not None and max_rebuilds is not None:
                if self.rebuild_count >= max_rebuilds:
                    break
        return self.rebuild_count
