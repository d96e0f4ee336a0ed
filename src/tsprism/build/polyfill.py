"""Polyfill discovery and per-target source substitution.

A polyfill (platform override) is a sibling of a source file named
``<stem><suffix>.mts`` or ``<stem><suffix>.ts``. For a target that declares
the suffix, the override's content replaces the original file's content
while the original path (and therefore the output file name) is kept:
``greeter-browser.mts`` becomes the content of ``greeter.js`` in the browser
target's output.

Discovery is driven by the target's own compiled file list, so only files in
that target's compilation can be overridden, and substitution only ever
changes what that one target reads.
"""

import os
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Set

from .compiler import SourceText

# Preference order: module-flavoured override first, then plain TypeScript
POLYFILL_EXTENSIONS = (".mts", ".ts")

DECLARATION_SUFFIXES = (".d.ts", ".d.mts", ".d.cts")


def _is_declaration(path: str) -> bool:
    return path.endswith(DECLARATION_SUFFIXES)


def discover_polyfills(files: Sequence[str], polyfill_suffix: Optional[str]) -> Dict[str, str]:
    """
    Discover platform overrides for a target's source files.

    Args:
        files: Absolute source paths compiled by the target
        polyfill_suffix: Substitution suffix (e.g. "-browser"); None disables

    Returns:
        Mapping from original absolute path to override absolute path
    """
    if not polyfill_suffix:
        return {}

    # Group by directory so each directory is listed once
    by_dir: Dict[str, List[str]] = {}
    for file_name in files:
        if not file_name.endswith(".ts") or _is_declaration(file_name):
            continue
        by_dir.setdefault(os.path.dirname(file_name), []).append(file_name)

    polyfills: Dict[str, str] = {}
    for directory, sources in by_dir.items():
        try:
            entries = set(os.listdir(directory))
        except OSError:
            continue
        for file_name in sources:
            stem = os.path.basename(file_name)[: -len(".ts")]
            if stem.endswith(polyfill_suffix):
                # An override is never itself overridden
                continue
            for ext in POLYFILL_EXTENSIONS:
                candidate = f"{stem}{polyfill_suffix}{ext}"
                if candidate in entries:
                    polyfills[file_name] = os.path.join(directory, candidate)
                    break
    return polyfills


def is_polyfill_file(path: str, polyfill_suffix: Optional[str]) -> bool:
    """Check whether a path looks like an override for the given suffix."""
    if not polyfill_suffix:
        return False
    base = os.path.basename(path)
    for ext in POLYFILL_EXTENSIONS:
        if base.endswith(ext) and not _is_declaration(base):
            return base[: -len(ext)].endswith(polyfill_suffix)
    return False


def compile_roots(
    files: Iterable[str],
    polyfill_suffix: Optional[str],
    override_files: Set[str],
) -> List[str]:
    """
    Select the files a target actually compiles.

    Known override files (from any target in the build) and files matching
    this target's own suffix are dropped: their content is injected under the
    original's name instead of being emitted as separate outputs.
    """
    roots = []
    for file_name in files:
        if file_name in override_files:
            continue
        if is_polyfill_file(file_name, polyfill_suffix):
            continue
        roots.append(file_name)
    return roots


def read_sources(files: Iterable[str], polyfills: Dict[str, str]) -> List[SourceText]:
    """
    Read a target's view of its source files.

    Args:
        files: Absolute paths to read
        polyfills: Override mapping from discover_polyfills()

    Returns:
        SourceText entries under the original path, with override content
        where an override exists

    Raises:
        OSError: If a file cannot be read
    """
    sources = []
    for file_name in files:
        override = polyfills.get(file_name)
        content = Path(override or file_name).read_text(encoding="utf-8")
        sources.append(SourceText(path=file_name, content=content, substituted_from=override))
    return sources
