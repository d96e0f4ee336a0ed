"""Filesystem utilities for tsprism builds.

This module provides the output-directory operations shared by the
sequential and parallel orchestrators: cleaning, writing emitted files,
copying a whole output tree and copying declaration files between targets.
"""

import json
import os
import shutil
from pathlib import Path
from typing import Iterable, List, Sequence

from ..config.target_options import ParsedTargetConfig
from ..errors import ValidationError
from .compiler import EmittedFile

DECLARATION_SUFFIXES = (
    ".d.ts",
    ".d.mts",
    ".d.cts",
    ".d.ts.map",
    ".d.mts.map",
    ".d.cts.map",
)


def is_declaration_file(name: str) -> bool:
    return name.endswith(DECLARATION_SUFFIXES)


def clean_out_dir(out_dir: Path) -> None:
    """Remove an output directory and its contents if it exists."""
    if Path(out_dir).exists():
        shutil.rmtree(out_dir)


def write_emitted_files(out_dir: Path, files: Iterable[EmittedFile]) -> List[Path]:
    """
    Write emitted files below out_dir.

    Args:
        out_dir: Target output directory
        files: Emitted files with out_dir-relative POSIX paths

    Returns:
        Absolute paths written, in emit order

    Raises:
        ValueError: If an emitted path escapes out_dir
        OSError: If a file cannot be written
    """
    out_dir = Path(out_dir).resolve()
    written = []
    for emitted in files:
        dest = (out_dir / emitted.path).resolve()
        if dest != out_dir and out_dir not in dest.parents:
            raise ValueError(f"Emitted file escapes output directory: {emitted.path}")
        dest.parent.mkdir(parents=True, exist_ok=True)
        # newline="" keeps the compiler's line endings byte-for-byte
        with open(dest, "w", encoding="utf-8", newline="") as f:
            f.write(emitted.content)
        written.append(dest)
    return written


def copy_tree(src: Path, dest: Path) -> int:
    """
    Recursively copy an output tree, preserving symlinks.

    Returns:
        Number of files copied
    """
    src = Path(src)
    dest = Path(dest)
    count = 0
    for dirpath, dirnames, filenames in os.walk(src):
        rel_dir = Path(dirpath).relative_to(src)
        target_dir = dest / rel_dir
        target_dir.mkdir(parents=True, exist_ok=True)
        for name in list(dirnames):
            src_path = Path(dirpath) / name
            if src_path.is_symlink():
                _copy_symlink(src_path, target_dir / name)
                dirnames.remove(name)
        for name in sorted(filenames):
            src_path = Path(dirpath) / name
            if src_path.is_symlink():
                _copy_symlink(src_path, target_dir / name)
            else:
                shutil.copyfile(src_path, target_dir / name)
            count += 1
    return count


def _copy_symlink(src_path: Path, dest_path: Path) -> None:
    link_target = os.readlink(src_path)
    if not os.path.isabs(link_target):
        # Keep relative links pointing at the same absolute target
        absolute = os.path.normpath(os.path.join(os.path.dirname(src_path), link_target))
        link_target = os.path.relpath(absolute, os.path.dirname(dest_path))
    if dest_path.is_symlink() or dest_path.exists():
        dest_path.unlink()
    os.symlink(link_target, dest_path)


def relocate_source_map(text: str, src_dir: Path, dest_dir: Path) -> str:
    """
    Re-point a source map's relative "sources" entries after moving it.

    Entries are resolved against the map's original directory and made
    relative to its new one. Absolute paths, URLs and maps with a non-empty
    "sourceRoot" are left alone.

    Returns:
        The rewritten map, or ``text`` unchanged when nothing moves
    """
    try:
        data = json.loads(text)
    except ValueError:
        return text
    sources = data.get("sources") if isinstance(data, dict) else None
    if not isinstance(sources, list) or data.get("sourceRoot"):
        return text

    relocated = []
    for source in sources:
        if not isinstance(source, str) or "://" in source or os.path.isabs(source):
            relocated.append(source)
            continue
        target = os.path.normpath(os.path.join(src_dir, source))
        relocated.append(os.path.relpath(target, dest_dir).replace(os.sep, "/"))
    if relocated == sources:
        return text
    data["sources"] = relocated
    # tsc writes maps as compact single-line JSON
    return json.dumps(data, separators=(",", ":"))


def copy_declarations(
    src_out_dir: Path,
    src_root_dir: Path,
    dest_out_dir: Path,
    dest_root_dir: Path,
) -> int:
    """
    Copy declaration files from one target's output into another's.

    Each file is relocated through the two targets' root directories: the
    declaration for source file S lands where the destination target's layout
    puts S. Declarations are copied byte-for-byte; declaration maps get their
    relative "sources" re-pointed from the new location.

    Returns:
        Number of declaration files copied
    """
    src_out_dir = Path(src_out_dir)
    if not src_out_dir.is_dir():
        return 0
    count = 0
    for dirpath, _dirnames, filenames in os.walk(src_out_dir):
        for name in sorted(filenames):
            if not is_declaration_file(name):
                continue
            src_path = Path(dirpath) / name
            rel = src_path.relative_to(src_out_dir)
            source_equivalent = Path(src_root_dir) / rel
            relocated = Path(os.path.relpath(source_equivalent, dest_root_dir))
            if relocated.parts and relocated.parts[0] == "..":
                relocated = rel
            dest_path = Path(dest_out_dir) / relocated
            dest_path.parent.mkdir(parents=True, exist_ok=True)
            if name.endswith(".map"):
                text = src_path.read_text(encoding="utf-8")
                dest_path.write_text(
                    relocate_source_map(text, src_path.parent, dest_path.parent), encoding="utf-8"
                )
            else:
                shutil.copyfile(src_path, dest_path)
            count += 1
    return count


def validate_out_dirs(parsed_configs: Sequence[ParsedTargetConfig]) -> None:
    """
    Check that every target owns its output directory exclusively.

    Raises:
        ValidationError: If two targets share or nest output directories, or
            an output directory contains its target's sources
    """
    seen = {}
    for parsed in parsed_configs:
        out_dir = Path(parsed.out_dir).resolve()
        root_dir = Path(parsed.root_dir).resolve()
        if out_dir == root_dir or out_dir in root_dir.parents:
            raise ValidationError(
                f'Target "{parsed.name}": outDir {out_dir} contains its rootDir {root_dir}; '
                "cleaning it would delete sources"
            )
        for other_dir, other_name in seen.items():
            if out_dir == other_dir:
                raise ValidationError(
                    f'Targets "{other_name}" and "{parsed.name}" share outDir {out_dir}'
                )
            if other_dir in out_dir.parents or out_dir in other_dir.parents:
                raise ValidationError(
                    f'Targets "{other_name}" and "{parsed.name}" have nested outDirs '
                    f"{other_dir} and {out_dir}"
                )
        seen[out_dir] = parsed.name


def prepare_out_dirs(parsed_configs: Iterable[ParsedTargetConfig], clean: bool = True) -> None:
    """Optionally clean, then create, every target's output directory."""
    for parsed in parsed_configs:
        if clean:
            clean_out_dir(parsed.out_dir)
        Path(parsed.out_dir).mkdir(parents=True, exist_ok=True)
