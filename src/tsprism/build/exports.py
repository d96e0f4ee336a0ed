"""
Export map synthesis and dist verification.

Turns the declared source exports (export key -> ``./src/...ts`` entry) into
the package.json ``exports`` map: for every export key, one condition entry
per target pointing at that target's emitted JavaScript and, when the target
emits declarations, its declaration file. After writing, every referenced
path is checked on disk.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Sequence

from ..errors import DistMissingError, ValidationError
from .compilation_executor import CompileResult
from .classifier import COMMONJS

TS_SOURCE_SUFFIXES = (".ts", ".mts", ".cts")

# (source suffix, JS suffix, declaration suffix); longest match first
_OUTPUT_SUFFIXES = (
    (".mts", ".mjs", ".d.mts"),
    (".cts", ".cjs", ".d.cts"),
    (".ts", ".js", ".d.ts"),
)

DIST_SUFFIXES = (
    ".js",
    ".mjs",
    ".cjs",
    ".d.ts",
    ".d.mts",
    ".d.cts",
    ".d.ts.map",
    ".d.mts.map",
    ".d.cts.map",
)


def _to_package_relative(path: Path, package_root: Path) -> str:
    rel = os.path.relpath(path, package_root).replace(os.sep, "/")
    return rel if rel.startswith("../") else f"./{rel}"


def source_to_dist_path(
    source_path: str,
    root_dir: Path,
    out_dir: Path,
    package_root: Path,
) -> str:
    """
    Map a source entry point to the matching path inside a target's out_dir.

    Returns:
        ``./``-prefixed POSIX path relative to the package root, still
        carrying the source extension
    """
    abs_source = (Path(package_root) / source_path).resolve()
    rel_from_root = os.path.relpath(abs_source, Path(root_dir).resolve())
    dist_abs = Path(out_dir).resolve() / rel_from_root
    return _to_package_relative(Path(os.path.normpath(dist_abs)), Path(package_root).resolve())


def _swap_suffix(path: str) -> Dict[str, str]:
    for src_suffix, js_suffix, dts_suffix in _OUTPUT_SUFFIXES:
        if path.endswith(src_suffix):
            stem = path[: -len(src_suffix)]
            return {"types": stem + dts_suffix, "default": stem + js_suffix}
    raise ValueError(f"Not a TypeScript source path: {path}")


def resolve_exports_map(
    exports: Mapping[str, str],
    results: Sequence[CompileResult],
    package_root: Path,
) -> Dict[str, Any]:
    """
    Resolve the declared source exports into the dist exports map.

    Args:
        exports: Export key -> source entry path
        results: Compile results in declared target order
        package_root: Package root directory

    Returns:
        Export key -> condition -> {"types"?, "default"}; non-TypeScript
        entries pass through unchanged
    """
    exports_map: Dict[str, Any] = {}
    for key, source_path in exports.items():
        if not source_path.endswith(TS_SOURCE_SUFFIXES) or source_path.endswith(".d.ts"):
            exports_map[key] = source_path
            continue

        conditions: Dict[str, Dict[str, str]] = {}
        for result in results:
            dist_path = source_to_dist_path(source_path, result.root_dir, result.out_dir, package_root)
            paths = _swap_suffix(dist_path)
            entry: Dict[str, str] = {}
            if result.emits_declarations:
                entry["types"] = paths["types"]
            entry["default"] = paths["default"]
            conditions[result.target.condition] = entry
        exports_map[key] = conditions
    return exports_map


def _read_package_json(package_root: Path) -> Dict[str, Any]:
    pkg_path = Path(package_root) / "package.json"
    try:
        with open(pkg_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ValidationError(f"Failed to read {pkg_path}: {e}") from e
    return data if isinstance(data, dict) else {}


def _dump_json(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


def merge_exports(existing: Any, exports_map: Mapping[str, Any]) -> Dict[str, Any]:
    """Managed keys first (declared order), then unmanaged existing keys."""
    merged: Dict[str, Any] = dict(exports_map)
    if isinstance(existing, dict):
        for key, value in existing.items():
            if key not in merged:
                merged[key] = value
    return merged


def write_module_type_shims(results: Sequence[CompileResult]) -> List[Path]:
    """Write a ``{"type": ...}`` package.json into every target's out_dir."""
    written = []
    for result in results:
        shim_path = Path(result.out_dir) / "package.json"
        shim_path.parent.mkdir(parents=True, exist_ok=True)
        module_type = "commonjs" if result.module_format == COMMONJS else "module"
        shim_path.write_text(_dump_json({"type": module_type}), encoding="utf-8")
        written.append(shim_path)
    return written


def write_exports_to_package_json(
    exports_map: Mapping[str, Any],
    results: Sequence[CompileResult],
    package_root: Path,
) -> bool:
    """
    Merge the exports map into package.json and write module type shims.

    Unrelated top-level keys and unmanaged export keys are preserved. The
    file is replaced atomically and left untouched when nothing changed.

    Returns:
        True if package.json was rewritten

    Raises:
        ValidationError: If package.json cannot be read or written
    """
    pkg_path = Path(package_root) / "package.json"
    pkg = _read_package_json(package_root)
    pkg["exports"] = merge_exports(pkg.get("exports"), exports_map)
    new_content = _dump_json(pkg)

    changed = True
    try:
        changed = pkg_path.read_text(encoding="utf-8") != new_content
    except OSError:
        pass

    if changed:
        tmp_path = pkg_path.parent / f".package.json.{os.getpid()}.tmp"
        try:
            tmp_path.write_text(new_content, encoding="utf-8")
            os.replace(tmp_path, pkg_path)
        except OSError as e:
            if tmp_path.exists():
                tmp_path.unlink()
            raise ValidationError(f"Failed to write {pkg_path}: {e}") from e

    # Out dirs were cleaned, so the shims are needed even when unchanged
    write_module_type_shims(results)
    return changed


def _collect_dist_paths(value: Any, paths: List[str]) -> None:
    if isinstance(value, str):
        if value.startswith("./") and value.endswith(DIST_SUFFIXES):
            paths.append(value)
    elif isinstance(value, dict):
        for nested in value.values():
            _collect_dist_paths(nested, paths)


def verify_dist_files(exports_map: Mapping[str, Any], package_root: Path) -> List[str]:
    """
    Check that every dist path referenced by the exports map exists.

    Returns:
        Missing paths, in exports map order
    """
    paths: List[str] = []
    _collect_dist_paths(dict(exports_map), paths)
    return [p for p in paths if not (Path(package_root) / p).exists()]


def get_exports_diff(exports_map: Mapping[str, Any], package_root: Path) -> str:
    """
    Describe how package.json exports would change, key by key.

    Unchanged keys are prefixed with two spaces, removed lines with ``-``
    and added lines with ``+``.
    """
    pkg = _read_package_json(package_root)
    current = pkg.get("exports") or {}
    if not isinstance(current, dict):
        current = {}
    if json.dumps(current, indent=2) == json.dumps(dict(exports_map), indent=2):
        return "Exports: no changes needed"

    lines = []
    keys = list(current) + [k for k in exports_map if k not in current]
    for key in keys:
        old = json.dumps(current[key], indent=2) if key in current else None
        new = json.dumps(exports_map[key], indent=2) if key in exports_map else None
        if old == new:
            lines.extend(f"  {key}: {line}" for line in old.splitlines())
            continue
        if old is not None:
            lines.extend(f"- {key}: {line}" for line in old.splitlines())
        if new is not None:
            lines.extend(f"+ {key}: {line}" for line in new.splitlines())
    return "\n".join(lines)


class ExportSynthesizer:
    """Resolves, writes and verifies the package exports for one build."""

    def __init__(self, exports: Mapping[str, str], package_root: Path):
        self.exports = dict(exports)
        self.package_root = Path(package_root)

    def resolve(self, results: Sequence[CompileResult]) -> Dict[str, Any]:
        return resolve_exports_map(self.exports, results, self.package_root)

    def write(self, exports_map: Mapping[str, Any], results: Sequence[CompileResult]) -> bool:
        return write_exports_to_package_json(exports_map, results, self.package_root)

    def diff(self, exports_map: Mapping[str, Any]) -> str:
        return get_exports_diff(exports_map, self.package_root)

    def verify(self, exports_map: Mapping[str, Any]) -> None:
        """
        Verify every exported dist file exists.

        Raises:
            DistMissingError: Listing all missing paths
        """
        missing = verify_dist_files(exports_map, self.package_root)
        if missing:
            raise DistMissingError(missing)
