"""
Per-target tsconfig parsing.

Reads a target's tsconfig (JSON with comments and trailing commas), follows
"extends" chains, resolves path-valued compiler options relative to the file
that declares them and expands files/include/exclude into the ordered list of
absolute source paths that take part in the target's compilation.

The result is a ParsedTargetConfig: normalized compiler options with
output-location keys removed, plus the resolved rootDir, outDir and file list.
"""

import json
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from ..errors import TargetOptionsError, ValidationError
from .build_config import TargetConfig

SOURCE_EXTENSIONS = (".d.ts", ".d.mts", ".d.cts", ".ts", ".tsx", ".mts", ".cts")
DEFAULT_EXCLUDES = ("node_modules", "bower_components", "jspm_packages")

PATH_OPTIONS = ("rootDir", "outDir", "baseUrl", "declarationDir", "tsBuildInfoFile")
PATH_LIST_OPTIONS = ("typeRoots", "rootDirs")

# Enum-like options are case-insensitive in tsconfig
CASE_INSENSITIVE_OPTIONS = (
    "module",
    "moduleResolution",
    "target",
    "jsx",
    "moduleDetection",
    "newLine",
    "importsNotUsedAsValues",
)

UNSUPPORTED_OPTIONS = ("outFile", "out", "declarationDir")

# Kept on ParsedTargetConfig itself, never in the options record
OUTPUT_OPTION_KEYS = ("outDir", "tsBuildInfoFile")


@dataclass(frozen=True)
class ParsedTargetConfig:
    """A target plus its normalized compiler options and resolved file list."""

    target: TargetConfig
    options: Dict[str, Any] = field(hash=False)
    root_dir: Path
    out_dir: Path
    files: Tuple[str, ...]
    options_path: Optional[Path] = None

    @property
    def name(self) -> str:
        return self.target.name

    @property
    def emits_declarations(self) -> bool:
        return bool(self.options.get("declaration") or self.options.get("composite"))


def strip_json_comments(text: str) -> str:
    """
    Remove // and /* */ comments and trailing commas from JSONC text.

    String literals are left untouched.
    """
    result = []
    i = 0
    length = len(text)
    in_string = False
    while i < length:
        char = text[i]
        if in_string:
            result.append(char)
            if char == "\\" and i + 1 < length:
                result.append(text[i + 1])
                i += 2
                continue
            if char == '"':
                in_string = False
            i += 1
            continue
        if char == '"':
            in_string = True
            result.append(char)
            i += 1
        elif text.startswith("//", i):
            newline = text.find("\n", i)
            i = length if newline == -1 else newline
        elif text.startswith("/*", i):
            end = text.find("*/", i + 2)
            i = length if end == -1 else end + 2
        else:
            result.append(char)
            i += 1
    stripped = "".join(result)
    return re.sub(r",(\s*[}\]])", r"\1", stripped)


def _load_json_file(path: Path, target_name: str) -> Dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise TargetOptionsError(f"[{target_name}] Failed to read {path}: {e}")
    try:
        data = json.loads(strip_json_comments(content))
    except json.JSONDecodeError as e:
        raise TargetOptionsError(f"[{target_name}] Errors parsing {path}: {e}")
    if not isinstance(data, dict):
        raise TargetOptionsError(f"[{target_name}] {path} must contain a JSON object")
    return data


def _resolve_extends(spec: str, from_dir: Path, target_name: str) -> Path:
    """Resolve an "extends" specifier to a file path."""
    if spec.startswith(("./", "../", "/")) or os.path.isabs(spec):
        candidate = (from_dir / spec).resolve()
        if candidate.is_file():
            return candidate
        with_ext = candidate.with_name(candidate.name + ".json")
        if with_ext.is_file():
            return with_ext
        raise TargetOptionsError(
            f"[{target_name}] Base config '{spec}' not found (looked for {candidate}).\n"
            'Hint: if this tsconfig uses "extends", verify that the base config path is '
            "correct and the file exists."
        )

    # Package specifier: walk up looking for node_modules/<spec>
    for directory in [from_dir, *from_dir.parents]:
        base = directory / "node_modules" / spec
        for candidate in (base, base.with_name(base.name + ".json"), base / "tsconfig.json"):
            if candidate.is_file():
                return candidate.resolve()
    raise TargetOptionsError(
        f"[{target_name}] Base config package '{spec}' not found in any node_modules "
        f"above {from_dir}"
    )


def _substitute_config_dir(value: Any, config_dir: Path) -> Any:
    if isinstance(value, str):
        return value.replace("${configDir}", config_dir.as_posix())
    if isinstance(value, list):
        return [_substitute_config_dir(v, config_dir) for v in value]
    if isinstance(value, dict):
        return {k: _substitute_config_dir(v, config_dir) for k, v in value.items()}
    return value


def _resolve_path_options(options: Dict[str, Any], base_dir: Path) -> Dict[str, Any]:
    resolved = dict(options)
    for key in PATH_OPTIONS:
        value = resolved.get(key)
        if isinstance(value, str):
            resolved[key] = str((base_dir / value).resolve())
    for key in PATH_LIST_OPTIONS:
        value = resolved.get(key)
        if isinstance(value, list):
            resolved[key] = [str((base_dir / v).resolve()) for v in value if isinstance(v, str)]
    return resolved


@dataclass
class _RawConfig:
    options: Dict[str, Any]
    files: Optional[Tuple[List[str], Path]] = None
    include: Optional[Tuple[List[str], Path]] = None
    exclude: Optional[Tuple[List[str], Path]] = None


def _load_config_chain(
    path: Path,
    leaf_dir: Path,
    target_name: str,
    seen: Tuple[Path, ...] = (),
) -> _RawConfig:
    if path in seen:
        chain = " -> ".join(str(p) for p in (*seen, path))
        raise TargetOptionsError(f"[{target_name}] Circular tsconfig extends: {chain}")
    data = _substitute_config_dir(_load_json_file(path, target_name), leaf_dir)
    config_dir = path.parent

    merged = _RawConfig(options={})
    extends = data.get("extends")
    if extends is not None:
        bases = extends if isinstance(extends, list) else [extends]
        for base in bases:
            if not isinstance(base, str):
                raise TargetOptionsError(f'[{target_name}] "extends" in {path} must be a string')
            base_path = _resolve_extends(base, config_dir, target_name)
            parent = _load_config_chain(base_path, leaf_dir, target_name, (*seen, path))
            merged.options.update(parent.options)
            for attr in ("files", "include", "exclude"):
                if getattr(parent, attr) is not None:
                    setattr(merged, attr, getattr(parent, attr))

    compiler_options = data.get("compilerOptions", {})
    if not isinstance(compiler_options, dict):
        raise TargetOptionsError(f'[{target_name}] "compilerOptions" in {path} must be an object')
    merged.options.update(_resolve_path_options(compiler_options, config_dir))

    for attr in ("files", "include", "exclude"):
        value = data.get(attr)
        if value is None:
            continue
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise TargetOptionsError(f'[{target_name}] "{attr}" in {path} must be a string array')
        setattr(merged, attr, (value, config_dir))

    return merged


def normalize_options(options: Dict[str, Any]) -> Dict[str, Any]:
    """Lower-case enum-like option values so equivalent spellings compare equal."""
    normalized = dict(options)
    for key in CASE_INSENSITIVE_OPTIONS:
        value = normalized.get(key)
        if isinstance(value, str):
            normalized[key] = value.lower()
    lib = normalized.get("lib")
    if isinstance(lib, list):
        normalized["lib"] = [v.lower() if isinstance(v, str) else v for v in lib]
    return normalized


def _pattern_to_regex(pattern: str) -> "re.Pattern[str]":
    """Translate a tsconfig include/exclude glob (relative, POSIX) to a regex."""
    parts = [p for p in pattern.split("/") if p not in ("", ".")]
    regex = ""
    for index, part in enumerate(parts):
        last = index == len(parts) - 1
        if part == "**":
            regex += "(?:[^/]+/)*" if not last else ".*"
            continue
        segment = ""
        for char in part:
            if char == "*":
                segment += "[^/]*"
            elif char == "?":
                segment += "[^/]"
            else:
                segment += re.escape(char)
        regex += segment + ("" if last else "/")
    return re.compile(regex)


def _is_directory_pattern(pattern: str) -> bool:
    last = pattern.rstrip("/").split("/")[-1]
    return "*" not in last and "?" not in last and "." not in last


def _expand_pattern(pattern: str) -> str:
    pattern = pattern.replace("\\", "/")
    if _is_directory_pattern(pattern):
        return pattern.rstrip("/") + "/**/*"
    return pattern


def _has_source_extension(name: str) -> bool:
    return name.endswith(SOURCE_EXTENSIONS)


def _walk_files(base: Path):
    for dirpath, dirnames, filenames in os.walk(base):
        dirnames[:] = sorted(
            d for d in dirnames if d not in DEFAULT_EXCLUDES and not d.startswith(".")
        )
        for name in sorted(filenames):
            yield Path(dirpath) / name


def _relative_posix(path: Path, base: Path) -> Optional[str]:
    try:
        return path.relative_to(base).as_posix()
    except ValueError:
        return None


def resolve_file_list(
    config_dir: Path,
    files: Optional[Tuple[List[str], Path]],
    include: Optional[Tuple[List[str], Path]],
    exclude: Optional[Tuple[List[str], Path]],
    out_dir: Path,
) -> List[str]:
    """
    Expand files/include/exclude into an ordered, deduplicated list of paths.

    Explicit "files" come first, then include matches (sorted per pattern).
    Exclude patterns never remove explicit "files".
    """
    ordered: List[str] = []
    seen = set()

    def add(path: Path) -> None:
        key = str(path)
        if key not in seen:
            seen.add(key)
            ordered.append(key)

    if files is not None:
        names, base = files
        for name in names:
            add((base / name).resolve())

    if include is not None:
        include_patterns, include_base = include
    elif files is None:
        include_patterns, include_base = ["**/*"], config_dir
    else:
        include_patterns, include_base = [], config_dir

    if exclude is not None:
        exclude_patterns, exclude_base = exclude
    else:
        exclude_patterns, exclude_base = [], config_dir
    exclude_regexes = [
        _pattern_to_regex(_expand_pattern(p))
        for p in exclude_patterns
    ]

    def excluded(path: Path) -> bool:
        if path == out_dir or out_dir in path.parents:
            return True
        rel = _relative_posix(path, exclude_base.resolve())
        if rel is None:
            return False
        return any(rx.fullmatch(rel) for rx in exclude_regexes)

    for raw_pattern in include_patterns:
        parts = _expand_pattern(raw_pattern).split("/")
        fixed: List[str] = []
        for part in parts:
            if "*" in part or "?" in part:
                break
            fixed.append(part)

        if len(fixed) == len(parts):
            # Literal file path
            literal = (include_base / "/".join(parts)).resolve()
            if literal.is_file() and _has_source_extension(literal.name) and not excluded(literal):
                add(literal)
            continue

        walk_root = (include_base / "/".join(fixed)).resolve() if fixed else include_base.resolve()
        if not walk_root.is_dir():
            continue
        regex = _pattern_to_regex("/".join(parts[len(fixed):]))
        for candidate in _walk_files(walk_root):
            if not _has_source_extension(candidate.name):
                continue
            rel = _relative_posix(candidate, walk_root)
            if rel is None or not regex.fullmatch(rel):
                continue
            if excluded(candidate):
                continue
            add(candidate)

    return ordered


def parse_target_options(target: TargetConfig, package_root: Path, logger=None) -> ParsedTargetConfig:
    """
    Parse and validate a target's tsconfig.

    Args:
        target: Target declaration
        package_root: Package root directory (options_file is relative to it)
        logger: Optional BuildLogger for warnings

    Returns:
        ParsedTargetConfig with normalized options and resolved files

    Raises:
        TargetOptionsError: If the tsconfig cannot be read or lacks outDir
        ValidationError: If the tsconfig matches zero source files
    """
    package_root = Path(package_root).resolve()
    options_path = (package_root / target.options_file).resolve()
    if not options_path.is_file():
        raise TargetOptionsError(f"[{target.name}] tsconfig not found: {options_path}")

    raw = _load_config_chain(options_path, options_path.parent, target.name)
    options = normalize_options(raw.options)

    for key in UNSUPPORTED_OPTIONS:
        if key in options:
            raise TargetOptionsError(
                f'[{target.name}] tsconfig {options_path} sets "{key}", which is not '
                "supported. Each target must emit all output into its outDir."
            )

    out_dir_value = options.get("outDir")
    if not out_dir_value:
        raise TargetOptionsError(
            f'[{target.name}] tsconfig {options_path} must specify "outDir". '
            "outDir is used to locate output files for exports rewriting."
        )
    out_dir = Path(out_dir_value)

    root_dir_value = options.get("rootDir")
    if root_dir_value:
        root_dir = Path(root_dir_value)
    else:
        root_dir = options_path.parent
        if logger is not None:
            logger.warn(
                f'[tsprism] [{target.name}] Warning: tsconfig {options_path} does not specify '
                '"rootDir". Output paths may be unpredictable.'
            )

    files = resolve_file_list(options_path.parent, raw.files, raw.include, raw.exclude, out_dir)
    if not files:
        raise ValidationError(
            f"[{target.name}] tsconfig {options_path} matched zero source files. "
            'Check the "include" and "exclude" patterns.'
        )

    for key in OUTPUT_OPTION_KEYS:
        options.pop(key, None)

    return ParsedTargetConfig(
        target=target,
        options=options,
        root_dir=root_dir,
        out_dir=out_dir,
        files=tuple(files),
        options_path=options_path,
    )
