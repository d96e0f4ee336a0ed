"""
Build configuration loading for tsprism projects.

This module locates and validates the multi-target build configuration.

Resolution order (when no explicit path is given):
    1. tsprism.config.yml
    2. tsprism.config.yaml
    3. tsprism.config.json
    4. the "tsprism" key of package.json

Only the package root is searched; parent directories are not.

Example tsprism.config.yml:
    exports:
      ".": "./src/index.ts"
      "./package.json": "./package.json"
    targets:
      - name: esm
        condition: import
        tsconfig: ./tsconfig.esm.json
      - name: cjs
        condition: require
        tsconfig: ./tsconfig.cjs.json
        moduleType: commonjs
      - name: browser
        tsconfig: ./tsconfig.browser.json
        polyfillSuffix: "-browser"
"""

import json
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from ..errors import ConfigError, ValidationError

CONFIG_FILE_NAMES = (
    "tsprism.config.yml",
    "tsprism.config.yaml",
    "tsprism.config.json",
)
PACKAGE_JSON_KEY = "tsprism"

MODULE_TYPE_ALIASES = {
    "esm": "esm",
    "module": "esm",
    "commonjs": "commonjs",
}


@dataclass(frozen=True)
class TargetConfig:
    """A single declared build target."""

    name: str
    condition: str
    options_file: str
    polyfill_suffix: Optional[str] = None
    module_type: Optional[str] = None


@dataclass(frozen=True)
class BuildConfig:
    """Validated build configuration."""

    exports: Dict[str, str]
    targets: Tuple[TargetConfig, ...]

    def get_target(self, name: str) -> TargetConfig:
        for target in self.targets:
            if target.name == name:
                return target
        raise KeyError(name)


@dataclass(frozen=True)
class ResolvedBuildConfig:
    """A build configuration plus where it was found."""

    config: BuildConfig
    source_type: str  # "yaml", "json" or "package.json"
    source_path: Path

    @property
    def label(self) -> str:
        if self.source_type == "package.json":
            return f'package.json "{PACKAGE_JSON_KEY}" key'
        return self.source_path.name


def find_build_config(
    package_root: Path,
    config_path: Optional[Path] = None,
    logger=None,
) -> Optional[ResolvedBuildConfig]:
    """
    Find, parse and validate the build configuration of a package.

    Args:
        package_root: Package root directory
        config_path: Explicit config file (relative to package_root); must exist
        logger: Optional BuildLogger for warnings

    Returns:
        ResolvedBuildConfig, or None when no configuration exists and no
        explicit path was given

    Raises:
        ConfigError: If the configuration cannot be parsed or is invalid
    """
    package_root = Path(package_root).resolve()

    if config_path is not None:
        full_path = (package_root / config_path).resolve()
        if not full_path.is_file():
            raise ConfigError(f"Config file not found: {full_path}", code="CONFIG_NOT_FOUND")
        raw, source_type = _parse_config_file(full_path)
        return ResolvedBuildConfig(
            config=validate_config(raw, str(full_path)),
            source_type=source_type,
            source_path=full_path,
        )

    pkg_data = _read_package_json(package_root)

    for file_name in CONFIG_FILE_NAMES:
        candidate = package_root / file_name
        if not candidate.is_file():
            continue
        raw, source_type = _parse_config_file(candidate)
        if pkg_data is not None and PACKAGE_JSON_KEY in pkg_data and logger is not None:
            logger.warn(
                f"[tsprism] Warning: Both {candidate} and package.json "
                f'"{PACKAGE_JSON_KEY}" key found in {package_root}. Using {candidate}.'
            )
        return ResolvedBuildConfig(
            config=validate_config(raw, str(candidate)),
            source_type=source_type,
            source_path=candidate,
        )

    if pkg_data is not None and PACKAGE_JSON_KEY in pkg_data:
        pkg_path = package_root / "package.json"
        return ResolvedBuildConfig(
            config=validate_config(
                pkg_data[PACKAGE_JSON_KEY], f'{pkg_path} "{PACKAGE_JSON_KEY}" key'
            ),
            source_type="package.json",
            source_path=pkg_path,
        )

    return None


def _read_package_json(package_root: Path) -> Optional[Dict[str, Any]]:
    pkg_path = package_root / "package.json"
    if not pkg_path.is_file():
        return None
    try:
        data = json.loads(pkg_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigError(f"Failed to parse {pkg_path}: {e}")
    return data if isinstance(data, dict) else None


def _parse_config_file(path: Path) -> Tuple[Any, str]:
    content = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            return json.loads(content), "json"
        return yaml.safe_load(content), "yaml"
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to parse {path}: {e}")


def validate_config(raw: Any, source: str) -> BuildConfig:
    """
    Validate that a parsed object is a well-formed build configuration.

    Args:
        raw: Parsed YAML/JSON data
        source: Human-readable origin used in error messages

    Returns:
        Validated BuildConfig

    Raises:
        ConfigError: If the shape is wrong
        ValidationError: If values are inconsistent (bad keys, duplicates)
    """
    prefix = f"Invalid config in {source}"
    if not isinstance(raw, dict):
        raise ConfigError(f"{prefix}: expected an object")

    exports = raw.get("exports")
    if not isinstance(exports, dict) or not exports:
        raise ConfigError(f'{prefix}: "exports" must be a non-empty object')

    for key, value in exports.items():
        if not isinstance(value, str):
            raise ConfigError(
                f'{prefix}: exports["{key}"] must be a string, got {type(value).__name__}'
            )
        _validate_export_key(key, prefix)

    targets_raw = raw.get("targets")
    if not isinstance(targets_raw, list) or not targets_raw:
        raise ConfigError(f'{prefix}: "targets" must be a non-empty array')

    targets: List[TargetConfig] = []
    seen_names = set()
    seen_conditions = set()
    for index, entry in enumerate(targets_raw):
        target = _validate_target(entry, index, prefix)
        if target.name in seen_names:
            raise ValidationError(f'{prefix}: duplicate target name "{target.name}"')
        if target.condition in seen_conditions:
            raise ValidationError(f'{prefix}: duplicate target condition "{target.condition}"')
        seen_names.add(target.name)
        seen_conditions.add(target.condition)
        targets.append(target)

    return BuildConfig(exports=dict(exports), targets=tuple(targets))


def _validate_export_key(key: Any, prefix: str) -> None:
    if not isinstance(key, str) or key == "":
        raise ConfigError(f"{prefix}: exports key must be a non-empty string")
    if key != "." and not key.startswith("./"):
        raise ValidationError(f'{prefix}: exports key "{key}" must be "." or start with "./"')
    if key != "." and key.endswith("/"):
        raise ValidationError(
            f'{prefix}: exports key "{key}" must not end with "/". '
            f'Trailing-slash patterns are deprecated in Node.js.'
        )
    if "*" in key:
        raise ValidationError(
            f'{prefix}: exports key "{key}" contains a wildcard. '
            "Each export must map to a single source file; list each entry explicitly."
        )


def _validate_target(entry: Any, index: int, prefix: str) -> TargetConfig:
    if not isinstance(entry, dict):
        raise ConfigError(f"{prefix}: targets[{index}] must be an object")

    for field in ("name", "tsconfig"):
        value = entry.get(field)
        if not isinstance(value, str) or not value:
            raise ConfigError(f"{prefix}: targets[{index}].{field} must be a non-empty string")
    name = entry["name"]

    condition = entry.get("condition", name)
    if not isinstance(condition, str) or not condition:
        raise ConfigError(f"{prefix}: targets[{index}].condition must be a non-empty string")

    # polyfillSuffix: true -> "-<name>", string -> as-is, false/absent -> disabled
    suffix_raw = entry.get("polyfillSuffix")
    if suffix_raw is True:
        polyfill_suffix = f"-{name}"
    elif suffix_raw is None or suffix_raw is False:
        polyfill_suffix = None
    elif isinstance(suffix_raw, str) and suffix_raw:
        polyfill_suffix = suffix_raw
    else:
        raise ConfigError(
            f"{prefix}: targets[{index}].polyfillSuffix must be a non-empty string, true, or false"
        )

    module_type_raw = entry.get("moduleType")
    if module_type_raw is None:
        module_type = None
    elif module_type_raw in MODULE_TYPE_ALIASES:
        module_type = MODULE_TYPE_ALIASES[module_type_raw]
    else:
        raise ConfigError(
            f'{prefix}: targets[{index}].moduleType must be "esm" or "commonjs"'
        )

    return TargetConfig(
        name=name,
        condition=condition,
        options_file=entry["tsconfig"],
        polyfill_suffix=polyfill_suffix,
        module_type=module_type,
    )


def filter_targets(config: BuildConfig, names: List[str]) -> BuildConfig:
    """
    Restrict a configuration to the named targets, keeping declared order.

    Raises:
        ValidationError: If a name is unknown
    """
    known = [t.name for t in config.targets]
    unknown = [n for n in names if n not in known]
    if unknown:
        raise ValidationError(
            f"Unknown target(s): {', '.join(unknown)}. Available: {', '.join(known)}"
        )
    selected = tuple(t for t in config.targets if t.name in names)
    return replace(config, targets=selected)


def validate_options_files(config: BuildConfig, package_root: Path, source: str) -> None:
    """
    Check that every target's tsconfig exists.

    Raises:
        ConfigError: If a referenced tsconfig is missing
    """
    for target in config.targets:
        options_path = (Path(package_root) / target.options_file).resolve()
        if not options_path.is_file():
            raise ConfigError(
                f'Invalid config in {source}: target "{target.name}" references tsconfig '
                f'"{target.options_file}" which does not exist at {options_path}',
                code="TSCONFIG_ERROR",
            )


def read_package_type(package_root: Path) -> str:
    """
    Default module format implied by package.json's "type" field.

    Returns:
        "commonjs" when package.json declares "type": "commonjs", else "esm"
    """
    pkg = _read_package_json(Path(package_root))
    if pkg is not None and pkg.get("type") == "commonjs":
        return "commonjs"
    return "esm"
