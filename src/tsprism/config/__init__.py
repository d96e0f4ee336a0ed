"""Configuration parsing for tsprism."""

from .build_config import (
    BuildConfig,
    ResolvedBuildConfig,
    TargetConfig,
    filter_targets,
    find_build_config,
    read_package_type,
    validate_config,
    validate_options_files,
)
from .scaffold import scaffold_config
from .target_options import ParsedTargetConfig, parse_target_options

__all__ = [
    "BuildConfig",
    "ResolvedBuildConfig",
    "TargetConfig",
    "ParsedTargetConfig",
    "filter_targets",
    "find_build_config",
    "parse_target_options",
    "read_package_type",
    "scaffold_config",
    "validate_config",
    "validate_options_files",
]
