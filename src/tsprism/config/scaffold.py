"""
Scaffolding for a new build configuration (`tsprism init`).

Writes a tsprism.config.yml with an ESM and a CommonJS target, pointing the
root export at the detected entry point, plus a tsconfig per target that
does not have one yet.
"""

import json
from pathlib import Path
from typing import Dict, List, Tuple

import yaml

from ..errors import ConfigError
from .build_config import find_build_config

CONFIG_FILE_NAME = "tsprism.config.yml"

ENTRY_POINT_CANDIDATES = ("./src/index.ts", "./src/index.mts", "./src/main.ts")

TARGET_OPTIONS = {
    "esm": {"module": "NodeNext", "moduleResolution": "NodeNext"},
    "cjs": {"module": "CommonJS", "moduleResolution": "Node10"},
}
TARGET_CONDITIONS = (("esm", "import"), ("cjs", "require"))

HEADER = """# tsprism build configuration
#
# exports: package subpath -> source file
# targets: one output variant each; condition defaults to the target name,
#          polyfillSuffix substitutes X<suffix>.ts for X.ts in that target
"""


def detect_entry_point(package_root: Path) -> str:
    """
    Guess the package's source entry point.

    Uses package.json "main" when it points into src/, then the first
    existing common entry file, then ./src/index.ts.
    """
    package_root = Path(package_root)
    try:
        pkg = json.loads((package_root / "package.json").read_text(encoding="utf-8"))
    except (OSError, ValueError):
        pkg = None
    if isinstance(pkg, dict):
        main = pkg.get("main")
        if isinstance(main, str) and "src/" in main:
            return main if main.startswith("./") else "./" + main.lstrip("/")

    for candidate in ENTRY_POINT_CANDIDATES:
        if (package_root / candidate).is_file():
            return candidate
    return ENTRY_POINT_CANDIDATES[0]


def target_tsconfig(package_root: Path, name: str) -> Dict:
    """Starter tsconfig for one target, extending tsconfig.json when it exists."""
    compiler_options = {"outDir": f"./dist/{name}", "rootDir": "./src"}
    compiler_options.update(TARGET_OPTIONS[name])
    data: Dict = {}
    if (Path(package_root) / "tsconfig.json").is_file():
        data["extends"] = "./tsconfig.json"
    else:
        compiler_options.update({"target": "ES2022", "strict": True, "declaration": True})
    data["compilerOptions"] = compiler_options
    data["include"] = ["src"]
    return data


def scaffold_targets(package_root: Path) -> Tuple[List[Dict[str, str]], List[Path]]:
    """
    ESM and CommonJS targets with one tsconfig each.

    Existing tsconfig.<name>.json files are used as they are; missing ones are
    written.

    Returns:
        Tuple of (target entries, tsconfig files written)
    """
    package_root = Path(package_root)
    targets = []
    written = []
    for name, condition in TARGET_CONDITIONS:
        tsconfig = f"tsconfig.{name}.json"
        path = package_root / tsconfig
        if not path.is_file():
            path.write_text(json.dumps(target_tsconfig(package_root, name), indent=2) + "\n", encoding="utf-8")
            written.append(path)
        targets.append({"name": name, "condition": condition, "tsconfig": f"./{tsconfig}"})
    return targets, written


def render_config(entry_point: str, targets: List[Dict[str, str]]) -> str:
    data = {
        "exports": {"./package.json": "./package.json", ".": entry_point},
        "targets": targets,
    }
    return HEADER + "\n" + yaml.safe_dump(data, sort_keys=False, default_flow_style=False)


def scaffold_config(package_root: Path, logger=None) -> Path:
    """
    Write a starter tsprism.config.yml.

    Args:
        package_root: Package directory
        logger: Optional BuildLogger for the next-steps summary

    Returns:
        Path of the written config file

    Raises:
        ConfigError: If a build configuration already exists
    """
    package_root = Path(package_root).resolve()
    existing = find_build_config(package_root)
    if existing is not None:
        raise ConfigError(
            f"A build configuration already exists ({existing.label}); not overwriting it.",
            code="CONFIG_EXISTS",
        )

    entry_point = detect_entry_point(package_root)
    targets, written = scaffold_targets(package_root)
    config_path = package_root / CONFIG_FILE_NAME
    config_path.write_text(render_config(entry_point, targets), encoding="utf-8")

    if logger is not None:
        logger.info(f"[tsprism] Created {CONFIG_FILE_NAME}")
        for path in written:
            logger.info(f"[tsprism] Created {path.name}")
        logger.info("[tsprism] Targets:")
        for target in targets:
            logger.info(f"  {target['name']} ({target['condition']}) -> {target['tsconfig']}")
        logger.info("[tsprism] Next steps:")
        logger.info(f"  1. Review {CONFIG_FILE_NAME}")
        logger.info("  2. Adjust the target tsconfigs (outDir must differ per target)")
        logger.info("  3. Run: tsprism build")
    return config_path

