"""Shared fixtures for build engine tests."""

import json
from typing import Optional

import pytest

from build_helpers import (
    GREETER_BROWSER_MTS,
    GREETER_TS,
    INDEX_TS,
    FakeCompiler,
    write_build_config,
    write_file,
    write_tsconfig,
)
from tsprism.config.build_config import TargetConfig
from tsprism.config.target_options import ParsedTargetConfig, parse_target_options


@pytest.fixture
def compiler():
    return FakeCompiler()


@pytest.fixture
def package_root(tmp_path):
    """A small ESM package with one browser override."""
    root = tmp_path / "pkg"
    write_file(
        root / "package.json",
        json.dumps({"name": "demo", "version": "1.0.0", "type": "module"}, indent=2) + "\n",
    )
    write_file(root / "src" / "index.ts", INDEX_TS)
    write_file(root / "src" / "greeter.ts", GREETER_TS)
    write_file(root / "src" / "greeter-browser.mts", GREETER_BROWSER_MTS)
    return root.resolve()


@pytest.fixture
def parse(package_root):
    """Parse a target against the package_root fixture."""

    def _parse(target: TargetConfig) -> ParsedTargetConfig:
        return parse_target_options(target, package_root)

    return _parse


@pytest.fixture
def make_target(package_root):
    """Write a tsconfig and return the matching TargetConfig."""

    def _make(
        name: str,
        condition: Optional[str] = None,
        polyfill_suffix: Optional[str] = None,
        module_type: Optional[str] = None,
        **tsconfig,
    ) -> TargetConfig:
        out_dir = tsconfig.pop("out_dir", f"./dist/{name}")
        options_file = write_tsconfig(package_root, name, out_dir, **tsconfig)
        return TargetConfig(
            name=name,
            condition=condition or name,
            options_file=options_file,
            polyfill_suffix=polyfill_suffix,
            module_type=module_type,
        )

    return _make


@pytest.fixture
def multi_target_package(package_root, make_target):
    """Package with esm, cjs, workerd and browser targets and a build config."""
    targets = [
        make_target("esm", condition="import"),
        make_target("cjs", condition="require", module="commonjs", module_resolution="node10"),
        make_target("workerd"),
        make_target("browser", polyfill_suffix="-browser"),
    ]
    entries = []
    for target in targets:
        entry = {"name": target.name, "condition": target.condition, "tsconfig": target.options_file}
        if target.polyfill_suffix:
            entry["polyfillSuffix"] = target.polyfill_suffix
        entries.append(entry)
    write_build_config(
        package_root,
        exports={
            ".": "./src/index.ts",
            "./greeter": "./src/greeter.ts",
            "./package.json": "./package.json",
        },
        targets=entries,
    )
    return package_root
