"""
Integration test for a full multi-target build with the real TypeScript compiler.

Needs Node.js on PATH and a typescript installation, either in the global npm
root or pointed to by the TSPRISM_TYPESCRIPT_DIR environment variable.
Run with: pytest --full
"""

import json
import os
import shutil
import subprocess
from pathlib import Path

import pytest
import yaml

from tsprism.build import BuildLogger, BuildOptions, BuildOrchestrator, TypeScriptCompiler

INDEX_TS = """import { greet } from "./greeter.js";

export const version: string = "1.0.0";

export function hello(name: string): string {
  return greet(name);
}
"""

GREETER_TS = """export function greet(name: string): string {
  return "node:" + name;
}
"""

GREETER_BROWSER_MTS = """export function greet(name: string): string {
  return "browser:" + name;
}
"""


def _find_typescript():
    explicit = os.environ.get("TSPRISM_TYPESCRIPT_DIR")
    if explicit:
        return Path(explicit) if (Path(explicit) / "package.json").is_file() else None
    npm = shutil.which("npm")
    if npm is None:
        return None
    try:
        root = subprocess.run(
            [npm, "root", "-g"], capture_output=True, text=True, timeout=60, check=True
        ).stdout.strip()
    except (subprocess.SubprocessError, OSError):
        return None
    candidate = Path(root) / "typescript"
    return candidate if (candidate / "package.json").is_file() else None


def _tsconfig(root, name, **options):
    compiler_options = {
        "rootDir": "./src",
        "outDir": f"./dist/{name}",
        "module": "NodeNext",
        "moduleResolution": "NodeNext",
        "target": "ES2022",
        "strict": True,
        "declaration": True,
        "skipLibCheck": True,
        "types": [],
    }
    compiler_options.update(options)
    (root / f"tsconfig.{name}.json").write_text(
        json.dumps({"compilerOptions": compiler_options, "include": ["src"]}, indent=2)
    )


@pytest.fixture
def typescript_package(tmp_path):
    """A package with esm, cjs, workerd and browser targets and typescript linked in."""
    if shutil.which("node") is None:
        pytest.skip("Node.js not found on PATH")
    typescript_dir = _find_typescript()
    if typescript_dir is None:
        pytest.skip("typescript package not found")

    root = tmp_path / "pkg"
    (root / "src").mkdir(parents=True)
    (root / "node_modules").mkdir()
    os.symlink(typescript_dir, root / "node_modules" / "typescript", target_is_directory=True)
    (root / "package.json").write_text(
        json.dumps({"name": "demo", "version": "1.0.0", "type": "module"}, indent=2) + "\n"
    )
    (root / "src" / "index.ts").write_text(INDEX_TS)
    (root / "src" / "greeter.ts").write_text(GREETER_TS)
    (root / "src" / "greeter-browser.mts").write_text(GREETER_BROWSER_MTS)

    _tsconfig(root, "esm")
    _tsconfig(root, "cjs", module="CommonJS", moduleResolution="Node10")
    _tsconfig(root, "workerd")
    _tsconfig(root, "browser")
    (root / "tsprism.config.yml").write_text(
        yaml.safe_dump(
            {
                "exports": {".": "./src/index.ts", "./package.json": "./package.json"},
                "targets": [
                    {"name": "esm", "condition": "import", "tsconfig": "./tsconfig.esm.json"},
                    {"name": "cjs", "condition": "require", "tsconfig": "./tsconfig.cjs.json"},
                    {"name": "workerd", "tsconfig": "./tsconfig.workerd.json"},
                    {"name": "browser", "tsconfig": "./tsconfig.browser.json", "polyfillSuffix": "-browser"},
                ],
            },
            sort_keys=False,
        )
    )
    return root.resolve()


@pytest.mark.integration
class TestTypeScriptBuild:
    """End-to-end builds through Node.js."""

    @pytest.mark.parametrize("parallel", [False, True])
    def test_full_build(self, typescript_package, parallel):
        orchestrator = BuildOrchestrator(
            TypeScriptCompiler(typescript_package), BuildLogger(level="quiet")
        )
        result = orchestrator.build(
            BuildOptions(project_dir=typescript_package, parallel=parallel, max_workers=2)
        )

        assert result.success, result.message
        roles = {r.name: r.role for r in result.compile_results}
        assert roles == {"esm": "primary", "cjs": "secondary", "workerd": "duplicate", "browser": "primary"}

        dist = typescript_package / "dist"
        assert (dist / "workerd" / "index.js").read_bytes() == (dist / "esm" / "index.js").read_bytes()
        assert (dist / "cjs" / "index.d.ts").read_bytes() == (dist / "esm" / "index.d.ts").read_bytes()
        assert "exports.hello" in (dist / "cjs" / "index.js").read_text()
        assert "export function hello" in (dist / "esm" / "index.js").read_text()
        assert "browser:" in (dist / "browser" / "greeter.js").read_text()
        assert "node:" in (dist / "esm" / "greeter.js").read_text()

        pkg = json.loads((typescript_package / "package.json").read_text())
        assert set(pkg["exports"]["."]) == {"import", "require", "workerd", "browser"}

    def test_runs_under_node(self, typescript_package):
        """Test that the emitted ESM and CommonJS entry points load in Node.js."""
        orchestrator = BuildOrchestrator(
            TypeScriptCompiler(typescript_package), BuildLogger(level="quiet")
        )
        assert orchestrator.build(BuildOptions(project_dir=typescript_package)).success

        esm = subprocess.run(
            ["node", "--input-type=module", "-e", "import { hello } from './dist/esm/index.js'; console.log(hello('x'))"],
            cwd=typescript_package,
            capture_output=True,
            text=True,
        )
        cjs = subprocess.run(
            ["node", "-e", "console.log(require('./dist/cjs/index.js').hello('x'))"],
            cwd=typescript_package,
            capture_output=True,
            text=True,
        )
        assert esm.stdout.strip() == "node:x", esm.stderr
        assert cjs.stdout.strip() == "node:x", cjs.stderr

    def test_type_error_reported(self, typescript_package):
        (typescript_package / "src" / "bad.ts").write_text("export const n: number = 'oops';\n")
        orchestrator = BuildOrchestrator(
            TypeScriptCompiler(typescript_package), BuildLogger(level="quiet")
        )

        result = orchestrator.build(BuildOptions(project_dir=typescript_package))

        assert not result.success
        esm = next(r for r in result.compile_results if r.name == "esm")
        assert any(d.code == 2322 for d in esm.diagnostics)
        assert "cjs (dependency 'esm' failed)" in result.message
