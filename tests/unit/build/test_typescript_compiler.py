"""
Unit tests for TypeScriptCompiler.

Tests the Node.js driver wrapper without running Node.js.
"""

import json
import subprocess
from unittest.mock import Mock, patch

import pytest

from tsprism.build.compiler import MODE_TRANSPILE, CompileRequest, SourceText
from tsprism.build.typescript_compiler import DRIVER_PATH, TypeScriptCompiler
from tsprism.errors import CompilerError


class TestTypeScriptCompiler:
    """Test suite for TypeScriptCompiler."""

    @pytest.fixture
    def compiler(self, tmp_path):
        return TypeScriptCompiler(tmp_path, node="node", timeout=30)

    @pytest.fixture
    def request_(self, tmp_path):
        return CompileRequest(
            target_name="cjs",
            mode=MODE_TRANSPILE,
            sources=(SourceText(str(tmp_path / "src" / "index.ts"), "export const a = 1;\n"),),
            options={"module": "commonjs", "rootDir": str(tmp_path / "src")},
            root_dir=str(tmp_path / "src"),
            out_dir=str(tmp_path / "dist" / "cjs"),
            module_format="commonjs",
            emit_declarations=False,
        )

    def _completed(self, stdout="", returncode=0, stderr=""):
        mock_result = Mock()
        mock_result.returncode = returncode
        mock_result.stdout = stdout
        mock_result.stderr = stderr
        return mock_result

    def test_driver_is_packaged(self):
        assert DRIVER_PATH.name == "tsc_driver.js"
        assert DRIVER_PATH.is_file()

    @patch('subprocess.run')
    def test_sends_request_as_json(self, mock_run, compiler, request_, tmp_path):
        """Test the command line and stdin payload."""
        mock_run.return_value = self._completed(json.dumps({"diagnostics": [], "emitted": []}))

        compiler.compile(request_)

        args, kwargs = mock_run.call_args
        assert args[0] == ["node", str(DRIVER_PATH)]
        assert kwargs["timeout"] == 30
        assert kwargs["cwd"] == str(tmp_path.resolve())
        payload = json.loads(kwargs["input"])
        assert payload["packageRoot"] == str(tmp_path.resolve())
        assert payload["mode"] == "transpile"
        assert payload["moduleFormat"] == "commonjs"
        assert payload["emitDeclarations"] is False
        assert payload["sources"] == [
            {"path": str(tmp_path / "src" / "index.ts"), "content": "export const a = 1;\n"}
        ]
        assert payload["options"]["module"] == "commonjs"

    @patch('subprocess.run')
    def test_parses_driver_output(self, mock_run, compiler, request_):
        mock_run.return_value = self._completed(
            json.dumps(
                {
                    "diagnostics": [
                        {
                            "message": "';' expected.",
                            "category": "error",
                            "code": 1005,
                            "file": "/pkg/src/index.ts",
                            "line": 2,
                            "column": 5,
                        },
                        {"message": "Unused.", "category": "warning", "code": 6133},
                    ],
                    "emitted": [{"path": "index.js", "content": "exports.a = 1;\n"}],
                }
            )
        )

        result = compiler.compile(request_)

        assert not result.success
        assert result.diagnostics[0].code == 1005
        assert result.diagnostics[0].line == 2
        assert result.diagnostics[1].category == "warning"
        assert result.diagnostics[1].file is None
        assert [(f.path, f.content) for f in result.emitted] == [("index.js", "exports.a = 1;\n")]

    @patch('subprocess.run')
    def test_node_not_found(self, mock_run, compiler, request_):
        mock_run.side_effect = FileNotFoundError("node")

        with pytest.raises(CompilerError, match='Node.js executable not found'):
            compiler.compile(request_)

    @patch('subprocess.run')
    def test_timeout(self, mock_run, compiler, request_):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="node", timeout=30)

        with pytest.raises(CompilerError, match="Compilation timeout for target 'cjs' after 30s"):
            compiler.compile(request_)

    @patch('subprocess.run')
    def test_driver_failure(self, mock_run, compiler, request_):
        """Test that a non-zero exit surfaces the driver's stderr."""
        mock_run.return_value = self._completed(
            returncode=2, stderr="Cannot find module 'typescript'\n"
        )

        with pytest.raises(CompilerError) as exc_info:
            compiler.compile(request_)

        assert "exit code 2" in str(exc_info.value)
        assert "Cannot find module 'typescript'" in str(exc_info.value)
        assert exc_info.value.code == "COMPILE_ERROR"

    @patch('subprocess.run')
    def test_invalid_json(self, mock_run, compiler, request_):
        mock_run.return_value = self._completed("not json")

        with pytest.raises(CompilerError, match='Invalid output from TypeScript driver'):
            compiler.compile(request_)

    def test_compiler_port_has_no_error_reexport(self):
        """Test that CompilerError is only importable from tsprism.errors."""
        import tsprism.build.compiler as compiler_port

        assert not hasattr(compiler_port, "CompilerError")
        assert CompilerError.__module__ == "tsprism.errors"
