"""TypeScript compiler collaborator.

Runs the bundled ``tsc_driver.js`` under Node.js. The compile request goes to
the driver as JSON on stdin; diagnostics and emitted file contents come back
as JSON on stdout. The driver resolves the ``typescript`` package from the
project being built, so the project's own TypeScript version is used.
"""

import json
import logging
import subprocess
from pathlib import Path
from typing import Any, Dict

from ..errors import CompilerError
from .compiler import CompileRequest, Diagnostic, EmitResult, EmittedFile, ICompiler

logger = logging.getLogger(__name__)

DRIVER_PATH = Path(__file__).resolve().parent.parent / "assets" / "tsc_driver.js"


class TypeScriptCompiler(ICompiler):
    """Compiler collaborator backed by Node.js and the typescript package."""

    def __init__(self, package_root: Path, node: str = "node", timeout: int = 300):
        """Initialize TypeScript compiler.

        Args:
            package_root: Package being built (typescript is resolved from here)
            node: Node.js executable
            timeout: Seconds before a single compile is abandoned
        """
        self.package_root = Path(package_root).resolve()
        self.node = node
        self.timeout = timeout

    def _payload(self, request: CompileRequest) -> str:
        return json.dumps(
            {
                "packageRoot": str(self.package_root),
                "mode": request.mode,
                "sources": [{"path": s.path, "content": s.content} for s in request.sources],
                "options": request.options,
                "rootDir": request.root_dir,
                "outDir": request.out_dir,
                "moduleFormat": request.module_format,
                "emitDeclarations": request.emit_declarations,
            },
            default=str,
        )

    def compile(self, request: CompileRequest) -> EmitResult:
        """Compile or transpile a target through the Node.js driver.

        Args:
            request: Self-contained compile request

        Returns:
            EmitResult with diagnostics and emitted files

        Raises:
            CompilerError: If Node.js cannot be started, the driver fails or
                its output cannot be parsed
        """
        cmd = [self.node, str(DRIVER_PATH)]
        logger.debug(
            "Running %s for target %s (%s, %d files)",
            " ".join(cmd),
            request.target_name,
            request.mode,
            len(request.sources),
        )

        try:
            result = subprocess.run(
                cmd,
                input=self._payload(request),
                capture_output=True,
                text=True,
                encoding="utf-8",
                cwd=str(self.package_root),
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise CompilerError(
                f"Node.js executable not found: {self.node}. Ensure Node.js is installed."
            ) from e
        except subprocess.TimeoutExpired as e:
            raise CompilerError(
                f"Compilation timeout for target '{request.target_name}' after {self.timeout}s"
            ) from e

        if result.returncode != 0:
            error_msg = f"TypeScript driver failed for target '{request.target_name}' "
            error_msg += f"(exit code {result.returncode})\n"
            error_msg += f"stderr: {result.stderr.strip()}"
            raise CompilerError(error_msg)

        try:
            data = json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise CompilerError(
                f"Invalid output from TypeScript driver for target '{request.target_name}': {e}"
            ) from e

        return EmitResult(
            diagnostics=tuple(_parse_diagnostic(d) for d in data.get("diagnostics", [])),
            emitted=tuple(
                EmittedFile(path=f["path"], content=f["content"]) for f in data.get("emitted", [])
            ),
        )


def _parse_diagnostic(raw: Dict[str, Any]) -> Diagnostic:
    return Diagnostic(
        message=raw.get("message", ""),
        category=raw.get("category", "error"),
        code=raw.get("code"),
        file=raw.get("file"),
        line=raw.get("line"),
        column=raw.get("column"),
    )
