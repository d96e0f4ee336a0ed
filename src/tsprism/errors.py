"""Exception hierarchy for tsprism.

Every error raised by the build pipeline carries a short machine-readable
``code`` so callers (and the CLI's JSON report) can branch on the failure
kind without parsing messages:

- CONFIG_NOT_FOUND: no build configuration could be located
- CONFIG_INVALID: the build configuration has the wrong shape
- CONFIG_EXISTS: `tsprism init` found a configuration it will not overwrite
- TSCONFIG_ERROR: a target's tsconfig could not be read or parsed
- COMPILE_ERROR: the compiler collaborator could not run
- VALIDATION_ERROR: configuration is well-formed but inconsistent
- DIST_MISSING: exported output files are missing after a build
"""

from typing import List


class PrismError(Exception):
    """Base exception for all tsprism errors."""

    code = "PRISM_ERROR"

    def __init__(self, message: str, code: str = None):
        super().__init__(message)
        if code is not None:
            self.code = code


class ConfigError(PrismError):
    """Raised when the build configuration is missing or invalid."""

    code = "CONFIG_INVALID"


class TargetOptionsError(PrismError):
    """Raised when a target's tsconfig cannot be read or parsed."""

    code = "TSCONFIG_ERROR"


class ValidationError(PrismError):
    """Raised when configuration is well-formed but inconsistent."""

    code = "VALIDATION_ERROR"


class CompilerError(PrismError):
    """Raised when the compiler collaborator cannot be invoked."""

    code = "COMPILE_ERROR"


class DistMissingError(PrismError):
    """Raised when files referenced by the exports map are missing on disk."""

    code = "DIST_MISSING"

    def __init__(self, missing: List[str]):
        self.missing = list(missing)
        lines = [f"{len(self.missing)} dist file(s) missing after compilation:"]
        lines.extend(f"  - {path}" for path in self.missing)
        super().__init__("\n".join(lines))
