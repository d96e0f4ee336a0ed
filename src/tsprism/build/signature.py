"""Signature engine for compilation deduplication.

Two stable identities are computed per target:

- source identity: the set of source files plus the polyfill suffix. Targets
  with equal source identity type-check identically because they consume the
  same logical source text.
- options signature: the source identity plus every compiler option except
  the ones that only name an output location. Targets with equal options
  signatures emit byte-identical output and can be copied instead of compiled.

Both are pure functions of their inputs. Option keys that are not known to be
output locations are always part of the signature, so an unfamiliar option
can only prevent deduplication, never cause a wrong one.
"""

import hashlib
import json
from typing import Any, Dict, Iterable, Optional

# Options whose value is purely a filesystem output location. Every target's
# outDir differs by construction, so including them would defeat dedup.
OUTPUT_LOCATION_KEYS = frozenset({"outDir", "tsBuildInfoFile"})

# Compiler bookkeeping that does not influence emitted bytes.
NON_SEMANTIC_KEYS = frozenset({"configFilePath"})


def _files_digest(files: Iterable[str]) -> str:
    joined = "\0".join(sorted(str(f) for f in files))
    return hashlib.sha256(joined.encode("utf-8")).hexdigest()


def source_identity(files: Iterable[str], polyfill_suffix: Optional[str] = None) -> str:
    """
    Compute the source identity of a target.

    Args:
        files: Absolute source file paths (order does not matter)
        polyfill_suffix: Polyfill suffix, or None when substitution is disabled

    Returns:
        Hex digest identifying the logical source text
    """
    hasher = hashlib.sha256()
    hasher.update(b"files:")
    hasher.update(_files_digest(files).encode("ascii"))
    hasher.update(b"\0polyfill:")
    # "\0" cannot appear in a suffix, so absence never collides with a value
    hasher.update(b"\0" if polyfill_suffix is None else polyfill_suffix.encode("utf-8"))
    return hasher.hexdigest()


def signature_options(options: Dict[str, Any]) -> Dict[str, Any]:
    """Return the subset of options that participates in the options signature."""
    return {
        key: value
        for key, value in options.items()
        if key not in OUTPUT_LOCATION_KEYS and key not in NON_SEMANTIC_KEYS
    }


def options_signature(
    options: Dict[str, Any],
    files: Iterable[str],
    polyfill_suffix: Optional[str] = None,
) -> str:
    """
    Compute the options signature of a target.

    Args:
        options: Normalized compiler options
        files: Absolute source file paths (order does not matter)
        polyfill_suffix: Polyfill suffix, or None when substitution is disabled

    Returns:
        Hex digest identifying the full emitted output
    """
    canonical = json.dumps(
        signature_options(options),
        sort_keys=True,
        separators=(",", ":"),
        default=str,
    )
    hasher = hashlib.sha256()
    hasher.update(b"source:")
    hasher.update(source_identity(files, polyfill_suffix).encode("ascii"))
    hasher.update(b"\0options:")
    hasher.update(canonical.encode("utf-8"))
    return hasher.hexdigest()
