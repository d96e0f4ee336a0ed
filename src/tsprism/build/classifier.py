"""Target classification.

Partitions a build's targets into compilation groups and assigns each target
exactly one role:

    PrimaryRole    first target of its source-identity group; fully
                   type-checked; canonical source of declarations
    SecondaryRole  same source identity as an earlier primary but different
                   options; transpile-only emit, declarations copied
    DuplicateRole  same options signature as an earlier target; the output
                   directory is copied, nothing is compiled

The plan is computed once, in declared target order, before any compilation
starts and is immutable afterwards. Signature maps are scoped to a single
build and never persisted.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Dict, FrozenSet, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from ..config.build_config import TargetConfig
from ..config.target_options import ParsedTargetConfig
from .polyfill import discover_polyfills
from .signature import options_signature, source_identity

ESM = "esm"
COMMONJS = "commonjs"

_ESM_MODULE_KINDS = frozenset({"es6", "es2015", "es2020", "es2022", "esnext", "preserve"})
_COMMONJS_MODULE_KINDS = frozenset({"commonjs", "none", "amd", "umd", "system"})
# Node16/NodeNext pick the format per file from package.json "type"
AMBIGUOUS_MODULE_KINDS = frozenset({"node16", "node18", "node20", "nodenext"})


@dataclass(frozen=True)
class PrimaryRole:
    """Full type-checked compile."""

    module_format: str
    kind = "primary"


@dataclass(frozen=True)
class SecondaryRole:
    """Transpile-only emit; declarations copied from ``primary``."""

    primary: str
    module_format: str
    kind = "secondary"


@dataclass(frozen=True)
class DuplicateRole:
    """Output copied from ``source``; never compiled."""

    source: str
    module_format: str
    kind = "duplicate"


TargetRole = Union[PrimaryRole, SecondaryRole, DuplicateRole]


@dataclass(frozen=True)
class PlannedTarget:
    """A target together with its role and identities."""

    parsed: ParsedTargetConfig
    role: TargetRole
    source_identity: str
    options_signature: str
    polyfills: Mapping[str, str]

    @property
    def name(self) -> str:
        return self.parsed.target.name

    @property
    def dependency(self) -> Optional[str]:
        """Name of the target whose output this target consumes, if any."""
        if isinstance(self.role, SecondaryRole):
            return self.role.primary
        if isinstance(self.role, DuplicateRole):
            return self.role.source
        return None


@dataclass(frozen=True)
class BuildPlan:
    """Frozen grouping plan for one build."""

    targets: Tuple[PlannedTarget, ...]
    polyfill_files: FrozenSet[str]

    def __iter__(self) -> Iterator[PlannedTarget]:
        return iter(self.targets)

    def __len__(self) -> int:
        return len(self.targets)

    def get(self, name: str) -> PlannedTarget:
        for planned in self.targets:
            if planned.name == name:
                return planned
        raise KeyError(name)

    def with_role(self, role_type) -> List[PlannedTarget]:
        return [p for p in self.targets if isinstance(p.role, role_type)]

    @property
    def compile_count(self) -> int:
        """Number of targets that invoke the compiler (non-duplicates)."""
        return sum(1 for p in self.targets if not isinstance(p.role, DuplicateRole))


def module_format_from_option(module: Optional[str]) -> Optional[str]:
    """
    Map a ``module`` compiler option to an output format.

    Returns:
        "esm", "commonjs", or None when the option alone does not decide
    """
    if not isinstance(module, str):
        return None
    module = module.lower()
    if module in _ESM_MODULE_KINDS:
        return ESM
    if module in _COMMONJS_MODULE_KINDS:
        return COMMONJS
    return None


def resolve_module_format(
    target: TargetConfig,
    options: Mapping,
    inherited: Optional[str] = None,
    default: str = ESM,
) -> str:
    """
    Resolve a target's effective module format.

    Precedence: explicit ``module_type`` on the target, then the target's own
    ``module`` option when it is unambiguous, then the inherited (primary's)
    format, then ``default``.
    """
    if target.module_type is not None:
        return target.module_type
    from_option = module_format_from_option(options.get("module"))
    if from_option is not None:
        return from_option
    if inherited is not None:
        return inherited
    return default


def _signature_options(parsed: ParsedTargetConfig) -> Dict:
    # An explicit module type changes emit for ambiguous module kinds, so it
    # must keep otherwise-identical targets apart.
    options = dict(parsed.options)
    if parsed.target.module_type is not None:
        options["moduleType"] = parsed.target.module_type
    return options


def classify_targets(
    parsed_configs: Sequence[ParsedTargetConfig],
    default_format: str = ESM,
    discover: Callable[[Sequence[str], Optional[str]], Dict[str, str]] = discover_polyfills,
) -> BuildPlan:
    """
    Build the grouping plan for a set of targets.

    Args:
        parsed_configs: Parsed targets in declared order
        default_format: Format for primaries whose options do not decide one
        discover: Polyfill discovery function

    Returns:
        Immutable BuildPlan in declared order
    """
    first_by_signature: Dict[str, str] = {}
    primary_by_identity: Dict[str, str] = {}
    formats: Dict[str, str] = {}
    planned: List[PlannedTarget] = []
    override_files = set()

    for parsed in parsed_configs:
        name = parsed.target.name
        suffix = parsed.target.polyfill_suffix
        src_id = source_identity(parsed.files, suffix)
        signature = options_signature(_signature_options(parsed), parsed.files, suffix)
        polyfills = discover(parsed.files, suffix)
        override_files.update(polyfills.values())

        role: TargetRole
        if signature in first_by_signature:
            source = first_by_signature[signature]
            role = DuplicateRole(source=source, module_format=formats[source])
        elif src_id in primary_by_identity:
            primary = primary_by_identity[src_id]
            role = SecondaryRole(
                primary=primary,
                module_format=resolve_module_format(
                    parsed.target, parsed.options, inherited=formats[primary]
                ),
            )
            first_by_signature[signature] = name
        else:
            role = PrimaryRole(
                module_format=resolve_module_format(
                    parsed.target, parsed.options, default=default_format
                )
            )
            primary_by_identity[src_id] = name
            first_by_signature[signature] = name

        formats[name] = role.module_format
        planned.append(
            PlannedTarget(
                parsed=parsed,
                role=role,
                source_identity=src_id,
                options_signature=signature,
                polyfills=MappingProxyType(dict(polyfills)),
            )
        )

    return BuildPlan(targets=tuple(planned), polyfill_files=frozenset(override_files))
