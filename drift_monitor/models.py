"""Data model shared by the drift monitor components."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional, Union


Number = Union[int, float]


@dataclass(frozen=True)
class ProcessResult:
    """Captured outcome of one subprocess invocation"""
    exit_code: int
    stdout: str
    stderr: str


@dataclass(frozen=True)
class CachedArtifact:
    """
    An entry of the on-disk artifact cache.

    ``exists`` is only ever true once the content is fully extracted and
    published; staging directories are never handed out.
    """
    key: str
    path: Path
    exists: bool


@dataclass(frozen=True)
class RepositorySnapshot:
    """Immutable, commit-addressed local copy of the configuration repository"""
    repo: str
    sha: str
    path: Path


class PlanStatus(str, Enum):
    """Outcome of the plan phase, derived from its detailed exit code"""
    CLEAN = "clean"
    CHANGES_PENDING = "changes-pending"
    ERROR = "error"

    @classmethod
    def from_exit_code(cls, exit_code: int) -> "PlanStatus":
        if exit_code == 0:
            return cls.CLEAN
        if exit_code == 2:
            return cls.CHANGES_PENDING
        return cls.ERROR

    @property
    def metric_value(self) -> int:
        # Mirrors the tool's detailed exit codes
        return {"clean": 0, "changes-pending": 2, "error": 1}[self.value]


@dataclass(frozen=True)
class PhaseTiming:
    init_ms: int = 0
    plan_ms: int = 0


@dataclass(frozen=True)
class PlanOutcome:
    """Parsed result of one successful plan; built once per run"""
    status: PlanStatus
    resources_refreshed: int = 0
    pending_add: int = 0
    pending_change: int = 0
    pending_destroy: int = 0
    pending_total: int = 0
    timing: PhaseTiming = field(default_factory=PhaseTiming)
    summary_found: bool = False


class MetricUnit(str, Enum):
    """Unit classification, named after the CloudWatch standard units"""
    NONE = "None"
    COUNT = "Count"
    MILLISECONDS = "Milliseconds"
    BYTES = "Bytes"


class Metric(str, Enum):
    PLAN_STATUS = "plan_status"
    RESOURCES_REFRESHED = "resources_refreshed"
    PENDING_ADD = "pending_add"
    PENDING_CHANGE = "pending_change"
    PENDING_DESTROY = "pending_destroy"
    PENDING_TOTAL = "pending_total"
    SCRATCH_SPACE_BYTES = "scratch_space_bytes"
    TOTAL_DURATION_MS = "total_duration_ms"
    INIT_DURATION_MS = "init_duration_ms"
    PLAN_DURATION_MS = "plan_duration_ms"


METRIC_UNITS: Mapping[Metric, MetricUnit] = MappingProxyType({
    Metric.PLAN_STATUS: MetricUnit.NONE,
    Metric.RESOURCES_REFRESHED: MetricUnit.COUNT,
    Metric.PENDING_ADD: MetricUnit.COUNT,
    Metric.PENDING_CHANGE: MetricUnit.COUNT,
    Metric.PENDING_DESTROY: MetricUnit.COUNT,
    Metric.PENDING_TOTAL: MetricUnit.COUNT,
    Metric.SCRATCH_SPACE_BYTES: MetricUnit.BYTES,
    Metric.TOTAL_DURATION_MS: MetricUnit.MILLISECONDS,
    Metric.INIT_DURATION_MS: MetricUnit.MILLISECONDS,
    Metric.PLAN_DURATION_MS: MetricUnit.MILLISECONDS,
})

_unmapped = set(Metric) - set(METRIC_UNITS)
if _unmapped:
    raise RuntimeError(f"Metrics without a unit: {sorted(m.value for m in _unmapped)}")


@dataclass(frozen=True)
class MetricsRecord:
    """
    Metric values of one run plus the repository they describe.

    Read-only once constructed: ``values`` is wrapped in a mapping proxy.
    """
    repo: str
    values: Mapping[Metric, Number]
    timestamp_ms: Optional[int] = None

    def __post_init__(self):
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    def unit_of(self, metric: Metric) -> MetricUnit:
        return METRIC_UNITS[metric]

    def as_fields(self) -> dict:
        """Metric values keyed by metric name, in enum order"""
        return {m.value: self.values[m] for m in Metric if m in self.values}
