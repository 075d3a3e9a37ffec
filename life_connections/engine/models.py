"""Data models for the Life Connections correlation engine."""

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field, model_validator

# ============================================================================
# Enumerations
# ============================================================================


class ValueType(str, Enum):
    """How a metric's daily values are interpreted."""

    CONTINUOUS = "continuous"  # sleep hours, mood score
    BINARY = "binary"  # did the activity happen that day
    COUNT = "count"  # photos taken, absent days are 0


class Direction(str, Enum):
    """Sign of a connection."""

    POSITIVE = "positive"
    NEGATIVE = "negative"


class Strength(str, Enum):
    """Qualitative strength of a connection."""

    WEAK = "weak"  # |r| < 0.3
    MODERATE = "moderate"  # 0.3 <= |r| <= 0.6
    STRONG = "strong"  # |r| > 0.6


class TrendDirection(str, Enum):
    """Whether a connection grows or fades across the window."""

    STRENGTHENING = "strengthening"
    STABLE = "stable"
    WEAKENING = "weakening"


class LagDirection(str, Enum):
    """Which side of a lagged pair moves first."""

    A_LEADS_B = "a_leads_b"
    B_LEADS_A = "b_leads_a"


# ============================================================================
# Series and Pairs
# ============================================================================


class DomainSeries(BaseModel):
    """One metric from one domain as a per-day numeric series."""

    domain_id: str
    metric_name: str
    value_type: ValueType
    values: dict[date, float] = Field(default_factory=dict)
    unit: str | None = None
    display_name: str | None = None

    @model_validator(mode="after")
    def _sort_values(self) -> "DomainSeries":
        self.values = dict(sorted(self.values.items()))
        return self

    @property
    def key(self) -> str:
        """Stable identifier for the (domain, metric) combination."""
        return f"{self.domain_id}.{self.metric_name}"

    @property
    def dates(self) -> list[date]:
        return list(self.values)

    @property
    def informative_days(self) -> int:
        """Days carrying signal: present for continuous, non-zero otherwise."""
        if self.value_type == ValueType.CONTINUOUS:
            return len(self.values)
        return sum(1 for v in self.values.values() if v != 0)


@dataclass
class CandidatePair:
    """Two series from different domains plus the dates both cover."""

    series_a: DomainSeries
    series_b: DomainSeries
    overlap_dates: tuple[date, ...]

    @property
    def sample_size(self) -> int:
        return len(self.overlap_dates)

    @property
    def key(self) -> str:
        return f"{self.series_a.key}|{self.series_b.key}"

    @property
    def binary_side(self) -> Literal["a", "b"] | None:
        """Which side is the binary presence series, if exactly one is."""
        a_binary = self.series_a.value_type == ValueType.BINARY
        b_binary = self.series_b.value_type == ValueType.BINARY
        if a_binary and not b_binary:
            return "a"
        if b_binary and not a_binary:
            return "b"
        return None


# ============================================================================
# Statistics
# ============================================================================


class CorrelationResult(BaseModel):
    """Statistics for one analyzed pair."""

    coefficient: float = Field(ge=-1.0, le=1.0)
    p_value: float = Field(ge=0.0, le=1.0)
    adjusted_p_value: float | None = None
    effect_size: float = Field(ge=0.0, le=1.0)
    effective_sample_size: float
    autocorrelation: float = Field(ge=-1.0, le=1.0)
    correlation_type: Literal["spearman"] = "spearman"
    time_lag_days: int = 0
    sample_size: int
    pearson_r: float | None = None
    confidence_interval: tuple[float, float] | None = None

    @model_validator(mode="after")
    def _check_sample_sizes(self) -> "CorrelationResult":
        if self.effective_sample_size > self.sample_size:
            raise ValueError("effective_sample_size cannot exceed sample_size")
        return self


class GroupStats(BaseModel):
    """Descriptive statistics for one side of a with/without split."""

    mean: float
    std_dev: float
    n: int
    median: float


class WithWithoutStats(BaseModel):
    """Continuous metric on days with vs. without a binary activity."""

    with_activity: GroupStats
    without_activity: GroupStats
    absolute_difference: float
    percent_difference: float | None = None
    cohens_d: float | None = None


class TimeLag(BaseModel):
    """Lag at which a connection is strongest."""

    days: int = Field(gt=0)
    direction: LagDirection


class DomainRef(BaseModel):
    """Reference to the metric on one side of a connection."""

    type: str
    metric: str
    display_name: str


class DataPoint(BaseModel):
    """Paired per-date values kept for charting."""

    date: date
    value_a: float
    value_b: float


# ============================================================================
# Connections
# ============================================================================


class ConnectionSummary(BaseModel):
    """Statistical context handed to the narrative service."""

    domain_a: DomainRef
    domain_b: DomainRef
    category: str
    coefficient: float
    adjusted_p_value: float
    effect_size: float
    sample_size: int
    direction: Direction
    strength: Strength
    survives_confounder_control: bool
    confounder_note: str | None = None
    with_without: WithWithoutStats | None = None
    time_lag: TimeLag | None = None
    trend_direction: TrendDirection | None = None
    best_days: list[DataPoint] = Field(default_factory=list)
    worst_days: list[DataPoint] = Field(default_factory=list)


class Narrative(BaseModel):
    """Text produced by the narrative service."""

    title: str
    description: str
    explanation: str
    recommendation: str | None = None


class Connection(BaseModel):
    """A persisted cross-domain connection."""

    id: str
    user_id: str
    category: str
    domain_a: DomainRef
    domain_b: DomainRef
    metrics: CorrelationResult
    direction: Direction
    strength: Strength
    survives_confounder_control: bool
    confounder_partial_r: float | None = None
    confounder_note: str | None = None
    with_without: WithWithoutStats | None = None
    time_lag: TimeLag | None = None
    trend_direction: TrendDirection | None = None
    data_points: list[DataPoint] = Field(default_factory=list)

    # Narrative annotations, absent when the narrative service fails
    title: str | None = None
    description: str | None = None
    explanation: str | None = None
    recommendation: str | None = None

    detected_at: datetime
    expires_at: datetime
    dismissed: bool = False

    @property
    def pair_key(self) -> str:
        return (
            f"{self.domain_a.type}.{self.domain_a.metric}|"
            f"{self.domain_b.type}.{self.domain_b.metric}"
        )


class AnalysisResult(BaseModel):
    """Outcome of one analysis run."""

    success: bool
    pairs_analyzed: int = 0
    significant_pairs: int = 0
    connections: list[Connection] = Field(default_factory=list)
    error: str | None = None
