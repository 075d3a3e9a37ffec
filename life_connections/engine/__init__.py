"""Cross-domain correlation engine.

Public API for building series, analyzing pairs and running the full
Life Connections pipeline.
"""

from life_connections.engine.analyzer import PairAnalysis, analyze_pair
from life_connections.engine.assembler import ConnectionAssembler, NarrativeService
from life_connections.engine.comparison import compare_with_without
from life_connections.engine.confounders import Confounder, ConfounderCheck, check_confounders
from life_connections.engine.correction import apply_fdr_correction
from life_connections.engine.dates import coerce_date
from life_connections.engine.filtering import (
    classify_direction,
    classify_strength,
    passes_thresholds,
)
from life_connections.engine.models import (
    AnalysisResult,
    CandidatePair,
    Connection,
    ConnectionSummary,
    CorrelationResult,
    DataPoint,
    Direction,
    DomainRef,
    DomainSeries,
    GroupStats,
    LagDirection,
    Narrative,
    Strength,
    TimeLag,
    TrendDirection,
    ValueType,
    WithWithoutStats,
)
from life_connections.engine.pairs import generate_candidate_pairs
from life_connections.engine.pipeline import (
    ConnectionStore,
    DomainDataSource,
    LifeConnectionsAnalyzer,
)
from life_connections.engine.series_builder import (
    BuildStats,
    DailyRecord,
    build_domain_series,
    filter_sparse_series,
)
from life_connections.engine.statistics import benjamini_hochberg

__all__ = [
    # Models
    "AnalysisResult",
    "CandidatePair",
    "Connection",
    "ConnectionSummary",
    "CorrelationResult",
    "DataPoint",
    "Direction",
    "DomainRef",
    "DomainSeries",
    "GroupStats",
    "LagDirection",
    "Narrative",
    "Strength",
    "TimeLag",
    "TrendDirection",
    "ValueType",
    "WithWithoutStats",
    # Series building
    "BuildStats",
    "DailyRecord",
    "build_domain_series",
    "coerce_date",
    "filter_sparse_series",
    # Analysis stages
    "PairAnalysis",
    "analyze_pair",
    "apply_fdr_correction",
    "benjamini_hochberg",
    "check_confounders",
    "classify_direction",
    "classify_strength",
    "compare_with_without",
    "Confounder",
    "ConfounderCheck",
    "generate_candidate_pairs",
    "passes_thresholds",
    # Pipeline
    "ConnectionAssembler",
    "ConnectionStore",
    "DomainDataSource",
    "LifeConnectionsAnalyzer",
    "NarrativeService",
]
