"""Connection Assembler: package analyzed pairs into persisted connections."""

import asyncio
import hashlib
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol

import structlog

from life_connections.config import AnalysisOptions
from life_connections.engine.analyzer import PairAnalysis
from life_connections.engine.comparison import compare_with_without
from life_connections.engine.confounders import ConfounderCheck, check_confounders
from life_connections.engine.filtering import classify_direction, classify_strength
from life_connections.engine.models import (
    Connection,
    ConnectionSummary,
    DataPoint,
    DomainRef,
    DomainSeries,
    LagDirection,
    Narrative,
    TimeLag,
    TrendDirection,
    WithWithoutStats,
)
from life_connections.engine.trends import trend_direction
from life_connections.errors import NarrativeError

logger = structlog.get_logger()

CONNECTION_TTL = timedelta(days=30)

# Upstream domain ids folded into the groups used for categories
DOMAIN_GROUPS = {
    "activity": "activity",
    "activities": "activity",
    "location": "activity",
    "health": "health",
    "sleep": "health",
    "steps": "health",
    "fitness": "health",
    "mood": "mood",
    "diary": "mood",
    "voice": "mood",
    "time": "time",
    "calendar": "time",
}

CATEGORY_BY_GROUPS = {
    frozenset({"health", "activity"}): "health-activity",
    frozenset({"mood", "activity"}): "mood-activity",
    frozenset({"mood", "health"}): "mood-health",
    frozenset({"health", "time"}): "health-time",
}


class NarrativeService(Protocol):
    """Anything that can turn a connection summary into narrative text."""

    async def generate(self, summary: ConnectionSummary) -> Narrative: ...


@dataclass
class EnrichedPair:
    """A significant pair with its confounder, with/without and trend results."""

    analysis: PairAnalysis
    confounders: ConfounderCheck
    with_without: WithWithoutStats | None
    trend: TrendDirection | None


def enrich_pair(analysis: PairAnalysis, options: AnalysisOptions) -> EnrichedPair:
    """Run the per-pair checks that follow significance filtering."""
    with_without = None
    side = analysis.pair.binary_side
    if side == "a":
        with_without = compare_with_without(analysis.values_a, analysis.values_b)
    elif side == "b":
        with_without = compare_with_without(analysis.values_b, analysis.values_a)

    return EnrichedPair(
        analysis=analysis,
        confounders=check_confounders(analysis, options),
        with_without=with_without,
        trend=trend_direction(analysis.values_a, analysis.values_b, options.trend_window_days),
    )


def humanize(name: str) -> str:
    """Turn metric ids like ``sleep_hours`` into ``Sleep hours``."""
    words = name.replace("_", " ").replace("-", " ").split()
    if not words:
        return name
    text = " ".join(words)
    return text[0].upper() + text[1:]


def domain_ref(series: DomainSeries) -> DomainRef:
    return DomainRef(
        type=series.domain_id,
        metric=series.metric_name,
        display_name=series.display_name or humanize(series.metric_name),
    )


def categorize(domain_a: str, domain_b: str, time_lag_days: int = 0) -> str:
    """Category label from the two domain types."""
    group_a = DOMAIN_GROUPS.get(domain_a, domain_a)
    group_b = DOMAIN_GROUPS.get(domain_b, domain_b)
    if time_lag_days != 0 and "activity" in (group_a, group_b):
        return "activity-sequence"
    category = CATEGORY_BY_GROUPS.get(frozenset({group_a, group_b}))
    if category:
        return category
    return f"{group_a}-{group_b}"


def connection_id(user_id: str, pair_key: str) -> str:
    """Deterministic id so re-runs on the same data produce the same ids."""
    return hashlib.sha256(f"{user_id}|{pair_key}".encode()).hexdigest()[:24]


def build_connection(
    user_id: str,
    enriched: EnrichedPair,
    options: AnalysisOptions,
    detected_at: datetime,
) -> Connection:
    """Assemble a Connection without narrative text."""
    analysis = enriched.analysis
    result = analysis.result
    pair = analysis.pair

    points = [
        DataPoint(date=d, value_a=float(a), value_b=float(b))
        for d, a, b in zip(analysis.dates, analysis.values_a, analysis.values_b)
    ]
    points = points[-options.max_data_points :]

    lag = result.time_lag_days
    time_lag = None
    if lag != 0:
        time_lag = TimeLag(
            days=abs(lag),
            direction=LagDirection.A_LEADS_B if lag > 0 else LagDirection.B_LEADS_A,
        )

    return Connection(
        id=connection_id(user_id, pair.key),
        user_id=user_id,
        category=categorize(pair.series_a.domain_id, pair.series_b.domain_id, lag),
        domain_a=domain_ref(pair.series_a),
        domain_b=domain_ref(pair.series_b),
        metrics=result,
        direction=classify_direction(result.coefficient),
        strength=classify_strength(result.coefficient),
        survives_confounder_control=enriched.confounders.survives,
        confounder_partial_r=enriched.confounders.partial_r,
        confounder_note=enriched.confounders.note,
        with_without=enriched.with_without,
        time_lag=time_lag,
        trend_direction=enriched.trend,
        data_points=points,
        detected_at=detected_at,
        expires_at=detected_at + CONNECTION_TTL,
    )


def build_summary(connection: Connection, extremes: int = 3) -> ConnectionSummary:
    """Statistical context for the narrative service."""
    by_outcome = sorted(connection.data_points, key=lambda p: (p.value_b, p.date))
    return ConnectionSummary(
        domain_a=connection.domain_a,
        domain_b=connection.domain_b,
        category=connection.category,
        coefficient=round(connection.metrics.coefficient, 3),
        adjusted_p_value=connection.metrics.adjusted_p_value or connection.metrics.p_value,
        effect_size=round(connection.metrics.effect_size, 3),
        sample_size=connection.metrics.sample_size,
        direction=connection.direction,
        strength=connection.strength,
        survives_confounder_control=connection.survives_confounder_control,
        confounder_note=connection.confounder_note,
        with_without=connection.with_without,
        time_lag=connection.time_lag,
        trend_direction=connection.trend_direction,
        best_days=by_outcome[::-1][:extremes],
        worst_days=by_outcome[:extremes],
    )


class ConnectionAssembler:
    """Attaches best-effort narrative text to assembled connections."""

    def __init__(self, narrative: NarrativeService | None = None, timeout: float = 10.0):
        self.narrative = narrative
        self.timeout = timeout

    async def attach_narrative(self, connection: Connection) -> Connection:
        """Fill narrative fields, leaving them empty if the service fails."""
        if self.narrative is None:
            return connection

        try:
            narrative = await asyncio.wait_for(
                self.narrative.generate(build_summary(connection)), self.timeout
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Narrative generation timed out",
                connection_id=connection.id,
                timeout=self.timeout,
            )
            return connection
        except NarrativeError as e:
            logger.warning(
                "Narrative generation failed", connection_id=connection.id, error=str(e)
            )
            return connection
        except Exception as e:
            logger.warning(
                "Narrative service error",
                connection_id=connection.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return connection

        connection.title = narrative.title
        connection.description = narrative.description
        connection.explanation = narrative.explanation
        connection.recommendation = narrative.recommendation
        return connection

    async def attach_narratives(self, connections: list[Connection]) -> list[Connection]:
        """Request narratives for all connections concurrently."""
        if self.narrative is None or not connections:
            return connections
        return list(await asyncio.gather(*(self.attach_narrative(c) for c in connections)))
