"""Life Connections analysis pipeline.

Runs one batch analysis for one user:

    fetch -> build/filter series -> pairs -> analyze (parallel)
          -> FDR correction (barrier) -> filter -> enrich (parallel)
          -> assemble + narratives -> rank/cap -> atomic replace
"""

import asyncio
from collections.abc import Callable
from datetime import date, datetime, timedelta, timezone
from functools import partial
from typing import Any, Protocol, TypeVar

import structlog

from life_connections.config import AnalysisOptions, Settings
from life_connections.engine.analyzer import PairAnalysis, analyze_pair
from life_connections.engine.assembler import (
    ConnectionAssembler,
    NarrativeService,
    build_connection,
    enrich_pair,
)
from life_connections.engine.correction import apply_fdr_correction
from life_connections.engine.filtering import passes_thresholds
from life_connections.engine.models import AnalysisResult, Connection, DomainSeries
from life_connections.engine.pairs import generate_candidate_pairs
from life_connections.engine.series_builder import filter_sparse_series
from life_connections.errors import (
    ConnectionStoreError,
    DataSourceError,
    LifeConnectionsError,
    SeriesBuildError,
)

logger = structlog.get_logger()

T = TypeVar("T")
R = TypeVar("R")


# ============================================================================
# Collaborator Interfaces
# ============================================================================


class DomainDataSource(Protocol):
    """Source of per-day domain series for a user."""

    async def fetch_domain_series(
        self, user_id: str, domain: str, date_range: tuple[date, date]
    ) -> list[DomainSeries]: ...


class ConnectionStore(Protocol):
    """Persisted connection sets with atomic replace semantics."""

    async def replace_connections(self, user_id: str, connections: list[Connection]) -> None: ...


# ============================================================================
# Analyzer
# ============================================================================


def _clip_to_window(series: DomainSeries, start: date, end: date) -> DomainSeries:
    values = {d: v for d, v in series.values.items() if start <= d <= end}
    if len(values) == len(series.values):
        return series
    return series.model_copy(update={"values": values})


class LifeConnectionsAnalyzer:
    """
    Stateless entry point for cross-domain connection analysis.

    Each call to ``analyze`` either replaces the user's full connection set
    or reports failure without touching the store.
    """

    def __init__(
        self,
        data_source: DomainDataSource,
        store: ConnectionStore,
        narrative: NarrativeService | None = None,
        *,
        max_workers: int = 4,
        run_timeout_seconds: float = 120.0,
        narrative_timeout_seconds: float = 10.0,
    ):
        self.data_source = data_source
        self.store = store
        self.assembler = ConnectionAssembler(narrative, timeout=narrative_timeout_seconds)
        self.max_workers = max(1, max_workers)
        self.run_timeout_seconds = run_timeout_seconds

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        data_source: DomainDataSource,
        store: ConnectionStore,
        narrative: NarrativeService | None = None,
    ) -> "LifeConnectionsAnalyzer":
        return cls(
            data_source,
            store,
            narrative,
            max_workers=settings.max_workers,
            run_timeout_seconds=settings.run_timeout_seconds,
            narrative_timeout_seconds=settings.narrative_timeout_seconds,
        )

    async def analyze(
        self,
        user_id: str,
        options: AnalysisOptions | None = None,
        as_of: date | None = None,
    ) -> AnalysisResult:
        """
        Run a full analysis for a user and persist the resulting connections.

        Args:
            user_id: User whose data is analyzed
            options: Thresholds and window settings
            as_of: Last day of the analysis window (defaults to today, UTC)

        Returns:
            AnalysisResult; on failure success is False and nothing is written
        """
        options = options or AnalysisOptions()
        window_end = as_of or datetime.now(timezone.utc).date()
        window_start = window_end - timedelta(days=options.lookback_days - 1)
        log = logger.bind(user_id=user_id, window_start=str(window_start), window_end=str(window_end))

        try:
            result = await asyncio.wait_for(
                self._run(user_id, options, window_start, window_end),
                timeout=self.run_timeout_seconds,
            )
        except asyncio.TimeoutError:
            log.error("Analysis timed out", timeout=self.run_timeout_seconds)
            return AnalysisResult(
                success=False,
                error=f"Analysis timed out after {self.run_timeout_seconds}s",
            )
        except LifeConnectionsError as e:
            log.error("Analysis failed", error=str(e), error_type=type(e).__name__)
            return AnalysisResult(success=False, error=str(e))
        except Exception as e:
            log.error("Analysis failed unexpectedly", error=str(e), error_type=type(e).__name__)
            return AnalysisResult(success=False, error=f"{type(e).__name__}: {e}")

        try:
            await self.store.replace_connections(user_id, result.connections)
        except ConnectionStoreError as e:
            log.error("Failed to persist connections", error=str(e))
            return AnalysisResult(success=False, error=str(e))
        except Exception as e:
            log.error("Failed to persist connections", error=str(e), error_type=type(e).__name__)
            return AnalysisResult(success=False, error=f"Failed to persist connections: {e}")

        log.info(
            "Life connections analysis complete",
            pairs_analyzed=result.pairs_analyzed,
            significant_pairs=result.significant_pairs,
            connections=len(result.connections),
        )
        return result

    async def _run(
        self,
        user_id: str,
        options: AnalysisOptions,
        window_start: date,
        window_end: date,
    ) -> AnalysisResult:
        series = await self._fetch_series(user_id, options, window_start, window_end)
        pairs = generate_candidate_pairs(series, options.min_sample_size)

        analyze = partial(
            analyze_pair,
            min_sample_size=options.min_sample_size,
            include_time_lag=options.include_time_lag,
            max_time_lag_days=options.max_time_lag_days,
        )
        analyses = [a for a in await self._map(analyze, pairs) if a is not None]

        # Correction needs every raw p-value of the run
        apply_fdr_correction(analyses)
        significant = [a for a in analyses if passes_thresholds(a.result, options)]

        enriched = await self._map(partial(enrich_pair, options=options), significant)
        detected_at = datetime.now(timezone.utc)
        connections = [build_connection(user_id, e, options, detected_at) for e in enriched]
        connections = self._rank(connections)[: options.max_connections]
        connections = await self.assembler.attach_narratives(connections)

        logger.info(
            "Correlation analysis complete",
            user_id=user_id,
            series=len(series),
            pairs=len(pairs),
            pairs_analyzed=len(analyses),
            significant_pairs=len(significant),
        )
        return AnalysisResult(
            success=True,
            pairs_analyzed=len(analyses),
            significant_pairs=len(significant),
            connections=connections,
        )

    async def _fetch_series(
        self,
        user_id: str,
        options: AnalysisOptions,
        window_start: date,
        window_end: date,
    ) -> list[DomainSeries]:
        async def fetch(domain: str) -> list[DomainSeries]:
            try:
                return await self.data_source.fetch_domain_series(
                    user_id, domain, (window_start, window_end)
                )
            except (DataSourceError, SeriesBuildError):
                raise
            except Exception as e:
                raise DataSourceError(f"Failed to fetch domain '{domain}': {e}") from e

        batches = await asyncio.gather(*(fetch(d) for d in options.domains))
        series = [
            _clip_to_window(s, window_start, window_end) for batch in batches for s in batch
        ]
        return filter_sparse_series(series, options.min_domain_days)

    async def _map(self, func: Callable[[T], R], items: list[T]) -> list[R]:
        """Run a CPU-bound function over items on a bounded thread pool."""
        semaphore = asyncio.Semaphore(self.max_workers)

        async def run(item: T) -> R:
            async with semaphore:
                return await asyncio.to_thread(func, item)

        return list(await asyncio.gather(*(run(item) for item in items)))

    @staticmethod
    def _rank(connections: list[Connection]) -> list[Connection]:
        return sorted(connections, key=lambda c: (-c.metrics.effect_size, c.pair_key))


def result_to_dict(result: AnalysisResult) -> dict[str, Any]:
    """JSON-ready representation of an analysis result."""
    return result.model_dump(mode="json")
