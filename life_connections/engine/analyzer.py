"""Correlation Analyzer: per-pair Spearman statistics with optional lag search."""

from dataclasses import dataclass
from datetime import date, timedelta

import numpy as np
import structlog

from life_connections.engine.models import CandidatePair, CorrelationResult
from life_connections.engine.statistics import (
    cohens_d,
    correlation_p_value,
    d_to_r,
    effective_sample_size,
    fisher_confidence_interval,
    is_constant,
    lag1_autocorrelation,
    pearson,
    spearman,
)

logger = structlog.get_logger()

# Coefficients closer than this are treated as tied during lag selection
_LAG_TIE_TOLERANCE = 1e-12


@dataclass
class PairAnalysis:
    """A pair's correlation result plus the aligned vectors it came from.

    ``dates`` are domain A's dates. With a non-zero lag, ``values_b`` holds
    domain B on ``date + time_lag_days``.
    """

    pair: CandidatePair
    result: CorrelationResult
    dates: list[date]
    values_a: np.ndarray
    values_b: np.ndarray

    @property
    def key(self) -> str:
        return self.pair.key


def align(pair: CandidatePair, lag: int = 0) -> tuple[list[date], np.ndarray, np.ndarray]:
    """Aligned value vectors, pairing A on day t with B on day t + lag."""
    a_values = pair.series_a.values
    b_values = pair.series_b.values
    shift = timedelta(days=lag)
    if lag == 0:
        dates = list(pair.overlap_dates)
    else:
        dates = [d for d in a_values if d + shift in b_values]
    xa = np.array([a_values[d] for d in dates], dtype=float)
    xb = np.array([b_values[d + shift] for d in dates], dtype=float)
    return dates, xa, xb


def _binary_effect_size(pair: CandidatePair, xa: np.ndarray, xb: np.ndarray) -> float | None:
    """Correlation-scale effect size from the with/without mean difference."""
    side = pair.binary_side
    if side is None:
        return None
    presence, outcome = (xa, xb) if side == "a" else (xb, xa)
    flags = presence > 0
    with_values, without_values = outcome[flags], outcome[~flags]
    d = cohens_d(with_values, without_values)
    if d is None:
        return None
    return d_to_r(d, len(with_values), len(without_values))


def compute_correlation(
    pair: CandidatePair,
    xa: np.ndarray,
    xb: np.ndarray,
    lag: int = 0,
) -> CorrelationResult | None:
    """Correlation statistics for aligned vectors, None when undefined."""
    n = len(xa)
    if n < 3 or is_constant(xa) or is_constant(xb):
        return None

    rho = spearman(xa, xb)
    if np.isnan(rho):
        return None

    r1 = lag1_autocorrelation(xa)
    n_eff = effective_sample_size(n, r1)
    p_value = correlation_p_value(rho, n_eff)

    effect_size = abs(rho)
    binary_effect = _binary_effect_size(pair, xa, xb)
    if binary_effect is not None:
        effect_size = min(effect_size, binary_effect)

    pearson_r = pearson(xa, xb)
    return CorrelationResult(
        coefficient=rho,
        p_value=p_value,
        effect_size=min(1.0, effect_size),
        effective_sample_size=n_eff,
        autocorrelation=max(-1.0, min(1.0, r1)),
        time_lag_days=lag,
        sample_size=n,
        pearson_r=None if np.isnan(pearson_r) else pearson_r,
        confidence_interval=fisher_confidence_interval(rho, n_eff),
    )


def _lag_order(max_lag: int) -> list[int]:
    """Lags ordered by distance from same-day: 0, -1, 1, -2, 2, ..."""
    order = [0]
    for k in range(1, max_lag + 1):
        order.extend([-k, k])
    return order


def analyze_pair(
    pair: CandidatePair,
    *,
    min_sample_size: int = 14,
    include_time_lag: bool = False,
    max_time_lag_days: int = 3,
) -> PairAnalysis | None:
    """
    Analyze one candidate pair.

    With lag search enabled, every shift in [-max, +max] whose aligned
    overlap reaches min_sample_size is tested and the shift with the largest
    |coefficient| wins; ties go to the shift closest to same-day.

    Returns:
        PairAnalysis, or None when the correlation is undefined at every lag
    """
    lags = _lag_order(max_time_lag_days) if include_time_lag else [0]
    best: PairAnalysis | None = None

    for lag in lags:
        dates, xa, xb = align(pair, lag)
        if len(dates) < min_sample_size:
            continue
        result = compute_correlation(pair, xa, xb, lag)
        if result is None:
            continue
        if best is None or abs(result.coefficient) > abs(best.result.coefficient) + _LAG_TIE_TOLERANCE:
            best = PairAnalysis(pair=pair, result=result, dates=dates, values_a=xa, values_b=xb)

    if best is None:
        logger.debug("Skipping degenerate pair", pair=pair.key, sample_size=pair.sample_size)
    return best
