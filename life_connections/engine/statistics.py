"""Numeric primitives for the correlation engine.

All functions take plain sequences or numpy arrays and return floats, so
they can be exercised without any pipeline state.
"""

import math
from collections.abc import Sequence

import numpy as np
from scipy import stats as sp_stats

# Standard deviations below this are treated as constant series
ZERO_VARIANCE_EPS = 1e-10


def rank_data(data: Sequence[float]) -> np.ndarray:
    """Convert data to ranks (1-based, ties get their average rank)."""
    arr = np.asarray(data, dtype=float)
    n = len(arr)
    order = np.argsort(arr, kind="mergesort")
    ranks = np.empty(n, dtype=float)

    i = 0
    while i < n:
        j = i
        while j < n - 1 and arr[order[j]] == arr[order[j + 1]]:
            j += 1
        ranks[order[i : j + 1]] = (i + j + 2) / 2
        i = j + 1

    return ranks


def is_constant(values: Sequence[float]) -> bool:
    """True when a series has no usable variance."""
    return len(values) == 0 or float(np.std(np.asarray(values, dtype=float))) < ZERO_VARIANCE_EPS


def pearson(x: Sequence[float], y: Sequence[float]) -> float:
    """Pearson correlation, clipped to [-1, 1]. Returns nan for constant input."""
    xa = np.asarray(x, dtype=float)
    ya = np.asarray(y, dtype=float)
    if len(xa) != len(ya):
        raise ValueError("Series must have the same length")
    if len(xa) < 2 or is_constant(xa) or is_constant(ya):
        return math.nan

    xc = xa - xa.mean()
    yc = ya - ya.mean()
    r = float(np.dot(xc, yc) / math.sqrt(np.dot(xc, xc) * np.dot(yc, yc)))
    return max(-1.0, min(1.0, r))


def spearman(x: Sequence[float], y: Sequence[float]) -> float:
    """Spearman rank correlation: Pearson on average ranks."""
    return pearson(rank_data(x), rank_data(y))


def correlation_p_value(r: float, n: float) -> float:
    """
    Two-sided p-value for a correlation under a t-distribution.

    Args:
        r: Correlation coefficient
        n: Sample size (may be fractional when autocorrelation-adjusted)

    Returns:
        p-value in [0, 1]; 1.0 when there are no degrees of freedom left
    """
    df = n - 2
    if df <= 0 or math.isnan(r):
        return 1.0
    if abs(r) >= 1.0:
        return 0.0
    t_stat = r * math.sqrt(df / (1 - r**2))
    p = 2 * sp_stats.t.sf(abs(t_stat), df)
    return float(min(1.0, max(0.0, p)))


def lag1_autocorrelation(values: Sequence[float]) -> float:
    """Lag-1 autocorrelation of a series, 0 when undefined."""
    arr = np.asarray(values, dtype=float)
    if len(arr) < 3:
        return 0.0
    r = pearson(arr[:-1], arr[1:])
    return 0.0 if math.isnan(r) else r


def effective_sample_size(n: int, r1: float) -> float:
    """Sample size deflated for lag-1 autocorrelation, clamped to [2, n]."""
    if n <= 2:
        return float(n)
    if r1 >= 1.0:
        return 2.0
    n_eff = n * (1 - r1) / (1 + r1) if r1 > -1.0 else float(n)
    return float(min(n, max(2.0, n_eff)))


def fisher_confidence_interval(
    r: float, n: float, confidence: float = 0.95
) -> tuple[float, float] | None:
    """Confidence interval for a correlation via the Fisher z transform."""
    if n <= 3 or math.isnan(r):
        return None
    clipped = max(-0.999999, min(0.999999, r))
    z = math.atanh(clipped)
    se = 1 / math.sqrt(n - 3)
    crit = float(sp_stats.norm.ppf(0.5 + confidence / 2))
    return (math.tanh(z - crit * se), math.tanh(z + crit * se))


def benjamini_hochberg(p_values: Sequence[float]) -> list[float]:
    """
    Benjamini-Hochberg adjusted p-values, returned in input order.

    The i-th smallest p-value (1-indexed) becomes p * m / i, then a running
    minimum is taken from the largest rank down. Results are capped at 1 and
    never fall below the raw p-value.
    """
    m = len(p_values)
    if m == 0:
        return []
    pv = np.asarray(p_values, dtype=float)
    order = np.argsort(pv, kind="mergesort")
    ranked = pv[order]
    q = ranked * m / np.arange(1, m + 1)
    q = np.minimum.accumulate(q[::-1])[::-1]
    q = np.clip(q, 0.0, 1.0)

    adjusted = np.empty(m, dtype=float)
    adjusted[order] = q
    return [float(v) for v in np.maximum(adjusted, pv)]


def residualize(values: Sequence[float], design: np.ndarray) -> np.ndarray:
    """Residuals of an OLS fit of values on the design matrix."""
    y = np.asarray(values, dtype=float)
    coef, _, _, _ = np.linalg.lstsq(design, y, rcond=None)
    return y - design @ coef


def describe(values: Sequence[float]) -> tuple[float, float, int, float]:
    """Mean, sample standard deviation, count and median."""
    arr = np.asarray(values, dtype=float)
    n = len(arr)
    if n == 0:
        return math.nan, math.nan, 0, math.nan
    std = float(np.std(arr, ddof=1)) if n > 1 else 0.0
    return float(arr.mean()), std, n, float(np.median(arr))


def cohens_d(with_values: Sequence[float], without_values: Sequence[float]) -> float | None:
    """Standardized mean difference using the pooled standard deviation."""
    a = np.asarray(with_values, dtype=float)
    b = np.asarray(without_values, dtype=float)
    n1, n2 = len(a), len(b)
    if n1 < 2 or n2 < 2:
        return None
    pooled_var = ((n1 - 1) * a.var(ddof=1) + (n2 - 1) * b.var(ddof=1)) / (n1 + n2 - 2)
    diff = float(a.mean() - b.mean())
    if pooled_var < ZERO_VARIANCE_EPS**2:
        if abs(diff) < ZERO_VARIANCE_EPS:
            return 0.0
        return math.copysign(math.inf, diff)
    return diff / math.sqrt(pooled_var)


def d_to_r(d: float, n_with: int, n_without: int) -> float:
    """Convert Cohen's d to the correlation scale for unequal group sizes."""
    n = n_with + n_without
    if n == 0:
        return 0.0
    if math.isinf(d):
        return 1.0
    pq = (n_with / n) * (n_without / n)
    return abs(d) * math.sqrt(pq) / math.sqrt(1 + d**2 * pq)
