"""Rolling-window trend direction for a pair's correlation."""

from collections.abc import Sequence

import numpy as np

from life_connections.engine.models import TrendDirection
from life_connections.engine.statistics import spearman

# Minimum change in |r| between first and last window to call a trend
TREND_THRESHOLD = 0.15

# Points required beyond one window before a trend is reported
_EXTRA_POINTS = 5


def rolling_spearman(
    values_a: Sequence[float], values_b: Sequence[float], window: int
) -> list[float]:
    """Spearman coefficient over each window of consecutive aligned points.

    Windows where either side is constant are skipped.
    """
    xa = np.asarray(values_a, dtype=float)
    xb = np.asarray(values_b, dtype=float)
    coefficients = []
    for start in range(0, len(xa) - window + 1):
        r = spearman(xa[start : start + window], xb[start : start + window])
        if not np.isnan(r):
            coefficients.append(r)
    return coefficients


def trend_direction(
    values_a: Sequence[float], values_b: Sequence[float], window: int = 14
) -> TrendDirection | None:
    """Compare |r| in the first and last usable windows.

    Returns None when there are fewer than window + 5 points or fewer than
    two usable windows.
    """
    if len(values_a) < window + _EXTRA_POINTS:
        return None
    coefficients = rolling_spearman(values_a, values_b, window)
    if len(coefficients) < 2:
        return None

    change = abs(coefficients[-1]) - abs(coefficients[0])
    if change > TREND_THRESHOLD:
        return TrendDirection.STRENGTHENING
    if change < -TREND_THRESHOLD:
        return TrendDirection.WEAKENING
    return TrendDirection.STABLE
