"""With/Without Comparator for binary presence domains."""

from collections.abc import Sequence

import numpy as np

from life_connections.engine.models import GroupStats, WithWithoutStats
from life_connections.engine.statistics import cohens_d, describe


def _group(values: np.ndarray) -> GroupStats:
    mean, std, n, median = describe(values)
    return GroupStats(mean=mean, std_dev=std, n=n, median=median)


def compare_with_without(
    presence: Sequence[float], outcome: Sequence[float]
) -> WithWithoutStats | None:
    """
    Split outcome values by presence (> 0) on the same aligned dates.

    Returns:
        Group statistics and differences, or None if either group is empty
    """
    flags = np.asarray(presence, dtype=float) > 0
    values = np.asarray(outcome, dtype=float)
    if len(flags) != len(values):
        raise ValueError("Presence and outcome must be aligned")

    with_values = values[flags]
    without_values = values[~flags]
    if len(with_values) == 0 or len(without_values) == 0:
        return None

    with_stats = _group(with_values)
    without_stats = _group(without_values)
    absolute = with_stats.mean - without_stats.mean
    percent = None
    if without_stats.mean != 0:
        percent = absolute / abs(without_stats.mean) * 100

    d = cohens_d(with_values, without_values)
    return WithWithoutStats(
        with_activity=with_stats,
        without_activity=without_stats,
        absolute_difference=absolute,
        percent_difference=percent,
        cohens_d=d if d is None or np.isfinite(d) else None,
    )
