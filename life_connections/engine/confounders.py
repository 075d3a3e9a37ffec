"""Confounder Checker: re-test pairs after partialling out nuisance variables."""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum

import numpy as np
import structlog

from life_connections.config import AnalysisOptions
from life_connections.engine.analyzer import PairAnalysis
from life_connections.engine.statistics import (
    ZERO_VARIANCE_EPS,
    correlation_p_value,
    residualize,
    spearman,
)

logger = structlog.get_logger()


class Confounder(str, Enum):
    """Nuisance variables checked for every surviving pair."""

    DAY_OF_WEEK = "day_of_week"
    LINEAR_TREND = "linear_trend"

    @property
    def label(self) -> str:
        return {
            Confounder.DAY_OF_WEEK: "day of week",
            Confounder.LINEAR_TREND: "a shared trend over time",
        }[self]


DEFAULT_CONFOUNDERS = (Confounder.DAY_OF_WEEK, Confounder.LINEAR_TREND)


@dataclass
class ConfounderCheck:
    """Outcome of confounder control for one pair."""

    survives: bool
    partial_r: float | None
    note: str | None = None
    partials: dict[str, float | None] = field(default_factory=dict)


def design_matrix(confounder: Confounder, dates: list[date]) -> np.ndarray:
    """Intercept plus the confounder's columns for the given dates."""
    n = len(dates)
    intercept = np.ones((n, 1))
    if confounder == Confounder.LINEAR_TREND:
        origin = dates[0]
        t = np.array([(d - origin).days for d in dates], dtype=float).reshape(-1, 1)
        return np.hstack([intercept, t])

    # Monday is the baseline level; weekdays that never occur add no column
    weekdays = np.array([d.weekday() for d in dates])
    columns = [
        (weekdays == wd).astype(float).reshape(-1, 1)
        for wd in range(1, 7)
        if (weekdays == wd).any()
    ]
    return np.hstack([intercept, *columns])


def _is_explained(original: np.ndarray, residual: np.ndarray) -> bool:
    """True when the confounder accounts for essentially all variance."""
    return float(np.std(residual)) <= max(ZERO_VARIANCE_EPS, 1e-9 * float(np.std(original)))


def partial_correlation(
    analysis: PairAnalysis, confounder: Confounder
) -> tuple[float | None, float]:
    """
    Spearman correlation of OLS residuals after removing a confounder.

    Returns:
        Tuple of (partial coefficient or None if a series is fully explained,
        p-value using the effective sample size less the confounder columns)
    """
    design = design_matrix(confounder, analysis.dates)
    res_a = residualize(analysis.values_a, design)
    res_b = residualize(analysis.values_b, design)
    if _is_explained(analysis.values_a, res_a) or _is_explained(analysis.values_b, res_b):
        return None, 1.0

    rho = spearman(res_a, res_b)
    if np.isnan(rho):
        return None, 1.0

    p_value = correlation_p_value(rho, partial_sample_size(analysis, confounder))
    return rho, p_value


def partial_sample_size(analysis: PairAnalysis, confounder: Confounder) -> float:
    """Effective sample size less one per confounder column."""
    design = design_matrix(confounder, analysis.dates)
    k = int(np.linalg.matrix_rank(design)) - 1
    return analysis.result.effective_sample_size - k


def check_confounders(
    analysis: PairAnalysis,
    options: AnalysisOptions,
    confounders: tuple[Confounder, ...] = DEFAULT_CONFOUNDERS,
) -> ConfounderCheck:
    """Check whether a pair's relationship holds under every confounder."""
    broken: list[str] = []
    partials: dict[str, float | None] = {}
    weakest: float | None = None

    for confounder in confounders:
        rho, p_value = partial_correlation(analysis, confounder)
        partials[confounder.value] = rho
        # Same floors as the significance filter, on the reduced sample
        holds = (
            rho is not None
            and partial_sample_size(analysis, confounder) >= options.min_sample_size
            and p_value <= options.min_p_value
            and abs(rho) >= options.min_effect_size
        )
        if not holds:
            broken.append(confounder.label)
        if rho is None:
            weakest = 0.0
        elif weakest is None or abs(rho) < abs(weakest):
            weakest = rho

    note = None
    if broken:
        note = (
            "The relationship weakens once "
            + " and ".join(broken)
            + (" is" if len(broken) == 1 else " are")
            + " taken into account, which may explain it."
        )
        logger.debug("Pair does not survive confounder control", pair=analysis.key, confounders=broken)

    return ConfounderCheck(survives=not broken, partial_r=weakest, note=note, partials=partials)
