"""Significance & Noise Filter."""

from life_connections.config import AnalysisOptions
from life_connections.engine.models import CorrelationResult, Direction, Strength


def classify_strength(coefficient: float) -> Strength:
    """Bucket |r| into weak (< 0.3), moderate (0.3-0.6) or strong (> 0.6)."""
    abs_val = abs(coefficient)
    if abs_val > 0.6:
        return Strength.STRONG
    if abs_val >= 0.3:
        return Strength.MODERATE
    return Strength.WEAK


def classify_direction(coefficient: float) -> Direction:
    return Direction.POSITIVE if coefficient > 0 else Direction.NEGATIVE


def passes_thresholds(result: CorrelationResult, options: AnalysisOptions) -> bool:
    """All of adjusted p, effective sample size and effect size must clear the floor."""
    if result.adjusted_p_value is None:
        raise ValueError("Result has not been corrected for multiple comparisons")
    return (
        result.adjusted_p_value <= options.min_p_value
        and result.effective_sample_size >= options.min_sample_size
        and result.effect_size >= options.min_effect_size
    )
