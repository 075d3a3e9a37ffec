"""Multiple-Comparison Corrector."""

import structlog

from life_connections.engine.analyzer import PairAnalysis
from life_connections.engine.statistics import benjamini_hochberg

logger = structlog.get_logger()


def apply_fdr_correction(analyses: list[PairAnalysis]) -> list[PairAnalysis]:
    """Write Benjamini-Hochberg adjusted p-values onto every result of a run.

    Must see the whole run at once; results are updated in place and the
    same list is returned.
    """
    adjusted = benjamini_hochberg([a.result.p_value for a in analyses])
    for analysis, q in zip(analyses, adjusted):
        analysis.result.adjusted_p_value = q

    logger.debug("Applied FDR correction", tests=len(analyses))
    return analyses
