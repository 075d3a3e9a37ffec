"""Pair Generator: eligible cross-domain metric pairs."""

from itertools import combinations

import structlog

from life_connections.engine.models import CandidatePair, DomainSeries

logger = structlog.get_logger()


def overlap_dates(series_a: DomainSeries, series_b: DomainSeries) -> tuple:
    """Dates present in both series, ascending.

    Count series are dense over the window, so intersecting with one of them
    keeps every date of the other side.
    """
    return tuple(sorted(set(series_a.values) & set(series_b.values)))


def generate_candidate_pairs(
    series: list[DomainSeries], min_sample_size: int = 14
) -> list[CandidatePair]:
    """
    Enumerate unordered cross-domain pairs with enough overlapping days.

    Pairs with fewer than min_sample_size overlap dates are dropped here and
    never reach the analyzer.
    """
    ordered = sorted(series, key=lambda s: (s.domain_id, s.metric_name))
    pairs: list[CandidatePair] = []
    skipped = 0

    for series_a, series_b in combinations(ordered, 2):
        if series_a.domain_id == series_b.domain_id:
            continue
        dates = overlap_dates(series_a, series_b)
        if len(dates) < min_sample_size:
            skipped += 1
            logger.debug(
                "Skipping pair with insufficient overlap",
                pair=f"{series_a.key}|{series_b.key}",
                overlap=len(dates),
                min_sample_size=min_sample_size,
            )
            continue
        pairs.append(CandidatePair(series_a=series_a, series_b=series_b, overlap_dates=dates))

    logger.info(
        "Candidate pairs generated",
        series=len(ordered),
        pairs=len(pairs),
        skipped_insufficient_overlap=skipped,
    )
    return pairs
