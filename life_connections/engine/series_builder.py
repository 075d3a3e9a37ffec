"""Domain Series Builder: daily records to uniform per-day series."""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any

import structlog
from pydantic import BaseModel

from life_connections.engine.dates import coerce_date
from life_connections.engine.models import DomainSeries, ValueType
from life_connections.errors import SeriesBuildError

logger = structlog.get_logger()


class DailyRecord(BaseModel):
    """One already-bucketed value for a (domain, metric) on a day."""

    domain: str
    metric: str
    date: Any
    value: bool | int | float
    value_type: ValueType | None = None
    unit: str | None = None
    display_name: str | None = None


@dataclass
class BuildStats:
    """Counters describing what happened to the input records."""

    records_in: int = 0
    records_used: int = 0
    out_of_window: int = 0
    unparseable_dates: list[str] = field(default_factory=list)
    dropped_series: list[str] = field(default_factory=list)


def window_dates(start: date, end: date) -> list[date]:
    """All calendar dates from start to end inclusive."""
    return [start + timedelta(days=i) for i in range((end - start).days + 1)]


def infer_value_type(records: list[DailyRecord], key: str) -> ValueType:
    """One value type for all records of a (domain, metric)."""
    explicit = {r.value_type for r in records if r.value_type is not None}
    if len(explicit) > 1:
        raise SeriesBuildError(
            f"Conflicting value types for {key}: {sorted(v.value for v in explicit)}"
        )
    if explicit:
        return explicit.pop()
    if all(isinstance(r.value, bool) for r in records):
        return ValueType.BINARY
    if all(isinstance(r.value, int) and not isinstance(r.value, bool) for r in records):
        return ValueType.COUNT
    return ValueType.CONTINUOUS


def reconcile_value_types(key: str, types: set[ValueType]) -> ValueType:
    """
    Merge the value types seen for one metric across ingestions.

    Whole-number days of a continuous metric look like counts, so count and
    continuous widen to continuous. Any other mix is a conflict.

    Raises:
        SeriesBuildError: If the types cannot be merged
    """
    if len(types) == 1:
        return next(iter(types))
    if types == {ValueType.COUNT, ValueType.CONTINUOUS}:
        return ValueType.CONTINUOUS
    raise SeriesBuildError(
        f"Conflicting value types for {key}: {sorted(v.value for v in types)}"
    )


def _aggregate(value_type: ValueType, values: list[float]) -> float:
    if value_type == ValueType.BINARY:
        return 1.0 if max(values) > 0 else 0.0
    if value_type == ValueType.COUNT:
        return float(sum(values))
    return sum(values) / len(values)


def filter_sparse_series(series: list[DomainSeries], min_days: int) -> list[DomainSeries]:
    """Drop series with fewer than min_days informative days."""
    kept = []
    for s in series:
        if s.informative_days < min_days:
            logger.debug(
                "Dropping sparse series",
                series=s.key,
                informative_days=s.informative_days,
                min_days=min_days,
            )
            continue
        kept.append(s)
    return kept


def build_domain_series(
    records: list[DailyRecord | dict[str, Any]],
    window_start: date,
    window_end: date,
    *,
    min_days: int = 3,
    absence_dates: set[date] | None = None,
    stats: BuildStats | None = None,
) -> list[DomainSeries]:
    """
    Turn daily records into one DomainSeries per (domain, metric).

    Args:
        records: Daily records, as models or plain dicts
        window_start: First date of the analysis window
        window_end: Last date of the analysis window
        min_days: Minimum informative days for a series to be kept
        absence_dates: Days with any tracked data; binary series get 0 there
        stats: Optional counters filled in while building

    Returns:
        Series ordered by (domain, metric)

    Raises:
        SeriesBuildError: If one series mixes explicit value types
    """
    stats = stats if stats is not None else BuildStats()
    grouped: dict[tuple[str, str], list[tuple[date, DailyRecord]]] = defaultdict(list)

    for raw in records:
        stats.records_in += 1
        record = raw if isinstance(raw, DailyRecord) else DailyRecord(**raw)
        try:
            day = coerce_date(record.date)
        except ValueError as e:
            logger.warning(
                "Unparseable record date",
                domain=record.domain,
                metric=record.metric,
                value=repr(record.date),
                error=str(e),
            )
            stats.unparseable_dates.append(repr(record.date))
            continue
        if day < window_start or day > window_end:
            stats.out_of_window += 1
            continue
        stats.records_used += 1
        grouped[(record.domain, record.metric)].append((day, record))

    absence = {d for d in (absence_dates or set()) if window_start <= d <= window_end}
    all_days = window_dates(window_start, window_end)
    series: list[DomainSeries] = []

    for (domain, metric), entries in sorted(grouped.items()):
        key = f"{domain}.{metric}"
        group_records = [r for _, r in entries]
        value_type = infer_value_type(group_records, key)

        by_day: dict[date, list[float]] = defaultdict(list)
        for day, record in entries:
            by_day[day].append(float(record.value))
        values = {day: _aggregate(value_type, vals) for day, vals in by_day.items()}

        if value_type == ValueType.COUNT:
            values = {day: values.get(day, 0.0) for day in all_days}
        elif value_type == ValueType.BINARY:
            for day in absence:
                values.setdefault(day, 0.0)

        first = group_records[0]
        series.append(
            DomainSeries(
                domain_id=domain,
                metric_name=metric,
                value_type=value_type,
                values=values,
                unit=next((r.unit for r in group_records if r.unit), None),
                display_name=first.display_name,
            )
        )

    kept = filter_sparse_series(series, min_days)
    kept_keys = {s.key for s in kept}
    stats.dropped_series.extend(s.key for s in series if s.key not in kept_keys)

    logger.info(
        "Domain series built",
        records=stats.records_in,
        used=stats.records_used,
        series=len(kept),
        dropped=len(series) - len(kept),
        unparseable=len(stats.unparseable_dates),
    )
    return kept
