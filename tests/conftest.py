"""Shared fixtures for Life Connections tests."""

from collections.abc import Callable, Sequence
from datetime import date, timedelta

import pytest

from life_connections.engine.models import DomainSeries, ValueType

START = date(2024, 1, 1)


@pytest.fixture
def start_date() -> date:
    return START


@pytest.fixture
def make_series() -> Callable[..., DomainSeries]:
    """Build a DomainSeries from consecutive daily values starting at START.

    None entries are left absent.
    """

    def _make(
        domain: str,
        metric: str,
        values: Sequence[float | None],
        value_type: ValueType = ValueType.CONTINUOUS,
        offset: int = 0,
    ) -> DomainSeries:
        by_date = {
            START + timedelta(days=offset + i): float(v)
            for i, v in enumerate(values)
            if v is not None
        }
        return DomainSeries(
            domain_id=domain, metric_name=metric, value_type=value_type, values=by_date
        )

    return _make
