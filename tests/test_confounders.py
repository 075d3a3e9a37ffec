"""Tests for confounder control, with/without comparison and trend direction."""

import pytest

from life_connections.config import AnalysisOptions
from life_connections.engine.analyzer import analyze_pair
from life_connections.engine.comparison import compare_with_without
from life_connections.engine.confounders import (
    Confounder,
    check_confounders,
    design_matrix,
    partial_correlation,
    partial_sample_size,
)
from life_connections.engine.models import TrendDirection
from life_connections.engine.pairs import generate_candidate_pairs
from life_connections.engine.trends import rolling_spearman, trend_direction

# Alternating high/low values: strongly negative lag-1 autocorrelation
ALTERNATING = [float((i * 11) % 23) for i in range(30)]


def _analysis(make_series, values_a, values_b):
    a = make_series("health", "metric_a", values_a)
    b = make_series("mood", "metric_b", values_b)
    [pair] = generate_candidate_pairs([a, b])
    return analyze_pair(pair)


class TestConfounderChecker:
    """Tests for re-testing pairs after partialling out nuisance variables."""

    def test_pure_linear_trends_do_not_survive(self, make_series):
        """Two straight lines correlate perfectly but only through time."""
        t = [float(i) for i in range(30)]
        analysis = _analysis(make_series, t, [2 * v + 5 for v in t])
        assert analysis.result.coefficient == pytest.approx(1.0)

        check = check_confounders(analysis, AnalysisOptions())
        assert check.survives is False
        assert check.partials["linear_trend"] is None
        assert "trend" in check.note

    def test_day_of_week_pattern_does_not_survive(self, make_series):
        """Both series follow the same weekend pattern and nothing else."""
        # 2024-01-01 is a Monday, so i % 7 >= 5 is the weekend
        weekend = [10.0 if i % 7 >= 5 else 2.0 for i in range(28)]
        analysis = _analysis(make_series, weekend, [3 * v for v in weekend])

        # The weekly cycle deflates n_eff below the default floor
        check = check_confounders(analysis, AnalysisOptions(min_sample_size=7))
        assert check.survives is False
        assert check.partials["day_of_week"] is None
        assert "day of week" in check.note
        assert "trend" not in check.note

    def test_genuine_relationship_survives(self, make_series):
        """A relationship unrelated to weekday or time holds under both checks."""
        b = [2 * v + 1 + (i % 3) * 0.01 for i, v in enumerate(ALTERNATING)]
        analysis = _analysis(make_series, ALTERNATING, b)

        check = check_confounders(analysis, AnalysisOptions())
        assert check.survives is True
        assert check.note is None
        assert check.partial_r == pytest.approx(1.0, abs=0.05)
        assert set(check.partials) == {"day_of_week", "linear_trend"}

    def test_partial_sample_size(self, make_series):
        """Each confounder column costs one effective observation."""
        analysis = _analysis(make_series, ALTERNATING, [2 * v + 1 for v in ALTERNATING])
        assert analysis.result.effective_sample_size == pytest.approx(30.0)
        assert partial_sample_size(analysis, Confounder.DAY_OF_WEEK) == pytest.approx(24.0)
        assert partial_sample_size(analysis, Confounder.LINEAR_TREND) == pytest.approx(29.0)

    def test_reduced_sample_below_floor_does_not_survive(self, make_series):
        """A strong partial on too few effective days fails like the main filter."""
        a = ALTERNATING[:16]
        analysis = _analysis(make_series, a, [2 * v + 1 for v in a])
        assert analysis.result.effective_sample_size == pytest.approx(16.0)

        check = check_confounders(analysis, AnalysisOptions())
        assert check.survives is False
        assert check.partials["day_of_week"] == pytest.approx(1.0)
        assert "day of week" in check.note
        assert "trend" not in check.note

    def test_partial_p_value_uses_fewer_degrees_of_freedom(self, make_series):
        """Day-of-week control costs six degrees of freedom."""
        b = [2 * v + (i % 4) for i, v in enumerate(ALTERNATING)]
        analysis = _analysis(make_series, ALTERNATING, b)
        rho, p_value = partial_correlation(analysis, Confounder.DAY_OF_WEEK)
        assert rho is not None
        assert 0.0 <= p_value <= 1.0

    def test_design_matrix_shapes(self, start_date):
        """Intercept plus six weekday dummies, or intercept plus time."""
        from datetime import timedelta

        dates = [start_date + timedelta(days=i) for i in range(14)]
        assert design_matrix(Confounder.DAY_OF_WEEK, dates).shape == (14, 7)
        assert design_matrix(Confounder.LINEAR_TREND, dates).shape == (14, 2)

    def test_design_matrix_skips_missing_weekdays(self, start_date):
        """Weekdays that never occur add no column."""
        from datetime import timedelta

        mondays = [start_date + timedelta(days=7 * i) for i in range(5)]
        tuesdays = [d + timedelta(days=1) for d in mondays]
        assert design_matrix(Confounder.DAY_OF_WEEK, mondays + tuesdays).shape == (10, 2)


class TestWithWithoutComparator:
    """Tests for the descriptive with/without contrast."""

    def test_reference_example(self):
        """Outcome means on activity vs. non-activity days."""
        activity = [1.0] * 10 + [0.0] * 10
        outcomes = [7, 8, 9, 7, 8, 9, 7, 8, 9, 8, 5, 6, 4, 5, 6, 4, 5, 6, 4, 7]
        stats = compare_with_without(activity, outcomes)

        assert stats.with_activity.mean == pytest.approx(8.0)
        assert stats.without_activity.mean == pytest.approx(5.2)
        assert stats.with_activity.n == 10
        assert stats.without_activity.n == 10
        assert stats.with_activity.median == pytest.approx(8.0)
        assert stats.without_activity.median == pytest.approx(5.0)
        assert stats.absolute_difference == pytest.approx(2.8)
        assert stats.percent_difference == pytest.approx(53.846, abs=0.01)
        assert stats.cohens_d > 0

    def test_percent_difference_undefined_for_zero_baseline(self):
        """No percentage when the without-mean is zero."""
        stats = compare_with_without([1, 1, 0, 0], [3.0, 5.0, 0.0, 0.0])
        assert stats.absolute_difference == pytest.approx(4.0)
        assert stats.percent_difference is None

    def test_empty_group(self):
        """All-present or all-absent data has no contrast."""
        assert compare_with_without([1, 1, 1], [1.0, 2.0, 3.0]) is None
        assert compare_with_without([0, 0, 0], [1.0, 2.0, 3.0]) is None

    def test_misaligned_input(self):
        """Presence and outcome must have the same length."""
        with pytest.raises(ValueError):
            compare_with_without([1, 0], [1.0])

    def test_single_value_group_has_zero_spread(self):
        """A one-day group has stdDev 0 and no Cohen's d."""
        stats = compare_with_without([1, 0, 0], [4.0, 1.0, 2.0])
        assert stats.with_activity.std_dev == 0.0
        assert stats.cohens_d is None


class TestTrendDirection:
    """Tests for rolling-window trend direction."""

    def _strengthening_input(self):
        a = [float((i * 11) % 23) for i in range(40)]
        b = [float((i * 7) % 23) if i < 20 else a[i] for i in range(40)]
        return a, b

    def test_strengthening(self):
        """Unrelated early, identical late."""
        a, b = self._strengthening_input()
        assert trend_direction(a, b, window=14) == TrendDirection.STRENGTHENING

    def test_weakening(self):
        """The same data read backwards fades out."""
        a, b = self._strengthening_input()
        assert trend_direction(a[::-1], b[::-1], window=14) == TrendDirection.WEAKENING

    def test_stable(self):
        """An identical relationship throughout is stable."""
        a = [float((i * 11) % 23) for i in range(40)]
        assert trend_direction(a, a, window=14) == TrendDirection.STABLE

    def test_too_few_points(self):
        """Fewer than window + 5 points give no trend."""
        a = [float(i % 5) for i in range(18)]
        assert trend_direction(a, a, window=14) is None

    def test_rolling_windows_count(self):
        """One coefficient per full window."""
        a = [float((i * 11) % 23) for i in range(20)]
        assert len(rolling_spearman(a, a, 14)) == 7
