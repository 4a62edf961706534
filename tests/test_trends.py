"""
Tests for Trend Detection Module
"""

import math
import pytest
import sys
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from affect_engine.errors import InsufficientHistoryError
from affect_engine.trends import (
    TrendDetector, TrendDirection, linear_regression,
    calculate_stability, shannon_diversity, command_focus,
)


class TestLinearRegression:
    """Test cases for the least-squares helper."""

    def test_perfect_line(self):
        slope, intercept, r_squared = linear_regression([1.0, 2.0, 3.0, 4.0])

        assert slope == pytest.approx(1.0)
        assert intercept == pytest.approx(1.0)
        assert r_squared == pytest.approx(1.0)

    def test_flat_line(self):
        slope, intercept, r_squared = linear_regression([0.5, 0.5, 0.5])

        assert slope == pytest.approx(0.0)
        assert intercept == pytest.approx(0.5)
        assert r_squared == 0.0

    def test_single_point(self):
        assert linear_regression([0.7]) == (0.0, 0.7, 0.0)
        assert linear_regression([]) == (0.0, 0.0, 0.0)


class TestTrendDetector:
    """Test cases for TrendDetector."""

    @pytest.fixture
    def detector(self):
        return TrendDetector(window_size=10, slope_threshold=0.05)

    def test_improving(self, detector):
        analysis = detector.analyze([0.2, 0.3, 0.4, 0.5, 0.6])

        assert analysis.direction == TrendDirection.IMPROVING
        assert analysis.slope == pytest.approx(0.1)
        assert analysis.mean == pytest.approx(0.4)

    def test_regressing(self, detector):
        analysis = detector.analyze([0.9, 0.7, 0.5, 0.3])
        assert analysis.direction == TrendDirection.REGRESSING

    def test_stable(self, detector):
        analysis = detector.analyze([0.5, 0.51, 0.49, 0.5])
        assert analysis.direction == TrendDirection.STABLE

    def test_window(self):
        detector = TrendDetector(window_size=3)
        analysis = detector.analyze([0.9, 0.1, 0.5, 0.5, 0.5])

        assert analysis.data_points == 3
        assert analysis.slope == pytest.approx(0.0)

    def test_too_few_points(self, detector):
        with pytest.raises(InsufficientHistoryError) as exc:
            detector.analyze([0.1, 0.2])

        assert exc.value.required == 3
        assert exc.value.available == 2


class TestDistributionStatistics:
    """Test cases for stability, diversity and focus."""

    def test_stability_constant(self):
        assert calculate_stability([0.4, 0.4, 0.4]) == pytest.approx(1.0)

    def test_stability_spread(self):
        # std of [0.2, 0.8] is 0.3
        assert calculate_stability([0.2, 0.8]) == pytest.approx(0.7)

    def test_stability_clamped(self):
        assert calculate_stability([-5.0, 5.0]) == 0.0

    def test_even_usage_is_max_diversity(self):
        assert shannon_diversity({"A": 1, "B": 1, "C": 1, "D": 1}) == pytest.approx(1.0)

    def test_dominant_usage_low_diversity(self):
        diversity = shannon_diversity({"A": 100, "B": 1})
        assert diversity < 0.2

    def test_diversity_two_way(self):
        expected = -(0.6 * math.log(0.6) + 0.4 * math.log(0.4)) / math.log(2)
        assert shannon_diversity({"A": 3, "B": 2}) == pytest.approx(expected)

    def test_single_command_no_diversity(self):
        assert shannon_diversity({"A": 10}) == 0.0
        assert shannon_diversity({}) == 0.0

    def test_focus(self):
        assert command_focus({"A": 100, "B": 1}) == pytest.approx(100 / 101)
        assert command_focus({}) == 0.0
