"""
Trend Detection Module

Streaming statistics for the behavior profiler:
- Least-squares slope over a recent performance series
- Variance-based stability
- Shannon-entropy diversity and dominant-share focus of a frequency map

Pure Python implementation; every function is deterministic in its inputs.
"""

from dataclasses import dataclass
from typing import Dict, List, Mapping, Sequence, Tuple
from enum import Enum
import math

from .errors import InsufficientHistoryError


class TrendDirection(Enum):
    """Direction of a performance trend."""
    IMPROVING = "improving"    # slope above threshold
    STABLE = "stable"          # |slope| within threshold
    REGRESSING = "regressing"  # slope below -threshold


@dataclass
class TrendAnalysis:
    """Complete trend analysis result."""
    direction: TrendDirection
    slope: float                    # Change per sample
    intercept: float
    r_squared: float                # Goodness of fit (0-1)
    confidence: float               # Confidence in the trend (0-1)
    data_points: int
    mean: float

    def to_dict(self) -> dict:
        return {
            "direction": self.direction.value,
            "slope": round(self.slope, 4),
            "intercept": round(self.intercept, 4),
            "r_squared": round(self.r_squared, 4),
            "confidence": round(self.confidence, 3),
            "data_points": self.data_points,
            "mean": round(self.mean, 3),
        }


def linear_regression(y_values: Sequence[float]) -> Tuple[float, float, float]:
    """
    Simple least-squares linear regression.

    Formula:
    slope = Σ((x - x̄)(y - ȳ)) / Σ((x - x̄)²)
    intercept = ȳ - slope × x̄

    Args:
        y_values: y values (x values are assumed to be 0, 1, 2, ...)

    Returns:
        Tuple of (slope, intercept, r_squared)
    """
    n = len(y_values)
    if n < 2:
        return 0.0, y_values[0] if y_values else 0.0, 0.0

    x_values = list(range(n))
    x_mean = sum(x_values) / n
    y_mean = sum(y_values) / n

    numerator = sum((x - x_mean) * (y - y_mean)
                    for x, y in zip(x_values, y_values))
    denominator = sum((x - x_mean) ** 2 for x in x_values)

    if denominator == 0:
        return 0.0, y_mean, 0.0

    slope = numerator / denominator
    intercept = y_mean - slope * x_mean

    # R² (coefficient of determination)
    y_pred = [slope * x + intercept for x in x_values]
    ss_res = sum((y - yp) ** 2 for y, yp in zip(y_values, y_pred))
    ss_tot = sum((y - y_mean) ** 2 for y in y_values)

    r_squared = 1 - (ss_res / ss_tot) if ss_tot != 0 else 0.0
    r_squared = max(0.0, min(1.0, r_squared))

    return slope, intercept, r_squared


def calculate_stability(values: Sequence[float]) -> float:
    """
    1 - standard deviation, clamped to [0, 1].

    A single value (or none) is perfectly stable.
    """
    if len(values) < 2:
        return 1.0
    mean = sum(values) / len(values)
    variance = sum((v - mean) ** 2 for v in values) / len(values)
    return max(0.0, min(1.0, 1.0 - math.sqrt(variance)))


def shannon_diversity(frequencies: Mapping[str, int]) -> float:
    """
    Shannon entropy of a frequency map normalised by log(k).

    1.0 means perfectly even usage. Maps with fewer than two non-zero
    entries have zero diversity.
    """
    counts = [c for c in frequencies.values() if c > 0]
    if len(counts) < 2:
        return 0.0

    total = sum(counts)
    entropy = 0.0
    for count in counts:
        p = count / total
        entropy -= p * math.log(p)

    return entropy / math.log(len(counts))


def command_focus(frequencies: Mapping[str, int]) -> float:
    """Share of the single most-used entry (0 for an empty map)."""
    total = sum(c for c in frequencies.values() if c > 0)
    if total == 0:
        return 0.0
    return max(frequencies.values()) / total


class TrendDetector:
    """
    Classifies the direction of a bounded recent series.

    Uses the last `window_size` points for the regression.
    """

    def __init__(
        self,
        window_size: int = 10,
        slope_threshold: float = 0.05,
        min_points: int = 3
    ):
        """
        Args:
            window_size: Number of data points to use for regression
            slope_threshold: |slope| beyond this counts as a trend
            min_points: Fewer points than this raise InsufficientHistoryError
        """
        self.window_size = window_size
        self.slope_threshold = slope_threshold
        self.min_points = min_points

    def get_trend_direction(self, slope: float) -> TrendDirection:
        """Determine trend direction from slope."""
        if slope > self.slope_threshold:
            return TrendDirection.IMPROVING
        elif slope < -self.slope_threshold:
            return TrendDirection.REGRESSING
        else:
            return TrendDirection.STABLE

    def calculate_confidence(self, r_squared: float, data_points: int) -> float:
        """Combines R² with data point count for reliability."""
        point_factor = min(1.0, data_points / self.window_size)
        return r_squared * point_factor

    def analyze(self, values: Sequence[float]) -> TrendAnalysis:
        """
        Analyze the trend in a series (oldest first).

        Raises:
            InsufficientHistoryError: fewer than min_points values
        """
        if len(values) < self.min_points:
            raise InsufficientHistoryError(
                "not enough points for a trend",
                required=self.min_points,
                available=len(values),
            )

        window: List[float] = list(values)[-self.window_size:]
        slope, intercept, r_squared = linear_regression(window)

        return TrendAnalysis(
            direction=self.get_trend_direction(slope),
            slope=slope,
            intercept=intercept,
            r_squared=r_squared,
            confidence=self.calculate_confidence(r_squared, len(window)),
            data_points=len(window),
            mean=sum(window) / len(window),
        )


def frequency_summary(frequencies: Mapping[str, int]) -> Dict[str, float]:
    """Diversity, focus and total count of a frequency map."""
    return {
        "diversity": shannon_diversity(frequencies),
        "focus": command_focus(frequencies),
        "total": float(sum(frequencies.values())),
    }
