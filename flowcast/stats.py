"""Small statistics helpers shared by the forecasting engine."""

import math
import statistics
from typing import Sequence


def percentile(sorted_values: Sequence[float], p: float) -> float:
    """Nearest-rank percentile of an already sorted sequence.

    Returns the smallest value whose rank covers fraction ``p`` of the
    sample (``p`` in ``[0, 1]``). An empty sequence yields 0.
    """
    if not sorted_values:
        return 0
    idx = math.ceil(len(sorted_values) * p) - 1
    return sorted_values[max(0, min(idx, len(sorted_values) - 1))]


def mean(values: Sequence[float]) -> float:
    return statistics.fmean(values) if values else 0.0


def std_dev(values: Sequence[float]) -> float:
    """Sample standard deviation; 0 for fewer than two values."""
    if len(values) < 2:
        return 0.0
    return statistics.stdev(values)


def round_half_up(value: float, digits: int = 0) -> float:
    """Round with halves going up, unlike the builtin banker's rounding."""
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def confidence_tier(sample_size: int, high: int = 20, medium: int = 10) -> str:
    """Map a sample count onto a ``high``/``medium``/``low`` confidence label."""
    if sample_size >= high:
        return "high"
    if sample_size >= medium:
        return "medium"
    return "low"
