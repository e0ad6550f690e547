import math
from statistics import mean
from typing import Sequence
from .models import BaselineEstimate
from .statistics_engine import calculate_jitter

TRIM_FRACTION = 0.15
MIN_SAMPLES_FOR_TRIMMING = 5


def trimmed_subset(latencies: Sequence[float], trim_fraction: float = TRIM_FRACTION) -> list:
    ordered = sorted(latencies)
    n = len(ordered)

    # Tiny samples would lose most of their data to trimming
    if n < MIN_SAMPLES_FOR_TRIMMING:
        return ordered

    trim_count = math.floor(n * trim_fraction)
    return ordered[trim_count:n - trim_count]


def estimate_baseline(latencies: Sequence[float], trim_fraction: float = TRIM_FRACTION) -> BaselineEstimate:
    """
    Robust estimate of normal latency: trimmed mean plus the jitter of the
    same trimmed subset. Dropping the lowest and highest 15% keeps the spikes
    being hunted from inflating the baseline they are measured against.
    """
    if not latencies:
        raise ValueError("Cannot estimate a baseline without samples")

    subset = trimmed_subset(latencies, trim_fraction)
    trimmed_mean = float(mean(subset))
    trimmed_jitter = calculate_jitter(subset) or 0.0

    return BaselineEstimate(
        trimmed_mean=trimmed_mean,
        trimmed_jitter=trimmed_jitter,
        baseline=trimmed_mean + trimmed_jitter,
        sample_count=len(latencies),
        trimmed_count=len(latencies) - len(subset),
    )
