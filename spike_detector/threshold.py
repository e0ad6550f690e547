from typing import Sequence
from .baseline import estimate_baseline
from .models import ThresholdUpdate

DEFAULT_INITIAL_THRESHOLD_MS = 20.0
DEFAULT_MIN_THRESHOLD_MS = 20.0
DEFAULT_MAX_THRESHOLD_MS = 500.0
DEFAULT_MULTIPLIER_PERCENT = 200.0
DEFAULT_RECOMPUTE_INTERVAL = 10
DEFAULT_MIN_SAMPLES = 15


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


def compute_threshold(baseline: float, multiplier_percent: float,
                      min_threshold_ms: float, max_threshold_ms: float) -> tuple:
    """Return (raw_threshold, clamped_threshold) for a baseline."""
    raw_threshold = baseline * (multiplier_percent / 100.0)
    return raw_threshold, clamp(raw_threshold, min_threshold_ms, max_threshold_ms)


class AdaptiveThresholdController:
    """
    Owns the current spike threshold.

    The controller is Cold until ``min_samples`` successful samples exist and
    keeps ``initial_threshold_ms`` meanwhile. Once Adaptive, every
    ``recompute_interval``-th sample triggers a recompute over the full
    sample history, and the result is clamped to
    ``[min_threshold_ms, max_threshold_ms]``.
    """

    def __init__(self,
                 multiplier_percent: float = DEFAULT_MULTIPLIER_PERCENT,
                 recompute_interval: int = DEFAULT_RECOMPUTE_INTERVAL,
                 min_threshold_ms: float = DEFAULT_MIN_THRESHOLD_MS,
                 max_threshold_ms: float = DEFAULT_MAX_THRESHOLD_MS,
                 initial_threshold_ms: float = DEFAULT_INITIAL_THRESHOLD_MS,
                 min_samples: int = DEFAULT_MIN_SAMPLES):

        if recompute_interval < 1:
            raise ValueError(f"recompute_interval must be at least 1, got {recompute_interval}")
        if min_threshold_ms > max_threshold_ms:
            raise ValueError(
                f"min_threshold_ms ({min_threshold_ms}) cannot exceed max_threshold_ms ({max_threshold_ms})"
            )
        if multiplier_percent <= 0:
            raise ValueError(f"multiplier_percent must be positive, got {multiplier_percent}")

        self.multiplier_percent = multiplier_percent
        self.recompute_interval = recompute_interval
        self.min_threshold_ms = min_threshold_ms
        self.max_threshold_ms = max_threshold_ms
        self.min_samples = min_samples

        self.current_threshold = clamp(initial_threshold_ms, min_threshold_ms, max_threshold_ms)
        self.last_recompute_count = 0

    def is_adaptive(self, sample_count: int) -> bool:
        return sample_count >= self.min_samples

    def should_recompute(self, sample_count: int) -> bool:
        return (self.is_adaptive(sample_count)
                and sample_count % self.recompute_interval == 0
                and sample_count != self.last_recompute_count)

    def recompute(self, latencies: Sequence[float]) -> ThresholdUpdate:
        estimate = estimate_baseline(latencies)
        raw_threshold, threshold = compute_threshold(
            estimate.baseline, self.multiplier_percent,
            self.min_threshold_ms, self.max_threshold_ms
        )

        self.current_threshold = threshold
        self.last_recompute_count = len(latencies)

        return ThresholdUpdate(
            sample_count=len(latencies),
            estimate=estimate,
            raw_threshold=raw_threshold,
            threshold=threshold,
        )
