from statistics import mean, pstdev
from typing import Optional, Sequence
from .models import Statistics

LOW_JITTER_MAX_MS = 2.0
MODERATE_JITTER_MAX_MS = 10.0

JITTER_QUALITY = {
    "Low": "Stable path, latency barely varies between probes",
    "Moderate": "Noticeable variation, usually fine for interactive traffic",
    "High": "Unstable path, expect stutter in real-time applications",
}


def calculate_jitter(latencies: Sequence[float]) -> Optional[float]:
    # Population standard deviation (divide by n)
    if len(latencies) < 2:
        return None
    return float(pstdev(latencies))


def classify_jitter(jitter: Optional[float]) -> Optional[str]:
    if jitter is None:
        return None
    if jitter <= LOW_JITTER_MAX_MS:
        return "Low"
    if jitter <= MODERATE_JITTER_MAX_MS:
        return "Moderate"
    return "High"


def compute_statistics(latencies: Sequence[float]) -> Optional[Statistics]:
    """
    Compute min, max, mean and jitter over a sequence of latencies.

    Returns None for an empty sequence. A single sample yields min, max and
    mean equal to that sample with jitter left undefined (None), so callers
    must handle the "insufficient data" case themselves.
    """
    if not latencies:
        return None

    values = list(latencies)
    jitter = calculate_jitter(values)

    return Statistics(
        min=min(values),
        max=max(values),
        mean=float(mean(values)),
        jitter=jitter,
        jitter_quality=classify_jitter(jitter),
        count=len(values),
    )
