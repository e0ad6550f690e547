from datetime import datetime
from typing import Optional
from .models import Sample, SpikeRecord
from .threshold import DEFAULT_MIN_SAMPLES


def classify(latency_ms: float, sample_count: int, threshold_ms: float,
             min_samples: int = DEFAULT_MIN_SAMPLES) -> bool:
    # Inactive until enough history exists to trust the threshold
    if sample_count < min_samples:
        return False
    return latency_ms > threshold_ms


def create_spike_record(sample: Sample, threshold_ms: float, raw_message: str,
                        timestamp: Optional[datetime] = None) -> SpikeRecord:
    return SpikeRecord(
        timestamp=timestamp or sample.timestamp,
        latency_ms=sample.latency_ms,
        threshold_ms=threshold_ms,
        raw_message=raw_message,
        sample_index=sample.index,
    )
