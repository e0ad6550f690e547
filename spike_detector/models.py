from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterator, List, Optional, Tuple


@dataclass(frozen=True)
class Sample:
    index: int
    latency_ms: float
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "latency_ms": self.latency_ms,
            "timestamp": self.timestamp.isoformat(),
        }


class SampleStore:
    """
    Append-only record of successful latency observations for one session.

    Samples are kept in arrival order and are never reordered or removed;
    indexes start at 1 so that a sample's index equals the store length at
    the moment it was recorded.
    """

    def __init__(self):
        self._samples: List[Sample] = []

    def append(self, latency_ms: float, timestamp: datetime) -> Sample:
        if latency_ms < 0:
            raise ValueError(f"Latency must be non-negative, got {latency_ms}")
        sample = Sample(index=len(self._samples) + 1, latency_ms=latency_ms, timestamp=timestamp)
        self._samples.append(sample)
        return sample

    @property
    def latencies(self) -> Tuple[float, ...]:
        return tuple(s.latency_ms for s in self._samples)

    @property
    def samples(self) -> Tuple[Sample, ...]:
        return tuple(self._samples)

    def __len__(self) -> int:
        return len(self._samples)

    def __iter__(self) -> Iterator[Sample]:
        return iter(tuple(self._samples))


@dataclass(frozen=True)
class Statistics:
    min: float
    max: float
    mean: float
    jitter: Optional[float]
    jitter_quality: Optional[str]
    count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "min": self.min,
            "max": self.max,
            "mean": self.mean,
            "jitter": self.jitter,
            "jitter_quality": self.jitter_quality,
            "count": self.count,
        }


@dataclass(frozen=True)
class BaselineEstimate:
    trimmed_mean: float
    trimmed_jitter: float
    baseline: float
    sample_count: int
    trimmed_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trimmed_mean": self.trimmed_mean,
            "trimmed_jitter": self.trimmed_jitter,
            "baseline": self.baseline,
            "sample_count": self.sample_count,
            "trimmed_count": self.trimmed_count,
        }


@dataclass(frozen=True)
class ThresholdUpdate:
    sample_count: int
    estimate: BaselineEstimate
    raw_threshold: float
    threshold: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sample_count": self.sample_count,
            "raw_threshold": self.raw_threshold,
            "threshold": self.threshold,
            **self.estimate.to_dict(),
        }


@dataclass(frozen=True)
class ProbeResult:
    success: bool
    latency_ms: Optional[float] = None
    raw_message: str = ""


@dataclass(frozen=True)
class SpikeRecord:
    timestamp: datetime
    latency_ms: float
    threshold_ms: float
    raw_message: str
    sample_index: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "latency_ms": self.latency_ms,
            "threshold_ms": self.threshold_ms,
            "raw_message": self.raw_message,
            "sample_index": self.sample_index,
        }


def success_rate(successes: int, attempts: int) -> float:
    """Percentage of successful attempts, rounded half-up to two decimals."""
    if attempts <= 0:
        return 0.0
    rate = Decimal(successes) * 100 / Decimal(attempts)
    return float(rate.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


@dataclass
class SessionSummary:
    destination: str
    total_attempts: int
    successes: int
    failures: int
    statistics: Optional[Statistics]
    final_threshold: float
    multiplier_percent: float
    spikes: List[SpikeRecord]
    started_at: datetime
    ended_at: datetime
    elapsed_seconds: float
    cancelled: bool = False
    initial_threshold: float = 20.0
    threshold_history: List[ThresholdUpdate] = field(default_factory=list)
    samples: List[Sample] = field(default_factory=list)

    @property
    def success_rate(self) -> float:
        return success_rate(self.successes, self.total_attempts)

    @property
    def session_id(self) -> str:
        return self.started_at.strftime("%Y%m%d_%H%M%S_%f")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "destination": self.destination,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat(),
            "elapsed_seconds": self.elapsed_seconds,
            "cancelled": self.cancelled,
            "counts": {
                "total_attempts": self.total_attempts,
                "successes": self.successes,
                "failures": self.failures,
                "success_rate": self.success_rate,
            },
            "statistics": self.statistics.to_dict() if self.statistics else None,
            "threshold": {
                "initial_threshold_ms": self.initial_threshold,
                "final_threshold_ms": self.final_threshold,
                "multiplier_percent": self.multiplier_percent,
                "history": [u.to_dict() for u in self.threshold_history],
            },
            "spikes": [s.to_dict() for s in self.spikes],
            "samples": [s.to_dict() for s in self.samples],
        }
