import signal
import threading
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
from probe_client.logger import logger
from probe_client.output_sink import OutputSink
from .classifier import classify, create_spike_record
from .models import ProbeResult, SampleStore, SessionSummary, SpikeRecord, ThresholdUpdate
from .results import save_session_result
from .statistics_engine import compute_statistics
from .threshold import AdaptiveThresholdController


def format_ms(value: Optional[float]) -> str:
    if value is None:
        return "N/A"
    return f"{value:.2f}".rstrip("0").rstrip(".")


class CancellationToken:
    """Cooperative stop request, checked by the session between ticks."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        # True when cancelled during the wait
        return self._event.wait(timeout)


def install_signal_handlers(token: CancellationToken) -> Dict[int, Any]:
    """Route SIGINT/SIGTERM into ``token``; returns the previous handlers."""
    previous = {}

    def _handler(signum, frame):
        logger.debug(f"Received signal {signum}, stopping after the current probe")
        token.cancel()

    for signum in (signal.SIGINT, getattr(signal, "SIGTERM", None)):
        if signum is None:
            continue
        previous[signum] = signal.signal(signum, _handler)
    return previous


def restore_signal_handlers(previous: Dict[int, Any]) -> None:
    for signum, handler in previous.items():
        signal.signal(signum, handler)


class SessionCoordinator:
    """
    Drives one monitoring session.

    Each tick asks the prober for one observation. Successful latencies go
    into the sample store, give the threshold controller a chance to
    recompute and are then classified against the current threshold.
    Failures are only counted. The loop ends when the time limit elapses or
    the cancellation token is set, and always finishes by emitting and
    saving the session summary.
    """

    def __init__(self,
                 config: Dict[str, Any],
                 prober,
                 sink: OutputSink,
                 cancel_token: Optional[CancellationToken] = None,
                 clock: Callable[[], float] = time.monotonic,
                 now: Callable[[], datetime] = datetime.now,
                 wait: Optional[Callable[[float], bool]] = None):

        probe_config = config["probe"]
        detection = config["detection"]
        output = config["output"]

        self.destination = probe_config["destination"]
        self.interval_ms = probe_config["interval_ms"]
        self.timeout_ms = probe_config["timeout_ms"]
        self.time_limit_seconds = probe_config["time_limit_seconds"]
        self.min_samples = detection["min_samples"]
        self.debug = output.get("debug", False)
        self.results_dir = output.get("results_dir")

        self.prober = prober
        self.sink = sink
        self.cancel_token = cancel_token or CancellationToken()
        self.clock = clock
        self.now = now
        self.wait = wait or self.cancel_token.wait

        self.controller = AdaptiveThresholdController(
            multiplier_percent=detection["spike_multiplier_percent"],
            recompute_interval=detection["recompute_interval"],
            min_threshold_ms=detection["min_threshold_ms"],
            max_threshold_ms=detection["max_threshold_ms"],
            initial_threshold_ms=detection["initial_threshold_ms"],
            min_samples=self.min_samples,
        )
        self.initial_threshold = self.controller.current_threshold

        self.store = SampleStore()
        self.spikes: List[SpikeRecord] = []
        self.threshold_history: List[ThresholdUpdate] = []
        self.total_attempts = 0
        self.successes = 0
        self.failures = 0

        self.started_at: Optional[datetime] = None
        self._start_clock: Optional[float] = None

    @property
    def current_threshold(self) -> float:
        return self.controller.current_threshold

    def run(self) -> SessionSummary:
        self._start()

        try:
            while not self.cancel_token.cancelled:
                if self._time_limit_reached():
                    self.sink.emit(f"Time limit of {format_ms(self.time_limit_seconds)} seconds reached. Stopping ping.")
                    break

                tick_started = self.clock()
                self.tick()

                if self.cancel_token.cancelled:
                    break

                remaining = self.interval_ms / 1000.0 - (self.clock() - tick_started)
                if remaining > 0 and self.wait(remaining):
                    break
        except KeyboardInterrupt:
            self.cancel_token.cancel()

        if self.cancel_token.cancelled:
            self.sink.emit("Interrupted by user. Generating final statistics...")

        summary = self.build_summary()
        self.emit_summary(summary)
        if self.results_dir:
            save_session_result(summary, self.results_dir)
        return summary

    def _start(self) -> None:
        self.started_at = self.now()
        self._start_clock = self.clock()

        if self.time_limit_seconds:
            logger.info(f"Time limit: {format_ms(self.time_limit_seconds)} seconds")
        else:
            logger.info("Running continuously (Press Ctrl+C to stop)")
        logger.info(f"Ping interval: {self.interval_ms}ms")

        self.sink.emit(
            f"Ping session started - Target: {self.destination}, "
            f"Adaptive spike detection: {format_ms(self.controller.multiplier_percent)}% multiplier "
            f"(initial threshold: {format_ms(self.current_threshold)}ms)"
        )

    def _time_limit_reached(self) -> bool:
        if not self.time_limit_seconds:
            return False
        return self.clock() - self._start_clock >= self.time_limit_seconds

    def tick(self) -> ProbeResult:
        if self.started_at is None:
            self.started_at = self.now()
            self._start_clock = self.clock()

        try:
            result = self.prober.probe(self.destination, self.timeout_ms)
        except Exception as e:
            logger.error(f"Probe to {self.destination} raised: {e}")
            result = ProbeResult(success=False, raw_message=str(e))

        self.total_attempts += 1

        if result.success and result.latency_ms is not None and result.latency_ms >= 0:
            self._record_success(result)
        else:
            self._record_failure(result)

        return result

    def _record_success(self, result: ProbeResult) -> None:
        timestamp = self.now()
        sample = self.store.append(result.latency_ms, timestamp)
        self.successes += 1

        if self.controller.should_recompute(len(self.store)):
            update = self.controller.recompute(self.store.latencies)
            self.threshold_history.append(update)
            self._emit_threshold_update(update)

        threshold = self.current_threshold
        is_spike = classify(sample.latency_ms, len(self.store), threshold, self.min_samples)

        message = result.raw_message or f"Reply from {self.destination}: time={format_ms(sample.latency_ms)}ms"
        if is_spike:
            self.spikes.append(create_spike_record(sample, threshold, message, timestamp))
            self.sink.emit(f"{message} [SPIKE]")
        else:
            self.sink.emit(message)

    def _record_failure(self, result: ProbeResult) -> None:
        self.failures += 1
        if result.raw_message:
            logger.debug(f"Probe failed: {result.raw_message}")
        self.sink.emit("Request timed out or failed")

    def _emit_threshold_update(self, update: ThresholdUpdate) -> None:
        logger.debug(f"Adaptive threshold updated: {format_ms(update.threshold)}ms "
                     f"(after {update.sample_count} pings)")
        if not self.debug:
            return

        estimate = update.estimate
        self.sink.emit(f"Adaptive threshold updated: {format_ms(update.threshold)}ms "
                       f"(after {update.sample_count} pings)")
        self.sink.emit(f"  -> Trimmed mean: {format_ms(estimate.trimmed_mean)}ms, "
                       f"Jitter: {format_ms(estimate.trimmed_jitter)}ms, "
                       f"Baseline: {format_ms(estimate.baseline)}ms")
        self.sink.emit(f"  -> Pre-constraint: {format_ms(update.raw_threshold)}ms, "
                       f"Final: {format_ms(update.threshold)}ms")

    def build_summary(self) -> SessionSummary:
        ended_at = self.now()
        started_at = self.started_at or ended_at
        elapsed = self.clock() - self._start_clock if self._start_clock is not None else 0.0

        return SessionSummary(
            destination=self.destination,
            total_attempts=self.total_attempts,
            successes=self.successes,
            failures=self.failures,
            statistics=compute_statistics(self.store.latencies),
            final_threshold=self.current_threshold,
            multiplier_percent=self.controller.multiplier_percent,
            spikes=list(self.spikes),
            started_at=started_at,
            ended_at=ended_at,
            elapsed_seconds=elapsed,
            cancelled=self.cancel_token.cancelled,
            initial_threshold=self.initial_threshold,
            threshold_history=list(self.threshold_history),
            samples=list(self.store.samples),
        )

    def emit_summary(self, summary: SessionSummary) -> None:
        for line in format_summary(summary):
            self.sink.emit(line)


def format_summary(summary: SessionSummary) -> List[str]:
    lines = [
        "=== PING SESSION SUMMARY ===",
        f"Total pings sent: {summary.total_attempts}",
        f"Successful pings: {summary.successes}",
        f"Failed pings: {summary.failures}",
        f"Success rate: {summary.success_rate:.2f}%",
    ]

    stats = summary.statistics
    if stats is None:
        lines.append("Response time - no successful pings")
        lines.append("Jitter (std dev): insufficient data")
    else:
        lines.append(f"Response time - Min: {format_ms(stats.min)}ms, "
                     f"Max: {format_ms(stats.max)}ms, Avg: {format_ms(stats.mean)}ms")
        if stats.jitter is None:
            lines.append("Jitter (std dev): insufficient data")
        else:
            lines.append(f"Jitter (std dev): {format_ms(stats.jitter)}ms - {stats.jitter_quality} jitter")

    lines.append(f"Total runtime: {summary.elapsed_seconds:.1f} seconds")

    if summary.spikes:
        lines.append(f"=== ANOMALOUS SPIKES (adaptive threshold: {format_ms(summary.final_threshold)}ms "
                     f"@ {format_ms(summary.multiplier_percent)}%) ===")
        for number, spike in enumerate(summary.spikes, start=1):
            lines.append(f"{number} - {spike.timestamp.strftime('%Y-%m-%d %H:%M:%S')} - {spike.raw_message} "
                         f"(threshold: {format_ms(spike.threshold_ms)}ms)")

    lines.append("Ping session ended")
    return lines
