"""Pytest configuration and fixtures for UberPing tests."""

import copy
import io
from datetime import datetime, timedelta

import pytest

from probe_client.config import DEFAULT_CONFIG
from probe_client.output_sink import OutputSink
from spike_detector.models import ProbeResult
from spike_detector.session import CancellationToken


class FakeClock:
    """Monotonic clock and wall clock that only move when told to."""

    def __init__(self, start=datetime(2024, 1, 1, 12, 0, 0)):
        self.seconds = 0.0
        self.start = start

    def monotonic(self):
        return self.seconds

    def now(self):
        return self.start + timedelta(seconds=self.seconds)

    def advance(self, seconds):
        self.seconds += seconds


class ScriptedProber:
    """
    Replays a script of latencies; ``None`` entries are failed probes.

    Once the script is exhausted the prober cancels ``token`` so the session
    ends the way a user interrupt would.
    """

    def __init__(self, script, token=None, repeat_last=False):
        self.script = list(script)
        self.token = token
        self.repeat_last = repeat_last
        self.calls = []

    def probe(self, destination, timeout_ms):
        self.calls.append((destination, timeout_ms))
        index = len(self.calls) - 1

        if index >= len(self.script):
            if not self.repeat_last:
                if self.token is not None:
                    self.token.cancel()
                return ProbeResult(success=False, raw_message="script exhausted")
            index = len(self.script) - 1

        latency = self.script[index]
        if self.token is not None and index == len(self.script) - 1 and not self.repeat_last:
            self.token.cancel()

        if latency is None:
            return ProbeResult(success=False, raw_message="Request timed out")
        return ProbeResult(
            success=True,
            latency_ms=latency,
            raw_message=f"64 bytes from {destination}: icmp_seq={index + 1} ttl=117 time={latency} ms",
        )


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def token():
    return CancellationToken()


@pytest.fixture
def config(tmp_path):
    cfg = copy.deepcopy(DEFAULT_CONFIG)
    cfg["probe"]["destination"] = "192.0.2.1"
    cfg["probe"]["interval_ms"] = 0
    cfg["output"]["results_dir"] = str(tmp_path / "results")
    cfg["output"]["log_file"] = str(tmp_path / "logs" / "session.txt")
    # validate_config would coerce these; keep them float like a loaded config
    for key in ("spike_multiplier_percent", "min_threshold_ms", "max_threshold_ms", "initial_threshold_ms"):
        cfg["detection"][key] = float(cfg["detection"][key])
    return cfg


@pytest.fixture
def console():
    return io.StringIO()


@pytest.fixture
def sink(config, console, fake_clock):
    return OutputSink(log_file=config["output"]["log_file"], stream=console, clock=fake_clock.now)
