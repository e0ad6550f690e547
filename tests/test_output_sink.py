"""Tests for the console + log file output sink."""

import io
from datetime import datetime

from probe_client.output_sink import OutputSink, default_log_path


def fixed_clock():
    return datetime(2024, 3, 9, 14, 5, 7)


def test_emit_writes_timestamped_line_to_console_and_file(tmp_path):
    console = io.StringIO()
    log_file = tmp_path / "nested" / "ping.txt"
    sink = OutputSink(log_file=str(log_file), stream=console, clock=fixed_clock)

    line = sink.emit("64 bytes from host: time=12 ms")

    assert line == "2024-03-09 14:05:07 - 64 bytes from host: time=12 ms"
    assert console.getvalue() == line + "\n"
    assert log_file.read_text() == line + "\n"


def test_emit_appends_to_existing_log(tmp_path):
    log_file = tmp_path / "ping.txt"
    log_file.write_text("previous\n")
    sink = OutputSink(log_file=str(log_file), stream=io.StringIO(), clock=fixed_clock)

    sink.emit("next")

    assert log_file.read_text().splitlines() == ["previous", "2024-03-09 14:05:07 - next"]


def test_console_only_sink(tmp_path):
    console = io.StringIO()
    sink = OutputSink(stream=console, clock=fixed_clock)
    sink.emit("hello")
    assert "hello" in console.getvalue()
    assert sink.write_failures == 0


def test_write_failures_are_counted_not_raised(tmp_path):
    console = io.StringIO()
    sink = OutputSink(log_file=str(tmp_path), stream=console, clock=fixed_clock)

    sink.emit("one")
    sink.emit("two")

    assert sink.write_failures == 2
    assert console.getvalue().count("\n") == 2


def test_default_log_path():
    path = default_log_path("logs", now=datetime(2024, 3, 9, 14, 5, 7))
    assert str(path).replace("\\", "/") == "logs/uberping_log_20240309_140507.txt"
