import sys
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional, TextIO
from probe_client.logger import logger

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def default_log_path(logs_dir: str = "uberping_logs", now: Optional[datetime] = None) -> Path:
    now = now or datetime.now()
    return Path(logs_dir) / f"uberping_log_{now.strftime('%Y%m%d_%H%M%S')}.txt"


class OutputSink:
    """
    Writes timestamped session lines to the console and appends them to the
    session log file.

    A log write failure is reported once as a warning and never interrupts
    the session; console output carries on regardless.
    """

    def __init__(self, log_file: Optional[str] = None,
                 stream: Optional[TextIO] = None,
                 clock: Callable[[], datetime] = datetime.now):
        self.log_file = Path(log_file) if log_file else None
        self.stream = stream
        self.clock = clock
        self.write_failures = 0

        if self.log_file:
            try:
                self.log_file.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                self._report_failure(e)

    def _report_failure(self, error: Exception) -> None:
        self.write_failures += 1
        if self.write_failures == 1:
            logger.warning(f"Cannot write to log file {self.log_file}: {error}. Continuing without persistence")
        else:
            logger.debug(f"Log write failed again ({self.write_failures} failures): {error}")

    def format_line(self, message: str) -> str:
        return f"{self.clock().strftime(TIMESTAMP_FORMAT)} - {message}"

    def emit(self, message: str) -> str:
        line = self.format_line(message)
        stream = self.stream or sys.stdout
        print(line, file=stream, flush=True)
        self.persist(line)
        return line

    def persist(self, line: str) -> None:
        if not self.log_file:
            return
        try:
            with open(self.log_file, "a", encoding="utf-8") as f:
                f.write(line + "\n")
        except OSError as e:
            self._report_failure(e)
