import math
import re
import shutil
import subprocess
import sys
from typing import List, Optional
from probe_client.logger import logger
from spike_detector.models import ProbeResult

# Matches "time=12.3 ms", "time<1ms" and "time=12ms"
TIME_PATTERN = re.compile(r"time[=<]\s*(\d+(?:[.,]\d+)?)\s*ms", re.IGNORECASE)
REPLY_LINE_PATTERN = re.compile(r"^.*(?:bytes from|Reply from).*time[=<].*$", re.IGNORECASE | re.MULTILINE)

TIMEOUT_MESSAGE = "Request timed out"


def parse_ping_output(output: str) -> Optional[ProbeResult]:
    """Extract the round-trip time of a single echo reply from ping output."""
    line_match = REPLY_LINE_PATTERN.search(output or "")
    if not line_match:
        return None

    reply_line = line_match.group(0).strip()
    time_match = TIME_PATTERN.search(reply_line)
    if not time_match:
        return None

    latency = float(time_match.group(1).replace(",", "."))
    return ProbeResult(success=True, latency_ms=latency, raw_message=reply_line)


class SystemPingProber:
    """Sends one ICMP echo per call through the platform ``ping`` binary."""

    def __init__(self, ping_binary: str = "ping", platform: str = sys.platform):
        self.ping_binary = ping_binary
        self.platform = platform

    def check_available(self) -> None:
        if shutil.which(self.ping_binary) is None:
            raise FileNotFoundError(f"'{self.ping_binary}' command not found")

    def build_command(self, destination: str, timeout_ms: int) -> List[str]:
        if self.platform.startswith("win"):
            return [self.ping_binary, "-n", "1", "-w", str(int(timeout_ms)), destination]
        if self.platform == "darwin":
            return [self.ping_binary, "-c", "1", "-W", str(int(timeout_ms)), destination]
        # Linux ping takes whole seconds
        timeout_s = max(1, int(math.ceil(timeout_ms / 1000.0)))
        return [self.ping_binary, "-c", "1", "-W", str(timeout_s), destination]

    def probe(self, destination: str, timeout_ms: int) -> ProbeResult:
        command = self.build_command(destination, timeout_ms)
        try:
            completed = subprocess.run(
                command,
                capture_output=True,
                text=True,
                check=False,
                timeout=timeout_ms / 1000.0 + 1.0,
            )
        except subprocess.TimeoutExpired:
            logger.debug(f"ping to {destination} exceeded {timeout_ms}ms")
            return ProbeResult(success=False, raw_message=TIMEOUT_MESSAGE)
        except OSError as e:
            logger.warning(f"Failed to run {self.ping_binary}: {e}")
            return ProbeResult(success=False, raw_message=str(e))

        output = (completed.stdout or "") + (completed.stderr or "")
        if completed.returncode != 0:
            return ProbeResult(success=False, raw_message=TIMEOUT_MESSAGE)

        result = parse_ping_output(output)
        if result is None:
            logger.warning(f"Could not parse ping output for {destination}: {output.strip()!r}")
            return ProbeResult(success=False, raw_message=output.strip())
        return result
