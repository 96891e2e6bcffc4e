# dns_policy_tester/probes.py
"""Reachability and latency probes for discovered addresses"""

import logging
import re
import socket
import subprocess
import time
from typing import Callable, List, Optional, Sequence

from .constants import (
    PING_COMMAND,
    PING_COUNT,
    PING_TIMEOUT,
    REACHABILITY_PORTS,
    REACHABILITY_TIMEOUT,
    UNREACHABLE_LATENCY_MS,
)

logger = logging.getLogger(__name__)

# Linux: "rtt min/avg/max/mdev = 9.1/10.2/11.3/0.8 ms"
# BSD/macOS: "round-trip min/avg/max/stddev = 9.1/10.2/11.3/0.8 ms"
PING_SUMMARY = re.compile(r"(?:rtt|round-trip) min/avg/max/(?:mdev|stddev) = [\d.]+/([\d.]+)/")


def parse_ping_average(output: str) -> Optional[float]:
    """Average round-trip time in ms from ping's summary line"""
    match = PING_SUMMARY.search(output)
    if not match:
        return None
    try:
        return float(match.group(1))
    except ValueError:
        return None


class ReachabilityProbe:
    """TCP connect check against a few common service ports"""

    def __init__(self, ports: Sequence[int] = REACHABILITY_PORTS, connect: Callable = None):
        self.ports = tuple(ports)
        self._connect = connect or socket.create_connection

    def is_reachable(self, ip: str, timeout: float = REACHABILITY_TIMEOUT) -> bool:
        for port in self.ports:
            try:
                conn = self._connect((ip, port), timeout)
            except ConnectionRefusedError:
                # A refusal still proves the host answered
                return True
            except OSError as e:
                logger.debug(f"{ip}:{port} not reachable: {e}")
                continue
            conn.close()
            return True
        return False


class LatencyProbe:
    """Round-trip latency via ping, with timed reachability as fallback"""

    def __init__(
        self,
        reachability: Optional[ReachabilityProbe] = None,
        count: int = PING_COUNT,
        timeout: float = PING_TIMEOUT,
        runner: Callable = None,
    ):
        self.reachability = reachability or ReachabilityProbe()
        self.count = count
        self.timeout = timeout
        self.runner = runner or self._run_ping

    def _run_ping(self, cmd: List[str], timeout: float) -> subprocess.CompletedProcess:
        return subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)

    def _ping(self, ip: str) -> Optional[float]:
        try:
            completed = self.runner([PING_COMMAND, "-c", str(self.count), ip], self.timeout)
        except (subprocess.TimeoutExpired, OSError) as e:
            logger.debug(f"ping {ip} failed: {e}")
            return None
        if completed.returncode != 0:
            return None
        return parse_ping_average(completed.stdout or "")

    def measure_latency(self, ip: str) -> int:
        """Latency in whole milliseconds, UNREACHABLE_LATENCY_MS if nothing answered"""
        average = self._ping(ip)
        if average is not None:
            return int(round(average))

        start = time.perf_counter()
        if self.reachability.is_reachable(ip):
            return int((time.perf_counter() - start) * 1000)
        return UNREACHABLE_LATENCY_MS
