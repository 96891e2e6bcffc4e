# dns_policy_tester/accumulator.py
# Version: 1.0.0
# Per-run distribution counter

import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, List

from .constants import RAW_SAMPLE_SIZE, RESPONSE_SAMPLE_LIMIT


@dataclass
class AccumulatorSnapshot:
    """Point-in-time copy of an accumulator"""

    distribution: Dict[str, int] = field(default_factory=dict)
    successes: int = 0
    failures: int = 0
    response_times_ms: List[float] = field(default_factory=list)
    raw_sample: List[str] = field(default_factory=list)

    @property
    def total_lookups(self) -> int:
        return self.successes + self.failures

    @property
    def total_count(self) -> int:
        return sum(self.distribution.values())

    @property
    def average_response_ms(self) -> float:
        if not self.response_times_ms:
            return 0.0
        return sum(self.response_times_ms) / len(self.response_times_ms)


class DistributionAccumulator:
    """
    Thread-safe endpoint -> count map owned by a single test run.

    Increments commute, so concurrent lookups may land in any order. The raw
    sample keeps the first lines in the order they were recorded.
    """

    def __init__(self, raw_sample_size: int = RAW_SAMPLE_SIZE,
                 response_sample_limit: int = RESPONSE_SAMPLE_LIMIT):
        self.raw_sample_size = raw_sample_size
        self.response_sample_limit = response_sample_limit
        self._counts: Dict[str, int] = OrderedDict()
        self._response_times: List[float] = []
        self._raw_sample: List[str] = []
        self._successes = 0
        self._failures = 0
        self._lock = threading.RLock()

    def increment(self, endpoint_id: str, amount: int = 1):
        with self._lock:
            self._counts[endpoint_id] = self._counts.get(endpoint_id, 0) + amount

    def record_success(self, elapsed_ms: float, raw_line: str = ""):
        with self._lock:
            self._successes += 1
            if len(self._response_times) < self.response_sample_limit:
                self._response_times.append(elapsed_ms)
            self._add_raw(raw_line)

    def record_failure(self, raw_line: str = ""):
        with self._lock:
            self._failures += 1
            self._add_raw(raw_line)

    def _add_raw(self, raw_line: str):
        if raw_line and len(self._raw_sample) < self.raw_sample_size:
            self._raw_sample.append(raw_line)

    def count(self, endpoint_id: str) -> int:
        with self._lock:
            return self._counts.get(endpoint_id, 0)

    @property
    def successes(self) -> int:
        with self._lock:
            return self._successes

    @property
    def failures(self) -> int:
        with self._lock:
            return self._failures

    def snapshot(self) -> AccumulatorSnapshot:
        with self._lock:
            return AccumulatorSnapshot(
                distribution=dict(self._counts),
                successes=self._successes,
                failures=self._failures,
                response_times_ms=list(self._response_times),
                raw_sample=list(self._raw_sample),
            )
