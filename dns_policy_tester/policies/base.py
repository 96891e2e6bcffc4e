# dns_policy_tester/policies/base.py
"""
Shared machinery for routing-policy procedures

Every procedure runs inside PolicyProcedure.run(), the single boundary that
turns cancellation into CANCELLED and any unexpected exception into UNKNOWN,
and that completes the test record exactly once.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..accumulator import DistributionAccumulator
from ..classification import AddressClassifier
from ..constants import (
    ANYCAST_PROBE_DELAY,
    ANYCAST_PROBE_ROUNDS,
    DEFAULT_TOLERANCE,
    DEFAULT_VANTAGE_ROUNDS,
    HIGH_VOLUME_DELAY,
    HIGH_VOLUME_STRICT_DELAY,
    HIGH_VOLUME_STRICT_THRESHOLD,
    HIGH_VOLUME_STRICT_TOLERANCE,
    HIGH_VOLUME_THRESHOLD,
    HIGH_VOLUME_TOLERANCE,
    RESOLVER_IDENTITY_DELAY,
    RESOLVER_IDENTITY_ROUNDS,
    SMALL_RUN_LIMIT,
    STANDARD_DELAY_MEDIUM,
    STANDARD_DELAY_SMALL,
    VANTAGE_SETTLE_DELAY,
)
from ..errors import TestCancelled
from ..models import RoutingPolicyTest, RoutingPolicyType, TestResult
from ..resolution import DigResolver, ResolutionOutcome, Resolver

logger = logging.getLogger(__name__)


class CancellationToken:
    """Cooperative cancellation flag shared between a caller and one run"""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, seconds: float) -> bool:
        """Sleep up to seconds; True if cancelled meanwhile"""
        if seconds <= 0:
            return self._event.is_set()
        return self._event.wait(seconds)


@dataclass
class PolicySettings:
    """Tunable thresholds and delays, defaults from constants"""

    default_tolerance: float = DEFAULT_TOLERANCE
    high_volume_tolerance: float = HIGH_VOLUME_TOLERANCE
    strict_tolerance: float = HIGH_VOLUME_STRICT_TOLERANCE
    high_volume_threshold: int = HIGH_VOLUME_THRESHOLD
    strict_threshold: int = HIGH_VOLUME_STRICT_THRESHOLD

    small_run_limit: int = SMALL_RUN_LIMIT
    delay_small: float = STANDARD_DELAY_SMALL
    delay_medium: float = STANDARD_DELAY_MEDIUM
    high_volume_delay: float = HIGH_VOLUME_DELAY
    strict_delay: float = HIGH_VOLUME_STRICT_DELAY

    use_vantage_points: bool = True
    vantage_rounds: int = DEFAULT_VANTAGE_ROUNDS
    vantage_settle_delay: float = VANTAGE_SETTLE_DELAY
    identity_rounds: int = RESOLVER_IDENTITY_ROUNDS
    identity_delay: float = RESOLVER_IDENTITY_DELAY
    anycast_rounds: int = ANYCAST_PROBE_ROUNDS
    anycast_delay: float = ANYCAST_PROBE_DELAY

    def standard_delay(self, iterations: int) -> float:
        if iterations <= self.small_run_limit:
            return self.delay_small
        return self.delay_medium

    def high_volume_delay_for(self, iterations: int) -> float:
        if iterations > self.strict_threshold:
            return self.strict_delay
        return self.high_volume_delay

    @classmethod
    def from_config(cls, config) -> "PolicySettings":
        defaults = cls()
        return cls(
            default_tolerance=config.getfloat("weighted", "tolerance", defaults.default_tolerance),
            high_volume_tolerance=config.getfloat(
                "weighted", "high-volume-tolerance", defaults.high_volume_tolerance
            ),
            strict_tolerance=config.getfloat("weighted", "strict-tolerance", defaults.strict_tolerance),
            high_volume_threshold=config.getint(
                "weighted", "high-volume-threshold", defaults.high_volume_threshold
            ),
            strict_threshold=config.getint("weighted", "strict-threshold", defaults.strict_threshold),
            delay_small=config.getfloat("weighted", "delay-small", defaults.delay_small),
            delay_medium=config.getfloat("weighted", "delay-medium", defaults.delay_medium),
            high_volume_delay=config.getfloat("weighted", "high-volume-delay", defaults.high_volume_delay),
            strict_delay=config.getfloat("weighted", "strict-delay", defaults.strict_delay),
            use_vantage_points=config.getboolean(
                "geolocation", "use-vantage-points", defaults.use_vantage_points
            ),
            vantage_rounds=config.getint("geolocation", "vantage-rounds", defaults.vantage_rounds),
            vantage_settle_delay=config.getfloat(
                "geolocation", "settle-delay", defaults.vantage_settle_delay
            ),
            identity_rounds=config.getint("geolocation", "identity-rounds", defaults.identity_rounds),
            identity_delay=config.getfloat("geolocation", "identity-delay", defaults.identity_delay),
            anycast_rounds=config.getint("geolocation", "anycast-rounds", defaults.anycast_rounds),
            anycast_delay=config.getfloat("geolocation", "anycast-delay", defaults.anycast_delay),
        )


@dataclass
class PolicyContext:
    """Collaborators shared by all procedures of one engine"""

    resolver: Resolver
    dig: DigResolver = field(default_factory=DigResolver)
    classifier: AddressClassifier = field(default_factory=AddressClassifier)
    geolocator: Any = None  # IPGeolocator
    public_ip: Any = None  # PublicIPLookup
    vantage_provider: Any = None  # GeoDiversityProvider
    settings: PolicySettings = field(default_factory=PolicySettings)
    metrics: Any = None  # MetricsCollector


@dataclass
class PolicyOutcome:
    """What a procedure hands back to the boundary"""

    result: TestResult
    distribution: Optional[Dict[str, int]] = None  # None: use the accumulator
    response_time_ms: Optional[float] = None  # None: accumulator average
    fields: Dict[str, Any] = field(default_factory=dict)


class RunState:
    """Per-run accumulator, report buffer and cancellation checks"""

    def __init__(self, test: RoutingPolicyTest, token: CancellationToken):
        self.test = test
        self.token = token
        self.accumulator = DistributionAccumulator()
        self.report: List[str] = []

    def log(self, line: str = ""):
        self.report.append(line)

    def section(self, title: str):
        if self.report:
            self.report.append("")
        self.report.append(f"=== {title} ===")

    def checkpoint(self):
        if self.token.cancelled:
            raise TestCancelled(f"Test {self.test.test_id} cancelled")

    def pause(self, seconds: float):
        if self.token.wait(seconds):
            raise TestCancelled(f"Test {self.test.test_id} cancelled")

    def report_text(self) -> str:
        return "\n".join(self.report)


class PolicyProcedure(ABC):
    """Base class for one routing-policy test procedure"""

    policy_type: RoutingPolicyType

    def __init__(self, context: PolicyContext):
        self.context = context
        self.settings = context.settings

    @abstractmethod
    def execute(self, state: RunState) -> PolicyOutcome:
        """Drive the lookups for state.test and return the verdict"""
        pass

    def run(self, test: RoutingPolicyTest, token: Optional[CancellationToken] = None) -> RoutingPolicyTest:
        """Execute the procedure and complete the record exactly once"""
        token = token or CancellationToken()
        state = RunState(test, token)
        logger.info(f"Starting {test.description()}")
        start = time.perf_counter()

        try:
            test.validate()
            state.checkpoint()
            outcome = self.execute(state)
        except TestCancelled:
            snapshot = state.accumulator.snapshot()
            state.section("Cancelled")
            state.log(f"Test cancelled after {snapshot.total_lookups} lookups; partial counts kept")
            logger.info(f"Test {test.test_id} cancelled after {snapshot.total_lookups} lookups")
            test.complete(
                TestResult.CANCELLED,
                state.report_text(),
                snapshot.distribution,
                snapshot.average_response_ms,
            )
            return test
        except Exception as e:
            logger.error(f"Test {test.test_id} ({test.policy_type.value}) failed unexpectedly: {e}",
                         exc_info=True)
            snapshot = state.accumulator.snapshot()
            test.complete(
                TestResult.UNKNOWN,
                str(e) or e.__class__.__name__,
                snapshot.distribution,
                (time.perf_counter() - start) * 1000,
            )
            return test

        snapshot = state.accumulator.snapshot()
        distribution = outcome.distribution if outcome.distribution is not None else snapshot.distribution
        response_ms = outcome.response_time_ms
        if response_ms is None:
            response_ms = snapshot.average_response_ms
        test.complete(outcome.result, state.report_text(), distribution, response_ms, **outcome.fields)
        logger.info(f"Finished {test}")
        return test

    # Helpers shared by the procedures

    def resolve(self, domain: str, resolver: Optional[str] = None,
                backend: Optional[Resolver] = None) -> ResolutionOutcome:
        backend = backend or self.context.resolver
        outcome = backend.resolve(domain, resolver)
        if self.context.metrics is not None:
            self.context.metrics.record_lookup(backend.name(), outcome.ok, outcome.elapsed_ms / 1000)
        return outcome

    def classify_endpoint(self, ip: str) -> str:
        return self.context.classifier.classify(ip).endpoint_id

    def resolution_loop(
        self,
        state: RunState,
        iterations: int,
        delay: float,
        endpoint_for: Callable[[str], str],
        backend: Optional[Resolver] = None,
        progress_every: int = 0,
    ):
        """
        Resolve state.test.domain iterations times into the accumulator.

        The first address of each answer is counted. Failed lookups are tallied
        and skipped. Cancellation is checked before every lookup.
        """
        test = state.test
        accumulator = state.accumulator
        for i in range(iterations):
            state.checkpoint()
            outcome = self.resolve(test.domain, test.resolver_address, backend)
            if outcome.ok:
                endpoint = endpoint_for(outcome.addresses[0])
                accumulator.increment(endpoint)
                accumulator.record_success(
                    outcome.elapsed_ms,
                    f"Query {i + 1}: {', '.join(outcome.addresses)} -> {endpoint} ({outcome.elapsed_ms:.1f}ms)",
                )
            else:
                accumulator.record_failure(f"Query {i + 1}: FAILED ({outcome.error})")

            if progress_every and (i + 1) % progress_every == 0:
                logger.info(
                    f"{test.domain}: {i + 1}/{iterations} queries, "
                    f"{accumulator.successes} ok, {accumulator.failures} failed"
                )
            if i + 1 < iterations:
                state.pause(delay)


def unique_answers(answers: List[List[str]]) -> List[str]:
    """Distinct answer sets, each rendered as a sorted comma-joined string"""
    seen = []
    for addresses in answers:
        key = ",".join(sorted(addresses))
        if key and key not in seen:
            seen.append(key)
    return seen


def most_common(distribution: Dict[str, int]) -> Optional[str]:
    if not distribution:
        return None
    return Counter(distribution).most_common(1)[0][0]
