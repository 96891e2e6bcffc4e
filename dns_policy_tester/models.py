# dns_policy_tester/models.py
"""Records produced by routing-policy tests and A-record discovery"""

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from .constants import (
    DEFAULT_ITERATIONS,
    HEALTHY_LATENCY_MS,
    ROLE_UNASSIGNED,
    SLOW_LATENCY_MS,
)


class RoutingPolicyType(Enum):
    """Routing policies the engine knows how to test"""

    WEIGHTED = "weighted"
    GEOLOCATION = "geolocation"
    LATENCY = "latency"
    FAILOVER = "failover"
    IP_BASED = "ip_based"
    MULTIVALUE_ANSWER = "multivalue_answer"


class TestResult(Enum):
    """Outcome of a single test run"""

    __test__ = False

    PASSED = "PASSED"
    PARTIAL = "PARTIAL"
    FAILED = "FAILED"
    UNKNOWN = "UNKNOWN"
    CANCELLED = "CANCELLED"


class Compliance(Enum):
    """Reporting classification of a weighted distribution"""

    COMPLIANT = "COMPLIANT"
    PARTIALLY_COMPLIANT = "PARTIALLY COMPLIANT"
    NON_COMPLIANT = "NON-COMPLIANT"


@dataclass
class RoutingPolicyTest:
    """
    One routing-policy test run.

    Created from user/config input, completed exactly once by the
    orchestrator through complete(), and treated as read-only afterwards.
    """

    __test__ = False

    policy_type: RoutingPolicyType
    domain: str
    iterations: int = DEFAULT_ITERATIONS
    expected_weights: Dict[str, int] = field(default_factory=dict)
    primary_endpoint: Optional[str] = None
    secondary_endpoint: Optional[str] = None
    resolver_address: Optional[str] = None  # resolver override, None = host resolution
    num_locations: int = 0  # GEOLOCATION vantage-point rounds
    expected_region: Optional[str] = None
    region_endpoints: Dict[str, str] = field(default_factory=dict)
    ip_range_endpoints: Dict[str, str] = field(default_factory=dict)
    expected_endpoints: List[str] = field(default_factory=list)
    record_type: str = "A"

    test_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: float = field(default_factory=time.time)

    # Populated on completion
    actual_distribution: Dict[str, int] = field(default_factory=dict)
    response_time_ms: float = 0.0
    result: Optional[TestResult] = None
    error_message: str = ""
    failover_triggered: bool = False
    actual_endpoint: Optional[str] = None
    expected_endpoint: Optional[str] = None
    source_location: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)
    completed: bool = False

    def validate(self):
        """Check the invariants that must hold before the test runs"""
        if not self.domain or not self.domain.strip():
            raise ValueError("Test domain must not be empty")
        if self.iterations < 1:
            raise ValueError(f"Iterations must be at least 1, got {self.iterations}")
        if self.policy_type == RoutingPolicyType.WEIGHTED:
            if not self.expected_weights:
                raise ValueError("Weighted test requires expected weights")
            if any(w < 0 for w in self.expected_weights.values()):
                raise ValueError("Endpoint weights must not be negative")
            if sum(self.expected_weights.values()) <= 0:
                raise ValueError("Sum of endpoint weights must be greater than zero")

    def complete(
        self,
        result: TestResult,
        error_message: str = "",
        actual_distribution: Optional[Dict[str, int]] = None,
        response_time_ms: Optional[float] = None,
        **extra,
    ):
        """Apply the final outcome in a single step"""
        if self.completed:
            raise RuntimeError(f"Test {self.test_id} already completed")

        for name, value in extra.items():
            if not hasattr(self, name):
                raise AttributeError(f"RoutingPolicyTest has no field '{name}'")
            setattr(self, name, value)

        if actual_distribution is not None:
            self.actual_distribution = dict(actual_distribution)
        if response_time_ms is not None:
            self.response_time_ms = response_time_ms
        self.error_message = error_message
        self.result = result
        self.completed = True

    def description(self) -> str:
        """Human-readable description of the test"""
        if self.policy_type == RoutingPolicyType.GEOLOCATION:
            return f"Geolocation routing test for {self.domain} from {self.source_location}"
        if self.policy_type == RoutingPolicyType.WEIGHTED:
            return f"Weighted routing test for {self.domain} ({self.iterations} iterations)"
        if self.policy_type == RoutingPolicyType.LATENCY:
            return f"Latency-based routing test for {self.domain}"
        if self.policy_type == RoutingPolicyType.FAILOVER:
            return f"Failover routing test for {self.domain} (primary: {self.primary_endpoint})"
        if self.policy_type == RoutingPolicyType.IP_BASED:
            return f"IP-based routing test for {self.domain}"
        return f"Multivalue answer routing test for {self.domain}"

    def __str__(self):
        result = self.result.value if self.result else "PENDING"
        return (
            f"RoutingPolicyTest({self.test_id}, {self.policy_type.value}, "
            f"{self.domain}, {result}, {self.response_time_ms:.0f}ms)"
        )


@dataclass
class DesignationState:
    """Which record of a discovery set holds the primary/secondary role"""

    primary_id: Optional[str] = None
    secondary_id: Optional[str] = None


@dataclass
class DiscoveredARecord:
    """One resolved address found during A-record discovery"""

    ip_address: str
    source_domain: str = ""
    cloud_provider: Optional[str] = None
    aws_region: Optional[str] = None
    endpoint_name: Optional[str] = None
    ttl: int = 0
    reachable: bool = False
    response_time_ms: int = 0
    suggested_role: str = ROLE_UNASSIGNED
    record_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    # Shared with the owning discovery set; roles live there, not on the record
    _designation: Optional[DesignationState] = field(default=None, repr=False, compare=False)

    @property
    def is_primary(self) -> bool:
        return self._designation is not None and self._designation.primary_id == self.record_id

    @property
    def is_secondary(self) -> bool:
        return self._designation is not None and self._designation.secondary_id == self.record_id

    @property
    def designation(self) -> str:
        if self.is_primary:
            return "Primary"
        if self.is_secondary:
            return "Secondary"
        return "Unassigned"

    @property
    def status(self) -> str:
        if self.reachable and self.response_time_ms < HEALTHY_LATENCY_MS:
            return "Healthy"
        if self.reachable and self.response_time_ms < SLOW_LATENCY_MS:
            return "Slow"
        if self.reachable:
            return "Very Slow"
        return "Unreachable"

    def __str__(self):
        return (
            f"{self.ip_address} from {self.source_domain or 'unknown'} "
            f"({self.aws_region}, {self.cloud_provider}, {self.status}, {self.response_time_ms}ms)"
        )
