# dns_policy_tester/validation.py
# Version: 1.0.0
# Statistical validation of weighted distributions

"""
Weighted distribution validation

A distribution passes only when every expected endpoint's observed share is
within tolerance of its configured share. Compliance is a separate reporting
label derived from the largest deviation.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping

from .constants import (
    COMPLIANT_THRESHOLD,
    DEFAULT_TOLERANCE,
    HIGH_VOLUME_STRICT_THRESHOLD,
    HIGH_VOLUME_STRICT_TOLERANCE,
    HIGH_VOLUME_TOLERANCE,
    PARTIALLY_COMPLIANT_THRESHOLD,
)
from .models import Compliance

logger = logging.getLogger(__name__)

# Float slack so 70/100 against 0.70 is never rejected by rounding
EPSILON = 1e-9


@dataclass
class EndpointDeviation:
    endpoint: str
    count: int
    expected_pct: float
    actual_pct: float
    expected: bool = True

    @property
    def deviation(self) -> float:
        return abs(self.expected_pct - self.actual_pct)


@dataclass
class ValidationReport:
    """Outcome of validate_weighted_distribution"""

    passed: bool
    tolerance: float
    total: int
    deviations: List[EndpointDeviation] = field(default_factory=list)

    @property
    def max_deviation(self) -> float:
        expected = [d.deviation for d in self.deviations if d.expected]
        return max(expected) if expected else 0.0

    @property
    def compliance(self) -> Compliance:
        return classify_compliance(self.max_deviation)

    @property
    def violations(self) -> List[EndpointDeviation]:
        return [d for d in self.deviations if d.expected and d.deviation > self.tolerance + EPSILON]

    def format(self) -> str:
        lines = [
            f"Tolerance: {self.tolerance * 100:.1f}% over {self.total} lookups",
            f"Compliance: {self.compliance.value} (max deviation {self.max_deviation * 100:.2f}%)",
        ]
        for d in self.deviations:
            if not d.expected:
                lines.append(f"  {d.endpoint}: {d.count} hits ({d.actual_pct * 100:.1f}%) - unexpected endpoint")
                continue
            mark = "OK" if d.deviation <= self.tolerance + EPSILON else "OUT OF TOLERANCE"
            lines.append(
                f"  {d.endpoint}: expected {d.expected_pct * 100:.1f}%, actual {d.actual_pct * 100:.1f}% "
                f"({d.count} hits, deviation {d.deviation * 100:.1f}%) {mark}"
            )
        return "\n".join(lines)


def classify_compliance(max_deviation: float) -> Compliance:
    if max_deviation < COMPLIANT_THRESHOLD:
        return Compliance.COMPLIANT
    if max_deviation < PARTIALLY_COMPLIANT_THRESHOLD:
        return Compliance.PARTIALLY_COMPLIANT
    return Compliance.NON_COMPLIANT


def select_tolerance(
    iterations: int,
    high_volume: bool,
    default: float = DEFAULT_TOLERANCE,
    high_volume_tolerance: float = HIGH_VOLUME_TOLERANCE,
    strict_tolerance: float = HIGH_VOLUME_STRICT_TOLERANCE,
    strict_threshold: int = HIGH_VOLUME_STRICT_THRESHOLD,
) -> float:
    """Tolerance for a run: tighter on the high-volume path, tightest above 10k"""
    if not high_volume:
        return default
    if iterations > strict_threshold:
        return strict_tolerance
    return high_volume_tolerance


def validate_weighted_distribution(
    expected_weights: Mapping[str, int],
    actual_distribution: Mapping[str, int],
    total: int,
    tolerance: float = DEFAULT_TOLERANCE,
) -> ValidationReport:
    """
    Compare observed counts against expected weights.

    Args:
        expected_weights: endpoint -> weight, weights must sum to more than zero
        actual_distribution: endpoint -> observed count
        total: denominator for observed shares (successful lookups)
        tolerance: allowed absolute deviation per endpoint, as a fraction

    Returns:
        ValidationReport; passed is True only if every expected endpoint is
        within tolerance
    """
    total_weight = sum(expected_weights.values())
    if total_weight <= 0:
        raise ValueError("Sum of expected weights must be greater than zero")

    deviations: List[EndpointDeviation] = []
    for endpoint, weight in expected_weights.items():
        count = actual_distribution.get(endpoint, 0)
        actual_pct = count / total if total > 0 else 0.0
        deviations.append(EndpointDeviation(endpoint, count, weight / total_weight, actual_pct))

    for endpoint, count in actual_distribution.items():
        if endpoint not in expected_weights:
            actual_pct = count / total if total > 0 else 0.0
            deviations.append(EndpointDeviation(endpoint, count, 0.0, actual_pct, expected=False))

    report = ValidationReport(passed=False, tolerance=tolerance, total=total, deviations=deviations)
    report.passed = not report.violations
    logger.debug(
        f"Validated distribution over {total} lookups: passed={report.passed}, "
        f"max deviation {report.max_deviation:.4f}"
    )
    return report


def summarize_distribution(distribution: Mapping[str, int]) -> Dict[str, float]:
    """endpoint -> share of all counted hits"""
    total = sum(distribution.values())
    if total <= 0:
        return {endpoint: 0.0 for endpoint in distribution}
    return {endpoint: count / total for endpoint, count in distribution.items()}
