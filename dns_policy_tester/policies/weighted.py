# dns_policy_tester/policies/weighted.py
"""Weighted routing: repeated lookups validated against expected weights"""

import logging

from ..classification import DEFAULT_ENDPOINT, find_expected_endpoint_for_ip
from ..models import RoutingPolicyType, TestResult
from ..validation import select_tolerance, validate_weighted_distribution
from .base import PolicyOutcome, PolicyProcedure, RunState

logger = logging.getLogger(__name__)

HIGH_VOLUME_PROGRESS_EVERY = 1000


class WeightedProcedure(PolicyProcedure):
    """
    Standard path: host resolution with a 5-100 ms delay between lookups.
    High-volume path (more than 5000 iterations): dig against the configured
    resolver with a 1-5 ms delay, a rolling tally and a raw sample.
    """

    policy_type = RoutingPolicyType.WEIGHTED

    def endpoint_key(self, ip: str, expected_weights) -> str:
        """Count an address under its expected-weight key when one matches it"""
        if ip in expected_weights:
            return ip
        matched = find_expected_endpoint_for_ip(ip, {key: key for key in expected_weights})
        if matched != DEFAULT_ENDPOINT:
            return matched
        return self.classify_endpoint(ip)

    def execute(self, state: RunState) -> PolicyOutcome:
        test = state.test
        settings = self.settings
        high_volume = test.iterations > settings.high_volume_threshold

        def endpoint_for(ip):
            return self.endpoint_key(ip, test.expected_weights)

        if high_volume:
            delay = settings.high_volume_delay_for(test.iterations)
            state.section(f"High-volume weighted test: {test.domain}")
            resolver = test.resolver_address or self.context.dig.default_resolver or "system default"
            state.log(f"Resolver: {resolver}, {test.iterations} queries, {delay * 1000:.0f}ms apart")
            self.resolution_loop(
                state, test.iterations, delay, endpoint_for,
                backend=self.context.dig, progress_every=HIGH_VOLUME_PROGRESS_EVERY,
            )
        else:
            delay = settings.standard_delay(test.iterations)
            state.section(f"Weighted test: {test.domain}")
            state.log(f"{test.iterations} queries, {delay * 1000:.0f}ms apart")
            self.resolution_loop(state, test.iterations, delay, endpoint_for)

        snapshot = state.accumulator.snapshot()
        state.log(
            f"Lookups: {snapshot.successes} succeeded, {snapshot.failures} failed, "
            f"average {snapshot.average_response_ms:.1f}ms"
        )

        if snapshot.successes == 0:
            state.log("No lookup succeeded; shares are computed over the requested iterations")

        tolerance = select_tolerance(
            test.iterations,
            high_volume,
            settings.default_tolerance,
            settings.high_volume_tolerance,
            settings.strict_tolerance,
            settings.strict_threshold,
        )
        report = validate_weighted_distribution(
            test.expected_weights, snapshot.distribution, snapshot.successes or test.iterations, tolerance
        )
        state.section("Distribution")
        state.log(report.format())

        if high_volume and snapshot.raw_sample:
            state.section(f"First {len(snapshot.raw_sample)} queries")
            for line in snapshot.raw_sample:
                state.log(line)

        result = TestResult.PASSED if report.passed else TestResult.FAILED
        return PolicyOutcome(
            result,
            fields={"metadata": {"compliance": report.compliance.value, "tolerance": f"{tolerance:.2f}"}},
        )
