# dns_policy_tester/policies/failover.py
"""Failover routing: one lookup compared against the designated addresses"""

import logging
from typing import List, Optional

from ..classification import is_ipv4
from ..models import RoutingPolicyType, TestResult
from .base import PolicyOutcome, PolicyProcedure, RunState

logger = logging.getLogger(__name__)


class FailoverProcedure(PolicyProcedure):
    policy_type = RoutingPolicyType.FAILOVER

    def designated_addresses(self, state: RunState, endpoint: Optional[str]) -> List[str]:
        """The endpoint itself if it is an address, else its resolved addresses"""
        if not endpoint:
            return []
        if is_ipv4(endpoint):
            return [endpoint]
        outcome = self.resolve(endpoint, state.test.resolver_address)
        if not outcome.ok:
            state.log(f"Could not resolve designated endpoint {endpoint}: {outcome.error}")
            return []
        return outcome.addresses

    def execute(self, state: RunState) -> PolicyOutcome:
        test = state.test
        state.section(f"Failover test: {test.domain}")

        outcome = self.resolve(test.domain, test.resolver_address)
        if not outcome.addresses:
            state.log(f"Resolution failed: {outcome.error}")
            return PolicyOutcome(TestResult.FAILED, response_time_ms=outcome.elapsed_ms)

        returned = outcome.addresses
        for address in returned:
            state.accumulator.increment(self.classify_endpoint(address))
        state.accumulator.record_success(outcome.elapsed_ms)
        state.log(f"Returned: {', '.join(returned)} ({outcome.elapsed_ms:.1f}ms)")
        fields = {"actual_endpoint": returned[0]}

        primary = set(self.designated_addresses(state, test.primary_endpoint))
        secondary = set(self.designated_addresses(state, test.secondary_endpoint))
        state.log(f"Primary: {test.primary_endpoint} {sorted(primary)}")
        state.log(f"Secondary: {test.secondary_endpoint} {sorted(secondary)}")

        if not primary or not secondary:
            # Both sides must be known before an answer can be classified
            state.log("Primary and secondary addresses not both known; reporting the raw answer")
            fields["failover_triggered"] = False
            return PolicyOutcome(TestResult.PARTIAL, response_time_ms=outcome.elapsed_ms, fields=fields)

        has_primary = bool(primary.intersection(returned))
        has_secondary = bool(secondary.intersection(returned))

        if has_primary and has_secondary:
            result = TestResult.PARTIAL
            state.log("Both primary and secondary returned; failover state is ambiguous")
        elif has_primary:
            result = TestResult.PASSED
            fields["failover_triggered"] = False
            state.log("Primary is serving; failover not triggered")
        elif has_secondary:
            result = TestResult.PASSED
            fields["failover_triggered"] = True
            state.log("Secondary is serving; failover triggered")
        else:
            result = TestResult.FAILED
            state.log("Neither designated endpoint was returned")

        fields["expected_endpoint"] = test.primary_endpoint
        return PolicyOutcome(result, response_time_ms=outcome.elapsed_ms, fields=fields)
