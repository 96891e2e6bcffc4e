# dns_policy_tester/policies/ip_based.py
"""IP-based routing: the client's public address selects the endpoint"""

import logging

from ..classification import find_expected_endpoint_for_ip
from ..constants import UNKNOWN_PUBLIC_IP
from ..models import RoutingPolicyType, TestResult
from .base import PolicyOutcome, PolicyProcedure, RunState

logger = logging.getLogger(__name__)


class IPBasedProcedure(PolicyProcedure):
    policy_type = RoutingPolicyType.IP_BASED

    def execute(self, state: RunState) -> PolicyOutcome:
        test = state.test
        state.section(f"IP-based routing test: {test.domain}")

        lookup = self.context.public_ip
        client_ip = lookup.get_public_ip() if lookup is not None else UNKNOWN_PUBLIC_IP
        expected = find_expected_endpoint_for_ip(client_ip, test.ip_range_endpoints)
        state.log(f"Client IP: {client_ip}")
        state.log(f"Expected endpoint: {expected}")

        outcome = self.resolve(test.domain, test.resolver_address)
        fields = {"expected_endpoint": expected, "source_location": client_ip}
        if not outcome.addresses:
            state.log(f"Resolution failed: {outcome.error}")
            return PolicyOutcome(TestResult.FAILED, response_time_ms=outcome.elapsed_ms, fields=fields)

        actual = outcome.addresses[0]
        state.accumulator.increment(self.classify_endpoint(actual))
        state.accumulator.record_success(outcome.elapsed_ms)
        fields["actual_endpoint"] = actual
        state.log(f"Resolved: {', '.join(outcome.addresses)} ({outcome.elapsed_ms:.1f}ms)")

        if actual == expected:
            state.log("Routed to the expected endpoint")
            result = TestResult.PASSED
        else:
            state.log(f"Routed to {actual}, expected {expected}")
            result = TestResult.FAILED
        return PolicyOutcome(result, response_time_ms=outcome.elapsed_ms, fields=fields)
