# dns_policy_tester/policies/multivalue.py
"""Multivalue answer routing: several healthy addresses in one answer"""

from ..models import RoutingPolicyType, TestResult
from .base import PolicyOutcome, PolicyProcedure, RunState


class MultivalueProcedure(PolicyProcedure):
    policy_type = RoutingPolicyType.MULTIVALUE_ANSWER

    def execute(self, state: RunState) -> PolicyOutcome:
        test = state.test
        state.section(f"Multivalue answer test: {test.domain}")

        outcome = self.resolve(test.domain, test.resolver_address)
        addresses = outcome.addresses
        for address in addresses:
            state.accumulator.increment(self.classify_endpoint(address))
        if addresses:
            state.accumulator.record_success(outcome.elapsed_ms)
        else:
            state.accumulator.record_failure()
        state.log(f"Returned {len(addresses)} addresses: {', '.join(addresses) or outcome.error}")

        if test.expected_endpoints:
            missing = [e for e in test.expected_endpoints if e not in addresses]
            state.log(f"Missing expected endpoints: {', '.join(missing)}" if missing
                      else "All expected endpoints returned")

        if len(addresses) >= 2:
            result = TestResult.PASSED
        elif len(addresses) == 1:
            result = TestResult.PARTIAL
            state.log("Only one address returned")
        else:
            result = TestResult.FAILED
        fields = {"actual_endpoint": addresses[0]} if addresses else {}
        return PolicyOutcome(result, response_time_ms=outcome.elapsed_ms, fields=fields)
