# dns_policy_tester/policies/latency.py
"""Latency-based routing verification protocol"""

import logging

from ..constants import LATENCY_COMPARISON_RESOLVERS, MYADDR_TXT_NAME
from ..models import RoutingPolicyType, TestResult
from .base import PolicyOutcome, RunState, most_common
from .diagnostics import DiagnosticProcedure

logger = logging.getLogger(__name__)


class LatencyProcedure(DiagnosticProcedure):
    policy_type = RoutingPolicyType.LATENCY

    def probe_anycast(self, state: RunState) -> bool:
        """Repeated identity queries; rotating answers mean an anycast resolver pool"""
        seen = []
        rounds = self.settings.anycast_rounds
        for i in range(rounds):
            state.checkpoint()
            lines = self.context.dig.query_txt(MYADDR_TXT_NAME)
            answer = lines[0] if lines else ""
            state.log(f"  Query {i + 1}: {answer or 'no answer'}")
            if answer:
                seen.append(answer)
            if i + 1 < rounds:
                state.pause(self.settings.anycast_delay)
        supported = len(set(seen)) > 1
        state.log(f"Anycast resolver rotation: {'YES' if supported else 'NO'} ({len(set(seen))} distinct)")
        return supported

    def execute(self, state: RunState) -> PolicyOutcome:
        test = state.test

        state.section(f"Latency routing test: {test.domain}")
        state.log("Step 1: anycast resolver detection")
        anycast = self.probe_anycast(state)

        state.section("Step 2: client-subnet support")
        client_ip = self.client_ip()
        state.log(f"Client: {client_ip} ({self.locate(client_ip)})")
        ecs_supported = self.probe_client_subnet(state)

        state.section("Step 3: authoritative name servers")
        servers = self.name_servers(state, test.domain)

        state.section("Step 4: per-server latency with client subnet")
        results = self.query_servers_with_subnet(state, test.domain, servers, client_ip)

        state.section("Step 5: public resolver comparison")
        results += self.query_public_resolvers(state, test.domain, LATENCY_COMPARISON_RESOLVERS)

        state.section("Step 6: analysis")
        answered = [r for r in results if r.addresses]
        fields = {}
        if answered:
            fastest = min(answered, key=lambda r: r.elapsed_ms)
            state.log(f"Fastest: {fastest.server} ({fastest.elapsed_ms:.1f}ms) -> {', '.join(fastest.addresses)}")
            fields["actual_endpoint"] = self.classify_endpoint(fastest.addresses[0])

        if test.region_endpoints:
            regions = {
                self.context.classifier.classify(address).region: address
                for r in answered for address in r.addresses
            }
            for region, endpoint in test.region_endpoints.items():
                state.log(f"  {region} ({endpoint}): {'answered' if region in regions else 'not observed'}")

        if ecs_supported and anycast and answered:
            result = TestResult.PASSED
            state.log("Latency routing verified")
        elif answered:
            result = TestResult.PARTIAL
            state.log("Answers received but resolver capabilities limit verification")
        else:
            result = TestResult.FAILED
            state.log("No server answered")

        if "actual_endpoint" not in fields:
            actual = most_common(state.accumulator.snapshot().distribution)
            if actual:
                fields["actual_endpoint"] = actual
        return PolicyOutcome(result, fields=fields)
