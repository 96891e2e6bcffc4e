# dns_policy_tester/policies/geolocation.py
"""
Geolocation routing

With a vantage-point provider (Tor) the test resolves once per vantage point,
rotating between rounds. Without one it runs a plain resolution loop and the
dig-driven verification protocol: default location, client-subnet support,
per-name-server subnet queries, public resolver comparison, propagation.
"""

import logging

from ..constants import GEOLOCATION_COMPARISON_RESOLVERS, RESOLVER_IDENTITY_NAME, UNKNOWN_LOCATION
from ..models import RoutingPolicyType, TestResult
from .base import PolicyOutcome, RunState, most_common, unique_answers
from .diagnostics import DiagnosticProcedure

logger = logging.getLogger(__name__)


class GeolocationProcedure(DiagnosticProcedure):
    policy_type = RoutingPolicyType.GEOLOCATION

    def execute(self, state: RunState) -> PolicyOutcome:
        provider = self.context.vantage_provider
        if self.settings.use_vantage_points and provider is not None:
            if provider.is_available():
                return self.run_vantage_rounds(state)
            logger.warning("Vantage point provider unavailable, using resolver-based protocol")
        return self.run_protocol(state)

    # ------------------------------------------------------------------
    # Vantage point rounds
    # ------------------------------------------------------------------

    def run_vantage_rounds(self, state: RunState) -> PolicyOutcome:
        test = state.test
        provider = self.context.vantage_provider
        rounds = test.num_locations or self.settings.vantage_rounds
        state.section(f"Geolocation test via vantage points: {test.domain} ({rounds} rounds)")

        answers = []
        locations = []
        for i in range(rounds):
            state.checkpoint()
            vantage_point = provider.current_vantage_point_id()
            location = self.locate(vantage_point)
            locations.append(location)
            address = provider.resolve_through_vantage_point(test.domain)

            if address:
                region = self.context.classifier.classify(address).region
                state.accumulator.increment(self.classify_endpoint(address))
                state.accumulator.record_success(0.0, f"Round {i + 1}: {vantage_point} -> {address}")
                answers.append([address])
                state.log(f"Round {i + 1}: exit {vantage_point} ({location}) -> {address} ({region})")
            else:
                state.accumulator.record_failure(f"Round {i + 1}: {vantage_point} -> no answer")
                state.log(f"Round {i + 1}: exit {vantage_point} ({location}) -> no answer")

            if i + 1 < rounds:
                if not provider.rotate_vantage_point():
                    state.log("  could not rotate vantage point")
                state.pause(self.settings.vantage_settle_delay)

        distinct = unique_answers(answers)
        state.log(f"Distinct answers: {len(distinct)}")
        if len(distinct) > 1:
            result = TestResult.PASSED
            state.log("Answers vary by vantage point: geolocation routing is active")
        elif len(distinct) == 1:
            result = TestResult.PARTIAL
            state.log("Every vantage point received the same answer")
        else:
            result = TestResult.FAILED
            state.log("No vantage point received an answer")

        known = [loc for loc in locations if loc != UNKNOWN_LOCATION]
        fields = {"source_location": "; ".join(known) if known else UNKNOWN_LOCATION}
        actual = most_common(state.accumulator.snapshot().distribution)
        if actual:
            fields["actual_endpoint"] = actual
        return PolicyOutcome(result, response_time_ms=0.0, fields=fields)

    # ------------------------------------------------------------------
    # Resolver-based protocol
    # ------------------------------------------------------------------

    def run_protocol(self, state: RunState) -> PolicyOutcome:
        test = state.test
        dig = self.context.dig

        state.section(f"Plain resolution: {test.domain} ({test.iterations} queries)")
        self.resolution_loop(
            state, test.iterations, self.settings.standard_delay(test.iterations), self.classify_endpoint
        )
        snapshot = state.accumulator.snapshot()
        state.log(f"{snapshot.successes} succeeded, {snapshot.failures} failed")
        for endpoint, count in snapshot.distribution.items():
            state.log(f"  {endpoint}: {count}")

        state.section("Step 1: default location")
        default_answer = dig.query_full(test.domain)
        has_default = default_answer.has_answer
        state.log(
            f"Default record: {', '.join(default_answer.addresses)}" if has_default
            else "No answer without location hints; a default location may be missing"
        )
        identities = []
        for i in range(self.settings.identity_rounds):
            state.checkpoint()
            identities.extend(dig.query_txt(RESOLVER_IDENTITY_NAME))
            if i + 1 < self.settings.identity_rounds:
                state.pause(self.settings.identity_delay)
        distinct_identities = sorted(set(identities))
        state.log(f"Resolver identities seen: {', '.join(distinct_identities) or 'none'}")

        state.section("Step 2: client-subnet support")
        ecs_supported = self.probe_client_subnet(state)

        state.section("Step 3: authoritative queries with client subnet")
        client_ip = self.client_ip()
        client_location = self.locate(client_ip)
        state.log(f"Client: {client_ip} ({client_location})")
        servers = self.name_servers(state, test.domain)
        geo_results = self.query_servers_with_subnet(state, test.domain, servers, client_ip)
        answered = [r for r in geo_results if r.addresses]
        if answered:
            resolved = answered[0].addresses[0]
            state.log(f"Answer location: {resolved} ({self.locate(resolved)})")

        state.section("Step 4: public resolver comparison")
        public = self.query_public_resolvers(state, test.domain, GEOLOCATION_COMPARISON_RESOLVERS)
        distinct_public = unique_answers([r.addresses for r in public if r.addresses])
        state.log(f"Distinct public resolver answers: {len(distinct_public)}")

        state.section("Step 5: propagation")
        self.propagation_consistent(state, geo_results)

        state.section("Step 6: analysis")
        fresh = [r.server for r in answered if r.fresh]
        if fresh:
            state.log(f"Fresh (uncached) answers from: {', '.join(fresh)}")

        if not ecs_supported and distinct_identities:
            resolver_location = self.locate(distinct_identities[0])
            if resolver_location != client_location:
                state.log(
                    f"Warning: resolver at {resolver_location} does not forward the client subnet; "
                    f"answers follow the resolver's location, not the client's ({client_location})"
                )

        expected_seen = True
        if test.expected_region:
            regions = {
                self.context.classifier.classify(address).region
                for r in answered + public for address in r.addresses
            }
            expected_seen = test.expected_region in regions
            state.log(
                f"Expected region {test.expected_region}: {'observed' if expected_seen else 'not observed'}"
            )

        if has_default and ecs_supported and answered and len(distinct_public) > 1:
            result = TestResult.PASSED
            state.log("Geolocation routing verified")
        elif answered:
            result = TestResult.PARTIAL
            state.log("Geolocation answers received but verification incomplete")
        else:
            result = TestResult.FAILED
            state.log("No authoritative answers received")
        if result == TestResult.PASSED and not expected_seen:
            result = TestResult.PARTIAL

        fields = {"source_location": client_location}
        actual = most_common(state.accumulator.snapshot().distribution)
        if actual:
            fields["actual_endpoint"] = actual
        return PolicyOutcome(result, fields=fields)
