# dns_policy_tester/policies/diagnostics.py
"""Diagnostic query steps shared by the geolocation and latency protocols"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from ..constants import (
    FALLBACK_NAME_SERVERS,
    FRESH_RESPONSE_TTL,
    MYADDR_TXT_NAME,
    UNKNOWN_LOCATION,
    UNKNOWN_PUBLIC_IP,
)
from .base import PolicyProcedure, RunState, unique_answers

logger = logging.getLogger(__name__)


@dataclass
class ServerAnswer:
    """One direct query to an authoritative or public resolver"""

    server: str
    addresses: List[str] = field(default_factory=list)
    elapsed_ms: float = 0.0
    ttl: Optional[int] = None
    error: Optional[str] = None

    @property
    def fresh(self) -> bool:
        return self.ttl == FRESH_RESPONSE_TTL


class DiagnosticProcedure(PolicyProcedure):
    """Procedures that follow a dig-driven multi-step protocol"""

    def client_ip(self) -> str:
        if self.context.public_ip is None:
            return UNKNOWN_PUBLIC_IP
        return self.context.public_ip.get_public_ip()

    def locate(self, ip: str) -> str:
        if self.context.geolocator is None or not ip or ip == UNKNOWN_PUBLIC_IP:
            return UNKNOWN_LOCATION
        return self.context.geolocator.locate(ip)

    def probe_client_subnet(self, state: RunState) -> bool:
        """A resolver forwarding client-subnet shows a second TXT line"""
        lines = self.context.dig.query_txt(MYADDR_TXT_NAME)
        for line in lines:
            state.log(f"  {line}")
        supported = len(lines) >= 2
        state.log(f"Client-subnet (ECS) support: {'YES' if supported else 'NO'}")
        return supported

    def name_servers(self, state: RunState, domain: str) -> List[str]:
        servers = self.context.dig.query_ns(domain)
        if not servers:
            servers = list(FALLBACK_NAME_SERVERS)
            state.log(f"No NS records found, using fallback {', '.join(servers)}")
        else:
            state.log(f"Authoritative name servers: {', '.join(servers)}")
        return servers

    def query_servers_with_subnet(
        self, state: RunState, domain: str, servers: Sequence[str], client_ip: str
    ) -> List[ServerAnswer]:
        results = []
        for server in servers:
            state.checkpoint()
            if client_ip and client_ip != UNKNOWN_PUBLIC_IP:
                answer = self.context.dig.query_with_subnet(domain, server, client_ip)
            else:
                answer = self.context.dig.query_full(domain, server)
            result = ServerAnswer(server, answer.addresses, answer.elapsed_ms,
                                  answer.ttl if answer.has_answer else None, answer.error)
            results.append(result)
            self.record_answer(state, result)
        return results

    def query_public_resolvers(self, state: RunState, domain: str, resolvers: Sequence[str]) -> List[ServerAnswer]:
        results = []
        for resolver in resolvers:
            state.checkpoint()
            outcome = self.resolve(domain, resolver, backend=self.context.dig)
            result = ServerAnswer(resolver, outcome.addresses, outcome.elapsed_ms, error=outcome.error)
            results.append(result)
            self.record_answer(state, result)
        return results

    def record_answer(self, state: RunState, result: ServerAnswer):
        """Log one answer and count its addresses in the distribution"""
        if result.error or not result.addresses:
            state.accumulator.record_failure()
            state.log(f"  {result.server}: no answer ({result.error or 'empty'})")
            return

        state.accumulator.record_success(result.elapsed_ms)
        for address in result.addresses:
            state.accumulator.increment(self.classify_endpoint(address))
        ttl = ""
        if result.ttl is not None:
            ttl = f", TTL {result.ttl}{' (fresh)' if result.fresh else ''}"
        state.log(f"  {result.server}: {', '.join(result.addresses)} ({result.elapsed_ms:.1f}ms{ttl})")

    @staticmethod
    def propagation_consistent(state: RunState, results: Sequence[ServerAnswer]) -> bool:
        answered = [r.addresses for r in results if r.addresses]
        distinct = unique_answers(answered)
        consistent = len(distinct) <= 1
        state.log(
            f"Propagation across {len(answered)} servers: "
            f"{'consistent' if consistent else f'{len(distinct)} different answers'}"
        )
        return consistent
