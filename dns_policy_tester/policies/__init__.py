# dns_policy_tester/policies/__init__.py
"""Routing-policy test procedures"""

from typing import Dict, Type

from ..models import RoutingPolicyType
from .base import (
    CancellationToken,
    PolicyContext,
    PolicyOutcome,
    PolicyProcedure,
    PolicySettings,
    RunState,
)
from .failover import FailoverProcedure
from .geolocation import GeolocationProcedure
from .ip_based import IPBasedProcedure
from .latency import LatencyProcedure
from .multivalue import MultivalueProcedure
from .suite import generate_test_suite
from .weighted import WeightedProcedure

PROCEDURES: Dict[RoutingPolicyType, Type[PolicyProcedure]] = {
    RoutingPolicyType.WEIGHTED: WeightedProcedure,
    RoutingPolicyType.GEOLOCATION: GeolocationProcedure,
    RoutingPolicyType.LATENCY: LatencyProcedure,
    RoutingPolicyType.FAILOVER: FailoverProcedure,
    RoutingPolicyType.IP_BASED: IPBasedProcedure,
    RoutingPolicyType.MULTIVALUE_ANSWER: MultivalueProcedure,
}


def create_procedure(policy_type: RoutingPolicyType, context: PolicyContext) -> PolicyProcedure:
    """Factory function to create a procedure for a policy type"""
    try:
        procedure_class = PROCEDURES[policy_type]
    except KeyError:
        raise ValueError(f"Unknown policy type: {policy_type}")
    return procedure_class(context)


__all__ = [
    "CancellationToken",
    "PolicyContext",
    "PolicyOutcome",
    "PolicyProcedure",
    "PolicySettings",
    "RunState",
    "FailoverProcedure",
    "GeolocationProcedure",
    "IPBasedProcedure",
    "LatencyProcedure",
    "MultivalueProcedure",
    "WeightedProcedure",
    "PROCEDURES",
    "create_procedure",
    "generate_test_suite",
]
