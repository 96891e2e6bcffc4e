# dns_policy_tester/policies/suite.py
"""One ready-made test per policy type for a base domain"""

from typing import List

from ..models import RoutingPolicyTest, RoutingPolicyType


def generate_test_suite(base_domain: str) -> List[RoutingPolicyTest]:
    """
    Build the standard suite for base_domain.

    Each policy is expected on a conventional subdomain: geo., weighted.,
    latency., ipbased., failover. (with primary./secondary. endpoints) and
    multi.
    """
    base_domain = base_domain.strip().rstrip(".")
    return [
        RoutingPolicyTest(RoutingPolicyType.GEOLOCATION, f"geo.{base_domain}"),
        RoutingPolicyTest(
            RoutingPolicyType.WEIGHTED,
            f"weighted.{base_domain}",
            iterations=100,
            expected_weights={"endpoint-a": 70, "endpoint-b": 30},
        ),
        RoutingPolicyTest(RoutingPolicyType.LATENCY, f"latency.{base_domain}"),
        RoutingPolicyTest(RoutingPolicyType.IP_BASED, f"ipbased.{base_domain}"),
        RoutingPolicyTest(
            RoutingPolicyType.FAILOVER,
            f"failover.{base_domain}",
            primary_endpoint=f"primary.{base_domain}",
            secondary_endpoint=f"secondary.{base_domain}",
        ),
        RoutingPolicyTest(RoutingPolicyType.MULTIVALUE_ANSWER, f"multi.{base_domain}"),
    ]
