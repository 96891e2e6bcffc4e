# dns_policy_tester/classification/__init__.py
"""Address classification against cloud-provider and region tables"""

from .classifier import AddressClassifier, Classification, classify, detect_provider
from .matching import (
    find_expected_endpoint_for_ip,
    is_ip_in_cidr,
    is_ip_in_range,
    is_ipv4,
    is_same_subnet,
    matches_wildcard,
)
from .ranges import AWS_REGION_NAMES, DEFAULT_ENDPOINT, UNKNOWN_REGION

__all__ = [
    "AddressClassifier",
    "Classification",
    "classify",
    "detect_provider",
    "find_expected_endpoint_for_ip",
    "is_ip_in_cidr",
    "is_ip_in_range",
    "is_ipv4",
    "is_same_subnet",
    "matches_wildcard",
    "AWS_REGION_NAMES",
    "DEFAULT_ENDPOINT",
    "UNKNOWN_REGION",
]
