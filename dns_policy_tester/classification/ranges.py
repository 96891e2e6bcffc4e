# dns_policy_tester/classification/ranges.py
"""
Static address tables used by the classifier.

The tables are built once at import time and exposed as read-only mappings
of tuples, so every concurrent test run can share them safely.
"""

from types import MappingProxyType
from typing import Mapping, Tuple

# AWS region -> CIDR blocks (subset of commonly used ranges)
AWS_REGION_CIDRS: Mapping[str, Tuple[str, ...]] = MappingProxyType(
    {
        "us-east-1": (
            "3.208.0.0/12",
            "3.224.0.0/12",
            "52.0.0.0/11",
            "54.144.0.0/14",
            "54.208.0.0/13",
            "54.224.0.0/15",
        ),
        "us-west-1": (
            "13.52.0.0/14",
            "13.56.0.0/14",
            "50.18.0.0/16",
            "54.153.0.0/16",
            "54.183.0.0/16",
            "54.241.0.0/16",
        ),
        "us-west-2": (
            "34.192.0.0/12",
            "35.160.0.0/13",
            "52.24.0.0/14",
            "52.32.0.0/15",
            "54.68.0.0/14",
            "54.244.0.0/16",
        ),
        "eu-west-1": (
            "18.200.0.0/16",
            "34.240.0.0/12",
            "52.16.0.0/15",
            "52.48.0.0/14",
            "54.154.0.0/16",
            "54.170.0.0/15",
        ),
        "eu-central-1": (
            "3.64.0.0/12",
            "18.184.0.0/15",
            "35.156.0.0/14",
            "52.28.0.0/16",
            "52.57.0.0/17",
            "18.192.0.0/12",
        ),
        "ap-southeast-1": (
            "13.212.0.0/15",
            "13.228.0.0/15",
            "13.250.0.0/15",
            "52.74.0.0/16",
            "54.151.0.0/17",
            "54.169.0.0/16",
        ),
        "ap-northeast-1": (
            "13.112.0.0/14",
            "13.230.0.0/15",
            "18.176.0.0/13",
            "52.68.0.0/15",
            "54.64.0.0/15",
            "54.92.0.0/17",
        ),
    }
)

AWS_REGION_NAMES: Mapping[str, str] = MappingProxyType(
    {
        "us-east-1": "US East (N. Virginia)",
        "us-west-1": "US West (N. California)",
        "us-west-2": "US West (Oregon)",
        "eu-west-1": "Europe (Ireland)",
        "eu-central-1": "Europe (Frankfurt)",
        "ap-southeast-1": "Asia Pacific (Singapore)",
        "ap-northeast-1": "Asia Pacific (Tokyo)",
    }
)

# Cloud provider -> dotted address prefixes
CLOUD_PROVIDER_PREFIXES: Mapping[str, Tuple[str, ...]] = MappingProxyType(
    {
        "AWS": ("3.", "13.", "15.", "18.", "34.", "35.", "50.", "52.", "54."),
        "Google": ("8.8.", "8.34.", "34.64.", "34.65.", "34.66.", "34.67.", "35.184.", "35.185."),
        "Microsoft": ("13.64.", "13.65.", "13.66.", "13.67.", "20.36.", "20.37.", "40.64.", "52.224."),
        "Cloudflare": ("1.1.", "1.0.", "104.16.", "104.17.", "172.64.", "172.65.", "173.245.", "188.114."),
    }
)


def _ordered_prefixes() -> Tuple[Tuple[str, str], ...]:
    """Flatten the provider table, longest prefixes first so 13.64. beats 13."""
    pairs = [
        (prefix, provider)
        for provider, prefixes in CLOUD_PROVIDER_PREFIXES.items()
        for prefix in prefixes
    ]
    # sorted() is stable, so equal-length prefixes keep table order
    return tuple(sorted(pairs, key=lambda pair: -len(pair[0])))


PROVIDER_PREFIX_ORDER: Tuple[Tuple[str, str], ...] = _ordered_prefixes()

# (first octet, minimum second octet, region) heuristics for AWS addresses
AWS_OCTET_HEURISTICS: Tuple[Tuple[int, int, str], ...] = (
    (3, 208, "us-east-1"),
    (34, 192, "us-west-2"),
    (18, 200, "eu-west-1"),
    (13, 112, "ap-northeast-1"),
)

# Well-known service addresses -> fixed endpoint names
KNOWN_SERVICES: Mapping[str, str] = MappingProxyType(
    {
        "8.8.8.8": "google-dns",
        "8.8.4.4": "google-dns",
        "1.1.1.1": "cloudflare-dns",
        "1.0.0.1": "cloudflare-dns",
        "9.9.9.9": "quad9-dns",
        "149.112.112.112": "quad9-dns",
        "169.254.169.253": "aws-vpc-dns",
    }
)

# Geolocation label fragment -> default region / endpoint bucket
GEO_REGION_BUCKETS: Tuple[Tuple[Tuple[str, ...], str], ...] = (
    (("US",), "us-east-1"),
    (("EU", "Europe"), "eu-west-1"),
    (("Asia", "AP"), "ap-southeast-1"),
)
GEO_ENDPOINT_BUCKETS: Tuple[Tuple[Tuple[str, ...], str], ...] = (
    (("US",), "us-endpoint"),
    (("EU",), "eu-endpoint"),
    (("Asia",), "asia-endpoint"),
)

UNKNOWN_REGION = "unknown-region"
AWS_UNKNOWN_REGION = "aws-unknown-region"
DEFAULT_ENDPOINT = "default-endpoint"
