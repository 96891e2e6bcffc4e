# dns_policy_tester/classification/strategies.py
"""Ordered fallback strategies for region and endpoint detection"""

import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional, Tuple

from .matching import is_ip_in_cidr, subnet_identifier
from .ranges import (
    AWS_OCTET_HEURISTICS,
    AWS_REGION_CIDRS,
    AWS_UNKNOWN_REGION,
    GEO_ENDPOINT_BUCKETS,
    GEO_REGION_BUCKETS,
    KNOWN_SERVICES,
)

logger = logging.getLogger(__name__)

# Each strategy answers (value, matched); matched=False passes to the next one
StrategyResult = Tuple[Optional[str], bool]
NO_MATCH: StrategyResult = (None, False)

GeoLookup = Callable[[str], str]


def _bucket(label: str, buckets) -> Optional[str]:
    for fragments, value in buckets:
        if any(fragment in label for fragment in fragments):
            return value
    return None


class RegionStrategy(ABC):
    """Base class for region detection strategies"""

    @abstractmethod
    def detect(self, ip: str, provider: Optional[str]) -> StrategyResult:
        """Try to determine the region of ip"""
        pass

    @abstractmethod
    def name(self) -> str:
        """Get strategy name"""
        pass


class CidrTableRegion(RegionStrategy):
    """Match against the AWS region CIDR table, first block wins"""

    def detect(self, ip: str, provider: Optional[str]) -> StrategyResult:
        for region, cidrs in AWS_REGION_CIDRS.items():
            for cidr in cidrs:
                if is_ip_in_cidr(ip, cidr):
                    logger.debug(f"IP {ip} detected in AWS region {region} (CIDR: {cidr})")
                    return region, True
        return NO_MATCH

    def name(self) -> str:
        return "cidr_table"


class AwsOctetHeuristicRegion(RegionStrategy):
    """First/second octet hints for AWS addresses outside the CIDR table"""

    def detect(self, ip: str, provider: Optional[str]) -> StrategyResult:
        if provider != "AWS":
            return NO_MATCH

        parts = ip.split(".")
        try:
            first, second = int(parts[0]), int(parts[1])
        except (IndexError, ValueError):
            return AWS_UNKNOWN_REGION, True

        for octet, minimum, region in AWS_OCTET_HEURISTICS:
            if first == octet and second >= minimum:
                logger.debug(f"IP {ip} is AWS outside known ranges, heuristic: {region}")
                return region, True
        return AWS_UNKNOWN_REGION, True

    def name(self) -> str:
        return "aws_octet_heuristic"


class ProviderRegion(RegionStrategy):
    """Non-AWS providers get a provider-level pseudo region"""

    def detect(self, ip: str, provider: Optional[str]) -> StrategyResult:
        if provider and provider != "AWS":
            return f"{provider.lower()}-region", True
        return NO_MATCH

    def name(self) -> str:
        return "provider"


class GeolocationRegion(RegionStrategy):
    """Bucket a coarse IP-geolocation label into a default region"""

    def __init__(self, geo_lookup: GeoLookup):
        self.geo_lookup = geo_lookup

    def detect(self, ip: str, provider: Optional[str]) -> StrategyResult:
        region = _bucket(self.geo_lookup(ip), GEO_REGION_BUCKETS)
        if region:
            return region, True
        return NO_MATCH

    def name(self) -> str:
        return "geolocation"


class EndpointStrategy(ABC):
    """Base class for endpoint-id synthesis strategies"""

    @abstractmethod
    def identify(self, ip: str, provider: Optional[str], region: str) -> StrategyResult:
        """Try to name the endpoint behind ip"""
        pass

    @abstractmethod
    def name(self) -> str:
        """Get strategy name"""
        pass


class KnownServiceEndpoint(EndpointStrategy):
    """Public resolvers and the VPC resolver have fixed names"""

    def identify(self, ip: str, provider: Optional[str], region: str) -> StrategyResult:
        service = KNOWN_SERVICES.get(ip)
        return (service, True) if service else NO_MATCH

    def name(self) -> str:
        return "known_service"


class ProviderEndpoint(EndpointStrategy):
    """provider-region-subnet"""

    def identify(self, ip: str, provider: Optional[str], region: str) -> StrategyResult:
        if not provider:
            return NO_MATCH
        return f"{provider.lower()}-{region}-{subnet_identifier(ip)}", True

    def name(self) -> str:
        return "provider"


class GeolocationEndpoint(EndpointStrategy):
    """us-/eu-/asia-endpoint-subnet from a geolocation label"""

    def __init__(self, geo_lookup: GeoLookup):
        self.geo_lookup = geo_lookup

    def identify(self, ip: str, provider: Optional[str], region: str) -> StrategyResult:
        bucket = _bucket(self.geo_lookup(ip), GEO_ENDPOINT_BUCKETS)
        if bucket:
            return f"{bucket}-{subnet_identifier(ip)}", True
        return NO_MATCH

    def name(self) -> str:
        return "geolocation"


class RawAddressEndpoint(EndpointStrategy):
    """Last resort: endpoint-a-b-c-d"""

    def identify(self, ip: str, provider: Optional[str], region: str) -> StrategyResult:
        return f"endpoint-{ip.replace('.', '-')}", True

    def name(self) -> str:
        return "raw_address"
