# dns_policy_tester/classification/classifier.py
"""
Address classification

Maps an IPv4 address to (cloud provider, approximate region, endpoint id)
by running an ordered list of strategies. The tables are static, so without
a geolocation lookup the result for a given address never changes. When a
geolocation lookup is configured its answers are memoised per address.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from .ranges import PROVIDER_PREFIX_ORDER, UNKNOWN_REGION
from .strategies import (
    AwsOctetHeuristicRegion,
    CidrTableRegion,
    EndpointStrategy,
    GeolocationEndpoint,
    GeolocationRegion,
    KnownServiceEndpoint,
    ProviderEndpoint,
    ProviderRegion,
    RawAddressEndpoint,
    RegionStrategy,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Classification:
    """Result of classifying one address"""

    provider: Optional[str]
    region: str
    endpoint_id: str


def detect_provider(ip: str) -> Optional[str]:
    """Return the cloud provider owning ip's prefix, or None"""
    for prefix, provider in PROVIDER_PREFIX_ORDER:
        if ip.startswith(prefix):
            return provider
    return None


class AddressClassifier:
    """Runs the region and endpoint strategy chains for an address"""

    def __init__(self, geo_lookup: Optional[Callable[[str], str]] = None):
        self._geo_cache: Dict[str, str] = {}
        self._geo_lock = threading.Lock()
        self._geo_lookup = geo_lookup

        self.region_strategies: List[RegionStrategy] = [
            CidrTableRegion(),
            AwsOctetHeuristicRegion(),
            ProviderRegion(),
        ]
        self.endpoint_strategies: List[EndpointStrategy] = [
            KnownServiceEndpoint(),
            ProviderEndpoint(),
        ]
        if geo_lookup is not None:
            self.region_strategies.append(GeolocationRegion(self._cached_geo))
            self.endpoint_strategies.append(GeolocationEndpoint(self._cached_geo))
        self.endpoint_strategies.append(RawAddressEndpoint())

    def _cached_geo(self, ip: str) -> str:
        with self._geo_lock:
            if ip in self._geo_cache:
                return self._geo_cache[ip]
        label = self._geo_lookup(ip)
        with self._geo_lock:
            # First answer wins so concurrent callers agree
            return self._geo_cache.setdefault(ip, label)

    def detect_region(self, ip: str, provider: Optional[str] = None) -> str:
        for strategy in self.region_strategies:
            region, matched = strategy.detect(ip, provider)
            if matched:
                return region
        return UNKNOWN_REGION

    def identify_endpoint(self, ip: str, provider: Optional[str], region: str) -> str:
        for strategy in self.endpoint_strategies:
            endpoint, matched = strategy.identify(ip, provider, region)
            if matched:
                return endpoint
        # RawAddressEndpoint always matches; kept for subclasses that drop it
        return f"endpoint-{ip.replace('.', '-')}"

    def classify(self, ip: str) -> Classification:
        """Classify ip into provider, region and endpoint id"""
        ip = ip.strip()
        provider = detect_provider(ip)
        region = self.detect_region(ip, provider)
        endpoint_id = self.identify_endpoint(ip, provider, region)
        logger.debug(f"Classified {ip}: provider={provider} region={region} endpoint={endpoint_id}")
        return Classification(provider=provider, region=region, endpoint_id=endpoint_id)


_default_classifier = AddressClassifier()


def classify(ip: str) -> Classification:
    """Classify ip with the static tables only (no network access)"""
    return _default_classifier.classify(ip)
