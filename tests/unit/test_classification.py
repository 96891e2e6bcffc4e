#!/usr/bin/env python3
"""Unit tests for address classification"""

import dataclasses
import threading

import pytest

from dns_policy_tester.classification import (
    AddressClassifier,
    Classification,
    classify,
    detect_provider,
    is_ip_in_cidr,
)
from dns_policy_tester.classification.ranges import (
    AWS_REGION_CIDRS,
    CLOUD_PROVIDER_PREFIXES,
    PROVIDER_PREFIX_ORDER,
)
from dns_policy_tester.classification.strategies import (
    AwsOctetHeuristicRegion,
    CidrTableRegion,
    GeolocationEndpoint,
    GeolocationRegion,
    KnownServiceEndpoint,
    ProviderEndpoint,
    ProviderRegion,
    RawAddressEndpoint,
)


class TestProviderDetection:
    """Test cloud provider detection from address prefixes"""

    def test_aws_prefix(self):
        assert detect_provider("52.1.2.3") == "AWS"

    def test_longest_prefix_wins(self):
        """13.64.x belongs to Microsoft even though 13. is an AWS prefix"""
        assert detect_provider("13.64.10.1") == "Microsoft"
        assert detect_provider("13.120.0.1") == "AWS"

    def test_cloudflare_and_google(self):
        assert detect_provider("1.1.1.1") == "Cloudflare"
        assert detect_provider("8.8.4.4") == "Google"

    def test_unknown_provider(self):
        assert detect_provider("192.0.2.1") is None

    def test_prefix_order_is_longest_first(self):
        lengths = [len(prefix) for prefix, _ in PROVIDER_PREFIX_ORDER]
        assert lengths == sorted(lengths, reverse=True)
        total = sum(len(prefixes) for prefixes in CLOUD_PROVIDER_PREFIXES.values())
        assert len(PROVIDER_PREFIX_ORDER) == total


class TestRegionDetection:
    """Test region strategies in order"""

    def test_every_table_block_maps_to_a_covering_region(self):
        """An address inside any table block classifies into a region with a block covering it"""
        classifier = AddressClassifier()
        for cidrs in AWS_REGION_CIDRS.values():
            for cidr in cidrs:
                network = cidr.split("/")[0]
                detected = classifier.detect_region(network, "AWS")
                assert any(is_ip_in_cidr(network, block) for block in AWS_REGION_CIDRS[detected])

    def test_cidr_table_strategy(self):
        assert CidrTableRegion().detect("52.1.2.3", "AWS") == ("us-east-1", True)
        assert CidrTableRegion().detect("192.0.2.1", None) == (None, False)

    def test_cidr_boundary(self):
        """52.31.255.255 is the last address of 52.0.0.0/11"""
        assert classify("52.31.255.255").region == "us-east-1"
        assert classify("52.32.0.1").region == "us-west-2"

    def test_octet_heuristic_for_aws_outside_table(self):
        assert classify("13.120.0.1").region == "ap-northeast-1"
        assert classify("3.250.0.1").region == "us-east-1"

    def test_aws_unknown_region(self):
        assert classify("54.100.1.1").region == "aws-unknown-region"

    def test_provider_pseudo_region(self):
        assert classify("13.64.1.1").region == "microsoft-region"
        assert classify("1.1.1.1").region == "cloudflare-region"

    def test_unknown_region(self):
        assert classify("192.0.2.1").region == "unknown-region"

    def test_heuristic_ignores_other_providers(self):
        assert AwsOctetHeuristicRegion().detect("13.64.1.1", "Microsoft") == (None, False)

    def test_provider_region_skips_aws(self):
        assert ProviderRegion().detect("52.1.1.1", "AWS") == (None, False)


class TestEndpointIdentification:
    """Test endpoint id synthesis"""

    def test_known_service(self):
        assert classify("8.8.8.8").endpoint_id == "google-dns"
        assert classify("9.9.9.9").endpoint_id == "quad9-dns"

    def test_provider_endpoint(self):
        assert classify("52.1.2.3").endpoint_id == "aws-us-east-1-52-1-2"
        assert classify("13.64.1.1").endpoint_id == "microsoft-microsoft-region-13-64-1"

    def test_raw_address_endpoint(self):
        assert classify("192.0.2.1").endpoint_id == "endpoint-192-0-2-1"

    def test_strategy_results(self):
        assert KnownServiceEndpoint().identify("192.0.2.1", None, "unknown-region") == (None, False)
        assert ProviderEndpoint().identify("192.0.2.1", None, "unknown-region") == (None, False)
        assert RawAddressEndpoint().identify("10.1.2.3", None, "x") == ("endpoint-10-1-2-3", True)

    def test_strategy_names_are_distinct(self):
        classifier = AddressClassifier(geo_lookup=lambda ip: "Unknown location")
        region_names = [s.name() for s in classifier.region_strategies]
        endpoint_names = [s.name() for s in classifier.endpoint_strategies]
        assert len(set(region_names)) == len(region_names)
        assert len(set(endpoint_names)) == len(endpoint_names)
        assert endpoint_names[-1] == "raw_address"


class TestClassifier:
    """Test the composed classifier"""

    def test_classification_is_deterministic(self):
        first = classify("52.1.2.3")
        second = AddressClassifier().classify("52.1.2.3")
        assert first == second
        assert isinstance(first, Classification)

    def test_classification_is_immutable(self):
        result = classify("52.1.2.3")
        with pytest.raises(dataclasses.FrozenInstanceError):
            result.region = "eu-west-1"

    def test_whitespace_is_stripped(self):
        assert classify(" 52.1.2.3\n").endpoint_id == "aws-us-east-1-52-1-2"

    def test_geolocation_fallback(self):
        classifier = AddressClassifier(geo_lookup=lambda ip: "Paris, Ile-de-France, France (FR, EU)")
        result = classifier.classify("192.0.2.1")
        assert result.provider is None
        assert result.region == "eu-west-1"
        assert result.endpoint_id == "eu-endpoint-192-0-2"

    def test_geolocation_not_consulted_when_tables_match(self):
        calls = []
        classifier = AddressClassifier(geo_lookup=lambda ip: calls.append(ip) or "Unknown location")
        assert classifier.classify("52.1.2.3").region == "us-east-1"
        assert calls == []

    def test_geolocation_is_memoised(self):
        calls = []

        def lookup(ip):
            calls.append(ip)
            return "Austin, Texas, United States (US, NA)"

        classifier = AddressClassifier(geo_lookup=lookup)
        for _ in range(5):
            result = classifier.classify("192.0.2.9")
        assert result.region == "us-east-1"
        assert result.endpoint_id == "us-endpoint-192-0-2"
        assert calls == ["192.0.2.9"]

    def test_unmatched_geolocation_label(self):
        classifier = AddressClassifier(geo_lookup=lambda ip: "Unknown location")
        result = classifier.classify("192.0.2.1")
        assert result.region == "unknown-region"
        assert result.endpoint_id == "endpoint-192-0-2-1"

    def test_geo_strategies_use_bucket_fragments(self):
        region = GeolocationRegion(lambda ip: "Singapore, Asia (SG, AS)")
        endpoint = GeolocationEndpoint(lambda ip: "Singapore, Asia (SG, AS)")
        assert region.detect("192.0.2.1", None) == ("ap-southeast-1", True)
        assert endpoint.identify("192.0.2.1", None, "x") == ("asia-endpoint-192-0-2", True)

    def test_concurrent_classification(self):
        """Concurrent callers see identical results"""
        classifier = AddressClassifier()
        results = []
        lock = threading.Lock()

        def worker():
            for _ in range(200):
                r = classifier.classify("52.16.0.1")
                with lock:
                    results.append(r)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(results) == 1600
        assert len(set(results)) == 1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
