# dns_policy_tester/classification/matching.py
"""IPv4 range helpers and expected-endpoint lookup"""

import ipaddress
import logging
import re
from typing import Mapping

from .ranges import DEFAULT_ENDPOINT

logger = logging.getLogger(__name__)

IPV4_PATTERN = re.compile(r"^\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}$")


def is_ipv4(value: str) -> bool:
    """True if value is a dotted-quad IPv4 address"""
    if not value or not IPV4_PATTERN.match(value):
        return False
    try:
        ipaddress.IPv4Address(value)
    except ValueError:
        return False
    return True


def ip_to_int(ip: str) -> int:
    """Convert a dotted-quad address to its 32-bit integer value"""
    return int(ipaddress.IPv4Address(ip.strip()))


def prefix_mask(prefix_length: int) -> int:
    """Network mask for a prefix length"""
    if not 0 <= prefix_length <= 32:
        raise ValueError(f"Invalid prefix length: {prefix_length}")
    return (0xFFFFFFFF << (32 - prefix_length)) & 0xFFFFFFFF


def is_ip_in_cidr(ip: str, cidr: str) -> bool:
    """Check (ip & mask) == (network & mask)"""
    parts = cidr.split("/")
    if len(parts) != 2:
        return False
    try:
        mask = prefix_mask(int(parts[1]))
        return (ip_to_int(ip) & mask) == (ip_to_int(parts[0]) & mask)
    except ValueError as e:
        logger.debug(f"Error checking CIDR match for {ip} in {cidr}: {e}")
        return False


def is_ip_in_range(ip: str, ip_range: str) -> bool:
    """Check an inclusive dash range such as 192.168.1.1-192.168.1.100"""
    parts = ip_range.split("-")
    if len(parts) != 2:
        return False
    try:
        return ip_to_int(parts[0]) <= ip_to_int(ip) <= ip_to_int(parts[1])
    except ValueError as e:
        logger.debug(f"Error checking IP range for {ip} in {ip_range}: {e}")
        return False


def matches_wildcard(ip: str, pattern: str) -> bool:
    """Check a wildcard pattern such as 192.168.1.*"""
    regex = re.escape(pattern).replace(r"\*", r"\d+")
    return re.fullmatch(regex, ip) is not None


def is_same_subnet(ip1: str, ip2: str, prefix_length: int = 24) -> bool:
    """True if both addresses share the same network for prefix_length"""
    try:
        mask = prefix_mask(prefix_length)
        return (ip_to_int(ip1) & mask) == (ip_to_int(ip2) & mask)
    except ValueError:
        return False


def subnet_identifier(ip: str) -> str:
    """First three octets joined by '-', used in endpoint names"""
    parts = ip.split(".")
    if len(parts) >= 3:
        return "-".join(parts[:3])
    return "unknown-subnet"


def find_expected_endpoint_for_ip(ip: str, ip_range_endpoints: Mapping[str, str]) -> str:
    """
    Find the configured endpoint for an address.

    Keys may be exact addresses, CIDR blocks, dash ranges or '*' wildcard
    patterns. Priority: exact, then CIDR, then range, then wildcard, then a
    same-/24 match against plain-address keys.

    Returns:
        The matching endpoint, or DEFAULT_ENDPOINT when nothing matches
    """
    if ip in ip_range_endpoints:
        logger.debug(f"Exact IP match found for {ip}")
        return ip_range_endpoints[ip]

    passes = (
        ("/", is_ip_in_cidr, "CIDR range"),
        ("-", is_ip_in_range, "IP range"),
        ("*", matches_wildcard, "wildcard"),
    )
    for marker, matcher, label in passes:
        for key, endpoint in ip_range_endpoints.items():
            if marker in key and matcher(ip, key):
                logger.debug(f"IP {ip} matches {label} {key} -> {endpoint}")
                return endpoint

    for key, endpoint in ip_range_endpoints.items():
        if "/" in key or "-" in key or "*" in key:
            continue
        if is_same_subnet(ip, key, 24):
            logger.debug(f"IP {ip} in same subnet as {key} -> {endpoint}")
            return endpoint

    logger.debug(f"No matching endpoint found for IP {ip}, using default")
    return DEFAULT_ENDPOINT
