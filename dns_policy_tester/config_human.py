# dns_policy_tester/config_human.py
# Human-centered endpoint configuration for policy tests

"""
Human-Friendly Endpoint Configuration

Endpoints are described one per section instead of a packed weight string:

    [endpoint:us-east]
    address = 52.1.2.3
    weight = 70
    region = us-east-1
    clients = 203.0.113.0/24
    description = Primary stack

Typos in field names are caught and reported with the likely intended name.
"""

import ipaddress
import re
from dataclasses import dataclass
from typing import Dict, List, Optional

from .classification import is_ipv4
from .config import PolicyTesterConfig
from .constants import MAX_ENDPOINT_WEIGHT, MIN_ENDPOINT_WEIGHT
from .errors import ConfigurationError

WILDCARD_PATTERN = re.compile(r"^(\d{1,3}|\*)(\.(\d{1,3}|\*)){3}$")


@dataclass
class EndpointSection:
    """One [endpoint:<name>] section"""

    name: str  # Human-friendly name from section
    weight: int = 0
    address: Optional[str] = None  # IP, CIDR, dash range or wildcard pattern
    region: Optional[str] = None
    clients: Optional[str] = None  # client address pattern routed here (IP-based)
    description: str = ""

    @property
    def key(self) -> str:
        """Distribution key: the address pattern when given, else the name"""
        return self.address or self.name

    def __str__(self):
        return f"{self.name} ({self.address or 'no address'}, weight {self.weight})"


class HumanFriendlyConfig(PolicyTesterConfig):
    """Extended configuration with [endpoint:<name>] sections"""

    # Common typos and their corrections
    FIELD_CORRECTIONS = {
        "adress": "address",
        "addres": "address",
        "addr": "address",
        "ip": "address",
        "host": "address",
        "wheight": "weight",
        "wieght": "weight",
        "wight": "weight",
        "regoin": "region",
        "reigon": "region",
        "client": "clients",
        "descripton": "description",
        "desc": "description",
    }

    VALID_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")

    def endpoint_sections(self) -> List[str]:
        return [
            section
            for section in self.config.sections()
            if section.startswith("endpoint:") or section.startswith("endpoint.")
        ]

    def get_endpoints(self) -> List[EndpointSection]:
        """Parse every endpoint section, raising ConfigurationError on mistakes"""
        endpoints = []
        seen_keys: Dict[str, str] = {}
        for section in self.endpoint_sections():
            endpoint = self._parse_endpoint_section(section)
            if endpoint.key in seen_keys:
                raise ConfigurationError(
                    f"[{section}] uses the same address as [endpoint:{seen_keys[endpoint.key]}]",
                    "Give each endpoint its own address or merge the sections",
                )
            seen_keys[endpoint.key] = endpoint.name
            endpoints.append(endpoint)
        return endpoints

    def _parse_endpoint_section(self, section: str) -> EndpointSection:
        name = section[len("endpoint:"):]
        if not self.VALID_NAME_PATTERN.match(name):
            raise ConfigurationError(
                f"Section [{section}] has invalid characters in name",
                "Use only letters, numbers, hyphens, and underscores",
            )

        options = {key: value.split("#")[0].strip() for key, value in self.config.items(section, raw=True)}

        for typo, correct in self.FIELD_CORRECTIONS.items():
            if typo in options and correct not in options:
                raise ConfigurationError(
                    f"In [{section}]: Found '{typo}', did you mean '{correct}'?",
                    f"Change '{typo}' to '{correct}'",
                )

        endpoint = EndpointSection(name=name)

        if "weight" in options:
            try:
                weight = int(options["weight"])
                if not MIN_ENDPOINT_WEIGHT <= weight <= MAX_ENDPOINT_WEIGHT:
                    raise ValueError()
                endpoint.weight = weight
            except ValueError:
                raise ConfigurationError(
                    f"In [{section}]: Weight must be a number between "
                    f"{MIN_ENDPOINT_WEIGHT} and {MAX_ENDPOINT_WEIGHT}",
                    f"Got '{options['weight']}'",
                )

        if options.get("address"):
            endpoint.address = self._validate_address(section, options["address"])

        if options.get("region"):
            endpoint.region = options["region"]

        if options.get("clients"):
            endpoint.clients = self._validate_address(section, options["clients"])

        if "description" in options:
            endpoint.description = options["description"]

        return endpoint

    @staticmethod
    def _validate_address(section: str, address: str) -> str:
        try:
            if "/" in address:
                ipaddress.IPv4Network(address, strict=False)
            elif "-" in address:
                start, end = (part.strip() for part in address.split("-", 1))
                if not (is_ipv4(start) and is_ipv4(end)):
                    raise ValueError(address)
                address = f"{start}-{end}"
            elif "*" in address:
                if not WILDCARD_PATTERN.match(address):
                    raise ValueError(address)
            elif not is_ipv4(address):
                raise ValueError(address)
        except ValueError:
            raise ConfigurationError(
                f"In [{section}]: '{address}' is not a valid IPv4 address or range",
                "Use an address (52.1.2.3), CIDR (52.0.0.0/11), range "
                "(10.0.0.1-10.0.0.50) or wildcard (10.0.0.*)",
            )
        return address

    def get_expected_weights(self) -> Dict[str, int]:
        """Weights from endpoint sections, falling back to the packed format"""
        endpoints = self.get_endpoints()
        if not endpoints:
            return super().get_expected_weights()

        weights = {endpoint.key: endpoint.weight for endpoint in endpoints}
        if sum(weights.values()) <= 0:
            raise ConfigurationError(
                "All endpoint weights are zero",
                "Give at least one [endpoint:...] section a weight above 0",
            )
        return weights

    def get_ip_range_endpoints(self) -> Dict[str, str]:
        """client pattern -> endpoint address, for IP-based routing tests"""
        return {e.clients: e.address for e in self.get_endpoints() if e.clients and e.address}

    def get_region_endpoints(self) -> Dict[str, str]:
        """region -> endpoint key, for latency routing tests"""
        return {e.region: e.key for e in self.get_endpoints() if e.region}

    def validate_config(self) -> List[str]:
        """Validate configuration and return list of warnings/errors"""
        issues = []
        try:
            endpoints = self.get_endpoints()
            if not endpoints:
                issues.append("Info: No [endpoint:...] sections configured")
            unweighted = [e.name for e in endpoints if e.weight == 0]
            if endpoints and unweighted:
                issues.append(f"Warning: Endpoints without weight: {', '.join(unweighted)}")
        except ConfigurationError as e:
            issues.append(f"Error: {e.message}")
        return issues

