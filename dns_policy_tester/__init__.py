"""
DNS Routing-Policy Tester
Repeatedly resolves a domain, classifies the answers and validates the observed
distribution against a weighted, geolocation, latency or failover routing policy
"""

from .version import __author__, __version__

__all__ = ["__author__", "__version__"]
