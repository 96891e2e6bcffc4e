# dns_policy_tester/metrics.py
# Version: 1.0.0
# Metrics collection for routing-policy test runs

"""
DNS Policy Tester Metrics Collection Module

Provides Prometheus-compatible metrics for lookups issued by the policy
procedures and for the tests themselves.
"""

import logging
from typing import Optional

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram, Info
from prometheus_client.twisted import MetricsResource
from twisted.web import resource, server

from .constants import METRICS_DEFAULT_PORT

logger = logging.getLogger(__name__)

# Constants for metrics
METRIC_NAMESPACE = "dns_policy"
LATENCY_BUCKETS = (0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0)


class MetricsCollector:
    """Centralized metrics collection for policy test runs"""

    def __init__(self, enabled: bool = True, registry: Optional[CollectorRegistry] = None):
        self.enabled = enabled
        self.registry = registry or REGISTRY

        if not self.enabled:
            logger.info("Metrics collection disabled")
            return

        self._init_lookup_metrics()
        self._init_test_metrics()

        logger.info("Metrics collector initialized")

    def _init_lookup_metrics(self):
        """Initialize lookup metrics"""
        self.lookups_total = Counter(
            f"{METRIC_NAMESPACE}_lookups_total",
            "Total number of lookups issued by policy tests",
            ["resolver", "result"],
            registry=self.registry,
        )

        self.lookup_duration = Histogram(
            f"{METRIC_NAMESPACE}_lookup_duration_seconds",
            "Lookup response time in seconds",
            ["resolver"],
            buckets=LATENCY_BUCKETS,
            registry=self.registry,
        )

    def _init_test_metrics(self):
        """Initialize test metrics"""
        self.tests_total = Counter(
            f"{METRIC_NAMESPACE}_tests_total",
            "Total number of completed policy tests",
            ["policy", "result"],
            registry=self.registry,
        )

        self.tests_running = Gauge(
            f"{METRIC_NAMESPACE}_tests_running",
            "Number of policy tests currently executing",
            registry=self.registry,
        )

        self.info = Info(f"{METRIC_NAMESPACE}", "DNS policy tester version info", registry=self.registry)

    def record_lookup(self, resolver: str, ok: bool, duration: float):
        """Record one completed lookup"""
        if not self.enabled:
            return
        self.lookups_total.labels(resolver=resolver, result="success" if ok else "failure").inc()
        self.lookup_duration.labels(resolver=resolver).observe(duration)

    def record_test_started(self):
        if self.enabled:
            self.tests_running.inc()

    def record_test_finished(self, policy: str, result: str):
        if not self.enabled:
            return
        self.tests_total.labels(policy=policy, result=result).inc()
        self.tests_running.dec()

    def set_info(self, version: str, resolver_backend: str):
        """Set version and configuration info"""
        if self.enabled:
            self.info.info({"version": version, "resolver": resolver_backend})


class MetricsServer:
    """HTTP server for Prometheus metrics endpoint"""

    def __init__(
        self,
        collector: MetricsCollector,
        listen_address: str = "127.0.0.1",
        listen_port: int = METRICS_DEFAULT_PORT,
        reactor=None,
    ):
        self.collector = collector
        self.listen_address = listen_address
        self.listen_port = listen_port
        if reactor is None:
            from twisted.internet import reactor
        self.reactor = reactor
        self.port = None

    def build_site(self) -> server.Site:
        root = resource.Resource()
        root.putChild(b"metrics", MetricsResource(registry=self.collector.registry))
        return server.Site(root)

    def start(self):
        """Start metrics HTTP server"""
        if not self.collector.enabled:
            logger.info("Metrics server not started (metrics disabled)")
            return

        self.port = self.reactor.listenTCP(self.listen_port, self.build_site(), interface=self.listen_address)
        logger.info(f"Metrics server listening on {self.listen_address}:{self.listen_port}/metrics")

    def stop(self):
        """Stop metrics HTTP server"""
        if self.port:
            self.port.stopListening()
            self.port = None
            logger.info("Metrics server stopped")
