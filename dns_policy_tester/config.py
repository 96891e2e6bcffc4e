# dns_policy_tester/config.py
# Configuration loading for the policy tester

import configparser
import logging
import os
import sys
from typing import Any, Dict, Optional

from .constants import (
    DEFAULT_ITERATIONS,
    DEFAULT_WORKER_THREADS,
    DIG_QUERY_TIMEOUT,
    METRICS_DEFAULT_PORT,
    REACHABILITY_TIMEOUT,
    TOR_CONTROL_PORT,
    TOR_SOCKS_HOST,
    TOR_SOCKS_PORT,
)
from .errors import ConfigurationError

logger = logging.getLogger(__name__)


class PolicyTesterConfig:
    """Configuration manager for the DNS policy tester"""

    DEFAULT_CONFIG_PATH = "/etc/dns-policy-tester/dns-policy-tester.cfg"
    DEFAULT_CONFIG = {
        "engine": {
            "worker-threads": str(DEFAULT_WORKER_THREADS),
            "iterations": str(DEFAULT_ITERATIONS),
        },
        "resolver": {
            "backend": "system",
            "server-address": "",
            "timeout": str(DIG_QUERY_TIMEOUT),
        },
        "weighted": {
            "expected-weights": "",
        },
        "discovery": {
            "reachability-timeout": str(REACHABILITY_TIMEOUT),
            "auto-designate": "true",
        },
        "geolocation": {
            "use-vantage-points": "false",
            "tor-socks-host": TOR_SOCKS_HOST,
            "tor-socks-port": str(TOR_SOCKS_PORT),
            "tor-control-port": str(TOR_CONTROL_PORT),
            "tor-control-password": "",
            "ip-lookups": "true",
            "classify-with-geolocation": "false",
        },
        "log-file": {
            "log-file": "none",
            "debug-level": "INFO",
            "syslog": "false",
        },
        "metrics": {
            "enabled": "false",
            "listen-address": "127.0.0.1",
            "listen-port": str(METRICS_DEFAULT_PORT),
        },
    }

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path or self.DEFAULT_CONFIG_PATH
        self.config = configparser.ConfigParser()
        self._load_defaults()
        self._load_config()

    def _load_defaults(self):
        """Load default configuration"""
        for section, options in self.DEFAULT_CONFIG.items():
            self.config.add_section(section)
            for key, value in options.items():
                self.config.set(section, key, value)

    def _load_config(self):
        """Load configuration from file"""
        if os.path.exists(self.config_path):
            try:
                self.config.read(self.config_path)
            except configparser.Error as e:
                raise ConfigurationError(
                    f"Error reading config file {self.config_path}: {e}",
                    "Check the file for unbalanced [section] headers or lines without '='",
                )
        else:
            print(f"Warning: Config file {self.config_path} not found, using defaults", file=sys.stderr)

    def get(self, section: str, option: str, fallback: Any = None) -> str:
        """Get configuration value"""
        try:
            return self.config.get(section, option)
        except (configparser.NoSectionError, configparser.NoOptionError):
            return fallback

    def getint(self, section: str, option: str, fallback: int = 0) -> int:
        """Get integer configuration value"""
        try:
            return self.config.getint(section, option)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return fallback

    def getfloat(self, section: str, option: str, fallback: float = 0.0) -> float:
        """Get float configuration value"""
        try:
            return self.config.getfloat(section, option)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return fallback

    def getboolean(self, section: str, option: str, fallback: bool = False) -> bool:
        """Get boolean configuration value"""
        try:
            return self.config.getboolean(section, option)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return fallback

    def get_expected_weights(self) -> Dict[str, int]:
        """Get expected endpoint weights

        Format: "endpoint:weight" pairs separated by commas, for example
        "52.1.2.3:70, 54.2.3.4:30". Entries without a numeric weight are
        skipped with a warning.

        Returns:
            Dict of endpoint -> weight, empty when nothing is configured
        """
        weights = {}
        packed = self.get("weighted", "expected-weights", "") or ""
        for entry in packed.split(","):
            entry = entry.strip()
            if not entry:
                continue
            endpoint, sep, weight = entry.rpartition(":")
            if not sep or not endpoint.strip():
                logger.warning(f"Ignoring weight entry '{entry}', expected endpoint:weight")
                continue
            try:
                weights[endpoint.strip()] = int(weight)
            except ValueError:
                logger.warning(f"Invalid weight '{weight}' for endpoint '{endpoint}', ignoring")
        return weights
