#!/usr/bin/env python3
"""
CLI tests - argument parsing, configuration wiring, report formatting,
and the command line started as a real process
"""

import logging
import subprocess
import sys

import pytest

from dns_policy_tester import __version__
from dns_policy_tester.config import PolicyTesterConfig
from dns_policy_tester.config_human import HumanFriendlyConfig
from dns_policy_tester.discovery import DiscoverySet
from dns_policy_tester.errors import ConfigurationError
from dns_policy_tester.geo import IPGeolocator, TorVantagePointProvider
from dns_policy_tester.main import (
    _exit_code,
    _load_configuration,
    _parse_arguments,
    _validate_config,
    build_context,
    build_test,
    format_discovery,
    format_report,
    main,
)
from dns_policy_tester.models import DiscoveredARecord, RoutingPolicyTest, RoutingPolicyType, TestResult
from dns_policy_tester.resolution import DigResolver, SystemResolver
from test_utils import create_temp_config, create_test_config, find_repo_root


@pytest.fixture
def config_path():
    paths = []

    def _write(content):
        path = create_temp_config(content)
        paths.append(path)
        return str(path)

    yield _write
    for path in paths:
        path.unlink()


def run_cli(*args, timeout=30):
    cmd = [sys.executable, "-m", "dns_policy_tester.main", *args]
    return subprocess.run(cmd, capture_output=True, text=True, timeout=timeout, cwd=str(find_repo_root()))


@pytest.mark.integration
class TestArgumentParsing:
    """Test the command line surface"""

    def test_run_command(self):
        _, args = _parse_arguments(
            ["run", "-p", "weighted", "example.com", "-n", "500", "-w", "52.1.1.1=70", "-w", "54.2.0.0/16=30"]
        )
        assert args.command == "run"
        assert args.iterations == 500
        assert args.weight == [("52.1.1.1", 70), ("54.2.0.0/16", 30)]

    def test_invalid_policy_rejected(self):
        with pytest.raises(SystemExit):
            _parse_arguments(["run", "-p", "round-robin", "example.com"])

    @pytest.mark.parametrize("weight", ["52.1.1.1", "=5", "52.1.1.1=heavy"])
    def test_invalid_weight_rejected(self, weight):
        with pytest.raises(SystemExit):
            _parse_arguments(["run", "-p", "weighted", "example.com", "-w", weight])

    def test_iterations_must_be_positive(self):
        with pytest.raises(SystemExit):
            _parse_arguments(["run", "-p", "weighted", "example.com", "-n", "0"])

    def test_discover_and_suite(self):
        _, args = _parse_arguments(["discover", "example.com", "--no-auto-designate"])
        assert args.no_auto_designate
        _, args = _parse_arguments(["-c", "/tmp/x.cfg", "suite", "example.com", "--run"])
        assert args.config == "/tmp/x.cfg"
        assert args.run


@pytest.mark.integration
class TestConfigurationWiring:
    """Test how configuration turns into tests and collaborators"""

    def test_packed_config_selected(self, config_path):
        assert type(_load_configuration(config_path("[engine]\niterations = 5\n"))) is PolicyTesterConfig

    def test_endpoint_sections_select_human_config(self, config_path):
        path = config_path("[endpoint:a]\naddress = 52.1.1.1\nweight = 1\n")
        assert isinstance(_load_configuration(path), HumanFriendlyConfig)

    def test_weights_from_config(self):
        path = create_test_config(iterations=40)
        try:
            config = _load_configuration(str(path))
            _, args = _parse_arguments(["run", "-p", "weighted", "example.com"])
            test = build_test(config, args)
        finally:
            path.unlink()
        assert test.iterations == 40
        assert test.expected_weights == {"52.1.1.1": 70, "54.2.2.2": 30}

    def test_flags_override_config(self):
        path = create_test_config()
        try:
            config = _load_configuration(str(path))
            _, args = _parse_arguments(["run", "-p", "weighted", "example.com", "-n", "9", "-w", "a=1"])
            test = build_test(config, args)
        finally:
            path.unlink()
        assert test.iterations == 9
        assert test.expected_weights == {"a": 1}

    def test_endpoint_tables_from_human_config(self, config_path):
        config = _load_configuration(config_path(
            "[endpoint:east]\naddress = 52.1.1.1\nweight = 1\nregion = us-east-1\nclients = 203.0.113.0/24\n"
        ))
        _, args = _parse_arguments(["run", "-p", "ip_based", "ip.example.com"])
        test = build_test(config, args)
        assert test.ip_range_endpoints == {"203.0.113.0/24": "52.1.1.1"}
        assert test.region_endpoints == {"us-east-1": "52.1.1.1"}
        assert test.expected_weights == {}

    def test_build_context_from_test_config(self):
        path = create_test_config(server="9.9.9.9")
        try:
            context = build_context(_load_configuration(str(path)))
        finally:
            path.unlink()
        assert isinstance(context.resolver, DigResolver)
        assert context.resolver.default_resolver == "9.9.9.9"
        assert context.dig.default_resolver == "9.9.9.9"
        assert context.geolocator is None
        assert context.vantage_provider is None

    def test_build_context_with_lookups_and_vantage_points(self, config_path):
        context = build_context(_load_configuration(config_path(
            "[geolocation]\nuse-vantage-points = true\ntor-socks-port = 9150\nip-lookups = true\n"
        )))
        assert isinstance(context.resolver, SystemResolver)
        assert isinstance(context.geolocator, IPGeolocator)
        assert isinstance(context.vantage_provider, TorVantagePointProvider)
        assert context.vantage_provider.socks_port == 9150
        assert context.settings.use_vantage_points

    def test_validation_warnings_logged(self, config_path, caplog):
        config = _load_configuration(config_path("[endpoint:a]\naddress = 52.1.1.1\n"))
        with caplog.at_level(logging.INFO, logger="dns_policy_tester"):
            _validate_config(config, logging.getLogger("dns_policy_tester"))
        assert "Endpoints without weight: a" in caplog.text

    def test_validation_error_stops_run(self, config_path):
        config = _load_configuration(config_path(
            "[endpoint:a]\naddress = 52.1.1.1\nweight = 1\n\n[endpoint:b]\naddress = 52.1.1.1\nweight = 2\n"
        ))
        with pytest.raises(ConfigurationError) as excinfo:
            _validate_config(config, logging.getLogger("dns_policy_tester"))
        assert "uses the same address" in excinfo.value.message

    def test_packed_config_has_nothing_to_validate(self, config_path):
        _validate_config(_load_configuration(config_path("[engine]\niterations = 5\n")), logging.getLogger("x"))


@pytest.mark.integration
class TestReports:
    def test_weighted_report(self):
        test = RoutingPolicyTest(RoutingPolicyType.WEIGHTED, "example.com", expected_weights={"a": 3, "b": 1})
        test.complete(TestResult.PASSED, "details", actual_distribution={"a": 3, "b": 1}, response_time_ms=4.0)
        report = format_report(test)
        assert "Result: PASSED" in report
        assert "  a: 3 (75.0%)" in report
        assert report.endswith("details")

    def test_failover_report(self):
        test = RoutingPolicyTest(RoutingPolicyType.FAILOVER, "example.com", primary_endpoint="10.0.0.1")
        test.complete(TestResult.PASSED, failover_triggered=True, actual_endpoint="10.0.0.2")
        report = format_report(test)
        assert "Failover triggered: yes" in report
        assert "Actual endpoint: 10.0.0.2" in report

    def test_discovery_report(self):
        records = DiscoverySet("example.com", [DiscoveredARecord("192.0.2.1", "example.com")])
        records.auto_designate()
        report = format_discovery(records)
        assert report.startswith("1 A records for example.com")
        assert "Primary" in report
        assert "Unreachable" in report

    def test_discovery_report_names_regions(self):
        records = DiscoverySet("example.com", [
            DiscoveredARecord("52.1.1.1", "example.com", cloud_provider="AWS", aws_region="us-east-1"),
            DiscoveredARecord("192.0.2.1", "example.com", aws_region="unknown"),
        ])
        lines = format_discovery(records).splitlines()
        assert lines[1].endswith("(US East (N. Virginia))")
        assert lines[2].endswith("Unassigned (related subdomain)")

    def test_exit_codes(self):
        assert _exit_code(TestResult.PASSED) == 0
        assert _exit_code(TestResult.PARTIAL) == 0
        for result in (TestResult.FAILED, TestResult.UNKNOWN, TestResult.CANCELLED):
            assert _exit_code(result) == 1


@pytest.mark.integration
class TestCommandLine:
    """Start the command line for real"""

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as excinfo:
            main(["-v"])
        assert excinfo.value.code == 0
        assert "DNS Policy Tester version" in capsys.readouterr().out

    def test_version_matches_setup(self):
        """The package version and the distribution version are the same string"""
        setup_text = (find_repo_root() / "setup.py").read_text()
        assert f"version='{__version__}'" in setup_text

    def test_no_command_shows_help(self, capsys):
        with pytest.raises(SystemExit) as excinfo:
            main([])
        assert excinfo.value.code == 2
        assert "usage:" in capsys.readouterr().out

    def test_configuration_error_exits(self, config_path):
        result = run_cli("-c", config_path("[resolver]\nbackend = twisted\n"), "suite", "example.com")
        assert result.returncode == 1
        assert "Configuration Error: The twisted resolver backend needs a resolver" in result.stderr
        assert "Suggestion:" in result.stderr

    def test_malformed_configuration_exits(self, config_path):
        result = run_cli("-c", config_path("no section header\n"), "suite", "example.com")
        assert result.returncode == 1
        assert "Configuration Error" in result.stderr

    def test_endpoint_typo_exits(self, config_path):
        path = config_path("[geolocation]\nip-lookups = false\n\n[endpoint:a]\naddress = 52.1.1.1\nwieght = 5\n")
        result = run_cli("-c", path, "suite", "example.com")
        assert result.returncode == 1
        assert "Configuration Error: In [endpoint:a]: Found 'wieght', did you mean 'weight'?" in result.stderr

    def test_suite_listing(self, config_path):
        result = run_cli("-c", config_path("[geolocation]\nip-lookups = false\n"), "suite", "example.com")
        assert result.returncode == 0, result.stderr
        assert "geo.example.com" in result.stdout
        assert "multi.example.com" in result.stdout
        assert len(result.stdout.strip().splitlines()) == 6


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
