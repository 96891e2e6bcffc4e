#!/usr/bin/env python3
"""
Main entry point for the DNS policy tester
Runs routing-policy tests and A-record discovery on the Twisted reactor
"""

import argparse
import configparser
import logging
import logging.handlers
import os
import sys

from dns_policy_tester.constants import (
    DEFAULT_ITERATIONS,
    LOG_FILE_BACKUPS,
    LOG_FILE_MAX_BYTES,
    LOG_FORMAT,
    METRICS_DEFAULT_PORT,
    REACHABILITY_TIMEOUT,
)
from dns_policy_tester.errors import ConfigurationError
from dns_policy_tester.models import RoutingPolicyTest, RoutingPolicyType, TestResult
from dns_policy_tester.validation import summarize_distribution


def setup_logging(log_file=None, log_level="INFO", syslog=False):
    """Setup logging configuration"""
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    # Setup root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    # Clear existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter = logging.Formatter(LOG_FORMAT)

    # Console output goes to stderr so reports on stdout stay clean
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file and log_file.lower() != "none":
        try:
            log_dir = os.path.dirname(log_file)
            if log_dir and not os.path.exists(log_dir):
                os.makedirs(log_dir, mode=0o755)

            file_handler = logging.handlers.RotatingFileHandler(
                log_file, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS
            )
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)
        except OSError as e:
            print(f"Warning: Could not setup file logging to {log_file}: {e}", file=sys.stderr)

    if syslog:
        try:
            syslog_handler = logging.handlers.SysLogHandler(address="/dev/log")
            syslog_handler.setFormatter(
                logging.Formatter("dns-policy-tester[%(process)d]: %(levelname)s - %(message)s")
            )
            root_logger.addHandler(syslog_handler)
        except OSError as e:
            print(f"Warning: Could not setup syslog: {e}", file=sys.stderr)


def _parse_weight(value):
    """Parse ENDPOINT=WEIGHT"""
    endpoint, sep, weight = value.rpartition("=")
    if not sep or not endpoint:
        raise argparse.ArgumentTypeError(f"Expected ENDPOINT=WEIGHT, got '{value}'")
    try:
        return endpoint, int(weight)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid weight in '{value}'")


def _positive_int(value):
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid number: {value}")
    if number < 1:
        raise argparse.ArgumentTypeError("Value must be at least 1")
    return number


def _parse_arguments(argv=None):
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(
        description="Test DNS routing policies (weighted, geolocation, latency, failover, "
        "IP-based, multivalue) by resolving a domain repeatedly and validating the answers.",
    )
    parser.add_argument(
        "-c", "--config", default="/etc/dns-policy-tester/dns-policy-tester.cfg",
        help="Configuration file path",
    )
    parser.add_argument("-l", "--logfile", help="Log file path (overrides config)")
    parser.add_argument(
        "-L", "--loglevel", choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Log level"
    )
    parser.add_argument("-v", "--version", action="store_true", help="Show version")
    parser.add_argument(
        "--metrics-port", type=int, help=f"Serve Prometheus metrics (e.g. {METRICS_DEFAULT_PORT})"
    )

    subparsers = parser.add_subparsers(dest="command")

    run = subparsers.add_parser("run", help="Run one routing-policy test")
    run.add_argument(
        "-p", "--policy", required=True, choices=[p.value for p in RoutingPolicyType],
        help="Routing policy to test",
    )
    run.add_argument("domain", help="Domain under test")
    run.add_argument("-n", "--iterations", type=_positive_int, help="Number of lookups")
    run.add_argument(
        "-w", "--weight", type=_parse_weight, action="append", default=[],
        help="Expected weight as ENDPOINT=WEIGHT (repeatable, overrides config)",
    )
    run.add_argument("--primary", help="Primary endpoint address or host name (failover)")
    run.add_argument("--secondary", help="Secondary endpoint address or host name (failover)")
    run.add_argument("-r", "--resolver", help="Resolver address to query instead of the host's")
    run.add_argument("--expected-region", help="Region expected to answer (geolocation)")
    run.add_argument("--locations", type=_positive_int, help="Vantage point rounds (geolocation)")
    run.add_argument(
        "--expect", action="append", default=[], help="Expected address (multivalue, repeatable)"
    )

    discover = subparsers.add_parser("discover", help="Discover A records and failover candidates")
    discover.add_argument("domain", help="Domain to discover")
    discover.add_argument(
        "--no-auto-designate", action="store_true", help="Skip primary/secondary suggestion"
    )

    suite = subparsers.add_parser("suite", help="Show or run the standard test suite")
    suite.add_argument("domain", help="Base domain")
    suite.add_argument("--run", action="store_true", help="Run the suite instead of listing it")

    return parser, parser.parse_args(argv)


def _handle_version_check(args):
    """Handle version check and exit if requested"""
    if args.version:
        from dns_policy_tester import __version__

        print(f"DNS Policy Tester version {__version__}")
        sys.exit(0)


def _load_configuration(config_path):
    """Load configuration from file"""
    # Look for endpoint: sections (human-friendly format)
    parser = configparser.ConfigParser()
    try:
        parser.read(config_path)
    except configparser.Error:
        # PolicyTesterConfig reports the parse error with a suggestion
        pass
    has_endpoint_sections = any(section.startswith("endpoint") for section in parser.sections())

    if has_endpoint_sections:
        from dns_policy_tester.config_human import HumanFriendlyConfig

        return HumanFriendlyConfig(config_path)

    from dns_policy_tester.config import PolicyTesterConfig

    return PolicyTesterConfig(config_path)


def _get_logging_config(config, args):
    """Get logging configuration from config and args"""
    log_file = args.logfile or config.get("log-file", "log-file")
    log_level = args.loglevel or config.get("log-file", "debug-level", "INFO")
    syslog = config.getboolean("log-file", "syslog", False)
    return log_file, log_level, syslog


def _validate_config(config, logger):
    """Log configuration issues; an error stops the run"""
    if not hasattr(config, "validate_config"):
        return
    for issue in config.validate_config():
        if issue.startswith("Error: "):
            raise ConfigurationError(issue[len("Error: "):], "Fix the endpoint sections and try again")
        if issue.startswith("Warning: "):
            logger.warning(issue[len("Warning: "):])
        else:
            logger.info(issue)


def build_context(config, metrics=None):
    """Wire the collaborators named in the configuration"""
    from dns_policy_tester.classification import AddressClassifier
    from dns_policy_tester.constants import DIG_QUERY_TIMEOUT, TOR_CONTROL_PORT, TOR_SOCKS_HOST, TOR_SOCKS_PORT
    from dns_policy_tester.geo import IPGeolocator, PublicIPLookup, TorVantagePointProvider
    from dns_policy_tester.policies import PolicyContext, PolicySettings
    from dns_policy_tester.resolution import DigResolver, build_resolver

    settings = PolicySettings.from_config(config)
    dig = DigResolver(
        default_resolver=config.get("resolver", "server-address", "") or None,
        timeout=config.getfloat("resolver", "timeout", DIG_QUERY_TIMEOUT),
    )

    geolocator = public_ip = None
    if config.getboolean("geolocation", "ip-lookups", True):
        geolocator = IPGeolocator()
        public_ip = PublicIPLookup()

    classify_geo = config.getboolean("geolocation", "classify-with-geolocation", False)
    classifier = AddressClassifier(geolocator.locate if (geolocator and classify_geo) else None)

    vantage_provider = None
    if settings.use_vantage_points:
        vantage_provider = TorVantagePointProvider(
            socks_host=config.get("geolocation", "tor-socks-host", TOR_SOCKS_HOST),
            socks_port=config.getint("geolocation", "tor-socks-port", TOR_SOCKS_PORT),
            control_port=config.getint("geolocation", "tor-control-port", TOR_CONTROL_PORT),
            control_password=config.get("geolocation", "tor-control-password", ""),
        )

    return PolicyContext(
        resolver=build_resolver(config),
        dig=dig,
        classifier=classifier,
        geolocator=geolocator,
        public_ip=public_ip,
        vantage_provider=vantage_provider,
        settings=settings,
        metrics=metrics,
    )


def build_test(config, args) -> RoutingPolicyTest:
    """Create the test record from flags, falling back to configuration"""
    policy_type = RoutingPolicyType(args.policy)
    test = RoutingPolicyTest(
        policy_type=policy_type,
        domain=args.domain,
        iterations=args.iterations or config.getint("engine", "iterations", DEFAULT_ITERATIONS),
        primary_endpoint=args.primary,
        secondary_endpoint=args.secondary,
        resolver_address=args.resolver,
        num_locations=args.locations or 0,
        expected_region=args.expected_region,
        expected_endpoints=list(args.expect),
    )

    if policy_type == RoutingPolicyType.WEIGHTED:
        test.expected_weights = dict(args.weight) or config.get_expected_weights()
    if hasattr(config, "get_ip_range_endpoints"):
        test.ip_range_endpoints = config.get_ip_range_endpoints()
        test.region_endpoints = config.get_region_endpoints()
    return test


def format_report(test: RoutingPolicyTest) -> str:
    lines = [
        "=" * 70,
        test.description(),
        f"Result: {test.result.value if test.result else 'PENDING'}"
        f"    Response time: {test.response_time_ms:.1f}ms",
    ]
    if test.policy_type == RoutingPolicyType.FAILOVER and test.result == TestResult.PASSED:
        lines.append(f"Failover triggered: {'yes' if test.failover_triggered else 'no'}")
    if test.actual_endpoint:
        lines.append(f"Actual endpoint: {test.actual_endpoint}")
    if test.actual_distribution:
        shares = summarize_distribution(test.actual_distribution)
        lines.append("Distribution:")
        for endpoint, count in sorted(test.actual_distribution.items(), key=lambda kv: -kv[1]):
            lines.append(f"  {endpoint}: {count} ({shares[endpoint]:.1%})")
    lines.append("-" * 70)
    lines.append(test.error_message)
    return "\n".join(lines)


def format_discovery(records) -> str:
    from dns_policy_tester.classification import AWS_REGION_NAMES

    lines = [f"{len(records)} A records for {records.domain}"]
    for record in records:
        line = (
            f"  [{record.designation:>10}] {record.ip_address:<15} {record.source_domain:<35} "
            f"{record.cloud_provider or '-':<10} {record.aws_region or '-':<18} {record.status:<11} "
            f"{record.response_time_ms}ms  {record.suggested_role}"
        )
        region_name = AWS_REGION_NAMES.get(record.aws_region) if record.aws_region else None
        lines.append(f"{line}  ({region_name})" if region_name else line)
    return "\n".join(lines)


def _exit_code(result) -> int:
    return 0 if result in (TestResult.PASSED, TestResult.PARTIAL) else 1


def _start_work(engine, config, args, reactor):
    """Submit the requested work; returns a Deferred firing with the exit code"""
    from twisted.internet import defer

    from dns_policy_tester.policies import generate_test_suite

    if args.command == "run":
        handle = engine.submit_test(build_test(config, args))
        reactor.addSystemEventTrigger("before", "shutdown", handle.cancel)
        handle.add_callbacks(on_success=lambda t: print(format_report(t)),
                             on_cancelled=lambda t: print(format_report(t)))
        return handle.deferred.addCallback(lambda t: _exit_code(t.result))

    if args.command == "discover":
        auto_designate = not args.no_auto_designate and config.getboolean("discovery", "auto-designate", True)
        d = engine.discover_a_records(args.domain, auto_designate=auto_designate)

        def show(records):
            print(format_discovery(records))
            return 0 if len(records) else 1

        return d.addCallback(show)

    tests = generate_test_suite(args.domain)
    if not args.run:
        for test in tests:
            print(f"{test.policy_type.value:<18} {test.domain:<40} {test.description()}")
        return defer.succeed(0)

    handles = [engine.submit_test(test) for test in tests]
    for handle in handles:
        reactor.addSystemEventTrigger("before", "shutdown", handle.cancel)
        handle.add_callbacks(on_success=lambda t: print(format_report(t)))
    d = defer.gatherResults([h.deferred for h in handles])
    return d.addCallback(lambda done: max(_exit_code(t.result) for t in done))


def main(argv=None):
    """Main entry point"""
    parser, args = _parse_arguments(argv)
    _handle_version_check(args)
    if not args.command:
        parser.print_help()
        sys.exit(2)

    try:
        config = _load_configuration(args.config)
        log_file, log_level, syslog = _get_logging_config(config, args)
        setup_logging(log_file, log_level, syslog)
        logger = logging.getLogger("dns_policy_tester")
        _validate_config(config, logger)

        from dns_policy_tester import __version__
        from dns_policy_tester.engine import PolicyTestEngine
        from dns_policy_tester.metrics import MetricsCollector, MetricsServer
        from twisted.internet import defer, reactor

        metrics_enabled = bool(args.metrics_port) or config.getboolean("metrics", "enabled", False)
        collector = MetricsCollector(enabled=metrics_enabled)
        collector.set_info(__version__, config.get("resolver", "backend", "system"))
        context = build_context(config, collector)
        engine = PolicyTestEngine(context, config.getint("engine", "worker-threads", 4))
        engine.discovery.reachability_timeout = config.getfloat(
            "discovery", "reachability-timeout", REACHABILITY_TIMEOUT
        )

        metrics_server = MetricsServer(
            collector,
            config.get("metrics", "listen-address", "127.0.0.1"),
            args.metrics_port or config.getint("metrics", "listen-port", METRICS_DEFAULT_PORT),
        )
    except ConfigurationError as e:
        print(f"Configuration Error: {e.message}", file=sys.stderr)
        if e.suggestion:
            print(f"Suggestion: {e.suggestion}", file=sys.stderr)
        sys.exit(1)

    exit_code = [1]

    def go():
        metrics_server.start()
        d = defer.maybeDeferred(_start_work, engine, config, args, reactor)

        def finished(code):
            exit_code[0] = code

        def failed(failure):
            if failure.check(ConfigurationError):
                print(f"Configuration Error: {failure.value.message}", file=sys.stderr)
                if failure.value.suggestion:
                    print(f"Suggestion: {failure.value.suggestion}", file=sys.stderr)
            else:
                logger.error(f"Run failed: {failure.getErrorMessage()}")

        d.addCallbacks(finished, failed)
        d.addBoth(lambda _: reactor.stop())

    logger.info(f"DNS Policy Tester {__version__}: {args.command} {args.domain}")
    reactor.callWhenRunning(go)
    reactor.run()
    sys.exit(exit_code[0])


if __name__ == "__main__":
    main()
