# dns_policy_tester/resolution.py
# Version: 1.0.0
# Resolution adapters - host resolution, dig and twisted.names backends

"""
DNS Resolution Adapters

Every backend answers resolve(domain, resolver=None) with a ResolutionOutcome
and never lets a lookup error escape. All parsing of dig text output lives in
this module so the policy procedures never see the tool's format.
"""

import logging
import re
import socket
import subprocess
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

from twisted.internet import defer, threads
from twisted.names import client, dns
from twisted.names import error as dns_error

from .constants import (
    CLIENT_SUBNET_PREFIX,
    DEFAULT_RECORD_TTL,
    DIG_COMMAND,
    DIG_DIAGNOSTIC_TIMEOUT,
    DIG_QUERY_TIMEOUT,
    SYSTEM_RESOLVER_LABEL,
    TWISTED_QUERY_TIMEOUT,
)
from .errors import ConfigurationError, ResolutionFailure

logger = logging.getLogger(__name__)

IPV4_LINE = re.compile(r"^\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}$")
SECTION_HEADER = re.compile(r"^;;\s+(\w+)\s+SECTION:")

CommandRunner = Callable[[List[str], float], subprocess.CompletedProcess]


@dataclass
class ResolutionOutcome:
    """Typed result of one lookup"""

    domain: str
    addresses: List[str] = field(default_factory=list)
    elapsed_ms: float = 0.0
    error: Optional[str] = None
    raw_output: str = ""
    resolver: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and bool(self.addresses)


@dataclass
class DigRecord:
    """One resource record line from a dig answer or authority section"""

    name: str
    ttl: int
    rtype: str
    value: str


@dataclass
class DigAnswer:
    """Parsed full (non +short) dig output"""

    answers: List[DigRecord] = field(default_factory=list)
    authority: List[DigRecord] = field(default_factory=list)
    elapsed_ms: float = 0.0
    raw_output: str = ""
    error: Optional[str] = None

    @property
    def has_answer(self) -> bool:
        return bool(self.answers)

    @property
    def addresses(self) -> List[str]:
        return [r.value for r in self.answers if r.rtype == "A"]

    @property
    def ttl(self) -> int:
        """TTL of the first answer, DEFAULT_RECORD_TTL when none parsed"""
        if self.answers:
            return self.answers[0].ttl
        return DEFAULT_RECORD_TTL


# =============================================================================
# DIG OUTPUT PARSING
# =============================================================================


def parse_short_output(output: str) -> List[str]:
    """Extract IPv4 addresses from `dig +short` output, skipping CNAME targets"""
    addresses = []
    for line in output.splitlines():
        line = line.strip()
        if IPV4_LINE.match(line) and line not in addresses:
            addresses.append(line)
    return addresses


def parse_record_line(line: str) -> Optional[DigRecord]:
    """Parse 'name ttl class type value' into a DigRecord"""
    parts = line.split(None, 4)
    if len(parts) < 5:
        return None
    name, ttl, _cls, rtype, value = parts
    try:
        ttl_value = int(ttl)
    except ValueError:
        return None
    return DigRecord(name=name, ttl=ttl_value, rtype=rtype.upper(), value=value.strip().strip('"'))


def parse_full_output(output: str) -> Tuple[List[DigRecord], List[DigRecord]]:
    """Split full dig output into answer and authority records"""
    sections = {"ANSWER": [], "AUTHORITY": []}
    current = None
    for raw in output.splitlines():
        line = raw.strip()
        header = SECTION_HEADER.match(line)
        if header:
            current = header.group(1).upper()
            continue
        if not line:
            current = None
            continue
        if line.startswith(";") or current not in sections:
            continue
        record = parse_record_line(line)
        if record:
            sections[current].append(record)
    return sections["ANSWER"], sections["AUTHORITY"]


def parse_txt_output(output: str) -> List[str]:
    """TXT strings from `dig +short TXT` output with quotes removed"""
    values = []
    for line in output.splitlines():
        line = line.strip()
        if line:
            values.append(line.replace('"', "").strip())
    return values


def parse_ns_output(output: str) -> List[str]:
    """Name server host names from `dig NS +short` output"""
    return [line.strip() for line in output.splitlines() if line.strip().endswith(".")]


def _run_command(cmd: List[str], timeout: float) -> subprocess.CompletedProcess:
    return subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)


# =============================================================================
# RESOLVERS
# =============================================================================


class Resolver(ABC):
    """Base class for resolution backends"""

    @abstractmethod
    def resolve(self, domain: str, resolver: Optional[str] = None) -> ResolutionOutcome:
        """Resolve the A records of domain, optionally through a specific resolver"""
        pass

    @abstractmethod
    def name(self) -> str:
        """Get backend name"""
        pass


def _is_override(resolver: Optional[str]) -> bool:
    return bool(resolver) and resolver != SYSTEM_RESOLVER_LABEL


class DigResolver(Resolver):
    """Resolution through the external dig tool"""

    def __init__(
        self,
        default_resolver: Optional[str] = None,
        timeout: float = DIG_QUERY_TIMEOUT,
        dig_command: str = DIG_COMMAND,
        runner: Optional[CommandRunner] = None,
    ):
        self.default_resolver = default_resolver if _is_override(default_resolver) else None
        self.timeout = timeout
        self.dig_command = dig_command
        self.runner = runner or _run_command

    def name(self) -> str:
        return "dig"

    def _run(self, domain: str, args: Sequence[str], timeout: Optional[float] = None) -> str:
        """Run dig and return stdout, raising ResolutionFailure on any failure"""
        cmd = [self.dig_command] + list(args)
        timeout = timeout or self.timeout
        try:
            completed = self.runner(cmd, timeout)
        except subprocess.TimeoutExpired:
            raise ResolutionFailure(domain, f"dig timed out after {timeout}s")
        except OSError as e:
            raise ResolutionFailure(domain, f"could not run {self.dig_command}: {e}")

        if completed.returncode != 0:
            stderr = (completed.stderr or "").strip()
            raise ResolutionFailure(domain, f"dig exited with {completed.returncode}: {stderr}")
        return completed.stdout or ""

    def _server_args(self, resolver: Optional[str]) -> List[str]:
        server = resolver if _is_override(resolver) else self.default_resolver
        return [f"@{server}"] if server else []

    def resolve(self, domain: str, resolver: Optional[str] = None) -> ResolutionOutcome:
        args = self._server_args(resolver) + [domain, "A", "+short", f"+time={int(self.timeout)}", "+tries=1"]
        start = time.perf_counter()
        try:
            output = self._run(domain, args)
        except ResolutionFailure as e:
            elapsed = (time.perf_counter() - start) * 1000
            logger.debug(f"dig lookup of {domain} failed: {e.reason}")
            return ResolutionOutcome(domain, elapsed_ms=elapsed, error=e.reason, resolver=resolver)

        elapsed = (time.perf_counter() - start) * 1000
        addresses = parse_short_output(output)
        error = None if addresses else "no A records returned"
        return ResolutionOutcome(domain, addresses, elapsed, error, output, resolver)

    def resolve_detailed(self, domain: str, resolver: Optional[str] = None) -> ResolutionOutcome:
        """Second-chance lookup reading the full answer section"""
        answer = self.query_full(domain, resolver)
        if answer.error:
            return ResolutionOutcome(domain, elapsed_ms=answer.elapsed_ms, error=answer.error, resolver=resolver)
        addresses = answer.addresses
        error = None if addresses else "no A records returned"
        return ResolutionOutcome(domain, addresses, answer.elapsed_ms, error, answer.raw_output, resolver)

    def query_full(
        self, domain: str, resolver: Optional[str] = None, extra_args: Sequence[str] = ()
    ) -> DigAnswer:
        """Full-output A query; answer and authority sections parsed"""
        args = self._server_args(resolver) + [domain, "A"] + list(extra_args)
        start = time.perf_counter()
        try:
            output = self._run(domain, args, DIG_DIAGNOSTIC_TIMEOUT)
        except ResolutionFailure as e:
            return DigAnswer(elapsed_ms=(time.perf_counter() - start) * 1000, error=e.reason)

        answers, authority = parse_full_output(output)
        return DigAnswer(answers, authority, (time.perf_counter() - start) * 1000, output)

    def query_txt(self, name: str, resolver: Optional[str] = None) -> List[str]:
        args = self._server_args(resolver) + ["+nocl", "TXT", name, "+short"]
        try:
            return parse_txt_output(self._run(name, args, DIG_DIAGNOSTIC_TIMEOUT))
        except ResolutionFailure as e:
            logger.debug(f"TXT query for {name} failed: {e.reason}")
            return []

    def query_ns(self, domain: str) -> List[str]:
        try:
            return parse_ns_output(self._run(domain, ["NS", domain, "+short"], DIG_DIAGNOSTIC_TIMEOUT))
        except ResolutionFailure as e:
            logger.debug(f"NS query for {domain} failed: {e.reason}")
            return []

    def query_with_subnet(
        self, domain: str, name_server: str, client_ip: str, prefix_length: int = CLIENT_SUBNET_PREFIX
    ) -> DigAnswer:
        """Ask name_server directly, attaching a client-subnet hint"""
        return self.query_full(domain, name_server, [f"+subnet={client_ip}/{prefix_length}"])


class SystemResolver(Resolver):
    """Host name resolution through getaddrinfo"""

    def __init__(self, override_resolver: Optional[Resolver] = None):
        # Lookups with an explicit resolver go through a backend that can target one
        self.override_resolver = override_resolver or DigResolver()

    def name(self) -> str:
        return "system"

    def resolve(self, domain: str, resolver: Optional[str] = None) -> ResolutionOutcome:
        if _is_override(resolver):
            return self.override_resolver.resolve(domain, resolver)

        start = time.perf_counter()
        try:
            infos = socket.getaddrinfo(domain, None, socket.AF_INET, socket.SOCK_STREAM)
        except (socket.gaierror, UnicodeError, OSError) as e:
            elapsed = (time.perf_counter() - start) * 1000
            return ResolutionOutcome(domain, elapsed_ms=elapsed, error=str(e))

        elapsed = (time.perf_counter() - start) * 1000
        addresses = []
        for info in infos:
            address = info[4][0]
            if address not in addresses:
                addresses.append(address)
        error = None if addresses else "no A records returned"
        return ResolutionOutcome(domain, addresses, elapsed, error)


class TwistedNamesResolver(Resolver):
    """
    twisted.names lookups against a fixed resolver.

    resolve() blocks its calling thread until the reactor delivers the answer,
    so it must be called from a worker thread, never from the reactor thread.
    """

    def __init__(
        self,
        server_address: str,
        server_port: int = 53,
        timeout: float = TWISTED_QUERY_TIMEOUT,
        reactor=None,
        client_resolver=None,
    ):
        self.server_address = server_address
        self.server_port = server_port
        self.timeout = timeout
        if reactor is None:
            from twisted.internet import reactor
        self.reactor = reactor
        self.client_resolver = client_resolver or client.Resolver(
            servers=[(server_address, server_port)], timeout=(timeout,), reactor=reactor
        )

    def name(self) -> str:
        return "twisted"

    def _resolver_for(self, resolver: Optional[str]):
        if _is_override(resolver) and resolver != self.server_address:
            return client.Resolver(
                servers=[(resolver, self.server_port)], timeout=(self.timeout,), reactor=self.reactor
            )
        return self.client_resolver

    def resolve(self, domain: str, resolver: Optional[str] = None) -> ResolutionOutcome:
        target = self._resolver_for(resolver)
        start = time.perf_counter()
        try:
            answers, _authority, _additional = threads.blockingCallFromThread(
                self.reactor, target.lookupAddress, domain
            )
        except (dns_error.DomainError, dns_error.DNSServerError, dns_error.DNSQueryRefusedError,
                defer.TimeoutError) as e:
            elapsed = (time.perf_counter() - start) * 1000
            return ResolutionOutcome(domain, elapsed_ms=elapsed, error=f"{e.__class__.__name__}: {e}",
                                     resolver=resolver or self.server_address)

        elapsed = (time.perf_counter() - start) * 1000
        addresses = []
        for rr in answers:
            if rr.type == dns.A:
                address = rr.payload.dottedQuad()
                if address not in addresses:
                    addresses.append(address)
        error = None if addresses else "no A records returned"
        return ResolutionOutcome(domain, addresses, elapsed, error, resolver=resolver or self.server_address)


def build_resolver(config) -> Resolver:
    """Select the resolution backend named in the [resolver] config section"""
    backend = (config.get("resolver", "backend", "system") or "system").lower()
    server = config.get("resolver", "server-address", "") or None
    timeout = config.getfloat("resolver", "timeout", DIG_QUERY_TIMEOUT)

    if backend == "dig":
        return DigResolver(default_resolver=server, timeout=timeout)
    if backend == "twisted":
        if not server:
            raise ConfigurationError(
                "The twisted resolver backend needs a resolver to query",
                "Add 'server-address = <IP address>' to the [resolver] section",
            )
        return TwistedNamesResolver(server, timeout=timeout)
    if backend != "system":
        logger.warning(f"Unknown resolver backend '{backend}', using system resolution")
    return SystemResolver(DigResolver(timeout=timeout))
