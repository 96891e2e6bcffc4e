#!/usr/bin/env python3
"""
Test utilities for DNS policy tester tests

Provides common functionality for all tests including:
- Finding repository root
- Creating test configurations
- Stand-ins for the reactor, thread pool, resolvers and HTTP sessions
"""

import itertools
import os
import socket
import subprocess
import sys
import tempfile
from pathlib import Path

import requests

from dns_policy_tester.policies import PolicyContext, PolicySettings
from dns_policy_tester.resolution import DigAnswer, DigRecord, DigResolver, ResolutionOutcome, Resolver


def find_repo_root():
    """
    Find the repository root by looking for key indicators.
    Works from any subdirectory within the repo.

    Returns:
        Path: Repository root directory
    """
    current = Path(__file__).resolve().parent

    while current != current.parent:
        if (current / "setup.py").exists() and (current / "dns_policy_tester" / "__init__.py").exists():
            return current
        current = current.parent

    raise RuntimeError("Could not find repository root. Are you running from within the repo?")


def setup_test_environment():
    """Add repo root to Python path; returns the root"""
    repo_root = find_repo_root()
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)
    return repo_root


def create_temp_config(content, suffix=".cfg"):
    """
    Create a temporary test configuration file.

    Returns:
        Path: Path to created config file (caller removes it)
    """
    fd, path = tempfile.mkstemp(suffix=suffix, prefix="dns-policy-test-")
    with os.fdopen(fd, "w") as f:
        f.write(content)
    return Path(path)


TEST_CONFIG_TEMPLATE = """# Test DNS Policy Tester Configuration
[engine]
worker-threads = {workers}
iterations = {iterations}

[resolver]
backend = {backend}
server-address = {server}

[weighted]
expected-weights = {weights}

[geolocation]
ip-lookups = false
use-vantage-points = false
"""


def create_test_config(workers=2, iterations=50, backend="dig", server="127.0.0.1",
                       weights="52.1.1.1:70, 54.2.2.2:30"):
    content = TEST_CONFIG_TEMPLATE.format(
        workers=workers, iterations=iterations, backend=backend, server=server, weights=weights
    )
    return create_temp_config(content)


def zero_delay_settings(**overrides) -> PolicySettings:
    """Policy settings with every sleep removed"""
    values = dict(
        delay_small=0.0,
        delay_medium=0.0,
        high_volume_delay=0.0,
        strict_delay=0.0,
        vantage_settle_delay=0.0,
        identity_delay=0.0,
        anycast_delay=0.0,
    )
    values.update(overrides)
    return PolicySettings(**values)


def make_context(resolver=None, dig=None, **kwargs) -> PolicyContext:
    kwargs.setdefault("settings", zero_delay_settings())
    return PolicyContext(resolver=resolver or ScriptedResolver(), dig=dig or FakeDig(), **kwargs)


# =============================================================================
# Twisted stand-ins
# =============================================================================


class FakePort:
    def __init__(self):
        self.listening = True

    def stopListening(self):
        self.listening = False


class ImmediateReactor:
    """Runs callFromThread work at once in the calling thread"""

    def __init__(self):
        self.triggers = []
        self.listening = []

    def callFromThread(self, f, *args, **kwargs):
        f(*args, **kwargs)

    def addSystemEventTrigger(self, phase, event, f, *args, **kwargs):
        self.triggers.append((phase, event, f))

    def listenTCP(self, port, factory, interface=""):
        self.listening.append((port, factory, interface))
        return FakePort()


class SynchronousPool:
    """ThreadPool stand-in that runs work immediately"""

    def __init__(self):
        self.started = False
        self.stopped = False

    def start(self):
        self.started = True

    def stop(self):
        self.stopped = True

    def callInThreadWithCallback(self, onResult, func, *args, **kwargs):
        from twisted.python.failure import Failure

        try:
            result = func(*args, **kwargs)
        except Exception:
            onResult(False, Failure())
            return
        onResult(True, result)


class QueuedPool(SynchronousPool):
    """Holds submitted work until run_pending() is called"""

    def __init__(self):
        super().__init__()
        self.pending = []

    def callInThreadWithCallback(self, onResult, func, *args, **kwargs):
        self.pending.append((onResult, func, args, kwargs))

    def run_pending(self):
        pending, self.pending = self.pending, []
        for onResult, func, args, kwargs in pending:
            SynchronousPool.callInThreadWithCallback(self, onResult, func, *args, **kwargs)


# =============================================================================
# Resolution stand-ins
# =============================================================================


class ScriptedResolver(Resolver):
    """
    Resolver answering from a domain mapping or a cycling sequence of answers.

    on_call(n) runs before the n-th lookup is answered; exc is raised
    instead of answering when set.
    """

    def __init__(self, mapping=None, sequence=None, on_call=None, exc=None, elapsed_ms=1.0):
        self.mapping = mapping or {}
        self.sequence = list(sequence or [])
        self.on_call = on_call
        self.exc = exc
        self.elapsed_ms = elapsed_ms
        self.calls = []
        self.default_resolver = None

    def name(self):
        return "scripted"

    def resolve(self, domain, resolver=None):
        self.calls.append((domain, resolver))
        if self.on_call:
            self.on_call(len(self.calls))
        if self.exc:
            raise self.exc

        if self.sequence:
            addresses = self.sequence[(len(self.calls) - 1) % len(self.sequence)]
        else:
            addresses = self.mapping.get(domain, [])
        if isinstance(addresses, str):
            addresses = [addresses]
        error = None if addresses else "no A records returned"
        return ResolutionOutcome(domain, list(addresses), self.elapsed_ms, error, resolver=resolver)


def a_answer(name, *addresses, ttl=60, elapsed_ms=5.0):
    """DigAnswer holding one A record per address"""
    return DigAnswer([DigRecord(name, ttl, "A", address) for address in addresses], elapsed_ms=elapsed_ms)


class FakeDig(DigResolver):
    """
    DigResolver with canned answers instead of a dig process.

    answers: domain -> addresses for resolve() without a resolver
    public: resolver -> addresses for resolve() through a resolver
    full: DigAnswer returned by query_full() for unknown servers
    subnet: name server -> DigAnswer
    txt: name -> list of TXT answers, handed out in turn
    ns: name servers returned by query_ns()
    """

    def __init__(self, answers=None, public=None, full=None, subnet=None, txt=None, ns=None,
                 elapsed_ms=20.0):
        super().__init__(runner=self._no_process)
        self.answers = answers or {}
        self.public = public or {}
        self.full = full or DigAnswer()
        self.subnet = subnet or {}
        self.txt = {name: itertools.cycle(responses) for name, responses in (txt or {}).items()}
        self.ns = list(ns or [])
        self.elapsed_ms = elapsed_ms
        self.calls = []

    @staticmethod
    def _no_process(cmd, timeout):
        raise OSError("dig is not available in tests")

    def resolve(self, domain, resolver=None):
        self.calls.append(("resolve", domain, resolver))
        addresses = self.public.get(resolver, []) if resolver else self.answers.get(domain, [])
        error = None if addresses else "no A records returned"
        return ResolutionOutcome(domain, list(addresses), self.elapsed_ms, error, resolver=resolver)

    def query_full(self, domain, resolver=None, extra_args=()):
        self.calls.append(("full", domain, resolver, tuple(extra_args)))
        return self.subnet.get(resolver, self.full)

    def query_txt(self, name, resolver=None):
        self.calls.append(("txt", name))
        responses = self.txt.get(name)
        return list(next(responses)) if responses else []

    def query_ns(self, domain):
        self.calls.append(("ns", domain))
        return list(self.ns)


def completed(stdout="", returncode=0, stderr=""):
    return subprocess.CompletedProcess(["dig"], returncode, stdout=stdout, stderr=stderr)


class RecordingRunner:
    """Command runner returning canned CompletedProcess objects"""

    def __init__(self, *results):
        self.results = list(results)
        self.commands = []

    def __call__(self, cmd, timeout):
        self.commands.append((cmd, timeout))
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, BaseException):
            raise result
        return result


# =============================================================================
# Geography stand-ins
# =============================================================================


class FakePublicIP:
    def __init__(self, ip="203.0.113.7"):
        self.ip = ip

    def get_public_ip(self):
        return self.ip


class FakeGeolocator:
    def __init__(self, labels=None):
        self.labels = labels or {}
        self.calls = []

    def locate(self, ip):
        self.calls.append(ip)
        return self.labels.get(ip, f"City of {ip}")


class FakeVantageProvider:
    """Vantage points answering from a list of (exit address, answer) pairs"""

    def __init__(self, rounds, available=True):
        self.rounds = list(rounds)
        self.available = available
        self.index = 0
        self.rotations = 0

    def is_available(self):
        return self.available

    def current_vantage_point_id(self):
        return self.rounds[self.index % len(self.rounds)][0]

    def resolve_through_vantage_point(self, name):
        return self.rounds[self.index % len(self.rounds)][1]

    def rotate_vantage_point(self):
        self.rotations += 1
        self.index += 1
        return True


class FakeResponse:
    def __init__(self, json_data=None, text="", status_code=200):
        self._json = json_data
        self.text = text
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        if self._json is None:
            raise ValueError("No JSON object could be decoded")
        return self._json


class FakeSession:
    """requests.Session stand-in: url -> FakeResponse or exception"""

    def __init__(self, responses):
        self.responses = responses
        self.requests = []

    def get(self, url, timeout=None, proxies=None):
        self.requests.append((url, proxies))
        response = self.responses.get(url)
        if response is None:
            raise requests.ConnectionError(f"no route to {url}")
        if isinstance(response, BaseException):
            raise response
        return response


class FakeSocket:
    """Socket stand-in replaying canned bytes"""

    def __init__(self, incoming=b"", replies=None):
        self.incoming = incoming
        self.replies = list(replies or [])
        self.sent = []
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False

    def sendall(self, data):
        self.sent.append(data)

    def recv(self, size):
        if self.replies:
            return self.replies.pop(0)
        chunk, self.incoming = self.incoming[:size], self.incoming[size:]
        return chunk

    def close(self):
        self.closed = True


def socks_reply(address, status=0):
    """SOCKS5 reply carrying an IPv4 address"""
    return bytes([5, status, 0, 1]) + socket.inet_aton(address) + b"\x00\x00"


# Automatically set up environment when imported
if __name__ != "__main__":
    try:
        setup_test_environment()
    except RuntimeError as e:
        print(f"Warning: Could not set up test environment: {e}", file=sys.stderr)
