#!/usr/bin/env python3
"""Unit tests for reachability and latency probes"""

import subprocess

import pytest

from dns_policy_tester.probes import LatencyProbe, ReachabilityProbe, parse_ping_average

LINUX_PING = """PING 52.1.2.3 (52.1.2.3) 56(84) bytes of data.
64 bytes from 52.1.2.3: icmp_seq=1 ttl=52 time=11.8 ms

--- 52.1.2.3 ping statistics ---
3 packets transmitted, 3 received, 0% packet loss, time 2003ms
rtt min/avg/max/mdev = 11.214/12.612/14.020/1.146 ms
"""

BSD_PING = "round-trip min/avg/max/stddev = 20.1/24.5/30.2/4.1 ms\n"


class FakeConnection:
    def __init__(self):
        self.closed = False

    def close(self):
        self.closed = True


class TestPingParsing:
    def test_linux_summary(self):
        assert parse_ping_average(LINUX_PING) == pytest.approx(12.612)

    def test_bsd_summary(self):
        assert parse_ping_average(BSD_PING) == pytest.approx(24.5)

    def test_no_summary(self):
        assert parse_ping_average("100% packet loss") is None


class TestReachabilityProbe:
    """Test TCP reachability checks"""

    def test_open_port(self):
        conn = FakeConnection()
        probe = ReachabilityProbe(connect=lambda address, timeout: conn)
        assert probe.is_reachable("52.1.2.3")
        assert conn.closed

    def test_refused_counts_as_reachable(self):
        def refuse(address, timeout):
            raise ConnectionRefusedError()

        assert ReachabilityProbe(connect=refuse).is_reachable("52.1.2.3")

    def test_second_port_tried(self):
        attempts = []

        def connect(address, timeout):
            attempts.append(address)
            if address[1] == 443:
                raise OSError("timed out")
            return FakeConnection()

        assert ReachabilityProbe(connect=connect).is_reachable("52.1.2.3", 1.0)
        assert attempts == [("52.1.2.3", 443), ("52.1.2.3", 80)]

    def test_unreachable(self):
        def timeout(address, timeout):
            raise OSError("timed out")

        assert not ReachabilityProbe(connect=timeout).is_reachable("192.0.2.1")


class StubReachability:
    def __init__(self, reachable):
        self.reachable = reachable

    def is_reachable(self, ip, timeout=5.0):
        return self.reachable


class TestLatencyProbe:
    """Test latency measurement"""

    def test_ping_average_rounded(self):
        def runner(cmd, timeout):
            assert cmd == ["ping", "-c", "3", "52.1.2.3"]
            return subprocess.CompletedProcess(cmd, 0, stdout=LINUX_PING, stderr="")

        assert LatencyProbe(StubReachability(True), runner=runner).measure_latency("52.1.2.3") == 13

    def test_falls_back_to_connect_timing(self):
        def runner(cmd, timeout):
            raise FileNotFoundError("ping")

        latency = LatencyProbe(StubReachability(True), runner=runner).measure_latency("52.1.2.3")
        assert latency >= 0

    def test_failed_ping_and_unreachable(self):
        def runner(cmd, timeout):
            return subprocess.CompletedProcess(cmd, 1, stdout="", stderr="")

        assert LatencyProbe(StubReachability(False), runner=runner).measure_latency("192.0.2.1") == -1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
