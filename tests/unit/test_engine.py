#!/usr/bin/env python3
"""Unit tests for the policy test engine and test handles"""

import pytest
from prometheus_client import CollectorRegistry
from twisted.internet import defer

from dns_policy_tester.engine import PolicyTestEngine, TestHandle
from dns_policy_tester.discovery import ARecordDiscovery
from dns_policy_tester.metrics import MetricsCollector
from dns_policy_tester.models import RoutingPolicyTest, RoutingPolicyType, TestResult
from dns_policy_tester.policies import CancellationToken
from test_utils import (
    FakeDig,
    ImmediateReactor,
    QueuedPool,
    ScriptedResolver,
    SynchronousPool,
    make_context,
)

WEIGHTS = {"52.1.1.1": 70, "54.2.2.2": 30}
SEVENTY_THIRTY = ["52.1.1.1"] * 7 + ["54.2.2.2"] * 3


def weighted_test(iterations=20):
    return RoutingPolicyTest(
        RoutingPolicyType.WEIGHTED, "weighted.example.com", iterations=iterations, expected_weights=dict(WEIGHTS)
    )


def build_engine(pool=None, resolver=None, **context_kwargs):
    context = make_context(resolver or ScriptedResolver(sequence=SEVENTY_THIRTY), **context_kwargs)
    reactor = ImmediateReactor()
    engine = PolicyTestEngine(context, max_workers=4, reactor=reactor, pool=pool or SynchronousPool())
    return engine, reactor


class TestEngineLifecycle:
    def test_worker_bound_is_clamped(self):
        context = make_context()
        assert PolicyTestEngine(context, max_workers=500, reactor=ImmediateReactor()).max_workers == 32
        assert PolicyTestEngine(context, max_workers=0, reactor=ImmediateReactor()).max_workers == 1

    def test_start_registers_shutdown_trigger(self):
        engine, reactor = build_engine()
        engine.start()
        engine.start()
        assert engine.pool.started
        assert reactor.triggers == [("during", "shutdown", engine.stop)]

        engine.stop()
        assert engine.pool.stopped
        assert not engine.started

    def test_submit_starts_engine(self):
        engine, _ = build_engine()
        engine.submit_test(weighted_test())
        assert engine.started


class TestSubmission:
    """Test submit_test() and handle callbacks"""

    def test_handle_fires_with_completed_record(self):
        engine, _ = build_engine()
        test = weighted_test()
        handle = engine.submit_test(test)
        results = []
        handle.deferred.addCallback(results.append)

        assert results == [test]
        assert test.result == TestResult.PASSED
        assert handle.done
        assert handle.test_id == test.test_id

    def test_success_callback_receives_every_completed_result(self):
        engine, _ = build_engine(resolver=ScriptedResolver())
        seen = []
        engine.submit_test(weighted_test()).add_callbacks(on_success=seen.append, on_failure=seen.append)
        assert len(seen) == 1
        assert seen[0].result == TestResult.FAILED

    def test_cancel_before_run(self):
        pool = QueuedPool()
        resolver = ScriptedResolver(sequence=SEVENTY_THIRTY)
        engine, _ = build_engine(pool, resolver)
        cancelled, succeeded = [], []

        handle = engine.submit_test(weighted_test())
        handle.add_callbacks(on_success=succeeded.append, on_cancelled=cancelled.append)
        assert not handle.done
        handle.cancel()
        pool.run_pending()

        assert succeeded == []
        assert cancelled[0].result == TestResult.CANCELLED
        assert resolver.calls == []

    def test_failure_callback(self):
        test = weighted_test()
        errors = []
        handle = TestHandle(test, CancellationToken(), defer.fail(RuntimeError("worker lost")))
        handle.add_callbacks(on_failure=errors.append)
        assert str(errors[0]) == "worker lost"

    def test_failure_without_callback_propagates(self):
        handle = TestHandle(weighted_test(), CancellationToken(), defer.fail(RuntimeError("worker lost")))
        handle.add_callbacks(on_success=lambda test: None)
        failures = []
        handle.deferred.addErrback(failures.append)
        assert failures[0].check(RuntimeError)

    def test_run_test_records_metrics(self):
        registry = CollectorRegistry()
        engine, _ = build_engine(metrics=MetricsCollector(registry=registry))
        engine.run_test(weighted_test())
        assert registry.get_sample_value("dns_policy_tests_running") == 0.0
        assert registry.get_sample_value(
            "dns_policy_tests_total", {"policy": "weighted", "result": "PASSED"}
        ) == 1.0


class TestDiscoverySubmission:
    def test_discover_a_records(self):
        dig = FakeDig(answers={"example.com": ["52.1.1.1"]})
        engine, _ = build_engine()
        engine.discovery = ARecordDiscovery(dig=dig, fallback=ScriptedResolver(), reachability=_Unreachable())
        results = []
        engine.discover_a_records("example.com").addCallback(results.append)

        records = results[0]
        assert [r.ip_address for r in records] == ["52.1.1.1"]
        assert records.primary is records[0]

    def test_discover_without_designation(self):
        dig = FakeDig(answers={"example.com": ["52.1.1.1"]})
        engine, _ = build_engine()
        engine.discovery = ARecordDiscovery(dig=dig, fallback=ScriptedResolver(), reachability=_Unreachable())
        results = []
        engine.discover_a_records("example.com", auto_designate=False).addCallback(results.append)
        assert results[0].primary is None


class _Unreachable:
    def is_reachable(self, ip, timeout=5.0):
        return False


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
