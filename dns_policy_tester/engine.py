# dns_policy_tester/engine.py
# Version: 1.0.0
# Policy test engine - bounded worker pool, handles and callbacks

"""
Policy Test Engine

submit_test() hands a RoutingPolicyTest to a bounded Twisted thread pool and
returns a TestHandle at once. The handle's Deferred fires on the reactor
thread with the completed record; cancel() stops the run at its next
iteration boundary.
"""

import logging
from typing import Callable, Optional

from twisted.internet import defer, threads
from twisted.python.threadpool import ThreadPool

from .constants import DEFAULT_WORKER_THREADS, MAX_WORKER_THREADS, MIN_WORKER_THREADS
from .discovery import ARecordDiscovery
from .models import RoutingPolicyTest, TestResult
from .policies import CancellationToken, PolicyContext, create_procedure

logger = logging.getLogger(__name__)


class TestHandle:
    """Caller-side view of one submitted test"""

    __test__ = False

    def __init__(self, test: RoutingPolicyTest, token: CancellationToken, deferred: defer.Deferred):
        self.test = test
        self.token = token
        self.deferred = deferred
        self.done = False
        deferred.addBoth(self._mark_done)

    def _mark_done(self, result):
        self.done = True
        return result

    @property
    def test_id(self) -> str:
        return self.test.test_id

    def cancel(self):
        """Request cooperative cancellation"""
        if not self.done:
            logger.info(f"Cancelling test {self.test_id}")
        self.token.cancel()

    def add_callbacks(
        self,
        on_success: Optional[Callable[[RoutingPolicyTest], None]] = None,
        on_failure: Optional[Callable[[Exception], None]] = None,
        on_cancelled: Optional[Callable[[RoutingPolicyTest], None]] = None,
    ) -> "TestHandle":
        """
        Route the outcome to the matching callback.

        Every completed record, whatever its result, goes to on_success except
        CANCELLED ones, which go to on_cancelled. on_failure only sees errors
        raised outside the procedure boundary.
        """

        def dispatch(test):
            if test.result == TestResult.CANCELLED:
                if on_cancelled:
                    on_cancelled(test)
            elif on_success:
                on_success(test)
            return test

        def failed(failure):
            if on_failure:
                on_failure(failure.value)
                return None
            return failure

        self.deferred.addCallbacks(dispatch, failed)
        return self


class PolicyTestEngine:
    """Runs policy tests and discovery on a bounded worker pool"""

    def __init__(
        self,
        context: PolicyContext,
        max_workers: int = DEFAULT_WORKER_THREADS,
        discovery: Optional[ARecordDiscovery] = None,
        reactor=None,
        pool=None,
    ):
        self.context = context
        self.discovery = discovery or ARecordDiscovery(dig=context.dig, classifier=context.classifier)
        if reactor is None:
            from twisted.internet import reactor
        self.reactor = reactor

        workers = max(MIN_WORKER_THREADS, min(MAX_WORKER_THREADS, max_workers))
        if pool is None:
            pool = ThreadPool(minthreads=MIN_WORKER_THREADS, maxthreads=workers, name="dns-policy-tester")
        self.pool = pool
        self.max_workers = workers
        self.started = False

    def start(self):
        if self.started:
            return
        self.pool.start()
        self.started = True
        self.reactor.addSystemEventTrigger("during", "shutdown", self.stop)
        logger.info(f"Policy test engine started ({self.max_workers} workers)")

    def stop(self):
        if not self.started:
            return
        self.started = False
        self.pool.stop()
        logger.info("Policy test engine stopped")

    def run_test(self, test: RoutingPolicyTest, token: Optional[CancellationToken] = None) -> RoutingPolicyTest:
        """Run a test in the calling thread and return the completed record"""
        metrics = self.context.metrics
        if metrics is not None:
            metrics.record_test_started()
        try:
            procedure = create_procedure(test.policy_type, self.context)
            return procedure.run(test, token)
        finally:
            if metrics is not None:
                metrics.record_test_finished(
                    test.policy_type.value, test.result.value if test.result else "UNKNOWN"
                )

    def submit_test(self, test: RoutingPolicyTest) -> TestHandle:
        """Queue test on the worker pool; the handle's Deferred fires with the record"""
        self.start()
        token = CancellationToken()
        d = threads.deferToThreadPool(self.reactor, self.pool, self.run_test, test, token)
        logger.info(f"Submitted test {test.test_id}: {test.description()}")
        return TestHandle(test, token, d)

    def discover_a_records(
        self, domain: str, token: Optional[CancellationToken] = None, auto_designate: bool = True
    ) -> defer.Deferred:
        """Discovery on the worker pool; the Deferred fires with a DiscoverySet"""
        self.start()
        return threads.deferToThreadPool(
            self.reactor, self.pool, self.discovery.discover, domain, token, auto_designate
        )
