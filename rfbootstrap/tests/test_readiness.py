import pytest

from ..modules.errors import ReadinessTimeout
from ..modules.readiness import (ReadinessCheck, WaitOutcome, deployment_available,
                                 nodes_ready, pods_ready)
from ..modules.models import NodeInfo, PodInfo
from .fakes import FakeClusterApi


class Counter:
    def __init__(self, succeed_on=None, error=None):
        self.calls = 0
        self.succeed_on = succeed_on
        self.error = error

    def __call__(self):
        self.calls += 1
        if self.error:
            raise self.error
        return self.succeed_on is not None and self.calls >= self.succeed_on


def test_attempts_from_timeout_and_interval():
    assert ReadinessCheck('x', lambda: True, timeout=300, interval=5).attempts == 60
    assert ReadinessCheck('x', lambda: True, timeout=3, interval=5).attempts == 1
    assert ReadinessCheck('x', lambda: True, timeout=10, interval=0).attempts == 1


def test_wait_polls_exactly_attempts_times_then_times_out(waiter, sleeps):
    predicate = Counter()
    outcome = waiter.wait(ReadinessCheck('never', predicate, timeout=10, interval=2))
    assert outcome is WaitOutcome.TIMED_OUT
    assert predicate.calls == 5
    assert sleeps == [2, 2, 2, 2]


def test_wait_stops_as_soon_as_ready(waiter, sleeps):
    predicate = Counter(succeed_on=3)
    assert waiter.wait(ReadinessCheck('soon', predicate, timeout=10, interval=1)) is WaitOutcome.READY
    assert predicate.calls == 3
    assert len(sleeps) == 2


def test_predicate_errors_count_as_not_ready(waiter):
    predicate = Counter(error=ConnectionError("connection refused"))
    assert waiter.wait(ReadinessCheck('flaky', predicate, timeout=3, interval=1)) is WaitOutcome.TIMED_OUT
    assert predicate.calls == 3


def test_require_raises_with_message(waiter):
    with pytest.raises(ReadinessTimeout, match="RKE2 failed to start properly"):
        waiter.require(ReadinessCheck('rke2', lambda: False, timeout=2, interval=1),
                       "RKE2 failed to start properly")


def test_nodes_ready_requires_every_node():
    api = FakeClusterApi(nodes=[NodeInfo('a', True), NodeInfo('b', False)])
    assert nodes_ready(api)() is False
    api.nodes = [NodeInfo('a', True), NodeInfo('b', True)]
    assert nodes_ready(api)() is True
    api.nodes = []
    assert nodes_ready(api)() is False


def test_pods_ready_requires_at_least_one_pod():
    api = FakeClusterApi()
    check = pods_ready(api, 'rapidfort', 'app=rfruntime')
    assert check() is False
    api.pods['rapidfort'] = [PodInfo('rfruntime-abc', 'Running', ready=True)]
    assert check() is True
    api.pods['rapidfort'].append(PodInfo('rfruntime-def', 'Pending', ready=False))
    assert check() is False


def test_deployment_available():
    api = FakeClusterApi(available={('registry', 'registry')})
    assert deployment_available(api, 'registry', 'registry')() is True
    assert deployment_available(api, 'registry', 'other')() is False
