"""Bounded readiness polling.

Waits are fixed-interval and fixed-budget: ``attempts = timeout // interval``
predicate evaluations, with a sleep between failures. A timeout is reported,
not raised, so callers decide whether it is fatal (``install``) or just a
warning (``status``, optional steps).
"""
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from tenacity import RetryError, Retrying, retry_if_result, stop_after_attempt, wait_fixed

from .errors import ReadinessTimeout

logger = logging.getLogger("rfbootstrap.readiness")


class WaitOutcome(str, Enum):
    READY = 'ready'
    TIMED_OUT = 'timed_out'


@dataclass
class ReadinessCheck:
    description: str
    predicate: Callable[[], bool]
    timeout: float = 300
    interval: float = 5

    @property
    def attempts(self) -> int:
        if self.interval <= 0:
            return 1
        return max(1, int(self.timeout // self.interval))


class ReadinessWaiter:
    def __init__(self, sleep: Optional[Callable[[float], None]] = None):
        self.sleep = sleep or time.sleep

    def wait(self, check: ReadinessCheck) -> WaitOutcome:
        logger.info(f"⏳ Waiting for {check.description} (up to {check.attempts} checks, {check.interval}s apart)")

        def probe() -> bool:
            try:
                return bool(check.predicate())
            except Exception as e:
                logger.debug(f"{check.description} not ready yet: {e}")
                return False

        retrying = Retrying(
            stop=stop_after_attempt(check.attempts),
            wait=wait_fixed(check.interval),
            retry=retry_if_result(lambda ready: not ready),
            sleep=self.sleep,
        )
        try:
            retrying(probe)
        except RetryError:
            logger.warning(f"⚠️  Timed out waiting for {check.description}")
            return WaitOutcome.TIMED_OUT

        logger.info(f"✅ {check.description} is ready")
        return WaitOutcome.READY

    def require(self, check: ReadinessCheck, error_message: Optional[str] = None) -> None:
        """Wait and escalate a timeout into :class:`ReadinessTimeout`."""
        if self.wait(check) is WaitOutcome.TIMED_OUT:
            raise ReadinessTimeout(error_message or f"Timed out waiting for {check.description}")


def nodes_ready(api) -> Callable[[], bool]:
    """All nodes report Ready (and there is at least one)."""
    def predicate() -> bool:
        nodes = api.list_nodes()
        return bool(nodes) and all(node.ready for node in nodes)
    return predicate


def deployment_available(api, namespace: str, name: str) -> Callable[[], bool]:
    return lambda: api.deployment_available(namespace, name)


def pods_ready(api, namespace: str, selector: str) -> Callable[[], bool]:
    """At least one pod matches ``selector`` and every match is Ready."""
    def predicate() -> bool:
        pods = api.list_pods(namespace, selector)
        return bool(pods) and all(pod.ready for pod in pods)
    return predicate
