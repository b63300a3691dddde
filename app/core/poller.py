"""Bounded readiness polling with an adaptive interval."""

import asyncio
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Protocol

from app.models.compliance import IndexStatusSnapshot
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

# Elapsed seconds after which the interval is relaxed
FAST_PHASE_SECONDS = 60
MAX_RELAXED_INTERVAL = 10


class PollOutcome(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    TIMEOUT = "timeout"


class PollObserver(Protocol):
    """Notified once per distinct status value observed during a poll."""

    def on_status_change(self, target_id: str, snapshot: IndexStatusSnapshot) -> None:
        ...


class LoggingPollObserver:
    """Observer that only records progress in the log."""

    def __init__(self, label: str = "index"):
        self.label = label

    def on_status_change(self, target_id: str, snapshot: IndexStatusSnapshot) -> None:
        LOGGER.info(
            f"{self.label} {target_id} status: {snapshot.status}, "
            f"in_progress: {snapshot.in_progress}, completed: {snapshot.completed}, "
            f"failed: {snapshot.failed}"
        )


def index_readiness(snapshot: IndexStatusSnapshot) -> Optional[PollOutcome]:
    """Terminal rule for index readiness, None while still building."""
    if snapshot.in_progress == 0 and snapshot.failed == 0 and snapshot.completed > 0:
        return PollOutcome.COMPLETED
    if snapshot.failed > 0:
        return PollOutcome.FAILED
    return None


class ProgressivePoller:
    """Polls a status source until a terminal state or the timeout.

    Transport errors during a single iteration are logged and polling continues;
    only the timeout ends the loop without a terminal state.
    """

    def __init__(
        self,
        fetch_status: Callable[[str], Awaitable[IndexStatusSnapshot]],
        terminal_rule: Callable[[IndexStatusSnapshot], Optional[PollOutcome]] = index_readiness,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._fetch_status = fetch_status
        self._terminal_rule = terminal_rule
        self._sleep = sleep or asyncio.sleep
        self._clock = clock

    @staticmethod
    def next_interval(base_interval: float, elapsed: float) -> float:
        if elapsed < FAST_PHASE_SECONDS:
            return base_interval
        return min(base_interval * 2, MAX_RELAXED_INTERVAL)

    async def poll(
        self,
        target_id: str,
        base_interval: float,
        timeout: float,
        observer: Optional[PollObserver] = None,
    ) -> PollOutcome:
        start = self._clock()
        last_status: Any = object()

        while True:
            try:
                snapshot = await self._fetch_status(target_id)

                if observer is not None and snapshot.status != last_status:
                    observer.on_status_change(target_id, snapshot)
                last_status = snapshot.status

                outcome = self._terminal_rule(snapshot)
                if outcome is PollOutcome.COMPLETED:
                    LOGGER.info(f"{target_id} is ready")
                    return outcome
                if outcome is PollOutcome.FAILED:
                    LOGGER.error(f"{target_id} has failed files")
                    return outcome
            except Exception as e:
                LOGGER.warning(f"Error checking status of {target_id}: {e}")

            elapsed = self._clock() - start
            if elapsed > timeout:
                LOGGER.warning(f"Timeout waiting for {target_id} after {round(elapsed)}s")
                return PollOutcome.TIMEOUT

            await self._sleep(self.next_interval(base_interval, elapsed))
