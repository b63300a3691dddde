"""Temporal client configuration and connection management."""

from datetime import timedelta

from temporalio.client import (
    Client as TemporalClient,
    Schedule,
    ScheduleActionStartWorkflow,
    ScheduleAlreadyRunningError,
    ScheduleIntervalSpec,
    ScheduleSpec,
)

from app.core.config import TemporalSettings, CleanupSettings, settings
from app.temporal.workflows.file_cleanup import FileLifecycleCleanupWorkflow
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

CLEANUP_SCHEDULE_ID = "file-lifecycle-cleanup"


class TemporalClientManager:
    """Manages Temporal client connection."""

    def __init__(self, config: TemporalSettings):
        self.config = config
        self._client: TemporalClient | None = None

    async def get_client(self) -> TemporalClient:
        """Get or create Temporal client instance.

        Returns:
            TemporalClient: Connected Temporal client
        """
        if self._client is None:
            self._client = await TemporalClient.connect(
                self.config.target_host,
                namespace=self.config.namespace,
            )
        return self._client

    def close(self) -> None:
        """Forget the cached connection; the next call reconnects."""
        self._client = None


# Global Temporal client manager instance
_temporal_manager = TemporalClientManager(settings.temporal)


async def get_temporal_client() -> TemporalClient:
    return await _temporal_manager.get_client()


async def ensure_cleanup_schedule(
    client: TemporalClient,
    temporal: TemporalSettings,
    cleanup: CleanupSettings,
) -> bool:
    """Register the periodic lifecycle sweep.

    Returns:
        bool: True if the schedule was created, False if it already existed
    """
    schedule = Schedule(
        action=ScheduleActionStartWorkflow(
            FileLifecycleCleanupWorkflow.run,
            id=f"{CLEANUP_SCHEDULE_ID}-run",
            task_queue=temporal.task_queue,
        ),
        spec=ScheduleSpec(
            intervals=[ScheduleIntervalSpec(every=timedelta(hours=cleanup.schedule_interval_hours))]
        ),
    )

    try:
        await client.create_schedule(CLEANUP_SCHEDULE_ID, schedule)
    except ScheduleAlreadyRunningError:
        LOGGER.info(f"Schedule {CLEANUP_SCHEDULE_ID} already registered")
        return False

    LOGGER.info(
        f"Registered schedule {CLEANUP_SCHEDULE_ID} every {cleanup.schedule_interval_hours}h",
        extra={"task_queue": temporal.task_queue},
    )
    return True
