"""Temporal worker service for file lifecycle maintenance.

This worker:
- Connects to the configured Temporal server
- Registers the lifecycle cleanup workflow and its activity
- Makes sure the periodic cleanup schedule exists
- Polls the maintenance task queue
"""

import asyncio

from temporalio.worker import Worker

from app.core.config import settings
from app.temporal.activities.file_cleanup import run_file_lifecycle_cleanup
from app.temporal.client import ensure_cleanup_schedule, get_temporal_client
from app.temporal.workflows.file_cleanup import FileLifecycleCleanupWorkflow
from app.utils.logging import get_logger

logger = get_logger(__name__)


async def main():
    """Start the Temporal worker."""
    temporal = settings.temporal
    logger.info(f"Connecting to Temporal server at {temporal.target_host}")

    client = await get_temporal_client()
    logger.info("Successfully connected to Temporal server")

    await ensure_cleanup_schedule(client, temporal, settings.cleanup)

    worker = Worker(
        client,
        task_queue=temporal.task_queue,
        workflows=[FileLifecycleCleanupWorkflow],
        activities=[run_file_lifecycle_cleanup],
        max_concurrent_activities=1,
    )

    logger.info("=" * 60)
    logger.info("Temporal Worker Started Successfully")
    logger.info(f"Task Queue: {temporal.task_queue}")
    logger.info(f"Cleanup interval: {settings.cleanup.schedule_interval_hours}h")
    logger.info("=" * 60)

    await worker.run()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("\nWorker stopped by user")
    except Exception as e:
        logger.error(f"Worker failed: {e}", exc_info=True)
        raise
