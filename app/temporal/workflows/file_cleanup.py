"""Scheduled file lifecycle cleanup workflow.

The workflow calls its activity by name so that no database or HTTP
modules are imported into the workflow sandbox.
"""

from datetime import timedelta

from temporalio import workflow
from temporalio.common import RetryPolicy

CLEANUP_ACTIVITY = "run_file_lifecycle_cleanup"


@workflow.defn
class FileLifecycleCleanupWorkflow:
    """Retires every expired file once per scheduled run."""

    @workflow.run
    async def run(self) -> dict:
        """
        Run one lifecycle sweep.

        Returns:
            Dictionary with the sweep counters
        """
        summary = await workflow.execute_activity(
            CLEANUP_ACTIVITY,
            start_to_close_timeout=timedelta(minutes=30),
            retry_policy=RetryPolicy(
                initial_interval=timedelta(minutes=1),
                maximum_attempts=2,
            ),
        )

        workflow.logger.info(
            f"Lifecycle sweep finished: {summary['succeeded']} retired, "
            f"{summary['failed']} failed of {summary['total_found']} expired"
        )
        return summary
