"""Temporal activity for the file lifecycle sweep."""

from temporalio import activity

from app.core.database import session_scope
from app.dependencies import build_cleanup_service


@activity.defn(name="run_file_lifecycle_cleanup")
async def run_file_lifecycle_cleanup() -> dict:
    """Retire all expired files and return the sweep summary."""
    activity.logger.info("Starting scheduled file lifecycle cleanup")

    async with session_scope() as session:
        summary = await build_cleanup_service(session).execute()

    return summary.as_dict()
