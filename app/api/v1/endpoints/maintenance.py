"""Lifecycle maintenance endpoints."""

from fastapi import APIRouter, BackgroundTasks, Depends, Request, status
from typing import Annotated

from app.core.database import session_scope
from app.dependencies import build_cleanup_service, get_cleanup_service
from app.schemas.common import ApiResponse
from app.services.cleanup_service import CleanupService
from app.utils.logging import get_logger
from app.utils.responses import create_api_response

LOGGER = get_logger(__name__)

router = APIRouter()


async def run_signin_cleanup() -> None:
    """Background sign-in sweep over its own database session."""
    async with session_scope() as session:
        service = build_cleanup_service(session)
        try:
            await service.trigger_if_needed()
        except Exception as e:
            LOGGER.error(f"Sign-in cleanup failed: {e}", exc_info=True)


@router.post(
    "/cleanup",
    response_model=ApiResponse,
    summary="Retire expired files now",
    operation_id="run_file_cleanup",
)
async def run_cleanup(
    request: Request,
    cleanup_service: Annotated[CleanupService, Depends(get_cleanup_service)] = None,
) -> ApiResponse:
    """Run the lifecycle sweep and return its summary."""
    summary = await cleanup_service.execute()

    return create_api_response(
        data=summary.as_dict(),
        message="File cleanup completed",
        request=request,
    )


@router.post(
    "/cleanup/on-signin",
    response_model=ApiResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Schedule the sign-in cleanup",
    operation_id="trigger_signin_cleanup",
)
async def trigger_signin_cleanup(
    request: Request,
    background_tasks: BackgroundTasks,
) -> ApiResponse:
    """Queue the sweep after a successful sign-in; returns immediately."""
    background_tasks.add_task(run_signin_cleanup)

    return create_api_response(
        data=None,
        message="File cleanup scheduled",
        request=request,
    )
