from fastapi import APIRouter, Depends, status, UploadFile, File, Form, Query, Request
from uuid import UUID
from typing import Annotated, List, Optional

from app.api.v1.endpoints.files import read_upload
from app.core.exceptions import AppError
from app.dependencies import get_current_user_id, get_evaluation_service
from app.schemas.common import ApiResponse, Pagination
from app.schemas.evaluations import (
    EvaluationDetailResponse,
    EvaluationListResponse,
    EvaluationResponse,
)
from app.services.evaluation_service import EvaluationService
from app.utils.logging import get_logger
from app.utils.responses import create_api_response

LOGGER = get_logger(__name__)

router = APIRouter()


@router.post(
    "",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Run a checklist evaluation",
    operation_id="create_evaluation",
)
async def create_evaluation(
    request: Request,
    scheme_id: UUID = Form(...),
    document_type_id: UUID = Form(...),
    checklist_item_ids: List[UUID] = Form(...),
    uploaded_file_id: Optional[UUID] = Form(None),
    file: Optional[UploadFile] = File(None, description="New PDF to ingest before evaluating"),
    user_id: Annotated[UUID, Depends(get_current_user_id)] = None,
    evaluation_service: Annotated[EvaluationService, Depends(get_evaluation_service)] = None,
) -> ApiResponse:
    """Evaluate a new upload or an existing file against checklist items.

    The request blocks until the evaluation completes or fails.
    """
    upload = await read_upload(file) if file is not None else None

    try:
        evaluation = await evaluation_service.create_evaluation(
            user_id,
            scheme_id=scheme_id,
            document_type_id=document_type_id,
            checklist_item_ids=checklist_item_ids,
            upload=upload,
            document_id=uploaded_file_id,
        )
    except AppError:
        raise
    except Exception as e:
        raise AppError(f"Evaluation failed: {e}", original_error=e) from e

    evaluation = await evaluation_service.get_evaluation(user_id, evaluation.id)
    return create_api_response(
        data=EvaluationDetailResponse.from_model(evaluation),
        message="Evaluation completed successfully",
        request=request,
    )


@router.get(
    "",
    response_model=ApiResponse,
    summary="List evaluations",
    operation_id="list_evaluations",
)
async def list_evaluations(
    request: Request,
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    days: int = Query(30, ge=1),
    scheme_id: Optional[UUID] = Query(None),
    document_type_id: Optional[UUID] = Query(None),
    user_id: Annotated[UUID, Depends(get_current_user_id)] = None,
    evaluation_service: Annotated[EvaluationService, Depends(get_evaluation_service)] = None,
) -> ApiResponse:
    """List the caller's recent evaluations."""
    evaluations, total = await evaluation_service.list_evaluations(
        user_id,
        days=days,
        scheme_id=scheme_id,
        document_type_id=document_type_id,
        page=page,
        per_page=per_page,
    )

    return create_api_response(
        data=EvaluationListResponse(
            evaluations=[EvaluationResponse.from_model(e) for e in evaluations],
            pagination=Pagination.build(page, per_page, total),
        ),
        message="Evaluations retrieved successfully",
        request=request,
    )


@router.get(
    "/{evaluation_id}",
    response_model=ApiResponse,
    summary="Get evaluation details",
    operation_id="get_evaluation",
)
async def get_evaluation(
    request: Request,
    evaluation_id: UUID,
    user_id: Annotated[UUID, Depends(get_current_user_id)] = None,
    evaluation_service: Annotated[EvaluationService, Depends(get_evaluation_service)] = None,
) -> ApiResponse:
    evaluation = await evaluation_service.get_evaluation(user_id, evaluation_id)

    return create_api_response(
        data=EvaluationDetailResponse.from_model(evaluation),
        message="Evaluation details retrieved successfully",
        request=request,
    )


@router.delete(
    "/{evaluation_id}",
    response_model=ApiResponse,
    summary="Delete evaluation",
    operation_id="delete_evaluation",
)
async def delete_evaluation(
    request: Request,
    evaluation_id: UUID,
    user_id: Annotated[UUID, Depends(get_current_user_id)] = None,
    evaluation_service: Annotated[EvaluationService, Depends(get_evaluation_service)] = None,
) -> ApiResponse:
    await evaluation_service.delete_evaluation(user_id, evaluation_id)

    return create_api_response(
        data=None,
        message="Evaluation deleted successfully",
        request=request,
    )
