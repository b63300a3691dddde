"""Response envelope and problem-details helpers for the API layer."""

from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple, Type
from uuid import uuid4

from fastapi import Request, status as http_status

from app.core.exceptions import (
    AppError,
    DocumentNotReadyError,
    DuplicateResourceError,
    NotFoundError,
    ValidationError,
)
from app.schemas.common import ApiResponse, ErrorDetail, ResponseMeta

# Checked in order; the first matching class wins.
ERROR_STATUS: Tuple[Tuple[Type[AppError], str, int], ...] = (
    (DocumentNotReadyError, "File Not Ready", http_status.HTTP_422_UNPROCESSABLE_ENTITY),
    (ValidationError, "Validation Error", http_status.HTTP_400_BAD_REQUEST),
    (NotFoundError, "Not Found", http_status.HTTP_404_NOT_FOUND),
    (DuplicateResourceError, "Duplicate File", http_status.HTTP_409_CONFLICT),
)


def request_id_of(request: Optional[Request]) -> str:
    """Id assigned by the request-id middleware, or a fresh one."""
    if request is not None:
        request_id = getattr(request.state, "request_id", None)
        if request_id:
            return request_id
    return str(uuid4())


def _as_payload(data: Any) -> Dict[str, Any]:
    if data is None:
        return {}
    if isinstance(data, dict):
        return data
    if hasattr(data, "model_dump"):
        return data.model_dump(mode="json")
    if isinstance(data, list):
        return {
            "items": [
                item.model_dump(mode="json") if hasattr(item, "model_dump") else item
                for item in data
            ]
        }
    return {"value": data}


def create_api_response(
    data: Any,
    message: str = "Operation successful",
    status: bool = True,
    request: Optional[Request] = None,
    api_version: str = "v1",
) -> Dict[str, Any]:
    """Wrap ``data`` in the ``status/message/data/meta`` envelope, as a plain dict."""
    envelope = ApiResponse(
        status=status,
        message=message,
        data=_as_payload(data),
        meta=ResponseMeta(
            timestamp=datetime.now(timezone.utc),
            request_id=request_id_of(request),
            api_version=api_version,
        ),
    )
    return envelope.model_dump(mode="json")


def error_detail_for(error: AppError, request: Optional[Request] = None) -> ErrorDetail:
    """RFC 7807 problem details for an application error."""
    title, status_code = "Internal Server Error", http_status.HTTP_500_INTERNAL_SERVER_ERROR
    for error_type, error_title, error_status in ERROR_STATUS:
        if isinstance(error, error_type):
            title, status_code = error_title, error_status
            break

    existing_id = None
    if isinstance(error, DuplicateResourceError):
        existing = getattr(error.existing, "id", None)
        existing_id = str(existing) if existing is not None else None

    return ErrorDetail(
        title=title,
        status=status_code,
        detail=error.message,
        instance=request.url.path if request is not None else None,
        request_id=request_id_of(request),
        timestamp=datetime.now(timezone.utc),
        existing_id=existing_id,
    )
