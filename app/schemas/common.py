"""Response envelope shared by all API endpoints."""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class ResponseMeta(BaseModel):
    timestamp: datetime
    request_id: str
    api_version: str = "v1"


class ApiResponse(BaseModel):
    """Standard success envelope."""

    status: bool = Field(True, description="Whether the operation succeeded")
    message: str = Field(..., description="Human-readable outcome")
    data: Dict[str, Any] = Field(default_factory=dict)
    meta: ResponseMeta


class ErrorDetail(BaseModel):
    """Problem details (RFC 7807) returned as the error body."""

    title: str
    status: int
    detail: str
    instance: Optional[str] = None
    request_id: str
    timestamp: datetime
    existing_id: Optional[str] = Field(
        None, description="Id of the conflicting record for duplicate uploads"
    )


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total_count: int
    per_page: int

    @classmethod
    def build(cls, page: int, per_page: int, total_count: int) -> "Pagination":
        total_pages = (total_count + per_page - 1) // per_page if per_page else 0
        return cls(
            current_page=page,
            total_pages=total_pages,
            total_count=total_count,
            per_page=per_page,
        )
