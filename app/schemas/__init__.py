from .common import ApiResponse, ErrorDetail, Pagination, ResponseMeta
from .documents import DocumentListResponse, DocumentResponse, DocumentStatusResponse
from .evaluations import (
    EvaluationDetailResponse,
    EvaluationListResponse,
    EvaluationResponse,
)

__all__ = [
    "ApiResponse",
    "ErrorDetail",
    "Pagination",
    "ResponseMeta",
    "DocumentListResponse",
    "DocumentResponse",
    "DocumentStatusResponse",
    "EvaluationDetailResponse",
    "EvaluationListResponse",
    "EvaluationResponse",
]
