"""Liveness and database reachability."""

from typing import Optional

from fastapi import APIRouter
from pydantic import BaseModel, Field

from app.core.config import settings
from app.core.database import db_client

router = APIRouter()


class DatabaseHealth(BaseModel):
    status: str
    connected: bool = False
    latency_ms: Optional[float] = Field(None, description="Round trip of a trivial query")
    error: Optional[str] = None


class ServiceHealth(BaseModel):
    """``degraded`` while the database is unreachable; the process itself is up."""

    status: str
    service: str
    version: str
    environment: str
    database: DatabaseHealth


@router.get(
    "/health",
    response_model=ServiceHealth,
    summary="Service and database health",
    operation_id="get_compliance_service_health",
)
async def get_health() -> ServiceHealth:
    database = DatabaseHealth(**await db_client.health_check())

    return ServiceHealth(
        status="healthy" if database.status == "healthy" else "degraded",
        service=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
        database=database,
    )
