"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from app.api.v1.router import api_router
from app.core.config import settings
from app.core.database import init_database, close_database
from app.core.exceptions import AppError
from app.utils.logging import get_logger
from app.utils.responses import error_detail_for

LOGGER = get_logger(__name__, level=settings.log_level)

REQUEST_ID_HEADER = "X-Request-ID"


class RootResponse(BaseModel):
    """Root endpoint response payload."""

    message: str = Field(..., description="Service status message")
    version: str = Field(..., description="Running application version")
    docs: str = Field(..., description="Path to the interactive API docs")
    health: str = Field(..., description="Path to the health check endpoint")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Connect to the database on startup and release the pool on shutdown.

    Tables are only created automatically in development; other environments
    run the Alembic migrations.
    """
    LOGGER.info(
        f"Starting {settings.app_name} {settings.app_version} ({settings.environment})"
    )
    try:
        await init_database(create_tables=settings.environment == "development")
    except Exception as e:
        LOGGER.error("Failed to initialize database", exc_info=True, extra={"error": str(e)})
        raise

    yield

    LOGGER.info("Shutting down application")
    await close_database()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Checklist compliance evaluation for Detailed Project Report documents",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[REQUEST_ID_HEADER],
)


@app.middleware("http")
async def assign_request_id(request: Request, call_next):
    """Carry the caller's request id (or a new one) through envelope and headers."""
    request.state.request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid4())
    response = await call_next(request)
    response.headers[REQUEST_ID_HEADER] = request.state.request_id
    return response


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render application errors as problem details."""
    detail = error_detail_for(exc, request)
    if detail.status >= 500:
        LOGGER.error(
            f"Unhandled application error: {exc.message}",
            exc_info=exc,
            extra={"path": request.url.path, "error_type": type(exc).__name__},
        )
    return JSONResponse(
        status_code=detail.status,
        content={"detail": detail.model_dump(mode="json")},
    )


@app.get(
    "/",
    response_model=RootResponse,
    tags=["Root"],
    summary="Root endpoint",
    operation_id="get_public_root_metadata",
)
async def root() -> RootResponse:
    return RootResponse(
        message="Server is running",
        version=settings.app_version,
        docs=app.docs_url,
        health=f"{settings.api_v1_prefix}/health",
    )


app.include_router(api_router, prefix=settings.api_v1_prefix)

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
