from fastapi import APIRouter
from app.api.v1.endpoints import evaluations, files, health, maintenance

# Create API router
api_router = APIRouter()

# Include routers
api_router.include_router(health.router, prefix="", tags=["Health"])
api_router.include_router(files.router, prefix="/files", tags=["Files"])
api_router.include_router(evaluations.router, prefix="/evaluations", tags=["Evaluations"])
api_router.include_router(maintenance.router, prefix="/maintenance", tags=["Maintenance"])

__all__ = ["api_router"]
