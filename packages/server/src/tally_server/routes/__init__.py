"""API routes."""

from fastapi import APIRouter, Depends

from tally_server.routes.depends import require_api_key
from tally_server.routes.health import router as health_router
from tally_server.routes.monitoring import router as monitoring_router

# Operator routes (bearer key required when TALLY_API_KEY is set)
v1_admin_router = APIRouter(
    prefix="/api/v1/admin",
    dependencies=[Depends(require_api_key)],
)
v1_admin_router.include_router(monitoring_router)

__all__ = [
    "health_router",
    "monitoring_router",
    "v1_admin_router",
]
