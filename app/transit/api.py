from fastapi import APIRouter

from app.transit.core.config import settings
from app.transit.routers.batches import router as batches_router
from app.transit.routers.dispatches import router as dispatches_router
from app.transit.routers.health import router as health_router
from app.transit.routers.metrics import router as metrics_router

api_router = APIRouter()
api_router.include_router(health_router, tags=["ops"])
api_router.include_router(dispatches_router, tags=["dispatches"])
api_router.include_router(batches_router, tags=["batches"])
if settings.METRICS_ENABLED:
    api_router.include_router(metrics_router, tags=["ops"])
