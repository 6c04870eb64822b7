"""API v1 router aggregator."""

from fastapi import APIRouter

from adforge.api.v1.generations.routes import router as generations_router
from adforge.api.v1.patterns.routes import router as patterns_router
from adforge.api.v1.publishing.routes import router as publishing_router
from adforge.api.v1.webhooks.routes import router as webhooks_router

api_router = APIRouter()

api_router.include_router(generations_router, prefix="/generations", tags=["Generations"])
api_router.include_router(publishing_router, prefix="/publish", tags=["Publishing"])
api_router.include_router(patterns_router, prefix="/patterns", tags=["Patterns"])
api_router.include_router(webhooks_router, prefix="/webhooks", tags=["Webhooks"])
