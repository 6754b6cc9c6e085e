"""Health and readiness probe endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from deep_research.api.dependencies import get_app_settings
from deep_research.config import Settings

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict:
    return {"status": "healthy"}


@router.get("/ready")
async def ready(settings: Settings = Depends(get_app_settings)) -> dict:
    providers = {
        "reasoner": bool(settings.REASONER_API_KEY),
        "schema_json": bool(settings.SCHEMA_JSON_API_KEY),
        "web_search": bool(settings.TAVILY_API_KEY),
    }
    return {"status": "ready" if all(providers.values()) else "degraded", "providers": providers}
