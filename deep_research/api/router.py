"""Top-level API router aggregating all v1 sub-routers."""

from __future__ import annotations

from fastapi import APIRouter

from deep_research.api.v1.health import router as health_router
from deep_research.api.v1.intent import router as intent_router
from deep_research.api.v1.research import router as research_router

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(health_router)
api_router.include_router(intent_router)
api_router.include_router(research_router)
