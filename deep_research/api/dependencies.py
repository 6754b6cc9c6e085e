"""Shared FastAPI dependency injection."""

from __future__ import annotations

from fastapi import Request

from deep_research.config import Settings
from deep_research.services.research_service import ResearchService


def get_app_settings(request: Request) -> Settings:
    settings = getattr(request.app.state, "settings", None)
    if settings is None:
        raise RuntimeError("Settings not initialized")
    return settings


def get_research_service(request: Request) -> ResearchService:
    service = getattr(request.app.state, "research_service", None)
    if service is None:
        raise RuntimeError("Research service not initialized")
    return service
