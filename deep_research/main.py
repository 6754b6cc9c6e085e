"""FastAPI application factory with lifespan events."""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from deep_research.agent.tools.web_research import WebResearcher
from deep_research.api.router import api_router
from deep_research.config import Settings, configure_tracing, get_settings
from deep_research.models.llm_registry import LLMRegistry
from deep_research.models.transport import LLMTransport
from deep_research.services.research_service import ResearchService
from deep_research.utils.exceptions import InvalidJobStateError, JobNotFoundError
from deep_research.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)


def build_service(settings: Settings) -> ResearchService:
    registry = LLMRegistry(settings)
    transport = LLMTransport(registry, settings)
    return ResearchService(settings, transport, researcher=WebResearcher(settings))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application startup and shutdown resources."""
    settings: Settings = app.state.settings
    if getattr(app.state, "research_service", None) is None:
        app.state.research_service = build_service(settings)
    logger.info(
        "app_started",
        reasoner_model=settings.REASONER_MODEL,
        schema_json_model=settings.SCHEMA_JSON_MODEL,
        tracing=settings.tracing_enabled,
        langsmith_project=settings.LANGSMITH_PROJECT,
    )
    yield

    await app.state.research_service.shutdown()
    logger.info("app_stopped")


def create_app(settings: Settings | None = None, service: ResearchService | None = None) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)
    configure_tracing(settings)

    application = FastAPI(
        title="Procurement Deep Research",
        description="Multi-agent procurement research pipeline with live progress streaming",
        version="0.1.0",
        lifespan=lifespan,
    )
    application.state.settings = settings
    application.state.research_service = service

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(api_router)

    @application.middleware("http")
    async def request_id_middleware(request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    @application.exception_handler(JobNotFoundError)
    async def job_not_found_handler(request: Request, exc: JobNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @application.exception_handler(InvalidJobStateError)
    async def invalid_job_state_handler(request: Request, exc: InvalidJobStateError) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @application.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("unhandled_exception", error=str(exc), path=request.url.path)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "type": type(exc).__name__},
        )

    return application


app = create_app()
