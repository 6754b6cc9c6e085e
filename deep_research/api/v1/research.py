"""Research API endpoints: start, intake, cancel, snapshot, report, and SSE streaming."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from sse_starlette.sse import EventSourceResponse

from deep_research.api.dependencies import get_research_service
from deep_research.api.v1.schemas.research import IntakeRequest, StartResearchRequest
from deep_research.models.schemas import DeepResearchResponse, Report
from deep_research.services.research_service import ResearchService
from deep_research.utils.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/research", tags=["research"])

PING_INTERVAL_S = 15


@router.post("", response_model=DeepResearchResponse)
async def start_research(
    request: StartResearchRequest,
    service: ResearchService = Depends(get_research_service),
) -> DeepResearchResponse:
    """Create a research job. It waits for intake answers unless ``skip_intake`` is set."""
    return await service.start(request)


@router.post("/{job_id}/intake", response_model=DeepResearchResponse)
async def confirm_intake(
    job_id: str,
    request: IntakeRequest,
    service: ResearchService = Depends(get_research_service),
) -> DeepResearchResponse:
    return await service.confirm_intake(job_id, request.answers)


@router.delete("/{job_id}/cancel", response_model=DeepResearchResponse)
async def cancel_research(
    job_id: str,
    service: ResearchService = Depends(get_research_service),
) -> DeepResearchResponse:
    """Cancel a job in intake or processing. Returns 409 if it already finished."""
    return await service.cancel(job_id)


@router.get("/{job_id}", response_model=DeepResearchResponse)
async def get_research(
    job_id: str,
    service: ResearchService = Depends(get_research_service),
) -> DeepResearchResponse:
    return service.get(job_id)


@router.get("/{job_id}/report", response_model=Report)
async def get_report(
    job_id: str,
    service: ResearchService = Depends(get_research_service),
) -> Report:
    report = service.get_report(job_id)
    if report is None:
        raise HTTPException(status_code=404, detail="Report not available yet")
    return report


@router.get("/{job_id}/stream")
async def stream_research(
    job_id: str,
    after: int = Query(default=0, ge=0),
    last_event_id: str | None = Header(default=None, alias="Last-Event-ID"),
    service: ResearchService = Depends(get_research_service),
) -> EventSourceResponse:
    """SSE stream of job events.

    Reconnecting clients send ``Last-Event-ID`` (or ``?after=``) and receive
    every retained later event before the live stream. The stream ends after
    the terminal ``report_ready`` or ``error`` event.
    """
    resume_from = after
    if last_event_id and last_event_id.isdigit():
        resume_from = max(resume_from, int(last_event_id))
    events = service.subscribe(job_id, resume_from)
    logger.info("stream_opened", job_id=job_id, after=resume_from)

    async def event_generator():
        async for event in events:
            yield {
                "id": str(event.id),
                "event": event.type,
                "data": event.model_dump_json(),
            }

    return EventSourceResponse(event_generator(), ping=PING_INTERVAL_S)
