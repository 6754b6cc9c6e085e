"""Research job lifecycle: intake, pipeline execution, cancellation, and event subscription.

Jobs live in memory for the life of the process.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, AsyncIterator

from deep_research.agent.controller import PipelineController
from deep_research.agent.events import EventBus
from deep_research.agent.graph import compile_research_graph
from deep_research.agent.tools.web_research import WebResearcher
from deep_research.api.v1.schemas.research import StartResearchRequest
from deep_research.config import Settings
from deep_research.intake.questions import (
    default_answers,
    get_default_questions,
    prefill_questions,
    resolve_intake,
)
from deep_research.intake.scoring import get_estimates, score_intent
from deep_research.models.schemas import (
    STUDY_TYPES,
    DeepResearchResponse,
    JobError,
    Report,
    ResearchEvent,
    Source,
)
from deep_research.models.transport import LLMTransport
from deep_research.reports.adapters import AdapterRegistry, StructuredDataContext, default_adapter_registry
from deep_research.reports.templates import TemplateRegistry
from deep_research.utils.exceptions import InvalidJobStateError, JobNotFoundError, PipelineError
from deep_research.utils.logging import bind_job_context, get_logger

logger = get_logger(__name__)

TERMINAL_PHASES = frozenset({"complete", "error"})
CANCELLED_MESSAGE = "Research was cancelled"


@dataclass
class Job:
    response: DeepResearchResponse
    bus: EventBus
    internal_sources: list[Source] = field(default_factory=list)
    internal_findings: str = ""
    structured_data: StructuredDataContext | None = None
    controller: PipelineController | None = None
    task: asyncio.Task | None = None

    @property
    def job_id(self) -> str:
        return self.response.job_id

    @property
    def terminal(self) -> bool:
        return self.response.phase in TERMINAL_PHASES


class ResearchService:
    """Orchestrates research job creation, status tracking, and result retrieval."""

    def __init__(
        self,
        settings: Settings,
        transport: LLMTransport,
        researcher: WebResearcher | None = None,
        templates: TemplateRegistry | None = None,
        adapters: AdapterRegistry | None = None,
    ) -> None:
        self._settings = settings
        self._transport = transport
        self._researcher = researcher or WebResearcher(settings)
        self._templates = templates or TemplateRegistry()
        self._adapters = adapters or default_adapter_registry()
        self._jobs: dict[str, Job] = {}

    # ── Lookup ───────────────────────────────────────────────────────────────

    def _job(self, job_id: str) -> Job:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(f"Research job '{job_id}' not found")
        return job

    def get(self, job_id: str) -> DeepResearchResponse:
        """Current snapshot of the job, with live progress while it runs."""
        job = self._job(job_id)
        if job.controller is not None:
            job.response.progress = job.controller.snapshot()
        return job.response.model_copy(deep=True)

    def get_report(self, job_id: str) -> Report | None:
        return self._job(job_id).response.report

    def subscribe(self, job_id: str, after_id: int = 0) -> AsyncIterator[ResearchEvent]:
        return self._job(job_id).bus.subscribe(after_id)

    # ── Lifecycle ────────────────────────────────────────────────────────────

    async def start(self, request: StartResearchRequest) -> DeepResearchResponse:
        """Create a job; it waits in ``intake`` unless the request skips it."""
        query = request.query.strip()
        study_type = request.study_type or score_intent(query).inferred_study_type
        credits, time_estimate = get_estimates(study_type, self._settings.STUDY_TYPE_ESTIMATES)
        questions = prefill_questions(query, get_default_questions(study_type))

        job_id = str(uuid.uuid4())
        job = Job(
            response=DeepResearchResponse(
                job_id=job_id,
                phase="intake",
                query=query,
                study_type=study_type,
                category=request.category,
                intake_questions=questions,
                intake_answers={**default_answers(questions), **request.intake_answers},
                estimated_credits=credits,
                estimated_time=time_estimate,
            ),
            bus=EventBus(
                job_id,
                history_limit=self._settings.EVENT_HISTORY_LIMIT,
                queue_size=self._settings.SUBSCRIBER_QUEUE_SIZE,
            ),
            internal_sources=[Source(**s.model_dump()) for s in request.internal_sources],
            internal_findings=request.internal_findings,
            structured_data=request.structured_data,
        )
        self._jobs[job_id] = job
        logger.info("research_job_created", job_id=job_id, study_type=study_type, skip_intake=request.skip_intake)

        if request.skip_intake:
            self._launch(job)
        else:
            job.bus.publish(
                "phase_change",
                {
                    "phase": "intake",
                    "intake_questions": [q.model_dump(mode="json") for q in questions],
                },
            )
        return self.get(job_id)

    async def confirm_intake(self, job_id: str, answers: dict[str, Any]) -> DeepResearchResponse:
        """Apply intake answers and start the pipeline. ``study_type`` in answers overrides the inferred one."""
        job = self._job(job_id)
        if job.response.phase != "intake":
            raise InvalidJobStateError(f"Job '{job_id}' is not awaiting intake (phase={job.response.phase})")

        answers = dict(answers)
        override = answers.pop("study_type", None)
        if override in STUDY_TYPES and override != job.response.study_type:
            credits, time_estimate = get_estimates(override, self._settings.STUDY_TYPE_ESTIMATES)
            job.response.study_type = override
            job.response.estimated_credits = credits
            job.response.estimated_time = time_estimate
            logger.info("study_type_overridden", job_id=job_id, study_type=override)

        job.response.intake_answers = {**job.response.intake_answers, **answers}
        self._launch(job)
        return self.get(job_id)

    async def cancel(self, job_id: str) -> DeepResearchResponse:
        """Stop the job. No partial report is delivered.

        Raises:
            InvalidJobStateError: the job already completed or failed.
        """
        job = self._job(job_id)
        if job.terminal:
            raise InvalidJobStateError(f"Cannot cancel a job with phase '{job.response.phase}'")

        error = JobError(message=CANCELLED_MESSAGE, code="cancelled", can_retry=False)
        self._mark_failed(job, error)
        if job.task is not None and not job.task.done():
            job.task.cancel()
        else:
            job.bus.close()
        logger.info("research_cancelled", job_id=job_id)
        return self.get(job_id)

    async def shutdown(self) -> None:
        """Cancel every running pipeline task and wait for them to unwind."""
        tasks = [j.task for j in self._jobs.values() if j.task is not None and not j.task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ── Execution ────────────────────────────────────────────────────────────

    def _launch(self, job: Job) -> None:
        job.response.phase = "processing"
        job.controller = PipelineController(job.job_id, job.bus, self._settings)
        job.task = asyncio.create_task(self._run(job), name=f"research-{job.job_id}")
        logger.info("research_launched", job_id=job.job_id, study_type=job.response.study_type)

    def _initial_state(self, job: Job) -> dict[str, Any]:
        response = job.response
        return {
            "job_id": job.job_id,
            "query": response.query,
            "study_type": response.study_type,
            "category": response.category,
            "intake_answers": dict(response.intake_answers),
            "intake": resolve_intake(response.intake_answers, response.category),
            "internal_sources": list(job.internal_sources),
            "internal_findings": job.internal_findings,
            "structured_data": job.structured_data,
            "started_monotonic": time.monotonic(),
            "errors": [],
        }

    def _mark_failed(self, job: Job, error: JobError) -> None:
        job.response.phase = "error"
        job.response.error = error
        if job.controller is not None:
            job.controller.fail(error)
        else:
            job.bus.publish("error", {"phase": "error", "error": error.model_dump(mode="json")})

    async def _run(self, job: Job) -> None:
        with bind_job_context(job.job_id, study_type=job.response.study_type):
            try:
                graph = compile_research_graph(
                    transport=self._transport,
                    controller=job.controller,
                    settings=self._settings,
                    researcher=self._researcher,
                    templates=self._templates,
                    adapters=self._adapters,
                )
                final_state = await graph.ainvoke(self._initial_state(job))
                job.response.report = final_state["report"]
                job.response.phase = "complete"
                logger.info("research_completed", errors=len(final_state.get("errors") or []))

            except asyncio.CancelledError:
                if job.response.phase != "error":
                    self._mark_failed(job, JobError(message=CANCELLED_MESSAGE, code="cancelled", can_retry=False))
                logger.info("research_task_cancelled")
                raise

            except PipelineError as exc:
                logger.error("research_failed", code=exc.code, error=str(exc))
                self._mark_failed(job, JobError(message=str(exc), code=exc.code, can_retry=exc.can_retry))

            except Exception as exc:
                logger.exception("research_crashed", error=str(exc))
                self._mark_failed(
                    job,
                    JobError(message="Research failed unexpectedly. Please try again.", code="internal_error"),
                )

            finally:
                job.bus.close()
