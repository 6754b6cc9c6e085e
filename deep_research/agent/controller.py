"""Pipeline controller: owns a job's progress, enforces the stage machine and budgets, emits events."""

from __future__ import annotations

import time
from typing import Any

from deep_research.agent.events import EventBus
from deep_research.agent.stages import (
    TERMINAL_PHASE_STATUSES,
    compute_progress,
    init_phases,
    normalize_stage,
    stage_index,
)
from deep_research.config import Settings
from deep_research.models.schemas import (
    CommandCenterProgress,
    JobError,
    Report,
    ResearchAgent,
    ResearchInsight,
    StagePhase,
    SynthesisProgress,
    utc_now,
)
from deep_research.utils.exceptions import InvalidStageTransitionError
from deep_research.utils.logging import get_logger

logger = get_logger(__name__)


class PipelineController:
    """Single writer of ``CommandCenterProgress`` for one job.

    Pipeline nodes never touch the progress object directly; every mutation
    goes through a method here, which also publishes the resulting snapshot.
    """

    def __init__(self, job_id: str, bus: EventBus, settings: Settings) -> None:
        self.job_id = job_id
        self._bus = bus
        self._settings = settings
        self._progress = CommandCenterProgress(stage="plan", phases=init_phases("plan"))
        self._stage_open = False
        self._started_monotonic = time.monotonic()
        self._regenerations_used = 0
        self._insight_seq = 0

    # ── Snapshots ────────────────────────────────────────────────────────────

    @property
    def progress(self) -> CommandCenterProgress:
        return self._progress

    @property
    def bus(self) -> EventBus:
        return self._bus

    def snapshot(self) -> CommandCenterProgress:
        self._progress.elapsed_ms = int((time.monotonic() - self._started_monotonic) * 1000)
        self._progress.percent = compute_progress(self._progress)
        return self._progress.model_copy(deep=True)

    def _emit(self, event_type: str, **extra: Any) -> None:
        data: dict[str, Any] = {
            "phase": extra.pop("phase", "processing"),
            "progress": self.snapshot().model_dump(mode="json"),
        }
        data.update(extra)
        self._bus.publish(event_type, data)

    # ── Stage machine ────────────────────────────────────────────────────────

    def start_stage(self, stage: str) -> None:
        canonical = normalize_stage(stage)
        current = self._progress.stage
        if self._stage_open:
            raise InvalidStageTransitionError(f"Cannot start '{canonical}' while '{current}' is still open")
        if canonical in self._progress.completed_stages or stage_index(canonical) < stage_index(current):
            raise InvalidStageTransitionError(f"Stage transition '{current}' -> '{canonical}' is not forward")

        self._progress.stage = canonical
        self._progress.phases = init_phases(canonical)
        self._stage_open = True
        logger.info("stage_started", job_id=self.job_id, stage=canonical)
        self._emit("phase_change")

    def complete_stage(self) -> None:
        stage = self._progress.stage
        if not self._stage_open:
            raise InvalidStageTransitionError(f"Stage '{stage}' is not open")
        unfinished = [p.id for p in self._progress.phases if p.status not in TERMINAL_PHASE_STATUSES]
        if unfinished:
            raise InvalidStageTransitionError(f"Stage '{stage}' has unfinished phases: {', '.join(unfinished)}")

        self._progress.completed_stages.append(stage)
        self._stage_open = False
        logger.info("stage_completed", job_id=self.job_id, stage=stage)
        self._emit("phase_change")

    def finish(self, report: Report) -> None:
        """Enter the terminal ``complete`` stage and publish the report."""
        if self._stage_open or "delivery" not in self._progress.completed_stages:
            raise InvalidStageTransitionError("Report can only be published after delivery completes")
        self._progress.stage = "complete"
        self._progress.phases = []
        self._progress.active_agent_id = None
        logger.info("pipeline_complete", job_id=self.job_id, elapsed_ms=self.snapshot().elapsed_ms)
        self._emit("report_ready", phase="complete", report=report.model_dump(mode="json"))

    def fail(self, error: JobError) -> None:
        logger.warning("pipeline_failed", job_id=self.job_id, code=error.code, can_retry=error.can_retry)
        self._emit("error", phase="error", error=error.model_dump(mode="json"))

    # ── Phases ───────────────────────────────────────────────────────────────

    def _phase(self, phase_id: str) -> StagePhase:
        for phase in self._progress.phases:
            if phase.id == phase_id:
                return phase
        raise InvalidStageTransitionError(
            f"Phase '{phase_id}' does not belong to stage '{self._progress.stage}'"
        )

    def _set_phase(self, phase_id: str, status: str, detail: str | None) -> None:
        if not self._stage_open:
            raise InvalidStageTransitionError(f"Stage '{self._progress.stage}' is not open")
        phase = self._phase(phase_id)
        now = utc_now()
        phase.status = status
        if status == "active":
            phase.started_at = now
        else:
            phase.started_at = phase.started_at or now
            phase.completed_at = now
        if detail is not None:
            phase.detail = detail
        logger.debug("phase_status", job_id=self.job_id, phase=phase_id, status=status, detail=detail)
        self._emit("phase_change")

    def start_phase(self, phase_id: str, detail: str | None = None) -> None:
        self._set_phase(phase_id, "active", detail)

    def complete_phase(self, phase_id: str, detail: str | None = None) -> None:
        self._set_phase(phase_id, "complete", detail)

    def skip_phase(self, phase_id: str, detail: str | None = None) -> None:
        self._set_phase(phase_id, "skipped", detail)

    def fail_phase(self, phase_id: str, detail: str | None = None) -> None:
        self._set_phase(phase_id, "error", detail)

    # ── Agents & sources ─────────────────────────────────────────────────────

    def set_tags(self, tags: list[str]) -> None:
        self._progress.tags = list(dict.fromkeys(tags))

    def set_agents(self, agents: list[ResearchAgent]) -> None:
        self._progress.agents = [a.model_copy(deep=True) for a in agents]
        self._emit("step_update")

    def update_agent(self, agent: ResearchAgent) -> None:
        """Replace the stored copy of ``agent`` and publish it."""
        for i, existing in enumerate(self._progress.agents):
            if existing.id == agent.id:
                self._progress.agents[i] = agent.model_copy(deep=True)
                break
        else:
            self._progress.agents.append(agent.model_copy(deep=True))

        if agent.status == "running":
            self._progress.active_agent_id = agent.id
        elif self._progress.active_agent_id == agent.id:
            self._progress.active_agent_id = None
        self._emit("step_update")

    def record_sources(self, agent: ResearchAgent, raw: int, unique: int) -> None:
        self._progress.total_sources_raw += raw
        self._progress.total_sources += unique
        self._emit("source_found", agent_id=agent.id, raw=raw, unique=unique)

    def add_insight(self, text: str, *, source: str | None = None, label: str | None = None) -> ResearchInsight:
        self._insight_seq += 1
        insight = ResearchInsight(id=f"insight-{self._insight_seq}", text=text, source=source, label=label)
        stream = self._progress.insight_stream
        stream.append(insight)
        limit = self._settings.INSIGHT_STREAM_LIMIT
        if len(stream) > limit:
            del stream[: len(stream) - limit]
        self._emit("finding_emerged", insight=insight.model_dump(mode="json"))
        return insight

    # ── Synthesis ────────────────────────────────────────────────────────────

    def begin_synthesis(self, total_sections: int) -> None:
        self._progress.synthesis = SynthesisProgress(total_sections=total_sections)
        self._emit("step_update")

    def section_started(self, section_title: str) -> None:
        if self._progress.synthesis is not None:
            self._progress.synthesis.current_section = section_title
            self._emit("step_update")

    def section_completed(self, section_title: str) -> None:
        synthesis = self._progress.synthesis
        if synthesis is not None:
            synthesis.sections_complete = min(synthesis.total_sections, synthesis.sections_complete + 1)
            synthesis.current_section = section_title
            self._emit("step_update")

    @property
    def regenerations_used(self) -> int:
        return self._regenerations_used

    def try_consume_regeneration(self) -> bool:
        """Take one unit of the job-wide regeneration budget; False once it is spent."""
        if self._regenerations_used >= self._settings.MAX_REGENERATIONS:
            return False
        self._regenerations_used += 1
        if self._progress.synthesis is not None:
            self._progress.synthesis.regenerations_used = self._regenerations_used
        return True
