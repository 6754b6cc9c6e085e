"""Tests for the pipeline controller's stage machine and budgets."""

import pytest

from deep_research.agent.controller import PipelineController
from deep_research.models.schemas import JobError, ResearchAgent
from deep_research.utils.exceptions import InvalidStageTransitionError


def _finish_stage(controller, stage):
    controller.start_stage(stage)
    for phase in controller.progress.phases:
        controller.complete_phase(phase.id)
    controller.complete_stage()


class TestStageMachine:
    def test_start_stage_emits_phase_change(self, controller, bus):
        controller.start_stage("plan")

        assert controller.progress.stage == "plan"
        assert bus.history[-1].type == "phase_change"
        assert bus.history[-1].data["progress"]["stage"] == "plan"

    def test_backward_transition_rejected(self, controller):
        _finish_stage(controller, "plan")
        _finish_stage(controller, "research")

        with pytest.raises(InvalidStageTransitionError):
            controller.start_stage("plan")

    def test_restarting_completed_stage_rejected(self, controller):
        _finish_stage(controller, "plan")

        with pytest.raises(InvalidStageTransitionError):
            controller.start_stage("decomposing")

    def test_cannot_start_while_stage_open(self, controller):
        controller.start_stage("plan")

        with pytest.raises(InvalidStageTransitionError):
            controller.start_stage("research")

    def test_complete_stage_requires_terminal_phases(self, controller):
        controller.start_stage("research")
        controller.skip_phase("research.internal", "No internal data provided")
        controller.complete_phase("research.web")

        with pytest.raises(InvalidStageTransitionError, match="research.consolidation"):
            controller.complete_stage()

    def test_phase_outside_stage_rejected(self, controller):
        controller.start_stage("plan")

        with pytest.raises(InvalidStageTransitionError):
            controller.start_phase("research.web")

    def test_finish_requires_delivery(self, controller, sample_report):
        _finish_stage(controller, "plan")

        with pytest.raises(InvalidStageTransitionError):
            controller.finish(sample_report)

    def test_finish_emits_report_ready(self, controller, bus, sample_report):
        for stage in ("plan", "research", "synthesis", "delivery"):
            _finish_stage(controller, stage)

        controller.finish(sample_report)

        last = bus.history[-1]
        assert last.type == "report_ready"
        assert last.data["phase"] == "complete"
        assert last.data["progress"]["percent"] == 100
        assert last.data["report"]["id"] == sample_report.id

    def test_fail_emits_error(self, controller, bus):
        controller.fail(JobError(code="internal_error", message="boom", can_retry=True))

        last = bus.history[-1]
        assert last.type == "error"
        assert last.data["phase"] == "error"
        assert last.data["error"]["code"] == "internal_error"


class TestBudgets:
    def test_regeneration_budget(self, controller):
        results = [controller.try_consume_regeneration() for _ in range(4)]

        assert results == [True, True, False, False]
        assert controller.regenerations_used == 2

    def test_insight_stream_capped(self, bus, settings):
        controller = PipelineController("job-cap", bus, settings.model_copy(update={"INSIGHT_STREAM_LIMIT": 3}))

        for i in range(5):
            controller.add_insight(f"Insight {i}")

        stream = controller.progress.insight_stream
        assert [i.text for i in stream] == ["Insight 2", "Insight 3", "Insight 4"]
        assert stream[-1].id == "insight-5"


class TestAgents:
    def test_update_agent_tracks_active(self, controller):
        agent = ResearchAgent(id="agent-1", name="Pricing", query="steel prices")
        controller.set_agents([agent])

        controller.update_agent(agent.model_copy(update={"status": "running"}))
        assert controller.progress.active_agent_id == "agent-1"

        controller.update_agent(agent.model_copy(update={"status": "complete"}))
        assert controller.progress.active_agent_id is None
        assert controller.progress.agents[0].status == "complete"

    def test_snapshot_is_a_copy(self, controller):
        snapshot = controller.snapshot()
        snapshot.tags.append("mutated")

        assert controller.progress.tags == []

    def test_record_sources_accumulates(self, controller, bus):
        agent = ResearchAgent(id="agent-1", name="Pricing", query="q")
        controller.record_sources(agent, raw=8, unique=5)
        controller.record_sources(agent, raw=4, unique=1)

        assert controller.progress.total_sources_raw == 12
        assert controller.progress.total_sources == 6
        assert bus.history[-1].type == "source_found"
