"""Tests for stage normalisation and progress percentage."""

import pytest

from deep_research.agent.stages import compute_progress, init_phases, normalize_stage, stage_index
from deep_research.models.schemas import CommandCenterProgress, ResearchAgent, SynthesisProgress


class TestNormalizeStage:
    @pytest.mark.parametrize(
        "legacy, canonical",
        [("decomposing", "plan"), ("researching", "research"), ("synthesizing", "synthesis")],
    )
    def test_legacy_names(self, legacy, canonical):
        assert normalize_stage(legacy) == canonical

    @pytest.mark.parametrize("stage", ["plan", "research", "synthesis", "delivery", "complete", "decomposing"])
    def test_idempotent(self, stage):
        once = normalize_stage(stage)
        assert normalize_stage(once) == once

    def test_unknown_stage_raises(self):
        with pytest.raises(ValueError):
            normalize_stage("brainstorming")

    def test_stage_order(self):
        assert stage_index("plan") < stage_index("researching") < stage_index("synthesis") < stage_index("delivery")


def _agents(*statuses):
    return [ResearchAgent(id=f"a{i}", name=f"Agent {i}", query="q", status=s) for i, s in enumerate(statuses)]


class TestComputeProgress:
    def test_plan_without_phases(self):
        assert compute_progress(CommandCenterProgress(stage="plan")) == 5

    def test_plan_by_phase_fraction(self):
        phases = init_phases("plan")
        phases[0].status = "complete"
        phases[1].status = "skipped"
        assert compute_progress(CommandCenterProgress(stage="plan", phases=phases)) == 7

    def test_research_counts_errored_agents_as_done(self):
        progress = CommandCenterProgress(stage="research", agents=_agents("complete", "error", "running", "queued"))
        assert compute_progress(progress) == 35

    def test_research_without_agents(self):
        assert compute_progress(CommandCenterProgress(stage="research")) == 10

    def test_synthesis_by_sections(self):
        progress = CommandCenterProgress(
            stage="synthesis", synthesis=SynthesisProgress(total_sections=6, sections_complete=3)
        )
        assert compute_progress(progress) == 75

    def test_synthesis_not_started(self):
        assert compute_progress(CommandCenterProgress(stage="synthesis")) == 60

    def test_delivery_range(self):
        phases = init_phases("delivery")
        assert compute_progress(CommandCenterProgress(stage="delivery", phases=phases)) == 92
        for phase in phases:
            phase.status = "complete"
        assert compute_progress(CommandCenterProgress(stage="delivery", phases=phases)) == 100

    def test_complete(self):
        assert compute_progress(CommandCenterProgress(stage="complete")) == 100

    def test_accepts_legacy_dict(self):
        assert compute_progress({"stage": "researching", "agents": []}) == 10
