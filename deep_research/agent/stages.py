"""Canonical pipeline stages, their phase catalogue, and progress percentage."""

from __future__ import annotations

import math

from deep_research.models.schemas import CommandCenterProgress, StagePhase

STAGE_ORDER: tuple[str, ...] = ("plan", "research", "synthesis", "delivery", "complete")

LEGACY_STAGE_MAP: dict[str, str] = {
    "decomposing": "plan",
    "researching": "research",
    "synthesizing": "synthesis",
}

STAGE_PHASES: dict[str, tuple[tuple[str, str], ...]] = {
    "plan": (
        ("plan.decomposition", "Query Decomposition"),
        ("plan.deduplication", "Deduplication"),
        ("plan.assignment", "Agent Assignment"),
    ),
    "research": (
        ("research.internal", "Internal Intelligence"),
        ("research.web", "Web Research"),
        ("research.consolidation", "Source Consolidation"),
    ),
    "synthesis": (
        ("synthesis.template", "Template Selection"),
        ("synthesis.writing", "Section Writing"),
        ("synthesis.quality", "Quality Validation"),
        ("synthesis.visuals", "Chart & Data Extraction"),
    ),
    "delivery": (
        ("delivery.assembly", "Report Assembly"),
        ("delivery.presentation", "Finalizing"),
        ("delivery.export", "Export Ready"),
    ),
    "complete": (),
}

TERMINAL_PHASE_STATUSES = frozenset({"complete", "skipped", "error"})


def normalize_stage(stage: str) -> str:
    """Map legacy stage names onto canonical ones. Idempotent; unknown names raise."""
    canonical = LEGACY_STAGE_MAP.get(stage, stage)
    if canonical not in STAGE_ORDER:
        raise ValueError(f"Unknown stage '{stage}'")
    return canonical


def stage_index(stage: str) -> int:
    return STAGE_ORDER.index(normalize_stage(stage))


def init_phases(stage: str) -> list[StagePhase]:
    return [StagePhase(id=pid, label=label) for pid, label in STAGE_PHASES[normalize_stage(stage)]]


def _round(value: float) -> int:
    return int(math.floor(value + 0.5))


def _phase_fraction(phases: list[StagePhase]) -> float | None:
    if not phases:
        return None
    done = sum(1 for p in phases if p.status in TERMINAL_PHASE_STATUSES)
    return done / len(phases)


def compute_progress(progress: CommandCenterProgress | dict) -> int:
    """Overall percentage for a progress snapshot.

    plan 0-10, research 10-60 by agents finished (errored agents count as
    finished), synthesis 60-90 by sections written, delivery 92-100,
    complete 100.
    """
    if isinstance(progress, dict):
        progress = CommandCenterProgress.model_validate(
            {**progress, "stage": normalize_stage(progress.get("stage", "plan"))}
        )
    stage = normalize_stage(progress.stage)

    if stage == "complete":
        return 100

    if stage == "plan":
        fraction = _phase_fraction(progress.phases)
        return 5 if fraction is None else _round(10 * fraction)

    if stage == "research":
        done = sum(1 for a in progress.agents if a.status in ("complete", "error"))
        return _round(10 + 50 * done / max(1, len(progress.agents)))

    if stage == "synthesis":
        synthesis = progress.synthesis
        if synthesis is None or synthesis.total_sections <= 0:
            return 60
        return _round(60 + 30 * min(synthesis.sections_complete, synthesis.total_sections) / synthesis.total_sections)

    fraction = _phase_fraction(progress.phases)
    return 92 if fraction is None else _round(92 + 8 * fraction)
