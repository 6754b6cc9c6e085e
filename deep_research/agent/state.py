"""Pipeline state schema for the LangGraph research graph."""

from __future__ import annotations

from typing import Annotated, Any, TypedDict

from deep_research.intake.questions import ResolvedIntake
from deep_research.models.schemas import (
    DecompositionPlan,
    Report,
    ReportTemplate,
    ResearchAgent,
    SectionResult,
    Source,
)
from deep_research.reports.adapters import StructuredDataContext


def _merge_lists(left: list, right: list) -> list:
    """Append new items to an existing list."""
    return left + right


class ResearchState(TypedDict, total=False):
    """State carried through plan -> research -> synthesis -> delivery.

    Nodes return partial updates; only ``errors`` accumulates, every other
    field is written by exactly one node.
    """

    # ── Input (set once at start) ──
    job_id: str
    query: str
    study_type: str
    category: str | None
    intake_answers: dict[str, Any]
    intake: ResolvedIntake
    internal_sources: list[Source]
    internal_findings: str
    structured_data: StructuredDataContext | None
    started_monotonic: float

    # ── Plan ──
    plan: DecompositionPlan
    tags: list[str]

    # ── Research ──
    agents: list[ResearchAgent]
    sources: list[Source]          # job pool in citation order, ids assigned
    web_findings: str

    # ── Synthesis ──
    template: ReportTemplate
    sections: list[SectionResult]  # template order, executive summary included

    # ── Delivery ──
    report: Report

    # ── Meta ──
    errors: Annotated[list[dict], _merge_lists]
