"""Assembler node: title package and final report (stage ``delivery``)."""

from __future__ import annotations

import time
from typing import Any

from deep_research.agent.controller import PipelineController
from deep_research.config import Settings
from deep_research.models.transport import LLMTransport
from deep_research.reports.assembly import assemble_report
from deep_research.reports.templates import EXECUTIVE_SUMMARY_ID
from deep_research.reports.titles import extract_title_signals, generate_title
from deep_research.utils.logging import get_logger

logger = get_logger(__name__)


async def assembler_node(
    state: dict[str, Any],
    *,
    transport: LLMTransport,
    controller: PipelineController,
    settings: Settings,
) -> dict[str, Any]:
    """Title the report, assemble it, and publish it."""
    controller.start_stage("delivery")
    sections = state["sections"]
    template = state["template"]
    intake = state["intake"]
    executive = next((s for s in sections if s.id == EXECUTIVE_SUMMARY_ID), None)
    summary_text = executive.content if executive is not None else ""

    controller.start_phase("delivery.assembly", "Resolving citations")
    signals = extract_title_signals(
        sections,
        summary_text,
        query=state["query"],
        study_type=state["study_type"],
        intake=intake,
        answers=state.get("intake_answers"),
    )
    controller.complete_phase("delivery.assembly")

    controller.start_phase("delivery.presentation", "Crafting report title")
    title = await generate_title(
        transport,
        sections=sections,
        executive_summary=summary_text,
        signals=signals,
        query=state["query"],
        template_name=template.name,
    )
    controller.complete_phase("delivery.presentation", title.title)

    controller.start_phase("delivery.export")
    started = state.get("started_monotonic")
    report = assemble_report(
        sections=sections,
        sources=state.get("sources") or [],
        template=template,
        title=title,
        query=state["query"],
        study_type=state["study_type"],
        intake_answers=state.get("intake_answers"),
        region=intake.region_text,
        processing_time_ms=int((time.monotonic() - started) * 1000) if started is not None else 0,
        credits=settings.REPORT_CREDITS,
    )
    controller.complete_phase("delivery.export", report.report_number)
    controller.complete_stage()
    controller.finish(report)

    logger.info("report_ready", report_id=report.id, report_number=report.report_number)
    return {"report": report}
