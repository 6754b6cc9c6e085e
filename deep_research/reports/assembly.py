"""Final report assembly: citation clean-up, table of contents, quality metrics, report number."""

from __future__ import annotations

import random
from datetime import datetime, timezone
from typing import Any

from deep_research.models.schemas import (
    Citation,
    GeneratedTitle,
    QualityMetrics,
    Report,
    ReportMetadata,
    ReportTemplate,
    SectionResult,
    Source,
    TocEntry,
)
from deep_research.reports.citations import build_citation_map, flatten_sections, order_references, strip_unknown_citations
from deep_research.reports.templates import EXECUTIVE_SUMMARY_ID
from deep_research.utils.logging import get_logger

logger = get_logger(__name__)

SUMMARY_UNAVAILABLE = "Executive summary not available."


def generate_report_number(now: datetime | None = None, rng: random.Random | None = None) -> str:
    """``ABI-<year>-<day_of_year * 100 + rand(0..99)>``, the sequence zero-padded to 4 digits."""
    now = now or datetime.now(timezone.utc)
    rand = (rng or random).randint(0, 99)
    sequence = now.timetuple().tm_yday * 100 + rand
    return f"ABI-{now.year}-{sequence:04d}"


def build_toc(sections: list[SectionResult]) -> list[TocEntry]:
    return [TocEntry(id=s.id, title=s.title, level=s.level) for s in flatten_sections(sections)]


def compute_quality_metrics(sections: list[SectionResult], citations: dict[str, Citation]) -> QualityMetrics:
    flat = flatten_sections(sections)
    with_citations = sum(1 for s in flat if s.citation_ids)
    return QualityMetrics(
        total_citations=len(citations),
        sections_with_citations=with_citations,
        total_sections=len(flat),
        completeness_score=round(with_citations / len(flat) * 100) if flat else 0,
    )


def clean_citations(sections: list[SectionResult], known_ids: set[str]) -> list[SectionResult]:
    """Drop markers and visual source ids that do not resolve to a citation."""
    cleaned: list[SectionResult] = []
    for section in sections:
        cleaned.append(
            section.model_copy(
                update={
                    "content": strip_unknown_citations(section.content, known_ids),
                    "citation_ids": [cid for cid in section.citation_ids if cid in known_ids],
                    "visuals": [
                        v.model_copy(update={"source_ids": [sid for sid in v.source_ids if sid in known_ids]})
                        for v in section.visuals
                    ],
                    "children": clean_citations(section.children, known_ids),
                }
            )
        )
    return cleaned


def assemble_report(
    *,
    sections: list[SectionResult],
    sources: list[Source],
    template: ReportTemplate,
    title: GeneratedTitle,
    query: str,
    study_type: str,
    intake_answers: dict[str, Any] | None = None,
    region: str | None = None,
    processing_time_ms: int = 0,
    credits: int = 0,
    now: datetime | None = None,
    rng: random.Random | None = None,
) -> Report:
    """Build the delivered report from synthesized sections.

    ``sections`` includes the executive summary; it becomes ``summary`` and is
    listed in the table of contents but not in ``Report.sections``.
    """
    now = now or datetime.now(timezone.utc)
    citations = build_citation_map(sources, sections)
    sections = clean_citations(sections, set(citations))
    references = order_references(citations)

    executive = next((s for s in sections if s.id == EXECUTIVE_SUMMARY_ID), None)
    summary = executive.content.strip() if executive is not None else ""
    body = [s for s in sections if s.id != EXECUTIVE_SUMMARY_ID]
    metrics = compute_quality_metrics(sections, citations)

    logger.info(
        "report_assembled",
        sections=metrics.total_sections,
        citations=metrics.total_citations,
        completeness=metrics.completeness_score,
        title_origin=title.origin,
    )
    return Report(
        id=f"report-{int(now.timestamp() * 1000)}",
        title=title.title,
        subtitle=title.subtitle,
        key_finding=title.key_finding,
        report_number=generate_report_number(now, rng),
        summary=summary or SUMMARY_UNAVAILABLE,
        study_type=study_type,
        metadata=ReportMetadata(
            title=title.title,
            region=region,
            date=now.date().isoformat(),
            template_id=template.id,
        ),
        table_of_contents=build_toc(sections),
        sections=body,
        citations=citations,
        references=references,
        all_sources=sources,
        quality_metrics=metrics,
        generated_at=now,
        query_original=query,
        intake_answers=dict(intake_answers or {}),
        total_processing_time_ms=processing_time_ms,
        credits_used=credits,
        can_export=True,
    )
