"""Synthesizer node: draft every template section with citations, then gate on citation counts.

Opens stage ``synthesis``; the visuals node closes it.
"""

from __future__ import annotations

import functools
import re
from dataclasses import dataclass, field
from typing import Any, Iterable

from deep_research.agent.controller import PipelineController
from deep_research.agent.prompts.synthesizer import (
    INTERNAL_FINDINGS_BLOCK,
    REGENERATION_HINTS,
    SECTION_SYSTEM_PROMPT,
    SECTION_USER_PROMPT,
)
from deep_research.config import Settings
from deep_research.intake.questions import ResolvedIntake
from deep_research.models.schemas import SectionResult, SectionTemplate, Source
from deep_research.models.transport import LLMTransport
from deep_research.reports.citations import extract_citation_ids
from deep_research.reports.templates import EXECUTIVE_SUMMARY_ID, TemplateRegistry, synthesizable_sections
from deep_research.utils.concurrency import ConcurrencyLimiter, gather_bounded
from deep_research.utils.exceptions import ModelTimeoutError, TransportError
from deep_research.utils.logging import get_logger
from deep_research.utils.text_processing import truncate_content

logger = get_logger(__name__)

SECTION_PLACEHOLDER = (
    "*This section is being generated. The analysis is taking longer than expected — "
    "please check back shortly or regenerate the report.*"
)
SECTION_MAX_TOKENS = 2000
SECTION_TEMPERATURE = 0.3
FINDINGS_CHARS = 12_000
EXEC_FALLBACK_MIN_CHARS = 100
EXEC_FALLBACK_CHARS = 1000

_HEADING_WRAPPER = re.compile(r"^HEADING:\s*.+\nCONTENT:\s*\n?([\s\S]*)$", re.IGNORECASE)
_LEADING_HEADING = re.compile(r"^\s*#{1,4}\s+.+\n*", re.MULTILINE)


@dataclass(frozen=True)
class SynthesisContext:
    """Everything a section prompt needs, shared read-only by concurrent section calls."""

    query: str
    study_type: str
    intake: ResolvedIntake
    intake_answers: dict[str, Any] = field(default_factory=dict)
    sources: list[Source] = field(default_factory=list)
    web_findings: str = ""
    internal_findings: str = ""

    @classmethod
    def from_state(cls, state: dict[str, Any]) -> "SynthesisContext":
        return cls(
            query=state["query"],
            study_type=state["study_type"],
            intake=state["intake"],
            intake_answers=dict(state.get("intake_answers") or {}),
            sources=list(state.get("sources") or []),
            web_findings=state.get("web_findings") or "",
            internal_findings=state.get("internal_findings") or "",
        )


# ── Prompt assembly ──────────────────────────────────────────────────────────


def _sources_block(sources: list[Source]) -> str:
    if not sources:
        return "No sources available."
    return "\n\n".join(
        f"[{s.citation_id}] {s.name}{f' - {s.url}' if s.url else ''}\n   {s.snippet or 'No snippet available'}"
        for s in sources
        if s.citation_id
    )


def _intake_block(answers: dict[str, Any]) -> str:
    if not answers:
        return "- none"
    return "\n".join(f"- {k}: {', '.join(map(str, v)) if isinstance(v, list) else v}" for k, v in answers.items())


def build_section_messages(
    template: SectionTemplate,
    ctx: SynthesisContext,
    extra_hints: Iterable[str] = (),
) -> list[dict[str, str]]:
    hints = [*template.prompt_hints, *extra_hints]
    system = SECTION_SYSTEM_PROMPT.format(
        study_type=ctx.study_type.replace("_", " "),
        query=ctx.query,
        regions=ctx.intake.region_text,
        timeframe=ctx.intake.timeframe,
        section_title=template.title,
        section_description=template.description,
        prompt_hints="\n".join(f"- {h}" for h in hints) or "- Be specific and cite sources",
        min_citations=template.min_citations,
    )
    internal = (
        INTERNAL_FINDINGS_BLOCK.format(internal_findings=ctx.internal_findings) if ctx.internal_findings else ""
    )
    user = SECTION_USER_PROMPT.format(
        sources_block=_sources_block(ctx.sources),
        internal_block=internal,
        web_findings=truncate_content(ctx.web_findings or "No web findings available.", FINDINGS_CHARS),
        intake_block=_intake_block(ctx.intake_answers),
        section_title=template.title,
    )
    return [{"role": "system", "content": system}, {"role": "user", "content": user}]


def clean_section_content(raw: str) -> str:
    """Drop a ``HEADING:/CONTENT:`` wrapper and the first markdown heading the model emitted."""
    content = raw
    wrapped = _HEADING_WRAPPER.match(raw)
    if wrapped:
        content = wrapped.group(1).strip()
    return _LEADING_HEADING.sub("", content, count=1).strip()


def count_sections(templates: Iterable[SectionTemplate]) -> int:
    return sum(1 + count_sections(t.children) for t in templates)


# ── Section synthesis ────────────────────────────────────────────────────────


async def synthesize_section(
    template: SectionTemplate,
    ctx: SynthesisContext,
    *,
    transport: LLMTransport,
    controller: PipelineController,
    level: int = 0,
    extra_hints: Iterable[str] = (),
    include_children: bool = True,
) -> SectionResult:
    """Draft one section, then its children one after another.

    A timeout or provider failure degrades this section to the placeholder;
    it never fails the job.
    """
    controller.section_started(template.title)
    timed_out = False
    try:
        completion = await transport.chat(
            build_section_messages(template, ctx, extra_hints),
            model="chat",
            max_tokens=SECTION_MAX_TOKENS,
            temperature=SECTION_TEMPERATURE,
            timeout_s=transport.settings.SECTION_TIMEOUT_S,
        )
        content = clean_section_content(completion.content)
    except TransportError as exc:
        logger.warning(
            "section_degraded",
            section_id=template.id,
            reason="timeout" if isinstance(exc, ModelTimeoutError) else "transport_error",
            error=str(exc),
        )
        content = SECTION_PLACEHOLDER
        timed_out = True

    children: list[SectionResult] = []
    if include_children:
        for child in template.children:
            children.append(
                await synthesize_section(
                    child, ctx, transport=transport, controller=controller, level=level + 1
                )
            )

    section = SectionResult(
        id=template.id,
        title=template.title,
        content=content,
        level=level,
        citation_ids=[] if timed_out else extract_citation_ids(content),
        children=children,
        timed_out=timed_out,
    )
    controller.section_completed(template.title)
    return section


# ── Quality gate ─────────────────────────────────────────────────────────────


def needs_regeneration(section: SectionResult, template: SectionTemplate) -> bool:
    """Under half the citation floor, or an uncited executive summary. A floor of 0 never regenerates."""
    minimum = template.min_citations
    if minimum <= 0:
        return False
    actual = len(section.citation_ids)
    return actual < minimum * 0.5 or (section.id == EXECUTIVE_SUMMARY_ID and actual == 0)


def _index_templates(templates: Iterable[SectionTemplate]) -> dict[str, SectionTemplate]:
    index: dict[str, SectionTemplate] = {}
    for t in templates:
        index[t.id] = t
        index.update(_index_templates(t.children))
    return index


async def validate_and_regenerate(
    sections: list[SectionResult],
    templates: dict[str, SectionTemplate],
    ctx: SynthesisContext,
    *,
    transport: LLMTransport,
    controller: PipelineController,
) -> list[SectionResult]:
    """Regenerate under-cited sections in report order while the job-wide budget lasts.

    Children are checked after their parent and draw on the same budget.
    """
    validated: list[SectionResult] = []
    for section in sections:
        template = templates.get(section.id)
        if template is not None and needs_regeneration(section, template):
            if controller.try_consume_regeneration():
                actual = len(section.citation_ids)
                logger.info(
                    "section_regenerating",
                    section_id=section.id,
                    citations=actual,
                    min_citations=template.min_citations,
                    regenerations_used=controller.regenerations_used,
                )
                hints = [h.format(min_citations=template.min_citations, actual=actual) for h in REGENERATION_HINTS]
                regenerated = await synthesize_section(
                    template,
                    ctx,
                    transport=transport,
                    controller=controller,
                    level=section.level,
                    extra_hints=hints,
                    include_children=False,
                )
                section = regenerated.model_copy(update={"children": section.children})
            else:
                logger.info("section_regeneration_skipped", section_id=section.id, reason="budget_exhausted")

        if section.children:
            children = await validate_and_regenerate(
                section.children, templates, ctx, transport=transport, controller=controller
            )
            section = section.model_copy(update={"children": children})
        validated.append(section)
    return validated


def apply_executive_fallback(sections: list[SectionResult]) -> list[SectionResult]:
    """Fill an empty or placeholder executive summary from the first substantial section."""
    result = list(sections)
    for i, section in enumerate(result):
        if section.id != EXECUTIVE_SUMMARY_ID:
            continue
        if section.content.strip() and section.content != SECTION_PLACEHOLDER:
            return result
        donor = next(
            (
                s
                for s in result
                if s.id != EXECUTIVE_SUMMARY_ID and len(s.content.strip()) >= EXEC_FALLBACK_MIN_CHARS and not s.timed_out
            ),
            None,
        )
        if donor is None:
            logger.warning("executive_summary_fallback_unavailable")
            return result
        content = donor.content[:EXEC_FALLBACK_CHARS]
        logger.info("executive_summary_fallback", donor_section=donor.id)
        result[i] = section.model_copy(
            update={"content": content, "citation_ids": extract_citation_ids(content), "timed_out": False}
        )
        return result
    return result


# ── Node ─────────────────────────────────────────────────────────────────────


async def synthesizer_node(
    state: dict[str, Any],
    *,
    transport: LLMTransport,
    controller: PipelineController,
    settings: Settings,
    templates: TemplateRegistry,
) -> dict[str, Any]:
    """Write all sections of the study type's template."""
    controller.start_stage("synthesis")

    controller.start_phase("synthesis.template")
    template = templates.for_study_type(state["study_type"])
    section_templates = synthesizable_sections(template)
    controller.complete_phase("synthesis.template", template.name)

    ctx = SynthesisContext.from_state(state)
    controller.start_phase("synthesis.writing", f"{len(section_templates)} sections")
    controller.begin_synthesis(count_sections(section_templates))
    limiter = ConcurrencyLimiter(settings.SECTION_CONCURRENCY, name="sections")
    sections = await gather_bounded(
        [
            functools.partial(synthesize_section, t, ctx, transport=transport, controller=controller)
            for t in section_templates
        ],
        limiter,
    )
    degraded = sum(1 for s in sections if s.timed_out)
    controller.complete_phase("synthesis.writing", f"{len(sections)} sections drafted, {degraded} degraded")

    controller.start_phase("synthesis.quality", "Checking citation coverage")
    sections = await validate_and_regenerate(
        sections,
        _index_templates(section_templates),
        ctx,
        transport=transport,
        controller=controller,
    )
    sections = apply_executive_fallback(sections)
    controller.complete_phase("synthesis.quality", f"{controller.regenerations_used} sections regenerated")

    logger.info(
        "sections_synthesized",
        template_id=template.id,
        sections=len(sections),
        degraded=degraded,
        regenerations=controller.regenerations_used,
        peak_concurrency=limiter.peak,
    )
    return {"template": template, "sections": sections}
