"""Visuals node: fill template visualisation slots per section, then close stage ``synthesis``.

Tier 1 runs registered structured-data adapters; Tier 3 asks the schema-JSON
model to extract chart data from the section prose. Every accepted visual is
shape-validated and checked against the slot's minimum data points.
"""

from __future__ import annotations

import functools
from typing import Any

from langsmith import traceable

from deep_research.agent.controller import PipelineController
from deep_research.agent.prompts.visuals import (
    EXTRACTION_PROMPT,
    EXTRACTION_SCHEMA,
    METRIC_RETRY_PROMPT,
    METRIC_RETRY_SCHEMA,
)
from deep_research.config import Settings
from deep_research.intake.questions import ResolvedIntake
from deep_research.models.schemas import SectionResult, SectionTemplate, Visual, VisualizationSlot
from deep_research.models.transport import LLMTransport
from deep_research.reports.adapters import AdapterRegistry, StructuredDataContext
from deep_research.reports.citations import flatten_sections
from deep_research.reports.visual_validation import (
    assess_numeric_density,
    build_visual,
    coerce_visual_data,
    count_data_points,
    dedupe_visuals,
    filter_slots_by_density,
    filter_slots_by_tags,
    validate_visual_shape,
)
from deep_research.utils.concurrency import ConcurrencyLimiter, gather_bounded
from deep_research.utils.exceptions import SchemaViolationError
from deep_research.utils.logging import get_logger

logger = get_logger(__name__)

EXTRACTION_MAX_TOKENS = 4000
EXTRACTION_TEMPERATURE = 0.1
METRIC_RETRY_MAX_TOKENS = 1500
METRIC_RETRY_TEMPERATURE = 0.2
METRIC_RETRY_CONTENT_CHARS = 2000
METRIC_RETRY_MIN_CONTENT = 100
METRIC_RETRY_MIN_METRICS = 2
_CONFIDENCE = ("high", "medium", "low")


# ── Tier 1 ───────────────────────────────────────────────────────────────────


def _meets_slot(slot: VisualizationSlot, visual_type: str, data: Any, tier: str) -> bool:
    """Type, shape, and minimum data-point checks every accepted visual must pass."""
    if visual_type != slot.type:
        logger.debug(f"{tier}_type_mismatch", slot_id=slot.slot_id, expected=slot.type, got=visual_type)
        return False
    if not validate_visual_shape(slot.type, data):
        logger.debug(f"{tier}_shape_rejected", slot_id=slot.slot_id, type=slot.type)
        return False
    points = count_data_points(slot.type, data)
    if points < slot.min_data_points:
        logger.debug(f"{tier}_too_few_points", slot_id=slot.slot_id, points=points, required=slot.min_data_points)
        return False
    return True


def resolve_structured_visuals(
    section: SectionResult,
    slots: list[VisualizationSlot],
    structured: StructuredDataContext | None,
    adapters: AdapterRegistry,
    intake: ResolvedIntake | None = None,
) -> tuple[list[Visual], set[str]]:
    """Run each slot's adapter over the records; first result passing the slot checks fills it."""
    if structured is None or not structured.records:
        return [], set()

    region = structured.region or (intake.region_text if intake else None)
    timeframe = structured.timeframe or (intake.timeframe if intake and intake.timeframe != "Current" else None)
    visuals: list[Visual] = []
    filled: set[str] = set()

    for slot in slots:
        adapter = adapters.get(slot.structured_adapter) if slot.structured_adapter else None
        if adapter is None:
            continue
        for record in structured.records:
            try:
                visual = adapter(record, section.id)
            except Exception as exc:
                logger.warning("adapter_failed", adapter=slot.structured_adapter, record=record.get("name"), error=str(exc))
                continue
            if visual is None:
                continue
            if not _meets_slot(slot, visual.type, visual.data.model_dump(mode="json"), "tier1"):
                continue

            title = visual.title
            if region and region not in title:
                title = f"{title} ({region})"
            footnote = visual.footnote
            if timeframe:
                footnote = f"{footnote} · {timeframe}" if footnote else timeframe
            confidence = visual.confidence
            if structured.match != "exact":
                confidence = "medium"
                note = f"Representative data for {record.get('category') or record.get('name')} category"
                footnote = f"{footnote} · {note}" if footnote else note

            visuals.append(
                visual.model_copy(
                    update={
                        "title": title,
                        "footnote": footnote,
                        "confidence": confidence,
                        "placement": slot.placement,
                        "trend_semantics": slot.trend_semantics or visual.trend_semantics,
                        "source_ids": visual.source_ids or list(section.citation_ids),
                    }
                )
            )
            filled.add(slot.slot_id)
            logger.debug("tier1_slot_filled", section_id=section.id, slot_id=slot.slot_id, match=structured.match)
            break
    return visuals, filled


# ── Tier 3 ───────────────────────────────────────────────────────────────────


def accept_extracted_slot(
    item: Any,
    slots: dict[str, VisualizationSlot],
    section: SectionResult,
) -> Visual | None:
    """Turn one model slot result into a visual, or ``None`` if any check fails."""
    if not isinstance(item, dict) or item.get("filled") is not True:
        return None
    slot = slots.get(str(item.get("slot_id") or item.get("slotId") or ""))
    data = item.get("data")
    if slot is None or not isinstance(data, dict) or not data:
        return None
    data = coerce_visual_data(slot.type, data)
    if not _meets_slot(slot, item.get("type") or slot.type, data, "tier3"):
        return None

    confidence = item.get("confidence") if item.get("confidence") in _CONFIDENCE else "medium"
    try:
        return build_visual(
            {
                "id": f"{section.id}_{slot.slot_id}",
                "type": slot.type,
                "title": item.get("title") or slot.title,
                "data": data,
                "source_ids": list(section.citation_ids),
                "confidence": confidence,
                "placement": slot.placement,
                "trend_semantics": slot.trend_semantics,
            }
        )
    except SchemaViolationError as exc:
        logger.debug("tier3_model_rejected", slot_id=slot.slot_id, error=str(exc))
        return None


async def _extract_slots(transport: LLMTransport, prompt: str, section_id: str) -> list[Any] | None:
    timeout = transport.settings.JSON_EXTRACTION_TIMEOUT_S
    result = await transport.json(
        prompt,
        EXTRACTION_SCHEMA,
        name="visual_slots",
        max_tokens=EXTRACTION_MAX_TOKENS,
        temperature=EXTRACTION_TEMPERATURE,
        timeout_s=timeout,
    )
    if result is None:
        logger.info("tier3_schema_json_failed", section_id=section_id, fallback="chat_json")
        result = await transport.chat_json(
            prompt,
            max_tokens=EXTRACTION_MAX_TOKENS,
            temperature=EXTRACTION_TEMPERATURE,
            timeout_s=timeout,
        )
    slots = result.get("slots") if result else None
    return slots if isinstance(slots, list) else None


async def metric_retry(transport: LLMTransport, section: SectionResult) -> Visual | None:
    """Last resort: a 'Key Takeaways' metric card from the section prose."""
    result = await transport.json(
        METRIC_RETRY_PROMPT.format(
            section_title=section.title,
            section_content=section.content[:METRIC_RETRY_CONTENT_CHARS],
        ),
        METRIC_RETRY_SCHEMA,
        name="key_takeaways",
        max_tokens=METRIC_RETRY_MAX_TOKENS,
        temperature=METRIC_RETRY_TEMPERATURE,
        timeout_s=transport.settings.JSON_EXTRACTION_TIMEOUT_S,
    )
    metrics = result.get("metrics") if result else None
    if not isinstance(metrics, list) or len(metrics) < METRIC_RETRY_MIN_METRICS:
        return None
    data = coerce_visual_data("metric", {"metrics": metrics})
    if not validate_visual_shape("metric", data):
        return None
    try:
        return build_visual(
            {
                "id": f"{section.id}_key_takeaways",
                "type": "metric",
                "title": f"Key Takeaways — {section.title}",
                "data": data,
                "source_ids": list(section.citation_ids),
                "confidence": "medium",
                "placement": "after_prose",
            }
        )
    except SchemaViolationError:
        return None


@traceable(name="extract_section_visuals")
async def extract_section_visuals(
    section: SectionResult,
    slots: list[VisualizationSlot],
    *,
    transport: LLMTransport,
    adapters: AdapterRegistry,
    structured: StructuredDataContext | None = None,
    intake: ResolvedIntake | None = None,
) -> tuple[list[Visual], list[str]]:
    """Visuals for one section plus the titles of slots left unfilled."""
    if not slots or not section.content or section.timed_out:
        return [], [s.title for s in slots]

    visuals, filled = resolve_structured_visuals(section, slots, structured, adapters, intake)
    remaining = [s for s in slots if s.slot_id not in filled]

    if remaining:
        density = assess_numeric_density(section.content)
        extractable = filter_slots_by_density(remaining, density)
        if not extractable:
            logger.debug("tier3_skipped", section_id=section.id, density=density)
        else:
            by_id = {s.slot_id: s for s in extractable}
            prompt = EXTRACTION_PROMPT.format(
                section_title=section.title,
                section_content=section.content,
                slot_count=len(extractable),
                slot_descriptions="\n".join(
                    f"{i}. [{s.slot_id}] ({s.type}) {s.description}" for i, s in enumerate(extractable, start=1)
                ),
            )
            extracted = await _extract_slots(transport, prompt, section.id)
            accepted: list[Visual] = []
            seen_slots: set[str] = set()
            for item in extracted or []:
                visual = accept_extracted_slot(item, by_id, section)
                if visual is None or visual.id in seen_slots:
                    continue
                seen_slots.add(visual.id)
                accepted.append(visual)
                filled.add(visual.id[len(section.id) + 1:])
            visuals.extend(accepted)

            if not accepted and len(section.content) >= METRIC_RETRY_MIN_CONTENT:
                card = await metric_retry(transport, section)
                if card is not None:
                    visuals.append(card)
            logger.debug(
                "tier3_complete",
                section_id=section.id,
                density=density,
                requested=len(extractable),
                accepted=len(accepted),
            )

    missing = [s.title for s in slots if s.slot_id not in filled]
    return visuals, missing


# ── Node ─────────────────────────────────────────────────────────────────────


def _slot_templates(templates: list[SectionTemplate]) -> dict[str, SectionTemplate]:
    index: dict[str, SectionTemplate] = {}
    for t in templates:
        index[t.id] = t
        index.update(_slot_templates(t.children))
    return index


def _attach(sections: list[SectionResult], results: dict[str, tuple[list[Visual], list[str]]]) -> list[SectionResult]:
    attached: list[SectionResult] = []
    for section in sections:
        visuals, missing = results.get(section.id, ([], []))
        attached.append(
            section.model_copy(
                update={
                    "visuals": visuals,
                    "missing_visuals": missing,
                    "children": _attach(section.children, results),
                }
            )
        )
    return attached


async def visuals_node(
    state: dict[str, Any],
    *,
    transport: LLMTransport,
    controller: PipelineController,
    settings: Settings,
    adapters: AdapterRegistry,
) -> dict[str, Any]:
    """Extract visuals for every section with slots, de-duplicate, and close synthesis."""
    controller.start_phase("synthesis.visuals", "Extracting charts and data")
    templates = _slot_templates(state["template"].sections)
    query = state["query"]

    work: list[tuple[SectionResult, list[VisualizationSlot]]] = []
    for section in flatten_sections(state["sections"]):
        template = templates.get(section.id)
        if template is None or not template.visualization_slots:
            continue
        slots = filter_slots_by_tags(template.visualization_slots, query, section.title)
        if slots:
            work.append((section, slots))

    limiter = ConcurrencyLimiter(settings.EXTRACTION_CONCURRENCY, name="extraction")
    outcomes = await gather_bounded(
        [
            functools.partial(
                extract_section_visuals,
                section,
                slots,
                transport=transport,
                adapters=adapters,
                structured=state.get("structured_data"),
                intake=state.get("intake"),
            )
            for section, slots in work
        ],
        limiter,
    )
    results = {section.id: outcome for (section, _), outcome in zip(work, outcomes)}

    sections, removed = dedupe_visuals(_attach(state["sections"], results))
    total = sum(len(s.visuals) for s in flatten_sections(sections))
    controller.complete_phase("synthesis.visuals", f"{total} visuals across {len(work)} sections")
    controller.complete_stage()

    logger.info(
        "visuals_extracted",
        sections=len(work),
        visuals=total,
        duplicates_removed=removed,
        peak_concurrency=limiter.peak,
    )
    return {"sections": sections}
