"""Planner node: decompose the query into research agents (stage ``plan``)."""

from __future__ import annotations

from typing import Any

from langsmith import traceable

from deep_research.agent.controller import PipelineController
from deep_research.agent.prompts.planner import DECOMPOSITION_PROMPT, DECOMPOSITION_SCHEMA
from deep_research.config import Settings
from deep_research.intake.questions import ResolvedIntake
from deep_research.models.schemas import (
    AGENT_CATEGORIES,
    DecompositionPlan,
    PlannedAgent,
    ResearchAgent,
)
from deep_research.models.transport import LLMTransport
from deep_research.utils.exceptions import TransportError
from deep_research.utils.json_repair import parse_json_response
from deep_research.utils.logging import get_logger
from deep_research.utils.text_processing import normalize_query

logger = get_logger(__name__)

_BASE_ANGLES: tuple[tuple[str, str, str], ...] = (
    ("Market Overview", "market size growth outlook", "market_dynamics"),
    ("Pricing Trends", "price trends and forecast", "pricing_trends"),
    ("Supplier Landscape", "leading suppliers and market share", "supplier_landscape"),
)

_STUDY_ANGLES: dict[str, tuple[tuple[str, str, str], ...]] = {
    "sourcing_study": (("Sourcing Risks", "supply risks and sourcing options", "risk_factors"),),
    "cost_model": (("Cost Drivers", "cost structure raw materials labor energy", "pricing_trends"),),
    "supplier_assessment": (
        ("Supplier Capabilities", "supplier capabilities certifications financial health", "competitive_intelligence"),
    ),
    "risk_assessment": (
        ("Supply Risks", "supply chain disruption risks", "risk_factors"),
        ("Regulatory Outlook", "regulations and compliance requirements", "regulatory"),
    ),
}

_STUDY_TAGS: dict[str, tuple[str, ...]] = {
    "sourcing_study": ("supplier", "price", "risk"),
    "cost_model": ("cost", "price", "breakdown"),
    "supplier_assessment": ("supplier", "share"),
    "risk_assessment": ("risk", "disruption", "supplier"),
}


def _coerce_category(value: Any) -> str:
    category = str(value or "").strip().lower().replace(" ", "_").replace("-", "_")
    return category if category in AGENT_CATEGORIES else "general"


def parse_decomposition(raw: Any) -> DecompositionPlan | None:
    """Build a plan from a model response; ``None`` when it has no usable agents."""
    if not isinstance(raw, dict):
        return None
    agents: list[PlannedAgent] = []
    for item in raw.get("agents") or []:
        if not isinstance(item, dict):
            continue
        query = str(item.get("query") or "").strip()
        if not query:
            continue
        name = str(item.get("name") or "").strip() or query[:40]
        agents.append(PlannedAgent(name=name, query=query, category=_coerce_category(item.get("category"))))
    if not agents:
        return None
    tags = [str(t).strip().lower() for t in raw.get("tags") or [] if str(t).strip()]
    return DecompositionPlan(agents=agents, tags=list(dict.fromkeys(tags)))


def build_fallback_plan(query: str, study_type: str, intake: ResolvedIntake) -> DecompositionPlan:
    """Deterministic plan used when both model attempts fail."""
    subject = query.strip()[:120]
    scope_parts: list[str] = []
    if intake.primary_region != "Global":
        scope_parts.append(intake.primary_region)
    if intake.timeframe != "Current":
        scope_parts.append(intake.timeframe)
    scope = " ".join(scope_parts)
    agents = [
        PlannedAgent(name=name, query=" ".join(p for p in (subject, angle, scope) if p), category=category)
        for name, angle, category in _BASE_ANGLES + _STUDY_ANGLES.get(study_type, ())
    ]
    tags = ["market", "price", "region", *_STUDY_TAGS.get(study_type, ())]
    return DecompositionPlan(agents=agents, tags=list(dict.fromkeys(tags)))


def deduplicate_agents(agents: list[PlannedAgent]) -> list[PlannedAgent]:
    """Drop sub-queries that repeat an earlier (normalised query, category) pair."""
    seen: set[tuple[str, str]] = set()
    unique: list[PlannedAgent] = []
    for agent in agents:
        key = (normalize_query(agent.query), agent.category)
        if key in seen:
            continue
        seen.add(key)
        unique.append(agent)
    return unique


def assign_agents(planned: list[PlannedAgent]) -> list[ResearchAgent]:
    return [
        ResearchAgent(id=f"agent-{i}", name=p.name, query=p.query, category=p.category)
        for i, p in enumerate(planned, start=1)
    ]


@traceable(name="decompose_query")
async def decompose(
    transport: LLMTransport,
    *,
    query: str,
    study_type: str,
    intake: ResolvedIntake,
    max_agents: int,
) -> tuple[DecompositionPlan, str]:
    """Schema JSON first, then the reasoner, then the deterministic builder.

    Returns the plan and which attempt produced it.
    """
    intake_context = "; ".join(f"{k}: {v}" for k, v in intake.extras.items()) or "none"
    prompt = DECOMPOSITION_PROMPT.format(
        query=query,
        study_type=study_type.replace("_", " "),
        regions=intake.region_text,
        timeframe=intake.timeframe,
        intake_context=intake_context,
        max_agents=max_agents,
        categories=", ".join(AGENT_CATEGORIES),
    )

    plan = parse_decomposition(
        await transport.json(
            prompt,
            DECOMPOSITION_SCHEMA,
            name="decomposition",
            timeout_s=transport.settings.JSON_EXTRACTION_TIMEOUT_S,
        )
    )
    if plan is not None:
        return plan, "schema_json"

    logger.warning("decomposition_schema_json_failed", fallback="reasoner")
    try:
        plan = parse_decomposition(parse_json_response(await transport.quick_reason(prompt)))
    except TransportError as exc:
        logger.warning("decomposition_reasoner_failed", error=str(exc))
        plan = None
    if plan is not None:
        return plan, "reasoner"

    logger.warning("decomposition_fallback_plan", study_type=study_type)
    return build_fallback_plan(query, study_type, intake), "fallback"


async def planner_node(
    state: dict[str, Any],
    *,
    transport: LLMTransport,
    controller: PipelineController,
    settings: Settings,
) -> dict[str, Any]:
    """Produce the research agents for this job."""
    controller.start_stage("plan")

    controller.start_phase("plan.decomposition", "Breaking the request into research angles")
    plan, origin = await decompose(
        transport,
        query=state["query"],
        study_type=state["study_type"],
        intake=state["intake"],
        max_agents=settings.MAX_AGENTS,
    )
    controller.complete_phase("plan.decomposition", f"{len(plan.agents)} research angles")

    controller.start_phase("plan.deduplication")
    unique = deduplicate_agents(plan.agents)
    if len(unique) > settings.MAX_AGENTS:
        logger.warning("planner_agent_count_trimmed", generated=len(unique), max_agents=settings.MAX_AGENTS)
        unique = unique[: settings.MAX_AGENTS]
    controller.complete_phase("plan.deduplication", f"{len(plan.agents)} -> {len(unique)} sub-queries")

    controller.start_phase("plan.assignment")
    agents = assign_agents(unique)
    controller.set_tags(plan.tags)
    controller.set_agents(agents)
    controller.complete_phase("plan.assignment", f"{len(agents)} agents assigned")
    controller.complete_stage()

    logger.info("plan_ready", agents=len(agents), tags=plan.tags, origin=origin)
    return {
        "plan": DecompositionPlan(agents=unique, tags=plan.tags),
        "tags": plan.tags,
        "agents": agents,
    }
