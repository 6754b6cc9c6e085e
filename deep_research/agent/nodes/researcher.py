"""Research node: internal intelligence, bounded web agents, source consolidation (stage ``research``)."""

from __future__ import annotations

import functools
import re
from typing import Any

from deep_research.agent.controller import PipelineController
from deep_research.agent.sources import SourcePool
from deep_research.agent.tools.web_research import WebResearcher
from deep_research.config import Settings
from deep_research.models.schemas import ResearchAgent, utc_now
from deep_research.utils.concurrency import ConcurrencyLimiter, gather_bounded
from deep_research.utils.exceptions import AllAgentsFailedError, SearchError
from deep_research.utils.logging import get_logger

logger = get_logger(__name__)

INSIGHT_CHARS = 220

_SENTENCE_END = re.compile(r"(?<=[.!?])\s+")

CATEGORY_LABELS: dict[str, str] = {
    "market_dynamics": "Market",
    "supplier_landscape": "Suppliers",
    "pricing_trends": "Pricing",
    "risk_factors": "Risk",
    "regulatory": "Regulatory",
    "competitive_intelligence": "Competitive",
    "technology_trends": "Technology",
    "general": "Research",
}


def headline(findings: str, limit: int = INSIGHT_CHARS) -> str:
    """First sentence of ``findings``, cut to ``limit`` characters."""
    first = _SENTENCE_END.split(findings.strip(), maxsplit=1)[0]
    return first if len(first) <= limit else first[: limit - 1].rstrip() + "…"


async def run_agent(
    agent: ResearchAgent,
    *,
    researcher: WebResearcher,
    pool: SourcePool,
    controller: PipelineController,
    completed: list[ResearchAgent],
) -> ResearchAgent:
    """Execute one agent. Failures are recorded on the agent, never raised."""
    running = agent.model_copy(update={"status": "running", "started_at": utc_now()})
    controller.update_agent(running)

    try:
        result = await researcher.research(agent.query)
    except SearchError as exc:
        failed = running.model_copy(update={"status": "error", "error": str(exc), "completed_at": utc_now()})
        logger.warning("agent_failed", agent_id=agent.id, error=str(exc))
        controller.update_agent(failed)
        return failed
    except Exception as exc:
        logger.exception("agent_crashed", agent_id=agent.id)
        failed = running.model_copy(update={"status": "error", "error": f"Unexpected error: {exc}", "completed_at": utc_now()})
        controller.update_agent(failed)
        return failed

    # Pool order is completion order; nothing awaits between merge and append
    unique = pool.add_many(result.sources)
    done = running.model_copy(
        update={
            "status": "complete",
            "raw_source_count": len(result.sources),
            "unique_source_count": unique,
            "findings": result.findings,
            "sources": result.sources,
            "completed_at": utc_now(),
        }
    )
    completed.append(done)

    controller.update_agent(done)
    controller.record_sources(done, len(result.sources), unique)
    if result.findings:
        controller.add_insight(
            headline(result.findings),
            source=agent.name,
            label=CATEGORY_LABELS.get(agent.category, "Research"),
        )
    logger.info("agent_complete", agent_id=agent.id, raw_sources=len(result.sources), unique_sources=unique)
    return done


def compile_findings(agents: list[ResearchAgent]) -> str:
    return "\n\n".join(f"### {a.name}\n{a.findings.strip()}" for a in agents if a.findings.strip())


async def researcher_node(
    state: dict[str, Any],
    *,
    controller: PipelineController,
    settings: Settings,
    researcher: WebResearcher,
) -> dict[str, Any]:
    """Run every agent and build the job's citation-numbered source pool."""
    controller.start_stage("research")
    pool = SourcePool()

    internal_sources = state.get("internal_sources") or []
    internal_findings = (state.get("internal_findings") or "").strip()
    structured = state.get("structured_data")
    has_internal = bool(internal_sources or internal_findings or (structured is not None and structured.records))

    if has_internal or not settings.SKIP_INTERNAL_WHEN_EMPTY:
        controller.start_phase("research.internal", "Loading internal market intelligence")
        added = pool.add_many(internal_sources)
        if internal_findings:
            controller.add_insight(headline(internal_findings), source="Internal intelligence", label="Internal")
        controller.complete_phase("research.internal", f"{added} internal sources")
    else:
        controller.skip_phase("research.internal", "No internal intelligence provided")

    agents: list[ResearchAgent] = state.get("agents") or []
    controller.start_phase("research.web", f"{len(agents)} agents, {settings.AGENT_CONCURRENCY} at a time")
    limiter = ConcurrencyLimiter(settings.AGENT_CONCURRENCY, name="agents")
    completed: list[ResearchAgent] = []
    results = await gather_bounded(
        [
            functools.partial(
                run_agent, agent, researcher=researcher, pool=pool, controller=controller, completed=completed
            )
            for agent in agents
        ],
        limiter,
    )

    errors = [
        {"stage": "research", "agent_id": a.id, "error": a.error} for a in results if a.status == "error"
    ]
    if not completed:
        controller.fail_phase("research.web", "All agents failed")
        logger.error("all_agents_failed", agents=len(results))
        raise AllAgentsFailedError()
    controller.complete_phase("research.web", f"{len(completed)}/{len(results)} agents complete")

    controller.start_phase("research.consolidation")
    sources = pool.assign_citation_ids()
    controller.complete_phase("research.consolidation", f"{len(sources)} unique sources")
    controller.complete_stage()

    logger.info(
        "research_complete",
        agents_ok=len(completed),
        agents_failed=len(errors),
        sources=len(sources),
        peak_concurrency=limiter.peak,
    )
    return {
        "agents": results,
        "sources": sources,
        "web_findings": compile_findings(completed),
        "errors": errors,
    }
