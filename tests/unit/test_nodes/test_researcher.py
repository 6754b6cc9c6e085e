"""Unit tests for the Researcher node."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from deep_research.agent.nodes.researcher import headline, researcher_node
from deep_research.agent.tools.web_research import WebResearchResult
from deep_research.models.schemas import ResearchAgent, Source
from deep_research.utils.exceptions import AllAgentsFailedError, SearchError


def _agents(n: int) -> list[ResearchAgent]:
    return [ResearchAgent(id=f"agent-{i}", name=f"Angle {i}", query=f"steel angle {i}") for i in range(1, n + 1)]


def _result(*urls: str, findings: str = "Hot-rolled coil rose 12%. Mills cut output.") -> WebResearchResult:
    return WebResearchResult(
        findings=findings,
        sources=[Source(name=f"Source {u}", url=f"https://{u}.example/report") for u in urls],
    )


@pytest.fixture
def research_state(sample_state):
    state = dict(sample_state)
    state["agents"] = _agents(3)
    state.pop("sources")
    return state


@pytest.fixture
def mock_researcher():
    researcher = MagicMock()
    researcher.research = AsyncMock(side_effect=[_result("a", "b"), _result("b", "c"), _result("d")])
    return researcher


def test_headline_first_sentence():
    assert headline("Prices rose 12%. Supply tightened.") == "Prices rose 12%."
    assert headline("x" * 300, limit=10) == "xxxxxxxxx…"


@pytest.mark.asyncio
async def test_pool_is_deduplicated_and_numbered(research_state, controller, settings, mock_researcher):
    result = await researcher_node(research_state, controller=controller, settings=settings, researcher=mock_researcher)

    sources = result["sources"]
    assert len(sources) == 4
    assert [s.citation_id for s in sources] == ["W1", "W2", "W3", "W4"]
    assert all(a.status == "complete" for a in result["agents"])
    assert result["errors"] == []
    assert "### Angle 1" in result["web_findings"]
    assert controller.progress.total_sources_raw == 5
    assert controller.progress.total_sources == 4
    assert controller.progress.completed_stages == ["research"]


@pytest.mark.asyncio
async def test_internal_phase_skipped_without_internal_data(research_state, controller, settings, mock_researcher):
    await researcher_node(research_state, controller=controller, settings=settings, researcher=mock_researcher)

    internal = next(p for p in controller.progress.phases if p.id == "research.internal")
    assert internal.status == "skipped"


@pytest.mark.asyncio
async def test_internal_sources_numbered_as_beroe(research_state, controller, settings, mock_researcher):
    research_state["internal_sources"] = [Source(type="beroe", name="Beroe Steel Index")]
    research_state["internal_findings"] = "Internal index shows a 9% rise. More detail follows."

    result = await researcher_node(research_state, controller=controller, settings=settings, researcher=mock_researcher)

    assert result["sources"][0].citation_id == "B1"
    internal = next(p for p in controller.progress.phases if p.id == "research.internal")
    assert internal.status == "complete"
    assert controller.progress.insight_stream[0].label == "Internal"


@pytest.mark.asyncio
async def test_partial_failure_is_recorded(research_state, controller, settings):
    researcher = MagicMock()
    researcher.research = AsyncMock(side_effect=[_result("a"), SearchError("timed out"), _result("b")])

    result = await researcher_node(research_state, controller=controller, settings=settings, researcher=researcher)

    statuses = [a.status for a in result["agents"]]
    assert statuses.count("error") == 1
    assert result["errors"][0]["error"] == "timed out"
    assert len(result["sources"]) == 2


@pytest.mark.asyncio
async def test_all_agents_failed(research_state, controller, settings):
    researcher = MagicMock()
    researcher.research = AsyncMock(side_effect=SearchError("provider down"))

    with pytest.raises(AllAgentsFailedError) as exc_info:
        await researcher_node(research_state, controller=controller, settings=settings, researcher=researcher)

    assert exc_info.value.code == "all_agents_failed"
    web = next(p for p in controller.progress.phases if p.id == "research.web")
    assert web.status == "error"


@pytest.mark.asyncio
async def test_concurrency_is_bounded(research_state, controller, settings):
    research_state["agents"] = _agents(6)
    settings = settings.model_copy(update={"AGENT_CONCURRENCY": 2})
    active = 0
    peak = 0

    async def slow_research(query):
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.01)
        active -= 1
        return _result(query.replace(" ", "-"))

    researcher = MagicMock()
    researcher.research = AsyncMock(side_effect=slow_research)

    result = await researcher_node(research_state, controller=controller, settings=settings, researcher=researcher)

    assert peak == 2
    assert len(result["sources"]) == 6
