"""Shared test fixtures."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from deep_research.agent.controller import PipelineController
from deep_research.agent.events import EventBus
from deep_research.config import Settings
from deep_research.intake.questions import resolve_intake
from deep_research.models.schemas import GeneratedTitle, Report, SectionResult, Source
from deep_research.models.transport import ChatCompletion
from deep_research.reports.assembly import assemble_report
from deep_research.reports.templates import MARKET_ANALYSIS_TEMPLATE


@pytest.fixture(autouse=True)
def _env_setup(monkeypatch):
    """Keep tests off real providers and tracing."""
    monkeypatch.setenv("REASONER_API_KEY", "test-key")
    monkeypatch.setenv("SCHEMA_JSON_API_KEY", "test-key")
    monkeypatch.setenv("TAVILY_API_KEY", "test-tavily-key")
    monkeypatch.setenv("LANGSMITH_API_KEY", "")
    monkeypatch.setenv("LANGCHAIN_TRACING_V2", "false")
    monkeypatch.setenv("LANGSMITH_TRACING", "false")


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        REASONER_API_KEY="test-key",
        SCHEMA_JSON_API_KEY="test-key",
        TAVILY_API_KEY="test-tavily-key",
        LANGSMITH_API_KEY="",
        LANGCHAIN_TRACING_V2=False,
        LOG_FORMAT="console",
    )


@pytest.fixture
def bus() -> EventBus:
    return EventBus("job-test")


@pytest.fixture
def controller(bus, settings) -> PipelineController:
    return PipelineController("job-test", bus, settings)


@pytest.fixture
def mock_transport(settings):
    """Transport double: every JSON call fails, every prose call returns a short cited paragraph."""
    transport = MagicMock()
    transport.settings = settings
    transport.chat = AsyncMock(return_value=ChatCompletion(content="Steel prices rose 12% in 2024 [W1]."))
    transport.quick_reason = AsyncMock(return_value="not json")
    transport.json = AsyncMock(return_value=None)
    transport.chat_json = AsyncMock(return_value=None)
    return transport


@pytest.fixture
def intake():
    return resolve_intake({"region": ["na"], "timeframe": "12m"})


@pytest.fixture
def sample_sources() -> list[Source]:
    return [
        Source(type="internal", name="Beroe Steel Index", snippet="Index data", citation_id="B1"),
        Source(type="web", name="Steel Weekly", url="https://steelweekly.example/prices", snippet="Prices up", citation_id="W1"),
        Source(type="web", name="Metals Daily", url="https://metalsdaily.example/supply", snippet="Supply tight", citation_id="W2"),
    ]


@pytest.fixture
def sample_state(intake, sample_sources) -> dict:
    """Research state as the synthesizer sees it."""
    return {
        "job_id": "job-test",
        "query": "Sourcing study for carbon steel in North America",
        "study_type": "sourcing_study",
        "category": None,
        "intake_answers": {"region": ["na"], "timeframe": "12m"},
        "intake": intake,
        "internal_sources": [],
        "internal_findings": "",
        "structured_data": None,
        "sources": sample_sources,
        "web_findings": "### Pricing Trends\nHot-rolled coil prices rose 12% year over year.",
        "errors": [],
    }


def make_section(section_id: str, content: str, *, citations: list[str] | None = None, **kwargs) -> SectionResult:
    return SectionResult(id=section_id, title=section_id.replace("_", " ").title(), content=content,
                         citation_ids=citations or [], **kwargs)


@pytest.fixture
def section_factory():
    return make_section


@pytest.fixture
def sample_report(sample_sources) -> Report:
    sections = [
        make_section("executive_summary", "Prices rose 12% [W1].", citations=["W1"]),
        make_section("market_overview", "Supply tightened [B1].", citations=["B1"], level=0),
    ]
    return assemble_report(
        sections=sections,
        sources=sample_sources,
        template=MARKET_ANALYSIS_TEMPLATE,
        title=GeneratedTitle(title="Carbon Steel North America Prices Up 12 Percent"),
        query="Market analysis for carbon steel",
        study_type="market_analysis",
    )
