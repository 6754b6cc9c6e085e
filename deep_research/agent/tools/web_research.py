"""Tavily-backed web research: one search per agent sub-query, answer + sources."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

from langchain_tavily import TavilySearch

from deep_research.config import Settings
from deep_research.models.schemas import Source
from deep_research.utils.exceptions import SearchError
from deep_research.utils.json_repair import parse_json_response
from deep_research.utils.logging import get_logger
from deep_research.utils.text_processing import truncate_content

logger = get_logger(__name__)

SNIPPET_CHARS = 500


def create_tavily_search_tool(settings: Settings) -> TavilySearch:
    """Configured Tavily search with a provider-synthesised answer.

    Raw page content is disabled; the answer plus result snippets are enough
    for section synthesis.
    """
    kwargs: dict[str, Any] = {}
    if settings.TAVILY_API_KEY:
        kwargs["tavily_api_key"] = settings.TAVILY_API_KEY
    return TavilySearch(
        max_results=settings.MAX_RESULTS_PER_QUERY,
        search_depth="advanced",
        topic="general",
        include_answer=True,
        include_raw_content=False,
        include_images=False,
        **kwargs,
    )


@dataclass
class WebResearchResult:
    findings: str
    sources: list[Source] = field(default_factory=list)


def _to_sources(results: list[dict[str, Any]]) -> list[Source]:
    sources: list[Source] = []
    for item in results:
        url = item.get("url")
        name = item.get("title") or url
        if not name:
            continue
        content = item.get("content")
        sources.append(
            Source(
                type="web",
                name=name,
                url=url,
                snippet=truncate_content(content, SNIPPET_CHARS) if content else None,
            )
        )
    return sources


class WebResearcher:
    """Runs agent sub-queries against Tavily under the web-research deadline."""

    def __init__(self, settings: Settings, tool: Any | None = None) -> None:
        self._settings = settings
        self._tool = tool

    def _get_tool(self) -> Any:
        if self._tool is None:
            try:
                self._tool = create_tavily_search_tool(self._settings)
            except Exception as exc:
                raise SearchError(f"Web research unavailable: {exc}") from exc
        return self._tool

    async def research(self, query: str) -> WebResearchResult:
        """Search ``query``; raises ``SearchError`` on provider failure or timeout."""
        tool = self._get_tool()
        timeout = self._settings.WEB_RESEARCH_TIMEOUT_S
        try:
            raw = await asyncio.wait_for(tool.ainvoke({"query": query}), timeout)
        except asyncio.TimeoutError as exc:
            logger.warning("web_research_timeout", query=query, timeout_s=timeout)
            raise SearchError(f"Web research timed out after {timeout}s") from exc
        except Exception as exc:
            logger.warning("web_research_failed", query=query, error=str(exc))
            raise SearchError(f"Web research failed: {exc}") from exc

        if isinstance(raw, str):
            raw = parse_json_response(raw)
        if not isinstance(raw, dict):
            raise SearchError("Web research returned an unreadable response")
        if raw.get("error"):
            raise SearchError(f"Web research failed: {raw['error']}")

        sources = _to_sources(raw.get("results") or [])
        findings = (raw.get("answer") or "").strip()
        if not findings:
            findings = "\n\n".join(f"{s.name}: {s.snippet}" for s in sources if s.snippet)

        logger.debug("web_research_complete", query=query, sources=len(sources), findings_chars=len(findings))
        return WebResearchResult(findings=findings, sources=sources)
