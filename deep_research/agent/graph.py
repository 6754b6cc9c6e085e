"""LangGraph pipeline definition: planner -> researcher -> synthesizer -> visuals -> assembler."""

from __future__ import annotations

import functools
from typing import Any

from langgraph.graph import END, START, StateGraph

from deep_research.agent.controller import PipelineController
from deep_research.agent.nodes import (
    assembler_node,
    planner_node,
    researcher_node,
    synthesizer_node,
    visuals_node,
)
from deep_research.agent.state import ResearchState
from deep_research.agent.tools.web_research import WebResearcher
from deep_research.config import Settings
from deep_research.models.transport import LLMTransport
from deep_research.reports.adapters import AdapterRegistry
from deep_research.reports.templates import TemplateRegistry

PIPELINE_NODES: tuple[str, ...] = ("planner", "researcher", "synthesizer", "visuals", "assembler")


def build_research_graph(
    *,
    transport: LLMTransport,
    controller: PipelineController,
    settings: Settings,
    researcher: WebResearcher,
    templates: TemplateRegistry,
    adapters: AdapterRegistry,
) -> StateGraph:
    """Build the linear research StateGraph for one job.

    Each node is a partial-applied async function; the controller is
    per-job, so a graph is built for every run.
    """
    _planner = functools.partial(planner_node, transport=transport, controller=controller, settings=settings)
    _researcher = functools.partial(researcher_node, controller=controller, settings=settings, researcher=researcher)
    _synthesizer = functools.partial(
        synthesizer_node, transport=transport, controller=controller, settings=settings, templates=templates
    )
    _visuals = functools.partial(
        visuals_node, transport=transport, controller=controller, settings=settings, adapters=adapters
    )
    _assembler = functools.partial(assembler_node, transport=transport, controller=controller, settings=settings)

    graph = StateGraph(ResearchState)
    graph.add_node("planner", _planner)
    graph.add_node("researcher", _researcher)
    graph.add_node("synthesizer", _synthesizer)
    graph.add_node("visuals", _visuals)
    graph.add_node("assembler", _assembler)

    graph.add_edge(START, PIPELINE_NODES[0])
    for current, following in zip(PIPELINE_NODES, PIPELINE_NODES[1:]):
        graph.add_edge(current, following)
    graph.add_edge(PIPELINE_NODES[-1], END)
    return graph


def compile_research_graph(checkpointer: Any = None, **dependencies: Any) -> Any:
    """Build and compile the research graph, optionally with a checkpointer."""
    graph = build_research_graph(**dependencies)
    return graph.compile(checkpointer=checkpointer)
