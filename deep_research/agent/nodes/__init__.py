"""Pipeline node implementations, one per graph step."""

from __future__ import annotations

from deep_research.agent.nodes.assembler import assembler_node
from deep_research.agent.nodes.planner import planner_node
from deep_research.agent.nodes.researcher import researcher_node
from deep_research.agent.nodes.synthesizer import synthesizer_node
from deep_research.agent.nodes.visuals import visuals_node

__all__ = [
    "assembler_node",
    "planner_node",
    "researcher_node",
    "synthesizer_node",
    "visuals_node",
]
