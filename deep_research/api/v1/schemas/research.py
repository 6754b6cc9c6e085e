"""Request models for the research and intent API."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

from deep_research.models.schemas import ChatMessage, StudyType
from deep_research.reports.adapters import StructuredDataContext


class InternalSourceInput(BaseModel):
    type: Literal["beroe", "internal", "internal_data", "supplier_data"] = "internal"
    name: str = Field(..., min_length=1)
    url: str | None = None
    snippet: str | None = None


class StartResearchRequest(BaseModel):
    query: str = Field(..., min_length=1, examples=["Sourcing study for carbon steel in North America"])
    study_type: StudyType | None = None
    category: str | None = None
    intake_answers: dict[str, Any] = Field(default_factory=dict)
    skip_intake: bool = False
    internal_sources: list[InternalSourceInput] = Field(default_factory=list)
    internal_findings: str = ""
    structured_data: StructuredDataContext | None = None


class IntakeRequest(BaseModel):
    answers: dict[str, Any] = Field(default_factory=dict)


class IntentScoreRequest(BaseModel):
    query: Any = None
    messages: list[ChatMessage] = Field(default_factory=list)
