"""Clarifying questions, query-based prefill, and intake answer resolution."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Mapping

from deep_research.models.schemas import ClarifyingQuestion, QuestionOption

REGION_LABELS: dict[str, str] = {
    "na": "North America",
    "eu": "Europe",
    "apac": "Asia Pacific",
    "latam": "Latin America",
    "global": "Global",
}

TIMEFRAME_LABELS: dict[str, str] = {
    "6m": "6 Months",
    "12m": "12 Months",
    "2y": "2 Years",
    "5y": "5 Years",
}

_REGION_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("na", re.compile(r"\b(north\s+america|united\s+states|usa|canada|mexico)\b", re.IGNORECASE)),
    ("eu", re.compile(r"\b(europe|european|eu|emea|germany|france|uk|united\s+kingdom)\b", re.IGNORECASE)),
    ("apac", re.compile(r"\b(asia(\s+pacific)?|apac|china|india|japan|korea|southeast\s+asia)\b", re.IGNORECASE)),
    ("latam", re.compile(r"\b(latin\s+america|latam|south\s+america|brazil|chile|argentina)\b", re.IGNORECASE)),
    ("global", re.compile(r"\b(global|worldwide|international)\b", re.IGNORECASE)),
)

_TIMEFRAME_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("5y", re.compile(r"\b(5|five)[-\s]?years?\b", re.IGNORECASE)),
    ("2y", re.compile(r"\b(2|two)[-\s]?years?\b", re.IGNORECASE)),
    ("12m", re.compile(r"\b(12|twelve)[-\s]?months?\b|\b(1|one)[-\s]?year\b|\bnext\s+year\b", re.IGNORECASE)),
    ("6m", re.compile(r"\b(6|six)[-\s]?months?\b", re.IGNORECASE)),
)


def _base_questions() -> list[ClarifyingQuestion]:
    return [
        ClarifyingQuestion(
            id="region",
            prompt="Which regions should we focus on?",
            input_kind="multiselect",
            options=[QuestionOption(value=k, label=v) for k, v in REGION_LABELS.items()],
            required=True,
            default=["global"],
        ),
        ClarifyingQuestion(
            id="timeframe",
            prompt="What timeframe should the analysis cover?",
            input_kind="select",
            options=[
                QuestionOption(value="6m", label="Last 6 months"),
                QuestionOption(value="12m", label="Last 12 months"),
                QuestionOption(value="2y", label="Last 2 years"),
                QuestionOption(value="5y", label="Last 5 years"),
            ],
            required=True,
            default="12m",
        ),
    ]


_STUDY_SPECIFIC: dict[str, ClarifyingQuestion] = {
    "sourcing_study": ClarifyingQuestion(
        id="budget",
        prompt="What is your approximate annual spend in this category?",
        input_kind="select",
        options=[
            QuestionOption(value="under_1m", label="Under $1M"),
            QuestionOption(value="1m_10m", label="$1M - $10M"),
            QuestionOption(value="10m_50m", label="$10M - $50M"),
            QuestionOption(value="over_50m", label="Over $50M"),
        ],
    ),
    "cost_model": ClarifyingQuestion(
        id="cost_drivers",
        prompt="Which cost drivers are most important to analyze?",
        input_kind="multiselect",
        options=[
            QuestionOption(value="raw_materials", label="Raw materials"),
            QuestionOption(value="labor", label="Labor costs"),
            QuestionOption(value="energy", label="Energy costs"),
            QuestionOption(value="logistics", label="Logistics"),
            QuestionOption(value="packaging", label="Packaging"),
        ],
        required=True,
        default=["raw_materials", "labor"],
    ),
    "supplier_assessment": ClarifyingQuestion(
        id="assessment_criteria",
        prompt="What criteria matter most for supplier evaluation?",
        input_kind="multiselect",
        options=[
            QuestionOption(value="financial", label="Financial stability"),
            QuestionOption(value="quality", label="Quality certifications"),
            QuestionOption(value="sustainability", label="Sustainability"),
            QuestionOption(value="geography", label="Geographic coverage"),
            QuestionOption(value="innovation", label="Innovation capability"),
        ],
        required=True,
        default=["financial", "quality"],
    ),
    "risk_assessment": ClarifyingQuestion(
        id="risk_types",
        prompt="Which risk categories should we prioritize?",
        input_kind="multiselect",
        options=[
            QuestionOption(value="supply_chain", label="Supply chain disruption"),
            QuestionOption(value="price", label="Price volatility"),
            QuestionOption(value="geopolitical", label="Geopolitical risk"),
            QuestionOption(value="regulatory", label="Regulatory/compliance"),
            QuestionOption(value="esg", label="ESG/sustainability"),
        ],
        required=True,
        default=["supply_chain", "price"],
    ),
}


def get_default_questions(study_type: str) -> list[ClarifyingQuestion]:
    questions = _base_questions()
    extra = _STUDY_SPECIFIC.get(study_type)
    if extra is not None:
        questions.append(extra.model_copy(deep=True))
    return questions


def detect_regions(query: str) -> list[str]:
    return [code for code, pattern in _REGION_PATTERNS if pattern.search(query)]


def detect_timeframe(query: str) -> str | None:
    for code, pattern in _TIMEFRAME_PATTERNS:
        if pattern.search(query):
            return code
    return None


def prefill_questions(query: str, questions: list[ClarifyingQuestion]) -> list[ClarifyingQuestion]:
    """Copy ``questions`` with defaults taken from the query where it names a region or timeframe."""
    regions = detect_regions(query)
    timeframe = detect_timeframe(query)
    prefilled: list[ClarifyingQuestion] = []
    for question in questions:
        if question.id == "region" and regions:
            question = question.model_copy(update={"default": regions, "prefilled_from": "query"})
        elif question.id == "timeframe" and timeframe:
            question = question.model_copy(update={"default": timeframe, "prefilled_from": "query"})
        prefilled.append(question)
    return prefilled


def default_answers(questions: list[ClarifyingQuestion]) -> dict[str, str | list[str]]:
    return {q.id: q.default for q in questions if q.default is not None}


@dataclass(frozen=True)
class ResolvedIntake:
    """Display-ready view of intake answers used in prompts and titles."""

    regions: list[str] = field(default_factory=lambda: ["Global"])
    timeframe: str = "Current"
    category: str | None = None
    extras: dict[str, Any] = field(default_factory=dict)

    @property
    def region_text(self) -> str:
        return ", ".join(self.regions) if self.regions else "Global"

    @property
    def primary_region(self) -> str:
        return self.regions[0] if self.regions else "Global"


def _as_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value if v]
    return [str(value)] if value else []


def resolve_intake(answers: Mapping[str, Any], category: str | None = None) -> ResolvedIntake:
    regions = [REGION_LABELS.get(code, code) for code in _as_list(answers.get("region") or answers.get("regions"))]
    timeframe_code = answers.get("timeframe")
    timeframe = TIMEFRAME_LABELS.get(str(timeframe_code), str(timeframe_code)) if timeframe_code else "Current"
    extras = {k: v for k, v in answers.items() if k not in {"region", "regions", "timeframe"}}
    return ResolvedIntake(
        regions=regions or ["Global"],
        timeframe=timeframe,
        category=category or (str(answers["category"]) if answers.get("category") else None),
        extras=extras,
    )
