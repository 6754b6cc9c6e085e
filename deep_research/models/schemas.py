"""Pydantic models for the deep research pipeline: intake, progress, templates, visuals, reports."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


StudyType = Literal[
    "market_analysis",
    "sourcing_study",
    "cost_model",
    "supplier_assessment",
    "risk_assessment",
    "custom",
]
STUDY_TYPES: tuple[str, ...] = (
    "market_analysis",
    "sourcing_study",
    "cost_model",
    "supplier_assessment",
    "risk_assessment",
    "custom",
)

Stage = Literal["plan", "research", "synthesis", "delivery", "complete"]
PhaseStatus = Literal["pending", "active", "complete", "skipped", "error"]
AgentStatus = Literal["queued", "running", "complete", "error"]
AgentCategory = Literal[
    "market_dynamics",
    "supplier_landscape",
    "pricing_trends",
    "risk_factors",
    "regulatory",
    "competitive_intelligence",
    "technology_trends",
    "general",
]
AGENT_CATEGORIES: tuple[str, ...] = (
    "market_dynamics",
    "supplier_landscape",
    "pricing_trends",
    "risk_factors",
    "regulatory",
    "competitive_intelligence",
    "technology_trends",
    "general",
)
VisualType = Literal["line_chart", "bar_chart", "pie_chart", "table", "metric"]
Placement = Literal["before_prose", "after_prose"]
Confidence = Literal["high", "medium", "low"]
TrendSemantics = Literal["up-good", "up-bad"]
InputKind = Literal["select", "multiselect", "text", "date-range", "number", "category-picker"]


# ── Intake ───────────────────────────────────────────────────────────────────


class QuestionOption(BaseModel):
    value: str
    label: str
    description: str | None = None


class ClarifyingQuestion(BaseModel):
    id: str
    prompt: str
    input_kind: InputKind
    options: list[QuestionOption] = Field(default_factory=list)
    required: bool = False
    default: str | list[str] | None = None
    prefilled_from: str | None = None


IntakeAnswers = dict[str, Union[str, list[str]]]


class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


class ChatContext(BaseModel):
    message_count: int = 0
    follow_up_count: int = 0
    topics_discussed: list[str] = Field(default_factory=list)
    has_complexity_indicators: bool = False
    previous_queries: list[str] = Field(default_factory=list)


class SignalMatch(BaseModel):
    label: str
    pattern: str
    weight: float
    category: Literal["high", "medium", "negative"]


class IntentScore(BaseModel):
    score: float = Field(ge=0.0, le=1.0)
    matched_signals: list[SignalMatch] = Field(default_factory=list)
    inferred_study_type: StudyType = "market_analysis"
    reason: str
    should_trigger: bool = False
    should_suggest: bool = False
    estimated_credits: int = 0
    estimated_time: str = ""
    study_type_label: str = ""
    study_type_description: str = ""


# ── Sources & agents ─────────────────────────────────────────────────────────


class Source(BaseModel):
    type: str = "web"
    name: str
    url: str | None = None
    snippet: str | None = None
    citation_id: str | None = None


class PlannedAgent(BaseModel):
    """One sub-query produced by decomposition, before it is scheduled."""

    name: str
    query: str
    category: AgentCategory = "general"


class DecompositionPlan(BaseModel):
    agents: list[PlannedAgent] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)


class ResearchAgent(BaseModel):
    id: str
    name: str
    query: str
    category: AgentCategory = "general"
    status: AgentStatus = "queued"
    raw_source_count: int = 0
    unique_source_count: int = 0
    findings: str = ""
    sources: list[Source] = Field(default_factory=list)
    error: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None


# ── Progress ─────────────────────────────────────────────────────────────────


class StagePhase(BaseModel):
    id: str
    label: str
    status: PhaseStatus = "pending"
    started_at: datetime | None = None
    completed_at: datetime | None = None
    detail: str | None = None


class ResearchInsight(BaseModel):
    id: str
    text: str
    source: str | None = None
    label: str | None = None
    timestamp: datetime = Field(default_factory=utc_now)


class SynthesisProgress(BaseModel):
    total_sections: int = 0
    sections_complete: int = 0
    current_section: str | None = None
    regenerations_used: int = 0


class CommandCenterProgress(BaseModel):
    stage: Stage = "plan"
    phases: list[StagePhase] = Field(default_factory=list)
    completed_stages: list[Stage] = Field(default_factory=list)
    agents: list[ResearchAgent] = Field(default_factory=list)
    active_agent_id: str | None = None
    total_sources: int = 0
    total_sources_raw: int = 0
    tags: list[str] = Field(default_factory=list)
    insight_stream: list[ResearchInsight] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=utc_now)
    elapsed_ms: int = 0
    synthesis: SynthesisProgress | None = None
    percent: int = 0


# ── Templates ────────────────────────────────────────────────────────────────


class VisualizationSlot(BaseModel):
    slot_id: str
    type: VisualType
    title: str
    description: str = ""
    placement: Placement = "after_prose"
    min_data_points: int = Field(default=1, ge=1)
    tags: list[str] = Field(default_factory=list)
    structured_adapter: str | None = None
    trend_semantics: TrendSemantics | None = None


class SectionTemplate(BaseModel):
    id: str
    title: str
    description: str = ""
    prompt_hints: list[str] = Field(default_factory=list)
    min_citations: int = Field(default=0, ge=0)
    visualization_slots: list[VisualizationSlot] = Field(default_factory=list)
    children: list[SectionTemplate] = Field(default_factory=list)


class ReportTemplate(BaseModel):
    id: str
    name: str
    description: str = ""
    sections: list[SectionTemplate]


# ── Visuals ──────────────────────────────────────────────────────────────────


class LinePoint(BaseModel):
    x: str
    y: float


class LineSeries(BaseModel):
    name: str
    points: list[LinePoint]
    color: str | None = None


class LineChartData(BaseModel):
    series: list[LineSeries]
    unit: str | None = None


class BarSeries(BaseModel):
    name: str
    values: list[float]
    color: str | None = None


class BarChartData(BaseModel):
    categories: list[str]
    series: list[BarSeries]
    unit: str | None = None
    horizontal: bool = False


class PieSlice(BaseModel):
    label: str
    value: float = Field(ge=0)
    color: str | None = None


class PieChartData(BaseModel):
    slices: list[PieSlice]
    unit: str | None = None


class TableData(BaseModel):
    headers: list[str]
    rows: list[list[str]]


class MetricItem(BaseModel):
    label: str
    value: str
    sub_label: str | None = None
    trend: Literal["up", "down", "stable"] | None = None
    trend_value: str | None = None


class MetricData(BaseModel):
    metrics: list[MetricItem]


class _VisualBase(BaseModel):
    id: str
    title: str
    source_ids: list[str] = Field(default_factory=list)
    confidence: Confidence = "medium"
    placement: Placement = "after_prose"
    footnote: str | None = None
    trend_semantics: TrendSemantics | None = None


class LineChartVisual(_VisualBase):
    type: Literal["line_chart"] = "line_chart"
    data: LineChartData


class BarChartVisual(_VisualBase):
    type: Literal["bar_chart"] = "bar_chart"
    data: BarChartData


class PieChartVisual(_VisualBase):
    type: Literal["pie_chart"] = "pie_chart"
    data: PieChartData


class TableVisual(_VisualBase):
    type: Literal["table"] = "table"
    data: TableData


class MetricVisual(_VisualBase):
    type: Literal["metric"] = "metric"
    data: MetricData


Visual = Annotated[
    Union[LineChartVisual, BarChartVisual, PieChartVisual, TableVisual, MetricVisual],
    Field(discriminator="type"),
]


# ── Sections & report ────────────────────────────────────────────────────────


class SectionResult(BaseModel):
    id: str
    title: str
    content: str = ""
    level: int = 0
    citation_ids: list[str] = Field(default_factory=list)
    visuals: list[Visual] = Field(default_factory=list)
    missing_visuals: list[str] = Field(default_factory=list)
    children: list[SectionResult] = Field(default_factory=list)
    timed_out: bool = False


class Citation(BaseModel):
    id: str
    source: Source
    used_in_sections: list[str] = Field(default_factory=list)


class TocEntry(BaseModel):
    id: str
    title: str
    level: int


class QualityMetrics(BaseModel):
    total_citations: int = 0
    sections_with_citations: int = 0
    total_sections: int = 0
    completeness_score: int = 0


class TitleSignals(BaseModel):
    subject: str
    region: str | None = None
    timeframe: str | None = None
    top_numeric_fact: str | None = None
    top_trend: str | None = None
    study_type: StudyType = "market_analysis"


class GeneratedTitle(BaseModel):
    title: str
    subtitle: str | None = None
    key_finding: str | None = None
    origin: Literal["schema_json", "chat", "fallback"] = "fallback"


class ReportMetadata(BaseModel):
    title: str
    region: str | None = None
    date: str
    template_id: str
    version: str = "1.0"


class Report(BaseModel):
    id: str
    title: str
    subtitle: str | None = None
    key_finding: str | None = None
    report_number: str
    summary: str
    study_type: StudyType
    metadata: ReportMetadata
    table_of_contents: list[TocEntry]
    sections: list[SectionResult]
    citations: dict[str, Citation]
    references: list[Citation]
    all_sources: list[Source]
    quality_metrics: QualityMetrics
    generated_at: datetime = Field(default_factory=utc_now)
    query_original: str
    intake_answers: dict[str, Any] = Field(default_factory=dict)
    total_processing_time_ms: int = 0
    credits_used: int = 0
    can_export: bool = True


# ── Jobs & events ────────────────────────────────────────────────────────────

JobPhase = Literal["intake", "processing", "complete", "error"]
EventType = Literal[
    "phase_change",
    "step_update",
    "source_found",
    "finding_emerged",
    "report_ready",
    "error",
]


class JobError(BaseModel):
    message: str
    code: str | None = None
    can_retry: bool = True


class DeepResearchResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    job_id: str
    phase: JobPhase
    query: str
    study_type: StudyType
    category: str | None = None
    intake_questions: list[ClarifyingQuestion] = Field(default_factory=list)
    intake_answers: dict[str, Any] = Field(default_factory=dict)
    progress: CommandCenterProgress | None = None
    report: Report | None = None
    error: JobError | None = None
    estimated_credits: int = 0
    estimated_time: str = ""


class ResearchEvent(BaseModel):
    id: int
    type: EventType
    job_id: str
    timestamp: datetime = Field(default_factory=utc_now)
    data: dict[str, Any] = Field(default_factory=dict)
