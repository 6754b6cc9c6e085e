"""Report template registry: section blueprints, citation floors, and visualisation slots per study type."""

from __future__ import annotations

from typing import Any

from deep_research.models.schemas import ReportTemplate, SectionTemplate, VisualizationSlot

EXECUTIVE_SUMMARY_ID = "executive_summary"
REFERENCES_ID = "references"
DEFAULT_TEMPLATE_ID = "market_analysis"


def _slot(slot_id: str, type_: str, title: str, description: str, **kwargs: Any) -> VisualizationSlot:
    return VisualizationSlot(slot_id=slot_id, type=type_, title=title, description=description, **kwargs)


def _section(
    id_: str,
    title: str,
    description: str,
    hints: list[str],
    min_citations: int,
    slots: list[VisualizationSlot] | None = None,
    children: list[SectionTemplate] | None = None,
) -> SectionTemplate:
    return SectionTemplate(
        id=id_,
        title=title,
        description=description,
        prompt_hints=hints,
        min_citations=min_citations,
        visualization_slots=slots or [],
        children=children or [],
    )


# ── Shared slots ─────────────────────────────────────────────────────────────

_HEADLINE_METRICS = _slot(
    "headline_metrics",
    "metric",
    "Headline Metrics",
    "3-4 headline figures: market size, growth rate, price change, lead time",
    placement="before_prose",
    min_data_points=2,
)
_PRICE_TREND = _slot(
    "price_trend",
    "line_chart",
    "Price Trend",
    "Historical and forecast price points over time",
    min_data_points=3,
    tags=["price", "pricing", "cost", "index"],
    structured_adapter="price_history",
    trend_semantics="up-bad",
)
_MARKET_SIZE_BY_REGION = _slot(
    "market_size_by_region",
    "bar_chart",
    "Market Size by Region",
    "Market size or demand per region",
    min_data_points=2,
    tags=["region", "regional", "market", "demand"],
)
_MARKET_SHARE = _slot(
    "market_share",
    "pie_chart",
    "Supplier Market Share",
    "Share of the market held by the leading suppliers",
    min_data_points=3,
    tags=["share", "supplier", "concentration"],
)
_SUPPLIER_TABLE = _slot(
    "supplier_comparison",
    "table",
    "Key Supplier Comparison",
    "Leading suppliers with headquarters, capacity, and strengths",
    min_data_points=3,
    tags=["supplier", "vendor", "manufacturer"],
    structured_adapter="supplier_directory",
)
_RISK_MATRIX = _slot(
    "risk_matrix",
    "table",
    "Risk Matrix",
    "Risks with likelihood, impact, and mitigation",
    min_data_points=3,
    tags=["risk", "disruption", "mitigation"],
)
_COST_BREAKDOWN = _slot(
    "cost_breakdown",
    "pie_chart",
    "Cost Structure Breakdown",
    "Share of total cost by driver (materials, labour, energy, logistics, margin)",
    min_data_points=3,
    tags=["cost", "breakdown", "structure"],
    structured_adapter="cost_structure",
)


# ── Templates ────────────────────────────────────────────────────────────────

MARKET_ANALYSIS_TEMPLATE = ReportTemplate(
    id="market_analysis",
    name="Market Analysis Report",
    description="Market dynamics, supplier landscape, and strategic recommendations",
    sections=[
        _section(
            EXECUTIVE_SUMMARY_ID,
            "Executive Summary",
            "High-level overview of key findings, market conditions, and strategic recommendations",
            [
                "Start with market size and growth trajectory",
                "Highlight key supply-demand dynamics",
                "Include 3-5 actionable recommendations for procurement leaders",
                "Use specific numbers and percentages",
                "Keep to 2-3 paragraphs",
            ],
            2,
            [_HEADLINE_METRICS],
        ),
        _section(
            "introduction",
            "Introduction",
            "Context setting and report scope",
            ["Explain the importance of the category", "Define the scope (regions, timeframe)", "Keep to 1-2 paragraphs"],
            1,
        ),
        _section(
            "market_overview",
            "Market Overview and Outlook",
            "Market size, trends, supply-demand dynamics, costs, and forecasts",
            [
                "Include specific market size figures and CAGR",
                "Cover supply-demand dynamics and capacity constraints",
                "Analyze cost escalation by driver (labor, materials, energy)",
                "Compare regional differences where applicable",
            ],
            4,
            [_PRICE_TREND, _MARKET_SIZE_BY_REGION],
        ),
        _section(
            "supplier_landscape",
            "Supplier Landscape and Risk Profiles",
            "Major suppliers, their capabilities, financial health, and risk profiles",
            [
                "Name specific major suppliers by region",
                "Include financial health indicators where available",
                "Note supplier concentration risks",
            ],
            3,
            [_SUPPLIER_TABLE, _MARKET_SHARE],
        ),
        _section(
            "contracting_strategies",
            "Contracting and Pricing Strategies",
            "Contracting models, pricing mechanisms, and risk allocation",
            ["Describe common contracting models", "Include escalation mechanisms and pricing trends"],
            2,
        ),
        _section(
            "emerging_risks",
            "Emerging Risks and Mitigation Strategies",
            "Regulatory, environmental, and economic risks with mitigations",
            [
                "Cover regulatory and compliance risks",
                "Analyze economic risks (inflation, currency, trade)",
                "Provide a specific mitigation for each risk",
            ],
            3,
            [_RISK_MATRIX],
        ),
        _section(
            "recommendations",
            "Strategic Recommendations",
            "Actionable recommendations for procurement teams",
            ["Provide 5-7 specific, actionable recommendations", "Use bullet points", "Prioritize by impact and urgency"],
            1,
        ),
        _section(
            "conclusion",
            "Conclusion",
            "Summary and call to action",
            ["Summarize the most important takeaways", "Keep to one paragraph"],
            0,
        ),
    ],
)

SOURCING_STUDY_TEMPLATE = ReportTemplate(
    id="sourcing_study",
    name="Sourcing Study Report",
    description="Supplier evaluation, cost analysis, and sourcing recommendations",
    sections=[
        _section(
            EXECUTIVE_SUMMARY_ID,
            "Executive Summary",
            "Overview of the sourcing landscape and key recommendations",
            [
                "Summarize the current sourcing landscape",
                "Highlight key supplier options",
                "Provide clear sourcing recommendations",
            ],
            2,
            [_HEADLINE_METRICS],
        ),
        _section(
            "introduction",
            "Introduction and Scope",
            "The sourcing need and study parameters",
            ["Define the category being sourced", "Outline evaluation criteria"],
            1,
        ),
        _section(
            "market_landscape",
            "Market Landscape",
            "Supply market structure, pricing, and trends",
            ["Map the supplier ecosystem", "Identify market concentration", "Cover pricing trends and cost drivers"],
            3,
            [_PRICE_TREND, _MARKET_SHARE],
        ),
        _section(
            "supplier_analysis",
            "Supplier Analysis",
            "Evaluation and comparison of potential suppliers",
            ["Compare capabilities, capacities, and financial stability", "Evaluate against the stated criteria"],
            3,
            [_SUPPLIER_TABLE],
            children=[
                _section(
                    "incumbent_suppliers",
                    "Established Suppliers",
                    "Profiles of the established tier-1 suppliers",
                    ["Cover scale, footprint, and track record"],
                    1,
                ),
                _section(
                    "emerging_suppliers",
                    "Emerging and Alternative Suppliers",
                    "Challengers, low-cost-country options, and new entrants",
                    ["Note qualification effort and capacity risk"],
                    1,
                ),
            ],
        ),
        _section(
            "risk_assessment",
            "Risk Assessment",
            "Sourcing risks and mitigation strategies",
            ["Identify supply risks", "Propose mitigation strategies"],
            2,
            [_RISK_MATRIX],
        ),
        _section(
            "sourcing_strategy",
            "Recommended Sourcing Strategy",
            "Strategic sourcing recommendations and implementation roadmap",
            ["Propose a sourcing model (single/dual/multi)", "Outline the negotiation approach", "Include an implementation roadmap"],
            1,
        ),
        _section("conclusion", "Conclusion", "Summary and next steps", ["Define next steps"], 0),
    ],
)

COST_MODEL_TEMPLATE = ReportTemplate(
    id="cost_model",
    name="Cost Model Report",
    description="Cost structure, drivers, benchmarks, and projections",
    sections=[
        _section(
            EXECUTIVE_SUMMARY_ID,
            "Executive Summary",
            "Overview of the cost structure and savings levers",
            ["Summarize the cost structure", "Quantify the main savings opportunities"],
            2,
            [_HEADLINE_METRICS],
        ),
        _section("introduction", "Introduction", "Scope and costing approach", ["Define the cost object and scope"], 1),
        _section(
            "cost_structure",
            "Cost Structure",
            "Breakdown of total cost by component",
            ["Break total cost into components with percentages", "Use a table for the breakdown"],
            3,
            [_COST_BREAKDOWN],
        ),
        _section(
            "cost_drivers",
            "Cost Drivers",
            "Key drivers and their recent movements",
            ["Quantify the movement of each driver", "Link drivers to indices where possible"],
            3,
            [_PRICE_TREND],
        ),
        _section(
            "benchmarking",
            "Benchmarking",
            "Price and cost benchmarks across regions and suppliers",
            ["Compare regional cost levels", "Highlight outliers"],
            2,
            [_MARKET_SIZE_BY_REGION.model_copy(update={"slot_id": "regional_cost", "title": "Cost by Region", "tags": ["region", "cost", "benchmark"]})],
        ),
        _section(
            "projections_optimization",
            "Projections and Optimization",
            "Cost outlook and optimization levers",
            ["Project costs over the timeframe", "List optimization levers with estimated impact"],
            2,
        ),
        _section("conclusion", "Conclusion", "Summary and next steps", ["Summarize priority actions"], 0),
    ],
)

SUPPLIER_ASSESSMENT_TEMPLATE = ReportTemplate(
    id="supplier_assessment",
    name="Supplier Assessment Report",
    description="Analysis of a specific supplier or group of suppliers",
    sections=[
        _section(
            EXECUTIVE_SUMMARY_ID,
            "Executive Summary",
            "Overview of supplier assessment findings and recommendation",
            ["Summarize the overall assessment", "Highlight key strengths and weaknesses", "Provide a clear recommendation"],
            2,
            [_HEADLINE_METRICS],
        ),
        _section("introduction", "Introduction", "Assessment scope, criteria, and methodology", ["Define the suppliers being assessed"], 1),
        _section(
            "company_overview",
            "Company Overview",
            "History, ownership, scale, and footprint",
            ["Company history and ownership", "Geographic footprint"],
            2,
            [_SUPPLIER_TABLE],
        ),
        _section(
            "capabilities_capacity",
            "Capabilities and Capacity",
            "Technical capabilities, capacity, and certifications",
            ["Production capacity", "Quality certifications", "Innovation and R&D"],
            2,
        ),
        _section(
            "financial_analysis",
            "Financial Analysis",
            "Revenue, profitability, and financial stability",
            ["Revenue and margin trends", "Leverage and liquidity"],
            2,
            [
                _slot(
                    "financial_trend",
                    "line_chart",
                    "Revenue Trend",
                    "Revenue over recent years",
                    min_data_points=3,
                    tags=["revenue", "financial", "sales"],
                    trend_semantics="up-good",
                )
            ],
        ),
        _section(
            "risk_profile",
            "Risk Profile",
            "Operational, financial, and compliance risks",
            ["Rate each risk", "Note mitigations"],
            2,
            [_RISK_MATRIX],
        ),
        _section("recommendation", "Recommendation", "Overall recommendation and conditions", ["State the recommendation and conditions"], 0),
    ],
)

RISK_ASSESSMENT_TEMPLATE = ReportTemplate(
    id="risk_assessment",
    name="Risk Assessment Report",
    description="Supply chain, supplier, and market risk analysis",
    sections=[
        _section(
            EXECUTIVE_SUMMARY_ID,
            "Executive Summary",
            "Overview of key risks and mitigation priorities",
            ["Summarize critical risks", "Prioritize mitigation actions"],
            2,
            [_HEADLINE_METRICS],
        ),
        _section("introduction", "Introduction", "Scope and methodology of the risk assessment", ["Define the assessment scope"], 1),
        _section(
            "risk_landscape",
            "Risk Landscape Overview",
            "The risk environment across supply chain, supplier, and market risks",
            ["Categorize risk types", "Assess the overall risk level"],
            2,
        ),
        _section(
            "detailed_risk_analysis",
            "Detailed Risk Analysis",
            "Geographic, financial, regulatory, and geopolitical risks",
            ["Analyze geographic concentration", "Address regulatory and compliance risks", "Include geopolitical risks"],
            3,
            [_PRICE_TREND.model_copy(update={"slot_id": "volatility_trend", "title": "Price Volatility"})],
        ),
        _section(
            "risk_matrix",
            "Risk Matrix and Prioritization",
            "Risk ranking by impact and likelihood",
            ["Create an impact/likelihood assessment", "Use a table format"],
            0,
            [_RISK_MATRIX],
        ),
        _section(
            "mitigation_strategies",
            "Mitigation Strategies",
            "Recommended risk mitigation actions",
            ["Map mitigations to specific risks", "Include implementation guidance"],
            2,
        ),
        _section(
            "conclusion",
            "Conclusion and Monitoring Plan",
            "Summary and monitoring recommendations",
            ["Define monitoring cadence", "Note trigger points for escalation"],
            0,
        ),
    ],
)

REPORT_TEMPLATES: dict[str, ReportTemplate] = {
    t.id: t
    for t in (
        MARKET_ANALYSIS_TEMPLATE,
        SOURCING_STUDY_TEMPLATE,
        COST_MODEL_TEMPLATE,
        SUPPLIER_ASSESSMENT_TEMPLATE,
        RISK_ASSESSMENT_TEMPLATE,
    )
}


class TemplateRegistry:
    """Templates keyed by id. Hosts may register their own."""

    def __init__(self, templates: dict[str, ReportTemplate] | None = None) -> None:
        self._templates = dict(templates if templates is not None else REPORT_TEMPLATES)

    def register(self, template: ReportTemplate) -> None:
        self._templates[template.id] = template

    def get(self, template_id: str) -> ReportTemplate:
        """Look up a template, falling back to market analysis for unknown ids (incl. ``custom``)."""
        return self._templates.get(template_id) or self._templates[DEFAULT_TEMPLATE_ID]

    def for_study_type(self, study_type: str) -> ReportTemplate:
        return self.get(study_type)

    def __contains__(self, template_id: str) -> bool:
        return template_id in self._templates


def synthesizable_sections(template: ReportTemplate) -> list[SectionTemplate]:
    """Top-level sections to draft, excluding a synthetic references section."""
    return [s for s in template.sections if s.id != REFERENCES_ID]
