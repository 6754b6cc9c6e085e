"""Deep research intent scoring.

Classifies a user query as normal chat, a deep-research suggestion, or an
auto-offer, and infers the study type. Pure: no I/O, no randomness.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from deep_research.config import DEFAULT_STUDY_TYPE_ESTIMATES
from deep_research.models.schemas import ChatContext, ChatMessage, IntentScore, SignalMatch

TRIGGER_THRESHOLD = 0.75
SUGGEST_THRESHOLD = 0.45
MIN_QUERY_LENGTH = 15


@dataclass(frozen=True)
class Signal:
    pattern: re.Pattern[str]
    weight: float
    label: str


def _signal(pattern: str, weight: float, label: str) -> Signal:
    return Signal(re.compile(pattern, re.IGNORECASE), weight, label)


def _matches(signals: list[Signal], category: str) -> list[SignalMatch]:
    return [SignalMatch(label=s.label, pattern=s.pattern.pattern, weight=s.weight, category=category) for s in signals]


_YEARS = r"(\d+[-\s]?year|Q[1-4]\s*\d{4}|2025|2026|2027|2028|2029|2030)"

HIGH_SIGNALS: tuple[Signal, ...] = (
    _signal(r"comprehensive\s+(analysis|study|report|review|assessment)", 0.35, "comprehensive analysis"),
    _signal(r"deep\s+dive", 0.30, "deep dive"),
    _signal(r"full\s+market\s+analysis", 0.35, "full market analysis"),
    _signal(r"in[-\s]?depth\s+(analysis|study|research|report)", 0.30, "in-depth analysis"),
    _signal(r"thorough\s+(analysis|study|research|review)", 0.28, "thorough analysis"),
    _signal(r"sourcing\s+study", 0.35, "sourcing study"),
    _signal(r"cost\s+model(ing)?", 0.32, "cost model"),
    _signal(r"cost\s+breakdown", 0.28, "cost breakdown"),
    _signal(rf"(forecast|outlook|projection).*{_YEARS}", 0.32, "forecast with timeframe"),
    _signal(rf"{_YEARS}.*(forecast|outlook|projection)", 0.32, "timeframe with forecast"),
    _signal(r"5[-\s]?year\s+(outlook|forecast|plan|projection)", 0.35, "5-year outlook"),
    _signal(r"supplier\s+(landscape|assessment|evaluation|analysis)", 0.30, "supplier landscape"),
    _signal(r"vendor\s+(landscape|assessment|analysis)", 0.28, "vendor landscape"),
    _signal(r"risk\s+assessment", 0.28, "risk assessment"),
    _signal(r"market\s+intelligence\s+report", 0.32, "market intelligence report"),
    _signal(r"industry\s+analysis", 0.28, "industry analysis"),
    _signal(r"prepare\s+(a\s+)?(research|report|analysis|study)", 0.30, "prepare research"),
    _signal(r"generate\s+(a\s+)?(comprehensive|detailed|full)\s+report", 0.32, "generate report"),
)

MEDIUM_SIGNALS: tuple[Signal, ...] = (
    _signal(r"benchmark(ing)?", 0.18, "benchmark"),
    _signal(r"compare\s+(to\s+)?peers", 0.16, "compare to peers"),
    _signal(r"competitive\s+analysis", 0.18, "competitive analysis"),
    _signal(r"competitive\s+landscape", 0.20, "competitive landscape"),
    _signal(r"strateg(y|ic)\s+(analysis|review|assessment)", 0.18, "strategic analysis"),
    _signal(r"strateg(y|ic)\s+recommendation", 0.16, "strategic recommendation"),
    _signal(r"supply\s+chain\s+analysis", 0.20, "supply chain analysis"),
    _signal(r"supply\s+chain\s+risk", 0.18, "supply chain risk"),
    _signal(r"multiple\s+(regions?|suppliers?|markets?)", 0.15, "multiple regions/suppliers"),
    _signal(r"(global|worldwide|international)\s+(analysis|overview|perspective)", 0.16, "global analysis"),
    _signal(r"across\s+(regions?|countries|markets)", 0.14, "across regions"),
    _signal(r"market\s+(trends?|dynamics?)", 0.16, "market trends"),
    _signal(r"pricing\s+trends?", 0.15, "pricing trends"),
    _signal(r"key\s+trends", 0.14, "key trends"),
    _signal(r"risk\s+(factors?|drivers?)", 0.14, "risk factors"),
    _signal(r"supplier\s+risk", 0.16, "supplier risk"),
    _signal(r"detailed\s+(analysis|breakdown|overview)", 0.15, "detailed analysis"),
    _signal(r"overview\s+of\s+.{10,}", 0.12, "broad overview"),
)

NEGATIVE_SIGNALS: tuple[Signal, ...] = (
    _signal(r"^what\s+is\s+(the\s+)?(current\s+)?", -0.20, "what is query"),
    _signal(r"^(what|when|where|who)\s+", -0.10, "simple question"),
    _signal(r"^how\s+much\s+(is|does|are)", -0.15, "how much query"),
    _signal(r"show\s+me\s+(my|the|our)", -0.25, "show me query"),
    _signal(r"display\s+(my|the|our)", -0.20, "display query"),
    _signal(r"list\s+(my|the|our)", -0.18, "list query"),
    _signal(r"\b(quick|brief|short|simple)\b", -0.20, "explicit simple"),
    _signal(r"just\s+(tell|show|give)", -0.15, "just tell me"),
    _signal(r"in\s+(a\s+)?few\s+words", -0.18, "few words"),
    _signal(r"^(yes|no|ok|okay|sure|thanks|thank\s+you|got\s+it)\.?$", -0.50, "conversational"),
    _signal(r"^(hi|hello|hey)(\s|!|,|\.)?$", -0.50, "greeting"),
)

# (pattern, study type, priority); highest priority wins, first match on ties
STUDY_TYPE_RULES: tuple[tuple[re.Pattern[str], str, int], ...] = tuple(
    (re.compile(p, re.IGNORECASE), st, prio)
    for p, st, prio in (
        (r"sourcing\s+(study|strategy|analysis)", "sourcing_study", 10),
        (r"procurement\s+(strategy|analysis)", "sourcing_study", 8),
        (r"supplier\s+(selection|sourcing)", "sourcing_study", 7),
        (r"cost\s+(model|breakdown|structure|analysis)", "cost_model", 10),
        (r"pricing\s+(model|analysis|breakdown)", "cost_model", 8),
        (r"should[-\s]?cost", "cost_model", 9),
        (r"total\s+cost\s+of\s+ownership", "cost_model", 9),
        (r"supplier\s+(assessment|evaluation|analysis|landscape)", "supplier_assessment", 10),
        (r"vendor\s+(assessment|evaluation|analysis)", "supplier_assessment", 8),
        (r"evaluate\s+(suppliers?|vendors?)", "supplier_assessment", 7),
        (r"risk\s+(assessment|analysis|evaluation)", "risk_assessment", 10),
        (r"supply\s+chain\s+risk", "risk_assessment", 8),
        (r"supplier\s+risk", "risk_assessment", 7),
        (r"geopolitical\s+risk", "risk_assessment", 7),
        (r"market\s+(analysis|study|research|intelligence|overview)", "market_analysis", 8),
        (r"industry\s+(analysis|overview|research)", "market_analysis", 7),
        (r"competitive\s+(landscape|analysis)", "market_analysis", 6),
        (r"(forecast|outlook|projection)", "market_analysis", 5),
        (r"trends?\s+(analysis|in)", "market_analysis", 4),
    )
)

TOPIC_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\b(?:steel|aluminum|copper|lithium|battery|batteries)\b",
        r"\b(?:packaging|corrugated|plastics|chemicals)\b",
        r"\b(?:logistics|freight|shipping|transportation)\b",
        r"\b(?:electronics|semiconductors?|chips?)\b",
        r"\b(?:raw\s+materials?|commodit(?:y|ies))\b",
    )
)

COMPLEXITY_INDICATORS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (r"compare", r"analyze", r"trends?", r"forecast", r"multiple", r"across", r"breakdown")
)

STUDY_TYPE_LABELS: dict[str, str] = {
    "sourcing_study": "Sourcing Study",
    "cost_model": "Cost Model",
    "market_analysis": "Market Analysis",
    "supplier_assessment": "Supplier Assessment",
    "risk_assessment": "Risk Assessment",
    "custom": "Custom Research",
}

STUDY_TYPE_DESCRIPTIONS: dict[str, str] = {
    "sourcing_study": "Comprehensive supplier landscape and sourcing strategy analysis",
    "cost_model": "Detailed cost breakdown and pricing structure analysis",
    "market_analysis": "Market trends, dynamics, and competitive intelligence",
    "supplier_assessment": "In-depth supplier evaluation and risk profiling",
    "risk_assessment": "Supply chain risk identification and mitigation strategies",
    "custom": "Tailored research based on your specific requirements",
}


def get_study_type_label(study_type: str) -> str:
    return STUDY_TYPE_LABELS.get(study_type, "Market Analysis")


def get_study_type_description(study_type: str) -> str:
    return STUDY_TYPE_DESCRIPTIONS.get(study_type, STUDY_TYPE_DESCRIPTIONS["market_analysis"])


def get_estimates(
    study_type: str,
    estimates: Mapping[str, Mapping[str, Any]] | None = None,
) -> tuple[int, str]:
    """Credits and time for a study type, falling back to market_analysis."""
    table = estimates or DEFAULT_STUDY_TYPE_ESTIMATES
    entry = table.get(study_type) or table.get("market_analysis") or DEFAULT_STUDY_TYPE_ESTIMATES["market_analysis"]
    return int(entry["credits"]), str(entry["time"])


def infer_study_type(query: str) -> str:
    best: tuple[str, int] | None = None
    for pattern, study_type, priority in STUDY_TYPE_RULES:
        if pattern.search(query) and (best is None or priority > best[1]):
            best = (study_type, priority)
    return best[0] if best else "market_analysis"


def build_chat_context(messages: Iterable[ChatMessage | Mapping[str, str]]) -> ChatContext:
    """Derive scoring context from a conversation history."""
    normalized = [m if isinstance(m, ChatMessage) else ChatMessage(**m) for m in messages]
    previous_queries = [m.content for m in normalized if m.role == "user"]

    topics: list[str] = []
    for query in previous_queries:
        for pattern in TOPIC_PATTERNS:
            for match in pattern.findall(query):
                topic = match.lower()
                if topic not in topics:
                    topics.append(topic)

    has_complexity = any(p.search(q) for q in previous_queries for p in COMPLEXITY_INDICATORS)

    return ChatContext(
        message_count=len(normalized),
        follow_up_count=max(0, len(previous_queries) - 1),
        topics_discussed=topics,
        has_complexity_indicators=has_complexity,
        previous_queries=previous_queries,
    )


def _context_boost(context: ChatContext | None) -> float:
    if context is None:
        return 0.0
    boost = 0.0
    if context.follow_up_count >= 3:
        boost += 0.15
    elif context.follow_up_count >= 2:
        boost += 0.08
    if context.has_complexity_indicators:
        boost += 0.10
    if len(context.topics_discussed) >= 2:
        boost += 0.05
    return boost


def _build_reason(high: list[Signal], medium: list[Signal], context_boost: float, score: float) -> str:
    if high:
        top = high[0].label
        if len(high) > 1:
            return f'Detected "{top}" and {len(high) - 1} other research indicators'
        return f'Detected "{top}" - this looks like a research request'
    if len(medium) >= 2:
        return "Multiple analysis indicators detected: " + ", ".join(s.label for s in medium[:2])
    if context_boost > 0.10:
        return "Complex conversation context suggests deeper research may help"
    if score < SUGGEST_THRESHOLD:
        return "Standard query - no deep research needed"
    return "Analysis indicators detected"


def score_intent(
    query: Any,
    context: ChatContext | None = None,
    *,
    estimates: Mapping[str, Mapping[str, Any]] | None = None,
) -> IntentScore:
    """Score ``query`` for deep research intent. Never raises."""
    if not isinstance(query, str):
        credits, time_estimate = get_estimates("market_analysis", estimates)
        return IntentScore(
            score=0.0,
            reason="invalid input",
            estimated_credits=credits,
            estimated_time=time_estimate,
            study_type_label=get_study_type_label("market_analysis"),
            study_type_description=get_study_type_description("market_analysis"),
        )

    text = query.strip()
    if len(text) < MIN_QUERY_LENGTH:
        credits, time_estimate = get_estimates("market_analysis", estimates)
        return IntentScore(
            score=0.0,
            reason="Query too short",
            estimated_credits=credits,
            estimated_time=time_estimate,
            study_type_label=get_study_type_label("market_analysis"),
            study_type_description=get_study_type_description("market_analysis"),
        )

    high = [s for s in HIGH_SIGNALS if s.pattern.search(text)]
    medium = [s for s in MEDIUM_SIGNALS if s.pattern.search(text)]
    negative = [s for s in NEGATIVE_SIGNALS if s.pattern.search(text)]

    raw = sum(s.weight for s in (*high, *medium, *negative))

    word_count = len(text.split())
    if word_count > 20:
        raw += 0.10
    elif word_count > 15:
        raw += 0.05

    boost = _context_boost(context)
    raw += boost

    score = max(0.0, min(1.0, raw))
    study_type = infer_study_type(text)
    credits, time_estimate = get_estimates(study_type, estimates)

    return IntentScore(
        score=score,
        matched_signals=[
            *_matches(high, "high"),
            *_matches(medium, "medium"),
            *_matches(negative, "negative"),
        ],
        inferred_study_type=study_type,
        reason=_build_reason(high, medium, boost, score),
        should_trigger=score >= TRIGGER_THRESHOLD,
        should_suggest=SUGGEST_THRESHOLD <= score < TRIGGER_THRESHOLD,
        estimated_credits=credits,
        estimated_time=time_estimate,
        study_type_label=get_study_type_label(study_type),
        study_type_description=get_study_type_description(study_type),
    )
