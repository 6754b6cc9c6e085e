"""Report title package: signal extraction, model rewrite with validation, deterministic fallback."""

from __future__ import annotations

import re
from typing import Any, Mapping

from langsmith import traceable

from deep_research.agent.prompts.titles import (
    TITLE_FORMATS,
    TITLE_SCHEMA,
    TITLE_SYSTEM_PROMPT,
    TITLE_USER_PROMPT,
)
from deep_research.intake.questions import ResolvedIntake
from deep_research.models.schemas import GeneratedTitle, SectionResult, TitleSignals
from deep_research.models.transport import LLMTransport
from deep_research.utils.exceptions import TransportError
from deep_research.utils.json_repair import parse_json_response
from deep_research.utils.logging import get_logger
from deep_research.utils.text_processing import jaccard_similarity, title_case

logger = get_logger(__name__)

TITLE_MIN_WORDS = 5
TITLE_MAX_WORDS = 18
QUERY_SIMILARITY_LIMIT = 0.7
SIGNAL_TEXT_CHARS = 5000
EXEC_SUMMARY_CHARS = 800
DIGEST_CHARS = 3000
DIGEST_SECTION_CHARS = 200

_SUBJECT_KEYS = ("category", "commodity", "product", "service", "subject", "material")
_LEADING_VERB = re.compile(
    r"^(analyze|analyse|research|study|assess|evaluate|investigate|compare|review|tell me about|what is|how does)\s+",
    re.IGNORECASE,
)
_TRAILING_NOUN = re.compile(r"\s+(market|industry|sector|landscape|analysis|report|study|assessment)$", re.IGNORECASE)
_DOLLAR_FACT = re.compile(r"\$[\d,.]+\s*(?:billion|million|trillion|B|M|T)\b[^.]{0,40}", re.IGNORECASE)
_PERCENT_FACT = re.compile(
    r"[+-]?[\d,.]+%\s*(?:CAGR|growth|increase|decrease|YoY|year-over-year|annually|MoM)[^.]{0,30}",
    re.IGNORECASE,
)
_TREND_PATTERNS = (
    re.compile(r"prices?\s+(?:are\s+)?(?:rising|increasing|surging|climbing)", re.IGNORECASE),
    re.compile(r"prices?\s+(?:are\s+)?(?:falling|declining|dropping|decreasing)", re.IGNORECASE),
    re.compile(r"supply\s+(?:is\s+)?(?:tightening|constrained|disrupted|shrinking)", re.IGNORECASE),
    re.compile(r"demand\s+(?:is\s+)?(?:growing|surging|expanding|accelerating)", re.IGNORECASE),
    re.compile(r"market\s+(?:is\s+)?(?:consolidating|fragmenting|maturing|emerging)", re.IGNORECASE),
    re.compile(r"costs?\s+(?:are\s+)?(?:rising|escalating|declining|stabilizing)", re.IGNORECASE),
)
_FORBIDDEN = (
    re.compile(r"comprehensive\s+(analysis|report|study)", re.IGNORECASE),
    re.compile(r"in-depth\s+(analysis|report|study)", re.IGNORECASE),
    re.compile(r"^report\s+on\s+", re.IGNORECASE),
    re.compile(r"^analysis\s+of\s+", re.IGNORECASE),
    re.compile(r"^a\s+study\s+", re.IGNORECASE),
)


# ── Signals ──────────────────────────────────────────────────────────────────


def extract_domain_subject(query: str, answers: Mapping[str, Any] | None = None) -> str | None:
    """The commodity or category the report is about, from intake answers or the query."""
    for key in _SUBJECT_KEYS:
        value = (answers or {}).get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
        if isinstance(value, list) and value:
            return ", ".join(str(v) for v in value)
    cleaned = _TRAILING_NOUN.sub("", _LEADING_VERB.sub("", query.strip())).strip()
    if 0 < len(cleaned) < 80:
        return cleaned
    return None


def _strip_fact(match: re.Match[str]) -> str:
    return re.sub(r"[,.]$", "", match.group(0).strip())


def extract_title_signals(
    sections: list[SectionResult],
    executive_summary: str,
    *,
    query: str,
    study_type: str,
    intake: ResolvedIntake,
    answers: Mapping[str, Any] | None = None,
) -> TitleSignals:
    """Subject, scope, and the strongest number and trend in the opening of the report."""
    subject = extract_domain_subject(query, answers) or query[:50]
    text = " ".join([executive_summary, *(s.content for s in sections[:2])])[:SIGNAL_TEXT_CHARS]

    fact: str | None = None
    match = _DOLLAR_FACT.search(text) or _PERCENT_FACT.search(text)
    if match:
        fact = _strip_fact(match)

    trend: str | None = None
    for pattern in _TREND_PATTERNS:
        found = pattern.search(executive_summary)
        if found:
            trend = found.group(0).strip()
            break

    return TitleSignals(
        subject=subject,
        region=intake.primary_region if intake.regions else None,
        timeframe=intake.timeframe if intake.timeframe != "Current" else None,
        top_numeric_fact=fact,
        top_trend=trend,
        study_type=study_type,
    )


# ── Validation & fallback ────────────────────────────────────────────────────


def validate_title(title: str, query: str) -> tuple[bool, str | None]:
    """Returns ``(valid, reason)``; reason is one of too_short, too_long, too_similar_to_query, forbidden_pattern."""
    words = len(title.split())
    if words < TITLE_MIN_WORDS:
        return False, "too_short"
    if words > TITLE_MAX_WORDS:
        return False, "too_long"
    if jaccard_similarity(title, query) > QUERY_SIMILARITY_LIMIT:
        return False, "too_similar_to_query"
    if any(p.search(title) for p in _FORBIDDEN):
        return False, "forbidden_pattern"
    return True, None


def build_fallback_title(signals: TitleSignals | None, *, query: str, template_name: str) -> str:
    subject = title_case(signals.subject if signals else query[:50])
    if signals is not None:
        region = f" {signals.region}" if signals.region and signals.region != "Global" else ""
        if signals.top_numeric_fact:
            return f"{subject}{region} — {signals.top_numeric_fact}"
        if signals.top_trend:
            return f"{subject}{region} — {signals.top_trend[0].upper()}{signals.top_trend[1:]}"
    return f"{subject} — {template_name}"


# ── Generation ───────────────────────────────────────────────────────────────


def _signal_block(signals: TitleSignals) -> str:
    lines = [f"SUBJECT: {signals.subject}"]
    if signals.region:
        lines.append(f"REGION: {signals.region}")
    if signals.timeframe:
        lines.append(f"TIMEFRAME: {signals.timeframe}")
    if signals.top_numeric_fact:
        lines.append(f"KEY NUMERIC: {signals.top_numeric_fact}")
    if signals.top_trend:
        lines.append(f"KEY TREND: {signals.top_trend}")
    return "\n".join(lines)


def _accept(raw: Any, query: str, origin: str) -> GeneratedTitle | None:
    if not isinstance(raw, dict) or not isinstance(raw.get("title"), str) or not raw["title"].strip():
        return None
    title = raw["title"].strip()
    valid, reason = validate_title(title, query)
    if not valid:
        logger.warning("title_rejected", origin=origin, reason=reason, title=title)
        return None
    subtitle = raw.get("subtitle")
    key_finding = raw.get("key_finding") or raw.get("keyFinding")
    return GeneratedTitle(
        title=title,
        subtitle=subtitle if isinstance(subtitle, str) and subtitle else None,
        key_finding=key_finding if isinstance(key_finding, str) and key_finding else None,
        origin=origin,
    )


@traceable(name="generate_title")
async def generate_title(
    transport: LLMTransport,
    *,
    sections: list[SectionResult],
    executive_summary: str,
    signals: TitleSignals,
    query: str,
    template_name: str,
) -> GeneratedTitle:
    """Schema JSON, then the chat model, then ``build_fallback_title``; each model title is validated."""
    formats = TITLE_FORMATS.get(signals.study_type, TITLE_FORMATS["custom"])
    system = TITLE_SYSTEM_PROMPT.format(
        format_examples="\n".join(f'     - "{f}"' for f in formats),
        study_type=signals.study_type.replace("_", " "),
        query=query,
        signal_block=_signal_block(signals),
    )
    digest = "\n\n".join(f"## {s.title}\n{s.content[:DIGEST_SECTION_CHARS]}..." for s in sections)
    user = TITLE_USER_PROMPT.format(
        executive_summary=executive_summary[:EXEC_SUMMARY_CHARS],
        digest=digest[:DIGEST_CHARS],
    )

    result = _accept(
        await transport.json(f"{system}\n\n{user}", TITLE_SCHEMA, name="report_title", max_tokens=300, temperature=0.3),
        query,
        "schema_json",
    )
    if result is not None:
        return result

    try:
        completion = await transport.chat(
            [{"role": "system", "content": system}, {"role": "user", "content": user}],
            model="chat",
            max_tokens=300,
            temperature=0.4,
            timeout_s=30.0,
        )
        result = _accept(parse_json_response(completion.content), query, "chat")
    except TransportError as exc:
        logger.warning("title_chat_failed", error=str(exc))
        result = None
    if result is not None:
        return result

    logger.info("title_fallback", subject=signals.subject)
    return GeneratedTitle(
        title=build_fallback_title(signals, query=query, template_name=template_name),
        origin="fallback",
    )
