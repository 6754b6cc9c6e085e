"""Report title rewrite prompt and per-study-type title formats."""

TITLE_FORMATS: dict[str, tuple[str, ...]] = {
    "market_analysis": (
        "{subject}: {insight} in a {trend} Market",
        "{subject} Market Outlook: {insight}",
        "{subject}: Strategic Market Assessment, {insight}",
    ),
    "risk_assessment": (
        "{subject} Risk Landscape: {insight}",
        "{subject}: Navigating {trend} Amid {insight}",
        "{subject} Supply Risk Assessment: {insight}",
    ),
    "supplier_assessment": (
        "{subject} Supplier Landscape: {insight}",
        "{subject}: Evaluating the Supply Base, {insight}",
        "{subject} Supplier Intelligence: {insight}",
    ),
    "sourcing_study": (
        "{subject} Sourcing Strategy: {insight}",
        "{subject}: Strategic Sourcing Assessment, {insight}",
        "{subject} Category Deep Dive: {insight}",
    ),
    "cost_model": (
        "{subject} Cost Structure: {insight}",
        "{subject}: Cost Driver Analysis, {insight}",
        "{subject} Cost Intelligence: {insight}",
    ),
    "custom": (
        "{subject}: {insight}",
        "{subject} Analysis: {insight}",
    ),
}

TITLE_SYSTEM_PROMPT = """\
You are a senior analyst editor. Given a completed procurement research report
and extracted data signals, craft a professional title package.

REQUIREMENTS:
1. "title": professional report title (8-14 words, title case, no quotes)
   - MUST contain the domain subject
   - MUST contain a quantified insight OR strategic framing (not both)
   - MUST NOT repeat the user's query or add filler such as "Comprehensive",
     "In-Depth", "Detailed"
   - Preferred formats:
{format_examples}

2. "subtitle": one-sentence thesis (max 25 words) answering "so what?".

3. "key_finding": the single most impactful quantitative data point in the
   report (one sentence with a specific number or percentage).

STUDY TYPE: {study_type}
ORIGINAL QUERY: {query}

{signal_block}

Respond with ONLY a JSON object: {{"title": "...", "subtitle": "...", "key_finding": "..."}}
"""

TITLE_USER_PROMPT = """\
EXECUTIVE SUMMARY:
{executive_summary}

SECTION DIGEST:
{digest}
"""

TITLE_SCHEMA: dict = {
    "type": "object",
    "properties": {
        "title": {"type": "string"},
        "subtitle": {"type": "string"},
        "key_finding": {"type": "string"},
    },
    "required": ["title", "subtitle", "key_finding"],
}
