"""Query decomposition prompt for the planner node."""

DECOMPOSITION_PROMPT = """\
You are a senior procurement research lead. Break the research request below
into focused, non-overlapping web research tasks that a team of analysts can
run in parallel.

## Request

<request>
Query: {query}
Study type: {study_type}
Regions: {regions}
Timeframe: {timeframe}
Additional context: {intake_context}
</request>

## Planning Guidelines

- Produce between 3 and {max_agents} research tasks.
- Each task gets a short "name" (2-5 words), a concrete search "query" naming
  the category, region, and timeframe where relevant, and a "category" from:
  {categories}.
- Cover market dynamics, pricing, and suppliers first; add risk, regulatory,
  competitive, or technology angles when the study type calls for them.
- Also return 3-8 lowercase "tags" describing the topics the report should
  visualise (e.g. "price", "supplier", "risk", "cost", "region").

## Negative Instructions

- NEVER produce two tasks that would return the same search results.
- NEVER invent company names or figures in the queries.

## Output Format

Respond ONLY with valid JSON matching this schema:
{{
  "agents": [
    {{"name": "Market Size & Growth", "query": "...", "category": "market_dynamics"}}
  ],
  "tags": ["price", "supplier"]
}}
"""

DECOMPOSITION_SCHEMA: dict = {
    "type": "object",
    "properties": {
        "agents": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "query": {"type": "string"},
                    "category": {"type": "string"},
                },
                "required": ["name", "query", "category"],
            },
        },
        "tags": {"type": "array", "items": {"type": "string"}},
    },
    "required": ["agents", "tags"],
}
