"""Chart and table extraction prompts for the visual extractor."""

EXTRACTION_PROMPT = """\
You are a data extraction specialist. Given a section of a procurement research
report, extract structured data for chart visualisations.

RULES:
- Extract data from the prose. Prefer specific numbers, but accept qualitative
  data for metric and table slots.
- line_chart and bar_chart REQUIRE specific numeric values from the text. Set
  "filled" to false only if no numeric data points exist.
- pie_chart REQUIRES numeric shares or percentages.
- metric accepts numeric AND qualitative values ("Strong", "High Risk").
  Always try to fill metric slots with key takeaways or KPIs.
- table accepts text-based comparisons mentioned in the prose.
- Do NOT invent data the prose does not support. Do NOT hallucinate numbers.
- "confidence" is "high" if every value is quoted directly, "medium" if
  summarised or qualitative.

"data" shape depends on the slot type:
- line_chart: {{"series":[{{"name":"Price","points":[{{"x":"Q1 2024","y":1234.5}}]}}],"unit":"$/MT"}}
- bar_chart: {{"categories":["A","B"],"series":[{{"name":"Values","values":[100,200]}}],"unit":"$"}}
- pie_chart: {{"slices":[{{"label":"Segment A","value":45}},{{"label":"Segment B","value":55}}]}}
- table: {{"headers":["Name","Region"],"rows":[["Supplier A","US"]]}}
- metric: {{"metrics":[{{"label":"Market Size","value":"$50B","sub_label":"2024 est.","trend":"up","trend_value":"+5%"}}]}}
"y" and "value" in charts MUST be numbers; "x" and "label" MUST be strings.

SECTION: {section_title}
CONTENT:
{section_content}

Extract data for {slot_count} visualisation slot(s):
{slot_descriptions}

Return a JSON object: {{"slots": [{{"slot_id": "...", "filled": true, "type": "...", "title": "...", "confidence": "high", "data": {{...}}}}]}}
"""

METRIC_RETRY_PROMPT = """\
Extract 3-4 key metrics or takeaways from this report section as a summary card.
Each metric has a "label" (short name), a "value" (number, percentage, or brief
qualitative description), and optionally "trend" (up/down/stable),
"trend_value", and "sub_label" (context).

SECTION: {section_title}
CONTENT:
{section_content}

Return ONLY valid JSON: {{"metrics":[{{"label":"...","value":"...","sub_label":"...","trend":"up","trend_value":"..."}}]}}
"""

_METRIC_ITEM_SCHEMA: dict = {
    "type": "object",
    "properties": {
        "label": {"type": "string"},
        "value": {"type": "string"},
        "sub_label": {"type": "string"},
        "trend": {"type": "string"},
        "trend_value": {"type": "string"},
    },
    "required": ["label", "value"],
}

EXTRACTION_SCHEMA: dict = {
    "type": "object",
    "properties": {
        "slots": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "slot_id": {"type": "string"},
                    "filled": {"type": "boolean"},
                    "type": {"type": "string"},
                    "title": {"type": "string"},
                    "confidence": {"type": "string"},
                    "data": {
                        "type": "object",
                        "properties": {
                            "unit": {"type": "string"},
                            "series": {
                                "type": "array",
                                "items": {
                                    "type": "object",
                                    "properties": {
                                        "name": {"type": "string"},
                                        "points": {
                                            "type": "array",
                                            "items": {
                                                "type": "object",
                                                "properties": {
                                                    "x": {"type": "string"},
                                                    "y": {"type": "number"},
                                                },
                                            },
                                        },
                                        "values": {"type": "array", "items": {"type": "number"}},
                                    },
                                },
                            },
                            "categories": {"type": "array", "items": {"type": "string"}},
                            "horizontal": {"type": "boolean"},
                            "slices": {
                                "type": "array",
                                "items": {
                                    "type": "object",
                                    "properties": {
                                        "label": {"type": "string"},
                                        "value": {"type": "number"},
                                    },
                                },
                            },
                            "headers": {"type": "array", "items": {"type": "string"}},
                            "rows": {"type": "array", "items": {"type": "array", "items": {"type": "string"}}},
                            "metrics": {"type": "array", "items": _METRIC_ITEM_SCHEMA},
                        },
                    },
                },
                "required": ["slot_id", "filled"],
            },
        },
    },
    "required": ["slots"],
}

METRIC_RETRY_SCHEMA: dict = {
    "type": "object",
    "properties": {"metrics": {"type": "array", "items": _METRIC_ITEM_SCHEMA}},
    "required": ["metrics"],
}
