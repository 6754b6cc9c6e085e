"""Coercion, shape validation, and filtering for LLM-extracted visual data.

Model output is untrusted: ``coerce_visual_data`` normalises the common
deviations first so that ``validate_visual_shape`` can stay strict.
"""

from __future__ import annotations

import copy
import json
import math
import re
from typing import Any, Literal

from pydantic import TypeAdapter, ValidationError

from deep_research.models.schemas import SectionResult, Visual, VisualizationSlot
from deep_research.utils.exceptions import SchemaViolationError

NumericDensity = Literal["rich", "sparse", "none"]

_CITATION_MARKER = re.compile(r"\[[BW]?\d+\]")
_NUMBER_TOKEN = re.compile(r"\d[\d,.]*%?")
_NUMBER_NOISE = re.compile(r"[,$%]")
_TREND_ALIASES = {
    "up": "up",
    "rising": "up",
    "increasing": "up",
    "growing": "up",
    "down": "down",
    "falling": "down",
    "declining": "down",
    "decreasing": "down",
    "stable": "stable",
    "flat": "stable",
    "steady": "stable",
}

_visual_adapter: TypeAdapter[Visual] = TypeAdapter(Visual)


# ── Density & slot filtering ─────────────────────────────────────────────────


def assess_numeric_density(content: str) -> NumericDensity:
    """Count numeric tokens in prose, ignoring citation markers."""
    count = len(_NUMBER_TOKEN.findall(_CITATION_MARKER.sub("", content or "")))
    if count >= 3:
        return "rich"
    if count >= 1:
        return "sparse"
    return "none"


def filter_slots_by_density(slots: list[VisualizationSlot], density: NumericDensity) -> list[VisualizationSlot]:
    """Slots worth asking the model for, given how numeric the prose is.

    ``none`` keeps only tables and metrics (possibly nothing); ``sparse`` drops
    line and bar charts unless that would leave nothing.
    """
    if density == "none":
        return [s for s in slots if s.type in ("table", "metric")]
    if density == "sparse":
        kept = [s for s in slots if s.type not in ("line_chart", "bar_chart")]
        return kept or list(slots)
    return list(slots)


def _tokens(text: str) -> set[str]:
    return {t for t in text.lower().split() if len(t) > 2}


def filter_slots_by_tags(
    slots: list[VisualizationSlot],
    query: str,
    section_title: str,
) -> list[VisualizationSlot]:
    """Keep untagged slots and slots whose tags overlap the query or section title.

    If every tagged slot would be dropped, all slots are kept.
    """
    tokens = _tokens(query) | _tokens(section_title)

    def relevant(slot: VisualizationSlot) -> bool:
        if not slot.tags:
            return True
        return any(tag.lower() in token or token in tag.lower() for tag in slot.tags for token in tokens)

    filtered = [s for s in slots if relevant(s)]
    tagged = [s for s in slots if s.tags]
    if tagged and not any(s.tags for s in filtered):
        return list(slots)
    return filtered


# ── Coercion ─────────────────────────────────────────────────────────────────


def _to_number(value: Any) -> Any:
    """Parse ``"$1,200"`` / ``"12.3%"`` into a float; anything unparsable is returned unchanged."""
    if isinstance(value, str):
        try:
            parsed = float(_NUMBER_NOISE.sub("", value).strip())
        except ValueError:
            return value
        return parsed if math.isfinite(parsed) else value
    return value


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _coerce_line(data: dict[str, Any]) -> None:
    series = data.get("series")
    if not isinstance(series, list):
        return
    for s in series:
        if not isinstance(s, dict):
            continue
        if not s.get("name") and s.get("label"):
            s["name"] = s["label"]
        if not s.get("name"):
            s["name"] = "Series"
        points = s.get("points")
        if not isinstance(points, list):
            continue
        for p in points:
            if not isinstance(p, dict):
                continue
            if p.get("y") is None and p.get("value") is not None:
                p["y"] = p["value"]
            p["y"] = _to_number(p.get("y"))
            if p.get("x") is None and p.get("label") is not None:
                p["x"] = p["label"]
            if isinstance(p.get("x"), (int, float)) and not isinstance(p.get("x"), bool):
                p["x"] = _cell(p["x"])


def _coerce_bar(data: dict[str, Any]) -> None:
    categories = data.get("categories")
    series = data.get("series")
    if not isinstance(categories, list) or not isinstance(series, list):
        return
    data["categories"] = [_cell(c) for c in categories]
    for s in series:
        if not isinstance(s, dict):
            continue
        if not s.get("name") and s.get("label"):
            s["name"] = s["label"]
        if not s.get("name"):
            s["name"] = "Series"
        values = s.get("values")
        if not isinstance(values, list):
            continue
        values = [_to_number(v) for v in values]
        if len(values) < len(categories):
            values.extend([0] * (len(categories) - len(values)))
        s["values"] = values[: len(categories)]


def _coerce_pie(data: dict[str, Any]) -> None:
    slices = data.get("slices")
    if not isinstance(slices, list):
        return
    for s in slices:
        if not isinstance(s, dict):
            continue
        s["value"] = _to_number(s.get("value"))
        if not isinstance(s.get("label"), str) and s.get("name"):
            s["label"] = str(s["name"])


def _coerce_table(data: dict[str, Any]) -> None:
    headers = data.get("headers")
    rows = data.get("rows")
    if not isinstance(headers, list) or not isinstance(rows, list):
        return
    headers = [_cell(h) for h in headers]
    data["headers"] = headers
    normalised: list[list[str]] = []
    for row in rows:
        if isinstance(row, dict):
            row = [row.get(h, row.get(h.lower())) for h in headers]
        elif not isinstance(row, list):
            row = [""] * len(headers)
        cells = [_cell(c) for c in row]
        cells.extend([""] * (len(headers) - len(cells)))
        normalised.append(cells[: len(headers)])
    data["rows"] = normalised


def _coerce_metric(data: dict[str, Any]) -> None:
    metrics = data.get("metrics")
    if not isinstance(metrics, list):
        return
    for m in metrics:
        if not isinstance(m, dict):
            continue
        if isinstance(m.get("value"), (int, float)) and not isinstance(m.get("value"), bool):
            m["value"] = _cell(m["value"])
        for camel, snake in (("subLabel", "sub_label"), ("trendValue", "trend_value")):
            if camel in m and snake not in m:
                m[snake] = m.pop(camel)
        if "trend" in m:
            m["trend"] = _TREND_ALIASES.get(str(m["trend"]).strip().lower())
        if m.get("trend_value") is not None:
            m["trend_value"] = _cell(m["trend_value"])


_COERCERS = {
    "line_chart": _coerce_line,
    "bar_chart": _coerce_bar,
    "pie_chart": _coerce_pie,
    "table": _coerce_table,
    "metric": _coerce_metric,
}


def coerce_visual_data(visual_type: str, data: dict[str, Any]) -> dict[str, Any]:
    """Return a normalised copy of ``data``; the input is not modified."""
    coerced = copy.deepcopy(data)
    coercer = _COERCERS.get(visual_type)
    if coercer is not None:
        coercer(coerced)
    return coerced


# ── Shape validation ─────────────────────────────────────────────────────────


def _is_finite_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _non_empty_list(value: Any) -> bool:
    return isinstance(value, list) and len(value) > 0


def validate_visual_shape(visual_type: str, data: Any) -> bool:
    if not isinstance(data, dict):
        return False

    if visual_type == "line_chart":
        series = data.get("series")
        return _non_empty_list(series) and all(
            isinstance(s, dict)
            and s.get("name")
            and _non_empty_list(s.get("points"))
            and all(
                isinstance(p, dict) and isinstance(p.get("x"), str) and _is_finite_number(p.get("y"))
                for p in s["points"]
            )
            for s in series
        )

    if visual_type == "bar_chart":
        categories = data.get("categories")
        series = data.get("series")
        if not _non_empty_list(categories) or not _non_empty_list(series):
            return False
        return all(
            isinstance(s, dict)
            and s.get("name")
            and isinstance(s.get("values"), list)
            and len(s["values"]) == len(categories)
            and all(_is_finite_number(v) for v in s["values"])
            for s in series
        )

    if visual_type == "pie_chart":
        slices = data.get("slices")
        return _non_empty_list(slices) and all(
            isinstance(s, dict)
            and isinstance(s.get("label"), str)
            and _is_finite_number(s.get("value"))
            and s["value"] >= 0
            for s in slices
        )

    if visual_type == "table":
        headers = data.get("headers")
        rows = data.get("rows")
        if not _non_empty_list(headers) or not _non_empty_list(rows):
            return False
        return all(isinstance(row, list) and len(row) == len(headers) for row in rows)

    if visual_type == "metric":
        metrics = data.get("metrics")
        return _non_empty_list(metrics) and all(
            isinstance(m, dict) and isinstance(m.get("label"), str) and isinstance(m.get("value"), str)
            for m in metrics
        )

    return False


def count_data_points(visual_type: str, data: dict[str, Any]) -> int:
    if visual_type == "line_chart":
        return max((len(s.get("points", [])) for s in data.get("series", [])), default=0)
    if visual_type == "bar_chart":
        return len(data.get("categories", []))
    if visual_type == "pie_chart":
        return len(data.get("slices", []))
    if visual_type == "table":
        return len(data.get("rows", []))
    if visual_type == "metric":
        return len(data.get("metrics", []))
    return 0


def build_visual(payload: dict[str, Any]) -> Visual:
    """Materialise a validated payload as a typed visual.

    Raises:
        SchemaViolationError: the payload does not fit the visual model.
    """
    try:
        return _visual_adapter.validate_python(payload)
    except ValidationError as exc:
        raise SchemaViolationError(f"Visual '{payload.get('id')}' does not fit its model: {exc}") from exc


# ── De-duplication ───────────────────────────────────────────────────────────


def visual_hash(visual: Visual) -> str:
    data = visual.data.model_dump(mode="json")
    return f"{visual.type}|{visual.title}|{json.dumps(data, sort_keys=True)}"


def dedupe_visuals(sections: list[SectionResult]) -> tuple[list[SectionResult], int]:
    """Drop visuals whose (type, title, data) already appeared earlier in section order."""
    seen: set[str] = set()
    removed = 0

    def _walk(items: list[SectionResult]) -> list[SectionResult]:
        nonlocal removed
        result: list[SectionResult] = []
        for section in items:
            kept = []
            for visual in section.visuals:
                key = visual_hash(visual)
                if key in seen:
                    removed += 1
                    continue
                seen.add(key)
                kept.append(visual)
            result.append(section.model_copy(update={"visuals": kept, "children": _walk(section.children)}))
        return result

    return _walk(sections), removed
