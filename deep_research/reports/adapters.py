"""Tier-1 structured data adapters: enriched records -> visuals, no LLM involved.

An adapter is a pure ``(record, section_id) -> Visual | None`` function. It
returns ``None`` when the record lacks enough data, which lets the slot fall
through to LLM extraction. Hosts register their own adapters by name; three
generic ones ship for the record shape below::

    {
        "name": "Carbon Steel",
        "category": "Metals",
        "currency": "USD", "unit": "MT",
        "benchmark_index": "LME",
        "price_history": [{"date": "2024-01-15", "price": 612.5}, ...],
        "suppliers": [{"name": "...", "country": "...", "share": 12.5}, ...],
        "cost_structure": {"Raw materials": 55, "Energy": 20, ...},
    }
"""

from __future__ import annotations

from collections import OrderedDict
from datetime import date, datetime
from typing import Any, Callable, Literal, Mapping

from pydantic import BaseModel, Field

from deep_research.models.schemas import (
    LineChartData,
    LineChartVisual,
    LinePoint,
    LineSeries,
    PieChartData,
    PieChartVisual,
    PieSlice,
    TableData,
    TableVisual,
    Visual,
)
from deep_research.utils.logging import get_logger

logger = get_logger(__name__)

StructuredAdapter = Callable[[Mapping[str, Any], str], "Visual | None"]


class StructuredDataContext(BaseModel):
    """Enriched records matched to the query, with intake context for labelling."""

    records: list[dict[str, Any]] = Field(default_factory=list)
    region: str | None = None
    timeframe: str | None = None
    match: Literal["exact", "broad"] = "exact"


def _parse_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value[:10]).date()
        except ValueError:
            return None
    return None


def price_history_adapter(record: Mapping[str, Any], section_id: str) -> LineChartVisual | None:
    """Quarterly-averaged benchmark price trend."""
    prices = record.get("price_history") or []
    buckets: OrderedDict[str, list[float]] = OrderedDict()
    for point in prices:
        when = _parse_date(point.get("date"))
        price = point.get("price")
        if when is None or not isinstance(price, (int, float)):
            continue
        key = f"{when.year} Q{(when.month - 1) // 3 + 1}"
        buckets.setdefault(key, []).append(float(price))

    if len(buckets) < 2:
        logger.debug("adapter_skipped", adapter="price_history", record=record.get("name"), buckets=len(buckets))
        return None

    name = record.get("name", "Benchmark")
    index = record.get("benchmark_index") or "Spot"
    unit = f"{record['currency']}/{record['unit']}" if record.get("currency") and record.get("unit") else None
    return LineChartVisual(
        id=f"{section_id}_price_trend",
        title=f"{name} Benchmark Price Trend",
        data=LineChartData(
            series=[
                LineSeries(
                    name=f"{name} ({index})",
                    points=[LinePoint(x=k, y=round(sum(v) / len(v), 2)) for k, v in buckets.items()],
                )
            ],
            unit=unit,
        ),
        confidence="high",
        footnote=f"Source: {index} quarterly average",
    )


def supplier_directory_adapter(record: Mapping[str, Any], section_id: str) -> TableVisual | None:
    suppliers = [s for s in record.get("suppliers") or [] if s.get("name")]
    if len(suppliers) < 2:
        return None
    rows = [
        [
            str(s["name"]),
            str(s.get("country") or "-"),
            f"{s['share']}%" if s.get("share") is not None else "-",
        ]
        for s in suppliers
    ]
    name = record.get("name")
    return TableVisual(
        id=f"{section_id}_supplier_table",
        title=f"Key {name} Suppliers" if name else "Key Suppliers",
        data=TableData(headers=["Supplier", "HQ Country", "Market Share"], rows=rows),
        confidence="high",
    )


def cost_structure_adapter(record: Mapping[str, Any], section_id: str) -> PieChartVisual | None:
    structure = record.get("cost_structure") or {}
    slices = [
        PieSlice(label=str(label), value=float(value))
        for label, value in structure.items()
        if isinstance(value, (int, float)) and value >= 0
    ]
    if len(slices) < 2:
        return None
    return PieChartVisual(
        id=f"{section_id}_cost_breakdown",
        title=f"{record.get('name', 'Category')} Cost Breakdown",
        data=PieChartData(slices=slices, unit="%"),
        confidence="high",
    )


class AdapterRegistry:
    """Name -> adapter map consulted by Tier-1 resolution."""

    def __init__(self, adapters: Mapping[str, StructuredAdapter] | None = None) -> None:
        self._adapters: dict[str, StructuredAdapter] = dict(adapters or {})

    def register(self, name: str, adapter: StructuredAdapter) -> None:
        self._adapters[name] = adapter

    def get(self, name: str) -> StructuredAdapter | None:
        return self._adapters.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._adapters

    @property
    def names(self) -> list[str]:
        return sorted(self._adapters)


def default_adapter_registry() -> AdapterRegistry:
    return AdapterRegistry(
        {
            "price_history": price_history_adapter,
            "supplier_directory": supplier_directory_adapter,
            "cost_structure": cost_structure_adapter,
        }
    )
