"""Unit tests for the Visuals node."""

from __future__ import annotations

import asyncio
import copy

import pytest

from deep_research.agent.nodes.visuals import (
    accept_extracted_slot,
    extract_section_visuals,
    resolve_structured_visuals,
    visuals_node,
)
from deep_research.models.schemas import (
    LineChartData,
    LineChartVisual,
    ReportTemplate,
    SectionTemplate,
    TableData,
    TableVisual,
    VisualizationSlot,
)
from deep_research.reports.adapters import AdapterRegistry, StructuredDataContext, default_adapter_registry

RICH_CONTENT = (
    "Hot-rolled coil averaged $650 per tonne in 2024, up 12% on 2023 [W1]. North American demand reached "
    "12 Mt against 9.5 Mt in Europe [W2]."
)

BAR_SLOT = VisualizationSlot(slot_id="demand_by_region", type="bar_chart", title="Demand by Region", min_data_points=2)
LINE_SLOT = VisualizationSlot(
    slot_id="price_trend",
    type="line_chart",
    title="Price Trend",
    min_data_points=3,
    structured_adapter="price_history",
    trend_semantics="up-bad",
)
TABLE_SLOT = VisualizationSlot(slot_id="supplier_comparison", type="table", title="Supplier Comparison", min_data_points=2)

BAR_ITEM = {
    "slot_id": "demand_by_region",
    "filled": True,
    "type": "bar_chart",
    "title": "Steel Demand by Region",
    "confidence": "high",
    "data": {"categories": ["North America", "Europe"], "series": [{"name": "2024", "values": ["12", 9.5]}], "unit": "Mt"},
}

LINE_ITEM = {
    "slot_id": "price_trend",
    "filled": True,
    "type": "line_chart",
    "title": "Hot-Rolled Coil Price",
    "confidence": "high",
    "data": {"series": [{"name": "HRC", "points": [{"x": "Q1", "y": 600}, {"x": "Q2", "y": 640}, {"x": "Q3", "y": 660}]}]},
}


@pytest.fixture
def section(section_factory):
    return section_factory("market_landscape", RICH_CONTENT, citations=["W1", "W2"])


class TestAcceptExtractedSlot:
    def test_accepts_valid_item(self, section):
        visual = accept_extracted_slot(BAR_ITEM, {"demand_by_region": BAR_SLOT}, section)

        assert visual.id == "market_landscape_demand_by_region"
        assert visual.type == "bar_chart"
        assert visual.data.series[0].values == [12.0, 9.5]
        assert visual.source_ids == ["W1", "W2"]
        assert visual.confidence == "high"

    @pytest.mark.parametrize(
        "change",
        [
            {"filled": False},
            {"type": "pie_chart"},
            {"slot_id": "unknown"},
            {"data": {"categories": ["North America"], "series": [{"name": "2024", "values": [12]}]}},
            {"data": {"categories": ["A", "B"], "series": [{"name": "2024", "values": ["n/a", 1]}]}},
        ],
    )
    def test_rejects(self, section, change):
        assert accept_extracted_slot({**BAR_ITEM, **change}, {"demand_by_region": BAR_SLOT}, section) is None

    def test_unknown_confidence_defaults_to_medium(self, section):
        visual = accept_extracted_slot({**BAR_ITEM, "confidence": "certain"}, {"demand_by_region": BAR_SLOT}, section)
        assert visual.confidence == "medium"


class TestExtractSectionVisuals:
    @pytest.mark.asyncio
    async def test_timed_out_section_gets_nothing(self, mock_transport, section_factory):
        section = section_factory("market_landscape", "placeholder", timed_out=True)

        visuals, missing = await extract_section_visuals(
            section, [BAR_SLOT], transport=mock_transport, adapters=default_adapter_registry()
        )

        assert visuals == []
        assert missing == ["Demand by Region"]
        mock_transport.json.assert_not_called()

    @pytest.mark.asyncio
    async def test_tier3_schema_json(self, mock_transport, section):
        mock_transport.json.return_value = {"slots": [BAR_ITEM, {"slot_id": "supplier_comparison", "filled": False}]}

        visuals, missing = await extract_section_visuals(
            section, [BAR_SLOT, TABLE_SLOT], transport=mock_transport, adapters=default_adapter_registry()
        )

        assert [v.id for v in visuals] == ["market_landscape_demand_by_region"]
        assert missing == ["Supplier Comparison"]
        mock_transport.chat_json.assert_not_called()

    @pytest.mark.asyncio
    async def test_chat_json_fallback(self, mock_transport, section):
        mock_transport.chat_json.return_value = {"slots": [BAR_ITEM]}

        visuals, missing = await extract_section_visuals(
            section, [BAR_SLOT], transport=mock_transport, adapters=default_adapter_registry()
        )

        assert len(visuals) == 1
        assert missing == []
        mock_transport.chat_json.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_metric_retry_when_nothing_accepted(self, mock_transport, section):
        mock_transport.json.side_effect = [
            {"slots": [{**BAR_ITEM, "filled": False}]},
            {"metrics": [
                {"label": "HRC Price", "value": "$650/t", "trend": "rising"},
                {"label": "NA Demand", "value": 12, "subLabel": "Mt"},
            ]},
        ]

        visuals, missing = await extract_section_visuals(
            section, [BAR_SLOT], transport=mock_transport, adapters=default_adapter_registry()
        )

        assert [v.id for v in visuals] == ["market_landscape_key_takeaways"]
        assert visuals[0].title == "Key Takeaways — Market Landscape"
        assert visuals[0].data.metrics[0].trend == "up"
        assert missing == ["Demand by Region"]

    @pytest.mark.asyncio
    async def test_numberless_prose_skips_chart_extraction(self, mock_transport, section_factory):
        section = section_factory("market_landscape", "Supply remains tight across the region [W1].")

        visuals, missing = await extract_section_visuals(
            section, [BAR_SLOT], transport=mock_transport, adapters=default_adapter_registry()
        )

        assert visuals == []
        assert missing == ["Demand by Region"]
        mock_transport.json.assert_not_called()

    @pytest.mark.asyncio
    async def test_structured_data_fills_slot_without_model(self, mock_transport, section, intake):
        structured = StructuredDataContext(
            records=[{
                "name": "Carbon Steel",
                "category": "Metals",
                "price_history": [
                    {"date": "2024-02-01", "price": 600},
                    {"date": "2024-05-01", "price": 640},
                    {"date": "2024-08-01", "price": 660},
                ],
            }],
            match="broad",
        )

        visuals, missing = await extract_section_visuals(
            section,
            [LINE_SLOT],
            transport=mock_transport,
            adapters=default_adapter_registry(),
            structured=structured,
            intake=intake,
        )

        visual = visuals[0]
        assert visual.title == "Carbon Steel Benchmark Price Trend (North America)"
        assert visual.footnote == (
            "Source: Spot quarterly average · 12 Months · Representative data for Metals category"
        )
        assert visual.confidence == "medium"
        assert visual.trend_semantics == "up-bad"
        assert visual.source_ids == ["W1", "W2"]
        assert missing == []
        mock_transport.json.assert_not_called()


class TestStructuredSlotChecks:
    TWO_QUARTERS = [{"date": "2024-02-01", "price": 600}, {"date": "2024-05-01", "price": 640}]
    THREE_QUARTERS = [*TWO_QUARTERS, {"date": "2024-08-01", "price": 660}]

    @pytest.mark.asyncio
    async def test_underfilled_adapter_result_leaves_slot_to_model(self, mock_transport, section):
        structured = StructuredDataContext(records=[{"name": "Carbon Steel", "price_history": self.TWO_QUARTERS}])
        mock_transport.json.return_value = {"slots": [LINE_ITEM]}

        visuals, missing = await extract_section_visuals(
            section, [LINE_SLOT], transport=mock_transport, adapters=default_adapter_registry(), structured=structured
        )

        assert len(visuals) == 1
        assert visuals[0].title == "Hot-Rolled Coil Price"
        assert visuals[0].footnote is None
        assert missing == []
        mock_transport.json.assert_awaited_once()

    def test_next_record_fills_slot_when_first_is_underfilled(self, section):
        structured = StructuredDataContext(records=[
            {"name": "Carbon Steel", "price_history": self.TWO_QUARTERS},
            {"name": "Rebar", "price_history": self.THREE_QUARTERS},
        ])

        visuals, filled = resolve_structured_visuals(section, [LINE_SLOT], structured, default_adapter_registry())

        assert [v.title for v in visuals] == ["Rebar Benchmark Price Trend"]
        assert len(visuals[0].data.series[0].points) == 3
        assert filled == {"price_trend"}

    @pytest.mark.parametrize(
        "visual",
        [
            TableVisual(id="x", title="Suppliers", data=TableData(headers=["A"], rows=[["1"], ["2"], ["3"]])),
            LineChartVisual(id="x", title="Empty Trend", data=LineChartData(series=[])),
        ],
        ids=["wrong_type", "bad_shape"],
    )
    def test_rejects_wrong_type_or_shape(self, section, visual):
        adapters = AdapterRegistry({"price_history": lambda record, section_id: visual})
        structured = StructuredDataContext(records=[{"name": "Carbon Steel"}])

        assert resolve_structured_visuals(section, [LINE_SLOT], structured, adapters) == ([], set())


@pytest.mark.asyncio
async def test_visuals_node_dedupes_and_closes_synthesis(sample_state, mock_transport, controller, settings,
                                                        section_factory):
    template = ReportTemplate(
        id="market_analysis",
        name="Market Analysis Report",
        sections=[
            SectionTemplate(
                id="market_landscape",
                title="Market Landscape",
                visualization_slots=[BAR_SLOT],
                children=[SectionTemplate(id="regional_demand", title="Regional Demand", visualization_slots=[BAR_SLOT])],
            ),
            SectionTemplate(id="conclusion", title="Conclusion"),
        ],
    )
    sections = [
        section_factory("market_landscape", RICH_CONTENT, citations=["W1"], children=[
            section_factory("regional_demand", RICH_CONTENT, citations=["W2"], level=1),
        ]),
        section_factory("conclusion", "Act now."),
    ]
    mock_transport.json.return_value = {"slots": [BAR_ITEM]}
    controller.start_stage("synthesis")
    for phase_id in ("synthesis.template", "synthesis.writing", "synthesis.quality"):
        controller.complete_phase(phase_id)

    result = await visuals_node(
        {**sample_state, "template": template, "sections": sections},
        transport=mock_transport,
        controller=controller,
        settings=settings,
        adapters=default_adapter_registry(),
    )

    parent = result["sections"][0]
    assert [v.id for v in parent.visuals] == ["market_landscape_demand_by_region"]
    assert parent.children[0].visuals == []
    assert result["sections"][1].visuals == []
    assert "synthesis" in controller.progress.completed_stages


@pytest.mark.asyncio
async def test_visuals_node_bounds_extraction_concurrency(sample_state, mock_transport, controller, settings,
                                                          section_factory):
    ids = [f"region_{i}" for i in range(6)]
    template = ReportTemplate(
        id="market_analysis",
        name="Market Analysis Report",
        sections=[SectionTemplate(id=i, title=i.title(), visualization_slots=[BAR_SLOT]) for i in ids],
    )
    active = 0
    peak = 0

    async def slow_json(*args, **kwargs):
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.01)
        active -= 1
        return {"slots": [copy.deepcopy(BAR_ITEM)]}

    mock_transport.json.side_effect = slow_json
    controller.start_stage("synthesis")
    for phase_id in ("synthesis.template", "synthesis.writing", "synthesis.quality"):
        controller.complete_phase(phase_id)

    await visuals_node(
        {**sample_state, "template": template, "sections": [section_factory(i, RICH_CONTENT) for i in ids]},
        transport=mock_transport,
        controller=controller,
        settings=settings,
        adapters=default_adapter_registry(),
    )

    assert mock_transport.json.await_count == len(ids)
    assert settings.EXTRACTION_CONCURRENCY == 3
    assert peak == settings.EXTRACTION_CONCURRENCY
