"""Tests for the report template registry."""

import pytest

from deep_research.models.schemas import ReportTemplate, SectionTemplate
from deep_research.reports.adapters import default_adapter_registry
from deep_research.reports.templates import (
    EXECUTIVE_SUMMARY_ID,
    REFERENCES_ID,
    REPORT_TEMPLATES,
    TemplateRegistry,
    synthesizable_sections,
)

STUDY_TYPES = ["market_analysis", "sourcing_study", "cost_model", "supplier_assessment", "risk_assessment"]


def _walk(sections):
    for section in sections:
        yield section
        yield from _walk(section.children)


@pytest.mark.parametrize("study_type", STUDY_TYPES)
def test_every_study_type_opens_with_executive_summary(study_type):
    template = TemplateRegistry().for_study_type(study_type)
    assert template.id == study_type
    assert template.sections[0].id == EXECUTIVE_SUMMARY_ID


def test_unknown_template_falls_back_to_market_analysis():
    registry = TemplateRegistry()
    assert registry.get("custom").id == "market_analysis"
    assert "custom" not in registry


def test_section_ids_unique_per_template():
    for template in REPORT_TEMPLATES.values():
        ids = [s.id for s in _walk(template.sections)]
        assert len(ids) == len(set(ids)), template.id


def test_structured_adapters_are_registered():
    registry = default_adapter_registry()
    for template in REPORT_TEMPLATES.values():
        for section in _walk(template.sections):
            for slot in section.visualization_slots:
                if slot.structured_adapter:
                    assert slot.structured_adapter in registry


def test_synthesizable_sections_skip_references():
    template = ReportTemplate(
        id="custom_refs",
        name="Custom",
        sections=[
            SectionTemplate(id=EXECUTIVE_SUMMARY_ID, title="Executive Summary"),
            SectionTemplate(id=REFERENCES_ID, title="References"),
        ],
    )
    assert [s.id for s in synthesizable_sections(template)] == [EXECUTIVE_SUMMARY_ID]


def test_register_custom_template():
    registry = TemplateRegistry()
    registry.register(ReportTemplate(id="custom", name="Custom", sections=[SectionTemplate(id="a", title="A")]))
    assert registry.get("custom").name == "Custom"
