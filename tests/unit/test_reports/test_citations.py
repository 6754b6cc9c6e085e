"""Tests for citation marker helpers and the citation map."""

from deep_research.models.schemas import Citation, Source
from deep_research.reports.citations import (
    build_citation_map,
    extract_citation_ids,
    flatten_sections,
    order_references,
    split_citation_ids,
    strip_unknown_citations,
)


def test_extract_in_first_appearance_order():
    content = "Prices rose [W2]. Supply fell [B1]. Demand held [W2][3]."
    assert extract_citation_ids(content) == ["W2", "B1", "3"]


def test_split_citation_ids():
    assert split_citation_ids(["W1", "B2", "3", "B1"]) == (["B2", "B1"], ["W1"])


def test_references_order_b_before_w():
    citations = {
        cid: Citation(id=cid, source=Source(name=cid))
        for cid in ("W1", "B1", "W2", "W10", "4")
    }
    assert [c.id for c in order_references(citations)] == ["B1", "W1", "W2", "W10", "4"]


def test_strip_unknown_citations():
    content = "Prices rose 12% [W1] and eased [W7]."
    assert strip_unknown_citations(content, {"W1"}) == "Prices rose 12% [W1] and eased."


def test_flatten_is_pre_order(section_factory):
    parent = section_factory("supplier_analysis", "x", children=[section_factory("incumbent_suppliers", "y")])
    flat = flatten_sections([section_factory("introduction", "z"), parent])
    assert [s.id for s in flat] == ["introduction", "supplier_analysis", "incumbent_suppliers"]


class TestBuildCitationMap:
    def test_resolves_assigned_ids(self, sample_sources, section_factory):
        sections = [
            section_factory("market_overview", "a", citations=["W1", "B1"]),
            section_factory("conclusion", "b", citations=["W1"]),
        ]

        citations = build_citation_map(sample_sources, sections)

        assert set(citations) == {"W1", "B1"}
        assert citations["W1"].used_in_sections == ["market_overview", "conclusion"]
        assert citations["B1"].source.name == "Beroe Steel Index"

    def test_positional_fallback_for_unnumbered_sources(self, section_factory):
        sources = [Source(name="Steel Weekly"), Source(name="Metals Daily")]
        sections = [section_factory("introduction", "a", citations=["2"])]

        citations = build_citation_map(sources, sections)

        assert citations["2"].source.name == "Metals Daily"

    def test_plain_number_never_duplicates_a_numbered_source(self, sample_sources, section_factory):
        sections = [section_factory("introduction", "a", citations=["B1", "W1", "W2", "2"])]

        citations = build_citation_map(sample_sources, sections)

        assert [c.id for c in order_references(citations)] == ["B1", "W1", "W2"]

    def test_unresolvable_ids_left_out(self, sample_sources, section_factory):
        sections = [section_factory("introduction", "a", citations=["W9", "17"])]

        assert build_citation_map(sample_sources, sections) == {}
