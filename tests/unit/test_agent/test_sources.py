"""Tests for the job-scoped source pool."""

from deep_research.agent.sources import SourcePool, citation_class
from deep_research.models.schemas import Source


def test_citation_class():
    assert citation_class("beroe") == "B"
    assert citation_class("supplier_data") == "B"
    assert citation_class("web") == "W"


class TestSourcePool:
    def test_dedup_by_normalized_url(self):
        pool = SourcePool()

        assert pool.add(Source(name="Steel Weekly", url="https://www.steelweekly.example/prices/"))
        assert not pool.add(Source(name="Steel Weekly (mirror)", url="https://steelweekly.example/prices?utm_source=feed"))
        assert len(pool) == 1
        assert pool.sources[0].name == "Steel Weekly"

    def test_dedup_by_name_without_url(self):
        pool = SourcePool()
        added = pool.add_many([
            Source(type="internal", name="Beroe Steel Index"),
            Source(type="internal", name="beroe steel index"),
        ])
        assert added == 1

    def test_numbering_per_class(self):
        pool = SourcePool()
        pool.add_many([
            Source(name="Web A", url="https://a.example"),
            Source(type="internal", name="Beroe Index"),
            Source(name="Web B", url="https://b.example"),
        ])

        ids = [s.citation_id for s in pool.assign_citation_ids()]

        assert ids == ["W1", "B1", "W2"]

    def test_ids_never_renumbered(self):
        pool = SourcePool()
        pool.add(Source(name="Web A", url="https://a.example"))
        pool.assign_citation_ids()

        pool.add(Source(type="internal", name="Beroe Index"))
        pool.add(Source(name="Web B", url="https://b.example"))
        pool.assign_citation_ids()

        assert pool.by_citation_id().keys() == {"W1", "B1", "W2"}
        assert pool.by_citation_id()["W1"].name == "Web A"

    def test_incoming_citation_ids_are_discarded(self):
        pool = SourcePool()
        pool.add(Source(name="Web A", url="https://a.example", citation_id="W9"))

        assert pool.assign_citation_ids()[0].citation_id == "W1"
