"""Job-scoped source pool: global de-duplication and B/W citation numbering."""

from __future__ import annotations

from typing import Iterable, Iterator, Literal

from deep_research.models.schemas import Source
from deep_research.utils.text_processing import source_identity

BEROE_SOURCE_TYPES = frozenset({"beroe", "internal", "internal_data", "supplier_data"})

CitationClass = Literal["B", "W"]


def citation_class(source_type: str) -> CitationClass:
    return "B" if source_type in BEROE_SOURCE_TYPES else "W"


class SourcePool:
    """Insertion-ordered set of sources keyed by normalised url (or name).

    The first sighting of a source wins; later matches change nothing.
    Citation ids, once assigned, are never renumbered: sources that arrive
    after an assignment pass get the next free number in their class.
    """

    def __init__(self) -> None:
        self._sources: dict[str, Source] = {}
        self._counters: dict[str, int] = {"B": 0, "W": 0}

    def __len__(self) -> int:
        return len(self._sources)

    def __iter__(self) -> Iterator[Source]:
        return iter(self._sources.values())

    def __contains__(self, source: Source) -> bool:
        return source_identity(source.url, source.name) in self._sources

    @property
    def sources(self) -> list[Source]:
        return list(self._sources.values())

    def add(self, source: Source) -> bool:
        """Add ``source`` if unseen. Returns True when it was new."""
        key = source_identity(source.url, source.name)
        if key in self._sources:
            return False
        self._sources[key] = source.model_copy(update={"citation_id": None})
        return True

    def add_many(self, sources: Iterable[Source]) -> int:
        return sum(1 for source in sources if self.add(source))

    def assign_citation_ids(self) -> list[Source]:
        """Number every unnumbered source densely per class, in pool order."""
        for source in self._sources.values():
            if source.citation_id is not None:
                continue
            cls = citation_class(source.type)
            self._counters[cls] += 1
            source.citation_id = f"{cls}{self._counters[cls]}"
        return self.sources

    def by_citation_id(self) -> dict[str, Source]:
        return {s.citation_id: s for s in self._sources.values() if s.citation_id is not None}
