"""Citation marker helpers and the report citation map."""

from __future__ import annotations

import re
from typing import Iterable

from deep_research.models.schemas import Citation, SectionResult, Source

CITATION_PATTERN = re.compile(r"\[([BW]?\d+)\]")
_SPACE_BEFORE_PUNCT = re.compile(r"[ \t]+([.,;:!?])")
_CLASS_RANK = {"B": 0, "W": 1}


def extract_citation_ids(content: str) -> list[str]:
    """Citation ids in order of first appearance, without duplicates."""
    return list(dict.fromkeys(CITATION_PATTERN.findall(content or "")))


def split_citation_ids(ids: Iterable[str]) -> tuple[list[str], list[str]]:
    b_ids: list[str] = []
    w_ids: list[str] = []
    for cid in ids:
        if cid.startswith("B"):
            b_ids.append(cid)
        elif cid.startswith("W"):
            w_ids.append(cid)
    return b_ids, w_ids


def citation_sort_key(cid: str) -> tuple[int, int]:
    """B before W before plain numeric; numeric ascending within a class."""
    prefix = cid[:1] if cid[:1] in _CLASS_RANK else ""
    digits = cid[len(prefix):]
    return _CLASS_RANK.get(prefix, 2), int(digits) if digits.isdigit() else 0


def strip_unknown_citations(content: str, known_ids: Iterable[str]) -> str:
    """Remove markers whose id is not in ``known_ids``."""
    known = set(known_ids)
    stripped = CITATION_PATTERN.sub(lambda m: m.group(0) if m.group(1) in known else "", content)
    return _SPACE_BEFORE_PUNCT.sub(r"\1", stripped)


def flatten_sections(sections: Iterable[SectionResult]) -> list[SectionResult]:
    """Pre-order traversal."""
    flat: list[SectionResult] = []
    for section in sections:
        flat.append(section)
        flat.extend(flatten_sections(section.children))
    return flat


def build_citation_map(sources: list[Source], sections: list[SectionResult]) -> dict[str, Citation]:
    """Index the sources cited anywhere in ``sections`` by citation id.

    Ids are resolved against each source's assigned ``citation_id``; a plain
    ``[n]`` marker falls back to the n-th source in pool order, unless that
    source already carries a B/W id. Ids that resolve to nothing are left out.
    """
    by_id = {s.citation_id: s for s in sources if s.citation_id}
    flat = flatten_sections(sections)
    used = list(dict.fromkeys(cid for section in flat for cid in section.citation_ids))

    citations: dict[str, Citation] = {}
    for cid in used:
        source = by_id.get(cid)
        if source is None and cid.isdigit():
            index = int(cid) - 1
            if 0 <= index < len(sources) and not sources[index].citation_id:
                source = sources[index]
        if source is None:
            continue
        citations[cid] = Citation(
            id=cid,
            source=source,
            used_in_sections=[s.id for s in flat if cid in s.citation_ids],
        )
    return citations


def order_references(citations: dict[str, Citation]) -> list[Citation]:
    return sorted(citations.values(), key=lambda c: citation_sort_key(c.id))
