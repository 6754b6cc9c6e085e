"""Text normalisation and tokenisation utilities."""

from __future__ import annotations

import re
import unicodedata
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

_TRACKING_PARAM = re.compile(r"^(utm_\w+|gclid|fbclid|ref)$", re.IGNORECASE)


def normalize_text(text: str) -> str:
    """Normalize unicode, collapse whitespace, strip."""
    text = unicodedata.normalize("NFKC", text)
    text = re.sub(r"\s+", " ", text)
    return text.strip()


def normalize_query(text: str) -> str:
    """Lower-cased, punctuation-free form of a sub-query used for de-duplication."""
    text = normalize_text(text).lower()
    text = re.sub(r"[^\w\s]", " ", text)
    return re.sub(r"\s+", " ", text).strip()


def normalize_url(url: str) -> str:
    """Canonical form of a URL for source identity.

    Lower-cases scheme and host, drops ``www.``, fragments, tracking
    parameters and trailing slashes.
    """
    url = url.strip()
    if not url:
        return ""
    parts = urlsplit(url if "://" in url else f"https://{url}")
    host = parts.netloc.lower()
    if host.startswith("www."):
        host = host[4:]
    query = urlencode(
        [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if not _TRACKING_PARAM.match(k)]
    )
    path = parts.path.rstrip("/")
    return urlunsplit((parts.scheme.lower() or "https", host, path, query, ""))


def source_identity(url: str | None, name: str) -> str:
    """De-duplication key for a source: normalised url, else normalised name."""
    if url:
        normalized = normalize_url(url)
        if normalized:
            return normalized
    return f"name:{normalize_text(name).lower()}"


def tokenize(text: str, min_length: int = 1) -> list[str]:
    """Lower-case alphanumeric tokens longer than ``min_length - 1`` characters."""
    return [t for t in re.split(r"[^a-z0-9]+", text.lower()) if len(t) >= min_length]


def jaccard_similarity(a: str, b: str) -> float:
    """Word-set Jaccard similarity after stripping non-alphanumerics."""
    set_a = set(tokenize(a))
    set_b = set(tokenize(b))
    if not set_a or not set_b:
        return 0.0
    return len(set_a & set_b) / len(set_a | set_b)


def title_case(text: str) -> str:
    """Capitalise the first letter of every word, leaving the rest untouched."""
    return re.sub(r"\b([a-z])", lambda m: m.group(1).upper(), text)


def truncate_content(text: str, max_chars: int = 50_000) -> str:
    """Truncate text to max chars, adding a marker if truncated."""
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + "\n\n[... content truncated ...]"
