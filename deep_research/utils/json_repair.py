"""Best-effort repair of malformed JSON returned by LLMs."""

from __future__ import annotations

import json
import re
from typing import Any

from deep_research.utils.logging import get_logger

logger = get_logger(__name__)

_TRAILING_COMMA = re.compile(r",\s*([}\]])")
_INCOMPLETE_KEY_VALUE = re.compile(r',\s*"[^"]*"?\s*:?\s*"?[^"]*$')
_INCOMPLETE_OBJECT = re.compile(r",\s*\{[^}]*$")
_FIRST_OBJECT = re.compile(r"\{[\s\S]*\}")
_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def _try_parse(text: str) -> Any | None:
    try:
        return json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return None


def _missing_closers(text: str) -> str:
    """Closing brackets/braces for every container left open, innermost first."""
    stack: list[str] = []
    in_string = False
    escaped = False
    for ch in text:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in "{[":
            stack.append("}" if ch == "{" else "]")
        elif ch in "}]" and stack and stack[-1] == ch:
            stack.pop()
    return "".join(reversed(stack))


def repair_json(text: str) -> Any | None:
    """Repair common LLM JSON defects and parse.

    Stages, first success wins:
      1. drop trailing commas before ``]``/``}``;
      2. trim a dangling key/value or object and close open brackets/braces;
      3. parse the first ``{...}`` span found in the text.

    Returns ``None`` when nothing parses.
    """
    cleaned = _TRAILING_COMMA.sub(r"\1", text)
    parsed = _try_parse(cleaned)
    if parsed is not None:
        return parsed

    closed = _INCOMPLETE_KEY_VALUE.sub("", cleaned)
    closed = _INCOMPLETE_OBJECT.sub("", closed)
    closed += _missing_closers(closed)
    parsed = _try_parse(closed)
    if parsed is not None:
        logger.debug("json_repaired", stage="close_brackets")
        return parsed

    match = _FIRST_OBJECT.search(text)
    if match:
        parsed = _try_parse(_TRAILING_COMMA.sub(r"\1", match.group(0)))
        if parsed is not None:
            logger.debug("json_repaired", stage="extract_object")
            return parsed

    return None


def parse_json_response(text: str) -> Any | None:
    """Strict parse, then repair. Code fences around the payload are ignored."""
    stripped = _CODE_FENCE.sub("", text.strip()).strip()
    if not stripped:
        return None
    parsed = _try_parse(stripped)
    if parsed is not None:
        return parsed
    return repair_json(stripped)
