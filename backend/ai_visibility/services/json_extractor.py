"""Resilient extractor — the single boundary between raw LM text and data.

LM replies are never trusted to be valid JSON. Every component routes
completion text through ``parse_llm_output()`` (or the ``extract()``
shorthand) and only ever sees a ``Parsed`` value or a ``Malformed``
marker carrying the raw text.

Handles:
  - ``<think>...</think>`` reasoning blocks
  - Markdown fences (```json ... ```), contents kept
  - Prose before/after the JSON
  - Bare keys, single quotes and trailing commas (repair pass)

Nothing in this module raises.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, List, Optional, Union

logger = logging.getLogger(__name__)

_THINK_RE = re.compile(r"<think>.*?</think>", re.IGNORECASE | re.DOTALL)
_FENCE_RE = re.compile(r"```[ \t]*[A-Za-z0-9_-]*[ \t]*\n?(.*?)```", re.DOTALL)
_ARRAY_RE = re.compile(r"\[.*?\]", re.DOTALL)
_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)

# Repair patterns
_BARE_KEY_RE = re.compile(r"([{,]\s*)([A-Za-z_][\w\-]*)(\s*:)")
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")

_SPLIT_RE = re.compile(r"[,\n;]")
_LIST_MARKER_RE = re.compile(r"^\s*(?:[-*•]+|\d+[.)])\s*")


@dataclass(frozen=True)
class Parsed:
    """LM text that yielded a JSON value."""

    value: Any


@dataclass(frozen=True)
class Malformed:
    """LM text that could not be turned into JSON."""

    raw_text: str


ExtractionResult = Union[Parsed, Malformed]


def clean_llm_text(text: str) -> str:
    """Drop reasoning blocks and unwrap code fences."""
    text = (text or "").lstrip("﻿")
    text = _THINK_RE.sub("", text)
    text = _FENCE_RE.sub(lambda m: m.group(1), text)
    # Unterminated fence: drop the stray markers
    text = text.replace("```", "")
    return text.strip()


def _try_json(candidate: str) -> ExtractionResult:
    try:
        return Parsed(json.loads(candidate))
    except (json.JSONDecodeError, ValueError):
        return Malformed(candidate)


def repair_json(text: str) -> str:
    """Rewrite the most common LM JSON mistakes into valid JSON."""
    first = text.find("{")
    last = text.rfind("}")
    if first != -1 and last > first:
        text = text[first : last + 1]

    text = _BARE_KEY_RE.sub(r'\1"\2"\3', text)
    text = text.replace("'", '"')
    text = _TRAILING_COMMA_RE.sub(r"\1", text)
    return text.strip()


def _scan(cleaned: str, object_first: bool) -> ExtractionResult:
    array_match = _ARRAY_RE.search(cleaned)
    object_match = _OBJECT_RE.search(cleaned)
    array_step = array_match.group(0) if array_match else None
    object_step = object_match.group(0) if object_match else None

    if object_first:
        steps = [object_step, array_step, cleaned]
    else:
        steps = [array_step, object_step, cleaned]

    for candidate in steps:
        if not candidate:
            continue
        outcome = _try_json(candidate)
        if isinstance(outcome, Parsed):
            return outcome

    repaired = repair_json(cleaned)
    if repaired:
        outcome = _try_json(repaired)
        if isinstance(outcome, Parsed):
            logger.debug("[EXTRACT] Parsed after repair: %.80s", repaired)
            return outcome

    return Malformed(cleaned)


def parse_llm_output(text: Optional[str]) -> ExtractionResult:
    """Convert free-form LM text into ``Parsed`` or ``Malformed``.

    Order: first ``[...]`` span, then first-``{``-to-last-``}`` span,
    then the whole cleaned text, then one repair attempt.
    """
    raw = text or ""
    cleaned = clean_llm_text(raw)
    if not cleaned:
        return Malformed(raw)

    outcome = _scan(cleaned, object_first=False)
    if isinstance(outcome, Malformed):
        logger.debug("[EXTRACT] No JSON found in: %.120s", cleaned)
        return Malformed(raw)
    return outcome


def extract(text: Optional[str]) -> Any:
    """Return the first JSON value found in ``text`` or None ("no data")."""
    outcome = parse_llm_output(text)
    return outcome.value if isinstance(outcome, Parsed) else None


def extract_object(text: Optional[str]) -> Optional[dict]:
    """Like ``extract`` but prefers the ``{...}`` span over the array scan.

    Callers that expect an object reply (``{"shares": [...]}``) would
    otherwise get the nested array back.
    """
    cleaned = clean_llm_text(text or "")
    if not cleaned:
        return None
    outcome = _scan(cleaned, object_first=True)
    if isinstance(outcome, Parsed) and isinstance(outcome.value, dict):
        return outcome.value
    return None


def split_names(text: Optional[str]) -> List[str]:
    """Heuristic fallback: split prose into names on commas / newlines.

    Used when an LM was asked for a list but answered in plain text.
    """
    cleaned = clean_llm_text(text or "")
    names: List[str] = []
    for part in _SPLIT_RE.split(cleaned):
        part = _LIST_MARKER_RE.sub("", part).strip().strip("\"'[]").strip()
        if part:
            names.append(part)
    return names


def string_items(value: Any) -> List[str]:
    """Keep the non-blank string items of a parsed JSON array."""
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str) and item.strip()]
