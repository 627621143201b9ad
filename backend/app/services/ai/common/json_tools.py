"""JSON recovery from LLM replies (code fences, chatter, trailing text)."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Iterator

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*(.*?)```", re.DOTALL)
_PAIRS = {"{": "}", "[": "]"}


def _loads(candidate: str) -> Any:
    try:
        return json.loads(candidate)
    except (json.JSONDecodeError, ValueError):
        return None


def strip_code_fences(text: str) -> str:
    """Return the body of the first fenced block, or *text* unchanged."""
    match = _FENCE_RE.search(text)
    return match.group(1).strip() if match else text


def extract_json(text: str) -> dict | list | None:
    """Return the first JSON object or array found in *text*, else ``None``.

    Whole-text parse first (after removing a markdown fence), then a scan
    over every ``{``/``[`` that parses the balanced span starting there.
    """
    if not text or not text.strip():
        return None

    body = strip_code_fences(text.strip())
    parsed = _loads(body)
    if isinstance(parsed, (dict, list)):
        return parsed

    for candidate in _balanced_spans(body):
        parsed = _loads(candidate)
        if isinstance(parsed, (dict, list)):
            return parsed

    return None


def _balanced_spans(text: str) -> Iterator[str]:
    for start, ch in enumerate(text):
        if ch in _PAIRS:
            span = _span_from(text, start, ch, _PAIRS[ch])
            if span is not None:
                yield span


def _span_from(text: str, start: int, open_ch: str, close_ch: str) -> str | None:
    depth = 0
    in_string = False
    escaped = False

    for idx in range(start, len(text)):
        ch = text[idx]
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
        elif ch == open_ch:
            depth += 1
        elif ch == close_ch:
            depth -= 1
            if depth == 0:
                return text[start : idx + 1]

    return None
