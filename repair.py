"""Best-effort recovery of truncated or wrapped JSON from an LLM reviewer.

Long reviews regularly hit the model's output limit and stop mid-issue, or
arrive wrapped in prose and code fences. Rather than losing the whole round,
keep every issue that was fully written and rebuild the rest of the document
with neutral defaults.
"""

import json
import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

VERDICT_CHANGES = "REQUEST CHANGES"
VERDICT_APPROVE = "APPROVE WITH MINOR CHANGES"

_LEADING_FENCE = re.compile(r"^```[\w+-]*[ \t]*\n?")
_TRAILING_FENCE = re.compile(r"\n?```\s*$")
# An array of objects, not a bracket in prose
_BARE_ARRAY = re.compile(r"\[\s*[{\]]")
_ISSUES_ARRAY = re.compile(r'"issues"\s*:\s*\[')
# A string-valued field that normally closes an issue record
_TERMINAL_FIELD = re.compile(
    r'"(?:priority|impact|effort|recommendation)"\s*:\s*"(?:[^"\\]|\\.)*"\s*\}'
)
_CLOSERS = {"{": "}", "[": "]"}


def clean_llm_output(text: str) -> str:
    """Strip a wrapping code fence and any prose before the JSON document."""
    cleaned = text.strip()
    cleaned = _LEADING_FENCE.sub("", cleaned)
    cleaned = _TRAILING_FENCE.sub("", cleaned).strip()

    array = _BARE_ARRAY.search(cleaned)
    starts = [i for i in (cleaned.find("{"), array.start() if array else -1) if i >= 0]
    if not starts:
        return cleaned
    first = min(starts)
    if first > 0:
        logger.debug("Removing %d chars of preamble before JSON", first)
        cleaned = cleaned[first:]
    return cleaned


def _scan(text: str, array_start: int) -> tuple[list[int], dict[int, str]]:
    """
    Walk *text* once, string-aware, and find complete issue elements.

    Returns:
        Tuple of (element_ends, closing_by_position) where ``element_ends``
        holds the index just past every ``}`` that closes a direct element of
        the array opened at *array_start*, and ``closing_by_position`` maps
        each of those indices to the brackets needed to close the document.
    """
    stack: list[tuple[str, int]] = []
    element_ends: list[int] = []
    closings: dict[int, str] = {}
    in_string = False
    escaped = False

    for index, char in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char in "{[":
            stack.append((char, index))
        elif char in "}]":
            if not stack:
                break
            stack.pop()
            if char == "}" and stack and stack[-1] == ("[", array_start):
                end = index + 1
                element_ends.append(end)
                closings[end] = "".join(_CLOSERS[c] for c, _ in reversed(stack))

    return element_ends, closings


def _element_closing(prefix: str, array_start: int) -> str | None:
    """
    Brackets needed to close *prefix*, which ends with a ``}``.

    Returns None unless that ``}`` closes a direct element of the array
    opened at *array_start*; a brace closing a nested object would leave a
    half-written issue behind.
    """
    stack: list[tuple[str, int]] = []
    in_string = False
    escaped = False
    closes_element = False
    for index, char in enumerate(prefix):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char in "{[":
            stack.append((char, index))
        elif char in "}]" and stack:
            stack.pop()
            closes_element = char == "}" and bool(stack) and stack[-1] == ("[", array_start)
    if in_string or not closes_element:
        return None
    return "".join(_CLOSERS[c] for c, _ in reversed(stack))


def _truncate_to_complete_issues(text: str) -> dict[str, Any] | None:
    """Cut *text* after its last complete issue and close the structure."""
    match = _ISSUES_ARRAY.search(text)
    if match:
        array_start = match.end() - 1
    elif text.lstrip().startswith("["):
        array_start = text.find("[")
    else:
        logger.warning("No issues array found in truncated output")
        return None

    element_ends, closings = _scan(text, array_start)
    candidates: list[tuple[int, str]] = [
        (end, closings[end]) for end in reversed(element_ends)
    ]

    # Known terminal fields, for output the structural scan cannot follow
    seen = set(element_ends)
    for field_match in reversed(list(_TERMINAL_FIELD.finditer(text))):
        end = field_match.end()
        if end <= array_start:
            break
        if end in seen:
            continue
        closing = _element_closing(text[:end], array_start)
        if closing is not None:
            candidates.append((end, closing))

    for end, closing in candidates:
        repaired = text[:end] + closing
        try:
            document = json.loads(repaired)
        except json.JSONDecodeError:
            continue
        logger.info("Recovered truncated output up to position %d", end)
        if isinstance(document, list):
            return {"issues": document}
        return document if isinstance(document, dict) else None

    return None


def _fill_defaults(document: dict[str, Any]) -> dict[str, Any]:
    issues = document.get("issues")
    if not isinstance(issues, list):
        issues = []
    document["issues"] = [issue for issue in issues if isinstance(issue, dict)]

    if not isinstance(document.get("issueBreakdown"), dict) or not document["issueBreakdown"]:
        document["issueBreakdown"] = {"critical": [], "moderate": [], "minor": []}
    if not isinstance(document.get("nextSteps"), list):
        document["nextSteps"] = []
    if not document.get("verdict"):
        has_critical = any(
            str(issue.get("severity", "")).lower() == "critical"
            for issue in document["issues"]
        )
        document["verdict"] = VERDICT_CHANGES if has_critical else VERDICT_APPROVE

    return document


def repair_review_json(raw_text: str) -> dict[str, Any]:
    """
    Parse reviewer output into a dict with an ``issues`` list.

    Never raises. Truncated output keeps only the issues that were written
    completely; if none were, the ``issues`` list is empty.
    """
    if not raw_text or not raw_text.strip():
        logger.warning("Empty reviewer output")
        return _fill_defaults({})

    cleaned = clean_llm_output(raw_text)

    try:
        # raw_decode ignores any prose after the closing brace
        document, _ = json.JSONDecoder().raw_decode(cleaned)
    except json.JSONDecodeError as e:
        logger.warning("Reviewer output is not valid JSON (%s), attempting repair", e)
        document = _truncate_to_complete_issues(cleaned)
        if document is None:
            logger.warning("Could not recover any complete issue from reviewer output")
            return _fill_defaults({})

    if isinstance(document, list):
        document = {"issues": document}
    elif not isinstance(document, dict):
        logger.warning("Unexpected JSON root type: %s", type(document).__name__)
        return _fill_defaults({})

    return _fill_defaults(document)
