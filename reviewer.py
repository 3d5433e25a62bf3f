"""Gemini-backed collaborators: issue discovery and duplicate cross-check."""

import json
import logging

from pydantic import ValidationError

from config import DEFAULT_MODEL, USE_MOCK, call_gemini
from diff_parser import FileDiff, filter_files, render_patch
from models import (
    CrossCheckResult,
    ExistingComment,
    RawIssueReport,
    ResolvedIssue,
)
from prompts import CROSS_CHECK_PROMPT, DISCOVERY_PROMPT
from repair import clean_llm_output, repair_review_json

logger = logging.getLogger(__name__)

# Existing comment bodies are cut to this many characters in the prompt
MAX_EXISTING_BODY_CHARS = 500


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------
def render_review_diff(files: dict[str, FileDiff]) -> str:
    """Re-render only the reviewable files of a parsed diff."""
    return "\n".join(render_patch(file_diff) for file_diff in filter_files(files))


def parse_discovery_response(text: str) -> list[RawIssueReport]:
    """
    Turn raw discovery output into validated issue reports.

    Truncated or wrapped output is repaired first; records that still fail
    validation are dropped one by one.
    """
    document = repair_review_json(text)

    issues: list[RawIssueReport] = []
    for index, record in enumerate(document["issues"]):
        try:
            issues.append(RawIssueReport.model_validate(record))
        except ValidationError as e:
            logger.warning(
                "Dropping invalid issue #%d: %d validation error(s)",
                index,
                e.error_count(),
            )
            logger.debug("Invalid issue record: %s", record)

    return issues


def discover_issues(
    diff_text: str,
    files: dict[str, FileDiff],
    model: str = DEFAULT_MODEL,
) -> list[RawIssueReport]:
    """
    Ask Gemini for issues in the reviewable part of a diff.

    Args:
        diff_text: Raw diff; only its parsed form in *files* is sent
        files: Parsed diff model
        model: Gemini model to use

    Returns:
        Issue reports; line positions are left to the resolver

    Raises:
        google.api_core.exceptions.GoogleAPIError: after retries are exhausted
    """
    if USE_MOCK:
        from mock_data import MOCK_DISCOVERY_RESPONSE

        logger.info("[MOCK MODE - No API call made]")
        return parse_discovery_response(MOCK_DISCOVERY_RESPONSE)

    review_diff = render_review_diff(files)
    if not review_diff.strip():
        logger.info("No reviewable files in diff")
        return []

    logger.info("Sending %d chars of diff for review", len(review_diff))
    text = call_gemini(DISCOVERY_PROMPT.format(diff=review_diff), model)
    return parse_discovery_response(text)


# ---------------------------------------------------------------------------
# Duplicate cross-check
# ---------------------------------------------------------------------------
def build_cross_check_prompt(
    issues: list[ResolvedIssue], existing: list[ExistingComment]
) -> str:
    new_issues = [
        {
            "id": index,
            "file": issue.file,
            "line": issue.new_line,
            "severity": issue.severity,
            "title": issue.title,
            "message": issue.message,
        }
        for index, issue in enumerate(issues)
    ]
    existing_comments = [
        {
            "file": comment.file,
            "line": comment.line,
            "body": comment.body[:MAX_EXISTING_BODY_CHARS],
        }
        for comment in existing
        if comment.file and comment.line is not None
    ]
    return CROSS_CHECK_PROMPT.format(
        new_issues=json.dumps(new_issues, indent=2),
        existing_comments=json.dumps(existing_comments, indent=2),
    )


def apply_cross_check(
    issues: list[ResolvedIssue], result: CrossCheckResult
) -> list[ResolvedIssue]:
    """Remove the issues *result* marks as duplicates; ids outside range are ignored."""
    removed_ids = set()
    for verdict in result.duplicates:
        if not 0 <= verdict.id < len(issues):
            logger.warning("Cross-check referenced unknown issue id %d", verdict.id)
            continue
        removed_ids.add(verdict.id)
        issue = issues[verdict.id]
        logger.info("  - %s:%d - %s", issue.file, issue.new_line, verdict.reason)

    return [issue for index, issue in enumerate(issues) if index not in removed_ids]


def cross_check_duplicates(
    issues: list[ResolvedIssue],
    existing: list[ExistingComment],
    model: str = DEFAULT_MODEL,
) -> list[ResolvedIssue]:
    """
    Ask Gemini which new issues repeat an existing comment.

    Raises on any API or parse failure so the caller can fall back to the
    local suppressor.
    """
    if USE_MOCK:
        from mock_data import MOCK_CROSS_CHECK_RESPONSE

        text = MOCK_CROSS_CHECK_RESPONSE
    else:
        text = call_gemini(build_cross_check_prompt(issues, existing), model)

    try:
        result = CrossCheckResult.model_validate_json(clean_llm_output(text))
    except ValidationError as e:
        raise ValueError(f"Unparseable cross-check response: {e}") from e

    return apply_cross_check(issues, result)
