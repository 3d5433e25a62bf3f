"""Suppress issues that an earlier review round already raised."""

import logging
from typing import Callable, Iterable

from config import DUPLICATE_LINE_WINDOW, DUPLICATE_SIMILARITY_THRESHOLD
from formatting import format_issue_comment
from models import ExistingComment, ResolvedIssue
from scoring import JaccardScorer, SimilarityScorer

logger = logging.getLogger(__name__)

_DEFAULT_SCORER = JaccardScorer()


def is_duplicate(
    file: str,
    line: int,
    body: str,
    existing: Iterable[ExistingComment],
    window: int = DUPLICATE_LINE_WINDOW,
    threshold: float = DUPLICATE_SIMILARITY_THRESHOLD,
    scorer: SimilarityScorer = _DEFAULT_SCORER,
) -> bool:
    """
    Check whether a comment like *body* already sits near *file*:*line*.

    Only comments on the same file within ``window`` lines are compared;
    anything further away is never a duplicate, however similar the text.
    """
    for comment in existing:
        if comment.file != file or comment.line is None:
            continue
        if abs(comment.line - line) > window:
            continue

        similarity = scorer.score(body, comment.body)
        if similarity > threshold:
            logger.info(
                "Similar comment found at %s:%d (%d%% similar)",
                file,
                comment.line,
                round(similarity * 100),
            )
            return True

    return False


def filter_duplicates(
    issues: Iterable[ResolvedIssue],
    existing: list[ExistingComment],
    body_fn: Callable[[ResolvedIssue], str] = format_issue_comment,
    window: int = DUPLICATE_LINE_WINDOW,
    threshold: float = DUPLICATE_SIMILARITY_THRESHOLD,
) -> tuple[list[ResolvedIssue], list[ResolvedIssue]]:
    """
    Split *issues* into those worth posting and those already raised.

    Returns:
        Tuple of (kept, removed)
    """
    kept: list[ResolvedIssue] = []
    removed: list[ResolvedIssue] = []

    for issue in issues:
        if is_duplicate(
            issue.file,
            issue.new_line,
            body_fn(issue),
            existing,
            window=window,
            threshold=threshold,
        ):
            removed.append(issue)
        else:
            kept.append(issue)

    return kept, removed
