"""Pin approximately located issues to exact lines of a parsed diff.

Upstream reviewers are good at spotting problems and bad at counting lines:
the numbers they report are usually relative to the patch, not the file.
This module ignores those numbers and finds the line by its content instead.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, Mapping

from config import FUZZY_MATCH_THRESHOLD
from diff_parser import FileDiff, LineKind
from models import Confidence, RawIssueReport, ResolvedIssue
from scoring import DEFAULT_SNIPPET_SCORERS, SimilarityScorer

logger = logging.getLogger(__name__)

MIN_SNIPPET_LENGTH = 5
MIN_CANDIDATE_LENGTH = 3

# Too generic to identify a single line
BOILERPLATE_SNIPPETS = frozenset({"", "}", "{", "};", "return;", "break;", "continue;"})

_WHITESPACE = re.compile(r"\s+")
_PUNCTUATION_SPACING = re.compile(r"\s*([;,(){}=])\s*")


@dataclass(frozen=True)
class LinePosition:
    """Where a snippet landed in the new revision."""

    new_line: int | None
    old_line: int | None
    confidence: Confidence
    score: float = 0.0

    @property
    def resolved(self) -> bool:
        return self.confidence is not Confidence.UNRESOLVED


UNRESOLVED = LinePosition(new_line=None, old_line=None, confidence=Confidence.UNRESOLVED)


@dataclass
class ResolutionStats:
    """Per-tier counts for one batch of issues."""

    exact: int = 0
    fuzzy: int = 0
    unresolved: int = 0
    unresolved_titles: list[str] = field(default_factory=list)


def normalize_code(code: str) -> str:
    """Collapse whitespace and drop spacing around punctuation."""
    collapsed = _WHITESPACE.sub(" ", code.strip())
    return _PUNCTUATION_SPACING.sub(r"\1", collapsed)


class LineResolver:
    """Exact-then-fuzzy snippet matcher over a diff model."""

    def __init__(
        self,
        scorers: Iterable[SimilarityScorer] = DEFAULT_SNIPPET_SCORERS,
        accept_threshold: float = FUZZY_MATCH_THRESHOLD,
    ):
        self.scorers = tuple(scorers)
        self.accept_threshold = accept_threshold

    def resolve(
        self,
        file: str,
        code_snippet: str,
        hint: int | None,
        files: Mapping[str, FileDiff],
    ) -> LinePosition:
        """
        Find the line of *file* whose content best matches *code_snippet*.

        Args:
            file: Path of the file in the new revision
            code_snippet: Code the issue refers to (approximate is fine)
            hint: Reported position; never used as a line number
            files: Parsed diff model from ``parse_diff``

        Returns:
            LinePosition; ``confidence`` is UNRESOLVED when nothing qualifies
        """
        file_diff = files.get(file)
        if file_diff is None:
            logger.warning("No diff found for file: %s", file)
            return UNRESOLVED

        target = normalize_code(code_snippet or "")
        if len(target) < MIN_SNIPPET_LENGTH or target in BOILERPLATE_SNIPPETS:
            logger.info("Snippet too short or generic to place: %r", target)
            return UNRESOLVED

        if hint is not None:
            logger.debug("Ignoring reported position %d for %s", hint, file)

        best: LinePosition | None = None
        best_score = 0.0

        for line in file_diff.lines():
            if line.kind is LineKind.REMOVED:
                continue

            candidate = normalize_code(line.content)
            if len(candidate) < MIN_CANDIDATE_LENGTH:
                continue

            if candidate == target:
                return LinePosition(line.new_line, line.old_line, Confidence.EXACT, 1.0)

            score = max((s.score(target, candidate) for s in self.scorers), default=0.0)
            # strictly greater: ties keep the first occurrence
            if score > best_score:
                best_score = score
                best = LinePosition(line.new_line, line.old_line, Confidence.FUZZY, score)

        if best is not None and best_score > self.accept_threshold:
            return best

        logger.info(
            "Could not place snippet in %s: %r (best score %.2f)",
            file,
            code_snippet[:50],
            best_score,
        )
        return UNRESOLVED


_DEFAULT_RESOLVER = LineResolver()


def resolve_line(
    file: str,
    code_snippet: str,
    hint: int | None,
    files: Mapping[str, FileDiff],
) -> LinePosition:
    """Resolve with the default scorers and threshold."""
    return _DEFAULT_RESOLVER.resolve(file, code_snippet, hint, files)


def resolve_issues(
    issues: Iterable[RawIssueReport],
    files: Mapping[str, FileDiff],
    resolver: LineResolver | None = None,
) -> tuple[list[ResolvedIssue], ResolutionStats]:
    """
    Place every issue; unresolvable ones are dropped and counted.

    Returns:
        Tuple of (resolved_issues, stats)
    """
    resolver = resolver or _DEFAULT_RESOLVER
    resolved: list[ResolvedIssue] = []
    stats = ResolutionStats()

    for issue in issues:
        position = resolver.resolve(
            issue.file, issue.code_snippet, issue.diff_relative_hint, files
        )
        if not position.resolved:
            stats.unresolved += 1
            stats.unresolved_titles.append(issue.title or issue.code_snippet[:50])
            logger.info("Dropping unplaced issue in %s: %s", issue.file, issue.title)
            continue

        if position.confidence is Confidence.EXACT:
            stats.exact += 1
        else:
            stats.fuzzy += 1

        resolved.append(
            ResolvedIssue.model_validate(
                {
                    **issue.model_dump(),
                    "new_line": position.new_line,
                    "old_line": position.old_line,
                    "confidence": position.confidence,
                }
            )
        )

    return resolved, stats
