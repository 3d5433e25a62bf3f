"""
hunkpin Agent - LangGraph-based placement pipeline

This module runs one review pass as a state machine using LangGraph.
An external collaborator discovers issues in a diff, each issue is pinned to
an exact line of the new revision, issues already raised in earlier rounds are
suppressed, and the survivors are returned with per-tier statistics.
"""

import logging
import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from typing import Protocol

from langgraph.graph import END, START, StateGraph

import config as _config  # noqa: F401 ensures env & logging are initialised
from config import CROSS_CHECK_TIMEOUT
from dedup import filter_duplicates
from diff_parser import FileDiff, parse_diff
from line_resolver import LineResolver, resolve_issues
from models import ExistingComment, RawIssueReport, ResolvedIssue
from repair import VERDICT_APPROVE, VERDICT_CHANGES

logger = logging.getLogger(__name__)

STRATEGY_CROSS_CHECK = "cross_check"
STRATEGY_LOCAL = "local"
STRATEGY_SKIPPED = "skipped"


# =============================================================================
# COLLABORATORS
# =============================================================================
class IssueDiscoverer(Protocol):
    """Finds issues in a diff; line numbers it reports are not trusted."""

    def __call__(
        self, diff_text: str, files: dict[str, FileDiff]
    ) -> list[RawIssueReport]: ...


class DuplicateCrossChecker(Protocol):
    """Returns the subset of *issues* not already raised by *existing*."""

    def __call__(
        self, issues: list[ResolvedIssue], existing: list[ExistingComment]
    ) -> list[ResolvedIssue]: ...


# =============================================================================
# RESULT VALUES
# =============================================================================
@dataclass
class ReviewStats:
    """Counts for one pipeline run."""

    discovered: int = 0
    exact: int = 0
    fuzzy: int = 0
    unresolved: int = 0
    duplicates_removed: int = 0
    dedupe_strategy: str = STRATEGY_SKIPPED

    @property
    def placed(self) -> int:
        return self.exact + self.fuzzy


@dataclass
class ReviewOutcome:
    """Everything a caller needs to post the review."""

    issues: list[ResolvedIssue] = field(default_factory=list)
    stats: ReviewStats = field(default_factory=ReviewStats)
    severity_counts: dict[str, int] = field(default_factory=dict)
    verdict: str = VERDICT_APPROVE
    summary: str = ""
    error: str | None = None


# =============================================================================
# STATE DEFINITION
# =============================================================================
@dataclass
class ReviewState:
    """
    State that flows through the review graph.

    Each node can read any field and return updates to specific fields.
    LangGraph automatically merges the updates into the state.
    """

    # Input
    diff: str = ""
    files: dict[str, FileDiff] = field(default_factory=dict)  # parsed once
    existing_comments: list[ExistingComment] = field(default_factory=list)

    # Intermediate data (populated by nodes)
    raw_issues: list[RawIssueReport] = field(default_factory=list)
    resolved_issues: list[ResolvedIssue] = field(default_factory=list)
    final_issues: list[ResolvedIssue] = field(default_factory=list)

    # Counters
    discovered_count: int = 0
    exact_count: int = 0
    fuzzy_count: int = 0
    unresolved_count: int = 0
    duplicates_removed: int = 0
    dedupe_strategy: str = STRATEGY_SKIPPED

    # Output
    outcome: ReviewOutcome | None = None
    error: str | None = None  # Error message if something failed


def _get(state, key: str, default=None):
    # LangGraph may pass state as dict or dataclass
    if isinstance(state, dict):
        return state.get(key, default)
    return getattr(state, key, default)


# =============================================================================
# NODE FUNCTIONS
# =============================================================================
def discover_issues_node(state: ReviewState, discoverer: IssueDiscoverer) -> dict:
    """
    Node 1: Ask the discovery collaborator for issues.

    Reads: diff, files
    Updates: raw_issues, discovered_count, error
    """
    logger.info("🔍 Discovering issues in %d file(s)...", len(state.files))

    try:
        issues = list(discoverer(state.diff, state.files))
    except Exception as e:
        logger.error("Issue discovery failed: %s", e)
        return {"raw_issues": [], "discovered_count": 0, "error": str(e)}

    logger.info("   Found %d issue(s)", len(issues))
    return {"raw_issues": issues, "discovered_count": len(issues)}


def resolve_lines_node(state: ReviewState, resolver: LineResolver | None) -> dict:
    """
    Node 2: Pin every issue to a line of the new revision.

    Reads: raw_issues, files
    Updates: resolved_issues, exact_count, fuzzy_count, unresolved_count
    """
    logger.info("📍 Placing %d issue(s)...", len(state.raw_issues))

    resolved, stats = resolve_issues(state.raw_issues, state.files, resolver)

    logger.info(
        "   Exact: %d, fuzzy: %d, unresolved: %d",
        stats.exact,
        stats.fuzzy,
        stats.unresolved,
    )
    if stats.unresolved_titles:
        logger.info("   Unplaced: %s", "; ".join(stats.unresolved_titles))

    return {
        "resolved_issues": resolved,
        "exact_count": stats.exact,
        "fuzzy_count": stats.fuzzy,
        "unresolved_count": stats.unresolved,
    }


def _run_cross_check(
    cross_checker: DuplicateCrossChecker,
    issues: list[ResolvedIssue],
    existing: list[ExistingComment],
    timeout: float,
) -> list[ResolvedIssue]:
    """
    Call *cross_checker* in a daemon thread, raising TimeoutError on expiry.

    A timed-out call is abandoned; being a daemon, it does not hold up
    interpreter exit.
    """
    future: Future = Future()

    def work() -> None:
        if not future.set_running_or_notify_cancel():
            return
        try:
            future.set_result(cross_checker(list(issues), list(existing)))
        except Exception as e:
            future.set_exception(e)

    threading.Thread(target=work, name="cross-check", daemon=True).start()
    return list(future.result(timeout=timeout))


def dedupe_node(
    state: ReviewState,
    cross_checker: DuplicateCrossChecker | None,
    timeout: float,
) -> dict:
    """
    Node 3: Drop issues that earlier review rounds already raised.

    Reads: resolved_issues, existing_comments
    Updates: final_issues, duplicates_removed, dedupe_strategy
    """
    issues = state.resolved_issues
    existing = state.existing_comments

    if not existing:
        logger.info("🧹 No existing comments, skipping duplicate check")
        return {
            "final_issues": list(issues),
            "duplicates_removed": 0,
            "dedupe_strategy": STRATEGY_SKIPPED,
        }

    logger.info(
        "🧹 Checking %d issue(s) against %d existing comment(s)...",
        len(issues),
        len(existing),
    )

    if cross_checker is not None:
        try:
            answer = _run_cross_check(cross_checker, issues, existing, timeout)
        except FutureTimeoutError:
            logger.warning(
                "   Cross-check timed out after %.0fs, using local check", timeout
            )
        except Exception as e:
            logger.warning("   Cross-check failed (%s), using local check", e)
        else:
            # The answer may only remove issues
            kept = [issue for issue in issues if any(issue == a for a in answer)]
            unknown = sum(1 for a in answer if not any(a == i for i in issues))
            if unknown:
                logger.warning("   Ignoring %d unknown issue(s) from cross-check", unknown)
            removed = len(issues) - len(kept)
            logger.info("   Cross-check removed %d duplicate(s)", removed)
            return {
                "final_issues": kept,
                "duplicates_removed": removed,
                "dedupe_strategy": STRATEGY_CROSS_CHECK,
            }

    kept, removed = filter_duplicates(issues, existing)
    logger.info("   Local check removed %d duplicate(s)", len(removed))
    return {
        "final_issues": kept,
        "duplicates_removed": len(removed),
        "dedupe_strategy": STRATEGY_LOCAL,
    }


def _summarise(stats: ReviewStats, issue_count: int) -> str:
    if not issue_count:
        if stats.discovered:
            return (
                f"No new issues to post ({stats.unresolved} unplaced, "
                f"{stats.duplicates_removed} duplicate(s))."
            )
        return "No issues found. Code looks good! ✨"

    summary = f"Found {issue_count} issue(s) ({stats.exact} exact, {stats.fuzzy} fuzzy)"
    extras: list[str] = []
    if stats.unresolved:
        extras.append(f"{stats.unresolved} could not be placed")
    if stats.duplicates_removed:
        extras.append(f"{stats.duplicates_removed} duplicate(s) removed")
    if extras:
        summary += ": " + ", ".join(extras)
    return summary


def finalize_node(state: ReviewState) -> dict:
    """
    Node 4: Build the outcome value.

    Reads: final_issues and all counters
    Updates: outcome
    """
    issues = list(state.final_issues)

    stats = ReviewStats(
        discovered=state.discovered_count,
        exact=state.exact_count,
        fuzzy=state.fuzzy_count,
        unresolved=state.unresolved_count,
        duplicates_removed=state.duplicates_removed,
        dedupe_strategy=state.dedupe_strategy,
    )

    severity_counts = {"critical": 0, "moderate": 0, "minor": 0}
    for issue in issues:
        severity_counts[issue.severity] = severity_counts.get(issue.severity, 0) + 1

    verdict = VERDICT_CHANGES if severity_counts["critical"] else VERDICT_APPROVE
    summary = _summarise(stats, len(issues))

    logger.info("✅ %s", summary)

    return {
        "outcome": ReviewOutcome(
            issues=issues,
            stats=stats,
            severity_counts=severity_counts,
            verdict=verdict,
            summary=summary,
            error=state.error,
        )
    }


# =============================================================================
# DECISION FUNCTIONS (for conditional edges)
# =============================================================================
def should_resolve(state: ReviewState) -> str:
    """
    Decide whether there is anything to place.

    Returns:
        "resolve" if discovery produced issues
        "finalize" otherwise
    """
    raw_issues = _get(state, "raw_issues", [])

    if raw_issues:
        return "resolve"

    logger.info("🔀 Decision: nothing discovered → finishing")
    return "finalize"


def should_dedupe(state: ReviewState) -> str:
    """
    Decide whether any placed issue is left to de-duplicate.

    Returns:
        "dedupe" if at least one issue was placed
        "finalize" otherwise
    """
    resolved = _get(state, "resolved_issues", [])

    if resolved:
        return "dedupe"

    logger.info("🔀 Decision: no issue could be placed → finishing")
    return "finalize"


# =============================================================================
# GRAPH CONSTRUCTION
# =============================================================================
def build_review_graph(
    discoverer: IssueDiscoverer,
    cross_checker: DuplicateCrossChecker | None = None,
    resolver: LineResolver | None = None,
    timeout: float = CROSS_CHECK_TIMEOUT,
) -> StateGraph:
    """Build the discover → resolve → dedupe → finalize graph."""

    def discover(state: ReviewState) -> dict:
        return discover_issues_node(state, discoverer)

    def resolve(state: ReviewState) -> dict:
        return resolve_lines_node(state, resolver)

    def dedupe(state: ReviewState) -> dict:
        return dedupe_node(state, cross_checker, timeout)

    graph = StateGraph(ReviewState)

    # Add nodes
    graph.add_node("discover", discover)
    graph.add_node("resolve", resolve)
    graph.add_node("dedupe", dedupe)
    graph.add_node("finalize", finalize_node)

    # Edges
    graph.add_edge(START, "discover")
    graph.add_conditional_edges(
        "discover",
        should_resolve,
        {"resolve": "resolve", "finalize": "finalize"},
    )
    graph.add_conditional_edges(
        "resolve",
        should_dedupe,
        {"dedupe": "dedupe", "finalize": "finalize"},
    )
    graph.add_edge("dedupe", "finalize")
    graph.add_edge("finalize", END)

    return graph


def create_agent(
    discoverer: IssueDiscoverer,
    cross_checker: DuplicateCrossChecker | None = None,
    resolver: LineResolver | None = None,
    timeout: float = CROSS_CHECK_TIMEOUT,
):
    """Create and compile the review agent."""
    graph = build_review_graph(discoverer, cross_checker, resolver, timeout)
    return graph.compile()


def run_review(
    diff_text: str,
    existing_comments: list[ExistingComment] | None,
    discoverer: IssueDiscoverer,
    cross_checker: DuplicateCrossChecker | None = None,
    resolver: LineResolver | None = None,
    timeout: float = CROSS_CHECK_TIMEOUT,
) -> ReviewOutcome:
    """
    Run one full review pass over *diff_text*.

    Args:
        diff_text: Raw unified diff of the pull request
        existing_comments: Comments from earlier review rounds
        discoverer: Collaborator that finds issues
        cross_checker: Optional collaborator that removes duplicates;
            the local suppressor is used when it is missing, fails or
            runs past *timeout* seconds
        resolver: Line resolver (defaults to the standard scorers)
        timeout: Wall-clock budget for *cross_checker*

    Returns:
        ReviewOutcome with the issues ready to post
    """
    files = parse_diff(diff_text)
    logger.info("🤖 Reviewing diff with %d changed file(s)", len(files))

    agent = create_agent(discoverer, cross_checker, resolver, timeout)
    initial_state = ReviewState(
        diff=diff_text,
        files=files,
        existing_comments=list(existing_comments or []),
    )
    final_state = agent.invoke(initial_state)

    outcome = final_state.get("outcome")
    if outcome is None:
        return ReviewOutcome(error=final_state.get("error"))
    return outcome
