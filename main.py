"""Command-line entry point: review a pull request, or the bundled mock diff."""

import argparse
import logging
import sys

from google.api_core.exceptions import GoogleAPIError

from agent import ReviewOutcome, run_review
from config import USE_MOCK, validate_repo
from github_client import (
    build_review_submission,
    fetch_existing_comments,
    fetch_raw_diff,
    post_review_with_fallback,
)
from models import ExistingComment
from reviewer import cross_check_duplicates, discover_issues

logger = logging.getLogger(__name__)


def print_outcome(outcome: ReviewOutcome) -> None:
    """Pretty print placed issues and run statistics."""
    stats = outcome.stats
    print(f"\n📋 {outcome.summary}")
    print(
        f"   discovered={stats.discovered} exact={stats.exact} "
        f"fuzzy={stats.fuzzy} unresolved={stats.unresolved} "
        f"duplicates={stats.duplicates_removed} ({stats.dedupe_strategy})\n"
    )

    for issue in outcome.issues:
        print(f"[{issue.severity}] {issue.file}:{issue.new_line} ({issue.confidence.value})")
        print(f"   {issue.title}")
        if issue.recommendation:
            print(f"   💡 Fix: {issue.recommendation}")
        print()

    print(f"Verdict: {outcome.verdict}")


def run_mock() -> ReviewOutcome:
    from mock_data import MOCK_DIFF, MOCK_EXISTING_COMMENTS

    logger.info("Reviewing the bundled sample diff")
    existing = [ExistingComment.model_validate(c) for c in MOCK_EXISTING_COMMENTS]
    return run_review(MOCK_DIFF, existing, discover_issues, cross_check_duplicates)


def run_pr(repo: str, pr_number: int, post: bool) -> ReviewOutcome:
    repo = validate_repo(repo)
    logger.info("📥 Fetching PR #%d from %s...", pr_number, repo)

    diff_text = fetch_raw_diff(repo, pr_number)
    existing = fetch_existing_comments(repo, pr_number)

    outcome = run_review(diff_text, existing, discover_issues, cross_check_duplicates)

    if post and outcome.issues:
        review = build_review_submission(outcome.issues, outcome.summary, outcome.verdict)
        result = post_review_with_fallback(repo, pr_number, review)
        logger.info("📝 Posted review: %s", result)
    elif post:
        logger.info("Nothing new to post")

    return outcome


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Place review comments on exact lines of a GitHub pull request."
    )
    parser.add_argument("repo", nargs="?", help="Repository as owner/repo")
    parser.add_argument("pr_number", nargs="?", type=int, help="Pull request number")
    parser.add_argument(
        "--post", action="store_true", help="Post the review to GitHub"
    )
    args = parser.parse_args(argv)

    try:
        if USE_MOCK or not args.repo:
            outcome = run_mock()
        elif args.pr_number is None:
            parser.error("pr_number is required with repo")
        else:
            outcome = run_pr(args.repo, args.pr_number, args.post)

    except ValueError as e:
        logger.error("Configuration error: %s", e)
        return 1
    except GoogleAPIError as e:
        logger.error("API error: %s", e)
        return 1

    print_outcome(outcome)
    return 1 if outcome.error else 0


if __name__ == "__main__":
    sys.exit(main())
