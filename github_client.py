"""GitHub API client: fetch the PR diff and prior comments, post the review."""

import os
import logging
import functools
from dataclasses import dataclass, field

import requests
import requests.exceptions
from github import Auth, Github
from github.GithubException import GithubException

from config import validate_repo, with_retry
from formatting import format_issue_comment, format_review_summary
from models import ExistingComment, ResolvedIssue

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------
@dataclass
class ReviewComment:
    """A comment to post on a specific line in a PR."""

    path: str  # file path (e.g., "src/main.py")
    line: int  # line number in the file (new version)
    body: str  # comment text
    side: str = "RIGHT"  # RIGHT = new code, LEFT = old code


@dataclass
class ReviewSubmission:
    """A complete review to submit to a PR."""

    body: str = ""  # overall summary
    event: str = "COMMENT"  # APPROVE, REQUEST_CHANGES, COMMENT
    comments: list[ReviewComment] = field(default_factory=list)


def _api_error(e: GithubException) -> str:
    data = e.data if isinstance(getattr(e, "data", None), dict) else {}
    return data.get("message", str(e))


# ---------------------------------------------------------------------------
# Cached GitHub client
# ---------------------------------------------------------------------------
@functools.lru_cache(maxsize=1)
def get_github_client() -> Github:
    """Create or return a cached GitHub client."""
    token = os.getenv("GITHUB_TOKEN")
    if not token:
        raise ValueError(
            "GITHUB_TOKEN not found. Set it in .env file.\n"
            "Get your token at: https://github.com/settings/tokens"
        )
    return Github(auth=Auth.Token(token))


# ---------------------------------------------------------------------------
# Read operations
# ---------------------------------------------------------------------------
@with_retry(
    max_retries=3,
    base_delay=1.0,
    retryable=(
        requests.exceptions.ConnectionError,
        requests.exceptions.Timeout,
    ),
)
def fetch_raw_diff(repo: str, pr_number: int) -> str:
    """
    Fetch the raw unified diff for the entire PR.

    This uses the REST API directly because PyGithub doesn't expose
    the raw diff format. The diff includes all files in one string.

    Raises:
        ValueError: If PR not found or access denied
    """
    repo = validate_repo(repo)

    token = os.getenv("GITHUB_TOKEN")
    if not token:
        raise ValueError("GITHUB_TOKEN not found")

    url = f"https://api.github.com/repos/{repo}/pulls/{pr_number}"
    headers = {
        "Authorization": f"token {token}",
        "Accept": "application/vnd.github.v3.diff",
    }

    response = requests.get(url, headers=headers, timeout=30)

    if response.status_code == 404:
        raise ValueError(f"PR #{pr_number} not found in {repo}")
    response.raise_for_status()

    return response.text


def fetch_existing_comments(repo: str, pr_number: int) -> list[ExistingComment]:
    """
    Fetch comments already on a PR from earlier review rounds.

    Inline review comments carry their file and line; conversation comments
    are returned without a location and never count as duplicates.

    Args:
        repo: Repository in "owner/repo" format
        pr_number: Pull request number

    Returns:
        List of ExistingComment, inline comments first

    Raises:
        ValueError: If PR not found or access denied
    """
    repo = validate_repo(repo)
    client = get_github_client()

    try:
        repository = client.get_repo(repo)
        pr = repository.get_pull(pr_number)

        comments: list[ExistingComment] = []
        for comment in pr.get_review_comments():
            # line is None once the comment is outdated
            comments.append(
                ExistingComment(
                    file=comment.path,
                    line=comment.line,
                    body=comment.body or "",
                    author=comment.user.login if comment.user else "",
                    created_at=comment.created_at,
                )
            )
        inline_count = len(comments)

        for comment in pr.get_issue_comments():
            comments.append(
                ExistingComment(
                    body=comment.body or "",
                    author=comment.user.login if comment.user else "",
                    created_at=comment.created_at,
                )
            )

    except GithubException as e:
        if e.status == 404:
            raise ValueError(f"PR #{pr_number} not found in {repo}") from e
        raise ValueError(f"GitHub API error: {_api_error(e)}") from e

    logger.info(
        "Found %d existing comment(s): %d inline, %d general",
        len(comments),
        inline_count,
        len(comments) - inline_count,
    )
    return comments


# ---------------------------------------------------------------------------
# Review assembly
# ---------------------------------------------------------------------------
def build_review_submission(
    issues: list[ResolvedIssue],
    summary: str,
    verdict: str,
) -> ReviewSubmission:
    """One inline comment per placed issue, anchored on the new revision."""
    comments = [
        ReviewComment(
            path=issue.file,
            line=issue.new_line,
            body=format_issue_comment(issue),
            side="RIGHT",
        )
        for issue in issues
    ]
    return ReviewSubmission(
        body=format_review_summary(issues, summary, verdict),
        event="COMMENT",
        comments=comments,
    )


# ---------------------------------------------------------------------------
# Write operations
# ---------------------------------------------------------------------------
def post_pr_comment(repo: str, pr_number: int, body: str) -> int:
    """
    Post a general comment on a PR (not attached to a specific line).

    Returns:
        Comment ID

    Raises:
        ValueError: If posting fails
    """
    repo = validate_repo(repo)
    client = get_github_client()

    try:
        repository = client.get_repo(repo)
        pr = repository.get_pull(pr_number)
        comment = pr.create_issue_comment(body)
        logger.info("Posted comment %d on PR #%d", comment.id, pr_number)
        return comment.id

    except GithubException as e:
        raise ValueError(f"Failed to post comment: {_api_error(e)}") from e


def post_review(repo: str, pr_number: int, review: ReviewSubmission) -> int:
    """
    Post a complete review with inline comments to a PR.

    Args:
        repo: Repository in "owner/repo" format
        pr_number: Pull request number
        review: ReviewSubmission with body, event type, and comments

    Returns:
        Review ID

    Raises:
        ValueError: If posting fails
    """
    repo = validate_repo(repo)
    client = get_github_client()

    try:
        repository = client.get_repo(repo)
        pr = repository.get_pull(pr_number)

        # Get the latest commit SHA (required for review API)
        commit = pr.get_commits().reversed[0]

        comments_payload = [
            {
                "path": comment.path,
                "line": comment.line,
                "side": comment.side,
                "body": comment.body,
            }
            for comment in review.comments
        ]

        github_review = pr.create_review(
            commit=commit,
            body=review.body,
            event=review.event,
            comments=comments_payload,
        )

        logger.info(
            "Posted review %d on PR #%d with %d comments",
            github_review.id,
            pr_number,
            len(comments_payload),
        )
        return github_review.id

    except GithubException as e:
        error_msg = _api_error(e)
        logger.error("Failed to post review: %s", error_msg)

        if isinstance(getattr(e, "data", None), dict) and "errors" in e.data:
            for error in e.data["errors"]:
                logger.error("  - %s", error)

        raise ValueError(f"Failed to post review: {error_msg}") from e


def post_review_with_fallback(
    repo: str,
    pr_number: int,
    review: ReviewSubmission,
) -> dict:
    """
    Post a review, falling back to general comment if line comments fail.

    GitHub rejects the whole review when any comment targets a line outside
    the diff, so on failure every inline comment is listed in one general
    comment instead.

    Returns:
        Dict with 'review_id' and/or 'comment_id', plus 'fallback' boolean
    """
    repo = validate_repo(repo)
    result: dict = {"fallback": False}

    # If no inline comments, just post the summary as a general comment
    if not review.comments:
        if review.body:
            result["comment_id"] = post_pr_comment(repo, pr_number, review.body)
        return result

    try:
        result["review_id"] = post_review(repo, pr_number, review)
        return result

    except ValueError as e:
        logger.warning("Review failed, falling back to general comment: %s", e)
        result["fallback"] = True

        fallback_body = render_fallback_comment(review)
        result["comment_id"] = post_pr_comment(repo, pr_number, fallback_body)
        return result


def render_fallback_comment(review: ReviewSubmission) -> str:
    """Flatten a review's inline comments into one markdown comment."""
    fallback_body = review.body + "\n\n" if review.body else ""
    fallback_body += "## Inline Comments\n\n"
    fallback_body += "_Could not post as inline comments. Listing here instead:_\n\n"

    for comment in review.comments:
        quoted = "\n".join(f"> {line}" for line in comment.body.splitlines())
        fallback_body += f"**{comment.path}** (line {comment.line}):\n"
        fallback_body += f"{quoted}\n\n"

    return fallback_body
