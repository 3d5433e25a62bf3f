from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

import github_client
from models import Confidence, ResolvedIssue


def _issue(file, line, title):
    return ResolvedIssue(
        file=file,
        code_snippet="value = compute()",
        severity="moderate",
        title=title,
        message="Explain the problem.",
        new_line=line,
        confidence=Confidence.FUZZY,
    )


def test_build_review_submission_anchors_on_new_line():
    issues = [_issue("a.py", 12, "First"), _issue("b/c.py", 40, "Second")]
    review = github_client.build_review_submission(issues, "Found 2 issue(s)", "APPROVE")

    assert [(c.path, c.line, c.side) for c in review.comments] == [
        ("a.py", 12, "RIGHT"),
        ("b/c.py", 40, "RIGHT"),
    ]
    assert review.comments[0].body.startswith("## 🟡 Moderate: First")
    assert "| moderate | b/c.py | 40 | Second |" in review.body
    assert review.event == "COMMENT"


def test_fetch_existing_comments(monkeypatch):
    created = datetime(2026, 1, 5, tzinfo=timezone.utc)
    pull = SimpleNamespace(
        get_review_comments=lambda: [
            SimpleNamespace(
                path="a.py",
                line=7,
                body="Null check",
                user=SimpleNamespace(login="alice"),
                created_at=created,
            ),
            SimpleNamespace(
                path="a.py", line=None, body="Outdated", user=None, created_at=created
            ),
        ],
        get_issue_comments=lambda: [
            SimpleNamespace(
                body="Looks good", user=SimpleNamespace(login="bob"), created_at=created
            )
        ],
    )
    repository = SimpleNamespace(get_pull=lambda number: pull)
    client = SimpleNamespace(get_repo=lambda name: repository)
    monkeypatch.setattr(github_client, "get_github_client", lambda: client)

    comments = github_client.fetch_existing_comments("octo/repo", 3)

    assert [(c.file, c.line, c.author) for c in comments] == [
        ("a.py", 7, "alice"),
        ("a.py", None, ""),
        (None, None, "bob"),
    ]
    assert comments[0].created_at == created


def test_fetch_existing_comments_rejects_bad_repo():
    with pytest.raises(ValueError):
        github_client.fetch_existing_comments("not a repo", 1)


def test_post_review_falls_back_to_general_comment(monkeypatch):
    posted = []

    def failing_post_review(repo, pr_number, review):
        raise ValueError("line must be part of the diff")

    def fake_post_comment(repo, pr_number, body):
        posted.append(body)
        return 99

    monkeypatch.setattr(github_client, "post_review", failing_post_review)
    monkeypatch.setattr(github_client, "post_pr_comment", fake_post_comment)

    review = github_client.build_review_submission([_issue("a.py", 5, "Only")], "Found 1", "APPROVE")
    result = github_client.post_review_with_fallback("octo/repo", 1, review)

    assert result == {"fallback": True, "comment_id": 99}
    [body] = posted
    assert "**a.py** (line 5):" in body
    assert "> ## 🟡 Moderate: Only" in body


def test_post_review_success(monkeypatch):
    monkeypatch.setattr(github_client, "post_review", lambda repo, pr, review: 42)
    review = github_client.build_review_submission([_issue("a.py", 5, "Only")], "Found 1", "APPROVE")
    assert github_client.post_review_with_fallback("octo/repo", 1, review) == {
        "fallback": False,
        "review_id": 42,
    }
