import json

import pytest

import reviewer
from agent import STRATEGY_CROSS_CHECK, run_review
from conftest import MULTI_FILE_DIFF
from diff_parser import parse_diff
from mock_data import (
    MOCK_CROSS_CHECK_RESPONSE,
    MOCK_DIFF,
    MOCK_DISCOVERY_RESPONSE,
    MOCK_EXISTING_COMMENTS,
)
from models import Confidence, CrossCheckResult, DuplicateVerdict, ExistingComment, ResolvedIssue


def _resolved(file, line, title):
    return ResolvedIssue(
        file=file,
        code_snippet="snippet text",
        title=title,
        new_line=line,
        confidence=Confidence.EXACT,
    )


def test_parse_truncated_discovery_response():
    issues = reviewer.parse_discovery_response(MOCK_DISCOVERY_RESPONSE)

    assert [i.title for i in issues] == [
        "SQL injection in find_user",
        "Debug print left in code",
    ]
    assert issues[0].severity == "critical"
    assert issues[1].severity == "minor"
    assert issues[0].metadata["priority"] == "High"


def test_invalid_records_are_dropped():
    text = json.dumps(
        {
            "issues": [
                {"file": "a.py", "title": "no snippet"},
                {"file": "a.py", "code_snippet": "x = compute()", "diff_line": "not a number"},
                {"file": "a.py", "code_snippet": "y = compute()"},
            ]
        }
    )
    issues = reviewer.parse_discovery_response(text)
    assert [i.code_snippet for i in issues] == ["y = compute()"]


def test_discover_issues_sends_only_reviewable_files(monkeypatch):
    prompts = []

    def fake_call_gemini(prompt, model=reviewer.DEFAULT_MODEL):
        prompts.append(prompt)
        return '{"issues": []}'

    monkeypatch.setattr(reviewer, "USE_MOCK", False)
    monkeypatch.setattr(reviewer, "call_gemini", fake_call_gemini)

    files = parse_diff(MULTI_FILE_DIFF)
    assert reviewer.discover_issues(MULTI_FILE_DIFF, files) == []

    [prompt] = prompts
    assert "+++ b/app/service.py" in prompt
    assert "+++ b/app/new_module.py" in prompt
    assert "README.md" not in prompt
    assert "app/legacy.py" not in prompt


def test_discover_issues_without_reviewable_files_skips_the_call(monkeypatch):
    monkeypatch.setattr(reviewer, "USE_MOCK", False)
    monkeypatch.setattr(
        reviewer, "call_gemini", lambda *a, **k: pytest.fail("should not be called")
    )
    files = {"docs/README.md": parse_diff(MULTI_FILE_DIFF)["docs/README.md"]}
    assert reviewer.discover_issues("", files) == []


def test_apply_cross_check_ignores_unknown_ids():
    issues = [_resolved("a.py", 1, "one"), _resolved("a.py", 9, "two")]
    result = CrossCheckResult(
        keep_ids=[0],
        duplicates=[DuplicateVerdict(id=1, reason="same"), DuplicateVerdict(id=7)],
    )
    assert reviewer.apply_cross_check(issues, result) == [issues[0]]


def test_cross_check_prompt_lists_only_inline_comments():
    issues = [_resolved("a.py", 3, "Null check")]
    existing = [
        ExistingComment(file="a.py", line=4, body="null check missing"),
        ExistingComment(body="LGTM"),
    ]
    prompt = reviewer.build_cross_check_prompt(issues, existing)
    assert '"id": 0' in prompt
    assert "null check missing" in prompt
    assert "LGTM" not in prompt


def test_cross_check_raises_on_garbage(monkeypatch):
    monkeypatch.setattr(reviewer, "USE_MOCK", False)
    monkeypatch.setattr(reviewer, "call_gemini", lambda *a, **k: "I think they are all fine.")
    with pytest.raises(ValueError):
        reviewer.cross_check_duplicates([_resolved("a.py", 1, "x")], [])


def test_cross_check_parses_fenced_answer(monkeypatch):
    monkeypatch.setattr(reviewer, "USE_MOCK", False)
    monkeypatch.setattr(reviewer, "call_gemini", lambda *a, **k: MOCK_CROSS_CHECK_RESPONSE)
    issues = [_resolved("a.py", 1, "keep"), _resolved("a.py", 2, "drop")]
    assert reviewer.cross_check_duplicates(issues, []) == [issues[0]]


def test_mock_pipeline_end_to_end(monkeypatch):
    monkeypatch.setattr(reviewer, "USE_MOCK", True)
    existing = [ExistingComment.model_validate(c) for c in MOCK_EXISTING_COMMENTS]

    outcome = run_review(
        MOCK_DIFF, existing, reviewer.discover_issues, reviewer.cross_check_duplicates
    )

    [issue] = outcome.issues
    assert issue.title == "SQL injection in find_user"
    assert (issue.file, issue.new_line) == ("app/users.py", 13)
    assert outcome.stats.discovered == 2
    assert outcome.stats.duplicates_removed == 1
    assert outcome.stats.dedupe_strategy == STRATEGY_CROSS_CHECK
