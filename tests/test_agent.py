import threading

import pytest

from agent import (
    STRATEGY_CROSS_CHECK,
    STRATEGY_LOCAL,
    STRATEGY_SKIPPED,
    run_review,
)
from conftest import CONSOLE_DIFF, MULTI_FILE_DIFF
from formatting import format_issue_comment
from models import Confidence, ExistingComment, RawIssueReport
from repair import VERDICT_APPROVE, VERDICT_CHANGES


class FakeDiscoverer:
    def __init__(self, issues=None, error=None):
        self.issues = issues or []
        self.error = error
        self.calls = []

    def __call__(self, diff_text, files):
        self.calls.append((diff_text, files))
        if self.error:
            raise self.error
        return list(self.issues)


class FakeCrossChecker:
    def __init__(self, keep=None, error=None, extra=None):
        self.keep = keep
        self.error = error
        self.extra = extra or []
        self.calls = 0

    def __call__(self, issues, existing):
        self.calls += 1
        if self.error:
            raise self.error
        kept = issues if self.keep is None else [issues[i] for i in self.keep]
        return kept + self.extra


CONSOLE_ISSUE = RawIssueReport(
    file="web/app.js",
    code_snippet='console.log("start");',
    diff_relative_hint=6,
    severity="minor",
    title="Debug logging left in",
    message="console.log ships to production.",
)
TOKEN_ISSUE = RawIssueReport(
    file="app/new_module.py",
    code_snippet='token = os.environ.get("API_TOKEN")',
    severity="critical",
    title="Unused secret read",
    message="The token is read but never used.",
)
UNPLACEABLE_ISSUE = RawIssueReport(file="web/app.js", code_snippet="}", title="Brace")


def _existing_for(issue_text, file, line):
    return ExistingComment(file=file, line=line, body=issue_text)


def test_places_issues_without_existing_comments():
    discoverer = FakeDiscoverer([CONSOLE_ISSUE])
    outcome = run_review(CONSOLE_DIFF, [], discoverer)

    [issue] = outcome.issues
    assert (issue.file, issue.new_line, issue.old_line) == ("web/app.js", 11, None)
    assert issue.confidence is Confidence.EXACT
    assert outcome.stats.dedupe_strategy == STRATEGY_SKIPPED
    assert outcome.stats.discovered == 1
    assert outcome.stats.exact == 1
    assert outcome.verdict == VERDICT_APPROVE
    assert outcome.severity_counts == {"critical": 0, "moderate": 0, "minor": 1}
    assert outcome.error is None


def test_discoverer_gets_raw_diff_and_parsed_model():
    discoverer = FakeDiscoverer()
    run_review(MULTI_FILE_DIFF, None, discoverer)

    [(diff_text, files)] = discoverer.calls
    assert diff_text == MULTI_FILE_DIFF
    assert "app/service.py" in files


def test_nothing_discovered_short_circuits():
    cross_checker = FakeCrossChecker()
    outcome = run_review(CONSOLE_DIFF, [ExistingComment()], FakeDiscoverer(), cross_checker)

    assert outcome.issues == []
    assert outcome.stats.discovered == 0
    assert cross_checker.calls == 0
    assert "No issues found" in outcome.summary


def test_discovery_failure_yields_empty_outcome_with_error():
    discoverer = FakeDiscoverer(error=RuntimeError("model overloaded"))
    outcome = run_review(CONSOLE_DIFF, [], discoverer)

    assert outcome.issues == []
    assert outcome.error == "model overloaded"


def test_unplaceable_issues_are_dropped_and_counted():
    cross_checker = FakeCrossChecker()
    existing = [_existing_for("anything", "web/app.js", 11)]
    outcome = run_review(
        CONSOLE_DIFF, existing, FakeDiscoverer([UNPLACEABLE_ISSUE]), cross_checker
    )

    assert outcome.issues == []
    assert outcome.stats.unresolved == 1
    assert cross_checker.calls == 0


def test_cross_checker_may_only_remove_issues():
    placed = run_review(MULTI_FILE_DIFF, [], FakeDiscoverer([TOKEN_ISSUE])).issues
    invented = placed[0].model_copy(update={"file": "invented.py"})

    cross_checker = FakeCrossChecker(keep=[], extra=[invented])
    existing = [_existing_for("token", "app/new_module.py", 2)]
    outcome = run_review(MULTI_FILE_DIFF, existing, FakeDiscoverer([TOKEN_ISSUE]), cross_checker)

    assert outcome.issues == []
    assert outcome.stats.duplicates_removed == 1
    assert outcome.stats.dedupe_strategy == STRATEGY_CROSS_CHECK
    assert cross_checker.calls == 1


def test_cross_checker_result_is_used():
    existing = [_existing_for("unrelated", "web/app.js", 40)]
    discoverer = FakeDiscoverer([CONSOLE_ISSUE])
    outcome = run_review(CONSOLE_DIFF, existing, discoverer, FakeCrossChecker())

    assert len(outcome.issues) == 1
    assert outcome.stats.dedupe_strategy == STRATEGY_CROSS_CHECK
    assert outcome.stats.duplicates_removed == 0


def _local_duplicate_setup():
    placed = run_review(CONSOLE_DIFF, [], FakeDiscoverer([CONSOLE_ISSUE])).issues[0]
    return [_existing_for(format_issue_comment(placed), "web/app.js", 12)]


def test_cross_checker_failure_falls_back_to_local_check():
    existing = _local_duplicate_setup()
    cross_checker = FakeCrossChecker(error=ConnectionError("down"))
    outcome = run_review(CONSOLE_DIFF, existing, FakeDiscoverer([CONSOLE_ISSUE]), cross_checker)

    assert outcome.issues == []
    assert outcome.stats.dedupe_strategy == STRATEGY_LOCAL
    assert outcome.stats.duplicates_removed == 1
    assert cross_checker.calls == 1


def test_cross_checker_timeout_falls_back_to_local_check():
    existing = _local_duplicate_setup()
    release = threading.Event()
    workers = []

    def slow_cross_checker(issues, existing):
        workers.append(threading.current_thread())
        release.wait(5)
        return issues

    try:
        outcome = run_review(
            CONSOLE_DIFF,
            existing,
            FakeDiscoverer([CONSOLE_ISSUE]),
            slow_cross_checker,
            timeout=0.05,
        )
        # an abandoned call must not hold up interpreter exit
        assert workers and all(worker.daemon for worker in workers)
    finally:
        release.set()

    assert outcome.issues == []
    assert outcome.stats.dedupe_strategy == STRATEGY_LOCAL


def test_local_check_without_cross_checker():
    outcome = run_review(CONSOLE_DIFF, _local_duplicate_setup(), FakeDiscoverer([CONSOLE_ISSUE]))
    assert outcome.stats.dedupe_strategy == STRATEGY_LOCAL
    assert outcome.stats.duplicates_removed == 1


def test_stats_and_verdict_for_mixed_run():
    discoverer = FakeDiscoverer([TOKEN_ISSUE, UNPLACEABLE_ISSUE])
    outcome = run_review(MULTI_FILE_DIFF, [], discoverer)

    assert [i.new_line for i in outcome.issues] == [2]
    assert outcome.stats.discovered == 2
    assert (outcome.stats.exact, outcome.stats.unresolved) == (1, 1)
    assert outcome.stats.placed == 1
    assert outcome.severity_counts["critical"] == 1
    assert outcome.verdict == VERDICT_CHANGES
    assert "could not be placed" in outcome.summary


@pytest.mark.parametrize("existing", [None, []])
def test_existing_comments_are_optional(existing):
    outcome = run_review(CONSOLE_DIFF, existing, FakeDiscoverer([CONSOLE_ISSUE]))
    assert len(outcome.issues) == 1
