"""Markdown rendering for inline comments and the review summary."""

from models import RawIssueReport, ResolvedIssue

SEVERITY_EMOJI: dict[str, str] = {
    "critical": "🔴",
    "moderate": "🟡",
    "minor": "🟢",
}


def format_issue_comment(issue: RawIssueReport) -> str:
    """Body of the inline comment posted for *issue*."""
    emoji = SEVERITY_EMOJI.get(issue.severity, "🔵")
    lines = [f"## {emoji} {issue.severity.capitalize()}: {issue.title or 'Issue'}"]

    if issue.message:
        lines.append("")
        lines.append(issue.message)

    if issue.recommendation:
        lines.append("")
        lines.append("**Recommendation:**")
        lines.append(issue.recommendation)

    code_example = issue.metadata.get("codeExample") or issue.metadata.get("code_example")
    if code_example:
        lines.append("")
        lines.append(f"**Example:**\n```\n{code_example}\n```")

    return "\n".join(lines)


def format_review_summary(
    issues: list[ResolvedIssue], summary: str, verdict: str
) -> str:
    """Top-level review body listing every placed issue."""
    lines: list[str] = ["## 🤖 hunkpin Review\n", f"**{summary}**\n"]

    if issues:
        lines.append("| Severity | File | Line | Issue |")
        lines.append("|----------|------|------|-------|")
        for issue in issues:
            title = issue.title or issue.message
            title = (title[:60] + "...") if len(title) > 60 else title
            lines.append(
                f"| {issue.severity} | {issue.file} | {issue.new_line} | {title} |"
            )

    lines.append(f"\n**Verdict:** {verdict}")
    lines.append("\n---")
    lines.append("*Generated by hunkpin 🤖*")
    return "\n".join(lines)
