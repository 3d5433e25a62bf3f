"""Data models for issue reports crossing the collaborator boundary."""

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

Severity = Literal["critical", "moderate", "minor"]

# Upstream reviewers are not consistent about severity vocabulary
SEVERITY_ALIASES: dict[str, str] = {
    "critical": "critical",
    "high": "critical",
    "error": "critical",
    "moderate": "moderate",
    "medium": "moderate",
    "warning": "moderate",
    "minor": "minor",
    "low": "minor",
    "info": "minor",
}


class Confidence(str, Enum):
    """How certain a line-position match is."""

    EXACT = "exact"
    FUZZY = "fuzzy"
    UNRESOLVED = "unresolved"


class RawIssueReport(BaseModel):
    """An issue as reported by the discovery collaborator.

    Only ``file``, ``code_snippet`` and ``diff_relative_hint`` are used for
    placement; everything else is carried through untouched.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    file: str = Field(description="Path of the file in the new revision")
    code_snippet: str = Field(
        validation_alias=AliasChoices("code_snippet", "codeSnippet"),
        description="Verbatim code line the issue is about",
    )
    diff_relative_hint: int | None = Field(
        default=None,
        validation_alias=AliasChoices("diff_relative_hint", "diff_line"),
        description="Untrusted position hint counted within the patch",
    )
    severity: Severity = Field(default="minor", description="critical, moderate, minor")
    title: str = Field(default="", description="Short issue title")
    message: str = Field(default="", description="What the issue is")
    recommendation: str = Field(default="", description="Suggested fix")

    @field_validator("severity", mode="before")
    @classmethod
    def _normalise_severity(cls, value: Any) -> str:
        if not isinstance(value, str):
            return "minor"
        return SEVERITY_ALIASES.get(value.strip().lower(), "minor")

    @property
    def metadata(self) -> dict[str, Any]:
        """Pass-through fields the placement engine never looks at."""
        return dict(self.model_extra or {})


class ResolvedIssue(RawIssueReport):
    """A raw issue pinned to a concrete line of the new revision."""

    new_line: int = Field(description="Line number in the new file")
    old_line: int | None = Field(
        default=None, description="Line number in the base file (context lines only)"
    )
    confidence: Confidence = Field(description="exact or fuzzy")


class ExistingComment(BaseModel):
    """A comment already present on the pull request from an earlier round."""

    file: str | None = None
    line: int | None = None
    body: str = ""
    author: str = ""
    created_at: datetime | None = None


class DuplicateVerdict(BaseModel):
    """One new issue the cross-checker considers already raised."""

    id: int = Field(description="Index of the new issue")
    reason: str = Field(default="", description="Why it duplicates an existing comment")


class CrossCheckResult(BaseModel):
    """Cross-checker answer, expressed in issue ids only."""

    keep_ids: list[int] = Field(default_factory=list)
    duplicates: list[DuplicateVerdict] = Field(default_factory=list)
