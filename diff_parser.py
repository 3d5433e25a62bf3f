"""Parser for unified diff format with exact old/new line bookkeeping."""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Iterator

logger = logging.getLogger(__name__)

_GIT_HEADER = re.compile(r"^diff --git a/(.*) b/(.*)$")
_HUNK_HEADER = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@(.*)$")
_DEV_NULL = "/dev/null"


class LineKind(str, Enum):
    ADDED = "added"
    REMOVED = "removed"
    CONTEXT = "context"


@dataclass(frozen=True)
class DiffLine:
    """One content line of a hunk."""

    kind: LineKind
    content: str                 # text without the leading +/-/space
    old_line: int | None         # None for added lines
    new_line: int | None         # None for removed lines
    patch_offset: int            # character offset in the raw patch (diagnostics)


@dataclass(frozen=True)
class Hunk:
    """A contiguous region of change headed by ``@@ -a,b +c,d @@``."""

    old_start: int
    old_count: int
    new_start: int
    new_count: int
    lines: tuple[DiffLine, ...] = ()
    section: str = ""            # text after the closing @@ (function context)

    def old_lines(self) -> list[str]:
        """Content of the base revision covered by this hunk."""
        return [line.content for line in self.lines if line.kind is not LineKind.ADDED]

    def new_lines(self) -> list[str]:
        """Content of the new revision covered by this hunk."""
        return [line.content for line in self.lines if line.kind is not LineKind.REMOVED]

    @property
    def is_consistent(self) -> bool:
        """True when the recorded lines agree with the header counts."""
        return (
            len(self.old_lines()) == self.old_count
            and len(self.new_lines()) == self.new_count
        )


@dataclass(frozen=True)
class FileDiff:
    """Parsed diff for a single file."""

    old_path: str
    new_path: str
    is_new_file: bool = False
    is_deleted_file: bool = False
    hunks: tuple[Hunk, ...] = ()

    @property
    def is_renamed(self) -> bool:
        return self.old_path != self.new_path

    @property
    def status(self) -> str:
        if self.is_new_file:
            return "added"
        if self.is_deleted_file:
            return "deleted"
        if self.is_renamed:
            return "renamed"
        return "modified"

    @property
    def additions(self) -> int:
        return sum(1 for line in self.lines() if line.kind is LineKind.ADDED)

    @property
    def deletions(self) -> int:
        return sum(1 for line in self.lines() if line.kind is LineKind.REMOVED)

    def lines(self) -> Iterator[DiffLine]:
        """Every line of every hunk, in file order."""
        for hunk in self.hunks:
            yield from hunk.lines


# ---------------------------------------------------------------------------
# Parser state machine
# ---------------------------------------------------------------------------
class _State(Enum):
    SEEKING_FILE = auto()
    SEEKING_HUNK = auto()
    IN_HUNK = auto()
    SKIPPING_HUNK = auto()


@dataclass
class _PendingHunk:
    old_start: int
    old_count: int
    new_start: int
    new_count: int
    section: str
    next_old: int
    next_new: int
    lines: list[DiffLine] = field(default_factory=list)
    overflow_reported: bool = False

    @property
    def remaining_old(self) -> int:
        return self.old_start + self.old_count - self.next_old

    @property
    def remaining_new(self) -> int:
        return self.new_start + self.new_count - self.next_new

    @property
    def expects_more(self) -> bool:
        return self.remaining_old > 0 or self.remaining_new > 0

    def freeze(self) -> Hunk:
        return Hunk(
            old_start=self.old_start,
            old_count=self.old_count,
            new_start=self.new_start,
            new_count=self.new_count,
            lines=tuple(self.lines),
            section=self.section,
        )


@dataclass
class _PendingFile:
    old_path: str | None
    new_path: str | None
    is_new_file: bool = False
    is_deleted_file: bool = False
    hunks: list[_PendingHunk] = field(default_factory=list)


def _strip_path(raw: str) -> str | None:
    """Turn a ``---``/``+++`` operand into a repo path (None for /dev/null)."""
    path = raw.split("\t", 1)[0].strip()
    if len(path) >= 2 and path[0] == path[-1] == '"':
        path = path[1:-1]
    if path == _DEV_NULL:
        return None
    if path.startswith(("a/", "b/")):
        path = path[2:]
    return path


class _DiffPatchParser:
    """Single-pass builder behind :func:`parse_diff`."""

    def __init__(self) -> None:
        self.files: dict[str, FileDiff] = {}
        self.state = _State.SEEKING_FILE
        self.current: _PendingFile | None = None
        self.hunk: _PendingHunk | None = None

    # -- file bookkeeping -------------------------------------------------
    def _finish_file(self) -> None:
        pending = self.current
        self.current = None
        self.hunk = None
        if pending is None:
            return
        if not pending.hunks:
            logger.debug(
                "Skipping %s: no hunks (binary or mode-only change)",
                pending.new_path or pending.old_path,
            )
            return

        new_path = pending.new_path or pending.old_path
        old_path = pending.old_path or pending.new_path
        if new_path is None or old_path is None:
            logger.warning("Dropping file section without a usable path")
            return
        if new_path in self.files:
            logger.warning("Duplicate diff section for %s, keeping the last one", new_path)

        self.files[new_path] = FileDiff(
            old_path=old_path,
            new_path=new_path,
            is_new_file=pending.is_new_file,
            is_deleted_file=pending.is_deleted_file,
            hunks=tuple(h.freeze() for h in pending.hunks),
        )

    def _start_git_file(self, line: str) -> None:
        self._finish_file()
        match = _GIT_HEADER.match(line)
        if not match:
            logger.warning("Unparseable file header, skipping: %r", line[:120])
            self.state = _State.SEEKING_FILE
            return
        self.current = _PendingFile(old_path=match.group(1), new_path=match.group(2))
        self.state = _State.SEEKING_HUNK

    def _start_plain_file(self) -> None:
        # Paths are filled in by the ---/+++ pair that follows
        self._finish_file()
        self.current = _PendingFile(old_path=None, new_path=None)
        self.state = _State.SEEKING_HUNK

    # -- header lines -----------------------------------------------------
    def _file_metadata(self, line: str) -> bool:
        """Apply a file-level header line; return False if it is not one."""
        pending = self.current
        if pending is None:
            return False

        if line.startswith("new file mode"):
            pending.is_new_file = True
        elif line.startswith("deleted file mode"):
            pending.is_deleted_file = True
        elif line.startswith("rename from "):
            pending.old_path = line[len("rename from "):].strip()
        elif line.startswith("rename to "):
            pending.new_path = line[len("rename to "):].strip()
        elif line.startswith("--- "):
            path = _strip_path(line[4:])
            if path is None:
                pending.is_new_file = True
            else:
                pending.old_path = path
        elif line.startswith("+++ "):
            path = _strip_path(line[4:])
            if path is None:
                pending.is_deleted_file = True
            else:
                pending.new_path = path
        else:
            return False
        return True

    def _start_hunk(self, line: str) -> None:
        match = _HUNK_HEADER.match(line)
        if not match or self.current is None:
            logger.warning("Unparseable hunk header, skipping hunk: %r", line[:120])
            self.hunk = None
            # the body of the bad hunk is dropped up to the next header
            self.state = _State.SKIPPING_HUNK if self.current else _State.SEEKING_FILE
            return

        old_start = int(match.group(1))
        old_count = int(match.group(2)) if match.group(2) is not None else 1
        new_start = int(match.group(3))
        new_count = int(match.group(4)) if match.group(4) is not None else 1

        self.hunk = _PendingHunk(
            old_start=old_start,
            old_count=old_count,
            new_start=new_start,
            new_count=new_count,
            section=match.group(5).strip(),
            next_old=old_start,
            next_new=new_start,
        )
        self.current.hunks.append(self.hunk)
        self.state = _State.IN_HUNK

    # -- hunk body --------------------------------------------------------
    def _content_line(self, line: str, offset: int) -> bool:
        """Record a hunk content line; return False if *line* is not one."""
        hunk = self.hunk
        if hunk is None:
            return False

        if line.startswith("+"):
            kind = LineKind.ADDED
        elif line.startswith("-"):
            kind = LineKind.REMOVED
        elif line.startswith(" ") or (line == "" and hunk.expects_more):
            kind = LineKind.CONTEXT
        else:
            return False

        if not hunk.expects_more and not hunk.overflow_reported:
            logger.warning(
                "Hunk @@ -%d,%d +%d,%d @@ has more lines than its header declares",
                hunk.old_start,
                hunk.old_count,
                hunk.new_start,
                hunk.new_count,
            )
            hunk.overflow_reported = True

        content = line[1:]
        if kind is LineKind.ADDED:
            hunk.lines.append(DiffLine(kind, content, None, hunk.next_new, offset))
            hunk.next_new += 1
        elif kind is LineKind.REMOVED:
            hunk.lines.append(DiffLine(kind, content, hunk.next_old, None, offset))
            hunk.next_old += 1
        else:
            hunk.lines.append(
                DiffLine(kind, content, hunk.next_old, hunk.next_new, offset)
            )
            hunk.next_old += 1
            hunk.next_new += 1
        return True

    # -- driver -----------------------------------------------------------
    def feed(self, lines: list[str], offsets: list[int]) -> dict[str, FileDiff]:
        for index, line in enumerate(lines):
            offset = offsets[index]
            next_line = lines[index + 1] if index + 1 < len(lines) else ""
            starts_file_pair = line.startswith("--- ") and next_line.startswith("+++ ")

            if line.startswith("diff --git "):
                self._start_git_file(line)
                continue

            if self.state is _State.IN_HUNK:
                hunk = self.hunk
                if line.startswith("@@"):
                    self._start_hunk(line)
                elif line.startswith("\\"):
                    pass  # "\ No newline at end of file"
                elif hunk is not None and hunk.expects_more:
                    if not self._content_line(line, offset):
                        logger.warning("Skipping stray line inside hunk: %r", line[:120])
                elif starts_file_pair:
                    self._start_plain_file()
                    self._file_metadata(line)
                elif not self._content_line(line, offset) and line.strip():
                    logger.debug("Skipping line after hunk: %r", line[:120])
                continue

            if self.state is _State.SKIPPING_HUNK:
                if line.startswith("@@"):
                    self._start_hunk(line)
                elif (
                    starts_file_pair
                    and index + 2 < len(lines)
                    and lines[index + 2].startswith("@@")
                ):
                    self._start_plain_file()
                    self._file_metadata(line)
                elif line.strip():
                    logger.debug("Skipping line of malformed hunk: %r", line[:120])
                continue

            if self.state is _State.SEEKING_HUNK:
                if line.startswith("@@"):
                    self._start_hunk(line)
                elif (
                    starts_file_pair
                    and self.current is not None
                    and self.current.hunks
                ):
                    self._start_plain_file()
                    self._file_metadata(line)
                elif not self._file_metadata(line) and line.strip():
                    logger.debug("Skipping header line: %r", line[:120])
                continue

            # SEEKING_FILE
            if starts_file_pair:
                self._start_plain_file()
                self._file_metadata(line)
            elif line.startswith("@@"):
                logger.warning("Skipping hunk outside any file section: %r", line[:120])
            elif line.strip():
                logger.debug("Skipping line outside any file section: %r", line[:120])

        self._finish_file()
        return self.files


def _split_lines(diff_text: str) -> tuple[list[str], list[int]]:
    """Split on newlines, remembering where each line starts."""
    lines: list[str] = []
    offsets: list[int] = []
    position = 0
    parts = diff_text.split("\n")
    if parts and parts[-1] == "":
        parts.pop()  # trailing newline, not an empty context line
    for raw in parts:
        offsets.append(position)
        position += len(raw) + 1
        lines.append(raw[:-1] if raw.endswith("\r") else raw)
    return lines, offsets


def parse_diff(diff_text: str) -> dict[str, FileDiff]:
    """
    Parse a unified diff into per-file line-number models.

    Never raises on malformed input: unparseable headers and stray lines are
    logged and skipped, and whatever could be parsed is returned.

    Args:
        diff_text: Raw unified diff string (``git diff`` style)

    Returns:
        Dict mapping new file path -> FileDiff; files without hunks are omitted
    """
    if not diff_text:
        return {}
    lines, offsets = _split_lines(diff_text)
    files = _DiffPatchParser().feed(lines, offsets)
    logger.debug("Parsed %d file(s) with hunks", len(files))
    return files


def render_patch(file_diff: FileDiff) -> str:
    """Render a FileDiff back to unified diff text."""
    out = [f"diff --git a/{file_diff.old_path} b/{file_diff.new_path}"]
    if file_diff.is_new_file:
        out.append("new file mode 100644")
    if file_diff.is_deleted_file:
        out.append("deleted file mode 100644")
    out.append(
        "--- " + (_DEV_NULL if file_diff.is_new_file else f"a/{file_diff.old_path}")
    )
    out.append(
        "+++ " + (_DEV_NULL if file_diff.is_deleted_file else f"b/{file_diff.new_path}")
    )

    prefixes = {LineKind.ADDED: "+", LineKind.REMOVED: "-", LineKind.CONTEXT: " "}
    for hunk in file_diff.hunks:
        header = (
            f"@@ -{hunk.old_start},{hunk.old_count} "
            f"+{hunk.new_start},{hunk.new_count} @@"
        )
        out.append(f"{header} {hunk.section}" if hunk.section else header)
        out.extend(prefixes[line.kind] + line.content for line in hunk.lines)

    return "\n".join(out)


# File extensions to skip during review
SKIP_EXTENSIONS = {
    '.md', '.txt', '.rst', '.adoc',           # Docs
    '.lock',                                   # Lock files
    '.png', '.jpg', '.jpeg', '.gif', '.svg', '.ico', '.webp',  # Images
    '.woff', '.woff2', '.ttf', '.eot',        # Fonts
    '.csv', '.json', '.xml', '.yaml', '.yml', '.toml',  # Data
    '.min.js', '.min.css', '.map',            # Build artifacts
    '.exe', '.dll', '.so', '.dylib', '.pyc',  # Binary
    '.zip', '.tar', '.gz', '.pdf',            # Archives/docs
}

SKIP_FILENAMES = {
    'package-lock.json', 'yarn.lock', 'pnpm-lock.yaml',
    'Pipfile.lock', 'poetry.lock', 'composer.lock',
    'Gemfile.lock', 'Cargo.lock', 'uv.lock',
    '.gitignore', '.gitattributes', '.editorconfig',
    'LICENSE', 'LICENSE.md', 'LICENSE.txt',
}

SKIP_DIRECTORIES = {'node_modules/', 'vendor/', 'dist/', 'build/', '.git/', '__pycache__/', '.venv/'}


def should_review_file(filename: str) -> bool:
    """Check if file should be reviewed based on name/extension."""
    for skip_dir in SKIP_DIRECTORIES:
        if filename.startswith(skip_dir) or f'/{skip_dir}' in filename:
            return False

    basename = filename.split('/')[-1]
    if basename in SKIP_FILENAMES:
        return False

    lowered = filename.lower()
    return not any(lowered.endswith(ext) for ext in SKIP_EXTENSIONS)


def filter_files(files: dict[str, FileDiff]) -> list[FileDiff]:
    """Files worth sending to a reviewer: reviewable, not deleted, with additions."""
    return [
        file
        for path, file in files.items()
        if should_review_file(path) and not file.is_deleted_file and file.additions
    ]
