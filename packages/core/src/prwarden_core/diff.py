"""Unified diff model with GitHub-compatible diff positions.

GitHub's review comment API anchors comments by *position*: a 1-based counter
within one file's diff block. The first ``@@`` hunk header of a file is not
addressable: position 1 is the first line immediately below it. Every later
line of the same file, including the headers of subsequent hunks, advances the
counter. Positions restart at the next ``diff --git`` boundary.

Line numbers (old/new) are a convenience view derived from the same walk.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)

_HUNK_HEADER_RE = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@(.*)$")
_GIT_HEADER_RE = re.compile(r"^diff --git a/(.+) b/(.+)$")

ADDED = "added"
MODIFIED = "modified"
DELETED = "deleted"
RENAMED = "renamed"


class DiffParseError(ValueError):
    """Raised when a file's diff block cannot be parsed (e.g. a malformed hunk header)."""

    def __init__(self, path: str | None, message: str):
        super().__init__(message)
        self.path = path


class LineKind(str, Enum):
    CONTEXT = "context"
    ADDITION = "addition"
    DELETION = "deletion"


_PREFIX = {LineKind.CONTEXT: " ", LineKind.ADDITION: "+", LineKind.DELETION: "-"}


@dataclass(frozen=True)
class DiffLine:
    kind: LineKind
    content: str
    position: int
    old_lineno: int | None = None
    new_lineno: int | None = None

    @property
    def side(self) -> str:
        # Deleted lines only exist on the left-hand side of a split diff.
        return "LEFT" if self.kind is LineKind.DELETION else "RIGHT"

    @property
    def lineno(self) -> int | None:
        return self.old_lineno if self.kind is LineKind.DELETION else self.new_lineno

    def render(self) -> str:
        return f"{_PREFIX[self.kind]}{self.content}"


@dataclass
class Hunk:
    old_start: int
    old_count: int
    new_start: int
    new_count: int
    header: str
    header_position: int = 0
    lines: list[DiffLine] = field(default_factory=list)

    @property
    def positions(self) -> range:
        if not self.lines:
            return range(0)
        return range(self.lines[0].position, self.lines[-1].position + 1)

    def render(self, with_positions: bool = True) -> str:
        if with_positions and self.header_position:
            out = [f"{self.header_position:>5} {self.header}"]
        elif with_positions:
            out = [f"{'':>5} {self.header}"]
        else:
            out = [self.header]
        for line in self.lines:
            out.append(f"{line.position:>5} {line.render()}" if with_positions else line.render())
        return "\n".join(out)


@dataclass
class DiffFile:
    path: str
    status: str = MODIFIED
    hunks: list[Hunk] = field(default_factory=list)
    old_path: str | None = None

    @property
    def lines(self) -> list[DiffLine]:
        return [line for hunk in self.hunks for line in hunk.lines]

    @property
    def positions(self) -> set[int]:
        return {line.position for line in self.lines}

    def line_at(self, position: int | None) -> DiffLine | None:
        if position is None:
            return None
        for line in self.lines:
            if line.position == position:
                return line
        return None

    def hunk_for(self, position: int | None) -> Hunk | None:
        if position is None:
            return None
        for hunk in self.hunks:
            if position in hunk.positions:
                return hunk
        return None

    def position_for_line(self, lineno: int, side: str = "RIGHT") -> int | None:
        """Map a file line number on one side of the diff back to its diff position."""
        for line in self.lines:
            if side == "LEFT" and line.kind is not LineKind.ADDITION and line.old_lineno == lineno:
                return line.position
            if side == "RIGHT" and line.kind is not LineKind.DELETION and line.new_lineno == lineno:
                return line.position
        return None

    def render(self, with_positions: bool = True) -> str:
        return "\n".join(hunk.render(with_positions) for hunk in self.hunks)

    @property
    def patch(self) -> str:
        return self.render(with_positions=False)


def _parse_hunks(lines: list[str], path: str | None) -> list[Hunk]:
    hunks: list[Hunk] = []
    current: Hunk | None = None
    position = 0
    old_no = new_no = 0

    for raw in lines:
        if raw.startswith("@@"):
            match = _HUNK_HEADER_RE.match(raw)
            if not match:
                raise DiffParseError(path, f"malformed hunk header: {raw!r}")
            if current is not None:
                # Only the first header of a file is outside the position space.
                position += 1
            old_start, old_count, new_start, new_count, _ = match.groups()
            current = Hunk(
                old_start=int(old_start),
                old_count=int(old_count) if old_count is not None else 1,
                new_start=int(new_start),
                new_count=int(new_count) if new_count is not None else 1,
                header=raw,
                header_position=position,
            )
            hunks.append(current)
            old_no, new_no = current.old_start, current.new_start
            continue

        if current is None:
            continue  # file header lines (index, ---, +++, mode changes)

        position += 1
        if raw.startswith("\\"):
            continue  # "\ No newline at end of file" occupies a position but has no coordinates
        if raw.startswith("+"):
            current.lines.append(DiffLine(LineKind.ADDITION, raw[1:], position, new_lineno=new_no))
            new_no += 1
        elif raw.startswith("-"):
            current.lines.append(DiffLine(LineKind.DELETION, raw[1:], position, old_lineno=old_no))
            old_no += 1
        else:
            content = raw[1:] if raw.startswith(" ") else raw
            current.lines.append(DiffLine(LineKind.CONTEXT, content, position, old_lineno=old_no, new_lineno=new_no))
            old_no += 1
            new_no += 1

    return hunks


def _is_binary(lines: list[str]) -> bool:
    return any(line.startswith("Binary files ") or line == "GIT binary patch" for line in lines)


def _parse_file_block(lines: list[str]) -> DiffFile | None:
    match = _GIT_HEADER_RE.match(lines[0])
    old_path = match.group(1) if match else None
    new_path = match.group(2) if match else None
    status = MODIFIED
    rename_from = None

    for line in lines[1:]:
        if line.startswith("@@"):
            break
        if line.startswith("new file mode"):
            status = ADDED
        elif line.startswith("deleted file mode"):
            status = DELETED
        elif line.startswith("rename from "):
            rename_from = line[len("rename from ") :]
            status = RENAMED
        elif line.startswith("rename to "):
            new_path = line[len("rename to ") :]
        elif line.startswith("--- "):
            src = line[4:].split("\t")[0]
            if src == "/dev/null":
                status = ADDED
            elif src.startswith("a/"):
                old_path = src[2:]
        elif line.startswith("+++ "):
            dst = line[4:].split("\t")[0]
            if dst == "/dev/null":
                status = DELETED
            elif dst.startswith("b/"):
                new_path = dst[2:]

    path = old_path if status == DELETED else new_path
    if _is_binary(lines):
        logger.debug("Skipping binary file %s", path)
        return None
    if not path:
        raise DiffParseError(None, f"cannot determine file path from {lines[0]!r}")

    hunks = _parse_hunks(lines[1:], path)
    return DiffFile(
        path=path,
        status=status,
        hunks=hunks,
        old_path=rename_from or (old_path if old_path != path else None),
    )


def _split_file_blocks(diff_text: str) -> list[list[str]]:
    blocks: list[list[str]] = []
    for line in diff_text.splitlines():
        if line.startswith("diff --git "):
            blocks.append([line])
        elif blocks:
            blocks[-1].append(line)
    return blocks


def parse_diff(diff_text: str) -> list[DiffFile]:
    """Parse a multi-file unified diff (``git diff`` format) into DiffFiles.

    Binary files are skipped. A file whose hunk headers cannot be parsed is
    skipped with a warning; the remaining files are still returned.
    """
    if not diff_text or not diff_text.strip():
        return []

    files: list[DiffFile] = []
    for block in _split_file_blocks(diff_text):
        try:
            diff_file = _parse_file_block(block)
        except DiffParseError as e:
            logger.warning("Skipping %s: %s", e.path or "<unknown file>", e)
            continue
        if diff_file is not None:
            files.append(diff_file)
    return files


def parse_patch(path: str, patch_text: str, status: str = MODIFIED, old_path: str | None = None) -> DiffFile:
    """Build a DiffFile from a single-file patch as returned by GitHub's files API.

    Raises DiffParseError on a malformed hunk header.
    """
    return DiffFile(
        path=path,
        status=status,
        hunks=_parse_hunks((patch_text or "").splitlines(), path),
        old_path=old_path,
    )
