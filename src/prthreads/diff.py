"""Format a review comment's diff hunk with line-number gutters."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, NamedTuple

if TYPE_CHECKING:
    from collections.abc import Iterable

    from prthreads.models import ReviewComment

GUTTER_WIDTH = 5
MAX_LINES = 20
CONTEXT_BEFORE = 5
CONTEXT_AFTER = 5

_HUNK_HEADER_RE = re.compile(r"@@ -(?P<old>\d+)(?:,\d+)? \+(?P<new>\d+)(?:,\d+)? @@")


class DiffLine(NamedTuple):
    """One hunk line with its old and new file line numbers."""

    old: int | None
    new: int | None
    text: str


def parse_hunk_lines(lines: Iterable[str], old: int | None = None, new: int | None = None) -> list[DiffLine]:
    """Number each hunk line, starting from the header's *old*/*new* offsets.

    Context lines are normalised to a single leading space.
    """
    parsed: list[DiffLine] = []
    for line in lines:
        if line.startswith("+"):
            parsed.append(DiffLine(None, new, line))
            new = new + 1 if new is not None else None
        elif line.startswith("-"):
            parsed.append(DiffLine(old, None, line))
            old = old + 1 if old is not None else None
        else:
            parsed.append(DiffLine(old, new, " " + line.removeprefix(" ")))
            old = old + 1 if old is not None else None
            new = new + 1 if new is not None else None
    return parsed


def _gutter(line: DiffLine) -> str:
    number = line.new if line.new is not None else line.old
    if number is None:
        return " " * GUTTER_WIDTH
    # keep the low digits when the number overflows the gutter
    return str(number)[-GUTTER_WIDTH:].rjust(GUTTER_WIDTH)


def _find_target(lines: list[DiffLine], comment: ReviewComment) -> int | None:
    for idx, line in enumerate(lines):
        if comment.original_position is not None and line.old == comment.original_position:
            return idx
        if comment.position is not None and line.new == comment.position:
            return idx
    return None


def format_comment_diff(comment: ReviewComment) -> str:
    """Render *comment*'s diff hunk as gutter-annotated lines.

    The hunk header is parsed for starting line numbers; when it does not
    parse, every line (header included) is shown without numbers. Output is
    limited to :data:`MAX_LINES` lines, or to a window around the commented
    line when it can be located. Returns ``""`` when there is no hunk.
    """
    if not comment.diff_hunk:
        return ""

    raw = [line.rstrip("\r") for line in comment.diff_hunk.splitlines()]
    header_match = _HUNK_HEADER_RE.search(raw[0])
    if header_match:
        lines = parse_hunk_lines(raw[1:], int(header_match["old"]), int(header_match["new"]))
    else:
        lines = parse_hunk_lines(raw)

    target = _find_target(lines, comment)
    if target is None:
        start, end = 0, min(len(lines), MAX_LINES)
    else:
        start, end = max(0, target - CONTEXT_BEFORE), min(len(lines), target + CONTEXT_AFTER + 1)

    return "".join(f"{_gutter(line)}|{line.text}\n" for line in lines[start:end])
