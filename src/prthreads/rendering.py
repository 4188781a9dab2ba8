"""Render a pull request's review discussion for the terminal.

Output layout::

    ========== code review ==========
    Summary: ...
    <latest review per author>
    ========== review comments ==========
    <one block per thread>
    ========== end of code review ==========

Every thread is rendered into its own buffer and written with a single call,
so a thread that fails halfway leaves nothing behind. The closing banner is
always written, even when rendering fails.
"""

from __future__ import annotations

import io
import logging
import re
from collections import Counter
from datetime import datetime
from typing import TYPE_CHECKING, Protocol, TextIO

from rich.console import Console
from rich.markdown import Markdown

from prthreads.diff import format_comment_diff
from prthreads.errors import RenderError

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from prthreads.models import Review, ReviewComment, ReviewThread

logger = logging.getLogger(__name__)

START_BANNER = "========== code review =========="
COMMENTS_BANNER = "========== review comments =========="
END_BANNER = "========== end of code review =========="

NO_COMMENTS = "No unresolved comments."
NO_COMMENTS_FOR_FILES = "No unresolved comments for the specified files."
NO_COMMENTS_FOR_DISCUSSION = "No unresolved comments in the requested discussion."

UNKNOWN_AUTHOR = "(unknown)"
THREAD_SEPARATOR = "---"


# ---------------------------------------------------------------------------
# Markdown sinks
# ---------------------------------------------------------------------------


class MarkdownSink(Protocol):
    """Writes a markdown document to a text stream."""

    def render(self, markdown: str, stream: TextIO) -> None: ...


class RichMarkdownSink:
    """Render markdown with rich, highlighting fenced code with *code_theme*."""

    def __init__(
        self,
        code_theme: str = "monokai",
        *,
        force_terminal: bool | None = None,
        width: int | None = None,
    ) -> None:
        self.code_theme = code_theme
        self.force_terminal = force_terminal
        self.width = width

    def render(self, markdown: str, stream: TextIO) -> None:
        console = Console(
            file=stream,
            force_terminal=self.force_terminal,
            width=self.width,
            highlight=False,
            soft_wrap=False,
        )
        console.print(Markdown(markdown, code_theme=self.code_theme))


class PlainMarkdownSink:
    """Write markdown source unchanged."""

    def render(self, markdown: str, stream: TextIO) -> None:
        stream.write(markdown)
        if not markdown.endswith("\n"):
            stream.write("\n")


# ---------------------------------------------------------------------------
# Body cleaning
# ---------------------------------------------------------------------------

# Reviewer bots inject HTML comments with badges and metadata
_HTML_COMMENT_BLOCK_RE = re.compile(r"<!--.*?-->", re.DOTALL)

# <details>...</details> → keep only the <summary> text
_DETAILS_BLOCK_RE = re.compile(
    r"<details[^>]*>\s*<summary[^>]*>(.*?)</summary>.*?</details>",
    re.DOTALL | re.IGNORECASE,
)

_HTML_TAG_RE = re.compile(r"<[^>]+>")

_BLANK_LINES_RE = re.compile(r"\n{3,}")


def clean_body(body: str) -> str:
    """Strip reviewer badge HTML, collapse ``<details>`` blocks and remove tags."""
    body = body.replace("\r\n", "\n").replace("\r", "\n")
    body = _HTML_COMMENT_BLOCK_RE.sub("", body)
    body = _DETAILS_BLOCK_RE.sub(lambda m: f"▶ {m.group(1).strip()}\n", body)
    body = _HTML_TAG_RE.sub("", body)
    body = _BLANK_LINES_RE.sub("\n\n", body)
    return body.strip()


# ---------------------------------------------------------------------------
# Summary and reviews
# ---------------------------------------------------------------------------


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}" if count == 1 else f"{count} {noun}s"


def summarize_paths(threads: Iterable[ReviewThread]) -> list[tuple[str, int]]:
    """Count threads per path, most-discussed first, ties broken by path."""
    counts = Counter(t.path for t in threads)
    return sorted(counts.items(), key=lambda item: (-item[1], item[0]))


def format_summary(threads: Sequence[ReviewThread]) -> str:
    """Return the summary section, or ``""`` when there are no threads."""
    if not threads:
        return ""
    per_path = summarize_paths(threads)
    lines = ["Summary:"]
    lines.extend(f"{path}: {_plural(count, 'thread')}" for path, count in per_path)
    comments = sum(len(t.comments) for t in threads)
    lines.append(
        f"{_plural(len(threads), 'thread')}, {_plural(comments, 'comment')} "
        f"across {_plural(len(per_path), 'file')}",
    )
    return "\n".join(lines) + "\n\n"


def _supersedes(candidate: Review, current: Review) -> bool:
    if candidate.submitted_at is None:
        return current.submitted_at is None
    if current.submitted_at is None:
        return True
    return candidate.submitted_at >= current.submitted_at


def latest_reviews(reviews: Iterable[Review]) -> list[Review]:
    """Keep the most recent review per author, ordered by submission time.

    A timestamped review beats one without a timestamp; equal timestamps go to
    the one seen later. Reviews without an author are all kept. Reviews with
    no timestamp sort last.
    """
    latest: dict[str, Review] = {}
    anonymous: list[Review] = []
    for review in reviews:
        login = review.login
        if login is None:
            anonymous.append(review)
        elif login not in latest or _supersedes(review, latest[login]):
            latest[login] = review

    kept = [*latest.values(), *anonymous]
    return sorted(kept, key=lambda r: (r.submitted_at is None, r.submitted_at or datetime.min))


def review_markdown(review: Review) -> str:
    text = f"📝  **{review.login or UNKNOWN_AUTHOR}** {review.state}:"
    body = clean_body(review.body)
    return f"{text}\n\n{body}\n" if body else f"{text}\n"


def render_latest_review(review: Review, sink: MarkdownSink) -> str:
    """Render one latest review through *sink*; failures become :exc:`RenderError`."""
    buffer = io.StringIO()
    try:
        sink.render(review_markdown(review), buffer)
    except Exception as exc:
        raise RenderError(f"review by {review.login or UNKNOWN_AUTHOR}", exc) from exc
    return buffer.getvalue()


# ---------------------------------------------------------------------------
# Threads
# ---------------------------------------------------------------------------


def _comment_markdown(comment: ReviewComment, *, with_diff: bool) -> str:
    parts: list[str] = []
    if with_diff:
        diff = format_comment_diff(comment)
        if diff:
            parts.append(f"```diff\n{diff}```")
    parts.append(f"💬  **{comment.login or UNKNOWN_AUTHOR}** wrote:")
    body = clean_body(comment.body)
    if body:
        parts.append(body)
    if comment.permalink:
        parts.append(comment.permalink)
    parts.append(THREAD_SEPARATOR)
    return "\n\n".join(parts)


def thread_markdown(thread: ReviewThread) -> str:
    """Build the markdown for *thread*; only the first comment shows its diff."""
    first, *rest = thread.comments
    blocks = [_comment_markdown(first, with_diff=True)]
    blocks.extend(_comment_markdown(c, with_diff=False) for c in rest)
    return "\n\n".join(blocks) + "\n"


def render_thread(thread: ReviewThread, sink: MarkdownSink) -> str:
    """Render *thread* through *sink* into a string.

    Raises:
        RenderError: If building or rendering the thread fails.
    """
    buffer = io.StringIO()
    try:
        sink.render(thread_markdown(thread), buffer)
    except Exception as exc:
        raise RenderError(f"thread {thread.id}", exc) from exc
    return buffer.getvalue()


def render_review(
    out: TextIO,
    threads: Sequence[ReviewThread],
    reviews: Iterable[Review],
    sink: MarkdownSink,
    *,
    empty_message: str = NO_COMMENTS,
) -> int:
    """Write the full review report for *threads* and *reviews* to *out*.

    *threads* must already be filtered. Returns the number of reviews and
    threads that failed to render; failures are logged and do not stop the
    report.
    """
    failures = 0
    out.write(f"{START_BANNER}\n")
    try:
        out.write(format_summary(threads))

        for review in latest_reviews(reviews):
            try:
                chunk = render_latest_review(review, sink)
            except RenderError as exc:
                failures += 1
                logger.error("%s", exc)  # noqa: TRY400
                continue
            out.write(chunk)

        if not threads:
            out.write(f"{empty_message}\n")
            return failures

        out.write(f"{COMMENTS_BANNER}\n")
        for thread in threads:
            try:
                chunk = render_thread(thread, sink)
            except RenderError as exc:
                failures += 1
                logger.error("%s", exc)  # noqa: TRY400
                continue
            out.write(chunk)
        return failures
    finally:
        out.write(f"{END_BANNER}\n")
