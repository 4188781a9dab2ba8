"""CLI for prthreads, built on cyclopts."""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import sys
from typing import TYPE_CHECKING, Annotated, NoReturn

import cyclopts
from rich.console import Console
from rich.markup import escape

from prthreads.auth import resolve_token, warn_if_missing_token
from prthreads.config import Config, load_config
from prthreads.errors import PRThreadsError
from prthreads.filtering import filter_threads, thread_for_comment
from prthreads.github_api import GitHubClient
from prthreads.references import resolve_pr_reference
from prthreads.rendering import (
    NO_COMMENTS,
    NO_COMMENTS_FOR_DISCUSSION,
    NO_COMMENTS_FOR_FILES,
    MarkdownSink,
    PlainMarkdownSink,
    RichMarkdownSink,
    render_review,
)
from prthreads.resolve import NoOpReplyPoster, ReplyPoster, ResolutionCommand, RestReplyPoster
from prthreads.threads import fetch_snapshot

if TYPE_CHECKING:
    from prthreads.models import PullRequestReference, ReviewSnapshot, ReviewThread

logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"

_stderr = Console(stderr=True, soft_wrap=True, highlight=False)

app = cyclopts.App(
    name="prthreads",
    help="prthreads: read and resolve GitHub pull request review threads.",
)

Verbose = Annotated[
    bool,
    cyclopts.Parameter(name=["--verbose", "-v"], negative=(), help="Enable debug logging"),
]
Repo = Annotated[
    str | None,
    cyclopts.Parameter(name="--repo", help="Fallback repository ('owner/repo') for bare PR numbers"),
]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def setup_logging(*, verbose: bool = False) -> None:
    """Send log records to stderr; WARNING and up unless *verbose*."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format=_LOG_FORMAT,
        stream=sys.stderr,
        force=True,
    )


def _fail(exc: BaseException) -> NoReturn:
    _stderr.print(f"[red]error:[/red] {escape(str(exc))}")
    sys.exit(1)


def _load(*, verbose: bool, **overrides: object) -> tuple[Config, str | None]:
    """Set up logging, load config, apply CLI flags and resolve the token."""
    setup_logging(verbose=verbose)
    try:
        config, _ = load_config()
    except ValueError as exc:
        _fail(exc)
    config = config.with_overrides(**overrides)
    token = resolve_token(config.github_token)
    warn_if_missing_token(token)
    return config, token


def _make_sink(config: Config, *, raw: bool = False) -> MarkdownSink:
    if raw:
        return PlainMarkdownSink()
    return RichMarkdownSink(
        config.code_theme,
        force_terminal=sys.stdout.isatty(),
        width=shutil.get_terminal_size().columns,
    )


# ---------------------------------------------------------------------------
# pr
# ---------------------------------------------------------------------------


async def _fetch(token: str | None, pr: PullRequestReference) -> ReviewSnapshot:
    async with GitHubClient(token) as client:
        return await fetch_snapshot(client, pr)


def select_threads(
    snapshot: ReviewSnapshot,
    *,
    show_outdated: bool,
    files: tuple[str, ...],
    comment_id: int | None,
) -> tuple[list[ReviewThread], str]:
    """Apply the thread filters and pick the matching empty-state message."""
    if comment_id is not None:
        threads = filter_threads(snapshot.threads, show_outdated=show_outdated)
        thread = thread_for_comment(threads, comment_id)
        return ([thread] if thread else []), NO_COMMENTS_FOR_DISCUSSION

    threads = filter_threads(snapshot.threads, show_outdated=show_outdated, paths=files)
    return threads, NO_COMMENTS_FOR_FILES if files else NO_COMMENTS


@app.command(name="pr")
def pr(
    reference: str,
    *files: str,
    show_outdated: Annotated[
        bool,
        cyclopts.Parameter(name=["--show-outdated", "-o"], negative=(), help="Include outdated threads"),
    ] = False,
    raw: Annotated[
        bool,
        cyclopts.Parameter(name="--raw", negative=(), help="Print markdown source instead of rendering it"),
    ] = False,
    repo: Repo = None,
    verbose: Verbose = False,
) -> None:
    """Show unresolved review threads for a pull request.

    REFERENCE is a pull request URL or number, optionally ending in
    ``#discussion_r<id>`` to show a single discussion. FILES limits output to
    threads on those exact paths.
    """
    config, token = _load(verbose=verbose, repo=repo, show_outdated=show_outdated or None)
    try:
        pr_ref, comment_id = resolve_pr_reference(reference, config.repo)
        logger.debug("Reviewing %s", pr_ref)
        snapshot = asyncio.run(_fetch(token, pr_ref))
    except PRThreadsError as exc:
        _fail(exc)

    threads, empty_message = select_threads(
        snapshot,
        show_outdated=config.show_outdated,
        files=files,
        comment_id=comment_id,
    )
    sink = _make_sink(config, raw=raw)
    failures = render_review(sys.stdout, threads, snapshot.reviews, sink, empty_message=empty_message)
    sys.stdout.flush()
    if failures:
        logger.warning("%d review(s) or thread(s) could not be rendered", failures)


# ---------------------------------------------------------------------------
# resolve
# ---------------------------------------------------------------------------


async def _resolve(config: Config, token: str | None, reference: str, message: str | None) -> ReviewThread:
    async with GitHubClient(token) as client:
        poster: ReplyPoster = RestReplyPoster(client) if config.reply_before_resolve else NoOpReplyPoster()
        command = ResolutionCommand(client, poster, fallback_repo=config.repo)
        return await command.run(reference, message)


@app.command(name="resolve")
def resolve(
    reference: str,
    *,
    message: Annotated[
        str | None,
        cyclopts.Parameter(name=["--message", "-m"], help="Reply to post before resolving"),
    ] = None,
    repo: Repo = None,
    verbose: Verbose = False,
) -> None:
    """Resolve the review thread containing a comment.

    REFERENCE is ``#discussion_r<id>``, ``<number>#discussion_r<id>`` or a
    pull request URL ending in ``#discussion_r<id>``.
    """
    config, token = _load(verbose=verbose, repo=repo)
    try:
        thread = asyncio.run(_resolve(config, token, reference, message))
    except PRThreadsError as exc:
        _fail(exc)
    print(f"Resolved thread {thread.id}")


# ---------------------------------------------------------------------------
# issue
# ---------------------------------------------------------------------------


@app.command(name="issue")
def issue(reference: str | None = None) -> None:  # noqa: ARG001
    """Show an issue (not yet implemented)."""
    _fail(NotImplementedError("not yet implemented"))


def main() -> None:
    """Console script entry point."""
    try:
        app()
    except BrokenPipeError:
        # Reader went away (e.g. piped into head); silence the flush at exit
        devnull = os.open(os.devnull, os.O_WRONLY)
        os.dup2(devnull, sys.stdout.fileno())
        sys.exit(0)
