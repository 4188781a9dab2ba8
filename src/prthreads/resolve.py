"""Resolve the review thread that owns a comment, optionally replying first.

A run moves through these states::

    IDLE -> LOCATED -> [POSTING_REPLY] -> RESOLVING -> RESOLVED
                                                    \\-> FAILED

Any error moves the command to ``FAILED`` and is re-raised. A failed reply
aborts the run before the resolve mutation is sent.
"""

from __future__ import annotations

import logging
from enum import StrEnum
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Protocol
from urllib.parse import urlsplit

from prthreads.errors import (
    AlreadyResolved,
    CommentNotFound,
    GitHubError,
    InvalidReference,
    MutationFailed,
    PRThreadsError,
)
from prthreads.filtering import thread_for_comment
from prthreads.models import PullRequestReference
from prthreads.references import parse_comment_reference, parse_pr_number, resolve_repository
from prthreads.threads import fetch_review_threads

if TYPE_CHECKING:
    from pathlib import Path

    from prthreads.github_api import GitHubClient
    from prthreads.models import CommentReference, Repository, ReviewThread

logger = logging.getLogger(__name__)

_HTTP_NOT_FOUND = 404

_RESOLVE_THREAD_MUTATION = """
mutation($threadId: ID!) {
  resolveReviewThread(input: {threadId: $threadId}) {
    thread { id isResolved }
  }
}
"""


class ResolutionState(StrEnum):
    """Progress of a :class:`ResolutionCommand` run."""

    IDLE = "idle"
    LOCATED = "located"
    POSTING_REPLY = "posting_reply"
    RESOLVING = "resolving"
    RESOLVED = "resolved"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Reply capability
# ---------------------------------------------------------------------------


class ReplyPoster(Protocol):
    """Posts a reply below a review comment before its thread is resolved."""

    posts_replies: bool

    async def post_reply(self, pr: PullRequestReference, comment_id: int, body: str) -> None: ...


class NoOpReplyPoster:
    """Reply capability that is switched off; messages are dropped."""

    posts_replies = False

    async def post_reply(self, pr: PullRequestReference, comment_id: int, body: str) -> None:
        logger.debug("Reply posting disabled, ignoring message for comment %d", comment_id)


class RestReplyPoster:
    """Post replies through the REST review-comment replies endpoint."""

    posts_replies = True

    def __init__(self, client: GitHubClient) -> None:
        self.client = client

    async def post_reply(self, pr: PullRequestReference, comment_id: int, body: str) -> None:
        repo = pr.repository
        await self.client.rest(
            f"/repos/{repo.owner}/{repo.name}/pulls/{pr.number}/comments/{comment_id}/replies",
            method="POST",
            body=body,
        )
        logger.debug("Replied to comment %d on %s", comment_id, pr)


# ---------------------------------------------------------------------------
# Command
# ---------------------------------------------------------------------------


def _pr_number_from_url(url: object) -> int | None:
    """Extract the PR number from an API ``pull_request_url``, or ``None`` if it has none."""
    if not isinstance(url, str):
        return None
    try:
        return parse_pr_number(PurePosixPath(urlsplit(url).path).name, url)
    except InvalidReference:
        return None


class ResolutionCommand:
    """Locate a comment's thread, post an optional reply and resolve the thread.

    Args:
        client: Shared GitHub client.
        reply_poster: Reply capability; :class:`NoOpReplyPoster` ignores messages.
        fallback_repo: ``owner/repo`` used for references without a repository.
        cwd: Directory probed for ``.git/FETCH_HEAD``.
    """

    def __init__(
        self,
        client: GitHubClient,
        reply_poster: ReplyPoster,
        *,
        fallback_repo: str | None = None,
        cwd: str | Path | None = None,
    ) -> None:
        self.client = client
        self.reply_poster = reply_poster
        self.fallback_repo = fallback_repo
        self.cwd = cwd
        self.state = ResolutionState.IDLE
        self.history: list[ResolutionState] = [ResolutionState.IDLE]

    def _transition(self, state: ResolutionState) -> None:
        logger.debug("Resolution %s -> %s", self.state, state)
        self.state = state
        self.history.append(state)

    async def run(self, reference: str, message: str | None = None) -> ReviewThread:
        """Resolve the thread owning the comment named by *reference*.

        Returns:
            The located thread as it was before resolving.

        Raises:
            CommentNotFound: If the reference does not name a known review comment.
            AlreadyResolved: If the thread is already resolved.
            MutationFailed: If the reply or the resolve mutation fails.
        """
        if self.state is not ResolutionState.IDLE:
            msg = f"Resolution command already ran (state: {self.state})"
            raise RuntimeError(msg)
        try:
            pr, comment_id, thread = await self._locate(reference)
            self._transition(ResolutionState.LOCATED)

            if message and message.strip():
                if self.reply_poster.posts_replies:
                    self._transition(ResolutionState.POSTING_REPLY)
                    await self._post_reply(pr, comment_id, message)
                else:
                    await self.reply_poster.post_reply(pr, comment_id, message)

            self._transition(ResolutionState.RESOLVING)
            await self._resolve(thread)
        except PRThreadsError:
            self._transition(ResolutionState.FAILED)
            raise

        self._transition(ResolutionState.RESOLVED)
        logger.info("Resolved thread %s on %s", thread.id, pr)
        return thread

    # -- LOCATED -------------------------------------------------------------

    async def _locate(self, reference: str) -> tuple[PullRequestReference, int, ReviewThread]:
        comment_ref = parse_comment_reference(reference, self.fallback_repo, self.cwd)
        pr = comment_ref.pull_request or await self._find_pull_request(comment_ref)

        threads = await fetch_review_threads(self.client, pr)
        thread = thread_for_comment(threads, comment_ref.comment_id)
        if thread is None:
            msg = f"Comment {comment_ref.comment_id} not found in any review thread of {pr}"
            raise CommentNotFound(msg)
        logger.debug("Comment %d belongs to thread %s", comment_ref.comment_id, thread.id)
        return pr, comment_ref.comment_id, thread

    async def _find_pull_request(self, comment_ref: CommentReference) -> PullRequestReference:
        """Look up the PR owning a comment given only by ``#discussion_r<id>``."""
        repo: Repository = resolve_repository(self.fallback_repo, self.cwd)
        try:
            data = await self.client.rest(f"/repos/{repo.owner}/{repo.name}/pulls/comments/{comment_ref.comment_id}")
        except GitHubError as exc:
            if exc.status_code == _HTTP_NOT_FOUND:
                msg = f"Review comment {comment_ref.comment_id} not found in {repo}"
                raise CommentNotFound(msg) from exc
            raise

        number = _pr_number_from_url(data.get("pull_request_url")) if isinstance(data, dict) else None
        if number is None:
            msg = f"Could not determine the pull request for comment {comment_ref.comment_id}"
            raise CommentNotFound(msg)
        return PullRequestReference(repository=repo, number=number)

    # -- POSTING_REPLY ---------------------------------------------------------

    async def _post_reply(self, pr: PullRequestReference, comment_id: int, message: str) -> None:
        try:
            await self.reply_poster.post_reply(pr, comment_id, message)
        except GitHubError as exc:
            msg = f"Failed to reply to comment {comment_id}: {exc}"
            raise MutationFailed(msg) from exc

    # -- RESOLVING -------------------------------------------------------------

    async def _resolve(self, thread: ReviewThread) -> None:
        if thread.is_resolved:
            raise AlreadyResolved(thread.id)
        try:
            data = await self.client.graphql(_RESOLVE_THREAD_MUTATION, {"threadId": thread.id})
        except GitHubError as exc:
            msg = f"Failed to resolve thread {thread.id}: {exc}"
            raise MutationFailed(msg) from exc

        resolved = ((data.get("resolveReviewThread") or {}).get("thread") or {}).get("isResolved")
        if not resolved:
            msg = f"Failed to resolve thread {thread.id}"
            raise MutationFailed(msg)
