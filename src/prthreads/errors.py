"""Exception hierarchy for prthreads.

Resolution, transport and mutation failures are fatal and are turned into a
non-zero exit code by the CLI. :exc:`RenderError` is the only recoverable one:
the renderer logs it and moves on to the next review or thread.
"""

from __future__ import annotations


class PRThreadsError(Exception):
    """Base class for every error raised by prthreads."""


# ---------------------------------------------------------------------------
# Reference resolution
# ---------------------------------------------------------------------------


class ReferenceResolutionError(PRThreadsError):
    """Raised when a user-supplied reference cannot be turned into a PR."""


class InvalidReference(ReferenceResolutionError):
    """Raised when a reference is neither a PR URL nor a bare number."""

    def __init__(self, reference: str, detail: str = "") -> None:
        msg = f"Invalid pull request reference {reference!r}"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)
        self.reference = reference


class MissingRepository(ReferenceResolutionError):
    """Raised when a bare PR number is given and no repository can be found."""

    def __init__(self) -> None:
        super().__init__(
            "Could not determine the repository. Pass a full pull request URL, "
            "run inside a clone with a GitHub remote fetched, or set --repo / PRTHREADS_REPO.",
        )


# ---------------------------------------------------------------------------
# Transport and protocol
# ---------------------------------------------------------------------------


class GitHubError(PRThreadsError):
    """Raised when a GitHub API call fails."""

    def __init__(self, message: str, status_code: int = 0) -> None:
        super().__init__(message)
        self.status_code = status_code


class ConnectFailed(GitHubError):
    """Raised when the HTTP request never got a response."""


class HttpStatusError(GitHubError):
    """Raised for non-2xx HTTP responses."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message, status_code=status_code)


class GraphQLErrors(GitHubError):
    """Raised when a GraphQL response carries a non-empty ``errors`` array."""

    def __init__(self, messages: list[str]) -> None:
        self.messages = messages
        super().__init__(f"GraphQL error: {'; '.join(messages)}")


class MalformedResponse(GitHubError):
    """Raised when a response does not match the expected shape."""


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


class RenderError(PRThreadsError):
    """Raised when a single review thread or review cannot be rendered.

    *subject* names what failed, e.g. ``"thread PRRT_1"``.
    """

    def __init__(self, subject: str, cause: BaseException) -> None:
        super().__init__(f"Failed to render {subject}: {cause}")
        self.subject = subject


# ---------------------------------------------------------------------------
# Resolution command
# ---------------------------------------------------------------------------


class ResolutionError(PRThreadsError):
    """Raised when the resolve command fails."""


class CommentNotFound(ResolutionError):
    """Raised when a comment reference cannot be located."""


class MutationFailed(ResolutionError):
    """Raised when a reply or resolve mutation fails."""


class AlreadyResolved(MutationFailed):
    """Raised when the target thread is already resolved."""

    def __init__(self, thread_id: str) -> None:
        super().__init__(f"Thread {thread_id} is already resolved")
        self.thread_id = thread_id
