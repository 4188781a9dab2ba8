"""Resolve user-supplied pull request and comment references.

Precedence for pull requests:

1. A full ``https://<host>/<owner>/<repo>/pull/<number>`` URL
2. A bare number plus the repository named in the local ``FETCH_HEAD``
3. A bare number plus the configured fallback repository
4. :exc:`MissingRepository`

Comment references take one of three forms: ``#discussion_r<id>``,
``<number>#discussion_r<id>``, or a PR URL ending in ``#discussion_r<id>``.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from urllib.parse import urlsplit

from prthreads.errors import CommentNotFound, InvalidReference, MissingRepository
from prthreads.models import CommentReference, PullRequestReference, Repository

logger = logging.getLogger(__name__)

DISCUSSION_FRAGMENT = "#discussion_r"

_GITHUB_RE = re.compile(r"github\.com[/:](?P<owner>[^/\s]+)/(?P<repo>[^/\s]+)")
_NUMBER_RE = re.compile(r"[1-9][0-9]*")
_PR_SEGMENTS = frozenset({"pull", "pulls"})
# GraphQL Int is a signed 32-bit integer
_GRAPHQL_INT_MAX = 2**31 - 1


def _strip_git_suffix(name: str) -> str:
    return name.removesuffix(".git")


def parse_pr_number(text: str, reference: str) -> int:
    """Parse a positive pull request number that fits a GraphQL Int.

    Raises:
        InvalidReference: If *text* is not such a number.
    """
    if not _NUMBER_RE.fullmatch(text):
        raise InvalidReference(reference, f"{text!r} is not a pull request number")
    number = int(text)
    if number > _GRAPHQL_INT_MAX:
        raise InvalidReference(reference, f"{number} is out of range")
    return number


# ---------------------------------------------------------------------------
# Repository parsing
# ---------------------------------------------------------------------------


def parse_repo(repo: str) -> Repository | None:
    """Parse ``owner/repo``, a GitHub URL, or an SSH remote into a :class:`Repository`.

    Returns ``None`` if the string names no repository.
    """
    repo = repo.strip()
    match = _GITHUB_RE.search(repo)
    if match:
        owner, name = match.group("owner"), match.group("repo")
    else:
        owner, _, name = repo.partition("/")
    name = _strip_git_suffix(name.strip("/"))
    if not owner or not name or "/" in name:
        return None
    return Repository(owner=owner, name=name)


def _find_git_dir(start: Path) -> Path | None:
    """Walk up from *start* to the nearest ``.git``, following worktree ``gitdir:`` files."""
    current = start.resolve()
    while True:
        dot_git = current / ".git"
        if dot_git.is_dir():
            return dot_git
        if dot_git.is_file():
            try:
                content = dot_git.read_text(encoding="utf-8", errors="replace").strip()
            except OSError:
                return None
            if content.startswith("gitdir:"):
                gitdir = Path(content.removeprefix("gitdir:").strip())
                return gitdir if gitdir.is_absolute() else (current / gitdir).resolve()
            return None
        if current.parent == current:
            return None
        current = current.parent


def _fetch_head_candidates(git_dir: Path) -> list[Path]:
    candidates = [git_dir / "FETCH_HEAD"]
    commondir = git_dir / "commondir"
    if commondir.is_file():
        try:
            common = Path(commondir.read_text(encoding="utf-8", errors="replace").strip())
        except OSError:
            return candidates
        common = common if common.is_absolute() else (git_dir / common).resolve()
        candidates.append(common / "FETCH_HEAD")
    return candidates


def repo_from_fetch_head(cwd: str | Path | None = None) -> Repository | None:
    """Return the first GitHub repository named in the local ``FETCH_HEAD``.

    ``FETCH_HEAD`` is written by ``git fetch`` and lists the remote each ref
    came from. Returns ``None`` outside a clone or when nothing was fetched
    from GitHub.
    """
    git_dir = _find_git_dir(Path(cwd) if cwd else Path.cwd())
    if git_dir is None:
        return None

    for path in _fetch_head_candidates(git_dir):
        try:
            # branch names are arbitrary bytes; only the remote URL matters
            lines = path.read_text(encoding="utf-8", errors="replace").splitlines()
        except OSError:
            continue
        for line in lines:
            match = _GITHUB_RE.search(line)
            if match:
                return Repository(owner=match.group("owner"), name=_strip_git_suffix(match.group("repo")))
    return None


def resolve_repository(fallback_repo: str | None = None, cwd: str | Path | None = None) -> Repository:
    """Find the repository for a bare PR number.

    Raises:
        MissingRepository: If neither ``FETCH_HEAD`` nor *fallback_repo* names one.
    """
    repo = repo_from_fetch_head(cwd)
    if repo is not None:
        logger.debug("Repository %s from FETCH_HEAD", repo)
        return repo

    if fallback_repo:
        repo = parse_repo(fallback_repo)
        if repo is not None:
            logger.debug("Repository %s from configured default", repo)
            return repo
        logger.warning("Ignoring invalid repository %r (expected 'owner/repo')", fallback_repo)

    raise MissingRepository


# ---------------------------------------------------------------------------
# Pull request references
# ---------------------------------------------------------------------------


def _parse_pr_url(text: str) -> PullRequestReference | None:
    """Parse a pull request URL, or return ``None`` if *text* is not a URL."""
    parts = urlsplit(text)
    if parts.scheme not in {"http", "https"} or not parts.netloc:
        return None

    segments = [s for s in parts.path.split("/") if s]
    if len(segments) < 4:  # noqa: PLR2004
        raise InvalidReference(text, "expected <owner>/<repo>/pull/<number>")
    owner, repo_part, kind, number = segments[:4]
    if kind not in _PR_SEGMENTS:
        raise InvalidReference(text, f"expected a pull request URL, found {kind!r}")
    return PullRequestReference(
        repository=Repository(owner=owner, name=_strip_git_suffix(repo_part)),
        number=parse_pr_number(number, text),
    )


def split_discussion(text: str) -> tuple[str, int | None]:
    """Split a trailing ``#discussion_r<id>`` off *text*.

    Raises:
        InvalidReference: If the fragment is present but the id is not numeric.
    """
    base, sep, comment_id = text.partition(DISCUSSION_FRAGMENT)
    if not sep:
        return text, None
    if not _NUMBER_RE.fullmatch(comment_id):
        raise InvalidReference(text, "discussion id must be a positive number")
    return base, int(comment_id)


def resolve_pr_reference(
    text: str,
    fallback_repo: str | None = None,
    cwd: str | Path | None = None,
) -> tuple[PullRequestReference, int | None]:
    """Resolve a PR URL or bare number into a fully qualified reference.

    Args:
        text: ``https://github.com/o/r/pull/42``, ``42``, optionally followed
            by ``#discussion_r<id>``.
        fallback_repo: Configured ``owner/repo`` used when ``FETCH_HEAD`` has none.
        cwd: Directory to probe for ``.git/FETCH_HEAD`` (default: current directory).

    Returns:
        ``(reference, comment_id)`` where *comment_id* is ``None`` unless a
        discussion fragment was given.

    Raises:
        InvalidReference: If *text* is neither a PR URL nor a positive number.
        MissingRepository: If a bare number was given and no repository resolves.
    """
    text = text.strip()
    base, comment_id = split_discussion(text)

    reference = _parse_pr_url(base)
    if reference is not None:
        return reference, comment_id

    if not _NUMBER_RE.fullmatch(base):
        raise InvalidReference(text)
    number = parse_pr_number(base, text)

    repository = resolve_repository(fallback_repo, cwd)
    return PullRequestReference(repository=repository, number=number), comment_id


def parse_comment_reference(
    text: str,
    fallback_repo: str | None = None,
    cwd: str | Path | None = None,
) -> CommentReference:
    """Parse a comment reference into a :class:`CommentReference`.

    A bare ``#discussion_r<id>`` carries no pull request; the caller has to
    look the owning PR up.

    Raises:
        CommentNotFound: If *text* does not name a review comment.
        MissingRepository: If ``<number>#discussion_r<id>`` is given and no repository resolves.
    """
    text = text.strip()
    try:
        if text.startswith(DISCUSSION_FRAGMENT):
            _, comment_id = split_discussion(text)
            pull_request = None
        else:
            pull_request, comment_id = resolve_pr_reference(text, fallback_repo, cwd)
    except InvalidReference as exc:
        raise CommentNotFound(str(exc)) from exc

    if comment_id is None:
        msg = f"{text!r} does not reference a review comment (expected a {DISCUSSION_FRAGMENT}<id> fragment)"
        raise CommentNotFound(msg)
    return CommentReference(comment_id=comment_id, pull_request=pull_request)
