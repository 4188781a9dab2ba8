"""Fetch reviews and review threads for a pull request.

Both connections are cursor-paginated. Pages within one connection are
fetched strictly in sequence because each cursor comes from the previous
response; the two connections are independent and run concurrently. There is
no retry: the first failure aborts the whole fetch.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from pydantic import BaseModel, Field, ValidationError

from prthreads.errors import MalformedResponse
from prthreads.models import PageInfo, Review, ReviewComment, ReviewSnapshot, ReviewThread

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable

    from prthreads.github_api import GitHubClient
    from prthreads.models import PullRequestReference

logger = logging.getLogger(__name__)

T = TypeVar("T")
ModelT = TypeVar("ModelT", bound=BaseModel)

_REVIEWS_QUERY = """
query($owner: String!, $name: String!, $number: Int!, $cursor: String) {
  repository(owner: $owner, name: $name) {
    pullRequest(number: $number) {
      reviews(first: 100, after: $cursor) {
        nodes {
          body
          state
          submittedAt
          author { login }
        }
        pageInfo { hasNextPage endCursor }
      }
    }
  }
}
"""

_COMMENT_FIELDS = """
          databaseId
          body
          diffHunk
          createdAt
          originalPosition
          position
          url
          author { login }
"""

_THREADS_QUERY = f"""
query($owner: String!, $name: String!, $number: Int!, $cursor: String) {{
  repository(owner: $owner, name: $name) {{
    pullRequest(number: $number) {{
      reviewThreads(first: 100, after: $cursor) {{
        nodes {{
          id
          isResolved
          isOutdated
          path
          comments(first: 100) {{
            nodes {{{_COMMENT_FIELDS}}}
            pageInfo {{ hasNextPage endCursor }}
          }}
        }}
        pageInfo {{ hasNextPage endCursor }}
      }}
    }}
  }}
}}
"""

_THREAD_COMMENTS_QUERY = f"""
query($id: ID!, $cursor: String) {{
  node(id: $id) {{
    ... on PullRequestReviewThread {{
      comments(first: 100, after: $cursor) {{
        nodes {{{_COMMENT_FIELDS}}}
        pageInfo {{ hasNextPage endCursor }}
      }}
    }}
  }}
}}
"""


# ---------------------------------------------------------------------------
# Wire records: only the subset of the GraphQL schema we consume
# ---------------------------------------------------------------------------


class Connection(BaseModel, Generic[T]):
    """A GraphQL connection: one page of nodes plus its cursor state."""

    nodes: list[T]
    page_info: PageInfo = Field(alias="pageInfo")


class _ThreadNode(BaseModel):
    id: str
    is_resolved: bool = Field(alias="isResolved")
    is_outdated: bool = Field(default=False, alias="isOutdated")
    path: str = ""
    comments: Connection[ReviewComment]


class _ReviewsPullRequest(BaseModel):
    reviews: Connection[Review]


class _ThreadsPullRequest(BaseModel):
    review_threads: Connection[_ThreadNode] = Field(alias="reviewThreads")


class _ReviewsRepository(BaseModel):
    pull_request: _ReviewsPullRequest | None = Field(alias="pullRequest")


class _ThreadsRepository(BaseModel):
    pull_request: _ThreadsPullRequest | None = Field(alias="pullRequest")


class _ReviewsData(BaseModel):
    repository: _ReviewsRepository | None


class _ThreadsData(BaseModel):
    repository: _ThreadsRepository | None


class _CommentsNode(BaseModel):
    comments: Connection[ReviewComment]


class _CommentsData(BaseModel):
    node: _CommentsNode | None


def _validate(model: type[ModelT], data: dict[str, Any], context: str) -> ModelT:
    """Validate *data* against *model*, mapping shape mismatches to :exc:`MalformedResponse`."""
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        msg = f"Unexpected response shape while fetching {context}: {exc}"
        raise MalformedResponse(msg) from exc


def _pr_variables(pr: PullRequestReference, cursor: str | None) -> dict[str, Any]:
    return {
        "owner": pr.repository.owner,
        "name": pr.repository.name,
        "number": pr.number,
        "cursor": cursor,
    }


def _missing_pr(pr: PullRequestReference) -> MalformedResponse:
    return MalformedResponse(f"Pull request {pr} not found in response")


# ---------------------------------------------------------------------------
# Pagination
# ---------------------------------------------------------------------------

async def paginate(
    fetch_page: Callable[[str | None], Awaitable[Connection[T]]],
    cursor: str | None = None,
) -> AsyncIterator[list[T]]:
    """Yield each page's nodes in arrival order until the connection is exhausted.

    The generator is lazy and cannot be restarted; to start over, call
    :func:`paginate` again with a ``None`` cursor.

    Raises:
        MalformedResponse: If a page claims more data without a usable cursor.
    """
    page = 0
    while True:
        page += 1
        logger.debug("Fetching page %d (cursor=%s)", page, cursor)
        connection = await fetch_page(cursor)
        yield connection.nodes

        info = connection.page_info
        if not info.has_next_page:
            return
        if not info.end_cursor:
            msg = "Connection reports hasNextPage without an endCursor"
            raise MalformedResponse(msg)
        if info.end_cursor == cursor:
            msg = f"Non-progressing pagination (endCursor {cursor!r} repeated)"
            raise MalformedResponse(msg)
        cursor = info.end_cursor


async def collect(pages: AsyncIterator[list[T]]) -> list[T]:
    """Concatenate every page of an async page iterator."""
    items: list[T] = []
    async for nodes in pages:
        items.extend(nodes)
    return items


# ---------------------------------------------------------------------------
# Reviews
# ---------------------------------------------------------------------------


async def fetch_reviews(client: GitHubClient, pr: PullRequestReference) -> list[Review]:
    """Fetch every review submitted on *pr*, in API order."""

    async def fetch_page(cursor: str | None) -> Connection[Review]:
        data = await client.graphql(_REVIEWS_QUERY, _pr_variables(pr, cursor))
        parsed = _validate(_ReviewsData, data, f"reviews for {pr}")
        if parsed.repository is None or parsed.repository.pull_request is None:
            raise _missing_pr(pr)
        return parsed.repository.pull_request.reviews

    reviews = await collect(paginate(fetch_page))
    logger.debug("Fetched %d reviews for %s", len(reviews), pr)
    return reviews


# ---------------------------------------------------------------------------
# Review threads
# ---------------------------------------------------------------------------


async def _fetch_remaining_comments(client: GitHubClient, node: _ThreadNode) -> list[ReviewComment]:
    """Fetch comment pages beyond the first one embedded in the thread query."""

    async def fetch_page(cursor: str | None) -> Connection[ReviewComment]:
        data = await client.graphql(_THREAD_COMMENTS_QUERY, {"id": node.id, "cursor": cursor})
        parsed = _validate(_CommentsData, data, f"comments for thread {node.id}")
        if parsed.node is None:
            msg = f"Review thread {node.id} not found in response (cursor: {cursor})"
            raise MalformedResponse(msg)
        return parsed.node.comments

    return await collect(paginate(fetch_page, cursor=node.comments.page_info.end_cursor))


async def _to_thread(client: GitHubClient, node: _ThreadNode) -> ReviewThread | None:
    comments = list(node.comments.nodes)
    if node.comments.page_info.has_next_page:
        comments.extend(await _fetch_remaining_comments(client, node))
    if not comments:
        logger.debug("Skipping review thread %s with no comments", node.id)
        return None
    return ReviewThread(
        id=node.id,
        is_resolved=node.is_resolved,
        is_outdated=node.is_outdated,
        path=node.path,
        comments=comments,
    )


async def fetch_review_threads(client: GitHubClient, pr: PullRequestReference) -> list[ReviewThread]:
    """Fetch every review thread on *pr* with all of its comments.

    Resolved and outdated threads are included; filtering happens later.
    """

    async def fetch_page(cursor: str | None) -> Connection[_ThreadNode]:
        data = await client.graphql(_THREADS_QUERY, _pr_variables(pr, cursor))
        parsed = _validate(_ThreadsData, data, f"review threads for {pr}")
        if parsed.repository is None or parsed.repository.pull_request is None:
            raise _missing_pr(pr)
        return parsed.repository.pull_request.review_threads

    nodes = await collect(paginate(fetch_page))
    threads: list[ReviewThread] = []
    for node in nodes:
        thread = await _to_thread(client, node)
        if thread is not None:
            threads.append(thread)
    logger.debug("Fetched %d review threads for %s", len(threads), pr)
    return threads


async def fetch_snapshot(client: GitHubClient, pr: PullRequestReference) -> ReviewSnapshot:
    """Fetch reviews and review threads concurrently and join them into one snapshot.

    The first failure cancels the other connection and is re-raised as is.
    """
    try:
        async with asyncio.TaskGroup() as group:
            reviews = group.create_task(fetch_reviews(client, pr))
            threads = group.create_task(fetch_review_threads(client, pr))
    except ExceptionGroup as exc:
        raise exc.exceptions[0] from None
    return ReviewSnapshot(reviews=reviews.result(), threads=threads.result())
