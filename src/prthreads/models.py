"""Pydantic models for prthreads.

Field aliases mirror the GitHub GraphQL names so API nodes validate straight
into these records. Any shape mismatch surfaces as a pydantic
``ValidationError``, which the fetcher turns into ``MalformedResponse``.
"""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - Pydantic needs this at runtime

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Repository(BaseModel):
    """A GitHub repository, derived once per invocation."""

    model_config = ConfigDict(frozen=True)

    owner: str = Field(min_length=1, description="Repository owner (user or organisation)")
    name: str = Field(min_length=1, description="Repository name without a .git suffix")

    def __str__(self) -> str:
        return f"{self.owner}/{self.name}"


class PullRequestReference(BaseModel):
    """Identifies the target pull request."""

    model_config = ConfigDict(frozen=True)

    repository: Repository
    number: int = Field(gt=0, description="Pull request number")

    def __str__(self) -> str:
        return f"{self.repository}#{self.number}"


class CommentReference(BaseModel):
    """A single review comment, optionally pinned to its pull request."""

    model_config = ConfigDict(frozen=True)

    comment_id: int = Field(gt=0, description="Numeric database id (the r<id> in #discussion_r<id>)")
    pull_request: PullRequestReference | None = Field(
        default=None,
        description="Owning PR when the reference carried one; None for bare #discussion_r<id>",
    )


class Author(BaseModel):
    """Minimal user representation for authorship."""

    model_config = ConfigDict(frozen=True)

    login: str


class PageInfo(BaseModel):
    """Cursor pagination state returned with every GraphQL connection."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    has_next_page: bool = Field(alias="hasNextPage")
    end_cursor: str | None = Field(default=None, alias="endCursor")


class Review(BaseModel):
    """One reviewer submission on a pull request."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    author: Author | None = None
    submitted_at: datetime | None = Field(default=None, alias="submittedAt")
    body: str = ""
    state: str = Field(description="APPROVED, CHANGES_REQUESTED, COMMENTED, DISMISSED or PENDING")

    @property
    def login(self) -> str | None:
        return self.author.login if self.author else None


class ReviewComment(BaseModel):
    """A single comment within a review thread."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: int = Field(alias="databaseId", description="Numeric database id")
    author: Author | None = None
    body: str = ""
    diff_hunk: str | None = Field(default=None, alias="diffHunk")
    created_at: datetime | None = Field(default=None, alias="createdAt")
    permalink: str = Field(default="", alias="url")
    position: int | None = None
    original_position: int | None = Field(default=None, alias="originalPosition")

    @property
    def login(self) -> str | None:
        return self.author.login if self.author else None


class ReviewThread(BaseModel):
    """A threaded discussion anchored to a file location.

    Comments are kept in creation order and only the first one carries a diff
    hunk; GitHub repeats the hunk on every reply, so later copies are dropped.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(description="GraphQL node ID (PRRT_...) used for resolving")
    is_resolved: bool = Field(default=False, alias="isResolved")
    is_outdated: bool = Field(default=False, alias="isOutdated")
    path: str = ""
    comments: list[ReviewComment] = Field(min_length=1)

    @field_validator("comments")
    @classmethod
    def _order_and_dedupe_hunks(cls, comments: list[ReviewComment]) -> list[ReviewComment]:
        if all(c.created_at is not None for c in comments):
            comments = sorted(comments, key=lambda c: c.created_at)  # type: ignore[arg-type, return-value]
        first, *rest = comments
        return [first, *(c.model_copy(update={"diff_hunk": None}) if c.diff_hunk else c for c in rest)]

    def contains_comment(self, comment_id: int) -> bool:
        return any(c.id == comment_id for c in self.comments)


class ReviewSnapshot(BaseModel):
    """Everything fetched for one pull request in one invocation."""

    model_config = ConfigDict(frozen=True)

    reviews: list[Review] = Field(default_factory=list)
    threads: list[ReviewThread] = Field(default_factory=list)
