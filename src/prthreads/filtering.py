"""Select which review threads are shown."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from prthreads.models import ReviewThread


def filter_threads(
    threads: Iterable[ReviewThread],
    *,
    show_outdated: bool = False,
    paths: Sequence[str] = (),
) -> list[ReviewThread]:
    """Return the threads worth showing, in their original order.

    Resolved threads are always dropped. Outdated threads are dropped unless
    *show_outdated* is set. A non-empty *paths* keeps only threads whose path
    matches one of them exactly.
    """
    wanted = set(paths)
    return [
        thread
        for thread in threads
        if not thread.is_resolved
        and (show_outdated or not thread.is_outdated)
        and (not wanted or thread.path in wanted)
    ]


def thread_for_comment(threads: Iterable[ReviewThread], comment_id: int) -> ReviewThread | None:
    """Return the first thread containing the comment with database id *comment_id*."""
    return next((t for t in threads if t.contains_comment(comment_id)), None)
