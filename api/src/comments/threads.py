"""Two-level thread assembly.

Replies are grouped under their *effective root*: the stored root_id when it
points into the current page, otherwise the parent_id when that does. Rows
matching neither are orphans and are left out of the tree. Nothing is
written back; every read presents the corrected view.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field

import structlog

from .models import Comment, CommentStatus
from .store import CommentStore


logger = structlog.get_logger(__name__)


def effective_root(reply: Comment, top_level_ids: set[int]) -> int | None:
    """Top-level id a reply belongs under, or None for an orphan."""
    if reply.root_id is not None and reply.root_id in top_level_ids:
        return reply.root_id
    if reply.parent_id is not None and reply.parent_id in top_level_ids:
        return reply.parent_id
    return None


@dataclass
class ThreadGrouping:
    """Replies grouped by effective root, oldest first within each group."""

    replies_by_root: dict[int, list[Comment]] = field(default_factory=dict)
    # reply id -> root_id as stored, for replies regrouped under their parent
    repaired: dict[int, int | None] = field(default_factory=dict)
    orphan_ids: list[int] = field(default_factory=list)

    @property
    def orphan_count(self) -> int:
        return len(self.orphan_ids)

    @property
    def repaired_count(self) -> int:
        return len(self.repaired)

    def replies_for(self, top_level_id: int) -> list[Comment]:
        return self.replies_by_root.get(top_level_id, [])

    def all_replies(self) -> list[Comment]:
        return [reply for group in self.replies_by_root.values() for reply in group]


def group_replies(
    top_level_ids: Iterable[int], candidates: Iterable[Comment]
) -> ThreadGrouping:
    """Group candidate replies under the given top-level ids.

    Pure function. Guarantees:
    - every top-level id has an entry (possibly empty)
    - a reply appears at most once, in exactly one group
    - only replies with status ``normal`` are included
    - each group is ordered by (created_at, comment_id) ascending
    """
    roots = set(top_level_ids)
    grouping = ThreadGrouping(replies_by_root={root: [] for root in roots})
    seen: set[int] = set()

    for reply in candidates:
        if reply.comment_id in seen or reply.parent_id is None:
            continue
        if reply.status != CommentStatus.NORMAL:
            continue
        seen.add(reply.comment_id)

        root = effective_root(reply, roots)
        if root is None:
            grouping.orphan_ids.append(reply.comment_id)
            continue
        if root != reply.root_id:
            grouping.repaired[reply.comment_id] = reply.root_id

        grouping.replies_by_root[root].append(reply)

    for group in grouping.replies_by_root.values():
        group.sort(key=lambda c: c.sort_key)

    return grouping


class ThreadAssembler:
    """Fetches candidate replies for a page and groups them."""

    def __init__(self, store: CommentStore):
        self.store = store

    async def assemble(self, top_level_ids: Iterable[int]) -> ThreadGrouping:
        """Replies for the given top-level ids. No query for an empty page."""
        ids = list(dict.fromkeys(top_level_ids))
        if not ids:
            return ThreadGrouping()

        # OR on root_id/parent_id: stored roots may be missing or stale
        candidates = await self.store.find_reply_candidates(ids)
        grouping = group_replies(ids, candidates)

        for reply_id, stale_root in grouping.repaired.items():
            logger.warning(
                "reply_root_repaired",
                comment_id=reply_id,
                stored_root_id=stale_root,
            )
        if grouping.orphan_ids:
            logger.info(
                "orphan_replies_dropped",
                count=grouping.orphan_count,
                comment_ids=grouping.orphan_ids,
            )

        return grouping
