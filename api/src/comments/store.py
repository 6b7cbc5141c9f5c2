"""Comment persistence.

``CommentStore`` is the repository interface the service depends on. Queries
take typed parameters (article, status, ordering, page) rather than a query
builder. ``CassandraCommentStore`` implements it on prepared CQL statements.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol

import structlog

from .models import Comment, CommentStatus


if TYPE_CHECKING:
    from cassandra.cluster import Session


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class TopLevelQuery:
    """Parameters of a top-level comment page."""

    article_id: int
    status: CommentStatus = CommentStatus.NORMAL
    page: int = 1
    page_size: int = 20
    newest_first: bool = True

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


class CommentStore(Protocol):
    """Repository over comments, likes and like counters."""

    async def next_comment_id(self) -> int: ...

    async def insert_comment(self, comment: Comment) -> None: ...

    async def get_comment(self, comment_id: int) -> Comment | None: ...

    async def list_top_level(self, query: TopLevelQuery) -> list[Comment]: ...

    async def find_reply_candidates(
        self,
        top_level_ids: Iterable[int],
        status: CommentStatus = CommentStatus.NORMAL,
    ) -> list[Comment]:
        """Replies whose root_id OR parent_id is one of ``top_level_ids``."""
        ...

    async def mark_deleted(self, comment: Comment) -> None: ...

    async def count_comments(
        self, article_id: int, status: CommentStatus = CommentStatus.NORMAL
    ) -> int: ...

    async def add_like(self, comment_id: int, user_id: int) -> bool:
        """Insert the like and bump the counter. False if it already existed."""
        ...

    async def remove_like(self, comment_id: int, user_id: int) -> bool:
        """Delete the like and drop the counter. False if there was none."""
        ...

    async def find_liked_ids(
        self, user_id: int, comment_ids: Iterable[int]
    ) -> set[int]: ...


class CassandraCommentStore:
    """CommentStore backed by Cassandra (cassandra-asyncio-driver)."""

    COMMENT_SEQUENCE = "comment"
    MAX_ID_ATTEMPTS = 20

    def __init__(self, session: "Session", keyspace: str):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient queries."""
        ks = self.keyspace

        # Id allocation
        self._get_sequence = self.session.prepare(f"""
            SELECT next_id FROM {ks}.id_sequences WHERE name = ?
        """)
        self._init_sequence = self.session.prepare(f"""
            INSERT INTO {ks}.id_sequences (name, next_id) VALUES (?, ?)
            IF NOT EXISTS
        """)
        self._advance_sequence = self.session.prepare(f"""
            UPDATE {ks}.id_sequences SET next_id = ?
            WHERE name = ?
            IF next_id = ?
        """)

        # Comment writes
        self._insert_comment = self.session.prepare(f"""
            INSERT INTO {ks}.comments
            (comment_id, article_id, author_id, parent_id, root_id,
             content, status, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)
        self._insert_article_index = self.session.prepare(f"""
            INSERT INTO {ks}.comments_by_article
            (article_id, created_at, comment_id, parent_id, root_id, status)
            VALUES (?, ?, ?, ?, ?, ?)
        """)
        self._insert_by_parent = self.session.prepare(f"""
            INSERT INTO {ks}.comment_ids_by_parent (parent_id, comment_id)
            VALUES (?, ?)
        """)
        self._insert_by_root = self.session.prepare(f"""
            INSERT INTO {ks}.comment_ids_by_root (root_id, comment_id)
            VALUES (?, ?)
        """)
        self._update_status = self.session.prepare(f"""
            UPDATE {ks}.comments SET status = ?, updated_at = ?
            WHERE comment_id = ?
        """)
        self._update_article_index_status = self.session.prepare(f"""
            UPDATE {ks}.comments_by_article SET status = ?
            WHERE article_id = ? AND created_at = ? AND comment_id = ?
        """)

        # Comment reads
        self._get_comment = self.session.prepare(f"""
            SELECT * FROM {ks}.comments WHERE comment_id = ?
        """)
        self._get_comments = self.session.prepare(f"""
            SELECT * FROM {ks}.comments WHERE comment_id IN ?
        """)
        self._list_article_index = self.session.prepare(f"""
            SELECT comment_id, parent_id, status FROM {ks}.comments_by_article
            WHERE article_id = ?
        """)
        self._reply_ids_by_parent = self.session.prepare(f"""
            SELECT comment_id FROM {ks}.comment_ids_by_parent
            WHERE parent_id IN ?
        """)
        self._reply_ids_by_root = self.session.prepare(f"""
            SELECT comment_id FROM {ks}.comment_ids_by_root
            WHERE root_id IN ?
        """)
        self._count_by_article = self.session.prepare(f"""
            SELECT COUNT(*) FROM {ks}.comments_by_article
            WHERE article_id = ? AND status = ?
            ALLOW FILTERING
        """)

        # Likes (lightweight transactions enforce one like per user/comment)
        self._insert_like = self.session.prepare(f"""
            INSERT INTO {ks}.comment_likes (user_id, comment_id, created_at)
            VALUES (?, ?, ?)
            IF NOT EXISTS
        """)
        self._delete_like = self.session.prepare(f"""
            DELETE FROM {ks}.comment_likes
            WHERE user_id = ? AND comment_id = ?
            IF EXISTS
        """)
        self._get_liked_ids = self.session.prepare(f"""
            SELECT comment_id FROM {ks}.comment_likes
            WHERE user_id = ? AND comment_id IN ?
        """)

        # Like counts (counter table)
        self._incr_like_count = self.session.prepare(f"""
            UPDATE {ks}.comment_like_counts
            SET like_count = like_count + ?
            WHERE comment_id = ?
        """)
        self._decr_like_count = self.session.prepare(f"""
            UPDATE {ks}.comment_like_counts
            SET like_count = like_count - ?
            WHERE comment_id = ?
        """)
        self._get_like_counts = self.session.prepare(f"""
            SELECT comment_id, like_count FROM {ks}.comment_like_counts
            WHERE comment_id IN ?
        """)

    # ==========================================================================
    # Id allocation
    # ==========================================================================

    async def next_comment_id(self) -> int:
        """Allocate the next comment id with compare-and-set on id_sequences."""
        for _ in range(self.MAX_ID_ATTEMPTS):
            result = await self.session.aexecute(
                self._get_sequence, [self.COMMENT_SEQUENCE]
            )
            row = result.one()

            if row is None:
                applied = await self.session.aexecute(
                    self._init_sequence, [self.COMMENT_SEQUENCE, 2]
                )
                if applied.was_applied:
                    return 1
                continue

            current = row.next_id
            applied = await self.session.aexecute(
                self._advance_sequence,
                [current + 1, self.COMMENT_SEQUENCE, current],
            )
            if applied.was_applied:
                return current

        msg = "Could not allocate a comment id (sequence contention)"
        raise RuntimeError(msg)

    # ==========================================================================
    # Comments
    # ==========================================================================

    async def insert_comment(self, comment: Comment) -> None:
        """Write the row, its article index entry and its reply lookups."""
        await self.session.aexecute(
            self._insert_comment,
            [
                comment.comment_id,
                comment.article_id,
                comment.author_id,
                comment.parent_id,
                comment.root_id,
                comment.content,
                comment.status.value,
                comment.created_at,
                comment.updated_at,
            ],
        )
        await self.session.aexecute(
            self._insert_article_index,
            [
                comment.article_id,
                comment.created_at,
                comment.comment_id,
                comment.parent_id,
                comment.root_id,
                comment.status.value,
            ],
        )
        if comment.parent_id is not None:
            await self.session.aexecute(
                self._insert_by_parent, [comment.parent_id, comment.comment_id]
            )
        if comment.root_id is not None:
            await self.session.aexecute(
                self._insert_by_root, [comment.root_id, comment.comment_id]
            )

    async def get_comment(self, comment_id: int) -> Comment | None:
        result = await self.session.aexecute(self._get_comment, [comment_id])
        row = result.one()
        if row is None:
            return None
        counts = await self._like_counts([comment_id])
        return Comment.from_row(row, counts.get(comment_id, 0))

    async def get_comments(self, comment_ids: Iterable[int]) -> list[Comment]:
        """Fetch many comments by id. Order is unspecified."""
        ids = list(dict.fromkeys(comment_ids))
        if not ids:
            return []
        rows = await self.session.aexecute(self._get_comments, [ids])
        counts = await self._like_counts(ids)
        return [Comment.from_row(row, counts.get(row.comment_id, 0)) for row in rows]

    async def list_top_level(self, query: TopLevelQuery) -> list[Comment]:
        """Page of top-level comments of an article.

        The article index is clustered newest first by (created_at,
        comment_id), so the page is cut from the index and only the page's
        rows are fetched in full.
        """
        rows = await self.session.aexecute(
            self._list_article_index, [query.article_id]
        )
        ordered_ids = [
            row.comment_id
            for row in rows
            if row.parent_id is None and row.status == query.status.value
        ]
        if not query.newest_first:
            ordered_ids.reverse()

        page_ids = ordered_ids[query.offset : query.offset + query.page_size]
        if not page_ids:
            return []

        by_id = {c.comment_id: c for c in await self.get_comments(page_ids)}
        return [by_id[cid] for cid in page_ids if cid in by_id]

    async def find_reply_candidates(
        self,
        top_level_ids: Iterable[int],
        status: CommentStatus = CommentStatus.NORMAL,
    ) -> list[Comment]:
        ids = list(dict.fromkeys(top_level_ids))
        if not ids:
            return []

        by_parent = await self.session.aexecute(self._reply_ids_by_parent, [ids])
        by_root = await self.session.aexecute(self._reply_ids_by_root, [ids])
        candidate_ids = {row.comment_id for row in by_parent} | {
            row.comment_id for row in by_root
        }

        return [
            comment
            for comment in await self.get_comments(candidate_ids)
            if comment.parent_id is not None and comment.status == status
        ]

    async def mark_deleted(self, comment: Comment) -> None:
        """Soft delete: status transition on the row and the article index."""
        now = datetime.now(UTC)
        await self.session.aexecute(
            self._update_status,
            [CommentStatus.DELETED.value, now, comment.comment_id],
        )
        await self.session.aexecute(
            self._update_article_index_status,
            [
                CommentStatus.DELETED.value,
                comment.article_id,
                comment.created_at,
                comment.comment_id,
            ],
        )

    async def count_comments(
        self, article_id: int, status: CommentStatus = CommentStatus.NORMAL
    ) -> int:
        result = await self.session.aexecute(
            self._count_by_article, [article_id, status.value]
        )
        row = result.one()
        return row.count if row else 0

    # ==========================================================================
    # Likes
    # ==========================================================================

    async def add_like(self, comment_id: int, user_id: int) -> bool:
        """Insert the like; only the applied insert increments the counter.

        A counter that has drifted below zero is lifted back to one. If the
        counter update fails the like row is removed again so the pair stays
        consistent.
        """
        result = await self.session.aexecute(
            self._insert_like, [user_id, comment_id, datetime.now(UTC)]
        )
        if not result.was_applied:
            return False

        try:
            current = await self._stored_like_count(comment_id)
            step = 1 + max(0, -current)
            await self.session.aexecute(self._incr_like_count, [step, comment_id])
        except Exception:
            logger.exception(
                "like_count_increment_failed",
                comment_id=comment_id,
                user_id=user_id,
            )
            await self.session.aexecute(self._delete_like, [user_id, comment_id])
            raise
        return True

    async def remove_like(self, comment_id: int, user_id: int) -> bool:
        """Delete the like; only the applied delete decrements the counter.

        The counter is never written below zero.
        """
        result = await self.session.aexecute(
            self._delete_like, [user_id, comment_id]
        )
        if not result.was_applied:
            return False

        try:
            if await self._stored_like_count(comment_id) > 0:
                await self.session.aexecute(self._decr_like_count, [1, comment_id])
        except Exception:
            logger.exception(
                "like_count_decrement_failed",
                comment_id=comment_id,
                user_id=user_id,
            )
            await self.session.aexecute(
                self._insert_like, [user_id, comment_id, datetime.now(UTC)]
            )
            raise
        return True

    async def find_liked_ids(
        self, user_id: int, comment_ids: Iterable[int]
    ) -> set[int]:
        ids = list(dict.fromkeys(comment_ids))
        if not ids:
            return set()
        rows = await self.session.aexecute(self._get_liked_ids, [user_id, ids])
        return {row.comment_id for row in rows}

    async def _like_counts(self, comment_ids: list[int]) -> dict[int, int]:
        rows = await self.session.aexecute(self._get_like_counts, [comment_ids])
        return {row.comment_id: max(0, row.like_count or 0) for row in rows}

    async def _stored_like_count(self, comment_id: int) -> int:
        """Raw counter value, which may be negative after drift."""
        rows = await self.session.aexecute(self._get_like_counts, [[comment_id]])
        for row in rows:
            return row.like_count or 0
        return 0
