"""Database models for the article comment system.

Cassandra table definitions for:
- Comments: authoritative rows keyed by comment_id
- Article index: per-article listing in (created_at, comment_id) order
- Reply lookups: comment ids by parent_id and by root_id
- Likes: one row per (user, comment), guarded by lightweight transactions
- Like counts: denormalized counter table
- Id sequences: monotonic comment id allocation

Threading model: two levels. A top-level comment has neither parent_id nor
root_id; a reply has a parent_id and should carry the id of its top-level
ancestor in root_id. Legacy replies may have a missing or stale root_id; the
read path repairs that without rewriting rows.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class CommentStatus(str, Enum):
    """Lifecycle status of a comment."""

    NORMAL = "normal"
    DELETED = "deleted"
    PENDING = "pending"


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

# Authoritative comment rows - O(1) lookup by id
COMMENTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.comments (
    comment_id BIGINT PRIMARY KEY,
    article_id BIGINT,
    author_id BIGINT,
    parent_id BIGINT,
    root_id BIGINT,
    content TEXT,
    status TEXT,
    created_at TIMESTAMP,
    updated_at TIMESTAMP
)
"""

# Per-article index, newest first. parent_id and root_id never change;
# status is dual-written on delete.
COMMENTS_BY_ARTICLE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.comments_by_article (
    article_id BIGINT,
    created_at TIMESTAMP,
    comment_id BIGINT,
    parent_id BIGINT,
    root_id BIGINT,
    status TEXT,
    PRIMARY KEY ((article_id), created_at, comment_id)
) WITH CLUSTERING ORDER BY (created_at DESC, comment_id DESC)
"""

# Reply lookup by direct parent
COMMENT_IDS_BY_PARENT_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.comment_ids_by_parent (
    parent_id BIGINT,
    comment_id BIGINT,
    PRIMARY KEY ((parent_id), comment_id)
)
"""

# Reply lookup by stored root (may be stale for legacy rows)
COMMENT_IDS_BY_ROOT_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.comment_ids_by_root (
    root_id BIGINT,
    comment_id BIGINT,
    PRIMARY KEY ((root_id), comment_id)
)
"""

# Likes partitioned by user: one query answers "which of these did I like"
COMMENT_LIKES_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.comment_likes (
    user_id BIGINT,
    comment_id BIGINT,
    created_at TIMESTAMP,
    PRIMARY KEY ((user_id), comment_id)
)
"""

# Like counts - denormalized for fast reads
COMMENT_LIKE_COUNTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.comment_like_counts (
    comment_id BIGINT PRIMARY KEY,
    like_count COUNTER
)
"""

# Monotonic id allocation via compare-and-set
ID_SEQUENCES_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.id_sequences (
    name TEXT PRIMARY KEY,
    next_id BIGINT
)
"""

COMMENTS_TABLES_CQL = [
    COMMENTS_TABLE_CQL,
    COMMENTS_BY_ARTICLE_TABLE_CQL,
    COMMENT_IDS_BY_PARENT_TABLE_CQL,
    COMMENT_IDS_BY_ROOT_TABLE_CQL,
    COMMENT_LIKES_TABLE_CQL,
    COMMENT_LIKE_COUNTS_TABLE_CQL,
    ID_SEQUENCES_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


@dataclass
class Comment:
    """Comment entity."""

    comment_id: int
    article_id: int
    author_id: int
    parent_id: int | None
    root_id: int | None
    content: str
    like_count: int
    status: CommentStatus
    created_at: datetime
    updated_at: datetime

    @property
    def is_top_level(self) -> bool:
        return self.parent_id is None

    @property
    def is_deleted(self) -> bool:
        return self.status == CommentStatus.DELETED

    @property
    def sort_key(self) -> tuple[datetime, int]:
        """Total order used everywhere: timestamp, then id."""
        return (self.created_at, self.comment_id)

    @classmethod
    def from_row(cls, row: Any, like_count: int = 0) -> "Comment":
        """Create Comment from a ``comments`` row.

        Cassandra returns naive UTC timestamps; they are made timezone-aware.
        """
        created_at = _as_utc(row.created_at)
        return cls(
            comment_id=row.comment_id,
            article_id=row.article_id,
            author_id=row.author_id,
            parent_id=row.parent_id,
            root_id=row.root_id,
            content=row.content or "",
            like_count=max(0, like_count),
            status=CommentStatus(row.status or CommentStatus.NORMAL.value),
            created_at=created_at,
            updated_at=_as_utc(row.updated_at) if row.updated_at else created_at,
        )


@dataclass
class CommentLike:
    """A user's like of a comment. Existence means liked."""

    comment_id: int
    user_id: int
    created_at: datetime


@dataclass
class UserProfile:
    """Author display data owned by the user service."""

    user_id: int
    username: str | None = None
    nickname: str | None = None
    avatar_url: str | None = None

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "UserProfile":
        """Build from a user service item (``id``, ``avatarUrl`` camelCase).

        Display fields that are not strings are dropped.
        """
        return cls(
            user_id=int(data["id"]),
            username=_text(data.get("username")),
            nickname=_text(data.get("nickname")),
            avatar_url=_text(data.get("avatarUrl")),
        )

    def to_cache(self) -> dict[str, str]:
        """Flatten for a Redis hash (empty string means absent)."""
        return {
            "username": self.username or "",
            "nickname": self.nickname or "",
            "avatar_url": self.avatar_url or "",
        }

    @classmethod
    def from_cache(cls, user_id: int, data: dict[str, str]) -> "UserProfile":
        return cls(
            user_id=user_id,
            username=data.get("username") or None,
            nickname=data.get("nickname") or None,
            avatar_url=data.get("avatar_url") or None,
        )


def _text(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


# ==============================================================================
# Factory Functions
# ==============================================================================


def create_comment(
    comment_id: int,
    article_id: int,
    author_id: int,
    content: str,
    parent_id: int | None = None,
    root_id: int | None = None,
) -> Comment:
    """Create a new comment with default values.

    Timestamps are truncated to milliseconds, the precision Cassandra stores.
    """
    now = datetime.now(UTC)
    now = now.replace(microsecond=now.microsecond // 1000 * 1000)
    return Comment(
        comment_id=comment_id,
        article_id=article_id,
        author_id=author_id,
        parent_id=parent_id,
        root_id=root_id,
        content=content,
        like_count=0,
        status=CommentStatus.NORMAL,
        created_at=now,
        updated_at=now,
    )
