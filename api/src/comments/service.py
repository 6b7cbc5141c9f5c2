"""Comment system service layer.

Business logic for:
- Comment creation and soft deletion
- Threaded listing with reply repair
- Likes with one-like-per-user semantics
- Author profile and like status enrichment
"""

import asyncio
import dataclasses

import structlog

from .exceptions import (
    CommentNotFoundError,
    InvalidContentError,
    LikeConflictError,
    PermissionDeniedError,
)
from .likes import LikeStatusResolver
from .models import Comment, CommentStatus, create_comment
from .profiles import UserProfileEnricher
from .schemas import CommentVO
from .store import CommentStore, TopLevelQuery
from .threads import ThreadAssembler


logger = structlog.get_logger(__name__)


class CommentService:
    """Service for comment management.

    The requesting user is always passed in explicitly; the service never
    reads it from request state.
    """

    DEFAULT_MAX_CONTENT_LENGTH = 1000
    DEFAULT_PAGE_SIZE = 20
    MAX_PAGE_SIZE = 100

    def __init__(
        self,
        store: CommentStore,
        like_resolver: LikeStatusResolver,
        profile_enricher: UserProfileEnricher,
        max_content_length: int = DEFAULT_MAX_CONTENT_LENGTH,
        default_page_size: int = DEFAULT_PAGE_SIZE,
        max_page_size: int = MAX_PAGE_SIZE,
    ):
        self.store = store
        self.like_resolver = like_resolver
        self.profile_enricher = profile_enricher
        self.thread_assembler = ThreadAssembler(store)
        self.max_content_length = max_content_length
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size

    # ==========================================================================
    # Writes
    # ==========================================================================

    def validate_content(self, content: str | None) -> str:
        """Strip and validate comment content."""
        text = (content or "").strip()
        if not text:
            raise InvalidContentError("Comment content cannot be empty")
        if len(text) > self.max_content_length:
            raise InvalidContentError(
                f"Comment content cannot exceed {self.max_content_length} characters"
            )
        return text

    async def create(
        self,
        author_id: int,
        article_id: int,
        content: str,
        parent_id: int | None = None,
        root_id: int | None = None,
    ) -> int:
        """Create a top-level comment or a reply and return its id.

        For a reply without an explicit ``root_id`` the root is derived from
        the parent: the parent's own root when the parent is a reply,
        otherwise the parent itself.
        """
        text = self.validate_content(content)

        if parent_id is None:
            root_id = None
        else:
            parent = await self.store.get_comment(parent_id)
            if (
                parent is None
                or parent.is_deleted
                or parent.article_id != article_id
            ):
                raise CommentNotFoundError("Parent comment not found")
            if root_id is None:
                root_id = (
                    parent.root_id
                    if parent.root_id is not None
                    else parent.comment_id
                )

        comment = create_comment(
            comment_id=await self.store.next_comment_id(),
            article_id=article_id,
            author_id=author_id,
            content=text,
            parent_id=parent_id,
            root_id=root_id,
        )
        await self.store.insert_comment(comment)

        logger.info(
            "comment_created",
            comment_id=comment.comment_id,
            article_id=article_id,
            author_id=author_id,
            parent_id=parent_id,
            root_id=root_id,
        )
        return comment.comment_id

    async def delete(self, comment_id: int, author_id: int) -> None:
        """Soft delete a comment. Only its author may delete it."""
        comment = await self.store.get_comment(comment_id)
        if comment is None:
            raise CommentNotFoundError

        if comment.author_id != author_id:
            raise PermissionDeniedError("You can only delete your own comments")

        if comment.is_deleted:
            return  # Already deleted

        await self.store.mark_deleted(comment)
        logger.info("comment_deleted", comment_id=comment_id, author_id=author_id)

    # ==========================================================================
    # Reads
    # ==========================================================================

    async def list_comments(
        self,
        article_id: int,
        page: int = 1,
        page_size: int | None = None,
        requesting_user_id: int | None = None,
    ) -> list[CommentVO]:
        """Page of top-level comments (newest first) with nested replies."""
        if page_size is None:
            page_size = self.default_page_size
        query = TopLevelQuery(
            article_id=article_id,
            status=CommentStatus.NORMAL,
            page=max(1, page),
            page_size=min(max(1, page_size), self.max_page_size),
            newest_first=True,
        )
        top_level = await self.store.list_top_level(query)
        if not top_level:
            return []

        grouping = await self.thread_assembler.assemble(
            c.comment_id for c in top_level
        )
        replies = grouping.all_replies()
        everything = top_level + replies

        liked, profiles = await asyncio.gather(
            self.like_resolver.liked_ids(
                requesting_user_id, (c.comment_id for c in everything)
            ),
            self.profile_enricher.enrich(c.author_id for c in everything),
        )

        def to_vo(comment: Comment, children: list[CommentVO] | None = None):
            return CommentVO.from_comment(
                comment,
                profile=profiles.get(comment.author_id),
                is_liked=comment.comment_id in liked,
                children=children,
            )

        result = []
        for parent in top_level:
            children = [
                to_vo(dataclasses.replace(reply, root_id=parent.comment_id))
                for reply in grouping.replies_for(parent.comment_id)
            ]
            result.append(to_vo(parent, children))

        logger.debug(
            "comments_listed",
            article_id=article_id,
            page=query.page,
            top_level_count=len(top_level),
            reply_count=len(replies),
            repaired_count=grouping.repaired_count,
            orphan_count=grouping.orphan_count,
        )
        return result

    async def get_detail(
        self, comment_id: int, requesting_user_id: int | None = None
    ) -> CommentVO:
        """Single comment with like status and author profile."""
        comment = await self.store.get_comment(comment_id)
        if comment is None or comment.status != CommentStatus.NORMAL:
            raise CommentNotFoundError

        liked, profiles = await asyncio.gather(
            self.like_resolver.liked_ids(requesting_user_id, [comment_id]),
            self.profile_enricher.enrich([comment.author_id]),
        )
        return CommentVO.from_comment(
            comment,
            profile=profiles.get(comment.author_id),
            is_liked=comment_id in liked,
        )

    async def count(self, article_id: int) -> int:
        """Number of visible comments of an article, both levels."""
        return await self.store.count_comments(article_id, CommentStatus.NORMAL)

    # ==========================================================================
    # Likes
    # ==========================================================================

    async def like(self, comment_id: int, user_id: int) -> None:
        """Like a comment. A second like by the same user is a conflict."""
        comment = await self.store.get_comment(comment_id)
        if comment is None or comment.is_deleted:
            raise CommentNotFoundError

        if not await self.store.add_like(comment_id, user_id):
            raise LikeConflictError("You already liked this comment")

        logger.info("comment_liked", comment_id=comment_id, user_id=user_id)

    async def unlike(self, comment_id: int, user_id: int) -> None:
        """Remove a like. Unliking without a like is a conflict."""
        if not await self.store.remove_like(comment_id, user_id):
            raise LikeConflictError("You have not liked this comment")

        logger.info("comment_unliked", comment_id=comment_id, user_id=user_id)

    async def is_liked(self, comment_id: int, user_id: int | None) -> bool:
        return await self.like_resolver.is_liked(user_id, comment_id)
