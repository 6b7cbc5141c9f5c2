"""Pydantic schemas for the comment API.

Wire format is camelCase; every response is wrapped in the
``{code, message, data}`` envelope shared by the platform's services.
"""

from datetime import datetime
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .models import Comment, UserProfile


T = TypeVar("T")


class CamelModel(BaseModel):
    """Base model serialized with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ==============================================================================
# Envelope
# ==============================================================================


class ApiResponse(CamelModel, Generic[T]):
    """Standard response envelope. ``code`` mirrors the HTTP status."""

    code: int = 200
    message: str = "success"
    data: T | None = None

    @classmethod
    def ok(cls, data: T | None = None, message: str = "success") -> "ApiResponse[T]":
        return cls(code=200, message=message, data=data)


# ==============================================================================
# Request Schemas
# ==============================================================================


class CreateCommentRequest(CamelModel):
    """Request to create a comment or a reply.

    Content rules (non-blank, length limit) are enforced by the service so
    that they surface as ``validation_error``.
    """

    article_id: int = Field(..., gt=0)
    content: str
    parent_id: int | None = Field(None, gt=0)
    root_id: int | None = Field(None, gt=0)


# ==============================================================================
# Response Schemas
# ==============================================================================


class CreatedCommentResponse(CamelModel):
    """Id of a newly created comment."""

    id: int


class CommentVO(CamelModel):
    """Comment as shown to a reader: author profile and like status attached."""

    id: int
    article_id: int
    user_id: int
    username: str | None = None
    nickname: str | None = None
    avatar_url: str | None = None
    parent_id: int | None = None
    root_id: int | None = None
    content: str
    like_count: int = 0
    is_liked: bool = False
    created_at: datetime
    updated_at: datetime
    children: list["CommentVO"] = Field(default_factory=list)

    @classmethod
    def from_comment(
        cls,
        comment: Comment,
        profile: UserProfile | None = None,
        is_liked: bool = False,
        children: list["CommentVO"] | None = None,
    ) -> "CommentVO":
        """Build from a Comment entity.

        Args:
            comment: Comment entity
            profile: Author profile, None when enrichment degraded
            is_liked: Whether the requesting user liked the comment
            children: Replies, only for top-level comments
        """
        return cls(
            id=comment.comment_id,
            article_id=comment.article_id,
            user_id=comment.author_id,
            username=profile.username if profile else None,
            nickname=profile.nickname if profile else None,
            avatar_url=profile.avatar_url if profile else None,
            parent_id=comment.parent_id,
            root_id=comment.root_id,
            content=comment.content,
            like_count=max(0, comment.like_count),
            is_liked=is_liked,
            created_at=comment.created_at,
            updated_at=comment.updated_at,
            children=children or [],
        )
