"""Comment API endpoints.

Provides routes for:
- Comment creation and deletion
- Threaded listing and detail
- Likes and like checks
- Article comment counts

Every response is wrapped in the ``{code, message, data}`` envelope.
"""

import structlog
from fastapi import APIRouter, Query

from src.auth.dependencies import CurrentUserId, OptionalUserId

from .dependencies import CommentServiceDep, handle_comment_error
from .exceptions import CommentError
from .schemas import (
    ApiResponse,
    CommentVO,
    CreateCommentRequest,
    CreatedCommentResponse,
)


logger = structlog.get_logger(__name__)


router = APIRouter(prefix="/comment", tags=["comments"])


@router.post(
    "/create",
    response_model=ApiResponse[CreatedCommentResponse],
    summary="Create comment",
)
async def create_comment(
    data: CreateCommentRequest,
    comment_service: CommentServiceDep,
    user_id: CurrentUserId,
) -> ApiResponse[CreatedCommentResponse]:
    """Create a top-level comment or a reply.

    For a reply, ``rootId`` may be omitted; it is derived from the parent.
    """
    try:
        comment_id = await comment_service.create(
            author_id=user_id,
            article_id=data.article_id,
            content=data.content,
            parent_id=data.parent_id,
            root_id=data.root_id,
        )
    except CommentError as e:
        raise handle_comment_error(e) from e

    return ApiResponse.ok(CreatedCommentResponse(id=comment_id))


@router.get(
    "/list",
    response_model=ApiResponse[list[CommentVO]],
    summary="List article comments",
)
async def list_comments(
    comment_service: CommentServiceDep,
    user_id: OptionalUserId,
    article_id: int = Query(..., alias="articleId", gt=0),
    page: int = Query(default=1, ge=1),
    size: int | None = Query(default=None, ge=1),
) -> ApiResponse[list[CommentVO]]:
    """Top-level comments of an article, newest first, each with its replies.

    Works for anonymous callers; ``isLiked`` is then always false.
    """
    comments = await comment_service.list_comments(
        article_id=article_id,
        page=page,
        page_size=size,
        requesting_user_id=user_id,
    )
    return ApiResponse.ok(comments)


@router.get(
    "/count",
    response_model=ApiResponse[int],
    summary="Count article comments",
)
async def count_comments(
    comment_service: CommentServiceDep,
    article_id: int = Query(..., alias="articleId", gt=0),
) -> ApiResponse[int]:
    """Number of visible comments of an article, replies included."""
    return ApiResponse.ok(await comment_service.count(article_id))


@router.get(
    "/{comment_id}",
    response_model=ApiResponse[CommentVO],
    summary="Get comment",
)
async def get_comment(
    comment_id: int,
    comment_service: CommentServiceDep,
    user_id: OptionalUserId,
) -> ApiResponse[CommentVO]:
    try:
        comment = await comment_service.get_detail(
            comment_id, requesting_user_id=user_id
        )
    except CommentError as e:
        raise handle_comment_error(e) from e

    return ApiResponse.ok(comment)


@router.delete(
    "/{comment_id}",
    response_model=ApiResponse[None],
    summary="Delete comment",
)
async def delete_comment(
    comment_id: int,
    comment_service: CommentServiceDep,
    user_id: CurrentUserId,
) -> ApiResponse[None]:
    """Soft delete a comment. Only the author can delete it."""
    try:
        await comment_service.delete(comment_id, author_id=user_id)
    except CommentError as e:
        raise handle_comment_error(e) from e

    return ApiResponse.ok()


# ==============================================================================
# Likes
# ==============================================================================


@router.post(
    "/{comment_id}/like",
    response_model=ApiResponse[None],
    summary="Like comment",
)
async def like_comment(
    comment_id: int,
    comment_service: CommentServiceDep,
    user_id: CurrentUserId,
) -> ApiResponse[None]:
    try:
        await comment_service.like(comment_id, user_id)
    except CommentError as e:
        raise handle_comment_error(e) from e

    return ApiResponse.ok()


@router.delete(
    "/{comment_id}/like",
    response_model=ApiResponse[None],
    summary="Unlike comment",
)
async def unlike_comment(
    comment_id: int,
    comment_service: CommentServiceDep,
    user_id: CurrentUserId,
) -> ApiResponse[None]:
    try:
        await comment_service.unlike(comment_id, user_id)
    except CommentError as e:
        raise handle_comment_error(e) from e

    return ApiResponse.ok()


@router.get(
    "/{comment_id}/like/check",
    response_model=ApiResponse[bool],
    summary="Check like status",
)
async def check_like(
    comment_id: int,
    comment_service: CommentServiceDep,
    user_id: CurrentUserId,
) -> ApiResponse[bool]:
    return ApiResponse.ok(await comment_service.is_liked(comment_id, user_id))
