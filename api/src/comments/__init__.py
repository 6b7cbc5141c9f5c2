"""Comment system module.

Provides a two-level threaded comment system with:
- Threaded comments (top-level and replies, with root repair on read)
- Likes (one per user and comment)
- Author profile enrichment from the user service

Note: Router is not exported here to avoid circular imports.
Import directly from src.comments.router when needed.
"""

from .exceptions import (
    CommentError,
    CommentNotFoundError,
    InvalidContentError,
    LikeConflictError,
    PermissionDeniedError,
    UpstreamUnavailableError,
)
from .likes import LikeStatusResolver
from .models import COMMENTS_TABLES_CQL, Comment, CommentStatus, UserProfile
from .profiles import UserProfileEnricher, UserServiceClient
from .service import CommentService
from .store import CassandraCommentStore, CommentStore, TopLevelQuery
from .threads import ThreadAssembler, ThreadGrouping, group_replies


__all__ = [
    "COMMENTS_TABLES_CQL",
    "CassandraCommentStore",
    "Comment",
    "CommentError",
    "CommentNotFoundError",
    "CommentService",
    "CommentStatus",
    "CommentStore",
    "InvalidContentError",
    "LikeConflictError",
    "LikeStatusResolver",
    "PermissionDeniedError",
    "ThreadAssembler",
    "ThreadGrouping",
    "TopLevelQuery",
    "UpstreamUnavailableError",
    "UserProfile",
    "UserProfileEnricher",
    "UserServiceClient",
    "group_replies",
]
