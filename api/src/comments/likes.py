"""Batched like-status lookup."""

from collections.abc import Iterable

from .store import CommentStore


class LikeStatusResolver:
    """Which of a set of comments the requesting user has liked."""

    def __init__(self, store: CommentStore):
        self.store = store

    async def liked_ids(
        self, user_id: int | None, comment_ids: Iterable[int]
    ) -> set[int]:
        """Subset of ``comment_ids`` liked by ``user_id``.

        Anonymous callers (``user_id`` is None) and empty id sets never hit
        the store; everything else is one batched query.
        """
        if user_id is None:
            return set()
        ids = set(comment_ids)
        if not ids:
            return set()
        return await self.store.find_liked_ids(user_id, ids) & ids

    async def is_liked(self, user_id: int | None, comment_id: int) -> bool:
        return comment_id in await self.liked_ids(user_id, [comment_id])
