"""Tests for LikeStatusResolver."""

import pytest

from src.comments.likes import LikeStatusResolver
from tests.fakes import FakeCommentStore


@pytest.fixture
def resolver(store: FakeCommentStore) -> LikeStatusResolver:
    store.likes.update({(1, 7), (3, 7), (2, 8)})
    return LikeStatusResolver(store)


class TestLikedIds:
    """Tests for liked_ids."""

    @pytest.mark.asyncio
    async def test_returns_liked_subset(
        self, resolver: LikeStatusResolver, store: FakeCommentStore
    ):
        liked = await resolver.liked_ids(7, [1, 2, 3, 4])

        assert liked == {1, 3}
        assert store.calls["find_liked_ids"] == 1

    @pytest.mark.asyncio
    async def test_anonymous_makes_no_query(
        self, resolver: LikeStatusResolver, store: FakeCommentStore
    ):
        """Anonymous callers get an empty set without touching the store."""
        liked = await resolver.liked_ids(None, [1, 2, 3])

        assert liked == set()
        assert store.calls["find_liked_ids"] == 0

    @pytest.mark.asyncio
    async def test_empty_ids_make_no_query(
        self, resolver: LikeStatusResolver, store: FakeCommentStore
    ):
        assert await resolver.liked_ids(7, []) == set()
        assert store.calls["find_liked_ids"] == 0

    @pytest.mark.asyncio
    async def test_is_liked(self, resolver: LikeStatusResolver):
        assert await resolver.is_liked(7, 1) is True
        assert await resolver.is_liked(7, 2) is False
        assert await resolver.is_liked(None, 1) is False
