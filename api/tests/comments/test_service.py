"""Tests for CommentService behaviour over the in-memory store."""

import asyncio
from collections.abc import Iterable
from datetime import timedelta

import httpx
import pytest

from src.comments.exceptions import (
    CommentNotFoundError,
    InvalidContentError,
    LikeConflictError,
    PermissionDeniedError,
)
from src.comments.likes import LikeStatusResolver
from src.comments.models import CommentStatus
from src.comments.profiles import UserProfileEnricher, UserServiceClient
from src.comments.service import CommentService
from tests.fakes import (
    BASE_TIME,
    USER_SERVICE_URL,
    FakeCommentStore,
    make_http_client,
    users_handler,
)


AUTHOR_ID = 100
READER_ID = 200


def later(hours: int):
    return BASE_TIME + timedelta(hours=hours)


def service_with(store: FakeCommentStore, handler, retries: int = 1) -> CommentService:
    """CommentService whose user service answers through ``handler``."""
    return CommentService(
        store=store,
        like_resolver=LikeStatusResolver(store),
        profile_enricher=UserProfileEnricher(
            UserServiceClient(
                make_http_client(handler), USER_SERVICE_URL, retries=retries
            )
        ),
    )


class TestCreate:
    """Tests for create."""

    @pytest.mark.asyncio
    async def test_creates_top_level_comment(
        self, comment_service: CommentService, store: FakeCommentStore
    ):
        comment_id = await comment_service.create(AUTHOR_ID, 1, "  hello  ")

        stored = store.comments[comment_id]
        assert stored.content == "hello"
        assert stored.parent_id is None
        assert stored.root_id is None
        assert stored.status == CommentStatus.NORMAL
        assert stored.like_count == 0

    @pytest.mark.asyncio
    async def test_reply_to_top_level_gets_parent_as_root(
        self, comment_service: CommentService, store: FakeCommentStore
    ):
        """Reply with parent 10 and no root is stored with root 10."""
        store.add(10)

        reply_id = await comment_service.create(AUTHOR_ID, 1, "reply", parent_id=10)

        assert store.comments[reply_id].root_id == 10

    @pytest.mark.asyncio
    async def test_reply_to_reply_inherits_root(
        self, comment_service: CommentService, store: FakeCommentStore
    ):
        store.add(10)
        store.add(11, parent_id=10, root_id=10)

        reply_id = await comment_service.create(AUTHOR_ID, 1, "deep", parent_id=11)

        assert store.comments[reply_id].parent_id == 11
        assert store.comments[reply_id].root_id == 10

    @pytest.mark.asyncio
    async def test_explicit_root_is_kept(
        self, comment_service: CommentService, store: FakeCommentStore
    ):
        store.add(10)
        store.add(11, parent_id=10, root_id=10)

        reply_id = await comment_service.create(
            AUTHOR_ID, 1, "x", parent_id=11, root_id=10
        )

        assert store.comments[reply_id].root_id == 10

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", ["", "   ", "\n\t"])
    async def test_blank_content_rejected(
        self, comment_service: CommentService, content: str
    ):
        with pytest.raises(InvalidContentError):
            await comment_service.create(AUTHOR_ID, 1, content)

    @pytest.mark.asyncio
    async def test_too_long_content_rejected(self, comment_service: CommentService):
        await comment_service.create(AUTHOR_ID, 1, "a" * 1000)

        with pytest.raises(InvalidContentError):
            await comment_service.create(AUTHOR_ID, 1, "a" * 1001)

    @pytest.mark.asyncio
    async def test_missing_parent_rejected(
        self, comment_service: CommentService, store: FakeCommentStore
    ):
        with pytest.raises(CommentNotFoundError):
            await comment_service.create(AUTHOR_ID, 1, "reply", parent_id=404)
        assert store.calls["insert_comment"] == 0

    @pytest.mark.asyncio
    async def test_parent_from_other_article_rejected(
        self, comment_service: CommentService, store: FakeCommentStore
    ):
        store.add(10, article_id=2)

        with pytest.raises(CommentNotFoundError):
            await comment_service.create(AUTHOR_ID, 1, "reply", parent_id=10)


class TestDelete:
    """Tests for delete."""

    @pytest.mark.asyncio
    async def test_author_soft_deletes(
        self, comment_service: CommentService, store: FakeCommentStore
    ):
        store.add(10, author_id=AUTHOR_ID)

        await comment_service.delete(10, AUTHOR_ID)

        assert store.comments[10].status == CommentStatus.DELETED

    @pytest.mark.asyncio
    async def test_other_user_denied(
        self, comment_service: CommentService, store: FakeCommentStore
    ):
        store.add(10, author_id=AUTHOR_ID)

        with pytest.raises(PermissionDeniedError):
            await comment_service.delete(10, READER_ID)
        assert store.comments[10].status == CommentStatus.NORMAL

    @pytest.mark.asyncio
    async def test_missing_comment(self, comment_service: CommentService):
        with pytest.raises(CommentNotFoundError):
            await comment_service.delete(404, AUTHOR_ID)

    @pytest.mark.asyncio
    async def test_deleting_twice_is_noop(
        self, comment_service: CommentService, store: FakeCommentStore
    ):
        store.add(10, author_id=AUTHOR_ID)

        await comment_service.delete(10, AUTHOR_ID)
        await comment_service.delete(10, AUTHOR_ID)

        assert store.calls["mark_deleted"] == 1


class TestListComments:
    """Tests for list_comments."""

    @pytest.mark.asyncio
    async def test_reply_without_root_is_nested(
        self, comment_service: CommentService, store: FakeCommentStore
    ):
        """Created reply appears as the only child of its top-level comment."""
        store.add(10)
        reply_id = await comment_service.create(AUTHOR_ID, 1, "reply", parent_id=10)

        result = await comment_service.list_comments(1)

        assert len(result) == 1
        assert result[0].id == 10
        assert [child.id for child in result[0].children] == [reply_id]
        assert result[0].children[0].children == []

    @pytest.mark.asyncio
    async def test_legacy_replies_are_repaired(
        self, comment_service: CommentService, store: FakeCommentStore
    ):
        store.add(10)
        store.add(11, parent_id=10, root_id=None)
        store.add(12, parent_id=10, root_id=999)
        store.add(13, parent_id=55, root_id=66)  # orphan

        result = await comment_service.list_comments(1)

        children = result[0].children
        assert [child.id for child in children] == [11, 12]
        assert all(child.root_id == 10 for child in children)

    @pytest.mark.asyncio
    async def test_first_page_holds_newest(
        self, comment_service: CommentService, store: FakeCommentStore
    ):
        store.add(1, created_at=BASE_TIME)
        store.add(2, created_at=BASE_TIME + timedelta(seconds=1))

        result = await comment_service.list_comments(1, page=1, page_size=1)

        assert [vo.id for vo in result] == [2]

    @pytest.mark.asyncio
    async def test_equal_timestamps_tie_break_by_id(
        self, comment_service: CommentService, store: FakeCommentStore
    ):
        store.add(1, created_at=BASE_TIME)
        store.add(2, created_at=BASE_TIME)

        first = await comment_service.list_comments(1, page=1, page_size=1)
        second = await comment_service.list_comments(1, page=2, page_size=1)

        assert [vo.id for vo in first] == [2]
        assert [vo.id for vo in second] == [1]

    @pytest.mark.asyncio
    async def test_default_page_size_applies(
        self, store: FakeCommentStore, user_client: UserServiceClient
    ):
        service = CommentService(
            store=store,
            like_resolver=LikeStatusResolver(store),
            profile_enricher=UserProfileEnricher(user_client),
            default_page_size=2,
        )
        for comment_id in (1, 2, 3):
            store.add(comment_id, created_at=later(comment_id))

        result = await service.list_comments(1)

        assert [vo.id for vo in result] == [3, 2]

    @pytest.mark.asyncio
    async def test_replies_are_oldest_first(
        self, comment_service: CommentService, store: FakeCommentStore
    ):
        store.add(10)
        store.add(13, parent_id=10, root_id=10, created_at=later(3))
        store.add(12, parent_id=10, root_id=10, created_at=later(2))

        result = await comment_service.list_comments(1)

        assert [child.id for child in result[0].children] == [12, 13]

    @pytest.mark.asyncio
    async def test_deleted_comments_hidden(
        self, comment_service: CommentService, store: FakeCommentStore
    ):
        store.add(10)
        store.add(11, parent_id=10, root_id=10, status=CommentStatus.DELETED)
        store.add(20, status=CommentStatus.DELETED)

        result = await comment_service.list_comments(1)

        assert [vo.id for vo in result] == [10]
        assert result[0].children == []

    @pytest.mark.asyncio
    async def test_empty_page_short_circuits(
        self, comment_service: CommentService, store: FakeCommentStore
    ):
        assert await comment_service.list_comments(1) == []
        assert store.calls["find_reply_candidates"] == 0
        assert store.calls["find_liked_ids"] == 0

    @pytest.mark.asyncio
    async def test_anonymous_has_no_likes_and_no_like_query(
        self, comment_service: CommentService, store: FakeCommentStore
    ):
        store.add(10)
        store.likes.add((10, READER_ID))

        result = await comment_service.list_comments(1, requesting_user_id=None)

        assert result[0].is_liked is False
        assert store.calls["find_liked_ids"] == 0

    @pytest.mark.asyncio
    async def test_like_status_covers_both_levels(
        self, comment_service: CommentService, store: FakeCommentStore
    ):
        store.add(10)
        store.add(11, parent_id=10, root_id=10)
        store.likes.update({(10, READER_ID), (11, READER_ID)})

        result = await comment_service.list_comments(1, requesting_user_id=READER_ID)

        assert result[0].is_liked is True
        assert result[0].children[0].is_liked is True
        assert store.calls["find_liked_ids"] == 1

    @pytest.mark.asyncio
    async def test_profiles_attached(
        self, comment_service: CommentService, store: FakeCommentStore
    ):
        store.add(10, author_id=7)
        store.add(11, parent_id=10, root_id=10, author_id=8)

        result = await comment_service.list_comments(1)

        assert result[0].username == "user7"
        assert result[0].children[0].avatar_url == "https://cdn.test/avatars/8.png"

    @pytest.mark.asyncio
    async def test_enrichment_failure_still_lists(self, store: FakeCommentStore):
        """User service down: comments are returned with null profile fields."""

        def failing(request):
            raise httpx.ConnectError("refused", request=request)

        service = CommentService(
            store=store,
            like_resolver=LikeStatusResolver(store),
            profile_enricher=UserProfileEnricher(
                UserServiceClient(make_http_client(failing), USER_SERVICE_URL)
            ),
        )
        store.add(10)
        store.add(11, parent_id=10, root_id=10)
        store.likes.add((10, READER_ID))

        result = await service.list_comments(1, requesting_user_id=READER_ID)

        assert result[0].username is None
        assert result[0].nickname is None
        assert result[0].avatar_url is None
        assert result[0].is_liked is True
        assert [child.id for child in result[0].children] == [11]

    @pytest.mark.asyncio
    async def test_repeated_list_is_identical(
        self, comment_service: CommentService, store: FakeCommentStore
    ):
        store.add(10)
        store.add(11, parent_id=10, root_id=None)
        store.add(20)

        first = await comment_service.list_comments(1, requesting_user_id=READER_ID)
        second = await comment_service.list_comments(1, requesting_user_id=READER_ID)

        assert [vo.model_dump() for vo in first] == [vo.model_dump() for vo in second]

    @pytest.mark.asyncio
    async def test_malformed_profile_fields_still_list(self, store: FakeCommentStore):
        def handler(request):
            return httpx.Response(
                200,
                json=[
                    {
                        "id": AUTHOR_ID,
                        "username": 123,
                        "nickname": {"x": 1},
                        "avatarUrl": ["a"],
                    }
                ],
            )

        service = service_with(store, handler)
        store.add(10)

        result = await service.list_comments(1)

        assert [vo.id for vo in result] == [10]
        assert result[0].username is None
        assert result[0].nickname is None
        assert result[0].avatar_url is None


class RendezvousStore(FakeCommentStore):
    """Liked-id lookup that blocks until the profile request is in flight."""

    def __init__(self, profiles_requested: asyncio.Event, fail: bool = False):
        super().__init__()
        self.like_query_started = asyncio.Event()
        self.profiles_requested = profiles_requested
        self.fail = fail

    async def find_liked_ids(
        self, user_id: int, comment_ids: Iterable[int]
    ) -> set[int]:
        self.like_query_started.set()
        await asyncio.wait_for(self.profiles_requested.wait(), timeout=1)
        if self.fail:
            raise RuntimeError("like query failed")
        return await super().find_liked_ids(user_id, comment_ids)


class TestListConcurrency:
    """Like status and profile enrichment run side by side."""

    @pytest.mark.asyncio
    async def test_like_query_and_profile_lookup_overlap(self):
        profiles_requested = asyncio.Event()
        store = RendezvousStore(profiles_requested)

        async def handler(request):
            profiles_requested.set()
            await asyncio.wait_for(store.like_query_started.wait(), timeout=1)
            return users_handler(request)

        service = service_with(store, handler)
        store.add(10)
        store.likes.add((10, READER_ID))

        result = await asyncio.wait_for(
            service.list_comments(1, requesting_user_id=READER_ID), timeout=2
        )

        assert result[0].is_liked is True
        assert result[0].username == f"user{AUTHOR_ID}"

    @pytest.mark.asyncio
    async def test_like_failure_surfaces_while_profiles_pending(self):
        profiles_requested = asyncio.Event()
        release = asyncio.Event()
        store = RendezvousStore(profiles_requested, fail=True)

        async def handler(request):
            profiles_requested.set()
            await release.wait()
            return users_handler(request)

        service = service_with(store, handler)
        store.add(10)

        with pytest.raises(RuntimeError, match="like query failed"):
            await asyncio.wait_for(
                service.list_comments(1, requesting_user_id=READER_ID), timeout=2
            )

        assert not release.is_set()
        release.set()
        await asyncio.sleep(0.05)

    @pytest.mark.asyncio
    async def test_profile_failure_does_not_block_like_status(self):
        profiles_requested = asyncio.Event()
        store = RendezvousStore(profiles_requested)

        def handler(request):
            profiles_requested.set()
            return httpx.Response(503)

        service = service_with(store, handler, retries=0)
        store.add(10)
        store.likes.add((10, READER_ID))

        result = await asyncio.wait_for(
            service.list_comments(1, requesting_user_id=READER_ID), timeout=2
        )

        assert result[0].is_liked is True
        assert result[0].username is None


class TestDetailAndCount:
    """Tests for get_detail and count."""

    @pytest.mark.asyncio
    async def test_detail(
        self, comment_service: CommentService, store: FakeCommentStore
    ):
        store.add(10, author_id=7)
        store.likes.add((10, READER_ID))

        vo = await comment_service.get_detail(10, requesting_user_id=READER_ID)

        assert vo.id == 10
        assert vo.is_liked is True
        assert vo.nickname == "Nick 7"
        assert vo.children == []

    @pytest.mark.asyncio
    async def test_deleted_detail_not_found(
        self, comment_service: CommentService, store: FakeCommentStore
    ):
        store.add(10, status=CommentStatus.DELETED)

        with pytest.raises(CommentNotFoundError):
            await comment_service.get_detail(10)

    @pytest.mark.asyncio
    async def test_count_includes_replies_only_normal(
        self, comment_service: CommentService, store: FakeCommentStore
    ):
        store.add(10)
        store.add(11, parent_id=10, root_id=10)
        store.add(12, parent_id=10, root_id=10, status=CommentStatus.DELETED)
        store.add(20, article_id=2)

        assert await comment_service.count(1) == 2


class TestLikes:
    """Tests for like, unlike and is_liked."""

    @pytest.mark.asyncio
    async def test_like_unlike_cycle(
        self, comment_service: CommentService, store: FakeCommentStore
    ):
        """Second like and second unlike conflict; counts stay consistent."""
        store.add(10)

        await comment_service.like(10, READER_ID)
        assert (await store.get_comment(10)).like_count == 1
        assert await comment_service.is_liked(10, READER_ID) is True

        with pytest.raises(LikeConflictError):
            await comment_service.like(10, READER_ID)
        assert (await store.get_comment(10)).like_count == 1

        await comment_service.unlike(10, READER_ID)
        assert (await store.get_comment(10)).like_count == 0
        assert await comment_service.is_liked(10, READER_ID) is False

        with pytest.raises(LikeConflictError):
            await comment_service.unlike(10, READER_ID)
        assert (await store.get_comment(10)).like_count == 0

    @pytest.mark.asyncio
    async def test_like_missing_comment(self, comment_service: CommentService):
        with pytest.raises(CommentNotFoundError):
            await comment_service.like(404, READER_ID)

    @pytest.mark.asyncio
    async def test_like_deleted_comment(
        self, comment_service: CommentService, store: FakeCommentStore
    ):
        store.add(10, status=CommentStatus.DELETED)

        with pytest.raises(CommentNotFoundError):
            await comment_service.like(10, READER_ID)

    @pytest.mark.asyncio
    async def test_anonymous_is_never_liked(
        self, comment_service: CommentService, store: FakeCommentStore
    ):
        store.add(10)
        assert await comment_service.is_liked(10, None) is False
