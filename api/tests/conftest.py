"""Shared test fixtures.

Provides the in-memory store, a user service client on
``httpx.MockTransport`` and a FastAPI test client with the comment service
injected (no Cassandra or Redis needed).
"""

import os
import tempfile
from collections.abc import Callable, Iterator

import httpx
import pytest


os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="comments-logs-"))
os.environ.setdefault("LOG_REQUESTS", "false")
os.environ.setdefault("AUTH_SECRET_KEY", "test-secret-key-for-comment-tests")

from fastapi.testclient import TestClient  # noqa: E402

from src.comments.likes import LikeStatusResolver  # noqa: E402
from src.comments.profiles import (  # noqa: E402
    UserProfileEnricher,
    UserServiceClient,
)
from src.comments.service import CommentService  # noqa: E402
from tests.fakes import (  # noqa: E402
    USER_SERVICE_URL,
    FakeCommentStore,
    make_http_client,
    users_handler,
)


# ==============================================================================
# Fixtures
# ==============================================================================


@pytest.fixture
def store() -> FakeCommentStore:
    """Empty in-memory store."""
    return FakeCommentStore()


@pytest.fixture
def user_service_handler() -> Callable[[httpx.Request], httpx.Response]:
    """Handler used by the user service stub. Override per test module."""
    return users_handler


@pytest.fixture
def user_client(user_service_handler) -> UserServiceClient:
    """User service client on a mock transport."""
    return UserServiceClient(
        http_client=make_http_client(user_service_handler),
        base_url=USER_SERVICE_URL,
        timeout=1.0,
        retries=1,
    )


@pytest.fixture
def comment_service(
    store: FakeCommentStore, user_client: UserServiceClient
) -> CommentService:
    """CommentService over the in-memory store and stubbed user service."""
    return CommentService(
        store=store,
        like_resolver=LikeStatusResolver(store),
        profile_enricher=UserProfileEnricher(user_client),
        max_content_length=1000,
    )


@pytest.fixture
def client(comment_service: CommentService) -> Iterator[TestClient]:
    """Test client with the comment service injected into app state.

    The lifespan is not run, so no database connection is attempted.
    """
    from src.main import app

    app.state.comment_service = comment_service
    yield TestClient(app)
    app.state.comment_service = None
