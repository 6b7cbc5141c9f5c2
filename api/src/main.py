"""ContentHub Comments API - Main Application."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

import httpx
import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.comments.likes import LikeStatusResolver
from src.comments.profiles import UserProfileEnricher, UserServiceClient
from src.comments.router import router as comments_router
from src.comments.service import CommentService
from src.comments.store import CassandraCommentStore
from src.config import Settings, get_settings
from src.core.context import get_request_id
from src.core.database import init_async_cassandra, shutdown_async_cassandra
from src.core.logging import configure_structlog, get_logger
from src.core.middleware import RequestContextMiddleware
from src.core.redis import init_redis, shutdown_redis
from src.health import router as health_router


# Configure logging early (before creating logger)
settings = get_settings()
configure_structlog(settings, log_dir=Path(settings.log_dir))

logger = get_logger(__name__)


def build_comment_service(
    settings: Settings,
    store: CassandraCommentStore,
    http_client: httpx.AsyncClient,
    redis_client=None,
) -> CommentService:
    """Wire the comment service and its collaborators."""
    if settings.profile_cache_ttl_seconds <= 0:
        redis_client = None

    user_client = UserServiceClient(
        http_client=http_client,
        base_url=settings.user_service_url,
        timeout=settings.user_service_timeout,
        retries=settings.user_service_retries,
    )
    return CommentService(
        store=store,
        like_resolver=LikeStatusResolver(store),
        profile_enricher=UserProfileEnricher(
            user_client,
            redis=redis_client,
            cache_ttl=settings.profile_cache_ttl_seconds,
        ),
        max_content_length=settings.comment_max_length,
        default_page_size=settings.comment_default_page_size,
        max_page_size=settings.comment_max_page_size,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings = get_settings()
    logger.info(
        "starting_application",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )

    # Initialize Redis (non-critical - app works without it)
    redis_client = None
    try:
        redis_client = await init_redis()
        logger.info("redis_initialized")
    except Exception as e:
        logger.warning(
            "redis_init_skipped",
            error=str(e),
            message="Running without Redis - user profile cache disabled",
        )

    # Shared client for the user service
    http_client = httpx.AsyncClient(timeout=settings.user_service_timeout)
    app.state.http_client = http_client

    # Initialize Cassandra (async)
    app.state.comment_service = None
    try:
        session = await init_async_cassandra()
        logger.info("cassandra_initialized")

        store = CassandraCommentStore(
            session=session,
            keyspace=settings.cassandra_keyspace,
        )
        app.state.comment_service = build_comment_service(
            settings, store, http_client, redis_client
        )
        logger.info(
            "comment_service_initialized",
            profile_cache_enabled=redis_client is not None,
        )
    except Exception as e:
        logger.warning(
            "database_init_skipped",
            error=str(e),
            message="Running without database connection",
        )

    yield

    # Shutdown
    logger.info("shutting_down_application")
    await http_client.aclose()
    await shutdown_redis()
    await shutdown_async_cassandra()


def _error_content(
    code: int, message: str, request_id: str | None, **extra
) -> dict:
    """Error body in the standard ``{code, message, data}`` envelope."""
    return {
        "code": code,
        "message": message,
        "data": None,
        "request_id": request_id,
        **extra,
    }


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    # SECURITY: Always set debug=False to prevent Starlette's ServerErrorMiddleware
    # from exposing stack traces in responses. Our custom exception handlers will
    # log full details internally while returning safe error messages to users.
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Article comment service - API",
        debug=False,  # Never expose stack traces in responses
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        openapi_url="/openapi.json" if settings.is_development else None,
    )

    # Request context middleware (must be added first - outermost)
    app.add_middleware(
        RequestContextMiddleware,
        log_requests=settings.log_requests,
        exclude_paths=settings.log_exclude_paths,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
        max_age=settings.cors_max_age,
    )

    # Helper to get request_id from request state or context
    def _get_request_id_safe(request: Request) -> str | None:
        """Get request_id from request state or context."""
        if hasattr(request.state, "request_id"):
            return request.state.request_id
        return get_request_id()

    # Global exception handlers (security: never expose stack traces)
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> ORJSONResponse:
        """Handle HTTP exceptions with safe error messages."""
        logger.warning(
            "http_exception",
            status_code=exc.status_code,
            detail=str(exc.detail),
            path=request.url.path,
            method=request.method,
        )

        message = (
            str(exc.detail)
            if exc.status_code < status.HTTP_500_INTERNAL_SERVER_ERROR
            else "Internal server error"
        )
        return ORJSONResponse(
            status_code=exc.status_code,
            content=_error_content(
                exc.status_code, message, _get_request_id_safe(request)
            ),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> ORJSONResponse:
        """Handle validation errors with safe error messages."""
        logger.warning(
            "validation_error",
            errors=exc.errors(),
            path=request.url.path,
            method=request.method,
        )

        return ORJSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=_error_content(
                status.HTTP_422_UNPROCESSABLE_ENTITY,
                "Validation error",
                _get_request_id_safe(request),
                details=[
                    {
                        "field": ".".join(str(loc) for loc in err.get("loc", [])),
                        "message": err.get("msg", "Invalid value"),
                    }
                    for err in exc.errors()
                ],
            ),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request, exc: Exception
    ) -> ORJSONResponse:
        """Catch-all handler for unhandled exceptions.

        SECURITY: Never expose stack traces or internal error details to users.
        """
        logger.exception(
            "unhandled_exception",
            error_type=type(exc).__name__,
            error_message=str(exc),
            path=request.url.path,
            method=request.method,
        )

        return ORJSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_content(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "An unexpected error occurred. Please try again later.",
                _get_request_id_safe(request),
            ),
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(comments_router)

    @app.get("/", include_in_schema=False)
    async def root(request: Request) -> dict[str, str]:
        """Root endpoint."""
        return {
            "message": "ContentHub Comments API",
            "version": settings.app_version,
            "docs": f"{request.url}docs",
        }

    return app


app = create_app()


def run() -> None:
    """Serve the app with uvicorn on the configured host and port."""
    uvicorn.run(
        "src.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
        log_config=None,
    )


if __name__ == "__main__":
    run()
