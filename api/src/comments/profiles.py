"""Author profile enrichment.

Profiles are owned by the user service and fetched in one batched call:

    GET {user_service_url}/users/batch?ids=1,2,3

The answer is either a bare JSON array or an envelope
``{"code": 200, "message": ..., "data": [...]}``. Enrichment is best-effort:
any upstream failure degrades to missing profiles and never fails the
calling request.
"""

import asyncio
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

import httpx
import structlog

from src.core.redis import user_profile_key

from .exceptions import UpstreamUnavailableError
from .models import UserProfile


if TYPE_CHECKING:
    from redis.asyncio import Redis


logger = structlog.get_logger(__name__)


class UserServiceClient:
    """Thin client over the user service batch endpoint."""

    BATCH_PATH = "/users/batch"

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str,
        timeout: float = 3.0,
        retries: int = 1,
    ):
        self.http_client = http_client
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.retries = max(0, retries)

    async def fetch_profiles(self, user_ids: Iterable[int]) -> list[UserProfile]:
        """Fetch profiles for the given ids.

        Retries timeouts, transport errors and 5xx answers up to
        ``retries`` times.

        Raises:
            UpstreamUnavailableError: On any failure once retries run out.
        """
        ids = list(dict.fromkeys(user_ids))
        if not ids:
            return []

        url = f"{self.base_url}{self.BATCH_PATH}"
        params = {"ids": ",".join(str(i) for i in ids)}
        last_error = "no attempt made"

        for attempt in range(self.retries + 1):
            try:
                response = await self.http_client.get(
                    url, params=params, timeout=self.timeout
                )
            except httpx.TimeoutException as e:
                last_error = f"timeout: {e}"
                logger.warning("user_service_timeout", attempt=attempt + 1)
                continue
            except httpx.RequestError as e:
                last_error = f"request error: {e}"
                logger.warning(
                    "user_service_request_error", attempt=attempt + 1, error=str(e)
                )
                continue

            if response.status_code >= httpx.codes.INTERNAL_SERVER_ERROR:
                last_error = f"status {response.status_code}"
                logger.warning(
                    "user_service_server_error",
                    attempt=attempt + 1,
                    status_code=response.status_code,
                )
                continue

            if response.status_code != httpx.codes.OK:
                raise UpstreamUnavailableError(
                    f"User service answered {response.status_code}"
                )

            return self._parse(response)

        raise UpstreamUnavailableError(f"User service unavailable ({last_error})")

    @staticmethod
    def _parse(response: httpx.Response) -> list[UserProfile]:
        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamUnavailableError("User service returned non-JSON") from e

        if isinstance(payload, dict):
            if payload.get("code") != httpx.codes.OK:
                raise UpstreamUnavailableError(
                    f"User service envelope code {payload.get('code')}"
                )
            payload = payload.get("data")

        if not isinstance(payload, list):
            raise UpstreamUnavailableError("User service payload is not a list")

        profiles = []
        for item in payload:
            try:
                profiles.append(UserProfile.from_payload(item))
            except (KeyError, TypeError, ValueError):
                # Entries without a usable id are skipped
                continue
        return profiles


class UserProfileEnricher:
    """Batched, fault-tolerant author lookup with an optional Redis cache."""

    def __init__(
        self,
        client: UserServiceClient,
        redis: "Redis | None" = None,
        cache_ttl: int = 300,
    ):
        self.client = client
        self.redis = redis
        self.cache_ttl = cache_ttl

    async def enrich(self, user_ids: Iterable[int]) -> dict[int, UserProfile]:
        """Map of user id to profile. Ids that cannot be resolved are absent.

        Never raises: upstream and cache failures are logged and degrade to
        a partial (possibly empty) mapping.
        """
        ids = list(dict.fromkeys(user_ids))
        if not ids:
            return {}

        profiles = await self._from_cache(ids)
        missing = [i for i in ids if i not in profiles]
        if not missing:
            return profiles

        try:
            fetched = await self.client.fetch_profiles(missing)
        except UpstreamUnavailableError as e:
            logger.warning(
                "user_profile_lookup_failed",
                user_ids=missing,
                error=e.message,
            )
            return profiles

        wanted = set(missing)
        fetched_map = {p.user_id: p for p in fetched if p.user_id in wanted}
        profiles.update(fetched_map)
        await self._to_cache(fetched_map.values())
        return profiles

    async def _from_cache(self, ids: list[int]) -> dict[int, UserProfile]:
        if self.redis is None:
            return {}
        try:
            cached = await asyncio.gather(
                *(self.redis.hgetall(user_profile_key(i)) for i in ids)
            )
        except Exception as e:
            logger.warning("user_profile_cache_read_failed", error=str(e))
            return {}

        return {
            user_id: UserProfile.from_cache(user_id, _decode(data))
            for user_id, data in zip(ids, cached, strict=True)
            if data
        }

    async def _to_cache(self, profiles: Iterable[UserProfile]) -> None:
        if self.redis is None:
            return
        try:
            async with self.redis.pipeline(transaction=False) as pipe:
                for profile in profiles:
                    key = user_profile_key(profile.user_id)
                    pipe.hset(key, mapping=profile.to_cache())
                    pipe.expire(key, self.cache_ttl)
                await pipe.execute()
        except Exception as e:
            logger.warning("user_profile_cache_write_failed", error=str(e))


def _decode(data: dict[Any, Any]) -> dict[str, str]:
    return {
        (k.decode() if isinstance(k, bytes) else k): (
            v.decode() if isinstance(v, bytes) else v
        )
        for k, v in data.items()
    }
