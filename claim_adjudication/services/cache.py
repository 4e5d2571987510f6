"""
Redis Cache Service
Read-through caching of claim listings and aggregates

Entries live in one of two views of the claims table:

    {prefix}:own:{principal}:{scope}:{digest}   claims created by the principal
    {prefix}:all:{principal}:{scope}:{digest}   every claim (admin principals)

A change to a claim owned by X drops X's own view and every all-claims view.
Each view carries a generation counter, bumped before the entries are dropped;
a read stores its result only if the counter has not moved since the read
began, so a query racing a write never re-populates the cache with the
pre-write result.
"""

import asyncio
import hashlib
import json
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any, Optional, TypeVar
from urllib.parse import quote

from redis.asyncio import Redis
from redis.exceptions import RedisError

from claim_adjudication.api.config import settings
from claim_adjudication.utils.errors import DependencyError
from claim_adjudication.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

# KEYS[1] entry, KEYS[2] generation; ARGV expected generation, ttl, payload
_SET_IF_GENERATION = """
if (redis.call('GET', KEYS[2]) or '0') == ARGV[1] then
    redis.call('SETEX', KEYS[1], ARGV[2], ARGV[3])
    return 1
end
return 0
"""


class CacheService:
    """
    Redis cache service.

    Every call is bounded by `operation_timeout`; Redis failures and timeouts
    are raised as DependencyError so callers can decide whether to degrade.
    """

    def __init__(
        self,
        redis_url: Optional[str] = None,
        operation_timeout: Optional[float] = None,
        default_ttl: Optional[int] = None,
    ):
        self._redis_url = redis_url or settings.redis_url
        self._operation_timeout = operation_timeout or settings.CACHE_OPERATION_TIMEOUT
        self._default_ttl = default_ttl or settings.CACHE_TTL
        self._redis: Redis | None = None

    async def connect(self) -> None:
        """Connect to Redis"""
        if self._redis is None:
            self._redis = Redis.from_url(
                self._redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
            logger.info("Redis client created")

    async def disconnect(self) -> None:
        """Disconnect from Redis"""
        if self._redis:
            await self._redis.aclose()
            self._redis = None
            logger.info("Disconnected from Redis")

    async def _run(self, operation: str, coro_factory: Callable[[Redis], Awaitable[T]]) -> T:
        if self._redis is None:
            await self.connect()
        try:
            return await asyncio.wait_for(
                coro_factory(self._redis), timeout=self._operation_timeout
            )
        except asyncio.TimeoutError as e:
            raise DependencyError(
                f"Cache {operation} timed out", dependency="cache", original_error=e
            ) from e
        except (RedisError, OSError) as e:
            raise DependencyError(
                f"Cache {operation} failed: {e}", dependency="cache", original_error=e
            ) from e

    async def ping(self) -> bool:
        return bool(await self._run("ping", lambda r: r.ping()))

    async def get(self, key: str) -> Any | None:
        """
        Get value from cache.

        Returns:
            Cached value (JSON-decoded) or None if not found
        """
        value = await self._run("get", lambda r: r.get(key))
        if value is None:
            return None
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """
        Set value in cache.

        Args:
            key: Cache key
            value: JSON-serializable value
            ttl: Time to live in seconds (default: from settings)
        """
        ttl = ttl or self._default_ttl
        payload = json.dumps(value)
        await self._run("set", lambda r: r.setex(key, ttl, payload))

    async def generation(self, key: str) -> int:
        """Current value of a generation counter; 0 if never bumped."""
        value = await self._run("generation", lambda r: r.get(key))
        return int(value) if value is not None else 0

    async def bump_generation(self, key: str) -> int:
        return int(await self._run("bump", lambda r: r.incr(key)))

    async def set_if_generation(
        self,
        key: str,
        value: Any,
        ttl: int | None,
        generation_key: str,
        generation: int,
    ) -> bool:
        """
        Store `value` only while `generation_key` still holds `generation`.

        The check and the write run as one Lua script.

        Returns:
            True if the value was stored
        """
        ttl = ttl or self._default_ttl
        payload = json.dumps(value)
        stored = await self._run(
            "set",
            lambda r: r.eval(
                _SET_IF_GENERATION, 2, key, generation_key, str(generation), ttl, payload
            ),
        )
        return bool(stored)

    async def clear_pattern(self, pattern: str) -> int:
        """
        Clear all keys matching pattern.

        Args:
            pattern: Redis key pattern (e.g., "claims:own:user-1:*")

        Returns:
            Number of keys deleted
        """

        async def _clear(r: Redis) -> int:
            keys = [key async for key in r.scan_iter(match=pattern)]
            if keys:
                return await r.delete(*keys)
            return 0

        return await self._run("clear", _clear)


@dataclass(frozen=True)
class CacheView:
    """Key namespace of one principal's view of the claims."""

    prefix: str
    generation_key: str


class ReadThroughCache:
    """
    Read-through cache for per-principal query results.

    A hit returns the stored value without calling `compute`. A miss calls
    `compute`, stores the result and returns it. When the cache provider is
    unavailable reads fall through to `compute` and writes are skipped.
    """

    OWN_VIEW = "own"
    ALL_VIEW = "all"

    def __init__(
        self,
        backend: CacheService,
        enabled: bool = True,
        key_prefix: Optional[str] = None,
        default_ttl: Optional[int] = None,
    ):
        self._backend = backend
        self._enabled = enabled
        self._prefix = key_prefix or settings.CACHE_KEY_PREFIX
        self._default_ttl = default_ttl or settings.CACHE_TTL

    # =========================================================================
    # Key Generation
    # =========================================================================

    def view(self, principal_id: str, sees_all: bool = False) -> CacheView:
        """
        Namespace for a principal's reads.

        `sees_all` selects the all-claims view used by admin principals.
        """
        # Quoting removes ':' and glob characters, so prefixes never overlap
        principal = quote(principal_id, safe="")
        if sees_all:
            return CacheView(
                prefix=f"{self._prefix}:{self.ALL_VIEW}:{principal}:",
                generation_key=f"{self._prefix}:gen:{self.ALL_VIEW}",
            )
        return CacheView(
            prefix=f"{self._prefix}:{self.OWN_VIEW}:{principal}:",
            generation_key=f"{self._prefix}:gen:{self.OWN_VIEW}:{principal}",
        )

    def build_key(self, view: CacheView, scope: str, params: dict[str, Any]) -> str:
        """
        Deterministic key for a query.

        Identical parameter sets in the same view map to the same key
        regardless of argument order; None-valued parameters are ignored.
        """
        canonical = json.dumps(
            {k: v for k, v in params.items() if v is not None},
            sort_keys=True,
            separators=(",", ":"),
            default=str,
        )
        digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:32]
        return f"{view.prefix}{scope}:{digest}"

    # =========================================================================
    # Read Through
    # =========================================================================

    async def wrap(
        self,
        key: str,
        ttl_seconds: Optional[int],
        compute: Callable[[], Awaitable[Any]],
        generation_key: Optional[str] = None,
    ) -> Any:
        """
        Return the cached value for `key`, computing and storing it on a miss.

        With a `generation_key` the result is only stored if no invalidation
        of that view happened while `compute` ran.
        """
        if not self._enabled:
            return await compute()

        try:
            cached = await self._backend.get(key)
            if cached is not None:
                logger.debug(f"Cache hit: {key}")
                return cached
            generation = (
                await self._backend.generation(generation_key)
                if generation_key
                else None
            )
        except DependencyError as e:
            logger.warning(f"Cache unavailable, reading through: {e.detail}")
            return await compute()

        value = await compute()
        ttl = ttl_seconds or self._default_ttl
        try:
            if generation_key is None:
                await self._backend.set(key, value, ttl)
            elif not await self._backend.set_if_generation(
                key, value, ttl, generation_key, generation
            ):
                logger.debug(f"Cache store skipped for {key}: invalidated during read")
        except DependencyError as e:
            logger.warning(f"Cache store skipped for {key}: {e.detail}")
        return value

    # =========================================================================
    # Invalidation
    # =========================================================================

    async def invalidate(self, owner_ids: Iterable[str]) -> int:
        """
        Drop every view that can see claims created by `owner_ids`.

        That is each owner's own view plus the all-claims view of every
        admin. Best effort: failures are logged and never raised.
        """
        if not self._enabled:
            return 0

        views = [
            (f"{self._prefix}:{self.ALL_VIEW}:*", f"{self._prefix}:gen:{self.ALL_VIEW}")
        ]
        for owner_id in sorted(set(owner_ids)):
            view = self.view(owner_id)
            views.append((f"{view.prefix}*", view.generation_key))

        removed = 0
        for pattern, generation_key in views:
            try:
                await self._backend.bump_generation(generation_key)
                removed += await self._backend.clear_pattern(pattern)
            except DependencyError as e:
                logger.warning(f"Cache invalidation failed for {pattern}: {e.detail}")
        return removed


# Global cache instance
cache = CacheService()
