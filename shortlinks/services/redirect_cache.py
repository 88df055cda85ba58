"""
Redirect Cache

Optional read-through cache for the redirect path, shared by every worker
through Redis. Only active records are stored. Expiry is not baked into an
entry: the resolver re-checks expires_at on every hit, so a cached link still
turns into EXPIRED on time.

Each short code has a generation counter next to its entry. invalidate()
bumps the counter and drops the entry in one MULTI block; a reader takes the
generation before its database lookup and store() only writes if the counter
is unchanged. A lookup that read a row just before a soft delete can
therefore never put that row back into the cache.

Redis errors are logged and treated as a miss; the database stays the source
of truth.
"""

import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError, WatchError

logger = logging.getLogger(__name__)

KEY_PREFIX = "shortlinks:redirect"

# Generation counters outlive any in-flight lookup by a wide margin
GENERATION_TTL = 24 * 60 * 60


@dataclass(frozen=True)
class CachedRedirect:
    original_url: str
    expires_at: Optional[datetime]
    title: Optional[str]
    description: Optional[str]
    image_url: Optional[str]

    def to_json(self) -> str:
        data = asdict(self)
        data["expires_at"] = self.expires_at.isoformat() if self.expires_at else None
        return json.dumps(data)

    @classmethod
    def from_json(cls, raw: str) -> "CachedRedirect":
        data = json.loads(raw)
        if data["expires_at"] is not None:
            data["expires_at"] = datetime.fromisoformat(data["expires_at"])
        return cls(**data)


class RedirectCache:
    """Redis-backed cache keyed by short code, with per-code generations."""

    def __init__(self, client: redis.Redis, ttl_seconds: int = 60):
        """
        Args:
            client: redis.asyncio client created with decode_responses=True
            ttl_seconds: How long an entry is served before it is re-read
        """
        self.client = client
        self.ttl_seconds = ttl_seconds

    @classmethod
    def from_url(cls, redis_url: str, ttl_seconds: int = 60) -> "RedirectCache":
        client = redis.from_url(redis_url, encoding="utf-8", decode_responses=True)
        logger.info(f"Redirect cache enabled with TTL={ttl_seconds}s")
        return cls(client, ttl_seconds=ttl_seconds)

    @staticmethod
    def entry_key(short_code: str) -> str:
        return f"{KEY_PREFIX}:{short_code}"

    @staticmethod
    def generation_key(short_code: str) -> str:
        return f"{KEY_PREFIX}:gen:{short_code}"

    async def get(self, short_code: str) -> Optional[CachedRedirect]:
        try:
            raw = await self.client.get(self.entry_key(short_code))
        except RedisError as e:
            logger.error(f"Cache get error for {short_code}: {e}")
            return None
        if raw is None:
            return None
        return CachedRedirect.from_json(raw)

    async def generation(self, short_code: str) -> Optional[int]:
        """Current generation of short_code, or None if Redis is unreachable."""
        try:
            value = await self.client.get(self.generation_key(short_code))
        except RedisError as e:
            logger.error(f"Cache generation error for {short_code}: {e}")
            return None
        return int(value or 0)

    async def store(self, short_code: str, entry: CachedRedirect, generation: Optional[int]) -> bool:
        """
        Cache entry unless short_code was invalidated since generation was read.

        Returns:
            True if the entry was written
        """
        if generation is None:
            return False

        generation_key = self.generation_key(short_code)
        try:
            async with self.client.pipeline(transaction=True) as pipe:
                await pipe.watch(generation_key)
                current = int(await pipe.get(generation_key) or 0)
                if current != generation:
                    await pipe.unwatch()
                    return False
                pipe.multi()
                pipe.setex(self.entry_key(short_code), self.ttl_seconds, entry.to_json())
                await pipe.execute()
        except WatchError:
            # invalidate() ran between the check and EXEC
            return False
        except RedisError as e:
            logger.error(f"Cache set error for {short_code}: {e}")
            return False
        return True

    async def invalidate(self, short_code: str) -> None:
        generation_key = self.generation_key(short_code)
        try:
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.incr(generation_key)
                pipe.expire(generation_key, GENERATION_TTL)
                pipe.delete(self.entry_key(short_code))
                await pipe.execute()
        except RedisError as e:
            logger.error(f"Cache invalidate error for {short_code}: {e}")

    async def close(self) -> None:
        await self.client.aclose()
        logger.info("Redis connection closed")
