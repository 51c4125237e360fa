# -----------------------------------------------------------------------------
# Author: Frank Campbell Bogle
# Created: 2026-10-08
# Description: RedisExclusionCache
# -----------------------------------------------------------------------------
from datetime import tzinfo
from typing import Iterable, Optional, Set

import redis.asyncio as redis

import settings
from cache.ExclusionCache import (
    exclusion_key,
    local_now,
    resolve_timezone,
    retry_key,
    seconds_until_midnight,
)
from utility.logging_utils import get_class_logger


class RedisExclusionCache:
    """
    Redis-backed exclusion sets and re-roll counters.

    Keys carry the local date, and every write refreshes the TTL to "seconds
    until next local midnight", so a day's state disappears on its own.
    """

    def __init__(
            self,
            redis_url: str,
            *,
            client: Optional[redis.Redis] = None,
            tz: Optional[tzinfo] = None,
            prefix: str = settings.EXCLUSION_KEY_PREFIX,
            logger=None,
    ):
        self.logger = logger or get_class_logger(self.__class__)
        self.tz = tz if tz is not None else resolve_timezone()
        self.prefix = prefix
        self.client: redis.Redis = client or redis.Redis.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
        )
        self.logger.info("Redis exclusion cache initialised: %s", redis_url.split("@")[-1])

    def _day_and_ttl(self):
        now = local_now(self.tz)
        return now.date().isoformat(), seconds_until_midnight(now)

    async def get(self, user_id: str, scope_key: str) -> Set[str]:
        day, _ = self._day_and_ttl()
        members = await self.client.smembers(exclusion_key(user_id, scope_key, day, self.prefix))
        return set(members or ())

    async def append(self, user_id: str, scope_key: str, ids: Iterable[str]) -> None:
        ids = [i for i in ids if i]
        if not ids:
            return
        day, ttl = self._day_and_ttl()
        key = exclusion_key(user_id, scope_key, day, self.prefix)
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.sadd(key, *ids)
            pipe.expire(key, ttl)
            await pipe.execute()
        self.logger.debug("Appended %d id(s) to %s (ttl=%ds)", len(ids), key, ttl)

    async def increment_retry(self, user_id: str, scope_key: str) -> int:
        day, ttl = self._day_and_ttl()
        key = retry_key(user_id, scope_key, day, self.prefix)
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.incr(key)
            pipe.expire(key, ttl)
            value, _ = await pipe.execute()
        return int(value)

    async def retry_count(self, user_id: str, scope_key: str) -> int:
        day, _ = self._day_and_ttl()
        value = await self.client.get(retry_key(user_id, scope_key, day, self.prefix))
        return int(value) if value else 0

    async def test_connection(self) -> bool:
        try:
            return bool(await self.client.ping())
        except Exception as e:
            self.logger.error("Redis connection failed: %s", e)
            return False

    async def close(self) -> None:
        await self.client.aclose()
