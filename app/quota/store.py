"""
Redis-backed quota counters.

Each admission is one Lua script, so check-and-record is atomic per key:
concurrent requests for the same user and endpoint can never both take
the last slot.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import uuid4

from redis.asyncio import Redis

logger = logging.getLogger(__name__)

HOURLY_WINDOW_SECONDS = 3600
HOURLY_KEY_TTL_SECONDS = 2 * 3600

# KEYS[1] = sorted set of admission timestamps
# ARGV = now, window, limit, member, ttl
HOURLY_WINDOW_SCRIPT = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])

redis.call('ZREMRANGEBYSCORE', key, '-inf', '(' .. (now - window))
local count = redis.call('ZCARD', key)
if count < limit then
    redis.call('ZADD', key, now, ARGV[4])
    redis.call('EXPIRE', key, tonumber(ARGV[5]))
    return {1, count + 1}
end
return {0, count}
"""

# KEYS[1] = monthly counter
# ARGV = limit, ttl
MONTHLY_COUNTER_SCRIPT = """
local key = KEYS[1]
local limit = tonumber(ARGV[1])

redis.call('SET', key, 0, 'EX', tonumber(ARGV[2]), 'NX')
local value = redis.call('INCR', key)
if value > limit then
    redis.call('DECR', key)
    return {0, value - 1}
end
return {1, value}
"""

# KEYS[1] = monthly counter
RELEASE_MONTHLY_SCRIPT = """
local value = tonumber(redis.call('GET', KEYS[1]) or '0')
if value > 0 then
    return redis.call('DECR', KEYS[1])
end
return 0
"""


@dataclass
class CounterResult:
    """Outcome of one counter hit. `count` includes this request only when allowed."""
    allowed: bool
    count: int


def hourly_key(user_key: str, endpoint: str) -> str:
    return f"rate_limit:v1:{user_key}:{endpoint}:1h"


def monthly_key(user_key: str, endpoint: str, now: datetime) -> str:
    return f"rate_limit:monthly:v1:{user_key}:{endpoint}:{now.strftime('%Y-%m')}"


class QuotaStore:
    """Atomic hourly sliding-window and monthly fixed-window counters."""

    def __init__(self, redis: Redis):
        self.redis = redis
        self._hourly_script = redis.register_script(HOURLY_WINDOW_SCRIPT)
        self._monthly_script = redis.register_script(MONTHLY_COUNTER_SCRIPT)
        self._release_monthly_script = redis.register_script(RELEASE_MONTHLY_SCRIPT)

    async def hit_hourly(
        self,
        user_key: str,
        endpoint: str,
        limit: int,
        now: datetime,
    ) -> CounterResult:
        """
        Admit one request into the trailing one-hour window if it has room.

        Entries strictly older than one hour are evicted first; a rejected
        request is not recorded.
        """
        key = hourly_key(user_key, endpoint)
        ts = now.timestamp()
        allowed, count = await self._hourly_script(
            keys=[key],
            args=[ts, HOURLY_WINDOW_SECONDS, limit, f"{ts:.6f}-{uuid4().hex}", HOURLY_KEY_TTL_SECONDS],
        )
        logger.debug(f"[QuotaStore] hourly {key}: allowed={allowed} count={count}/{limit}")
        return CounterResult(allowed=bool(allowed), count=int(count))

    async def hit_monthly(
        self,
        user_key: str,
        endpoint: str,
        limit: int,
        now: datetime,
        ttl_seconds: int,
    ) -> CounterResult:
        """
        Increment the calendar-month counter, rolling back if it would pass the limit.
        """
        key = monthly_key(user_key, endpoint, now)
        allowed, count = await self._monthly_script(
            keys=[key],
            args=[limit, max(1, ttl_seconds)],
        )
        logger.debug(f"[QuotaStore] monthly {key}: allowed={allowed} count={count}/{limit}")
        return CounterResult(allowed=bool(allowed), count=int(count))

    async def release_monthly(self, user_key: str, endpoint: str, now: datetime) -> int:
        """Give back one monthly slot taken by a request that was then rejected hourly."""
        key = monthly_key(user_key, endpoint, now)
        value = await self._release_monthly_script(keys=[key], args=[])
        logger.debug(f"[QuotaStore] monthly {key}: released, count={value}")
        return int(value)

    async def hourly_count(self, user_key: str, endpoint: str) -> int:
        return int(await self.redis.zcard(hourly_key(user_key, endpoint)))

    async def monthly_count(self, user_key: str, endpoint: str, now: datetime) -> int:
        value = await self.redis.get(monthly_key(user_key, endpoint, now))
        return int(value) if value is not None else 0
