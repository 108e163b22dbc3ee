"""
Versioned booking session storage in Redis.

Each wizard session is one JSON string under ``booking:session:{id}`` with a
sliding TTL. Writes go through a Lua script so a save only lands when the
stored ``version`` still matches what the caller loaded.
"""

import logging
from typing import Optional

import redis.asyncio as redis

from app.config import REDIS_URL

logger = logging.getLogger(__name__)

MAX_CONNECTIONS = 20
CONNECT_TIMEOUT_SECONDS = 5

# KEYS[1] session key, ARGV[1] expected version (0 = key must not exist),
# ARGV[2] JSON payload, ARGV[3] TTL in seconds. Returns 1 on write, 0 otherwise.
VERSIONED_WRITE_SCRIPT = """
local expected = tonumber(ARGV[1])
local stored = redis.call('GET', KEYS[1])
local stored_version = 0
if stored then
    stored_version = cjson.decode(stored).version
end
if stored_version ~= expected then
    return 0
end
redis.call('SET', KEYS[1], ARGV[2], 'EX', tonumber(ARGV[3]))
return 1
"""


class RedisClient:
    """Async Redis wrapper exposing only what the session manager needs."""

    def __init__(self, url: Optional[str] = None):
        self.url = url or REDIS_URL
        self._redis: Optional[redis.Redis] = None
        self._versioned_write = None
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def connection(self) -> redis.Redis:
        if not self._connected or self._redis is None:
            raise RuntimeError("Session store is not connected")
        return self._redis

    async def connect(self) -> None:
        """Open the pool, check the server answers, load the write script."""
        if self._connected:
            return

        client = redis.from_url(
            self.url,
            decode_responses=True,
            max_connections=MAX_CONNECTIONS,
            socket_connect_timeout=CONNECT_TIMEOUT_SECONDS,
            health_check_interval=30,
        )
        try:
            await client.ping()
        except redis.RedisError:
            await client.aclose()
            logger.error("Session store unreachable at %s", self.url)
            raise

        self._redis = client
        self._versioned_write = client.register_script(VERSIONED_WRITE_SCRIPT)
        self._connected = True
        logger.info("Session store connected at %s", self.url)

    async def close(self) -> None:
        if self._redis is None:
            return
        try:
            await self._redis.aclose()
        finally:
            self._redis = None
            self._versioned_write = None
            self._connected = False
        logger.info("Session store connection closed")

    async def cas_set(self, key: str, expected_version: int, new_value: str, ttl: int) -> bool:
        """Store ``new_value`` if the current version is ``expected_version``.

        False means another request saved the session first.
        """
        if not self._connected:
            raise RuntimeError("Session store is not connected")
        written = await self._versioned_write(keys=[key], args=[expected_version, new_value, ttl])
        if not written:
            logger.info("Version check rejected write to %s (expected v%s)", key, expected_version)
        return written == 1

    async def get(self, key: str) -> Optional[str]:
        return await self.connection.get(key)

    async def delete(self, key: str) -> int:
        return await self.connection.delete(key)


redis_client = RedisClient()
