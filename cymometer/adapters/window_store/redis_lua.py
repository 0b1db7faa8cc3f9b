"""Redis-backed window store.

Each operation is a Lua script so eviction, counting and the admission
decision happen inside one atomic server-side call. Scripts are executed by
digest (EVALSHA); a server that has not cached a script yet answers
NOSCRIPT, in which case the script is loaded and the call retried once.

Works with any client exposing redis-py's ``evalsha``/``script_load``
(``redis.Redis``, ``redis.RedisCluster`` for single-key calls, fakeredis).
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from redis.exceptions import NoScriptError, RedisError

from cymometer.adapters.window_store.base import AbstractWindowStore, IncrementResult
from cymometer.core.errors import BackingStoreCommunicationError
from cymometer.core.logging import get_logger, hash_key

if TYPE_CHECKING:
    import redis

logger = get_logger(__name__)


INCREMENT_SCRIPT = """
local key = KEYS[1]
local current_time = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])
local member = ARGV[4]

redis.call('ZREMRANGEBYSCORE', key, 0, current_time - window)

local count = redis.call('ZCOUNT', key, current_time - window, '+inf')

if count >= limit then
  return {0, count}
end

redis.call('ZADD', key, current_time, member)
redis.call('EXPIRE', key, math.floor(window / 1000000))
return {1, count + 1}
"""

DECREMENT_SCRIPT = """
local key = KEYS[1]
local current_time = tonumber(ARGV[1])
local window = tonumber(ARGV[2])

redis.call('ZREMRANGEBYSCORE', key, 0, current_time - window)

local entries = redis.call('ZRANGEBYSCORE', key, current_time - window, '+inf', 'LIMIT', 0, 1)

if #entries == 0 then
  return 0
end

redis.call('ZREM', key, entries[1])
return redis.call('ZCOUNT', key, current_time - window, '+inf')
"""

COUNT_SCRIPT = """
local key = KEYS[1]
local current_time = tonumber(ARGV[1])
local window = tonumber(ARGV[2])

redis.call('ZREMRANGEBYSCORE', key, 0, current_time - window)
return redis.call('ZCOUNT', key, current_time - window, '+inf')
"""


@dataclass(frozen=True)
class LuaScript:
    """A script body and the SHA1 digest Redis caches it under."""

    name: str
    source: str
    sha: str = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "sha", hashlib.sha1(self.source.encode()).hexdigest())


INCREMENT = LuaScript("increment", INCREMENT_SCRIPT)
DECREMENT = LuaScript("decrement", DECREMENT_SCRIPT)
COUNT = LuaScript("count", COUNT_SCRIPT)


class RedisWindowStore(AbstractWindowStore):
    """Window store backed by Redis sorted sets.

    The client is shared, never owned: connection pooling and thread-safety
    follow whatever the given client provides.
    """

    def __init__(self, client: "redis.Redis") -> None:
        self._client = client

    @property
    def client(self) -> "redis.Redis":
        return self._client

    def _evalsha(self, script: LuaScript, key: str, *args: Any) -> Any:
        try:
            try:
                return self._client.evalsha(script.sha, 1, key, *args)
            except NoScriptError:
                logger.info(
                    "window_store.script_reload",
                    extra={"script": script.name, "key_hash": hash_key(key)},
                )
                self._client.script_load(script.source)
                return self._client.evalsha(script.sha, 1, key, *args)
        except RedisError as exc:
            logger.error(
                "window_store.error",
                extra={
                    "script": script.name,
                    "key_hash": hash_key(key),
                    "error_type": type(exc).__name__,
                },
            )
            raise BackingStoreCommunicationError(
                code="backing_store_error",
                message=f"Redis failed to run the {script.name} script: {exc}",
                details={"script": script.name},
            ) from exc

    def try_increment(
        self,
        key: str,
        now_us: int,
        window_us: int,
        limit: int,
        member: str | None = None,
    ) -> IncrementResult:
        admitted, count = self._evalsha(
            INCREMENT, key, now_us, window_us, limit, member or str(now_us)
        )
        return IncrementResult(admitted=int(admitted) == 1, count=int(count))

    def decrement(self, key: str, now_us: int, window_us: int) -> int:
        return int(self._evalsha(DECREMENT, key, now_us, window_us))

    def count(self, key: str, now_us: int, window_us: int) -> int:
        return int(self._evalsha(COUNT, key, now_us, window_us))
