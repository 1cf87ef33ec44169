import asyncio
import time
from typing import Dict, List, Optional, Sequence, Tuple, Union

import redis.asyncio as redis

from . import config

# Key names shared by producers and consumers
WORK_QUEUE = "job_queue"
DEAD_LETTER_QUEUE = "job_dlq"
JOBS_HASH = "jobs"
CLAIM_PREFIX = "job_claim:"

_BLPOP_TICK = 0.01


class AsyncInMemoryRedis:
    """Single-process stand-in for the handful of Redis commands jobflow uses."""

    def __init__(self):
        self._hashes: Dict[str, Dict[str, str]] = {}
        self._lists: Dict[str, List[str]] = {}
        self._strings: Dict[str, Tuple[str, Optional[float]]] = {}

    async def ping(self):
        return True

    async def hset(self, name: str, key: str, value: str):
        h = self._hashes.setdefault(name, {})
        created = key not in h
        h[key] = value
        return int(created)

    async def hget(self, name: str, key: str) -> Optional[str]:
        h = self._hashes.get(name, {})
        return h.get(key)

    async def hgetall(self, name: str) -> Dict[str, str]:
        return dict(self._hashes.get(name, {}))

    async def set(self, name: str, value: str, ex: Optional[int] = None, nx: bool = False):
        if nx and await self.get(name) is not None:
            return None
        expires_at = time.time() + ex if ex else None
        self._strings[name] = (value, expires_at)
        return True

    async def get(self, name: str) -> Optional[str]:
        entry = self._strings.get(name)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= time.time():
            del self._strings[name]
            return None
        return value

    async def rpush(self, name: str, *values: str):
        lst = self._lists.setdefault(name, [])
        for v in values:
            lst.append(v)
        return len(lst)

    async def lpop(self, name: str) -> Optional[str]:
        lst = self._lists.get(name, [])
        if not lst:
            return None
        return lst.pop(0)

    async def blpop(self, keys: Union[str, Sequence[str]], timeout: float = 0) -> Optional[Tuple[str, str]]:
        if isinstance(keys, str):
            keys = [keys]
        deadline = time.monotonic() + timeout if timeout else None
        while True:
            for key in keys:
                value = await self.lpop(key)
                if value is not None:
                    return key, value
            if deadline is not None and time.monotonic() >= deadline:
                return None
            await asyncio.sleep(_BLPOP_TICK)

    async def lrange(self, name: str, start: int, end: int) -> List[str]:
        lst = self._lists.get(name, [])
        # Redis ranges are inclusive; -1 means the last element
        stop = None if end == -1 else end + 1
        return list(lst[start:stop])

    async def llen(self, name: str) -> int:
        return len(self._lists.get(name, []))


# Singleton in-memory client for testing
_inmemory_client: Optional[AsyncInMemoryRedis] = None

# One client (and connection pool) per URL for the life of the process
_clients: Dict[str, redis.Redis] = {}


async def get_redis(url: str = config.REDIS_URL):
    global _inmemory_client
    if config.TESTING:
        if _inmemory_client is None:
            _inmemory_client = AsyncInMemoryRedis()
        return _inmemory_client
    client = _clients.get(url)
    if client is None:
        client = _clients[url] = redis.Redis.from_url(url, decode_responses=True)
    return client


async def close_redis() -> None:
    clients = list(_clients.values())
    _clients.clear()
    for client in clients:
        await client.aclose()


def reset_inmemory_redis() -> None:
    global _inmemory_client
    _inmemory_client = None
