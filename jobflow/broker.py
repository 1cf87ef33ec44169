import asyncio
from typing import List, Optional

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from . import config
from .errors import BrokerUnavailable

_INFRA_ERRORS = (RedisConnectionError, RedisTimeoutError, OSError)


class JobQueue:
    """FIFO list of job ids on Redis. Holds identifiers only, never payloads."""

    def __init__(self, redis_client, name: str, poll_seconds: float = config.WORKER_POLL_SECONDS):
        self.redis = redis_client
        self.name = name
        self.poll_seconds = poll_seconds

    async def push(self, job_id: str) -> None:
        try:
            await self.redis.rpush(self.name, job_id)
        except _INFRA_ERRORS as exc:
            raise BrokerUnavailable(str(exc)) from exc

    async def pop_blocking(self, cancel: asyncio.Event) -> Optional[str]:
        """Block until an id is available; return None once `cancel` is set.

        Waits in slices of `poll_seconds` so a cancellation is noticed within one
        slice even when the queue stays empty.
        """
        while not cancel.is_set():
            try:
                item = await self.redis.blpop([self.name], timeout=self.poll_seconds)
            except _INFRA_ERRORS as exc:
                raise BrokerUnavailable(str(exc)) from exc
            if item:
                return item[1]
        return None

    async def size(self) -> int:
        try:
            return await self.redis.llen(self.name)
        except _INFRA_ERRORS as exc:
            raise BrokerUnavailable(str(exc)) from exc

    async def peek(self) -> List[str]:
        try:
            return await self.redis.lrange(self.name, 0, -1)
        except _INFRA_ERRORS as exc:
            raise BrokerUnavailable(str(exc)) from exc
