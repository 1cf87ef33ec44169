"""Durable job records kept in Redis.

Each job is a JSON document under the `jobs` hash. Claiming is a compare-and-set:
the claimer has to win a `SET NX` on a key derived from the job id and its
current attempt count, so for any given attempt exactly one consumer can move
the job into `processing`, across processes as well as within one.
"""
import time
import uuid
from typing import Any, Optional

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from . import config
from .errors import AlreadyClaimed, IntegrityViolation, InvalidInput, JobNotFound, StoreUnavailable
from .models import Job, JobStatus, Outcome, Retry, Success, Terminal
from .redis_helper import CLAIM_PREFIX, JOBS_HASH

_INFRA_ERRORS = (RedisConnectionError, RedisTimeoutError, OSError)


class JobStore:
    def __init__(self, redis_client, claim_ttl_seconds: int = config.CLAIM_TTL_SECONDS):
        self.redis = redis_client
        self.claim_ttl_seconds = claim_ttl_seconds

    async def create(self, job_type: Optional[str], payload: Any = None) -> str:
        if not job_type or not str(job_type).strip():
            raise InvalidInput("Job type is required")
        now = time.time()
        job = Job(
            id=str(uuid.uuid4()),
            type=job_type,
            payload={} if payload is None else payload,
            created_at=now,
            updated_at=now,
        )
        await self._save(job)
        return job.id

    async def get(self, job_id: str) -> Job:
        try:
            raw = await self.redis.hget(JOBS_HASH, job_id)
        except _INFRA_ERRORS as exc:
            raise StoreUnavailable(str(exc)) from exc
        if raw is None:
            raise JobNotFound(job_id)
        return Job.model_validate_json(raw)

    async def claim(self, job_id: str, owner: str = "worker") -> Job:
        """Move `job_id` from pending to processing on behalf of `owner`.

        Safe to call again after a `StoreUnavailable`: a token already held by
        `owner` for the current attempt counts as a win, so a claim whose token
        write or record write was cut off resumes instead of being lost.
        """
        job = await self.get(job_id)
        token = f"{CLAIM_PREFIX}{job_id}:{job.attempts}"

        if job.status == JobStatus.PROCESSING and await self._token_owner(token) == owner:
            return job
        if job.status != JobStatus.PENDING:
            raise AlreadyClaimed(job_id, job.status.value)

        try:
            won = await self.redis.set(token, owner, nx=True, ex=self.claim_ttl_seconds)
        except _INFRA_ERRORS as exc:
            raise StoreUnavailable(str(exc)) from exc
        if not won and await self._token_owner(token) != owner:
            raise AlreadyClaimed(job_id, JobStatus.PROCESSING.value)

        # Holding the token for this attempt, nobody else can move the record
        job.status = JobStatus.PROCESSING
        job.updated_at = time.time()
        await self._save(job)
        return job

    async def finalize(self, job_id: str, outcome: Outcome) -> Job:
        job = await self.get(job_id)
        if job.status != JobStatus.PROCESSING:
            raise IntegrityViolation(
                f"cannot finalize job {job_id}: status is {job.status.value}, expected processing"
            )

        job.attempts += 1
        if isinstance(outcome, Success):
            job.status = JobStatus.COMPLETED
            job.result = outcome.result
        elif isinstance(outcome, Retry):
            job.status = JobStatus.PENDING
            job.result = None
            job.error = outcome.error
        elif isinstance(outcome, Terminal):
            job.status = JobStatus.FAILED
            job.result = None
            job.error = outcome.error
        else:
            raise TypeError(f"unsupported outcome: {outcome!r}")

        job.updated_at = time.time()
        await self._save(job)
        return job

    async def ping(self) -> bool:
        try:
            return bool(await self.redis.ping())
        except _INFRA_ERRORS as exc:
            raise StoreUnavailable(str(exc)) from exc

    async def _token_owner(self, token: str) -> Optional[str]:
        try:
            return await self.redis.get(token)
        except _INFRA_ERRORS as exc:
            raise StoreUnavailable(str(exc)) from exc

    async def _save(self, job: Job) -> None:
        try:
            await self.redis.hset(JOBS_HASH, job.id, job.model_dump_json())
        except _INFRA_ERRORS as exc:
            raise StoreUnavailable(str(exc)) from exc
