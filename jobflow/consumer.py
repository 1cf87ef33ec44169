"""The consumer loop: pop an id, claim the job, run its handler, finalize.

Every iteration walks Idle -> Popped -> Claimed -> Dispatched -> Finalized. Store
and broker outages are retried in place after a fixed backoff; handler failures
are recorded on the job and drive retry versus dead-letter.
"""
import asyncio
import os
import socket
import time
from typing import Awaitable, Callable, Optional, TypeVar

from . import config
from . import metrics
from .broker import JobQueue
from .errors import AlreadyClaimed, InfrastructureError, IntegrityViolation, JobNotFound, UnknownJobType
from .handlers import HandlerRegistry
from .log import get_logger
from .models import Job, JobStatus, Outcome, Retry, Success, Terminal
from .store import JobStore

logger = get_logger(__name__)

T = TypeVar("T")

_OUTCOME_STATUS = {
    Success: JobStatus.COMPLETED,
    Retry: JobStatus.PENDING,
    Terminal: JobStatus.FAILED,
}


class Consumer:
    def __init__(
        self,
        store: JobStore,
        work_queue: JobQueue,
        dead_letter_queue: JobQueue,
        registry: HandlerRegistry,
        *,
        max_attempts: int = config.MAX_ATTEMPTS,
        infra_backoff_seconds: float = config.INFRA_BACKOFF_SECONDS,
        name: Optional[str] = None,
    ):
        self.store = store
        self.work_queue = work_queue
        self.dead_letter_queue = dead_letter_queue
        self.registry = registry
        self.max_attempts = max_attempts
        self.infra_backoff_seconds = infra_backoff_seconds
        # Also the claim token owner, so it has to be unique across processes
        self.name = name or f"{socket.gethostname()}-{os.getpid()}-{id(self)}"

    async def run(self, cancel: asyncio.Event) -> None:
        """Consume until `cancel` is set. An in-flight job is always finalized first."""
        logger.info("consumer_started", worker=self.name, max_attempts=self.max_attempts)
        while not cancel.is_set():
            job_id = await self._with_infra_retry(
                "pop", lambda: self.work_queue.pop_blocking(cancel), cancel=cancel
            )
            if job_id is None:
                continue
            try:
                await self.process(job_id)
            except Exception as exc:
                # An unreadable or inconsistent record must not stop the loop
                logger.exception("job_integrity_violation", worker=self.name, job_id=job_id, error=str(exc))
        logger.info("consumer_stopped", worker=self.name)

    async def process(self, job_id: str) -> Optional[Job]:
        """Handle one delivery of `job_id`. Returns the finalized job, or None if skipped."""
        logger.info("job_received", worker=self.name, job_id=job_id)

        try:
            job = await self._with_infra_retry(
                "claim", lambda: self.store.claim(job_id, owner=self.name)
            )
        except AlreadyClaimed as exc:
            if exc.status and JobStatus(exc.status).is_terminal:
                logger.info("job_skipped_terminal", worker=self.name, job_id=job_id, status=exc.status)
            else:
                logger.debug("job_already_claimed", worker=self.name, job_id=job_id, status=exc.status)
            return None
        except JobNotFound:
            logger.error("job_not_found", worker=self.name, job_id=job_id)
            return None

        outcome = await self._execute(job)
        return await self._finalize(job, outcome)

    async def _execute(self, job: Job) -> Outcome:
        logger.info(
            "job_processing_started",
            worker=self.name,
            job_id=job.id,
            job_type=job.type,
            attempt=job.attempts + 1,
        )
        start = time.time()
        metrics.jobs_in_flight.inc()
        try:
            handler = self.registry.resolve(job.type)
            result = await handler.execute(job.payload, job_id=job.id)
        except UnknownJobType as exc:
            # Retrying cannot make an unregistered type resolvable
            logger.error("job_failed", worker=self.name, job_id=job.id, job_type=job.type,
                         attempt=job.attempts + 1, error=str(exc))
            return Terminal(str(exc))
        except Exception as exc:
            attempts = job.attempts + 1
            logger.error("job_failed", worker=self.name, job_id=job.id, job_type=job.type,
                         attempt=attempts, error=str(exc))
            if attempts < self.max_attempts:
                return Retry(str(exc))
            return Terminal(str(exc))
        finally:
            metrics.jobs_in_flight.dec()
            metrics.jobs_executed_total.inc()
            metrics.execution_latency_seconds.observe(time.time() - start)

        return Success(result if result is not None else {})

    async def _finalize(self, job: Job, outcome: Outcome) -> Optional[Job]:
        try:
            final = await self._with_infra_retry(
                "finalize", lambda: self.store.finalize(job.id, outcome)
            )
        except IntegrityViolation as exc:
            final = await self._recover_applied_finalize(job, outcome)
            if final is None:
                logger.error("job_integrity_violation", worker=self.name, job_id=job.id, error=str(exc))
                return None

        if isinstance(outcome, Success):
            metrics.jobs_completed_total.inc()
            logger.info("job_completed", worker=self.name, job_id=job.id, attempts=final.attempts)
        elif isinstance(outcome, Retry):
            await self._with_infra_retry("requeue", lambda: self.work_queue.push(job.id))
            metrics.jobs_retried_total.inc()
            metrics.jobs_enqueued_total.inc()
            logger.warning("job_requeued", worker=self.name, job_id=job.id, attempt=final.attempts)
        else:
            await self._with_infra_retry("dead_letter", lambda: self.dead_letter_queue.push(job.id))
            metrics.jobs_dead_lettered_total.inc()
            logger.error(
                "job_moved_to_dlq",
                worker=self.name,
                job_id=job.id,
                attempts=final.attempts,
                dlq=self.dead_letter_queue.name,
                error=final.error,
            )
        return final

    async def _recover_applied_finalize(self, job: Job, outcome: Outcome) -> Optional[Job]:
        """A finalize retried after a lost reply may already have been written."""
        try:
            current = await self._with_infra_retry("reload", lambda: self.store.get(job.id))
        except JobNotFound:
            return None
        if current.status == _OUTCOME_STATUS[type(outcome)] and current.attempts == job.attempts + 1:
            return current
        return None

    async def _with_infra_retry(
        self,
        step: str,
        operation: Callable[[], Awaitable[T]],
        cancel: Optional[asyncio.Event] = None,
    ) -> Optional[T]:
        """Run `operation`, retrying store/broker outages after a fixed backoff.

        When `cancel` is given and set, gives up and returns None instead of retrying.
        """
        while True:
            try:
                return await operation()
            except InfrastructureError as exc:
                metrics.worker_infra_errors_total.inc()
                logger.error("worker_loop_error", worker=self.name, step=step, error=str(exc))
                if cancel is not None and cancel.is_set():
                    return None
                await asyncio.sleep(self.infra_backoff_seconds)
