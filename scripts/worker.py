#!/usr/bin/env python3
"""Worker process: runs WORKER_CONCURRENCY consumer loops against the shared
work queue (`job_queue`) and job store, dead-lettering exhausted jobs to `job_dlq`.

Usage:
  REDIS_URL=redis://localhost:6379/0 MAX_ATTEMPTS=2 python scripts/worker.py

SIGINT/SIGTERM stop new pops; jobs already claimed are finalized before exit.
Set TESTING=1 to use the in-memory AsyncInMemoryRedis implementation used by the tests.
"""
import asyncio
import os
import signal
import socket
from typing import List, Optional

from jobflow import config
from jobflow.broker import JobQueue
from jobflow.consumer import Consumer
from jobflow.handlers import HandlerRegistry, default_registry
from jobflow.log import get_logger, setup_logging
from jobflow.redis_helper import DEAD_LETTER_QUEUE, WORK_QUEUE, close_redis, get_redis
from jobflow.store import JobStore

logger = get_logger("jobflow.worker")


async def build_consumers(
    concurrency: int = config.WORKER_CONCURRENCY,
    registry: Optional[HandlerRegistry] = None,
) -> List[Consumer]:
    store_client = await get_redis(config.STORE_URL)
    broker_client = await get_redis(config.REDIS_URL)
    store = JobStore(store_client)
    work_queue = JobQueue(broker_client, WORK_QUEUE)
    dead_letter_queue = JobQueue(broker_client, DEAD_LETTER_QUEUE)
    registry = registry or default_registry()
    return [
        Consumer(store, work_queue, dead_letter_queue, registry,
                 name=f"{socket.gethostname()}-{os.getpid()}-{i + 1}")
        for i in range(concurrency)
    ]


async def run_worker(cancel: Optional[asyncio.Event] = None, concurrency: int = config.WORKER_CONCURRENCY):
    cancel = cancel or asyncio.Event()
    loop = asyncio.get_running_loop()
    installed = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _request_shutdown, cancel, sig)
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            # Not supported on this platform or outside the main thread
            pass

    try:
        consumers = await build_consumers(concurrency)
        logger.info("worker_started", concurrency=len(consumers), testing=config.TESTING)
        await asyncio.gather(*(c.run(cancel) for c in consumers))
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)
        await close_redis()
    logger.info("worker_shutdown_complete")


def _request_shutdown(cancel: asyncio.Event, sig: signal.Signals) -> None:
    logger.info("shutdown_signal_received", signal=sig.name)
    cancel.set()


if __name__ == "__main__":
    setup_logging()
    asyncio.run(run_worker())
