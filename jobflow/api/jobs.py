import time
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from ..schemas import JobCreate, JobCreated, JobStatusResponse
from .. import config
from .. import redis_helper
from .. import metrics
from ..broker import JobQueue
from ..errors import InfrastructureError
from ..log import get_logger
from ..store import JobStore

router = APIRouter()
logger = get_logger(__name__)


async def get_store() -> JobStore:
    return JobStore(await redis_helper.get_redis(config.STORE_URL))


async def get_work_queue() -> JobQueue:
    return JobQueue(await redis_helper.get_redis(config.REDIS_URL), redis_helper.WORK_QUEUE)


@router.post("/jobs", response_model=JobCreated, status_code=201)
async def create_job(
    job: JobCreate,
    store: JobStore = Depends(get_store),
    work_queue: JobQueue = Depends(get_work_queue),
):
    metrics.jobs_submitted_total.inc()
    start = time.time()
    try:
        job_id = await store.create(job.type, job.payload)
        await work_queue.push(job_id)
        metrics.jobs_enqueued_total.inc()
    except InfrastructureError as exc:
        metrics.error_count.inc()
        logger.error("job_create_failed", error=str(exc))
        return JSONResponse(status_code=500, content={"error": "Failed to create job"})
    finally:
        metrics.enqueue_latency_seconds.observe(time.time() - start)

    logger.info("job_created", job_id=job_id, job_type=job.type)
    return JobCreated(job_id=job_id, status="pending")


@router.get("/jobs/{job_id}", response_model=JobStatusResponse)
async def get_job(job_id: str, store: JobStore = Depends(get_store)):
    try:
        data = await store.get(job_id)
    except InfrastructureError as exc:
        metrics.error_count.inc()
        logger.error("job_fetch_failed", job_id=job_id, error=str(exc))
        return JSONResponse(status_code=500, content={"error": "Failed to fetch job status"})
    return JobStatusResponse(
        job_id=data.id,
        type=data.type,
        status=data.status.value,
        result=data.result,
        attempts=data.attempts,
        error=data.error,
    )
