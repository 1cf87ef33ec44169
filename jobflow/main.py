import time
from contextlib import asynccontextmanager
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from .api import jobs as jobs_api
from . import redis_helper
from .errors import InfrastructureError, InvalidInput, JobNotFound
from .log import setup_logging
from .metrics import metrics_response, request_latency_seconds
from .store import JobStore

setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await redis_helper.close_redis()


app = FastAPI(title="jobflow", lifespan=lifespan)

app.include_router(jobs_api.router)


@app.exception_handler(InvalidInput)
async def invalid_input_handler(request: Request, exc: InvalidInput):
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(JobNotFound)
async def job_not_found_handler(request: Request, exc: JobNotFound):
    return JSONResponse(status_code=404, content={"error": "Job not found"})


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    start = time.time()
    try:
        response = await call_next(request)
        return response
    finally:
        request_latency_seconds.observe(time.time() - start)


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/readyz")
async def readyz(store: JobStore = Depends(jobs_api.get_store)):
    try:
        await store.ping()
    except InfrastructureError:
        return JSONResponse(status_code=503, content={"ready": False})
    return {"ready": True}


@app.get("/metrics")
async def metrics():
    return metrics_response()
