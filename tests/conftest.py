import os
import pytest
from httpx import ASGITransport, AsyncClient

os.environ["TESTING"] = "1"

from jobflow import redis_helper
from jobflow.broker import JobQueue
from jobflow.consumer import Consumer
from jobflow.handlers import default_registry
from jobflow.main import app as fastapi_app
from jobflow.store import JobStore


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def fresh_redis():
    # Each test starts from an empty in-memory Redis
    redis_helper.reset_inmemory_redis()
    yield
    redis_helper.reset_inmemory_redis()


@pytest.fixture
async def redis_client():
    return await redis_helper.get_redis()


@pytest.fixture
def store(redis_client):
    return JobStore(redis_client)


@pytest.fixture
def work_queue(redis_client):
    return JobQueue(redis_client, redis_helper.WORK_QUEUE, poll_seconds=0.05)


@pytest.fixture
def dead_letter_queue(redis_client):
    return JobQueue(redis_client, redis_helper.DEAD_LETTER_QUEUE, poll_seconds=0.05)


@pytest.fixture
def registry(tmp_path):
    return default_registry(output_dir=str(tmp_path / "output"))


@pytest.fixture
def consumer(store, work_queue, dead_letter_queue, registry):
    return Consumer(
        store,
        work_queue,
        dead_letter_queue,
        registry,
        max_attempts=2,
        infra_backoff_seconds=0.01,
        name="test-worker",
    )


@pytest.fixture
async def client():
    transport = ASGITransport(app=fastapi_app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac
