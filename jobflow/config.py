import os

TESTING = os.getenv("TESTING") == "1"

# Broker and store endpoints; the store defaults to the broker's Redis
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
STORE_URL = os.getenv("STORE_URL", REDIS_URL)

MAX_ATTEMPTS = int(os.getenv("MAX_ATTEMPTS", "2"))
INFRA_BACKOFF_SECONDS = float(os.getenv("INFRA_BACKOFF_SECONDS", "1.0"))
WORKER_POLL_SECONDS = float(os.getenv("WORKER_POLL_SECONDS", "1.0"))
WORKER_CONCURRENCY = int(os.getenv("WORKER_CONCURRENCY", "1"))
CLAIM_TTL_SECONDS = int(os.getenv("CLAIM_TTL_SECONDS", str(24 * 3600)))

OUTPUT_DIR = os.getenv("OUTPUT_DIR", "output")
MAIL_HOST = os.getenv("MAIL_HOST", "mailhog")
MAIL_PORT = int(os.getenv("MAIL_PORT", "1025"))
MAIL_FROM = os.getenv("MAIL_FROM", "no-reply@test.com")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_JSON = os.getenv("LOG_JSON", "1") == "1"
