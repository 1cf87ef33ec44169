from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

# Keep metrics module-level singletons
jobs_submitted_total = Counter("jobs_submitted_total", "Total jobs submitted via API")
jobs_enqueued_total = Counter("jobs_enqueued_total", "Job ids pushed onto the work queue")
error_count = Counter("error_count", "Total errors encountered by the control plane")
enqueue_latency_seconds = Histogram("enqueue_latency_seconds", "Time to create and enqueue a job")
request_latency_seconds = Histogram("request_latency_seconds", "HTTP request latency seconds")

# Worker / execution metrics
jobs_executed_total = Counter("jobs_executed_total", "Total job attempts executed by workers")
jobs_completed_total = Counter("jobs_completed_total", "Jobs finalized as completed")
jobs_retried_total = Counter("jobs_retried_total", "Failed attempts requeued for retry")
jobs_dead_lettered_total = Counter("jobs_dead_lettered_total", "Jobs moved to the dead-letter queue")
worker_infra_errors_total = Counter("worker_infra_errors_total", "Store or broker errors seen by workers")
jobs_in_flight = Gauge("jobs_in_flight", "Jobs currently being executed")
execution_latency_seconds = Histogram("execution_latency_seconds", "Job execution latency seconds")


def metrics_response():
    # Return prometheus metrics as a Response
    payload = generate_latest()
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)
