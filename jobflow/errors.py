"""Error kinds raised by the store, broker, registry and handlers."""
from typing import Optional


class JobflowError(Exception):
    pass


class InvalidInput(JobflowError):
    """Malformed create request; surfaced to the caller as a client error."""


class JobNotFound(JobflowError):
    def __init__(self, job_id: str):
        super().__init__(f"job {job_id} not found")
        self.job_id = job_id


class AlreadyClaimed(JobflowError):
    """Claim lost: the job is not pending, or another consumer won the race."""

    def __init__(self, job_id: str, status: Optional[str] = None):
        super().__init__(f"job {job_id} already claimed (status={status})")
        self.job_id = job_id
        self.status = status


class UnknownJobType(JobflowError):
    def __init__(self, job_type: str):
        super().__init__(f"No handler registered for job type: {job_type}")
        self.job_type = job_type


class HandlerError(JobflowError):
    pass


class IntegrityViolation(JobflowError):
    """A state transition was attempted from the wrong state, e.g. a second finalize."""


class InfrastructureError(JobflowError):
    pass


class StoreUnavailable(InfrastructureError):
    pass


class BrokerUnavailable(InfrastructureError):
    pass
