from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, Field


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class Job(BaseModel):
    """Persisted job record; stored as JSON in the `jobs` hash."""

    id: str
    type: str
    status: JobStatus = JobStatus.PENDING
    payload: Any = Field(default_factory=dict)
    result: Any = None
    error: Optional[str] = None
    attempts: int = Field(default=0, ge=0)
    created_at: float
    updated_at: float


@dataclass(frozen=True)
class Success:
    result: Any


@dataclass(frozen=True)
class Retry:
    error: str


@dataclass(frozen=True)
class Terminal:
    error: str


Outcome = Union[Success, Retry, Terminal]
