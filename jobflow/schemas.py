from pydantic import BaseModel
from typing import Any, Dict, Optional


class JobCreate(BaseModel):
    # Optional here so a missing type reaches the store and yields a 400, not a 422
    type: Optional[str] = None
    payload: Optional[Dict[str, Any]] = None


class JobCreated(BaseModel):
    job_id: str
    status: str


class JobStatusResponse(BaseModel):
    job_id: str
    type: str
    status: str
    result: Any = None
    attempts: int
    error: Optional[str] = None
