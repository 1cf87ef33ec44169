"""Pluggable job handlers keyed by job type.

The consumer only ever calls `HandlerRegistry.resolve(type).execute(...)`; adding a
job type means registering another handler here or from calling code.
"""
import asyncio
import csv
import os
import smtplib
from abc import ABC, abstractmethod
from email.message import EmailMessage
from email.utils import make_msgid
from typing import Any, Dict, List, Optional

from . import config
from .errors import HandlerError, UnknownJobType


class JobHandler(ABC):
    """Base class for handlers. Subclasses implement `run`."""

    async def execute(self, payload: Any, *, job_id: str) -> Any:
        if isinstance(payload, dict) and payload.get("fail") is True:
            raise HandlerError("Intentional failure for retry test")
        return await self.run(payload, job_id=job_id)

    @abstractmethod
    async def run(self, payload: Any, *, job_id: str) -> Any:
        ...


class CsvExportHandler(JobHandler):
    def __init__(self, output_dir: str = config.OUTPUT_DIR):
        self.output_dir = output_dir

    async def run(self, payload: Dict[str, Any], *, job_id: str) -> Dict[str, Any]:
        rows = payload.get("data")
        if not isinstance(rows, list) or not rows:
            raise HandlerError("CSV_EXPORT payload must contain non-empty data array")
        if not all(isinstance(row, dict) for row in rows):
            raise HandlerError("CSV_EXPORT data rows must be objects")

        file_path = os.path.join(self.output_dir, f"{job_id}.csv")
        await asyncio.to_thread(self._write_csv, file_path, rows)
        return {"filePath": file_path}

    def _write_csv(self, file_path: str, rows: List[Dict[str, Any]]) -> None:
        # A retried or redelivered job must not rewrite a file already produced
        if os.path.exists(file_path):
            return
        os.makedirs(self.output_dir, exist_ok=True)
        headers = list(rows[0].keys())
        with open(file_path, "w", newline="") as fh:
            writer = csv.DictWriter(fh, fieldnames=headers, extrasaction="ignore")
            writer.writeheader()
            writer.writerows(rows)


class EmailSendHandler(JobHandler):
    def __init__(
        self,
        host: str = config.MAIL_HOST,
        port: int = config.MAIL_PORT,
        sender: str = config.MAIL_FROM,
    ):
        self.host = host
        self.port = port
        self.sender = sender

    async def run(self, payload: Dict[str, Any], *, job_id: str) -> Dict[str, Any]:
        to = payload.get("to")
        if not to:
            raise HandlerError("EMAIL_SEND payload must contain a recipient")

        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = payload.get("subject", "")
        message["Message-ID"] = make_msgid()
        message.set_content(payload.get("body", ""))

        await asyncio.to_thread(self._deliver, message)
        return {"messageId": message["Message-ID"]}

    def _deliver(self, message: EmailMessage) -> None:
        """Blocking SMTP delivery executed in a worker thread."""
        with smtplib.SMTP(self.host, self.port) as server:
            server.send_message(message)


class HandlerRegistry:
    def __init__(self):
        self._handlers: Dict[str, JobHandler] = {}

    def register(self, job_type: str, handler: JobHandler) -> None:
        if not isinstance(handler, JobHandler):
            raise TypeError(f"handler for {job_type!r} must be a JobHandler, got {type(handler).__name__}")
        self._handlers[job_type] = handler

    def resolve(self, job_type: str) -> JobHandler:
        handler = self._handlers.get(job_type)
        if handler is None:
            raise UnknownJobType(job_type)
        return handler

    def types(self) -> List[str]:
        return list(self._handlers.keys())


def default_registry(output_dir: Optional[str] = None) -> HandlerRegistry:
    registry = HandlerRegistry()
    csv_handler = CsvExportHandler(output_dir or config.OUTPUT_DIR)
    registry.register("csv-generation", csv_handler)
    registry.register("CSV_EXPORT", csv_handler)
    registry.register("EMAIL_SEND", EmailSendHandler())
    return registry
