import csv
import os
import pytest

from jobflow import handlers
from jobflow.errors import HandlerError, UnknownJobType
from jobflow.handlers import CsvExportHandler, EmailSendHandler, HandlerRegistry, JobHandler


def test_default_registry_types(registry):
    assert set(registry.types()) == {"csv-generation", "CSV_EXPORT", "EMAIL_SEND"}
    assert registry.resolve("csv-generation") is registry.resolve("CSV_EXPORT")


def test_unknown_type_is_an_error(registry):
    with pytest.raises(UnknownJobType) as exc_info:
        registry.resolve("PDF_RENDER")
    assert exc_info.value.job_type == "PDF_RENDER"


async def test_new_types_plug_in_without_engine_changes():
    class Echo(JobHandler):
        async def run(self, payload, *, job_id):
            return {"echo": payload, "job_id": job_id}

    registry = HandlerRegistry()
    registry.register("echo", Echo())
    result = await registry.resolve("echo").execute({"x": 1}, job_id="j1")
    assert result == {"echo": {"x": 1}, "job_id": "j1"}


async def test_fail_flag_forces_a_handler_error(tmp_path):
    handler = CsvExportHandler(str(tmp_path))
    with pytest.raises(HandlerError, match="Intentional failure"):
        await handler.execute({"fail": True, "data": [{"a": 1}]}, job_id="j1")


async def test_csv_export_writes_file(tmp_path):
    handler = CsvExportHandler(str(tmp_path / "out"))
    result = await handler.execute({"data": [{"a": 1, "b": "x"}, {"a": 2, "b": "y"}]}, job_id="j1")

    path = result["filePath"]
    assert path == os.path.join(str(tmp_path / "out"), "j1.csv")
    with open(path, newline="") as fh:
        rows = list(csv.reader(fh))
    assert rows == [["a", "b"], ["1", "x"], ["2", "y"]]


async def test_csv_export_does_not_rewrite_existing_file(tmp_path):
    handler = CsvExportHandler(str(tmp_path))
    first = await handler.execute({"data": [{"a": 1}]}, job_id="j1")
    second = await handler.execute({"data": [{"a": 999}]}, job_id="j1")
    assert first == second
    with open(first["filePath"]) as fh:
        assert "999" not in fh.read()


@pytest.mark.parametrize("payload", [{}, {"data": []}, {"data": "nope"}, {"data": [1, 2]}])
async def test_csv_export_rejects_bad_data(tmp_path, payload):
    handler = CsvExportHandler(str(tmp_path))
    with pytest.raises(HandlerError):
        await handler.execute(payload, job_id="j1")


class FakeSMTP:
    sent = []

    def __init__(self, host, port):
        self.host = host
        self.port = port

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def send_message(self, message):
        FakeSMTP.sent.append((self.host, self.port, message))


async def test_email_send_delivers_through_smtp(monkeypatch):
    FakeSMTP.sent = []
    monkeypatch.setattr(handlers.smtplib, "SMTP", FakeSMTP)
    handler = EmailSendHandler(host="mailhog", port=1025, sender="no-reply@test.com")

    result = await handler.execute({"to": "a@b.com", "subject": "Hi", "body": "Hello"}, job_id="j1")

    assert len(FakeSMTP.sent) == 1
    host, port, message = FakeSMTP.sent[0]
    assert (host, port) == ("mailhog", 1025)
    assert message["To"] == "a@b.com"
    assert message["Subject"] == "Hi"
    assert result == {"messageId": message["Message-ID"]}


async def test_email_send_requires_recipient():
    with pytest.raises(HandlerError):
        await EmailSendHandler().execute({"subject": "Hi"}, job_id="j1")


def test_handler_without_run_cannot_be_built():
    class Forgetful(JobHandler):
        pass

    with pytest.raises(TypeError):
        Forgetful()


def test_register_rejects_non_handlers():
    registry = HandlerRegistry()
    with pytest.raises(TypeError):
        registry.register("callable", lambda payload: payload)
    assert registry.types() == []
