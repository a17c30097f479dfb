"""Tests for the upload pipeline."""

from __future__ import annotations

import threading
from pathlib import Path

import pytest

from conftest import FakeKnowledgeService, RecordingProgress, SleepRecorder
from sensay_cli.ingest.pipeline import CANCELLED, UploadPipeline
from sensay_cli.ingest.scanner import LocalFileScanner
from sensay_cli.ingest.types import FileDescriptor, SubmissionMode


def _scan(tmp_path: Path) -> list[FileDescriptor]:
    (tmp_path / "a.txt").write_text("alpha text")
    (tmp_path / "b.md").write_text("# beta")
    (tmp_path / "c.pdf").write_bytes(b"%PDF-1.4 gamma")
    return LocalFileScanner().scan(tmp_path).files


def test_upload_submits_each_file_by_mode(
    tmp_path: Path, service: FakeKnowledgeService, progress: RecordingProgress, sleeper: SleepRecorder
) -> None:
    files = _scan(tmp_path)
    pipeline = UploadPipeline(service, progress=progress, sleep=sleeper)

    outcomes = pipeline.upload("replica-1", files)

    assert [o.file.relative_path for o in outcomes] == ["a.txt", "b.md", "c.pdf"]
    assert all(o.success and o.attempts == 1 for o in outcomes)
    assert service.calls.count("create_blank_entry") == 2
    assert service.calls.count("request_upload_location") == 1
    assert sorted(service.raw_texts.values()) == ["# beta", "alpha text"]
    assert list(service.uploads.values()) == [b"%PDF-1.4 gamma"]
    assert service.entries[outcomes[2].entry_id].filename == "c.pdf"
    assert sleeper.delays == []
    assert progress.messages("update")[-1] == "Uploading c.pdf (attempt 1/3) - 3 succeeded, 0 failed"


def test_upload_gives_up_after_max_attempts(
    tmp_path: Path, service: FakeKnowledgeService, sleeper: SleepRecorder
) -> None:
    descriptor = _scan(tmp_path)[0]
    service.fail("create_blank_entry", times=5)
    pipeline = UploadPipeline(service, sleep=sleeper)

    outcome = pipeline.upload_file("replica-1", descriptor)

    assert not outcome.success
    assert outcome.attempts == 3
    assert outcome.error == "create_blank_entry failed"
    assert service.calls.count("create_blank_entry") == 3
    assert sleeper.delays == [1.0, 2.0]


def test_upload_recovers_on_retry(tmp_path: Path, service: FakeKnowledgeService, sleeper: SleepRecorder) -> None:
    descriptor = _scan(tmp_path)[2]
    service.fail("request_upload_location", times=1)

    outcome = UploadPipeline(service, sleep=sleeper).upload_file("replica-1", descriptor)

    assert outcome.success
    assert outcome.attempts == 2
    assert sleeper.delays == [1.0]


def test_rejected_raw_text_restarts_with_a_new_entry(
    tmp_path: Path, service: FakeKnowledgeService, sleeper: SleepRecorder
) -> None:
    descriptor = _scan(tmp_path)[0]
    service.reject("submit_raw_text", times=1)

    outcome = UploadPipeline(service, sleep=sleeper).upload_file("replica-1", descriptor)

    assert outcome.success and outcome.attempts == 2
    assert service.calls.count("create_blank_entry") == 2
    assert list(service.raw_texts) == [outcome.entry_id]
    assert len(service.entries) == 2


def test_missing_upload_location_is_reported(
    tmp_path: Path, service: FakeKnowledgeService, sleeper: SleepRecorder
) -> None:
    descriptor = _scan(tmp_path)[2]
    service.reject("request_upload_location", times=3)

    outcome = UploadPipeline(service, max_attempts=3, sleep=sleeper).upload_file("replica-1", descriptor)

    assert not outcome.success
    assert "No signed upload URL" in (outcome.error or "")


def test_cancelled_upload_stops_before_next_attempt(
    tmp_path: Path, service: FakeKnowledgeService, sleeper: SleepRecorder
) -> None:
    cancel = threading.Event()
    cancel.set()
    files = _scan(tmp_path)

    outcomes = UploadPipeline(service, sleep=sleeper, cancel=cancel).upload("replica-1", files)

    assert all(not o.success and o.error == CANCELLED and o.attempts == 0 for o in outcomes)
    assert service.calls == []


def test_max_attempts_must_be_positive(service: FakeKnowledgeService) -> None:
    with pytest.raises(ValueError):
        UploadPipeline(service, max_attempts=0)


def test_upload_follows_recorded_submission_mode(
    tmp_path: Path, service: FakeKnowledgeService, sleeper: SleepRecorder
) -> None:
    page = tmp_path / "page.html"
    page.write_text("<p>hi</p>")
    descriptor = FileDescriptor(
        path=page, relative_path="page.html", size=page.stat().st_size, mode=SubmissionMode.REFERENCE
    )

    outcome = UploadPipeline(service, sleep=sleeper).upload_file("replica-1", descriptor)

    assert outcome.success
    assert service.calls == ["request_upload_location", "write_bytes_to_location"]
    assert list(service.uploads.values()) == [b"<p>hi</p>"]
