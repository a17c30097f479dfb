"""Upload pipeline that submits training files to a replica's knowledge base."""

from __future__ import annotations

import threading
import time
from typing import Callable, Sequence

from sensay_cli.api.client import ApiError, KnowledgeService
from sensay_cli.core.logging import get_logger
from sensay_cli.ingest.types import FileDescriptor, SubmissionMode, UploadOutcome, UploadStats
from sensay_cli.ui.progress import ProgressReporter

logger = get_logger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF_SECONDS = 1.0
CANCELLED = "cancelled"


class UploadError(RuntimeError):
    """A sub-step of a submission attempt did not succeed."""


class UploadPipeline:
    """Submit files one at a time, retrying each whole attempt with linear backoff.

    A retry always restarts from the first sub-step, so an inline-text file
    whose raw-text submission failed gets a fresh blank entry on the next
    attempt and the earlier entry is left behind remotely.
    """

    def __init__(
        self,
        service: KnowledgeService,
        progress: ProgressReporter | None = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        backoff_seconds: float = DEFAULT_BACKOFF_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
        cancel: threading.Event | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.service = service
        self.progress = progress
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.sleep = sleep
        self.cancel = cancel

    def upload(self, replica_id: str, files: Sequence[FileDescriptor]) -> list[UploadOutcome]:
        """Return one outcome per file, in input order."""
        stats = UploadStats()
        outcomes: list[UploadOutcome] = []
        for descriptor in files:
            outcome = self.upload_file(replica_id, descriptor, stats)
            stats.record(outcome)
            outcomes.append(outcome)
        logger.info(
            "Uploaded %s/%s files to replica %s",
            stats.succeeded,
            len(files),
            replica_id,
            extra={"ctx_replica": replica_id, "ctx_stats": stats.to_dict()},
        )
        return outcomes

    def upload_file(
        self,
        replica_id: str,
        descriptor: FileDescriptor,
        stats: UploadStats | None = None,
    ) -> UploadOutcome:
        stats = stats or UploadStats()
        attempts = 0
        last_error = "no attempt made"
        while attempts < self.max_attempts:
            if self._cancelled():
                return UploadOutcome(file=descriptor, success=False, attempts=attempts, error=CANCELLED)
            attempts += 1
            try:
                entry_id = self._submit(replica_id, descriptor)
            except (ApiError, UploadError, OSError) as exc:
                last_error = str(exc) or exc.__class__.__name__
                logger.warning(
                    "Attempt %s/%s for %s failed: %s",
                    attempts,
                    self.max_attempts,
                    descriptor.relative_path,
                    last_error,
                    extra={"ctx_replica": replica_id},
                )
                self._report(descriptor, attempts, stats, pending_failure=attempts >= self.max_attempts)
                if attempts < self.max_attempts:
                    self.sleep(self.backoff_seconds * attempts)
                continue
            self._report(descriptor, attempts, stats, pending_success=True)
            return UploadOutcome(file=descriptor, success=True, attempts=attempts, entry_id=entry_id)
        return UploadOutcome(file=descriptor, success=False, attempts=attempts, error=last_error)

    # Internal helpers -------------------------------------------------

    def _submit(self, replica_id: str, descriptor: FileDescriptor) -> int:
        if descriptor.mode is SubmissionMode.INLINE_TEXT:
            return self._submit_text(replica_id, descriptor)
        return self._submit_reference(replica_id, descriptor)

    def _submit_text(self, replica_id: str, descriptor: FileDescriptor) -> int:
        entry_id = self.service.create_blank_entry(replica_id)
        if entry_id is None:
            raise UploadError("Knowledge base entry creation returned no identifier")
        text = descriptor.content
        if text is None:
            text = descriptor.path.read_text(encoding="utf-8")
        if not self.service.submit_raw_text(replica_id, entry_id, text):
            raise UploadError(f"Raw text submission for entry {entry_id} was not accepted")
        return entry_id

    def _submit_reference(self, replica_id: str, descriptor: FileDescriptor) -> int:
        location = self.service.request_upload_location(replica_id, descriptor.name)
        if location is None:
            raise UploadError("No signed upload URL returned")
        if not self.service.write_bytes_to_location(location.url, descriptor.read_bytes()):
            raise UploadError("Signed URL upload did not succeed")
        return location.entry_id

    def _report(
        self,
        descriptor: FileDescriptor,
        attempt: int,
        stats: UploadStats,
        pending_success: bool = False,
        pending_failure: bool = False,
    ) -> None:
        if self.progress is None:
            return
        succeeded = stats.succeeded + (1 if pending_success else 0)
        failed = stats.failed + (1 if pending_failure else 0)
        self.progress.update(
            f"Uploading {descriptor.relative_path} (attempt {attempt}/{self.max_attempts}) "
            f"- {succeeded} succeeded, {failed} failed"
        )

    def _cancelled(self) -> bool:
        return self.cancel is not None and self.cancel.is_set()


__all__ = ["UploadError", "UploadPipeline", "CANCELLED"]
