"""Polling of knowledge-entry processing status until a terminal condition."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, Mapping, Sequence

from sensay_cli.api.client import ApiError, KnowledgeService
from sensay_cli.core.logging import get_logger
from sensay_cli.ingest.types import UploadOutcome
from sensay_cli.models.entities import KnowledgeEntry, Status, is_failure, is_ready, is_unknown
from sensay_cli.training.pagination import DEFAULT_PAGE_SIZE, iter_entries, list_all_entries
from sensay_cli.ui.progress import ProgressReporter

logger = get_logger(__name__)

DEFAULT_INTERVAL_SECONDS = 5.0
DEFAULT_MAX_ATTEMPTS = 360

_FAILED_ORDER = (
    Status.SYNC_ERROR,
    Status.ERR_FILE_PROCESSING,
    Status.ERR_TEXT_PROCESSING,
    Status.ERR_TEXT_TO_VECTOR,
    Status.UNPROCESSABLE,
)
_PROCESSING_ORDER = (
    Status.PROCESSING,
    Status.AWAITING_UPLOAD,
    Status.SUPABASE_ONLY,
    Status.BLANK,
    Status.NEW,
    Status.FILE_UPLOADED,
    Status.RAW_TEXT,
    Status.PROCESSED_TEXT,
    Status.VECTOR_CREATED,
)
DISPLAY_PRIORITY: tuple[str, ...] = tuple(
    status.value for status in (*_FAILED_ORDER, *_PROCESSING_ORDER, Status.READY, Status.UNKNOWN)
)


class PollStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL_FAILURE = "partial-failure"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


def order_statuses(statuses: Iterable[str]) -> list[str]:
    """Known statuses in display priority, then the rest alphabetically."""
    present = set(statuses)
    ordered = [status for status in DISPLAY_PRIORITY if status in present]
    ordered.extend(sorted(present.difference(DISPLAY_PRIORITY)))
    return ordered


def format_histogram(histogram: Mapping[str, int]) -> str:
    return ", ".join(f"{status}: {histogram[status]}" for status in order_statuses(histogram))


@dataclass(frozen=True, slots=True)
class PollResult:
    """Status histogram over the tracked identifiers at one polling instant."""

    tick: int
    histogram: dict[str, int]
    failed: tuple[KnowledgeEntry, ...] = ()

    @property
    def total(self) -> int:
        return sum(self.histogram.values())

    @property
    def ready(self) -> int:
        return sum(count for status, count in self.histogram.items() if is_ready(status))

    @property
    def errors(self) -> int:
        return sum(count for status, count in self.histogram.items() if is_failure(status))

    @property
    def unknown(self) -> int:
        return sum(count for status, count in self.histogram.items() if is_unknown(status))

    @property
    def all_ready(self) -> bool:
        return self.total > 0 and self.ready == self.total

    def describe(self) -> str:
        return format_histogram(self.histogram)


@dataclass(frozen=True, slots=True)
class MonitorResult:
    status: PollStatus
    ticks: int
    last: PollResult

    @property
    def failed(self) -> tuple[KnowledgeEntry, ...]:
        return self.last.failed


@dataclass(frozen=True, slots=True)
class ReconciliationReport:
    """Advisory comparison of locally uploaded files against the remote listing."""

    tracked: int
    remote_total: int | None
    missing: list[str] = field(default_factory=list)

    @property
    def consistent(self) -> bool:
        return self.remote_total is None or (self.remote_total == self.tracked and not self.missing)


class StatusReconciler:
    """Poll tracked entries until all are ready, any failed, or attempts run out."""

    def __init__(
        self,
        service: KnowledgeService,
        progress: ProgressReporter | None = None,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        page_size: int = DEFAULT_PAGE_SIZE,
        sleep: Callable[[float], None] = time.sleep,
        cancel: threading.Event | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.service = service
        self.progress = progress
        self.interval_seconds = interval_seconds
        self.max_attempts = max_attempts
        self.page_size = page_size
        self.sleep = sleep
        self.cancel = cancel

    def monitor(self, replica_id: str | None, entry_ids: Sequence[int]) -> MonitorResult:
        tracked = list(dict.fromkeys(entry_ids))
        last = PollResult(tick=0, histogram={})
        if not tracked:
            return MonitorResult(status=PollStatus.SUCCESS, ticks=0, last=last)

        self._update("Monitoring training status...")
        for tick in range(1, self.max_attempts + 1):
            if self.cancel is not None and self.cancel.is_set():
                self._warn(f"Training monitoring cancelled after {tick - 1} checks")
                return MonitorResult(status=PollStatus.CANCELLED, ticks=tick - 1, last=last)

            last = self.poll_once(replica_id, tracked, tick)
            self._update(f"Monitoring training status... {last.describe()}")
            logger.debug("Poll tick %s: %s", tick, last.histogram, extra={"ctx_replica": replica_id})

            if last.failed:
                self._warn(f"Training stopped with {last.errors} failed items ({last.describe()})")
                for entry in last.failed:
                    message = entry.error.message if entry.error and entry.error.message else entry.status
                    self._info(f"  - {entry.label or entry.id} [{entry.id}]: {message}")
                return MonitorResult(status=PollStatus.PARTIAL_FAILURE, ticks=tick, last=last)
            if last.all_ready:
                self._succeed(f"All {last.ready} items trained successfully!")
                return MonitorResult(status=PollStatus.SUCCESS, ticks=tick, last=last)
            if tick < self.max_attempts:
                self.sleep(self.interval_seconds)

        minutes = self.interval_seconds * self.max_attempts / 60
        self._warn(f"Training monitoring timed out after {minutes:g} minutes ({last.describe()})")
        return MonitorResult(status=PollStatus.TIMEOUT, ticks=self.max_attempts, last=last)

    def poll_once(self, replica_id: str | None, entry_ids: Sequence[int], tick: int = 1) -> PollResult:
        snapshot = self._fetch(replica_id, entry_ids)
        histogram: dict[str, int] = {}
        failed: list[KnowledgeEntry] = []
        for entry_id in entry_ids:
            entry = snapshot.get(entry_id)
            status = str(entry.status) if entry is not None else Status.UNKNOWN.value
            histogram[status] = histogram.get(status, 0) + 1
            if entry is not None and is_failure(status):
                failed.append(entry)
        return PollResult(tick=tick, histogram=histogram, failed=tuple(failed))

    def reconcile(self, replica_id: str, outcomes: Sequence[UploadOutcome]) -> ReconciliationReport:
        """Compare successful uploads against the replica's remote entries; never raises on API errors."""
        uploaded = [outcome for outcome in outcomes if outcome.success]
        try:
            remote = list_all_entries(self.service, replica_id, page_size=self.page_size)
        except ApiError as exc:
            logger.warning("Could not list entries for reconciliation: %s", exc, extra={"ctx_replica": replica_id})
            self._warn(f"Could not verify remote entry count: {exc}")
            return ReconciliationReport(tracked=len(uploaded), remote_total=None)

        remote_ids = {entry.id for entry in remote}
        remote_names = {entry.filename for entry in remote if entry.filename}
        missing = [
            outcome.file.relative_path
            for outcome in uploaded
            if outcome.entry_id not in remote_ids and outcome.file.name not in remote_names
        ]
        report = ReconciliationReport(tracked=len(uploaded), remote_total=len(remote), missing=missing)
        if report.remote_total != report.tracked:
            self._warn(f"Uploaded {report.tracked} files but the replica lists {report.remote_total} entries")
        if missing:
            self._warn(f"{len(missing)} uploaded files are missing remotely:")
            for name in missing:
                self._info(f"  - {name}")
        return report

    # Internal helpers -------------------------------------------------

    def _fetch(self, replica_id: str | None, entry_ids: Sequence[int]) -> dict[int, KnowledgeEntry]:
        wanted = set(entry_ids)
        found: dict[int, KnowledgeEntry] = {}
        if replica_id is not None:
            try:
                for entry in iter_entries(self.service, replica_id, page_size=self.page_size):
                    if entry.id in wanted:
                        found[entry.id] = entry
                        if len(found) == len(wanted):
                            break
            except ApiError as exc:
                logger.warning("Listing entries failed, using per-entry lookups: %s", exc)
        for entry_id in entry_ids:
            if entry_id in found:
                continue
            try:
                found[entry_id] = self.service.get_entry(entry_id)
            except ApiError as exc:
                logger.debug("Lookup of entry %s failed: %s", entry_id, exc, extra={"ctx_entry": entry_id})
        return found

    def _update(self, text: str) -> None:
        if self.progress is not None:
            self.progress.update(text)

    def _succeed(self, text: str) -> None:
        if self.progress is not None:
            self.progress.succeed(text)

    def _warn(self, text: str) -> None:
        if self.progress is not None:
            self.progress.warn(text)

    def _info(self, text: str) -> None:
        if self.progress is not None:
            self.progress.info(text)


__all__ = [
    "DISPLAY_PRIORITY",
    "MonitorResult",
    "PollResult",
    "PollStatus",
    "ReconciliationReport",
    "StatusReconciler",
    "format_histogram",
    "order_statuses",
]
