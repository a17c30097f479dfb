"""Re-trigger processing of knowledge entries that failed remotely."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Sequence

from sensay_cli.api.client import ApiError, ReplicaService
from sensay_cli.core.logging import get_logger
from sensay_cli.models.entities import RESET_STATUS, KnowledgeEntry, Replica
from sensay_cli.training.pagination import DEFAULT_PAGE_SIZE, iter_entries
from sensay_cli.training.status import MonitorResult, StatusReconciler
from sensay_cli.ui.progress import ProgressReporter
from sensay_cli.utils.text import truncate

logger = get_logger(__name__)

ERROR_MESSAGE_LIMIT = 100

Confirm = Callable[[str], bool]


@dataclass(slots=True)
class ReplicaRetrainResult:
    replica: Replica
    found: int = 0
    retrained: int = 0
    skipped: bool = False
    errors: list[str] = field(default_factory=list)
    status_breakdown: dict[str, int] = field(default_factory=dict)
    error_breakdown: dict[str, int] = field(default_factory=dict)
    monitor: MonitorResult | None = None


@dataclass(slots=True)
class RetrainSummary:
    replicas: list[ReplicaRetrainResult] = field(default_factory=list)

    @property
    def total_found(self) -> int:
        return sum(result.found for result in self.replicas)

    @property
    def total_retrained(self) -> int:
        return sum(result.retrained for result in self.replicas)


def breakdown(entries: Sequence[KnowledgeEntry]) -> tuple[dict[str, int], dict[str, int]]:
    """Count entries per status and per truncated error message."""
    statuses: dict[str, int] = {}
    messages: dict[str, int] = {}
    for entry in entries:
        status = str(entry.status)
        statuses[status] = statuses.get(status, 0) + 1
        if entry.error is not None and entry.error.message:
            key = truncate(entry.error.message, ERROR_MESSAGE_LIMIT)
            messages[key] = messages.get(key, 0) + 1
    return statuses, messages


class FailedItemRetrainer:
    """Reset failed entries to ``NEW`` and hand them to the status reconciler.

    ``confirm`` is asked once per replica before anything is mutated; it is
    bypassed when ``force`` is set and skipped entirely when not provided.
    """

    def __init__(
        self,
        service: ReplicaService,
        reconciler: StatusReconciler,
        progress: ProgressReporter | None = None,
        confirm: Confirm | None = None,
        force: bool = False,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        self.service = service
        self.reconciler = reconciler
        self.progress = progress or ProgressReporter()
        self.confirm = confirm
        self.force = force
        self.page_size = page_size

    def resolve_replicas(self, replica_id: str | None = None, all_replicas: bool = False) -> list[Replica]:
        if all_replicas:
            self.progress.start("Fetching replicas...")
            replicas = self.service.list_replicas()
            self.progress.succeed(f"Found {len(replicas)} replicas")
            return replicas
        if not replica_id:
            raise ValueError("A replica id is required unless all replicas are selected")
        self.progress.start("Fetching replica details...")
        replica = self.service.get_replica(replica_id)
        self.progress.stop()
        return [replica]

    def find_failed(self, replica_id: str) -> list[KnowledgeEntry]:
        return [
            entry
            for entry in iter_entries(self.service, replica_id, page_size=self.page_size)
            if entry.is_retrainable()
        ]

    def run(self, replicas: Sequence[Replica]) -> RetrainSummary:
        summary = RetrainSummary()
        for replica in replicas:
            summary.replicas.append(self.retrain_replica(replica))
        return summary

    def retrain_replica(self, replica: Replica) -> ReplicaRetrainResult:
        result = ReplicaRetrainResult(replica=replica)
        self.progress.info(f"\nProcessing replica: {replica.name or replica.uuid}", style="blue")

        self.progress.start("Fetching knowledge base items...")
        try:
            failed = self.find_failed(replica.uuid)
        except ApiError:
            self.progress.fail("Failed to fetch knowledge base items")
            raise
        result.found = len(failed)
        self.progress.succeed(f"Found {len(failed)} failed training items (excluding UNPROCESSABLE)")

        if not failed:
            self.progress.info("No failed training items found for this replica", style="green")
            return result

        result.status_breakdown, result.error_breakdown = breakdown(failed)
        self._print_breakdown(result)

        if not self.force and self.confirm is not None:
            if not self.confirm(f"Retrain {len(failed)} failed items for {replica.name}?"):
                self.progress.info("Skipping this replica", style="yellow")
                result.skipped = True
                return result

        self.progress.start("Retraining items...")
        reset_ids: list[int] = []
        for entry in failed:
            try:
                if self.service.update_entry_status(entry.id, replica.uuid, RESET_STATUS):
                    result.retrained += 1
                    reset_ids.append(entry.id)
                else:
                    result.errors.append(f"Failed to retrain item {entry.id}: update not acknowledged")
            except ApiError as exc:
                logger.warning("Failed to reset entry %s: %s", entry.id, exc, extra={"ctx_entry": entry.id})
                result.errors.append(f"Failed to retrain item {entry.id}: {exc}")
        self.progress.succeed(f"Triggered retraining for {result.retrained}/{len(failed)} items")

        if result.errors:
            self.progress.info("\nErrors encountered:", style="red")
            for message in result.errors:
                self.progress.info(f"  - {message}")

        if reset_ids:
            self.progress.info("\nMonitoring training status...", style="cyan")
            result.monitor = self.reconciler.monitor(replica.uuid, reset_ids)
        return result

    def _print_breakdown(self, result: ReplicaRetrainResult) -> None:
        self.progress.info("\nStatus breakdown:", style="yellow")
        for status, count in result.status_breakdown.items():
            self.progress.info(f"  {status}: {count}")
        if result.error_breakdown:
            self.progress.info("\nError messages:", style="yellow")
            for message, count in result.error_breakdown.items():
                suffix = "..." if len(message) >= ERROR_MESSAGE_LIMIT else ""
                self.progress.info(f"  {message}{suffix}: {count}")


__all__ = ["FailedItemRetrainer", "ReplicaRetrainResult", "RetrainSummary", "breakdown"]
