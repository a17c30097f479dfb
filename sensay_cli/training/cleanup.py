"""Removal of existing knowledge entries before a fresh upload."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from sensay_cli.api.client import ApiError, KnowledgeService
from sensay_cli.core.logging import get_logger
from sensay_cli.models.entities import KnowledgeEntry
from sensay_cli.training.pagination import DEFAULT_PAGE_SIZE, list_all_entries
from sensay_cli.ui.progress import ProgressReporter

logger = get_logger(__name__)


@dataclass(slots=True)
class ClearResult:
    found: int = 0
    deleted: int = 0
    errors: list[str] = field(default_factory=list)


def find_existing_entries(
    service: KnowledgeService,
    replica_id: str,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> list[KnowledgeEntry]:
    return list_all_entries(service, replica_id, page_size=page_size)


def delete_entries(
    service: KnowledgeService,
    entries: Sequence[KnowledgeEntry],
    progress: ProgressReporter | None = None,
) -> ClearResult:
    """Delete every entry; individual failures are collected, not raised."""
    result = ClearResult(found=len(entries))
    for index, entry in enumerate(entries, start=1):
        if progress is not None:
            progress.update(f"Deleting existing training data {index}/{len(entries)}...")
        try:
            if service.delete_entry(entry.id):
                result.deleted += 1
            else:
                result.errors.append(f"Entry {entry.id} ({entry.label}): delete not acknowledged")
        except ApiError as exc:
            logger.warning("Failed to delete entry %s: %s", entry.id, exc, extra={"ctx_entry": entry.id})
            result.errors.append(f"Entry {entry.id} ({entry.label}): {exc}")
    return result


__all__ = ["ClearResult", "delete_entries", "find_existing_entries"]
