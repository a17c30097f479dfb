"""Common ingestion data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class SubmissionMode(str, Enum):
    """How a file's content reaches the knowledge base."""

    INLINE_TEXT = "inline-text"
    REFERENCE = "reference"


@dataclass(frozen=True, slots=True)
class FileDescriptor:
    """One training file accepted by the scanner.

    Text files carry their decoded ``content``; binary documents leave it as
    ``None`` and are read lazily through :meth:`read_bytes` at upload time.
    """

    path: Path
    relative_path: str
    size: int
    mode: SubmissionMode
    content: str | None = None

    @property
    def name(self) -> str:
        return self.path.name

    def read_bytes(self) -> bytes:
        return self.path.read_bytes()


@dataclass(frozen=True, slots=True)
class ScanResult:
    files: list[FileDescriptor] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class UploadOutcome:
    """Result of submitting a single file, created once its retry loop ends."""

    file: FileDescriptor
    success: bool
    attempts: int
    entry_id: int | None = None
    error: str | None = None

    def __post_init__(self) -> None:
        if self.success and self.entry_id is None:
            raise ValueError("successful outcome requires an entry id")
        if not self.success and self.error is None:
            raise ValueError("failed outcome requires an error message")


@dataclass(slots=True)
class UploadStats:
    """Running counters shown in upload progress."""

    succeeded: int = 0
    failed: int = 0

    def record(self, outcome: UploadOutcome) -> None:
        if outcome.success:
            self.succeeded += 1
        else:
            self.failed += 1

    def to_dict(self) -> dict[str, int]:
        return {"succeeded": self.succeeded, "failed": self.failed}


__all__ = [
    "FileDescriptor",
    "ScanResult",
    "SubmissionMode",
    "UploadOutcome",
    "UploadStats",
]
