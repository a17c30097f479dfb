"""Domain entities mirrored from the remote knowledge base."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Union


class Status(str, Enum):
    """Processing status of a knowledge entry.

    The remote service reports two vocabularies: knowledge-base listings use
    ``NEW .. READY | UNPROCESSABLE`` while training-history listings use
    ``AWAITING_UPLOAD .. BLANK``. Both share ``READY``. ``UNKNOWN`` is local and
    marks an entry whose status could not be fetched on a poll tick.
    """

    NEW = "NEW"
    FILE_UPLOADED = "FILE_UPLOADED"
    RAW_TEXT = "RAW_TEXT"
    PROCESSED_TEXT = "PROCESSED_TEXT"
    VECTOR_CREATED = "VECTOR_CREATED"
    READY = "READY"
    UNPROCESSABLE = "UNPROCESSABLE"

    AWAITING_UPLOAD = "AWAITING_UPLOAD"
    SUPABASE_ONLY = "SUPABASE_ONLY"
    PROCESSING = "PROCESSING"
    SYNC_ERROR = "SYNC_ERROR"
    ERR_FILE_PROCESSING = "ERR_FILE_PROCESSING"
    ERR_TEXT_PROCESSING = "ERR_TEXT_PROCESSING"
    ERR_TEXT_TO_VECTOR = "ERR_TEXT_TO_VECTOR"
    BLANK = "BLANK"

    UNKNOWN = "UNKNOWN"

    def __str__(self) -> str:
        return self.value


ERROR_PREFIX = "ERR_"
UNRECOVERABLE_STATUS = Status.UNPROCESSABLE
RESET_STATUS = Status.NEW


def _raw(status: Status | str) -> str:
    return status.value if isinstance(status, Status) else str(status)


def parse_status(value: str | None) -> Status | str:
    """Return the enum member for ``value``; unrecognised strings pass through unchanged."""
    if not value:
        return Status.UNKNOWN
    try:
        return Status(value)
    except ValueError:
        return value


def is_ready(status: Status | str) -> bool:
    return _raw(status) == Status.READY.value


def is_failure(status: Status | str) -> bool:
    raw = _raw(status)
    return (
        raw.startswith(ERROR_PREFIX)
        or raw == Status.SYNC_ERROR.value
        or raw == Status.UNPROCESSABLE.value
    )


def is_terminal(status: Status | str) -> bool:
    return is_ready(status) or is_failure(status)


def is_unknown(status: Status | str) -> bool:
    return _raw(status) == Status.UNKNOWN.value


@dataclass(frozen=True, slots=True)
class EntryError:
    fingerprint: str | None
    message: str | None


@dataclass(frozen=True, slots=True)
class FileOrigin:
    name: str
    size: int | None = None
    mime_type: str | None = None


@dataclass(frozen=True, slots=True)
class TextOrigin:
    title: str | None = None


@dataclass(frozen=True, slots=True)
class WebsiteOrigin:
    url: str
    title: str | None = None


@dataclass(frozen=True, slots=True)
class VideoOrigin:
    url: str
    title: str | None = None


EntryOrigin = Union[FileOrigin, TextOrigin, WebsiteOrigin, VideoOrigin]


def origin_from_payload(kind: str, payload: Mapping[str, Any]) -> EntryOrigin:
    """Build the origin variant for a listing item of type ``kind``."""
    if kind == "file":
        file_info = payload.get("file") or {}
        return FileOrigin(
            name=file_info.get("name") or payload.get("filename") or payload.get("title") or "",
            size=file_info.get("size"),
            mime_type=file_info.get("mimeType"),
        )
    if kind == "text":
        return TextOrigin(title=payload.get("title") or payload.get("generatedTitle"))
    if kind == "website":
        website = payload.get("website") or {}
        return WebsiteOrigin(url=website.get("url") or payload.get("url") or "", title=website.get("title"))
    if kind == "youtube":
        video = payload.get("youtube") or {}
        return VideoOrigin(url=video.get("url") or payload.get("url") or "", title=video.get("title"))
    raise ValueError(f"Unsupported knowledge entry type: {kind!r}")


def describe_origin(origin: EntryOrigin) -> str:
    if isinstance(origin, FileOrigin):
        return origin.name or "file"
    if isinstance(origin, TextOrigin):
        return origin.title or "text"
    if isinstance(origin, WebsiteOrigin):
        return origin.url
    if isinstance(origin, VideoOrigin):
        return origin.url
    raise TypeError(f"Unhandled entry origin: {type(origin).__name__}")


@dataclass(frozen=True, slots=True)
class KnowledgeEntry:
    """Point-in-time snapshot of a remote knowledge entry."""

    id: int
    replica_id: str | None
    origin: EntryOrigin
    status: Status | str
    error: EntryError | None = None

    @property
    def filename(self) -> str | None:
        if isinstance(self.origin, FileOrigin):
            return self.origin.name or None
        return None

    @property
    def label(self) -> str:
        return describe_origin(self.origin)

    def is_retrainable(self) -> bool:
        """Entries with an error are retrainable unless the service gave up on them."""
        return self.error is not None and _raw(self.status) != UNRECOVERABLE_STATUS.value


@dataclass(frozen=True, slots=True)
class Replica:
    uuid: str
    name: str
    slug: str | None = None
    short_description: str | None = None
    greeting: str | None = None
    owner_id: str | None = None


@dataclass(frozen=True, slots=True)
class User:
    id: str
    name: str | None = None
    email: str | None = None


__all__ = [
    "EntryError",
    "EntryOrigin",
    "FileOrigin",
    "KnowledgeEntry",
    "Replica",
    "RESET_STATUS",
    "Status",
    "TextOrigin",
    "UNRECOVERABLE_STATUS",
    "User",
    "VideoOrigin",
    "WebsiteOrigin",
    "describe_origin",
    "is_failure",
    "is_ready",
    "is_terminal",
    "is_unknown",
    "origin_from_payload",
    "parse_status",
]
