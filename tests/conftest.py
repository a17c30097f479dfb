"""Test fixtures for the Sensay CLI."""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Any

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from sensay_cli.api.client import ApiError, EntryPage, UploadLocation  # noqa: E402
from sensay_cli.models.entities import (  # noqa: E402
    EntryError,
    FileOrigin,
    KnowledgeEntry,
    Replica,
    Status,
    TextOrigin,
    User,
)
from sensay_cli.ui.progress import ProgressReporter  # noqa: E402


@pytest.fixture(autouse=True)
def reset_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Isolate environment and root logging between tests."""
    for key in list(os.environ):
        if key.startswith("SENSAY_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("SENSAY_CONFIG", str(tmp_path / "missing-config.yaml"))
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


class FakeKnowledgeService:
    """In-memory stand-in for the remote knowledge base and replica endpoints."""

    def __init__(self) -> None:
        self.entries: dict[int, KnowledgeEntry] = {}
        self.replicas: dict[str, Replica] = {}
        self.user: User | None = None
        self.user_id: str | None = None
        self.calls: list[str] = []
        self.raw_texts: dict[int, str] = {}
        self.uploads: dict[str, bytes] = {}
        self.replica_requests: list[Any] = []
        self._failures: dict[str, int] = {}
        self._rejections: dict[str, int] = {}
        self._next_id = 1

    # Scripting --------------------------------------------------------

    def fail(self, operation: str, times: int = 1) -> None:
        """Raise ApiError from ``operation`` for the next ``times`` calls."""
        self._failures[operation] = times

    def reject(self, operation: str, times: int = 1) -> None:
        """Return a falsy result from ``operation`` for the next ``times`` calls."""
        self._rejections[operation] = times

    def add_entry(
        self,
        status: Status | str,
        replica_id: str = "replica-1",
        error: str | None = None,
        name: str | None = None,
        entry_id: int | None = None,
    ) -> KnowledgeEntry:
        entry_id = entry_id if entry_id is not None else self._allocate_id()
        self._next_id = max(self._next_id, entry_id + 1)
        entry = KnowledgeEntry(
            id=entry_id,
            replica_id=replica_id,
            origin=FileOrigin(name=name) if name else TextOrigin(title=f"entry {entry_id}"),
            status=status,
            error=EntryError(fingerprint=f"fp-{entry_id}", message=error) if error is not None else None,
        )
        self.entries[entry_id] = entry
        return entry

    def set_status(self, entry_id: int, status: Status | str) -> None:
        entry = self.entries[entry_id]
        self.entries[entry_id] = KnowledgeEntry(
            id=entry.id, replica_id=entry.replica_id, origin=entry.origin, status=status, error=entry.error
        )

    def mark_all(self, status: Status | str) -> None:
        for entry_id in list(self.entries):
            self.set_status(entry_id, status)

    def add_replica(self, name: str, uuid: str | None = None) -> Replica:
        replica = Replica(uuid=uuid or f"replica-{len(self.replicas) + 1}", name=name, slug=name.lower())
        self.replicas[replica.uuid] = replica
        return replica

    # KnowledgeService -------------------------------------------------

    def create_blank_entry(self, replica_id: str) -> int | None:
        self._enter("create_blank_entry")
        if self._rejected("create_blank_entry"):
            return None
        return self.add_entry(Status.NEW, replica_id=replica_id).id

    def submit_raw_text(self, replica_id: str, entry_id: int, text: str) -> bool:
        self._enter("submit_raw_text")
        if self._rejected("submit_raw_text"):
            return False
        self.raw_texts[entry_id] = text
        return True

    def request_upload_location(self, replica_id: str, filename: str) -> UploadLocation | None:
        self._enter("request_upload_location")
        if self._rejected("request_upload_location"):
            return None
        entry = self.add_entry(Status.NEW, replica_id=replica_id, name=filename)
        return UploadLocation(url=f"https://uploads.test/{entry.id}", entry_id=entry.id)

    def write_bytes_to_location(self, upload_url: str, data: bytes) -> bool:
        self._enter("write_bytes_to_location")
        if self._rejected("write_bytes_to_location"):
            return False
        self.uploads[upload_url] = data
        return True

    def get_entry(self, entry_id: int) -> KnowledgeEntry:
        self._enter("get_entry")
        if entry_id not in self.entries:
            raise ApiError(f"Knowledge base entry {entry_id} not found", status=404)
        return self.entries[entry_id]

    def list_entries(self, replica_id: str | None, page: int = 1, page_size: int = 100) -> EntryPage:
        self._enter("list_entries")
        items = [
            entry
            for _, entry in sorted(self.entries.items())
            if replica_id is None or entry.replica_id == replica_id
        ]
        start = (page - 1) * page_size
        return EntryPage(items=items[start : start + page_size], page=page, page_size=page_size, total=len(items))

    def update_entry_status(self, entry_id: int, replica_id: str, status: Status) -> bool:
        self._enter("update_entry_status")
        if self._rejected("update_entry_status"):
            return False
        entry = self.entries[entry_id]
        self.entries[entry_id] = KnowledgeEntry(
            id=entry.id, replica_id=entry.replica_id, origin=entry.origin, status=status, error=None
        )
        return True

    def delete_entry(self, entry_id: int) -> bool:
        self._enter("delete_entry")
        if self._rejected("delete_entry"):
            return False
        self.entries.pop(entry_id, None)
        return True

    # Users and replicas -----------------------------------------------

    def list_replicas(self) -> list[Replica]:
        self._enter("list_replicas")
        return list(self.replicas.values())

    def get_replica(self, replica_id: str) -> Replica:
        self._enter("get_replica")
        if replica_id not in self.replicas:
            raise ApiError(f"Replica {replica_id} not found", status=404)
        return self.replicas[replica_id]

    def get_current_user(self) -> User:
        self._enter("get_current_user")
        if self.user is None:
            raise ApiError("User not found", status=404)
        return self.user

    def create_user(self, name: str, email: str) -> User:
        self._enter("create_user")
        self.user = User(id="user-1", name=name, email=email)
        return self.user

    def create_replica(self, request: Any) -> str:
        self._enter("create_replica")
        self.replica_requests.append(request)
        replica = Replica(uuid=f"replica-{len(self.replicas) + 1}", name=request.name, slug=request.slug)
        self.replicas[replica.uuid] = replica
        return replica.uuid

    def update_replica(self, replica_id: str, request: Any) -> None:
        self._enter("update_replica")
        self.replica_requests.append(request)

    def with_user(self, user_id: str | None) -> "FakeKnowledgeService":
        self.user_id = user_id
        return self

    # Internal helpers -------------------------------------------------

    def _allocate_id(self) -> int:
        entry_id = self._next_id
        self._next_id += 1
        return entry_id

    def _enter(self, operation: str) -> None:
        self.calls.append(operation)
        remaining = self._failures.get(operation, 0)
        if remaining:
            self._failures[operation] = remaining - 1
            raise ApiError(f"{operation} failed", status=500)

    def _rejected(self, operation: str) -> bool:
        remaining = self._rejections.get(operation, 0)
        if remaining:
            self._rejections[operation] = remaining - 1
            return True
        return False


class RecordingProgress(ProgressReporter):
    """Progress reporter that records messages instead of drawing a spinner."""

    def __init__(self) -> None:
        super().__init__()
        self.events: list[tuple[str, str]] = []

    def start(self, text: str) -> None:
        self.events.append(("start", text))

    def update(self, text: str) -> None:
        self.events.append(("update", text))

    def stop(self) -> None:
        self.events.append(("stop", ""))

    def succeed(self, text: str) -> None:
        self.events.append(("succeed", text))

    def warn(self, text: str) -> None:
        self.events.append(("warn", text))

    def fail(self, text: str) -> None:
        self.events.append(("fail", text))

    def info(self, text: str, style: str | None = None) -> None:
        self.events.append(("info", text))

    def messages(self, kind: str | None = None) -> list[str]:
        return [text for event, text in self.events if kind is None or event == kind]


class SleepRecorder:
    """Injected sleep that records delays and can run a hook before returning."""

    def __init__(self, hook: Any = None) -> None:
        self.delays: list[float] = []
        self.hook = hook

    def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        if self.hook is not None:
            self.hook(len(self.delays))


@pytest.fixture
def service() -> FakeKnowledgeService:
    return FakeKnowledgeService()


@pytest.fixture
def progress() -> RecordingProgress:
    return RecordingProgress()


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()
