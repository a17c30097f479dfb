"""Discovery of replica folders and training files on the local filesystem."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from sensay_cli.core.logging import get_logger
from sensay_cli.ingest.types import FileDescriptor, ScanResult, SubmissionMode
from sensay_cli.utils.text import format_file_size

logger = get_logger(__name__)

TRAINING_DATA_DIR = "training-data"
SYSTEM_MESSAGE_FILE = "system-message.txt"
MODEL_FILE = "model.txt"
DEFAULT_MODEL = "claude-3-5-haiku-latest"
MAX_FILE_SIZE = 50 * 1024 * 1024


class FileKind:
    """Extension family sharing one submission mode."""

    suffixes: tuple[str, ...] = ()
    mode: SubmissionMode = SubmissionMode.REFERENCE

    def matches(self, path: Path) -> bool:
        return path.suffix.lower() in self.suffixes

    def describe(self, path: Path, root: Path, size: int) -> FileDescriptor:
        return FileDescriptor(
            path=path,
            relative_path=path.relative_to(root).as_posix(),
            size=size,
            mode=self.mode,
        )


class TextKind(FileKind):
    suffixes = (".txt", ".md", ".markdown", ".json", ".csv", ".log", ".yaml", ".yml", ".html", ".xml")
    mode = SubmissionMode.INLINE_TEXT

    def describe(self, path: Path, root: Path, size: int) -> FileDescriptor:
        return FileDescriptor(
            path=path,
            relative_path=path.relative_to(root).as_posix(),
            size=size,
            mode=self.mode,
            content=path.read_text(encoding="utf-8"),
        )


class DocumentKind(FileKind):
    suffixes = (".pdf", ".docx", ".doc", ".rtf", ".epub", ".pptx", ".ppt", ".xlsx", ".xls", ".odt")
    mode = SubmissionMode.REFERENCE


class KindRegistry:
    """Select the file kind for a path, mirroring a loader registry."""

    def __init__(self) -> None:
        self._kinds: list[FileKind] = [TextKind(), DocumentKind()]

    def register(self, kind: FileKind) -> None:
        """Add ``kind`` ahead of the built-in kinds so it wins on shared suffixes."""
        self._kinds.insert(0, kind)

    def for_path(self, path: Path) -> FileKind | None:
        for kind in self._kinds:
            if kind.matches(path):
                return kind
        return None


_DEFAULT_REGISTRY = KindRegistry()


def submission_mode_for(path: Path) -> SubmissionMode | None:
    kind = _DEFAULT_REGISTRY.for_path(path)
    return kind.mode if kind else None


class LocalFileScanner:
    """Walk a directory tree and split files into accepted descriptors and skip reasons."""

    def __init__(self, registry: KindRegistry | None = None, max_file_size: int = MAX_FILE_SIZE) -> None:
        self.registry = registry or _DEFAULT_REGISTRY
        self.max_file_size = max_file_size

    def scan(self, root: Path) -> ScanResult:
        root = root.expanduser()
        result = ScanResult()
        if not root.is_dir():
            return result
        for path in sorted(root.rglob("*")):
            if not path.is_file():
                continue
            self._classify(path, root, result)
        logger.info(
            "Scanned %s: %s accepted, %s skipped",
            root,
            len(result.files),
            len(result.skipped),
            extra={"ctx_root": str(root)},
        )
        return result

    def scan_training_data(self, folder: Path) -> ScanResult:
        return self.scan(folder.expanduser() / TRAINING_DATA_DIR)

    def _classify(self, path: Path, root: Path, result: ScanResult) -> None:
        relative = path.relative_to(root).as_posix()
        kind = self.registry.for_path(path)
        if kind is None:
            result.skipped.append(f"{relative} (unsupported extension)")
            return
        try:
            size = path.stat().st_size
            if size > self.max_file_size:
                result.skipped.append(f"{relative} (too large: {format_file_size(size)})")
                return
            result.files.append(kind.describe(path, root, size))
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Skipping unreadable file %s: %s", path, exc)
            result.skipped.append(f"{relative} (read error: {exc})")


@dataclass(frozen=True, slots=True)
class ReplicaFolder:
    path: Path
    name: str
    model_name: str = DEFAULT_MODEL
    system_message: str | None = None


def read_system_message(folder: Path) -> str | None:
    path = folder / SYSTEM_MESSAGE_FILE
    if not path.exists():
        return None
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        logger.error("Error reading %s: %s", path, exc)
        return None


def read_model_name(folder: Path) -> str:
    path = folder / MODEL_FILE
    if path.exists():
        try:
            return path.read_text(encoding="utf-8").strip() or DEFAULT_MODEL
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Error reading %s: %s", path, exc)
    return DEFAULT_MODEL


def is_replica_folder(folder: Path) -> bool:
    return (folder / SYSTEM_MESSAGE_FILE).is_file() or (folder / TRAINING_DATA_DIR).is_dir()


def discover_replica_folders(target: Path) -> list[ReplicaFolder]:
    """Return ``target`` itself when it is a replica folder, else its replica subfolders."""
    target = target.expanduser().resolve()
    if is_replica_folder(target):
        candidates = [target]
    elif target.is_dir():
        candidates = sorted(
            child for child in target.iterdir() if child.is_dir() and (child / SYSTEM_MESSAGE_FILE).is_file()
        )
    else:
        candidates = []
    return [
        ReplicaFolder(
            path=folder,
            name=folder.name,
            model_name=read_model_name(folder),
            system_message=read_system_message(folder),
        )
        for folder in candidates
    ]


__all__ = [
    "DEFAULT_MODEL",
    "DocumentKind",
    "FileKind",
    "KindRegistry",
    "LocalFileScanner",
    "MAX_FILE_SIZE",
    "ReplicaFolder",
    "discover_replica_folders",
    "read_system_message",
    "submission_mode_for",
    "TextKind",
]
