"""Organization setup: user, replicas and their training data from a project folder."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Sequence

from sensay_cli.api.client import ApiError, SensayClient
from sensay_cli.core.config import ProjectConfig, Settings
from sensay_cli.core.logging import get_logger
from sensay_cli.ingest.pipeline import UploadPipeline
from sensay_cli.ingest.scanner import LocalFileScanner, ReplicaFolder, discover_replica_folders
from sensay_cli.ingest.types import ScanResult, UploadOutcome
from sensay_cli.models.dto import LlmSettings, ReplicaUpsertRequest
from sensay_cli.models.entities import Replica, User
from sensay_cli.training.cleanup import ClearResult, delete_entries, find_existing_entries
from sensay_cli.training.status import MonitorResult, ReconciliationReport, StatusReconciler
from sensay_cli.ui.progress import ProgressReporter
from sensay_cli.utils.text import format_file_size, slugify

logger = get_logger(__name__)

DEFAULT_GREETING = "Hello! How can I help you today?"
DEFAULT_SYSTEM_MESSAGE = "You are a helpful AI assistant."

Prompt = Callable[[str], str]
Confirm = Callable[[str], bool]


class SetupError(RuntimeError):
    """Setup cannot continue; reported to the user and exits non-zero."""


@dataclass(slots=True)
class SetupOptions:
    user_name: str | None = None
    user_email: str | None = None
    force: bool = False
    non_interactive: bool = False


@dataclass(slots=True)
class ReplicaSetupResult:
    folder: ReplicaFolder
    replica: Replica | None = None
    scan: ScanResult | None = None
    cleared: ClearResult | None = None
    outcomes: list[UploadOutcome] = field(default_factory=list)
    error: str | None = None
    monitor: MonitorResult | None = None
    reconciliation: ReconciliationReport | None = None

    @property
    def uploaded(self) -> list[UploadOutcome]:
        return [outcome for outcome in self.outcomes if outcome.success]

    @property
    def upload_failures(self) -> list[UploadOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.success]


@dataclass(slots=True)
class SetupSummary:
    user: User
    results: list[ReplicaSetupResult] = field(default_factory=list)

    @property
    def processed(self) -> list[ReplicaSetupResult]:
        return [result for result in self.results if result.error is None]

    @property
    def failed(self) -> list[ReplicaSetupResult]:
        return [result for result in self.results if result.error is not None]


class OrganizationSetup:
    """Provision a user and one replica per replica folder, then upload and monitor training data."""

    def __init__(
        self,
        client: SensayClient,
        settings: Settings,
        progress: ProgressReporter | None = None,
        prompt: Prompt | None = None,
        confirm: Confirm | None = None,
        scanner: LocalFileScanner | None = None,
        sleep: Callable[[float], None] = time.sleep,
        cancel: threading.Event | None = None,
    ) -> None:
        self.client = client
        self.settings = settings
        self.progress = progress or ProgressReporter()
        self.prompt = prompt
        self.confirm = confirm
        self.scanner = scanner or LocalFileScanner()
        self.sleep = sleep
        self.cancel = cancel

    def run(self, target: Path, options: SetupOptions | None = None) -> SetupSummary:
        options = options or SetupOptions()
        folders = discover_replica_folders(target)
        if not folders:
            raise SetupError(
                "No replica folders found. Each replica folder should contain a system-message.txt file."
            )
        self.progress.info(f"Found {len(folders)} replica folder(s) to process:", style="blue")
        for folder in folders:
            self.progress.info(f"  - {folder.name} (model: {folder.model_name})", style="cyan")

        project = ProjectConfig.load(target)
        user_name, user_email = self._resolve_identity(project, options)
        project.user_name = user_name
        project.user_email = user_email
        project.save(target)

        user = self._ensure_user(user_name, user_email)
        project.user_id = user.id
        project.save(target)
        client = self.client.with_user(user.id)

        existing = self._existing_replicas(client)
        summary = SetupSummary(user=user)
        pipeline = UploadPipeline(
            client,
            progress=self.progress,
            max_attempts=self.settings.upload_max_attempts,
            backoff_seconds=self.settings.upload_backoff_seconds,
            sleep=self.sleep,
            cancel=self.cancel,
        )
        for index, folder in enumerate(folders, start=1):
            self.progress.info(f"\nProcessing replica {index}/{len(folders)}: {folder.name}", style="blue")
            result = ReplicaSetupResult(folder=folder)
            summary.results.append(result)
            try:
                replica = self._upsert_replica(client, folder, user, existing)
                result.replica = replica
                result.cleared = self._clear_existing(client, replica, options)
                self._upload(result, replica, pipeline)
            except ApiError as exc:
                logger.error("Failed to process replica %s: %s", folder.name, exc)
                result.error = str(exc)
                self.progress.fail(f"Failed to process replica {folder.name}: {exc}")

        self._report(summary)
        self._monitor(client, summary)
        return summary

    # Steps ------------------------------------------------------------

    def _resolve_identity(self, project: ProjectConfig, options: SetupOptions) -> tuple[str, str]:
        name = options.user_name or project.user_name
        email = options.user_email or project.user_email
        if name and email:
            return name, email
        if options.non_interactive or self.prompt is None:
            raise SetupError(
                "Missing user name or email. Pass --user-name/--user-email or set them in sensay.config.json."
            )
        while not name:
            name = self.prompt("User name").strip()
        while not email or "@" not in email:
            email = self.prompt("User email").strip()
        return name, email

    def _ensure_user(self, name: str, email: str) -> User:
        self.progress.start("Creating/getting user...")
        try:
            user = self.client.get_current_user()
            self.progress.succeed(f"User found: {user.name or user.id}")
            return user
        except ApiError as exc:
            logger.info("Current user lookup failed, creating one: %s", exc)
        try:
            user = self.client.create_user(name, email)
        except ApiError as exc:
            self.progress.fail(f"Failed to create user: {exc}")
            raise
        self.progress.succeed(f"User created: {user.name or user.id}")
        return user

    def _existing_replicas(self, client: SensayClient) -> list[Replica]:
        self.progress.start("Fetching existing replicas...")
        try:
            replicas = client.list_replicas()
        except ApiError as exc:
            logger.warning("Could not list replicas: %s", exc)
            self.progress.warn("Could not fetch existing replicas")
            return []
        self.progress.succeed(f"Found {len(replicas)} existing replicas")
        return replicas

    def _upsert_replica(
        self,
        client: SensayClient,
        folder: ReplicaFolder,
        user: User,
        existing: Sequence[Replica],
    ) -> Replica:
        match = next((replica for replica in existing if replica.name == folder.name), None)
        request = ReplicaUpsertRequest(
            name=folder.name,
            short_description=(match.short_description if match else None) or f"AI replica for {folder.name}",
            greeting=(match.greeting if match else None) or DEFAULT_GREETING,
            owner_id=user.id,
            slug=(match.slug if match else None) or slugify(folder.name),
            llm=LlmSettings(
                model=folder.model_name,
                system_message=folder.system_message or DEFAULT_SYSTEM_MESSAGE,
            ),
        )
        if match is not None:
            self.progress.start(f"Updating existing replica: {folder.name}...")
            client.update_replica(match.uuid, request)
            replica = client.get_replica(match.uuid)
            self.progress.succeed(f"Updated existing replica: {replica.name} (model: {folder.model_name})")
        else:
            self.progress.start(f"Creating new replica: {folder.name}...")
            replica = client.get_replica(client.create_replica(request))
            self.progress.succeed(f"Created new replica: {replica.name} (model: {folder.model_name})")
        return replica

    def _clear_existing(self, client: SensayClient, replica: Replica, options: SetupOptions) -> ClearResult:
        self.progress.start("Checking existing training data...")
        try:
            entries = find_existing_entries(client, replica.uuid, page_size=self.settings.list_page_size)
        except ApiError as exc:
            self.progress.warn(f"Could not clear existing training data completely: {exc}")
            return ClearResult()
        self.progress.stop()
        if not entries:
            return ClearResult()

        if not options.force:
            prompt = f"Delete {len(entries)} existing training entries for {replica.name}?"
            if options.non_interactive or self.confirm is None:
                raise SetupError(
                    f"Replica {replica.name} already has {len(entries)} training entries. "
                    "Use --force to automatically delete it."
                )
            if not self.confirm(prompt):
                self.progress.info("Keeping existing training data", style="yellow")
                return ClearResult(found=len(entries))

        result = delete_entries(client, entries, progress=self.progress)
        if result.errors:
            self.progress.warn(f"Deleted {result.deleted}/{result.found} existing entries")
            for message in result.errors:
                self.progress.info(f"  - {message}")
        else:
            self.progress.succeed(f"Cleared {result.deleted} existing training entries")
        return result

    def _upload(self, result: ReplicaSetupResult, replica: Replica, pipeline: UploadPipeline) -> None:
        result.scan = self.scanner.scan_training_data(result.folder.path)
        self._print_scan(result.scan)
        if not result.scan.files:
            self.progress.info("Replica training data is ready for new content", style="blue")
            return

        self.progress.start("Uploading training data...")
        result.outcomes = pipeline.upload(replica.uuid, result.scan.files)
        failures = result.upload_failures
        if failures:
            self.progress.warn(
                f"Training data upload completed: {len(result.uploaded)} successful, {len(failures)} failed"
            )
            for outcome in failures:
                self.progress.info(f"  - {outcome.file.relative_path}: {outcome.error}", style="dim")
        else:
            self.progress.succeed(f"Training data uploaded: {len(result.outcomes)} files processed")

    def _monitor(self, client: SensayClient, summary: SetupSummary) -> None:
        pending: list[tuple[ReplicaSetupResult, Replica]] = []
        for result in summary.processed:
            if result.replica is not None and result.uploaded:
                pending.append((result, result.replica))
        if not pending:
            return
        reconciler = StatusReconciler(
            client,
            progress=self.progress,
            interval_seconds=self.settings.poll_interval_seconds,
            max_attempts=self.settings.poll_max_attempts,
            page_size=self.settings.list_page_size,
            sleep=self.sleep,
            cancel=self.cancel,
        )
        self.progress.info(f"\nMonitoring training progress for {len(pending)} replica(s)...", style="blue")
        for result, replica in pending:
            self.progress.info(f"\nChecking training status for {result.folder.name}...", style="cyan")
            result.monitor = reconciler.monitor(
                replica.uuid, [outcome.entry_id for outcome in result.uploaded if outcome.entry_id is not None]
            )
            result.reconciliation = reconciler.reconcile(replica.uuid, result.outcomes)

    # Output -----------------------------------------------------------

    def _print_scan(self, scan: ScanResult) -> None:
        if scan.files:
            self.progress.info(f"{len(scan.files)} files will be processed:", style="green")
            for descriptor in scan.files:
                self.progress.info(f"   {descriptor.relative_path} ({format_file_size(descriptor.size)})")
        if scan.skipped:
            self.progress.info(f"{len(scan.skipped)} files skipped:", style="yellow")
            for reason in scan.skipped:
                self.progress.info(f"   {reason}", style="dim")
        if not scan.files and not scan.skipped:
            self.progress.info("No training files found in training-data folder", style="yellow")

    def _report(self, summary: SetupSummary) -> None:
        self.progress.info("\nSetup completed!", style="green")
        self.progress.info(f"User: {summary.user.name or ''} ({summary.user.id})", style="cyan")
        if summary.processed:
            self.progress.info(f"\nSuccessfully processed {len(summary.processed)} replica(s):", style="green")
            for result in summary.processed:
                files = len(result.scan.files) if result.scan else 0
                replica_id = result.replica.uuid if result.replica else "unknown"
                self.progress.info(f"  - {result.folder.name} ({replica_id})", style="cyan")
                self.progress.info(f"    Model: {result.folder.model_name}, Training files: {files}", style="dim")
        if summary.failed:
            self.progress.info(f"\nFailed to process {len(summary.failed)} replica(s):", style="red")
            for result in summary.failed:
                self.progress.info(f"  - {result.folder.name}: {result.error}", style="red")


__all__ = [
    "OrganizationSetup",
    "ReplicaSetupResult",
    "SetupError",
    "SetupOptions",
    "SetupSummary",
]
