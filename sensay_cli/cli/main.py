"""CLI entrypoint for the Sensay CLI."""

from __future__ import annotations

from pathlib import Path
from typing import NoReturn, Optional

import typer
from rich.console import Console
from rich.markup import escape

from sensay_cli.api.client import ApiError, RequestContext, SensayClient
from sensay_cli.core.config import ConfigurationError, ProjectConfig, Settings
from sensay_cli.core.logging import configure_logging
from sensay_cli.models.entities import Replica
from sensay_cli.training.pagination import list_all_entries
from sensay_cli.training.status import StatusReconciler, format_histogram
from sensay_cli.ui.progress import ProgressReporter
from sensay_cli.workflows.retrain import FailedItemRetrainer
from sensay_cli.workflows.setup import OrganizationSetup, SetupError, SetupOptions

app = typer.Typer(name="sensay", help="Sensay command-line interface")

console = Console()
err_console = Console(stderr=True)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    log_json: bool = typer.Option(False, "--log-json", help="Emit logs as JSON lines"),
) -> None:
    """Manage replicas and their training data."""
    configure_logging(use_json=log_json, verbose=verbose)


def build_client(settings: Settings) -> SensayClient:
    return SensayClient(RequestContext.from_settings(settings))


def _fail(message: str) -> NoReturn:
    err_console.print(f"[red]❌ {escape(message)}[/red]", highlight=False)
    raise typer.Exit(code=1)


def _fail_api(error: ApiError) -> NoReturn:
    err_console.print("[red]Error:[/red]", escape(str(error)), highlight=False)
    if error.status is not None:
        err_console.print(f"[red]Status: {error.status}[/red]")
    if error.request_id:
        err_console.print(f"[dim]Request ID: {escape(error.request_id)}[/dim]")
    if error.fingerprint:
        err_console.print(f"[dim]Fingerprint: {escape(error.fingerprint)}[/dim]")
    raise typer.Exit(code=1)


def _load_settings(folder: Path, api_key: Optional[str] = None, user_id: Optional[str] = None) -> Settings:
    try:
        settings = Settings.load(project_dir=folder, overrides={"api_key": api_key, "user_id": user_id})
        settings.require_api_key()
    except ConfigurationError as exc:
        _fail(str(exc))
    return settings


@app.command()
def setup(
    folder: Path = typer.Argument(Path("."), help="Project folder with replica folders or training-data/"),
    user_name: Optional[str] = typer.Option(None, "--user-name", "-u", help="User name for the account"),
    user_email: Optional[str] = typer.Option(None, "--user-email", "-e", help="User email address"),
    force: bool = typer.Option(False, "--force", "-f", help="Delete existing training data without asking"),
    non_interactive: bool = typer.Option(False, "--non-interactive", help="Never prompt; fail on missing input"),
    api_key: Optional[str] = typer.Option(None, "--apikey", help="API key for authentication"),
) -> None:
    """Set up a user and replicas, upload training data and wait for processing."""
    folder = folder.expanduser()
    console.print(f"[cyan]Working with folder: {escape(str(folder.resolve()))}[/cyan]\n", highlight=False)
    settings = _load_settings(folder, api_key=api_key)
    runner = OrganizationSetup(
        build_client(settings),
        settings,
        progress=ProgressReporter(console),
        prompt=None if non_interactive else (lambda text: typer.prompt(text)),
        confirm=None if non_interactive else (lambda text: typer.confirm(text, default=False)),
    )
    options = SetupOptions(user_name=user_name, user_email=user_email, force=force, non_interactive=non_interactive)
    try:
        summary = runner.run(folder, options)
    except SetupError as exc:
        _fail(str(exc))
    except ApiError as exc:
        _fail_api(exc)
    if summary.failed and not summary.processed:
        raise typer.Exit(code=1)


@app.command("retrain-failed")
def retrain_failed(
    replica_uuid: Optional[str] = typer.Option(None, "--replica-uuid", "-r", help="UUID of the replica"),
    all_replicas: bool = typer.Option(False, "--all-replicas", "-a", help="Process all replicas"),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation prompt"),
    silent: bool = typer.Option(False, "--silent", "-s", help="Skip interactive prompts"),
    save: bool = typer.Option(False, "--save", help="Save the replica UUID to the project config"),
    api_key: Optional[str] = typer.Option(None, "--apikey", help="API key for authentication"),
    user_id: Optional[str] = typer.Option(None, "--userid", help="User ID"),
    folder: Path = typer.Option(Path("."), "--folder", help="Project folder holding sensay.config.json"),
) -> None:
    """Retrain failed knowledge base items, excluding UNPROCESSABLE ones."""
    folder = folder.expanduser()
    settings = _load_settings(folder, api_key=api_key, user_id=user_id)
    project = ProjectConfig.load(folder)
    client = build_client(settings)
    progress = ProgressReporter(console)
    reconciler = StatusReconciler(
        client,
        progress=progress,
        interval_seconds=settings.poll_interval_seconds,
        max_attempts=settings.poll_max_attempts,
        page_size=settings.list_page_size,
    )
    retrainer = FailedItemRetrainer(
        client,
        reconciler,
        progress=progress,
        confirm=None if silent else (lambda text: typer.confirm(text, default=True)),
        force=force,
        page_size=settings.list_page_size,
    )

    try:
        if all_replicas:
            console.print("[cyan]Processing all replicas...[/cyan]")
            replicas = retrainer.resolve_replicas(all_replicas=True)
        else:
            if not replica_uuid:
                replica_uuid = project.replica_id if silent else _choose_replica(client, progress, project.replica_id)
            if not replica_uuid:
                _fail(
                    "Missing --replica-uuid parameter. "
                    "Either provide --replica-uuid or set replicaId in sensay.config.json"
                )
            replicas = retrainer.resolve_replicas(replica_id=replica_uuid)
            if save:
                project.replica_id = replica_uuid
                project.save(folder)
        summary = retrainer.run(replicas)
    except ApiError as exc:
        progress.stop()
        _fail_api(exc)

    console.print("\n[green]✓ Retraining complete![/green]")
    console.print(f"Total failed items found: {summary.total_found}", highlight=False)
    console.print(f"Total items retrained: {summary.total_retrained}", highlight=False)


@app.command()
def status(
    replica_uuid: Optional[str] = typer.Option(None, "--replica-uuid", "-r", help="UUID of the replica"),
    api_key: Optional[str] = typer.Option(None, "--apikey", help="API key for authentication"),
    folder: Path = typer.Option(Path("."), "--folder", help="Project folder holding sensay.config.json"),
) -> None:
    """Show the status histogram of a replica's knowledge base."""
    folder = folder.expanduser()
    settings = _load_settings(folder, api_key=api_key)
    replica_uuid = replica_uuid or ProjectConfig.load(folder).replica_id
    if not replica_uuid:
        _fail("Missing --replica-uuid parameter")
    try:
        entries = list_all_entries(build_client(settings), replica_uuid, page_size=settings.list_page_size)
    except ApiError as exc:
        _fail_api(exc)
    histogram: dict[str, int] = {}
    for entry in entries:
        histogram[str(entry.status)] = histogram.get(str(entry.status), 0) + 1
    console.print(f"{len(entries)} knowledge base entries", highlight=False)
    if histogram:
        console.print(format_histogram(histogram), highlight=False)


def _choose_replica(client: SensayClient, progress: ProgressReporter, default: Optional[str]) -> Optional[str]:
    progress.start("Fetching replicas...")
    try:
        replicas: list[Replica] = client.list_replicas()
    except ApiError:
        progress.fail("Failed to fetch replicas")
        raise
    progress.stop()
    if not replicas:
        _fail("No replicas found")
    for index, replica in enumerate(replicas, start=1):
        console.print(f"  {index}. {escape(replica.name)} ({replica.uuid})", highlight=False)
    default_index = next(
        (index for index, replica in enumerate(replicas, start=1) if replica.uuid == default),
        1,
    )
    choice = typer.prompt("Select replica", default=default_index, type=int)
    if not 1 <= choice <= len(replicas):
        _fail(f"Invalid selection: {choice}")
    return replicas[choice - 1].uuid


if __name__ == "__main__":
    app()
