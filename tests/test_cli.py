"""CLI tests using Typer's runner."""

from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from conftest import FakeKnowledgeService
from sensay_cli.cli import main
from sensay_cli.models.entities import Status

runner = CliRunner()


@pytest.fixture
def fake_client(monkeypatch: pytest.MonkeyPatch) -> FakeKnowledgeService:
    service = FakeKnowledgeService()
    monkeypatch.setattr(main, "build_client", lambda settings: service)
    monkeypatch.setenv("SENSAY_POLL_INTERVAL_SECONDS", "0")
    monkeypatch.setenv("SENSAY_POLL_MAX_ATTEMPTS", "2")
    return service


def test_missing_api_key_exits_before_any_request(tmp_path: Path, fake_client: FakeKnowledgeService) -> None:
    result = runner.invoke(main.app, ["retrain-failed", "--replica-uuid", "replica-1", "--folder", str(tmp_path)])

    assert result.exit_code == 1
    assert "No API key" in result.output
    assert fake_client.calls == []


def test_retrain_failed_prints_totals(tmp_path: Path, fake_client: FakeKnowledgeService) -> None:
    fake_client.add_replica("Helper", uuid="replica-1")
    fake_client.add_entry(Status.READY)
    fake_client.add_entry(Status.ERR_TEXT_TO_VECTOR, error="vector failure")
    fake_client.add_entry(Status.UNPROCESSABLE, error="cannot parse")
    fake_client.add_entry("SYNC_ERROR", error="sync lost")

    result = runner.invoke(
        main.app,
        ["retrain-failed", "-r", "replica-1", "--silent", "--apikey", "secret", "--folder", str(tmp_path)],
    )

    assert result.exit_code == 0, result.output
    assert "Found 2 failed training items (excluding UNPROCESSABLE)" in result.output
    assert "Total failed items found: 2" in result.output
    assert "Total items retrained: 2" in result.output


def test_retrain_failed_silent_reads_replica_from_project(tmp_path: Path, fake_client: FakeKnowledgeService) -> None:
    (tmp_path / "sensay.config.json").write_text('{"replicaId": "replica-1", "apiKey": "secret"}')
    fake_client.add_replica("Helper", uuid="replica-1")

    result = runner.invoke(main.app, ["retrain-failed", "--silent", "--folder", str(tmp_path)])

    assert result.exit_code == 0, result.output
    assert "Total failed items found: 0" in result.output


def test_retrain_failed_requires_replica_when_silent(tmp_path: Path, fake_client: FakeKnowledgeService) -> None:
    result = runner.invoke(main.app, ["retrain-failed", "--silent", "--apikey", "secret", "--folder", str(tmp_path)])

    assert result.exit_code == 1
    assert "Missing --replica-uuid" in result.output


def test_status_prints_histogram(tmp_path: Path, fake_client: FakeKnowledgeService) -> None:
    fake_client.add_entry(Status.READY)
    fake_client.add_entry(Status.READY)
    fake_client.add_entry(Status.NEW)

    result = runner.invoke(main.app, ["status", "-r", "replica-1", "--apikey", "secret", "--folder", str(tmp_path)])

    assert result.exit_code == 0, result.output
    assert "3 knowledge base entries" in result.output
    assert "NEW: 1, READY: 2" in result.output


def test_setup_non_interactive_without_identity_fails(tmp_path: Path, fake_client: FakeKnowledgeService) -> None:
    replica = tmp_path / "Helper"
    replica.mkdir()
    (replica / "system-message.txt").write_text("Be helpful.")

    result = runner.invoke(main.app, ["setup", str(tmp_path), "--non-interactive", "--apikey", "secret"])

    assert result.exit_code == 1
    assert "Missing user name or email" in result.output
