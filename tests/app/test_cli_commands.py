from __future__ import annotations

from types import SimpleNamespace

import httpx
import pytest
from typer.testing import CliRunner

from unidata_engine.app import AppState, app
from unidata_engine.logging_conf import subject_log_path
from unidata_engine.services import build_services

PROGRAM_URL = "https://uni.example.edu/programs/cs"
BLOCKED_URL = "https://uni.example.edu/programs/blocked"


@pytest.fixture
def state(monkeypatch, settings, store, mock_client, sleeps, program_page, temp_config_repository):
    page = program_page()

    def handler(request: httpx.Request) -> httpx.Response:
        if str(request.url) == BLOCKED_URL:
            return httpx.Response(429)
        return httpx.Response(200, html=page)

    services = build_services(settings, store=store, client=mock_client(handler), sleep=sleeps)
    app_state = AppState(
        repository=temp_config_repository,
        settings=settings,
        services=services,
        scheduler=SimpleNamespace(list_jobs=lambda: []),
    )
    monkeypatch.setattr("unidata_engine.app.build_state", lambda verbose: app_state)
    return app_state


def test_run_then_approve(state) -> None:
    runner = CliRunner()

    result = runner.invoke(app, ["run", "Example University", "--country", "Canada", "-l", PROGRAM_URL])

    assert result.exit_code == 0, result.stdout
    assert "READY_TO_PUBLISH" in result.stdout
    assert "Awaiting approval" in result.stdout
    job_id = state.services.manager.list_jobs()[0].id

    approved = runner.invoke(app, ["approve", job_id, "--by", "reviewer"])
    assert approved.exit_code == 0, approved.stdout
    assert "published by reviewer" in approved.stdout

    again = runner.invoke(app, ["approve", job_id, "--by", "reviewer"])
    assert again.exit_code == 2

    missing = runner.invoke(app, ["approve", "job_missing", "--by", "reviewer"])
    assert missing.exit_code == 1


def test_blocked_run_exits_with_error(state) -> None:
    result = CliRunner().invoke(app, ["run", "Example University", "-l", BLOCKED_URL])

    assert result.exit_code == 1
    assert "BLOCKED" in result.stdout
    assert "blocked" in result.stdout


def test_job_and_queue_views(state) -> None:
    runner = CliRunner()

    empty = runner.invoke(app, ["job", "list"])
    assert empty.exit_code == 0
    assert "No jobs recorded yet." in empty.stdout

    job = state.services.manager.create_job("Example University", "Canada", [PROGRAM_URL])
    listed = runner.invoke(app, ["job", "list"])
    assert "QUEUED" in listed.stdout
    shown = runner.invoke(app, ["job", "show", job.id])
    assert shown.exit_code == 0
    assert "QUEUED" in shown.stdout
    assert runner.invoke(app, ["job", "show", "job_missing"]).exit_code == 1

    status = runner.invoke(app, ["queue", "status"])
    assert status.exit_code == 0
    assert "queue_size" in status.stdout


def test_subject_commands(state) -> None:
    runner = CliRunner()

    added = runner.invoke(
        app,
        ["subject", "add", "UBC", "--country", "Canada", "-l", PROGRAM_URL, "--cron", "0 3 * * 1"],
    )
    assert added.exit_code == 0, added.stdout
    assert state.repository.load_subject("UBC").schedule.value == "0 3 * * 1"

    listed = runner.invoke(app, ["subject", "list"])
    assert "UBC" in listed.stdout
    assert "cron" in listed.stdout

    ran = runner.invoke(app, ["subject", "run", "UBC"])
    assert ran.exit_code == 0, ran.stdout
    assert state.services.manager.list_jobs()[0].subject_name == "UBC"

    both = runner.invoke(app, ["subject", "add", "SFU", "--cron", "0 3 * * 1", "--interval", "60"])
    assert both.exit_code != 0

    assert runner.invoke(app, ["subject", "remove", "UBC"]).exit_code == 0
    assert runner.invoke(app, ["subject", "remove", "UBC"]).exit_code == 1
    assert runner.invoke(app, ["subject", "run", "UBC"]).exit_code == 1


def test_log_show_tails_subject_log(state) -> None:
    path = subject_log_path("UBC")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("".join(f"line {i}\n" for i in range(5)), encoding="utf-8")
    runner = CliRunner()

    shown = runner.invoke(app, ["log", "show", "--subject", "UBC", "--tail", "2"])
    assert shown.exit_code == 0
    assert "line 3" in shown.stdout
    assert "line 1" not in shown.stdout

    listed = runner.invoke(app, ["log", "list"])
    assert "ubc.log" in listed.stdout
