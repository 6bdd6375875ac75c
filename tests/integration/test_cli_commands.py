from typer.testing import CliRunner

import taskchain.persistence as persistence
from taskchain.cli import app
from taskchain.persistence import InMemoryTaskRepository


def _setup_repo() -> InMemoryTaskRepository:
    repo = InMemoryTaskRepository()
    persistence._repository_instance = repo
    return repo


def test_templates_list_and_show():
    runner = CliRunner()
    result = runner.invoke(app, ["templates", "list"])
    assert result.exit_code == 0, result.output
    assert "new-client-onboarding\thousehold_created\t6 steps\tenabled" in result.output
    assert "document-expiration" in result.output

    result = runner.invoke(app, ["templates", "show", "document-expiration"])
    assert result.exit_code == 0, result.output
    assert "1. dex-1-60day: 60-Day Warning (+0d, Normal) when days_since_created" in result.output

    missing = runner.invoke(app, ["templates", "show", "nope"])
    assert missing.exit_code == 1
    assert "Template not found" in missing.output


def test_fire_show_pending_and_complete():
    repo = _setup_repo()
    runner = CliRunner()

    result = runner.invoke(
        app, ["workflow", "fire", "household_created", "001A", "Smith Household"]
    )
    assert result.exit_code == 0, result.output
    assert "Triggered: New Client Onboarding" in result.output
    assert "Tasks created: 6" in result.output

    result = runner.invoke(app, ["workflow", "show", "001A"])
    assert result.exit_code == 0, result.output
    assert "new-client-onboarding\tactive\t0/6" in result.output

    result = runner.invoke(app, ["workflow", "pending", "001A", "new-client-onboarding"])
    assert "No pending steps" in result.output

    result = runner.invoke(app, ["workflow", "active"])
    assert result.exit_code == 0, result.output
    assert "Send Welcome Package" in result.output

    first_id = next(iter(repo._tasks))
    result = runner.invoke(app, ["workflow", "complete", first_id])
    assert result.exit_code == 0, result.output
    assert f"{first_id}\tCompleted" in result.output

    result = runner.invoke(app, ["workflow", "show", "001A"])
    assert "new-client-onboarding\tactive\t1/6" in result.output
    assert "  - nco-1-welcome: Completed" in result.output


def test_fire_unknown_event_and_empty_views():
    _setup_repo()
    runner = CliRunner()

    result = runner.invoke(app, ["workflow", "fire", "party_thrown", "001A", "Smith"])
    assert result.exit_code == 0, result.output
    assert "no templates will match" in result.output
    assert "Tasks created: 0" in result.output

    assert "No workflows found" in runner.invoke(app, ["workflow", "show", "001Z"]).output
    assert "No active workflow tasks" in runner.invoke(app, ["workflow", "active"]).output

    missing = runner.invoke(app, ["workflow", "complete", "T999999"])
    assert missing.exit_code == 1
    assert "Task not found" in missing.output


def test_fire_scheduled_uses_entity_created_at():
    _setup_repo()
    runner = CliRunner()

    result = runner.invoke(app, ["workflow", "fire", "scheduled", "001B", "Jones Household"])
    assert result.exit_code == 0, result.output
    assert "No --entity-created-at given" in result.output
    assert "Tasks created: 0  skipped: 3" in result.output

    result = runner.invoke(
        app,
        [
            "workflow", "fire", "scheduled", "001B", "Jones Household",
            "--entity-created-at", "2020-01-01",
        ],
    )
    assert result.exit_code == 0, result.output
    assert "No --entity-created-at given" not in result.output
    assert "Triggered: Document Expiration" in result.output
    assert "Tasks created: 3" in result.output
