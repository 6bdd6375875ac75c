"""Command line interface for inspecting and firing workflows."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Optional

import typer

from taskchain import WorkflowEngine, load_config
from taskchain.constants import COMPLETED_STATUS
from taskchain.contracts import FireOptions, TriggerEvent

app = typer.Typer(help="CLI for taskchain workflows")

# Command groups
templates_app = typer.Typer(help="Commands for browsing workflow templates")
workflow_app = typer.Typer(help="Commands for firing and inspecting workflows")

app.add_typer(templates_app, name="templates")
app.add_typer(workflow_app, name="workflow")


def _engine() -> WorkflowEngine:
    return WorkflowEngine.from_config(load_config())


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, help="Override the configured log level"),
) -> None:
    """Taskchain CLI entry point."""
    config = load_config()
    logging.basicConfig(
        level=(log_level or config.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@templates_app.command("list")
def templates_list() -> None:
    """
    List workflow templates.

    Example:
        taskchain templates list
        # Output: new-client-onboarding    household_created    6 steps    enabled
    """
    for t in _engine().list_templates():
        state = "enabled" if t.enabled else "disabled"
        typer.echo(f"{t.id}\t{t.trigger.value}\t{t.step_count} steps\t{state}")


@templates_app.command("show")
def templates_show(template_id: str) -> None:
    """Show the steps of a template with their delays and conditions."""
    template = _engine().get_template(template_id)
    if template is None:
        typer.secho("Template not found", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"{template.name} ({template.trigger.value})")
    typer.echo(template.description)
    for index, step in enumerate(template.steps, start=1):
        line = f"{index}. {step.id}: {step.label} (+{step.delay_days}d, {step.task_priority})"
        if step.condition is not None:
            line += f" when {step.condition.type.value}"
        typer.echo(line)


@workflow_app.command("fire")
def workflow_fire(
    event: str,
    entity_id: str,
    entity_name: str,
    subject_contains: Optional[str] = typer.Option(
        None, help="Subject text used to pick templates sharing a trigger"
    ),
    entity_created_at: Optional[datetime] = typer.Option(
        None,
        formats=["%Y-%m-%d", "%Y-%m-%dT%H:%M:%S"],
        help="When the entity was created, for days-since-created conditions",
    ),
) -> None:
    """
    Fire the templates matching EVENT for an entity.

    Example:
        taskchain workflow fire household_created 001ABC "Smith Household"
        taskchain workflow fire scheduled 001ABC "Smith Household" --entity-created-at 2025-03-01
    """
    trigger = TriggerEvent.parse(event)
    if trigger is None:
        typer.secho(f"Unknown event {event!r}; no templates will match", fg=typer.colors.YELLOW)
    elif trigger is TriggerEvent.SCHEDULED and entity_created_at is None:
        typer.secho(
            "No --entity-created-at given; days-since-created steps will be deferred",
            fg=typer.colors.YELLOW,
        )
    engine = _engine()
    result = asyncio.run(
        engine.fire(
            event,
            entity_id,
            entity_name,
            FireOptions(
                subject_contains=subject_contains, entity_created_at=entity_created_at
            ),
        )
    )
    typer.echo(f"Triggered: {', '.join(result.triggered) or '-'}")
    typer.echo(f"Tasks created: {result.records_created}  skipped: {result.skipped}")
    for error in result.errors:
        typer.secho(f"Error: {error}", fg=typer.colors.RED)
    if result.errors:
        raise typer.Exit(code=1)


@workflow_app.command("show")
def workflow_show(entity_id: str) -> None:
    """Show workflow progress for an entity."""
    engine = _engine()
    instances = asyncio.run(engine.get_instances(entity_id))
    if not instances:
        typer.echo("No workflows found")
        return
    for inst in instances:
        template = engine.get_template(inst.template_id)
        total = len(template.steps) if template else "?"
        typer.echo(
            f"{inst.template_id}\t{inst.status}\t{inst.current_step_index}/{total}"
        )
        for step_id in inst.completed_steps:
            typer.echo(f"  - {step_id}: {COMPLETED_STATUS}")


@workflow_app.command("pending")
def workflow_pending(entity_id: str, template_id: str) -> None:
    """List the steps of a template not yet created for an entity."""
    steps = asyncio.run(_engine().get_pending_steps(entity_id, template_id))
    if not steps:
        typer.echo("No pending steps")
        return
    for step in steps:
        typer.echo(f"{step.id}\t{step.label}")


@workflow_app.command("active")
def workflow_active(limit: Optional[int] = typer.Option(None, help="Maximum rows")) -> None:
    """List open workflow tasks across all entities."""
    tasks = asyncio.run(_engine().get_all_active(limit))
    if not tasks:
        typer.echo("No active workflow tasks")
        return
    for task in tasks:
        due = task.due_date.isoformat() if task.due_date else "-"
        typer.echo(
            f"{task.record_id}\t{due}\t{task.entity_id}\t{task.template_name}\t{task.step_label}"
        )


@workflow_app.command("complete")
def workflow_complete(record_id: str) -> None:
    """Mark a workflow task as completed."""
    record = asyncio.run(_engine().repository.set_status(record_id, COMPLETED_STATUS))
    if record is None:
        typer.secho("Task not found", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"{record.id}\t{record.status}")


if __name__ == "__main__":
    app()
