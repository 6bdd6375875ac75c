"""Due-date arithmetic and condition evaluation for workflow steps."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Mapping, NamedTuple, Optional

from pydantic import BaseModel, Field

from .contracts import ConditionType, StepCondition, WorkflowStep, WorkflowTemplate
from .persistence.models import TaskRecord


def _calendar_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def due_date(reference: date | datetime, delay_days: int) -> date:
    """Add ``delay_days`` calendar days to the date of ``reference``."""
    if delay_days < 0:
        raise ValueError(f"delay_days must be non-negative, got {delay_days}")
    return _calendar_date(reference) + timedelta(days=delay_days)


def cascade_due_dates(start: date | datetime, delays: Iterable[int]) -> list[date]:
    """Due dates for a chain where each delay counts from the previous due date."""
    dates: list[date] = []
    reference = _calendar_date(start)
    for delay in delays:
        reference = due_date(reference, delay)
        dates.append(reference)
    return dates


def days_since(created_at: datetime, now: datetime) -> int:
    """Whole calendar days between ``created_at`` and ``now``."""
    now = _aware(now)
    created = _aware(created_at).astimezone(now.tzinfo)
    return (now.date() - created.date()).days


def evaluate_condition(
    condition: StepCondition,
    *,
    subjects: Iterable[str] = (),
    entity_created_at: Optional[datetime] = None,
    now: datetime,
) -> bool:
    if condition.type is ConditionType.DAYS_SINCE_CREATED:
        if entity_created_at is None:
            return False
        return days_since(entity_created_at, now) >= (condition.min_days or 0)

    needle = condition.subject_contains or ""
    found = any(needle in subject for subject in subjects)
    if condition.type is ConditionType.TASK_EXISTS:
        return found
    return not found


class PlannedStep(NamedTuple):
    step: WorkflowStep
    due: date


class SchedulePlan(BaseModel):
    """Steps to materialize now, split by whether they are due today."""

    immediate: list[PlannedStep] = Field(default_factory=list)
    scheduled: list[PlannedStep] = Field(default_factory=list)
    deferred: list[WorkflowStep] = Field(default_factory=list)
    already_materialized: int = 0

    @property
    def planned(self) -> list[PlannedStep]:
        return self.immediate + self.scheduled


def plan_steps(
    template: WorkflowTemplate,
    *,
    now: datetime,
    existing: Optional[Mapping[str, TaskRecord]] = None,
    subjects: Iterable[str] = (),
    entity_created_at: Optional[datetime] = None,
) -> SchedulePlan:
    """Walk the template chain and compute due dates for missing steps.

    ``existing`` maps step ids to tasks already created for the entity; those
    steps are not planned again but their due date is the reference for the
    step after them. A step whose condition does not hold is deferred
    together with every step after it.

    A step with no delay is always due today, wherever it sits in the chain.
    Delayed steps cascade from the previous due date, so the dates they get
    differ from a fixed-start list such as ``due_date(start, delay)`` yields
    for each delay on its own.
    """

    existing = existing or {}
    subjects = list(subjects)
    today = _calendar_date(now)
    plan = SchedulePlan()
    reference = today

    for index, step in enumerate(template.steps):
        record = existing.get(step.id)
        if record is not None:
            plan.already_materialized += 1
            reference = record.due_date or _calendar_date(record.created_at)
            continue

        if step.condition is not None:
            if not evaluate_condition(
                step.condition,
                subjects=subjects,
                entity_created_at=entity_created_at,
                now=now,
            ):
                plan.deferred.extend(
                    s for s in template.steps[index:] if s.id not in existing
                )
                break
            # gated steps count from the moment the condition is met
            reference = today

        if step.delay_days == 0:
            # fires with the trigger; the chain keeps its current reference
            plan.immediate.append(PlannedStep(step, today))
            continue

        due = due_date(reference, step.delay_days)
        if due <= today:
            plan.immediate.append(PlannedStep(step, today))
        else:
            plan.scheduled.append(PlannedStep(step, due))
        reference = due

    return plan
