"""Trigger dispatcher: turns business events into workflow tasks."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Iterable, Optional

from .codec import CorrelationCodec, render_description
from .config import EngineSettings
from .contracts import (
    ConditionType,
    FireOptions,
    FireResult,
    ScheduledEntity,
    TriggerEvent,
    WorkflowTemplate,
)
from .persistence import TaskInput, TaskRepository
from .reconstruct import InstanceReconstructor
from .registry import TemplateRegistry
from .scheduling import PlannedStep, plan_steps

logger = logging.getLogger(__name__)

_SUBJECT_CONDITIONS = (ConditionType.TASK_EXISTS, ConditionType.TASK_MISSING)


def idempotency_key(entity_id: str, template_id: str, step_id: str) -> str:
    return f"{entity_id}:{template_id}:{step_id}"


class WorkflowDispatcher:
    """Service responsible for firing workflow templates.

    The existence check and the batch create are separate round trips to the
    task store. Two concurrent ``fire`` calls for the same entity and
    template can both see no tasks and both create the immediate steps. Set
    ``duplicate_guard`` to ``"idempotency_key"`` with a repository that
    honours keys to close that window.
    """

    def __init__(
        self,
        registry: TemplateRegistry,
        repository: TaskRepository,
        reconstructor: Optional[InstanceReconstructor] = None,
        codec: Optional[CorrelationCodec] = None,
        settings: Optional[EngineSettings] = None,
    ) -> None:
        self._registry = registry
        self._repository = repository
        self._codec = codec or CorrelationCodec(registry)
        self._reconstructor = reconstructor or InstanceReconstructor(
            registry, repository, self._codec
        )
        self._settings = settings or EngineSettings()

    async def fire(
        self,
        event: "TriggerEvent | str",
        entity_id: str,
        entity_name: str,
        options: Optional[FireOptions] = None,
    ) -> FireResult:
        """Fire every enabled template matching ``event`` for an entity.

        Args:
            event: Trigger event; unknown names match nothing.
            entity_id: Identifier of the household the tasks belong to.
            entity_name: Display name appended to task subjects.
            options: Optional subject discriminator, entity creation time and
                clock override.

        Returns:
            Aggregated result. Store failures are reported in ``errors``
            rather than raised, so callers may retry safely.
        """
        options = options or FireOptions()
        templates = self._registry.matching(event, options.subject_contains)
        if not templates:
            logger.debug(f"No workflow templates match event={event} entity={entity_id}")
            return FireResult()

        now = options.resolved_now()
        outcomes = await asyncio.gather(
            *(
                self._fire_template(template, entity_id, entity_name, options, now)
                for template in templates
            )
        )
        result = FireResult()
        for outcome in outcomes:
            result.merge(outcome)
        return result

    async def evaluate_scheduled(
        self, entities: Iterable[ScheduledEntity], now: Optional[datetime] = None
    ) -> FireResult:
        """Evaluate time-based templates for each entity.

        There is no background scheduler; callers invoke this while serving a
        view that lists the entities.
        """
        result = FireResult()
        for entity in entities:
            outcome = await self.fire(
                TriggerEvent.SCHEDULED,
                entity.entity_id,
                entity.entity_name,
                FireOptions(entity_created_at=entity.created_at, now=now),
            )
            result.merge(outcome)
        return result

    # ------------------------------------------------------------------
    async def _fire_template(
        self,
        template: WorkflowTemplate,
        entity_id: str,
        entity_name: str,
        options: FireOptions,
        now: datetime,
    ) -> FireResult:
        try:
            records = await self._reconstructor.fetch_records(entity_id)
            existing = self._reconstructor.records_by_step(records, template.id)

            step_scope = (
                template.reevaluate or self._settings.idempotency_scope == "step"
            )
            if existing and not step_scope:
                logger.debug(
                    f"Workflow {template.id} already running for entity={entity_id}"
                )
                return FireResult(skipped=len(template.steps))

            subjects = [r.subject for r in records]
            if any(
                s.condition is not None and s.condition.type in _SUBJECT_CONDITIONS
                for s in template.steps
            ):
                subjects = [
                    r.subject for r in await self._repository.query_by_entity(entity_id, "")
                ]

            plan = plan_steps(
                template,
                now=now,
                existing=existing,
                subjects=subjects,
                entity_created_at=options.entity_created_at,
            )
            skipped = plan.already_materialized + len(plan.deferred)
            tasks = [
                self._materialize(template, planned, entity_id, entity_name, now)
                for planned in plan.immediate
            ] + [
                self._materialize(
                    template, planned, entity_id, entity_name, now, scheduled=True
                )
                for planned in plan.scheduled
            ]
            if not tasks:
                logger.debug(
                    f"Nothing to create for workflow {template.id} entity={entity_id}"
                )
                return FireResult(skipped=skipped)

            batch = await self._repository.create_batch(tasks)
        except Exception as e:
            logger.error(
                f"Failed to fire workflow {template.id} for entity={entity_id}: {e}"
            )
            return FireResult(errors=[f"{template.name}: {e}"])

        for error in batch.errors:
            logger.warning(f"Workflow {template.id} task failed for entity={entity_id}: {error}")
        if batch.records:
            logger.info(
                f"Workflow {template.id} created {len(batch.records)} tasks "
                f"for entity={entity_id}"
            )
        return FireResult(
            triggered=[template.name] if batch.records else [],
            records_created=len(batch.records),
            skipped=skipped,
            errors=[f"{template.name}: {error}" for error in batch.errors],
        )

    def _materialize(
        self,
        template: WorkflowTemplate,
        planned: PlannedStep,
        entity_id: str,
        entity_name: str,
        now: datetime,
        scheduled: bool = False,
    ) -> TaskInput:
        step = planned.step
        key = None
        if self._settings.duplicate_guard == "idempotency_key":
            key = idempotency_key(entity_id, template.id, step.id)
        return TaskInput(
            subject=f"{step.task_subject} — {entity_name}",
            entity_id=entity_id,
            entity_name=entity_name,
            status=step.task_status,
            priority=step.task_priority,
            due_date=planned.due,
            description=render_description(
                template, step, now, due=planned.due if scheduled else None
            ),
            idempotency_key=key,
        )
