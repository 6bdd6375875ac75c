"""Rebuild workflow progress from the tasks stored for an entity."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Optional

from .codec import CorrelationCodec, legacy_labels
from .constants import DEFAULT_ACTIVE_PAGE_SIZE, WORKFLOW_SUBJECT_PREFIX
from .contracts import ActiveWorkflowTask, StepRef, WorkflowInstance, WorkflowStep
from .persistence import TaskRecord, TaskRepository
from .registry import TemplateRegistry

logger = logging.getLogger(__name__)


class InstanceReconstructor:
    """Derive :class:`WorkflowInstance` views from materialized tasks.

    Nothing is cached: each call reads the entity's tasks through the
    repository and decodes them again.
    """

    def __init__(
        self,
        registry: TemplateRegistry,
        repository: TaskRepository,
        codec: Optional[CorrelationCodec] = None,
        active_page_size: int = DEFAULT_ACTIVE_PAGE_SIZE,
    ) -> None:
        self._registry = registry
        self._repository = repository
        self._codec = codec or CorrelationCodec(registry)
        self._active_page_size = active_page_size

    async def fetch_records(self, entity_id: str) -> list[TaskRecord]:
        return await self._repository.query_by_entity(entity_id, WORKFLOW_SUBJECT_PREFIX)

    def decode_records(
        self, records: list[TaskRecord]
    ) -> list[tuple[StepRef, TaskRecord]]:
        decoded = []
        for record in records:
            ref = self._codec.decode_record(record)
            if ref is None:
                logger.debug(f"Task {record.id} is not a workflow task")
                continue
            decoded.append((ref, record))
        return decoded

    def records_by_step(
        self, records: list[TaskRecord], template_id: str
    ) -> dict[str, TaskRecord]:
        """Map step ids of ``template_id`` to the first task materializing them."""
        by_step: dict[str, TaskRecord] = {}
        for ref, record in self.decode_records(records):
            if ref.template_id == template_id:
                by_step.setdefault(ref.step_id, record)
        return by_step

    # ------------------------------------------------------------------
    def build_instances(
        self, entity_id: str, records: list[TaskRecord], entity_name: str = ""
    ) -> list[WorkflowInstance]:
        grouped: dict[str, list[tuple[StepRef, TaskRecord]]] = defaultdict(list)
        for ref, record in self.decode_records(records):
            grouped[ref.template_id].append((ref, record))

        instances: list[WorkflowInstance] = []
        for template in self._registry.templates:
            entries = grouped.get(template.id)
            if not entries:
                continue
            completed = {ref.step_id for ref, record in entries if record.is_completed}
            completed_steps = [s.id for s in template.steps if s.id in completed]
            name = entity_name or next(
                (r.entity_name for _, r in entries if r.entity_name), ""
            )
            instances.append(
                WorkflowInstance(
                    template_id=template.id,
                    entity_id=entity_id,
                    entity_name=name,
                    started_at=min(record.created_at for _, record in entries),
                    current_step_index=len(completed_steps),
                    completed_steps=completed_steps,
                    status=(
                        "completed"
                        if len(completed_steps) == len(template.steps)
                        else "active"
                    ),
                )
            )
        return instances

    async def get_instances(
        self, entity_id: str, entity_name: str = ""
    ) -> list[WorkflowInstance]:
        """Return one instance per template that has tasks for ``entity_id``."""
        records = await self.fetch_records(entity_id)
        return self.build_instances(entity_id, records, entity_name)

    async def materialized_step_ids(self, entity_id: str, template_id: str) -> set[str]:
        records = await self.fetch_records(entity_id)
        return set(self.records_by_step(records, template_id))

    async def get_pending_steps(
        self, entity_id: str, template_id: str
    ) -> list[WorkflowStep]:
        """Steps of ``template_id`` with no task yet for ``entity_id``.

        Retrying a partially failed fire only has to submit these.
        """
        template = self._registry.get_template(template_id)
        if template is None:
            return []
        done = await self.materialized_step_ids(entity_id, template_id)
        return [step for step in template.steps if step.id not in done]

    async def get_all_active(self, limit: Optional[int] = None) -> list[ActiveWorkflowTask]:
        """Open workflow tasks across all entities, earliest due first."""
        records = await self._repository.query_open(
            WORKFLOW_SUBJECT_PREFIX, limit or self._active_page_size
        )
        return [self._describe(record) for record in records]

    async def get_active_instances(
        self, limit: Optional[int] = None
    ) -> list[WorkflowInstance]:
        """Active instances for every entity with an open workflow task.

        Entities are discovered from the capped open-task page, so at most
        ``limit`` entities are covered.
        """
        records = await self._repository.query_open(
            WORKFLOW_SUBJECT_PREFIX, limit or self._active_page_size
        )
        names: dict[str, str] = {}
        for record in records:
            names.setdefault(record.entity_id, record.entity_name)

        instances: list[WorkflowInstance] = []
        for entity_id, entity_name in names.items():
            for instance in await self.get_instances(entity_id, entity_name):
                if instance.status == "active":
                    instances.append(instance)
        return instances

    def _describe(self, record: TaskRecord) -> ActiveWorkflowTask:
        ref = self._codec.decode_record(record)
        template_id: Optional[str] = None
        template_name: Optional[str] = None
        step_label: Optional[str] = None

        if ref is not None:
            template_id = ref.template_id
            template = self._registry.get_template(ref.template_id)
            template_name = template.name if template else ref.template_id
            found = self._registry.get_step(ref.step_id)
            step_label = found[1].label if found else ref.step_id
        else:
            template_name, step_label = legacy_labels(record.description)

        return ActiveWorkflowTask(
            record_id=record.id,
            entity_id=record.entity_id,
            entity_name=record.entity_name,
            subject=record.subject,
            status=record.status,
            priority=record.priority,
            due_date=record.due_date,
            template_id=template_id,
            template_name=template_name or "Unknown",
            step_label=step_label
            or record.subject.replace(WORKFLOW_SUBJECT_PREFIX, "", 1).strip(),
        )
