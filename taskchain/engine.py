"""Engine facade wiring the registry, codec, store and services together."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional

from .codec import CorrelationCodec
from .config import EngineSettings, TaskchainConfig, load_config
from .contracts import (
    ActiveWorkflowTask,
    FireOptions,
    FireResult,
    ScheduledEntity,
    TemplateSummary,
    TriggerEvent,
    WorkflowInstance,
    WorkflowStep,
    WorkflowTemplate,
)
from .dispatch import WorkflowDispatcher
from .persistence import TaskRepository, get_repository
from .reconstruct import InstanceReconstructor
from .registry import TemplateRegistry, build_registry


class WorkflowEngine:
    """Entry point used by request handlers and the CLI."""

    def __init__(
        self,
        registry: TemplateRegistry,
        repository: TaskRepository,
        settings: Optional[EngineSettings] = None,
    ) -> None:
        self.registry = registry
        self.repository = repository
        self.settings = settings or EngineSettings()
        self.codec = CorrelationCodec(registry)
        self.reconstructor = InstanceReconstructor(
            registry,
            repository,
            self.codec,
            active_page_size=self.settings.active_page_size,
        )
        self.dispatcher = WorkflowDispatcher(
            registry,
            repository,
            reconstructor=self.reconstructor,
            codec=self.codec,
            settings=self.settings,
        )

    @classmethod
    def from_config(cls, config: Optional[TaskchainConfig] = None) -> "WorkflowEngine":
        config = config or load_config()
        return cls(
            build_registry(config.templates_path),
            get_repository(config.database_url),
            config.engine,
        )

    # Inbound ---------------------------------------------------------------
    async def fire(
        self,
        event: "TriggerEvent | str",
        entity_id: str,
        entity_name: str,
        options: Optional[FireOptions] = None,
    ) -> FireResult:
        return await self.dispatcher.fire(event, entity_id, entity_name, options)

    async def evaluate_scheduled(
        self, entities: Iterable[ScheduledEntity], now: Optional[datetime] = None
    ) -> FireResult:
        return await self.dispatcher.evaluate_scheduled(entities, now=now)

    # Read ------------------------------------------------------------------
    def list_templates(self) -> list[TemplateSummary]:
        return self.registry.list_templates()

    def get_template(self, template_id: str) -> Optional[WorkflowTemplate]:
        return self.registry.get_template(template_id)

    async def get_instances(
        self, entity_id: str, entity_name: str = ""
    ) -> list[WorkflowInstance]:
        return await self.reconstructor.get_instances(entity_id, entity_name)

    async def get_pending_steps(
        self, entity_id: str, template_id: str
    ) -> list[WorkflowStep]:
        return await self.reconstructor.get_pending_steps(entity_id, template_id)

    async def get_all_active(self, limit: Optional[int] = None) -> list[ActiveWorkflowTask]:
        return await self.reconstructor.get_all_active(limit)

    async def get_active_instances(self, limit: Optional[int] = None) -> list[WorkflowInstance]:
        return await self.reconstructor.get_active_instances(limit)
