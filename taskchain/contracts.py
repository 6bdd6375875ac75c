"""Core data contracts for the taskchain workflow engine."""

from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class TriggerEvent(str, Enum):
    """Closed set of business events that can start a workflow."""

    HOUSEHOLD_CREATED = "household_created"
    DOCUSIGN_SENT = "docusign_sent"
    DOCUSIGN_COMPLETED = "docusign_completed"
    COMPLIANCE_REVIEWED = "compliance_reviewed"
    MEETING_COMPLETED = "meeting_completed"
    TASK_COMPLETED = "task_completed"
    SCHEDULED = "scheduled"

    @classmethod
    def parse(cls, value: "str | TriggerEvent | None") -> Optional["TriggerEvent"]:
        """Return the matching event, or ``None`` for unknown names."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


class ConditionType(str, Enum):
    TASK_EXISTS = "task_exists"
    TASK_MISSING = "task_missing"
    DAYS_SINCE_CREATED = "days_since_created"


TaskPriority = Literal["High", "Normal", "Low"]
TaskStatus = Literal["Not Started", "In Progress"]
InstanceStatus = Literal["active", "completed", "paused"]


class StepCondition(BaseModel):
    """Single predicate gating a step independently of its delay."""

    model_config = ConfigDict(frozen=True)

    type: ConditionType
    subject_contains: Optional[str] = None
    min_days: Optional[int] = None

    @model_validator(mode="after")
    def _check_arguments(self) -> "StepCondition":
        if self.type is ConditionType.DAYS_SINCE_CREATED:
            if self.min_days is None or self.min_days < 0:
                raise ValueError("days_since_created requires a non-negative min_days")
        elif not self.subject_contains:
            raise ValueError(f"{self.type.value} requires subject_contains")
        return self


class WorkflowStep(BaseModel):
    """One unit of work, materialized as one CRM task when fired."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    label: str
    task_subject: str
    task_description: str = ""
    task_priority: TaskPriority = "Normal"
    task_status: TaskStatus = "Not Started"
    delay_days: int = Field(0, ge=0, description="Days after the previous step")
    condition: Optional[StepCondition] = None

    @field_validator("id")
    @classmethod
    def _no_whitespace(cls, v: str) -> str:
        if any(ch.isspace() for ch in v):
            raise ValueError("step id must not contain whitespace")
        return v


class WorkflowTemplate(BaseModel):
    """Named, ordered chain of steps started by one trigger event."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    name: str
    description: str = ""
    trigger: TriggerEvent
    trigger_subject_contains: Optional[str] = None
    steps: List[WorkflowStep] = Field(..., min_length=1)
    enabled: bool = True
    reevaluate: bool = False

    @field_validator("id")
    @classmethod
    def _no_whitespace(cls, v: str) -> str:
        if any(ch.isspace() for ch in v):
            raise ValueError("template id must not contain whitespace")
        return v

    @model_validator(mode="after")
    def _unique_step_ids(self) -> "WorkflowTemplate":
        ids = [step.id for step in self.steps]
        if len(set(ids)) != len(ids):
            raise ValueError(f"template {self.id} has duplicate step ids")
        return self

    def summary(self) -> "TemplateSummary":
        return TemplateSummary(
            id=self.id,
            name=self.name,
            description=self.description,
            trigger=self.trigger,
            step_count=len(self.steps),
            enabled=self.enabled,
        )


class TemplateSummary(BaseModel):
    """Read-only projection of a template for listings and audits."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str
    trigger: TriggerEvent
    step_count: int
    enabled: bool


class StepRef(BaseModel):
    """Step identity decoded from a task description."""

    model_config = ConfigDict(frozen=True)

    template_id: str
    step_id: str
    source: Literal["structured", "legacy"] = "structured"


class WorkflowInstance(BaseModel):
    """Progress of one template for one entity, derived from its tasks."""

    template_id: str
    entity_id: str
    entity_name: str = ""
    started_at: Optional[datetime] = None
    current_step_index: int = 0
    completed_steps: List[str] = Field(default_factory=list)
    status: InstanceStatus = "active"


class FireOptions(BaseModel):
    subject_contains: Optional[str] = None
    entity_created_at: Optional[datetime] = None
    now: Optional[datetime] = None

    def resolved_now(self) -> datetime:
        return self.now or datetime.now(timezone.utc)


class FireResult(BaseModel):
    """Outcome of evaluating a trigger; failures are collected, not raised."""

    triggered: List[str] = Field(default_factory=list)
    records_created: int = 0
    skipped: int = 0
    errors: List[str] = Field(default_factory=list)

    def merge(self, other: "FireResult") -> "FireResult":
        self.triggered.extend(other.triggered)
        self.records_created += other.records_created
        self.skipped += other.skipped
        self.errors.extend(other.errors)
        return self


class ScheduledEntity(BaseModel):
    """Entity checked by time-based templates."""

    entity_id: str
    entity_name: str
    created_at: Optional[datetime] = None


class ActiveWorkflowTask(BaseModel):
    """Open workflow task with resolved template and step names."""

    record_id: str
    entity_id: str
    entity_name: str = ""
    subject: str
    status: str
    priority: str
    due_date: Optional[date] = None
    template_id: Optional[str] = None
    template_name: str
    step_label: str
