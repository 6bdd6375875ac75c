"""Template registry: the immutable catalog of workflow templates."""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from pathlib import Path
from typing import Iterable, Optional

import yaml
from pydantic import ValidationError

from ..contracts import TemplateSummary, TriggerEvent, WorkflowStep, WorkflowTemplate
from .catalog import BUILTIN_TEMPLATES

logger = logging.getLogger(__name__)


class TemplateConfigurationError(ValueError):
    """Raised at startup when the template catalog is malformed."""


class TemplateRegistry:
    """Read-only catalog of workflow templates.

    The registry is built once at process start and shared by the codec,
    reconstructor and dispatcher. Validation happens in the constructor so a
    broken catalog fails before any request is handled.
    """

    def __init__(self, templates: Iterable[WorkflowTemplate]) -> None:
        self._templates: tuple[WorkflowTemplate, ...] = tuple(templates)
        self._by_id = {t.id: t for t in self._templates}
        self._steps: dict[str, tuple[WorkflowTemplate, WorkflowStep]] = {}
        self._validate()

    def _validate(self) -> None:
        template_ids = Counter(t.id for t in self._templates)
        duplicates = sorted(i for i, n in template_ids.items() if n > 1)
        if duplicates:
            raise TemplateConfigurationError(
                f"Duplicate template ids: {', '.join(duplicates)}"
            )

        for template in self._templates:
            for step in template.steps:
                if step.id in self._steps:
                    owner = self._steps[step.id][0].id
                    raise TemplateConfigurationError(
                        f"Step id {step.id!r} used by both {owner!r} and {template.id!r}"
                    )
                self._steps[step.id] = (template, step)

        by_trigger: dict[TriggerEvent, list[WorkflowTemplate]] = defaultdict(list)
        for template in self._templates:
            if template.enabled and template.trigger is not TriggerEvent.SCHEDULED:
                by_trigger[template.trigger].append(template)
        for trigger, templates in by_trigger.items():
            unfiltered = [t.id for t in templates if not t.trigger_subject_contains]
            if len(unfiltered) > 1:
                raise TemplateConfigurationError(
                    f"Templates {', '.join(unfiltered)} share trigger "
                    f"{trigger.value!r} without trigger_subject_contains"
                )

    # ------------------------------------------------------------------
    @property
    def templates(self) -> tuple[WorkflowTemplate, ...]:
        return self._templates

    def list_templates(self) -> list[TemplateSummary]:
        return [t.summary() for t in self._templates]

    def get_template(self, template_id: str) -> Optional[WorkflowTemplate]:
        return self._by_id.get(template_id)

    def get_step(self, step_id: str) -> Optional[tuple[WorkflowTemplate, WorkflowStep]]:
        return self._steps.get(step_id)

    def matching(
        self, event: "TriggerEvent | str", subject_contains: Optional[str] = None
    ) -> list[WorkflowTemplate]:
        """Return enabled templates started by ``event``.

        Templates carrying ``trigger_subject_contains`` only match when
        ``subject_contains`` includes that text.
        """
        trigger = TriggerEvent.parse(event)
        if trigger is None:
            return []
        return [
            t
            for t in self._templates
            if t.enabled
            and t.trigger is trigger
            and (
                not t.trigger_subject_contains
                or (subject_contains is not None and t.trigger_subject_contains in subject_contains)
            )
        ]

    def find_by_name(self, name: str) -> Optional[WorkflowTemplate]:
        """Exact name lookup; ``None`` when missing or ambiguous."""
        found = [t for t in self._templates if t.name == name]
        if len(found) != 1:
            if found:
                logger.debug(f"Template name {name!r} is ambiguous")
            return None
        return found[0]

    @staticmethod
    def find_step_by_label(
        template: WorkflowTemplate, label: str
    ) -> Optional[WorkflowStep]:
        """Exact label lookup within ``template``; ``None`` when missing or ambiguous."""
        found = [s for s in template.steps if s.label == label]
        return found[0] if len(found) == 1 else None


def load_templates(path: str | Path) -> list[WorkflowTemplate]:
    """Load template definitions from a YAML file.

    The file holds either a list of templates or a mapping with a
    ``templates`` key. Any schema problem raises
    :class:`TemplateConfigurationError`.
    """

    try:
        with open(path) as f:
            data = yaml.safe_load(f) or []
    except (OSError, yaml.YAMLError) as e:
        raise TemplateConfigurationError(f"Cannot read templates from {path}: {e}") from e

    if isinstance(data, dict):
        data = data.get("templates", [])
    if not isinstance(data, list):
        raise TemplateConfigurationError(f"{path}: expected a list of templates")

    try:
        return [WorkflowTemplate.model_validate(item) for item in data]
    except ValidationError as e:
        raise TemplateConfigurationError(f"{path}: invalid template: {e}") from e


def build_registry(templates_path: Optional[str] = None) -> TemplateRegistry:
    """Build the registry from ``templates_path`` or the built-in catalog."""

    if templates_path:
        templates = load_templates(templates_path)
        logger.info(f"Loaded {len(templates)} workflow templates from {templates_path}")
    else:
        templates = list(BUILTIN_TEMPLATES)
    return TemplateRegistry(templates)


def default_registry() -> TemplateRegistry:
    return TemplateRegistry(BUILTIN_TEMPLATES)


__all__ = [
    "BUILTIN_TEMPLATES",
    "TemplateConfigurationError",
    "TemplateRegistry",
    "build_registry",
    "default_registry",
    "load_templates",
]
