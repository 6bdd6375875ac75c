"""Correlation codec: step identity embedded in task descriptions.

Every task created by the engine starts its description with::

    WORKFLOW_ID:<template id> STEP:<step id>

Tasks written before that prefix existed only carry the human-readable
trailer (``Workflow: <name>`` and ``Step: <label>`` lines). Decoding tries
the structured prefix first and falls back to resolving the trailer by name.
The prefix is read by tools outside this package, so its syntax must not
change.
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime
from typing import Optional, Protocol, Sequence

from .constants import WORKFLOW_SUBJECT_PREFIX
from .contracts import StepRef, WorkflowStep, WorkflowTemplate
from .persistence.models import TaskRecord
from .registry import TemplateRegistry

logger = logging.getLogger(__name__)

_STRUCTURED_RE = re.compile(r"^WORKFLOW_ID:(\S+)\s+STEP:(\S+)")
_LEGACY_WORKFLOW_RE = re.compile(r"^Workflow: (.+)$", re.MULTILINE)
_LEGACY_STEP_RE = re.compile(r"^Step: (.+)$", re.MULTILINE)


def encode(template_id: str, step_id: str) -> str:
    return f"WORKFLOW_ID:{template_id} STEP:{step_id}"


def render_description(
    template: WorkflowTemplate,
    step: WorkflowStep,
    triggered_at: datetime,
    due: Optional[date] = None,
) -> str:
    """Build the full description stored on a materialized task."""
    lines = [
        encode(template.id, step.id),
        step.task_description,
        "",
        f"Workflow: {template.name}",
        f"Step: {step.label}",
    ]
    if due is not None:
        lines.append(f"Due: {due.isoformat()}")
    lines.append(f"Triggered: {triggered_at.isoformat()}")
    return "\n".join(lines)


def is_workflow_subject(subject: Optional[str]) -> bool:
    return bool(subject) and subject.startswith(WORKFLOW_SUBJECT_PREFIX)


def legacy_labels(text: Optional[str]) -> tuple[Optional[str], Optional[str]]:
    """Return the raw ``(workflow name, step label)`` from a legacy trailer."""
    if not text:
        return None, None
    workflow = _LEGACY_WORKFLOW_RE.search(text)
    step = _LEGACY_STEP_RE.search(text)
    return (
        workflow.group(1).strip() if workflow else None,
        step.group(1).strip() if step else None,
    )


class StepDecoder(Protocol):
    def decode(self, text: str) -> Optional[StepRef]:
        """Return the step identity, or ``None`` to defer to the next decoder."""


class StructuredPrefixDecoder:
    """Decode the ``WORKFLOW_ID:... STEP:...`` prefix."""

    def decode(self, text: str) -> Optional[StepRef]:
        match = _STRUCTURED_RE.match(text)
        if not match:
            return None
        return StepRef(template_id=match.group(1), step_id=match.group(2))


class LegacyTrailerDecoder:
    """Resolve ``Workflow:``/``Step:`` lines back to registry ids.

    Names are matched exactly. When a name or label is unknown or shared by
    more than one template/step the record is left undecoded.
    """

    def __init__(self, registry: TemplateRegistry) -> None:
        self._registry = registry

    def decode(self, text: str) -> Optional[StepRef]:
        workflow_name, step_label = legacy_labels(text)
        if workflow_name is None or step_label is None:
            return None
        template = self._registry.find_by_name(workflow_name)
        if template is None:
            return None
        step = self._registry.find_step_by_label(template, step_label)
        if step is None:
            return None
        return StepRef(template_id=template.id, step_id=step.id, source="legacy")


class CorrelationCodec:
    """Ordered chain of decoders; the first one that recognises the text wins."""

    def __init__(
        self,
        registry: TemplateRegistry,
        decoders: Optional[Sequence[StepDecoder]] = None,
    ) -> None:
        self.registry = registry
        self._decoders: tuple[StepDecoder, ...] = tuple(
            decoders
            if decoders is not None
            else (StructuredPrefixDecoder(), LegacyTrailerDecoder(registry))
        )
        self._subject_decoder = SubjectDecoder(registry)

    encode = staticmethod(encode)

    def decode(self, text: Optional[str]) -> Optional[StepRef]:
        """Return the step identity in ``text`` or ``None``. Never raises."""
        if not isinstance(text, str) or not text:
            return None
        for decoder in self._decoders:
            try:
                ref = decoder.decode(text)
            except Exception as e:  # a broken decoder means "not recognised"
                logger.debug(f"{type(decoder).__name__} failed: {e}")
                continue
            if ref is not None:
                return ref
        return None

    def decode_record(self, record: TaskRecord) -> Optional[StepRef]:
        """Decode a task, falling back to its subject when the description fails."""
        ref = self.decode(record.description)
        if ref is None and is_workflow_subject(record.subject):
            ref = self._subject_decoder.decode(record.subject)
        return ref


class SubjectDecoder:
    """Last resort for tasks with no usable description: match the subject.

    Materialized subjects are ``"<task subject> — <entity name>"``. The
    longest step subject that prefixes the task subject wins; ties leave the
    task undecoded.
    """

    def __init__(self, registry: TemplateRegistry) -> None:
        self._registry = registry

    def decode(self, subject: str) -> Optional[StepRef]:
        candidates = [
            (template, step)
            for template in self._registry.templates
            for step in template.steps
            if subject == step.task_subject
            or subject.startswith(f"{step.task_subject} — ")
        ]
        if not candidates:
            return None
        longest = max(len(step.task_subject) for _, step in candidates)
        best = [c for c in candidates if len(c[1].task_subject) == longest]
        if len(best) != 1:
            return None
        template, step = best[0]
        return StepRef(template_id=template.id, step_id=step.id, source="legacy")
