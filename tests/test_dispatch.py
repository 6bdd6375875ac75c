"""Trigger dispatch tests: matching, idempotency and failure collection."""

import asyncio
from datetime import date, datetime, timedelta, timezone

import pytest

from taskchain.config import EngineSettings
from taskchain.constants import WORKFLOW_SUBJECT_PREFIX
from taskchain.contracts import (
    ConditionType,
    FireOptions,
    FireResult,
    ScheduledEntity,
    StepCondition,
    TriggerEvent,
    WorkflowStep,
    WorkflowTemplate,
)
from taskchain.dispatch import WorkflowDispatcher
from taskchain.persistence import BatchResult, InMemoryTaskRepository, TaskInput
from taskchain.reconstruct import InstanceReconstructor
from taskchain.registry import TemplateRegistry

NOW = datetime(2026, 2, 12, 12, 0, tzinfo=timezone.utc)


class FlakyRepository(InMemoryTaskRepository):
    """Fails to create tasks for the given step ids on the next batch."""

    def __init__(self, failing_steps=(), explode=False) -> None:
        super().__init__(clock=lambda: NOW)
        self.failing_steps = set(failing_steps)
        self.explode = explode
        self.batches: list[list[TaskInput]] = []

    async def create_batch(self, tasks):
        self.batches.append(tasks)
        if self.explode:
            raise ConnectionError("CRM unavailable")
        result = BatchResult()
        for task in tasks:
            if any(f"STEP:{step}\n" in task.description for step in self.failing_steps):
                result.errors.append(f"{task.subject}: REQUIRED_FIELD_MISSING")
                continue
            result.records.append(await self.create_one(task))
        return result


def _dispatcher(registry, repo, **settings) -> WorkflowDispatcher:
    return WorkflowDispatcher(registry, repo, settings=EngineSettings(**settings))


def _options(**kwargs) -> FireOptions:
    return FireOptions(now=NOW, **kwargs)


@pytest.mark.asyncio
async def test_onboarding_fire_creates_all_steps_once(registry, repo) -> None:
    dispatcher = _dispatcher(registry, repo)

    result = await dispatcher.fire(
        TriggerEvent.HOUSEHOLD_CREATED, "001A", "Smith Household", _options()
    )

    assert result.triggered == ["New Client Onboarding"]
    assert result.records_created == 6
    assert result.errors == []

    tasks = await repo.query_by_entity("001A", WORKFLOW_SUBJECT_PREFIX)
    assert len(tasks) == 6
    today = [t for t in tasks if t.due_date == NOW.date()]
    future = [t for t in tasks if t.due_date > NOW.date()]
    assert len(today) == 1
    assert [t.due_date for t in future] == [
        date(2026, 2, 13),
        date(2026, 2, 16),
        date(2026, 2, 23),
        date(2026, 3, 9),
        date(2026, 6, 7),
    ]
    assert tasks[0].subject == "WORKFLOW — Send welcome package — Smith Household"
    assert tasks[0].priority == "High"
    assert tasks[0].description.startswith(
        "WORKFLOW_ID:new-client-onboarding STEP:nco-1-welcome\n"
    )
    assert "Due: 2026-02-13" in tasks[1].description

    again = await dispatcher.fire("household_created", "001A", "Smith Household", _options())
    assert again.records_created == 0
    assert again.triggered == []
    assert again.skipped == 6
    assert len(await repo.query_by_entity("001A", WORKFLOW_SUBJECT_PREFIX)) == 6


@pytest.mark.asyncio
async def test_unknown_or_unmatched_events_return_zero_result(registry, repo) -> None:
    dispatcher = _dispatcher(registry, repo)
    assert await dispatcher.fire("no_such_event", "001A", "Smith") == FireResult()
    assert await dispatcher.fire(TriggerEvent.MEETING_COMPLETED, "001A", "Smith") == FireResult()
    assert await repo.list_tasks() == []


@pytest.mark.asyncio
async def test_subject_discriminator_selects_template(repo) -> None:
    def template(template_id, prefix, **kwargs):
        return WorkflowTemplate(
            id=template_id,
            name=template_id,
            trigger=TriggerEvent.TASK_COMPLETED,
            steps=[
                WorkflowStep(
                    id=f"{prefix}-1", label="One", task_subject=f"WORKFLOW — {prefix}"
                )
            ],
            **kwargs,
        )

    registry = TemplateRegistry(
        [
            template("docs-followup", "docs", trigger_subject_contains="SEND DOCU"),
            template("meeting-followup", "meet", trigger_subject_contains="MEETING NOTE"),
        ]
    )
    dispatcher = _dispatcher(registry, repo)

    result = await dispatcher.fire(
        "task_completed", "001A", "Smith", _options(subject_contains="SEND DOCU — Smith")
    )
    assert result.triggered == ["docs-followup"]
    assert (await dispatcher.fire("task_completed", "001A", "Smith", _options())).triggered == []


@pytest.mark.asyncio
async def test_partial_batch_failure_is_collected_and_retry_fills_gaps(registry) -> None:
    repo = FlakyRepository(failing_steps={"nco-3-compliance", "nco-5-funding-check"})
    dispatcher = _dispatcher(registry, repo, idempotency_scope="step")

    first = await dispatcher.fire("household_created", "001A", "Smith", _options())
    assert first.records_created == 4
    assert len(first.errors) == 2
    assert all(e.startswith("New Client Onboarding: ") for e in first.errors)

    reconstructor = InstanceReconstructor(registry, repo)
    pending = await reconstructor.get_pending_steps("001A", "new-client-onboarding")
    assert [s.id for s in pending] == ["nco-3-compliance", "nco-5-funding-check"]

    repo.failing_steps.clear()
    retry = await dispatcher.fire("household_created", "001A", "Smith", _options())
    assert retry.records_created == 2
    assert retry.skipped == 4
    assert [t.description.split("\n")[0] for t in repo.batches[-1]] == [
        "WORKFLOW_ID:new-client-onboarding STEP:nco-3-compliance",
        "WORKFLOW_ID:new-client-onboarding STEP:nco-5-funding-check",
    ]
    assert await reconstructor.get_pending_steps("001A", "new-client-onboarding") == []


@pytest.mark.asyncio
async def test_template_scope_does_not_refire_after_partial_failure(registry) -> None:
    repo = FlakyRepository(failing_steps={"nco-6-90day"})
    dispatcher = _dispatcher(registry, repo)

    await dispatcher.fire("household_created", "001A", "Smith", _options())
    repo.failing_steps.clear()
    retry = await dispatcher.fire("household_created", "001A", "Smith", _options())

    assert retry.records_created == 0
    assert len(repo.batches) == 1


@pytest.mark.asyncio
async def test_store_outage_is_reported_not_raised(registry) -> None:
    repo = FlakyRepository(explode=True)
    dispatcher = _dispatcher(registry, repo)

    result = await dispatcher.fire("household_created", "001A", "Smith", _options())

    assert result.records_created == 0
    assert result.triggered == []
    assert result.errors == ["New Client Onboarding: CRM unavailable"]


@pytest.mark.asyncio
async def test_failing_template_does_not_block_the_next(repo) -> None:
    class OneBadBatch(InMemoryTaskRepository):
        async def create_batch(self, tasks):
            if "bad" in tasks[0].subject:
                raise TimeoutError("request timed out")
            return await super().create_batch(tasks)

    def template(template_id, **kwargs):
        return WorkflowTemplate(
            id=template_id,
            name=template_id,
            trigger=TriggerEvent.COMPLIANCE_REVIEWED,
            steps=[
                WorkflowStep(
                    id=f"{template_id}-1",
                    label="One",
                    task_subject=f"WORKFLOW — {template_id}",
                )
            ],
            **kwargs,
        )

    registry = TemplateRegistry(
        [template("bad"), template("good", trigger_subject_contains="Annual")]
    )
    store = OneBadBatch()
    result = await _dispatcher(registry, store).fire(
        "compliance_reviewed", "001A", "Smith", _options(subject_contains="Annual review")
    )

    assert result.triggered == ["good"]
    assert result.records_created == 1
    assert result.errors == ["bad: request timed out"]


@pytest.mark.asyncio
async def test_scheduled_template_waits_for_entity_age(registry, repo) -> None:
    dispatcher = _dispatcher(registry, repo)
    young = ScheduledEntity(
        entity_id="001Y", entity_name="Young", created_at=NOW - timedelta(days=30)
    )
    aged = ScheduledEntity(
        entity_id="001O", entity_name="Old", created_at=NOW - timedelta(days=310)
    )
    unknown = ScheduledEntity(entity_id="001U", entity_name="Unknown")

    result = await dispatcher.evaluate_scheduled([young, aged, unknown], now=NOW)

    assert result.triggered == ["Document Expiration Tracking"]
    assert result.records_created == 3
    assert result.skipped == 6
    assert await repo.query_by_entity("001Y", WORKFLOW_SUBJECT_PREFIX) == []
    tasks = await repo.query_by_entity("001O", WORKFLOW_SUBJECT_PREFIX)
    assert [t.due_date for t in tasks] == [
        date(2026, 2, 12),
        date(2026, 3, 14),
        date(2026, 4, 6),
    ]

    again = await dispatcher.evaluate_scheduled([aged], now=NOW + timedelta(days=1))
    assert again.records_created == 0
    assert again.skipped == 3


@pytest.mark.asyncio
async def test_reevaluated_template_only_creates_missing_steps(registry, repo) -> None:
    dispatcher = _dispatcher(registry, repo)
    options = _options(entity_created_at=NOW - timedelta(days=320))

    await dispatcher.fire("scheduled", "001O", "Old", options)
    tasks = await repo.query_by_entity("001O", WORKFLOW_SUBJECT_PREFIX)
    # simulate an operator deleting the escalation task in the CRM
    del repo._tasks[tasks[-1].id]

    result = await dispatcher.fire("scheduled", "001O", "Old", options)
    assert result.records_created == 1
    assert result.skipped == 2
    recreated = (await repo.query_by_entity("001O", WORKFLOW_SUBJECT_PREFIX))[-1]
    assert recreated.description.startswith("WORKFLOW_ID:document-expiration STEP:dex-3-7day")
    assert recreated.due_date == date(2026, 4, 6)


@pytest.mark.asyncio
async def test_task_conditions_look_at_all_entity_tasks(repo) -> None:
    registry = TemplateRegistry(
        [
            WorkflowTemplate(
                id="docusign-chase",
                name="DocuSign Chase",
                trigger=TriggerEvent.DOCUSIGN_SENT,
                steps=[
                    WorkflowStep(
                        id="dc-1-chase",
                        label="Chase signature",
                        task_subject="WORKFLOW — Chase DocuSign signature",
                        delay_days=5,
                        condition=StepCondition(
                            type=ConditionType.TASK_MISSING,
                            subject_contains="DOCU SIGNED",
                        ),
                    )
                ],
            )
        ]
    )
    dispatcher = _dispatcher(registry, repo)

    await repo.create_one(TaskInput(subject="DOCU SIGNED — Smith", entity_id="001S"))
    signed = await dispatcher.fire("docusign_sent", "001S", "Smith", _options())
    assert signed.records_created == 0
    assert signed.skipped == 1

    unsigned = await dispatcher.fire("docusign_sent", "001U", "Jones", _options())
    assert unsigned.records_created == 1
    task = (await repo.query_by_entity("001U", WORKFLOW_SUBJECT_PREFIX))[0]
    assert task.due_date == NOW.date() + timedelta(days=5)


@pytest.mark.asyncio
async def test_idempotency_key_guard_collapses_concurrent_duplicates(registry, repo) -> None:
    dispatcher = _dispatcher(registry, repo, duplicate_guard="idempotency_key")

    results = await asyncio.gather(
        dispatcher.fire("household_created", "001A", "Smith", _options()),
        dispatcher.fire("household_created", "001A", "Smith", _options()),
    )

    tasks = await repo.query_by_entity("001A", WORKFLOW_SUBJECT_PREFIX)
    assert len(tasks) == 6
    assert {t.idempotency_key for t in tasks} == {
        f"001A:new-client-onboarding:{s.id}"
        for s in registry.get_template("new-client-onboarding").steps
    }
    assert sum(r.records_created for r in results) >= 6


@pytest.mark.asyncio
async def test_zero_delay_step_after_delayed_step_fires_now(repo) -> None:
    registry = TemplateRegistry(
        [
            WorkflowTemplate(
                id="review-chase",
                name="Review Chase",
                trigger=TriggerEvent.MEETING_COMPLETED,
                steps=[
                    WorkflowStep(
                        id=f"rc-{step_id}",
                        label=step_id.title(),
                        task_subject=f"WORKFLOW — {step_id.title()}",
                        delay_days=delay,
                    )
                    for step_id, delay in [("notes", 0), ("follow-up", 5), ("log", 0)]
                ],
            )
        ]
    )

    result = await _dispatcher(registry, repo).fire(
        TriggerEvent.MEETING_COMPLETED, "001Z", "Zhang Household", _options()
    )
    assert result.records_created == 3

    tasks = {
        t.subject: t for t in await repo.query_by_entity("001Z", WORKFLOW_SUBJECT_PREFIX)
    }
    logged = tasks["WORKFLOW — Log — Zhang Household"]
    assert logged.due_date == date(2026, 2, 12)
    assert "Due:" not in logged.description

    follow_up = tasks["WORKFLOW — Follow-Up — Zhang Household"]
    assert follow_up.due_date == date(2026, 2, 17)
    assert "Due: 2026-02-17" in follow_up.description
