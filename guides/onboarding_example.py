"""Simple example firing the onboarding workflow for a new household."""

import asyncio

from taskchain import WorkflowEngine, default_registry
from taskchain.constants import COMPLETED_STATUS
from taskchain.persistence import InMemoryTaskRepository


async def main():
    """Fire onboarding, complete the first task and show progress."""
    engine = WorkflowEngine(default_registry(), InMemoryTaskRepository())

    # Called by the handler that just created the household
    result = await engine.fire("household_created", "001HH", "Rivera Household")
    print(f"✅ Triggered: {result.triggered}")
    print(f"📋 Tasks created: {result.records_created}")

    # Firing again is a no-op for the same household
    again = await engine.fire("household_created", "001HH", "Rivera Household")
    print(f"🔁 Second fire created {again.records_created} tasks")

    active = await engine.get_all_active()
    await engine.repository.set_status(active[0].record_id, COMPLETED_STATUS)

    for instance in await engine.get_instances("001HH"):
        print(f"🔗 {instance.template_id}: {instance.status} ({instance.current_step_index} done)")


if __name__ == "__main__":
    asyncio.run(main())
