# tests/test_memory_store.py
"""Tests for the in-memory task store."""
from datetime import datetime, timezone
from unittest.mock import Mock

import pytest

from fieldservice.core.domain import Priority, Task, TaskStatus
from fieldservice.infra.memory_store import InMemoryTaskStore

CREATED = datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)


def _task(task_id: str = "task-1") -> Task:
    return Task(
        id=task_id,
        title="Fix air conditioner",
        description=None,
        client_address="123 Main St",
        priority=Priority.MEDIUM,
        estimated_duration=30,
        status=TaskStatus.UNASSIGNED,
        created_at=CREATED,
        updated_at=CREATED,
    )


class TestInMemoryTaskStore:
    @pytest.mark.asyncio
    async def test_update_unknown_task_leaves_no_lock_behind(self):
        store = InMemoryTaskStore()
        mutate = Mock()

        for i in range(100):
            assert await store.update(f"missing-{i}", mutate) is None

        mutate.assert_not_called()
        assert len(store._locks) == 0

    @pytest.mark.asyncio
    async def test_update_applies_mutation(self):
        store = InMemoryTaskStore()
        await store.save(_task())

        def rename(task):
            task.title = "Replace thermostat"

        updated = await store.update("task-1", rename)

        assert updated.title == "Replace thermostat"
        assert (await store.get("task-1")).title == "Replace thermostat"

    @pytest.mark.asyncio
    async def test_failed_mutation_keeps_stored_record(self):
        store = InMemoryTaskStore()
        await store.save(_task())

        def reject(task):
            task.title = "half-written"
            raise ValueError("rejected")

        with pytest.raises(ValueError):
            await store.update("task-1", reject)

        assert (await store.get("task-1")).title == "Fix air conditioner"
