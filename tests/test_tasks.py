# tests/test_tasks.py
"""Tests for TaskService: creation rules, edits and listings."""
import pytest

from fieldservice.core.domain import Priority, TaskStatus
from fieldservice.core.errors import InvalidArgumentError, NotFoundError
from fieldservice.core.tasks import AddressPolicy, TaskService
from fieldservice.infra.metrics import get_metrics_collector


@pytest.fixture
def task_service(task_store, clock):
    return TaskService(task_store, clock=clock)


# ============================================================================
# Address policy
# ============================================================================

class TestAddressPolicy:
    @pytest.mark.parametrize("address", [
        "123 Main St",
        "Flat 4, Baker Street",
        "1 A Rd",
    ])
    def test_accepts_street_like_addresses(self, address):
        assert AddressPolicy().is_valid(address) is True

    @pytest.mark.parametrize("address", [
        "Main Street",        # no digit
        "12345 67890",        # no letter
        "1 -- a",             # too few alphanumerics
    ])
    def test_rejects_addresses_without_number_and_name(self, address):
        assert AddressPolicy().is_valid(address) is False


# ============================================================================
# Create
# ============================================================================

class TestCreate:
    @pytest.mark.asyncio
    async def test_create_sets_defaults(self, task_service, task_store, task_fields, clock):
        task = await task_service.create(**task_fields)

        assert task.id
        assert task.status == TaskStatus.UNASSIGNED
        assert task.assigned_technician_id is None
        assert task.assigned_at is None
        assert task.created_at == clock.now
        assert task.updated_at == clock.now
        assert await task_store.get(task.id) == task
        assert get_metrics_collector().get_counter("tasks_created_total", priority="HIGH") == 1

    @pytest.mark.asyncio
    async def test_create_strips_title_and_address(self, task_service, task_fields):
        task_fields.update(title="  Fix boiler  ", client_address="  9 Elm Road ")
        task = await task_service.create(**task_fields)

        assert task.title == "Fix boiler"
        assert task.client_address == "9 Elm Road"

    @pytest.mark.asyncio
    async def test_create_accepts_priority_string(self, task_service, task_fields):
        task_fields["priority"] = "LOW"
        task = await task_service.create(**task_fields)
        assert task.priority == Priority.LOW

    @pytest.mark.asyncio
    @pytest.mark.parametrize("title", ["ab", "", "x" * 201])
    async def test_title_length(self, task_service, task_fields, title):
        task_fields["title"] = title
        with pytest.raises(InvalidArgumentError, match="Title must be between 3 and 200"):
            await task_service.create(**task_fields)

    @pytest.mark.asyncio
    async def test_address_length(self, task_service, task_fields):
        task_fields["client_address"] = "1 A"
        with pytest.raises(InvalidArgumentError, match="Address must be between"):
            await task_service.create(**task_fields)

    @pytest.mark.asyncio
    async def test_address_format(self, task_service, task_fields):
        task_fields["client_address"] = "Somewhere in town"
        with pytest.raises(InvalidArgumentError, match="Invalid address format"):
            await task_service.create(**task_fields)

    @pytest.mark.asyncio
    async def test_negative_duration(self, task_service, task_fields):
        task_fields["estimated_duration"] = -5
        with pytest.raises(InvalidArgumentError):
            await task_service.create(**task_fields)

    @pytest.mark.asyncio
    async def test_unknown_priority(self, task_service, task_fields):
        task_fields["priority"] = "URGENT"
        with pytest.raises(InvalidArgumentError, match="Unknown priority: URGENT"):
            await task_service.create(**task_fields)

    @pytest.mark.asyncio
    async def test_custom_address_policy(self, task_store, clock, task_fields):
        class AcceptAll(AddressPolicy):
            def is_valid(self, address):
                return True

        service = TaskService(task_store, address_policy=AcceptAll(), clock=clock)
        task_fields["client_address"] = "Somewhere in town"
        task = await service.create(**task_fields)
        assert task.client_address == "Somewhere in town"


# ============================================================================
# Update
# ============================================================================

class TestUpdate:
    @pytest.mark.asyncio
    async def test_partial_update(self, task_service, task_fields, clock):
        task = await task_service.create(**task_fields)
        clock.advance(minutes=5)

        updated = await task_service.update(
            task.id, title="Fix heat pump", priority="MEDIUM", description=None,
        )

        assert updated.title == "Fix heat pump"
        assert updated.priority == Priority.MEDIUM
        assert updated.description == task.description
        assert updated.updated_at == clock.now
        assert updated.created_at == task.created_at

    @pytest.mark.asyncio
    async def test_status_cannot_be_edited(self, task_service, task_fields):
        task = await task_service.create(**task_fields)
        with pytest.raises(InvalidArgumentError, match="Fields cannot be updated: status"):
            await task_service.update(task.id, status=TaskStatus.COMPLETED)

    @pytest.mark.asyncio
    async def test_invalid_new_address_leaves_record(self, task_service, task_store, task_fields):
        task = await task_service.create(**task_fields)
        with pytest.raises(InvalidArgumentError):
            await task_service.update(task.id, client_address="No number here")
        assert (await task_store.get(task.id)).client_address == task.client_address

    @pytest.mark.asyncio
    async def test_unknown_task(self, task_service):
        with pytest.raises(NotFoundError):
            await task_service.update("missing", title="Whatever")


# ============================================================================
# Listings
# ============================================================================

class TestListings:
    @pytest.mark.asyncio
    async def test_get_unknown(self, task_service):
        with pytest.raises(NotFoundError, match="Task not found with id: nope"):
            await task_service.get("nope")

    @pytest.mark.asyncio
    async def test_unassigned_sorted_by_priority_then_insertion(self, task_service, task_fields):
        created = {}
        for title, priority in [
            ("Low one", Priority.LOW),
            ("High one", Priority.HIGH),
            ("Medium one", Priority.MEDIUM),
            ("High two", Priority.HIGH),
        ]:
            task = await task_service.create(**{**task_fields, "title": title, "priority": priority})
            created[title] = task

        titles = [t.title for t in await task_service.list_unassigned()]

        assert titles == ["High one", "High two", "Medium one", "Low one"]

    @pytest.mark.asyncio
    async def test_list_by_status_and_technician(self, services, task_fields):
        first = await services.tasks.create(**task_fields)
        second = await services.tasks.create(**task_fields)
        await services.assignment.assign(first.id, "tech-1", "disp-1")

        assigned = await services.tasks.list_by_status(TaskStatus.ASSIGNED)
        unassigned = await services.tasks.list_by_status(TaskStatus.UNASSIGNED)
        mine = await services.tasks.list_for_technician("tech-1")

        assert [t.id for t in assigned] == [first.id]
        assert [t.id for t in unassigned] == [second.id]
        assert [t.id for t in mine] == [first.id]
        assert len(await services.tasks.list_all()) == 2
        await services.notifications.drain()
