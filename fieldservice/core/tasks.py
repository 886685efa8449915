# fieldservice/core/tasks.py
from __future__ import annotations

import re
import uuid
from typing import Any

from fieldservice.core.domain import Clock, Priority, Task, TaskStatus, utc_now
from fieldservice.core.errors import InvalidArgumentError
from fieldservice.core.lifecycle import task_not_found
from fieldservice.core.ports import TaskStore
from fieldservice.infra.logging_config import get_logger
from fieldservice.infra.metrics import DispatchMetrics

logger = get_logger(__name__)

TITLE_MIN, TITLE_MAX = 3, 200
ADDRESS_MIN, ADDRESS_MAX = 5, 500

# Fields a dispatcher may edit after creation. Status and assignment
# fields only change through the lifecycle and assignment services.
EDITABLE_FIELDS = frozenset({
    "title",
    "description",
    "client_address",
    "priority",
    "estimated_duration",
    "customer_id",
    "customer_contact",
})


class AddressPolicy:
    """
    Heuristic address check: at least one letter, one digit and three
    alphanumeric characters overall.

    This is a stand-in until addresses are resolved by a geocoder; swap the
    instance passed to TaskService rather than tightening the regexes.
    """

    _letter = re.compile(r"[A-Za-z]")
    _digit = re.compile(r"\d")
    _alnum = re.compile(r"[A-Za-z0-9]")

    def is_valid(self, address: str) -> bool:
        return (
            bool(self._letter.search(address))
            and bool(self._digit.search(address))
            and len(self._alnum.findall(address)) >= 3
        )


class TaskService:
    """Task creation, descriptive edits and listings."""

    def __init__(
        self,
        tasks: TaskStore,
        address_policy: AddressPolicy | None = None,
        clock: Clock = utc_now,
    ):
        self._tasks = tasks
        self._address_policy = address_policy or AddressPolicy()
        self._clock = clock

    async def create(
        self,
        title: str,
        client_address: str,
        priority: Priority,
        description: str | None = None,
        estimated_duration: int | None = None,
        customer_id: str | None = None,
        customer_contact: str | None = None,
    ) -> Task:
        title = self._validate_title(title)
        client_address = self._validate_address(client_address)
        self._validate_duration(estimated_duration)

        now = self._clock()
        task = Task(
            id=str(uuid.uuid4()),
            title=title,
            description=description,
            client_address=client_address,
            priority=self._parse_priority(priority),
            estimated_duration=estimated_duration,
            status=TaskStatus.UNASSIGNED,
            customer_id=customer_id,
            customer_contact=customer_contact,
            created_at=now,
            updated_at=now,
        )
        task = await self._tasks.save(task)
        DispatchMetrics.task_created(task.priority.value)
        logger.info(f"Task created: priority={task.priority.value}", extra={"task_id": task.id})
        return task

    async def get(self, task_id: str) -> Task:
        task = await self._tasks.get(task_id)
        if task is None:
            raise task_not_found(task_id)
        return task

    async def list_all(self) -> list[Task]:
        return await self._tasks.list_all()

    async def list_unassigned(self) -> list[Task]:
        return await self._tasks.list_unassigned_sorted_by_priority()

    async def list_by_status(self, status: TaskStatus) -> list[Task]:
        return await self._tasks.list_by_status(status)

    async def list_for_technician(self, technician_id: str) -> list[Task]:
        return await self._tasks.list_by_assignee(technician_id)

    async def update(self, task_id: str, **changes: Any) -> Task:
        """Partial update of descriptive fields; ``None`` values are ignored."""
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise InvalidArgumentError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

        changes = {k: v for k, v in changes.items() if v is not None}
        if "title" in changes:
            changes["title"] = self._validate_title(changes["title"])
        if "priority" in changes:
            changes["priority"] = self._parse_priority(changes["priority"])
        if "estimated_duration" in changes:
            self._validate_duration(changes["estimated_duration"])

        now = self._clock()

        def mutate(task: Task) -> None:
            new_address = changes.get("client_address")
            if new_address is not None and new_address != task.client_address:
                changes["client_address"] = self._validate_address(new_address)
            for name, value in changes.items():
                setattr(task, name, value)
            task.updated_at = now

        task = await self._tasks.update(task_id, mutate)
        if task is None:
            raise task_not_found(task_id)
        logger.info(f"Task updated: fields={sorted(changes)}", extra={"task_id": task_id})
        return task

    # ------------------------------------------------------------------

    @staticmethod
    def _validate_title(title: str | None) -> str:
        title = (title or "").strip()
        if not TITLE_MIN <= len(title) <= TITLE_MAX:
            raise InvalidArgumentError(
                f"Title must be between {TITLE_MIN} and {TITLE_MAX} characters"
            )
        return title

    def _validate_address(self, address: str | None) -> str:
        address = (address or "").strip()
        if not ADDRESS_MIN <= len(address) <= ADDRESS_MAX:
            raise InvalidArgumentError(
                f"Address must be between {ADDRESS_MIN} and {ADDRESS_MAX} characters"
            )
        if not self._address_policy.is_valid(address):
            raise InvalidArgumentError(
                "Invalid address format. Address must contain street number and name."
            )
        return address

    @staticmethod
    def _validate_duration(minutes: int | None) -> None:
        if minutes is not None and minutes < 0:
            raise InvalidArgumentError("Estimated duration must be zero or positive")

    @staticmethod
    def _parse_priority(value: Priority | str) -> Priority:
        try:
            return Priority(value)
        except ValueError:
            raise InvalidArgumentError(f"Unknown priority: {value}") from None
