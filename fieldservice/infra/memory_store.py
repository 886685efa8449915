# fieldservice/infra/memory_store.py
"""
In-process implementations of the store ports.

Used for ``storage_backend=memory`` and by the test-suite. Records are
copied on the way in and out so callers never share mutable state with the
store; a mutation only becomes visible once the store accepts it.
"""
from __future__ import annotations

import asyncio
import copy
from collections import defaultdict
from datetime import datetime
from typing import Iterable, Optional

from fieldservice.core.domain import (
    DeliveryStatus,
    Location,
    Notification,
    Task,
    TaskStatus,
    User,
    UserRole,
)
from fieldservice.core.ports import TaskMutator


class InMemoryTaskStore:
    def __init__(self):
        self._tasks: dict[str, Task] = {}
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def get(self, task_id: str) -> Optional[Task]:
        task = self._tasks.get(task_id)
        return copy.deepcopy(task) if task else None

    async def save(self, task: Task) -> Task:
        async with self._locks[task.id]:
            self._tasks[task.id] = copy.deepcopy(task)
        return copy.deepcopy(task)

    async def update(self, task_id: str, mutate: TaskMutator) -> Optional[Task]:
        # Tasks are never removed, so an unknown id stays unknown
        if task_id not in self._tasks:
            return None
        async with self._locks[task_id]:
            current = self._tasks.get(task_id)
            if current is None:
                return None
            draft = copy.deepcopy(current)
            # Let other coroutines interleave here, as a real store would
            await asyncio.sleep(0)
            mutate(draft)
            self._tasks[task_id] = draft
            return copy.deepcopy(draft)

    async def list_all(self) -> list[Task]:
        return self._copies(self._tasks.values())

    async def list_by_status(self, *statuses: TaskStatus) -> list[Task]:
        return self._copies(t for t in self._tasks.values() if t.status in statuses)

    async def list_by_assignee(self, technician_id: str) -> list[Task]:
        return self._copies(
            t for t in self._tasks.values() if t.assigned_technician_id == technician_id
        )

    async def list_unassigned_sorted_by_priority(self) -> list[Task]:
        unassigned = [t for t in self._tasks.values() if t.status == TaskStatus.UNASSIGNED]
        # sorted() is stable: equal priorities keep insertion order
        return self._copies(sorted(unassigned, key=lambda t: t.priority.rank))

    @staticmethod
    def _copies(tasks: Iterable[Task]) -> list[Task]:
        return [copy.deepcopy(t) for t in tasks]


class InMemoryUserDirectory:
    def __init__(self, users: Iterable[User] = ()):
        self._users: dict[str, User] = {u.id: u for u in users}

    def add(self, user: User) -> None:
        self._users[user.id] = user

    async def get(self, user_id: str) -> Optional[User]:
        return self._users.get(user_id)

    async def list_by_role_active(self, role: UserRole, active: bool) -> list[User]:
        return [u for u in self._users.values() if u.role == role and u.active == active]


class InMemoryLocationStore:
    def __init__(self):
        self._history: list[Location] = []

    async def save(self, location: Location) -> Location:
        self._history.append(location)
        return location

    async def latest_for_user(self, user_id: str) -> Optional[Location]:
        latest = None
        for loc in self._history:
            if loc.user_id == user_id and (latest is None or loc.timestamp >= latest.timestamp):
                latest = loc
        return latest

    async def latest_per_user_since(self, since: datetime) -> list[Location]:
        latest: dict[str, Location] = {}
        for loc in self._history:
            if loc.timestamp < since:
                continue
            current = latest.get(loc.user_id)
            if current is None or loc.timestamp >= current.timestamp:
                latest[loc.user_id] = loc
        return list(latest.values())


class InMemoryNotificationStore:
    def __init__(self):
        self._records: dict[str, Notification] = {}

    async def save(self, notification: Notification) -> Notification:
        self._records[notification.id] = copy.deepcopy(notification)
        return copy.deepcopy(notification)

    async def get(self, notification_id: str) -> Optional[Notification]:
        record = self._records.get(notification_id)
        return copy.deepcopy(record) if record else None

    async def list_by_task(self, task_id: str) -> list[Notification]:
        return [copy.deepcopy(n) for n in self._records.values() if n.task_id == task_id]

    async def list_by_status(self, status: DeliveryStatus) -> list[Notification]:
        return [copy.deepcopy(n) for n in self._records.values() if n.delivery_status == status]
