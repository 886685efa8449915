# fieldservice/core/ports.py
from __future__ import annotations
from datetime import datetime
from typing import Any, Callable, Optional, Protocol

from fieldservice.core.domain import (
    DeliveryStatus,
    Location,
    Notification,
    Task,
    TaskStatus,
    User,
    UserRole,
)

# Mutator applied to a task copy under the store's per-record lock.
# It may raise to abort; the stored record is then left unchanged.
TaskMutator = Callable[[Task], None]


class TaskStore(Protocol):
    async def get(self, task_id: str) -> Optional[Task]: ...
    async def save(self, task: Task) -> Task: ...
    async def update(self, task_id: str, mutate: TaskMutator) -> Optional[Task]:
        """
        Atomically read-modify-write one task.

        Returns the updated task, or None if ``task_id`` does not exist.
        Concurrent calls for the same id are serialized; calls for different
        ids do not block each other.
        """
        ...
    async def list_all(self) -> list[Task]: ...
    async def list_by_status(self, *statuses: TaskStatus) -> list[Task]: ...
    async def list_by_assignee(self, technician_id: str) -> list[Task]: ...
    async def list_unassigned_sorted_by_priority(self) -> list[Task]: ...


class UserDirectory(Protocol):
    async def get(self, user_id: str) -> Optional[User]: ...
    async def list_by_role_active(self, role: UserRole, active: bool) -> list[User]: ...


class LocationStore(Protocol):
    async def save(self, location: Location) -> Location: ...
    async def latest_for_user(self, user_id: str) -> Optional[Location]: ...
    async def latest_per_user_since(self, since: datetime) -> list[Location]: ...


class NotificationStore(Protocol):
    async def save(self, notification: Notification) -> Notification: ...
    async def get(self, notification_id: str) -> Optional[Notification]: ...
    async def list_by_task(self, task_id: str) -> list[Notification]: ...
    async def list_by_status(self, status: DeliveryStatus) -> list[Notification]: ...


class ChannelSender(Protocol):
    """Outbound transport. Any exception is treated as a delivery failure."""

    async def send_email(self, to: str, subject: str, body: str) -> None: ...
    async def send_sms(self, to: str, body: str) -> None: ...


class LiveSink(Protocol):
    """Real-time push target. Must never block the publisher."""

    def publish(self, topic: str, payload: dict[str, Any]) -> None: ...
