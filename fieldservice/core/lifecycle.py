# fieldservice/core/lifecycle.py
"""
Task lifecycle: the single transition table and the operations built on it.

    UNASSIGNED --assign--> ASSIGNED --start--> IN_PROGRESS --complete--> COMPLETED
        |  ^                  |  ^                  |
        |  +----unassign------+  +------reopen------+
        +--cancel--> CANCELLED

COMPLETED and CANCELLED are terminal. ``unassign`` and ``reopen`` exist in
the table (and therefore in ``can_transition``) but no service exposes them.
Only unassigned tasks may be cancelled: a cancelled task never carries an
assignee.
"""
from __future__ import annotations

import copy
from enum import Enum

from fieldservice.core.domain import Clock, NotificationType, Task, TaskStatus, utc_now
from fieldservice.core.errors import InvalidArgumentError, InvalidStateError, NotFoundError
from fieldservice.core.events import NullEventSink, TaskEvent, TaskEventSink
from fieldservice.core.ports import TaskStore
from fieldservice.infra.logging_config import get_logger
from fieldservice.infra.metrics import DispatchMetrics

logger = get_logger(__name__)


class TaskAction(str, Enum):
    ASSIGN = "assign"
    START = "start"
    COMPLETE = "complete"
    UNASSIGN = "unassign"
    REOPEN = "reopen"
    CANCEL = "cancel"


TRANSITIONS: dict[tuple[TaskStatus, TaskAction], TaskStatus] = {
    (TaskStatus.UNASSIGNED, TaskAction.ASSIGN): TaskStatus.ASSIGNED,
    (TaskStatus.UNASSIGNED, TaskAction.CANCEL): TaskStatus.CANCELLED,
    (TaskStatus.ASSIGNED, TaskAction.START): TaskStatus.IN_PROGRESS,
    (TaskStatus.ASSIGNED, TaskAction.UNASSIGN): TaskStatus.UNASSIGNED,
    (TaskStatus.IN_PROGRESS, TaskAction.COMPLETE): TaskStatus.COMPLETED,
    (TaskStatus.IN_PROGRESS, TaskAction.REOPEN): TaskStatus.ASSIGNED,
}

_ALLOWED_EDGES = frozenset((src, dst) for (src, _), dst in TRANSITIONS.items())


def next_status(current: TaskStatus, action: TaskAction) -> TaskStatus:
    """Resolve ``current x action``; raises InvalidStateError naming the current status."""
    target = TRANSITIONS.get((current, action))
    if target is None:
        required = sorted(src.value for (src, act) in TRANSITIONS if act == action)
        raise InvalidStateError(
            f"Cannot {action.value} task: status must be {' or '.join(required)}, "
            f"current status is {current.value}",
            current_status=current,
        )
    return target


def can_transition(source: TaskStatus, target: TaskStatus) -> bool:
    return (source, target) in _ALLOWED_EDGES


def task_not_found(task_id: str) -> NotFoundError:
    return NotFoundError(f"Task not found with id: {task_id}")


class TaskLifecycleService:
    """start / complete / cancel / get_status for a single task."""

    def __init__(
        self,
        tasks: TaskStore,
        events: TaskEventSink | None = None,
        clock: Clock = utc_now,
    ):
        self._tasks = tasks
        self._events = events or NullEventSink()
        self._clock = clock

    async def start(self, task_id: str) -> Task:
        now = self._clock()

        def mutate(task: Task) -> None:
            task.status = next_status(task.status, TaskAction.START)
            task.started_at = now
            task.updated_at = now

        task = await self._update(task_id, mutate)
        logger.info("Task started", extra={"task_id": task_id})
        self._emit(NotificationType.TASK_IN_PROGRESS, task)
        return task

    async def complete(self, task_id: str, work_summary: str | None) -> Task:
        now = self._clock()
        summary = (work_summary or "").strip()

        def mutate(task: Task) -> None:
            if not summary:
                raise InvalidArgumentError("Work summary is required to complete a task")
            task.status = next_status(task.status, TaskAction.COMPLETE)
            task.completed_at = now
            task.work_summary = work_summary
            task.updated_at = now

        task = await self._update(task_id, mutate)
        logger.info("Task completed", extra={"task_id": task_id})
        self._emit(NotificationType.TASK_COMPLETED, task)
        return task

    async def cancel(self, task_id: str) -> Task:
        now = self._clock()

        def mutate(task: Task) -> None:
            task.status = next_status(task.status, TaskAction.CANCEL)
            task.updated_at = now

        task = await self._update(task_id, mutate)
        logger.info("Task cancelled", extra={"task_id": task_id})
        self._emit(NotificationType.TASK_CANCELLED, task)
        return task

    async def get_status(self, task_id: str) -> TaskStatus:
        task = await self._tasks.get(task_id)
        if task is None:
            raise task_not_found(task_id)
        return task.status

    async def _update(self, task_id, mutate) -> Task:
        try:
            task = await self._tasks.update(task_id, mutate)
        except InvalidStateError as e:
            logger.warning(f"Transition rejected: {e.detail}", extra={"task_id": task_id})
            raise
        if task is None:
            raise task_not_found(task_id)
        DispatchMetrics.task_transition(task.status.value)
        return task

    def _emit(self, event_type: NotificationType, task: Task) -> None:
        self._events.emit(TaskEvent(type=event_type, task=copy.deepcopy(task)))
