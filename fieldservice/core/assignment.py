# fieldservice/core/assignment.py
from __future__ import annotations

import copy

from fieldservice.core.domain import (
    Clock,
    NotificationType,
    Task,
    TechnicianView,
    User,
    UserRole,
    utc_now,
)
from fieldservice.core.errors import (
    AlreadyAssignedError,
    DispatchError,
    InvalidArgumentError,
    NotFoundError,
    TechnicianUnavailableError,
)
from fieldservice.core.events import NullEventSink, TaskEvent, TaskEventSink
from fieldservice.core.lifecycle import TaskAction, next_status, task_not_found
from fieldservice.core.ports import TaskStore, UserDirectory
from fieldservice.infra.logging_config import LogContext, get_logger
from fieldservice.infra.metrics import DispatchMetrics

logger = get_logger(__name__)


class AssignmentCoordinator:
    """
    Binds an unassigned task to an active technician.

    Preconditions are checked in a fixed order and the first failure wins:
    task exists, task has no assignee, technician exists, user is a
    technician, technician is active. The task half of the check runs inside
    the store's per-task update so two concurrent assignments of the same
    task cannot both pass.
    """

    def __init__(
        self,
        tasks: TaskStore,
        users: UserDirectory,
        events: TaskEventSink | None = None,
        clock: Clock = utc_now,
    ):
        self._tasks = tasks
        self._users = users
        self._events = events or NullEventSink()
        self._clock = clock

    async def assign(self, task_id: str, technician_id: str, dispatcher_id: str | None) -> Task:
        log = LogContext(logger, task_id=task_id, technician_id=technician_id)

        # Looked up before taking the task lock; the outcome is only
        # reported after the task-side checks so their errors take precedence.
        technician = await self._users.get(technician_id)
        now = self._clock()

        def mutate(task: Task) -> None:
            if task.assigned_technician_id is not None:
                raise AlreadyAssignedError(
                    task.assigned_technician_name or task.assigned_technician_id,
                    current_status=task.status,
                )
            self._check_technician(technician_id, technician)
            task.status = next_status(task.status, TaskAction.ASSIGN)
            task.assigned_technician_id = technician.id
            task.assigned_technician_name = technician.username
            task.assigned_at = now
            task.assigned_by_id = dispatcher_id
            task.updated_at = now

        try:
            task = await self._tasks.update(task_id, mutate)
        except DispatchError as e:
            DispatchMetrics.assignment_rejected(e.code)
            log.warning(f"Assignment rejected: {e.detail}")
            raise
        if task is None:
            DispatchMetrics.assignment_rejected(NotFoundError.code)
            raise task_not_found(task_id)

        DispatchMetrics.task_transition(task.status.value)
        log.info(f"Task assigned by dispatcher={dispatcher_id}")
        self._events.emit(TaskEvent(
            type=NotificationType.TASK_ASSIGNED,
            task=copy.deepcopy(task),
            technician=technician,
        ))
        return task

    async def list_available_technicians(self) -> list[TechnicianView]:
        users = await self._users.list_by_role_active(UserRole.TECHNICIAN, True)
        return [TechnicianView.from_user(u) for u in users]

    @staticmethod
    def _check_technician(technician_id: str, technician: User | None) -> None:
        if technician is None:
            raise NotFoundError(f"Technician not found with id: {technician_id}")
        if technician.role != UserRole.TECHNICIAN:
            raise InvalidArgumentError("User is not a technician")
        if not technician.active:
            raise TechnicianUnavailableError("Technician is not available")
