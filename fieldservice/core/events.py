# fieldservice/core/events.py
"""
Task events emitted after a successful state mutation.

Emitting is fire-and-forget: a sink must return immediately and must not
raise, so the mutation that produced the event is never affected by what
happens downstream (customer notifications, audit, ...).
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol

from fieldservice.core.domain import NotificationType, Task, User


@dataclass(frozen=True)
class TaskEvent:
    type: NotificationType
    task: Task                       # snapshot taken right after the mutation
    technician: Optional[User] = None


class TaskEventSink(Protocol):
    def emit(self, event: TaskEvent) -> None: ...


class NullEventSink:
    """Drops every event. Used when nothing listens for task changes."""

    def emit(self, event: TaskEvent) -> None:
        return None


class RecordingEventSink:
    """Keeps events in memory (tests, debugging)."""

    def __init__(self):
        self.events: list[TaskEvent] = []

    def emit(self, event: TaskEvent) -> None:
        self.events.append(event)
