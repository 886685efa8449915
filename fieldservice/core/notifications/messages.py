# fieldservice/core/notifications/messages.py
"""
Customer-facing message bodies built from a task snapshot.

Pure functions: no I/O, no clock. The ETA is derived from the assignment
time only, so the same task always renders the same text.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from fieldservice.core.domain import NotificationType, Task, User

TRAVEL_MINUTES = 30
ETA_FORMAT = "%Y-%m-%d %H:%M"
ETA_UNDETERMINED = "undetermined"

EMAIL_SUBJECTS = {
    NotificationType.TASK_ASSIGNED: "Field Service: Task Assigned",
    NotificationType.TASK_IN_PROGRESS: "Field Service: Technician On The Way",
    NotificationType.TASK_COMPLETED: "Field Service: Task Completed",
    NotificationType.TASK_CANCELLED: "Field Service: Task Cancelled",
}


def email_subject(notification_type: NotificationType) -> str:
    return EMAIL_SUBJECTS[notification_type]


def estimated_arrival(task: Task, travel_minutes: int = TRAVEL_MINUTES) -> Optional[datetime]:
    """assigned_at + travel allowance + estimated duration (0 when unset)."""
    if task.assigned_at is None:
        return None
    return task.assigned_at + timedelta(minutes=travel_minutes + (task.estimated_duration or 0))


def calculate_eta(task: Task, travel_minutes: int = TRAVEL_MINUTES) -> str:
    eta = estimated_arrival(task, travel_minutes)
    if eta is None:
        return ETA_UNDETERMINED
    return eta.strftime(ETA_FORMAT)


def _technician_lines(task: Task, technician: Optional[User]) -> list[str]:
    lines = []
    name = technician.username if technician else task.assigned_technician_name
    if name:
        lines.append(f"- Technician: {name}")
    if technician and technician.email:
        lines.append(f"- Technician Email: {technician.email}")
    return lines


def task_assigned_message(
    task: Task,
    technician: Optional[User] = None,
    travel_minutes: int = TRAVEL_MINUTES,
) -> str:
    lines = [
        "Task Assignment Notification",
        "",
        "Your service request has been assigned to a technician.",
        "",
        "Task Details:",
        f"- Title: {task.title}",
    ]
    if task.description:
        lines.append(f"- Description: {task.description}")
    lines.append(f"- Address: {task.client_address}")
    lines.append(f"- Priority: {task.priority.value}")
    lines.extend(_technician_lines(task, technician))
    if task.estimated_duration is not None:
        lines.append(f"- Estimated Duration: {task.estimated_duration} minutes")
    lines.append(f"- Estimated Time of Arrival: {calculate_eta(task, travel_minutes)}")
    lines.append("")
    lines.append("You will receive another notification when the technician is on the way.")
    return "\n".join(lines)


def task_in_progress_message(
    task: Task,
    technician: Optional[User] = None,
    travel_minutes: int = TRAVEL_MINUTES,
) -> str:
    lines = [
        "Task In Progress Notification",
        "",
        "Your technician is now on the way to your location.",
        "",
        "Task Details:",
        f"- Title: {task.title}",
        f"- Address: {task.client_address}",
    ]
    lines.extend(_technician_lines(task, technician))
    lines.append(f"- Estimated Time of Arrival: {calculate_eta(task, travel_minutes)}")
    lines.append("")
    lines.append("Please be available at the service location.")
    return "\n".join(lines)


def task_completed_message(task: Task) -> str:
    lines = [
        "Task Completed Notification",
        "",
        "Your service request has been completed.",
        "",
        "Task Details:",
        f"- Title: {task.title}",
        f"- Address: {task.client_address}",
    ]
    if task.completed_at is not None:
        lines.append(f"- Completed At: {task.completed_at.strftime(ETA_FORMAT)}")
    if task.work_summary:
        lines.append(f"- Work Summary: {task.work_summary}")
    lines.append("")
    lines.append("Thank you for choosing our service.")
    return "\n".join(lines)


def task_cancelled_message(task: Task) -> str:
    return "\n".join([
        "Task Cancelled Notification",
        "",
        "Your service request has been cancelled.",
        "",
        "Task Details:",
        f"- Title: {task.title}",
        f"- Address: {task.client_address}",
        "",
        "Please contact us if you would like to reschedule.",
    ])


def build_message(
    notification_type: NotificationType,
    task: Task,
    technician: Optional[User] = None,
    travel_minutes: int = TRAVEL_MINUTES,
) -> str:
    if notification_type == NotificationType.TASK_ASSIGNED:
        return task_assigned_message(task, technician, travel_minutes)
    if notification_type == NotificationType.TASK_IN_PROGRESS:
        return task_in_progress_message(task, technician, travel_minutes)
    if notification_type == NotificationType.TASK_COMPLETED:
        return task_completed_message(task)
    return task_cancelled_message(task)
