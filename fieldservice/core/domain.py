# fieldservice/core/domain.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional


Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# ENUMS
# ============================================================================

class TaskStatus(str, Enum):
    UNASSIGNED = "UNASSIGNED"
    ASSIGNED = "ASSIGNED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.CANCELLED)


class Priority(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"

    @property
    def rank(self) -> int:
        """Sort key: HIGH first."""
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {Priority.HIGH: 1, Priority.MEDIUM: 2, Priority.LOW: 3}


class UserRole(str, Enum):
    DISPATCHER = "DISPATCHER"
    TECHNICIAN = "TECHNICIAN"
    SUPERVISOR = "SUPERVISOR"


class NotificationType(str, Enum):
    TASK_ASSIGNED = "TASK_ASSIGNED"
    TASK_IN_PROGRESS = "TASK_IN_PROGRESS"
    TASK_COMPLETED = "TASK_COMPLETED"
    TASK_CANCELLED = "TASK_CANCELLED"


class NotificationChannel(str, Enum):
    EMAIL = "EMAIL"
    SMS = "SMS"
    BOTH = "BOTH"

    def expand(self) -> tuple["NotificationChannel", ...]:
        """Concrete channels to attempt, in order."""
        if self is NotificationChannel.BOTH:
            return (NotificationChannel.EMAIL, NotificationChannel.SMS)
        return (self,)


class DeliveryStatus(str, Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    DELIVERED = "DELIVERED"
    FAILED = "FAILED"


# ============================================================================
# TASK
# ============================================================================

@dataclass
class Task:
    """
    A unit of field work.

    Invariants (maintained by the services, never by callers):
    - ``assigned_technician_id`` is set iff status is ASSIGNED, IN_PROGRESS
      or COMPLETED, and ``assigned_at`` is set alongside it.
    - ``started_at`` is set iff status is IN_PROGRESS or COMPLETED.
    - ``completed_at`` and a non-blank ``work_summary`` are set iff COMPLETED.
    """
    id: str
    title: str
    client_address: str
    priority: Priority
    created_at: datetime
    updated_at: datetime
    description: Optional[str] = None
    estimated_duration: Optional[int] = None  # minutes
    status: TaskStatus = TaskStatus.UNASSIGNED

    assigned_technician_id: Optional[str] = None
    assigned_technician_name: Optional[str] = None
    assigned_at: Optional[datetime] = None
    assigned_by_id: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    work_summary: Optional[str] = None

    # Customer to notify about progress (optional)
    customer_id: Optional[str] = None
    customer_contact: Optional[str] = None


# ============================================================================
# USERS
# ============================================================================

@dataclass(frozen=True)
class User:
    """Read-only projection of the identity subsystem."""
    id: str
    username: str
    role: UserRole
    active: bool = True
    email: Optional[str] = None
    phone: Optional[str] = None

    @property
    def is_technician(self) -> bool:
        return self.role == UserRole.TECHNICIAN


@dataclass(frozen=True)
class TechnicianView:
    id: str
    display_name: str
    email: Optional[str]
    phone: Optional[str]
    available: bool

    @classmethod
    def from_user(cls, user: User) -> "TechnicianView":
        return cls(
            id=user.id,
            display_name=user.username,
            email=user.email,
            phone=user.phone,
            available=user.active,
        )


# ============================================================================
# LOCATIONS
# ============================================================================

@dataclass(frozen=True)
class Location:
    id: str
    user_id: str
    latitude: float
    longitude: float
    timestamp: datetime
    accuracy: Optional[float] = None  # meters


@dataclass(frozen=True)
class TaskLocationView:
    """Task projection for map views. Coordinates stay empty until geocoding exists."""
    task_id: str
    title: str
    address: str
    status: TaskStatus
    priority: Priority
    latitude: Optional[float] = None
    longitude: Optional[float] = None


# ============================================================================
# NOTIFICATIONS
# ============================================================================

@dataclass
class NotificationRequest:
    task_id: str
    customer_id: str
    type: NotificationType
    message: str
    recipient_contact: str
    channel: Optional[NotificationChannel] = None  # None => EMAIL


@dataclass
class Notification:
    id: str
    task_id: str
    customer_id: str
    type: NotificationType
    message: str
    channel: NotificationChannel
    recipient_contact: str
    created_at: datetime
    updated_at: datetime
    delivery_status: DeliveryStatus = DeliveryStatus.PENDING
    error_message: Optional[str] = None
    retry_count: int = 0
    sent_at: Optional[datetime] = None


@dataclass
class RetrySummary:
    retried: int = 0
    succeeded: int = 0
    skipped: int = 0
    failed_ids: list[str] = field(default_factory=list)
