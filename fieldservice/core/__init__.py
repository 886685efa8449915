# fieldservice/core/__init__.py
"""
Core dispatch logic -- storage- and transport-agnostic.

Canonical imports:
    from fieldservice.core import TaskStatus, Task, DispatchError
    from fieldservice.core.services import build_services
"""
from fieldservice.core.domain import (  # noqa: F401
    DeliveryStatus,
    Location,
    Notification,
    NotificationChannel,
    NotificationRequest,
    NotificationType,
    Priority,
    Task,
    TaskStatus,
    TechnicianView,
    User,
    UserRole,
)
from fieldservice.core.errors import (  # noqa: F401
    AlreadyAssignedError,
    DispatchError,
    InvalidArgumentError,
    InvalidStateError,
    NotFoundError,
    TechnicianUnavailableError,
    ThrottledError,
    TransportFailure,
)
from fieldservice.core.lifecycle import can_transition  # noqa: F401
