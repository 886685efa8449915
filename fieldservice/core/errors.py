# fieldservice/core/errors.py
"""
Typed domain errors for the dispatch services.

Each error maps to a specific HTTP status code.  The transport layer
converts ``DispatchError`` subtypes into JSON responses without embedding
business logic in the route handlers.

``TransportFailure`` is the only error the notification dispatcher
captures instead of propagating: it ends up on the notification record.
"""
from __future__ import annotations

import math
from typing import Any


class DispatchError(Exception):
    """Base class for all dispatch domain errors."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, detail: str = "Internal error"):
        self.detail = detail
        super().__init__(detail)

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.detail, "code": self.code}


class NotFoundError(DispatchError):
    """Task or user does not exist (404)."""

    status_code = 404
    code = "not_found"


class InvalidArgumentError(DispatchError):
    """Malformed input: blank summary, wrong role, bad coordinates (400)."""

    status_code = 400
    code = "invalid_argument"


class InvalidStateError(DispatchError):
    """Operation not permitted from the task's current status (409)."""

    status_code = 409
    code = "invalid_state"

    def __init__(self, detail: str, current_status: Any = None):
        self.current_status = current_status
        super().__init__(detail)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        if self.current_status is not None:
            data["current_status"] = getattr(self.current_status, "value", self.current_status)
        return data


class AlreadyAssignedError(InvalidStateError):
    """Task already has a technician (409)."""

    code = "already_assigned"

    def __init__(self, assignee: str, current_status: Any = None):
        self.assignee = assignee
        super().__init__(
            f"Task is already assigned to technician: {assignee}",
            current_status=current_status,
        )

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["assignee"] = self.assignee
        return data


class TechnicianUnavailableError(DispatchError):
    """Technician is not active (409)."""

    status_code = 409
    code = "technician_unavailable"


class ThrottledError(DispatchError):
    """Location report arrived inside the minimum gap (429)."""

    status_code = 429
    code = "throttled"

    def __init__(self, retry_after: float):
        # Round up: a client that waits exactly ``retry_after`` must be accepted.
        self.retry_after = max(1, math.ceil(retry_after))
        super().__init__(
            f"Location updates are limited to one per interval. "
            f"Please wait {self.retry_after} seconds."
        )

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["retry_after"] = self.retry_after
        return data


class TransportFailure(DispatchError):
    """Email/SMS delivery failed (502). Recorded on the notification, not raised to callers."""

    status_code = 502
    code = "transport_failure"

    def __init__(self, channel: str, detail: str):
        self.channel = channel
        super().__init__(detail)
