# fieldservice/transport/schemas.py
"""
Pydantic request/response models for the dispatch HTTP API.

Request models only check shape and basic bounds; the services own the
business rules (address policy, transitions, throttling).
"""
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from fieldservice.core.domain import (
    DeliveryStatus,
    NotificationChannel,
    NotificationType,
    Priority,
    TaskStatus,
)


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class TaskCreateRequest(BaseModel):
    title: str = Field(..., min_length=3, max_length=200)
    description: str | None = None
    client_address: str = Field(..., min_length=5, max_length=500)
    priority: Priority
    estimated_duration: int | None = Field(default=None, ge=0, description="Minutes")
    customer_id: str | None = None
    customer_contact: str | None = Field(default=None, description="Email or phone to notify")


class TaskUpdateRequest(BaseModel):
    """Partial update; omitted fields are left unchanged."""

    title: str | None = Field(default=None, min_length=3, max_length=200)
    description: str | None = None
    client_address: str | None = Field(default=None, min_length=5, max_length=500)
    priority: Priority | None = None
    estimated_duration: int | None = Field(default=None, ge=0)
    customer_id: str | None = None
    customer_contact: str | None = None


class AssignRequest(BaseModel):
    technician_id: str = Field(..., min_length=1)


class CompleteRequest(BaseModel):
    work_summary: str | None = None


class LocationReportRequest(BaseModel):
    latitude: float
    longitude: float
    accuracy: float | None = None


class NotificationSendRequest(BaseModel):
    task_id: str
    customer_id: str
    type: NotificationType
    message: str = Field(..., min_length=1)
    channel: NotificationChannel | None = None
    recipient_contact: str = Field(..., min_length=1)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------

class _FromDomain(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class TaskResponse(_FromDomain):
    id: str
    title: str
    description: str | None
    client_address: str
    priority: Priority
    estimated_duration: int | None
    status: TaskStatus
    assigned_technician_id: str | None
    assigned_technician_name: str | None
    assigned_at: datetime | None
    assigned_by_id: str | None
    started_at: datetime | None
    completed_at: datetime | None
    work_summary: str | None
    customer_id: str | None
    created_at: datetime
    updated_at: datetime


class TaskStatusResponse(BaseModel):
    task_id: str
    status: TaskStatus


class TechnicianResponse(_FromDomain):
    id: str
    display_name: str
    email: str | None
    phone: str | None
    available: bool


class LocationResponse(_FromDomain):
    id: str
    user_id: str
    latitude: float
    longitude: float
    accuracy: float | None
    timestamp: datetime


class TaskLocationResponse(_FromDomain):
    task_id: str
    title: str
    address: str
    status: TaskStatus
    priority: Priority
    latitude: float | None
    longitude: float | None


class NotificationResponse(_FromDomain):
    id: str
    task_id: str
    customer_id: str
    type: NotificationType
    message: str
    channel: NotificationChannel
    recipient_contact: str
    delivery_status: DeliveryStatus
    error_message: str | None
    retry_count: int
    created_at: datetime
    updated_at: datetime
    sent_at: datetime | None


class RetrySummaryResponse(_FromDomain):
    retried: int
    succeeded: int
    skipped: int
    failed_ids: list[str]
