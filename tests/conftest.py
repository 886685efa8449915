# tests/conftest.py
"""Pytest configuration and fixtures"""
import pytest
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from fieldservice.core.domain import Priority, User, UserRole  # noqa: E402
from fieldservice.core.errors import TransportFailure  # noqa: E402
from fieldservice.core.services import wire_services  # noqa: E402
from fieldservice.infra.memory_store import (  # noqa: E402
    InMemoryLocationStore,
    InMemoryNotificationStore,
    InMemoryTaskStore,
    InMemoryUserDirectory,
)
from fieldservice.infra.metrics import get_metrics_collector  # noqa: E402


class FakeClock:
    """Controllable UTC clock; call it to read, ``advance`` to move forward."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 0, minutes: float = 0) -> None:
        self.now += timedelta(seconds=seconds, minutes=minutes)


class RecordingSender:
    """ChannelSender that records messages and can be told to fail."""

    def __init__(self):
        self.emails: list[tuple[str, str, str]] = []
        self.sms: list[tuple[str, str]] = []
        self.fail_email = False
        self.fail_sms = False

    async def send_email(self, to: str, subject: str, body: str) -> None:
        if self.fail_email:
            raise TransportFailure("email", "SMTP connection refused")
        self.emails.append((to, subject, body))

    async def send_sms(self, to: str, body: str) -> None:
        if self.fail_sms:
            raise TransportFailure("sms", "Twilio timeout")
        self.sms.append((to, body))


DISPATCHER = User(id="disp-1", username="dana", role=UserRole.DISPATCHER, email="dana@example.com")
TECH = User(id="tech-1", username="tom", role=UserRole.TECHNICIAN, email="tom@example.com", phone="+15550001111")
TECH_2 = User(id="tech-2", username="tara", role=UserRole.TECHNICIAN, email="tara@example.com")
TECH_INACTIVE = User(id="tech-idle", username="ivan", role=UserRole.TECHNICIAN, active=False)
SUPERVISOR = User(id="sup-1", username="sam", role=UserRole.SUPERVISOR)

ALL_USERS = [DISPATCHER, TECH, TECH_2, TECH_INACTIVE, SUPERVISOR]


@pytest.fixture(autouse=True)
def reset_metrics():
    get_metrics_collector().reset()
    yield


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def task_store():
    return InMemoryTaskStore()


@pytest.fixture
def users():
    return InMemoryUserDirectory(ALL_USERS)


@pytest.fixture
def location_store():
    return InMemoryLocationStore()


@pytest.fixture
def notification_store():
    return InMemoryNotificationStore()


@pytest.fixture
def services(task_store, users, location_store, notification_store, sender, clock):
    return wire_services(
        task_store=task_store,
        users=users,
        locations=location_store,
        notification_store=notification_store,
        sender=sender,
        clock=clock,
    )


@pytest.fixture
def task_fields():
    """Valid create() arguments"""
    return {
        "title": "Fix air conditioner",
        "description": "Unit makes a rattling noise",
        "client_address": "123 Main St, Springfield",
        "priority": Priority.HIGH,
        "estimated_duration": 60,
        "customer_id": "cust-1",
        "customer_contact": "customer@example.com",
    }
