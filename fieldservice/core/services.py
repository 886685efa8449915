# fieldservice/core/services.py
"""
Wiring for the dispatch services.

``DispatchServices`` holds one instance of every service plus the
collaborators they share. The assignment and lifecycle services emit task
events straight into the notification dispatcher.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from fieldservice.core.assignment import AssignmentCoordinator
from fieldservice.core.domain import Clock, NotificationChannel, User, UserRole, utc_now
from fieldservice.core.lifecycle import TaskLifecycleService
from fieldservice.core.notifications.dispatcher import NotificationDispatcher
from fieldservice.core.ports import (
    ChannelSender,
    LocationStore,
    NotificationStore,
    TaskStore,
    UserDirectory,
)
from fieldservice.core.tasks import TaskService
from fieldservice.core.tracking import LocationTracker
from fieldservice.infra.live_hub import LiveHub
from fieldservice.infra.logging_config import get_logger
from fieldservice.infra.throttle import MinGapThrottle

logger = get_logger(__name__)


@dataclass
class DispatchServices:
    tasks: TaskService
    lifecycle: TaskLifecycleService
    assignment: AssignmentCoordinator
    tracking: LocationTracker
    notifications: NotificationDispatcher
    live: LiveHub
    location_topic: str


def wire_services(
    *,
    task_store: TaskStore,
    users: UserDirectory,
    locations: LocationStore,
    notification_store: NotificationStore,
    sender: ChannelSender,
    clock: Clock = utc_now,
    throttle_seconds: int = 30,
    active_window_minutes: int = 5,
    location_topic: str = "/topic/locations",
    live_queue_size: int = 100,
    max_retries: int = 3,
    travel_minutes: int = 30,
    customer_channel: NotificationChannel = NotificationChannel.EMAIL,
) -> DispatchServices:
    notifications = NotificationDispatcher(
        notification_store,
        sender,
        clock=clock,
        max_retries=max_retries,
        customer_channel=customer_channel,
        travel_minutes=travel_minutes,
    )
    live = LiveHub(queue_size=live_queue_size)
    return DispatchServices(
        tasks=TaskService(task_store, clock=clock),
        lifecycle=TaskLifecycleService(task_store, events=notifications, clock=clock),
        assignment=AssignmentCoordinator(task_store, users, events=notifications, clock=clock),
        tracking=LocationTracker(
            users,
            locations,
            task_store,
            MinGapThrottle(throttle_seconds),
            live=live,
            clock=clock,
            topic=location_topic,
            active_window_minutes=active_window_minutes,
        ),
        notifications=notifications,
        live=live,
        location_topic=location_topic,
    )


def build_services(s, users: Iterable[User] = ()) -> DispatchServices:
    """Build services for the configured storage backend."""
    from fieldservice.infra.channels import build_channel_sender

    options = dict(
        sender=build_channel_sender(s),
        throttle_seconds=s.location_throttle_seconds,
        active_window_minutes=s.active_window_minutes,
        location_topic=s.location_topic,
        live_queue_size=s.live_queue_size,
        max_retries=s.notification_max_retries,
        travel_minutes=s.eta_travel_minutes,
        customer_channel=NotificationChannel(s.customer_notification_channel),
    )

    if s.storage_backend == "postgres":
        from fieldservice.infra.pg_location_store_async import AsyncPostgresLocationStore
        from fieldservice.infra.pg_notification_store_async import AsyncPostgresNotificationStore
        from fieldservice.infra.pg_task_store_async import AsyncPostgresTaskStore
        from fieldservice.infra.pg_user_directory_async import AsyncPostgresUserDirectory

        logger.info("Using PostgreSQL stores")
        return wire_services(
            task_store=AsyncPostgresTaskStore(),
            users=AsyncPostgresUserDirectory(),
            locations=AsyncPostgresLocationStore(),
            notification_store=AsyncPostgresNotificationStore(),
            **options,
        )

    from fieldservice.infra.memory_store import (
        InMemoryLocationStore,
        InMemoryNotificationStore,
        InMemoryTaskStore,
        InMemoryUserDirectory,
    )

    users = list(users)
    if not users and s.seed_demo_users:
        users = demo_users()
    logger.info(f"Using in-memory stores: users={len(users)}")
    return wire_services(
        task_store=InMemoryTaskStore(),
        users=InMemoryUserDirectory(users),
        locations=InMemoryLocationStore(),
        notification_store=InMemoryNotificationStore(),
        **options,
    )


def demo_users() -> list[User]:
    """Starter accounts for the in-memory backend."""
    return [
        User(id="dispatcher", username="dispatcher", email="dispatcher@fieldservices.com",
             role=UserRole.DISPATCHER),
        User(id="technician", username="technician", email="technician@fieldservices.com",
             role=UserRole.TECHNICIAN),
        User(id="supervisor", username="supervisor", email="supervisor@fieldservices.com",
             role=UserRole.SUPERVISOR),
    ]
