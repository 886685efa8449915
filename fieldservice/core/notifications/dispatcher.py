# fieldservice/core/notifications/dispatcher.py
from __future__ import annotations

import asyncio
import uuid

from fieldservice.core.domain import (
    Clock,
    DeliveryStatus,
    Notification,
    NotificationChannel,
    NotificationRequest,
    RetrySummary,
    utc_now,
)
from fieldservice.core.events import TaskEvent
from fieldservice.core.notifications.messages import TRAVEL_MINUTES, build_message, email_subject
from fieldservice.core.ports import ChannelSender, NotificationStore
from fieldservice.infra.logging_config import LogContext, get_logger, mask_contact
from fieldservice.infra.metrics import DispatchMetrics

logger = get_logger(__name__)

MAX_RETRIES = 3


class NotificationDispatcher:
    """
    Delivers customer notifications and keeps their delivery record.

    - ``attempt_send`` awaits delivery and returns the final record. Transport
      errors never escape; they end up as FAILED + error_message.
    - ``submit`` / ``emit`` schedule ``attempt_send`` in the background for
      callers that must not wait (post-assignment, post-status-change).
    - ``retry_failed`` re-delivers FAILED records on the same record until
      ``max_retries`` is reached.
    """

    def __init__(
        self,
        notifications: NotificationStore,
        sender: ChannelSender,
        clock: Clock = utc_now,
        max_retries: int = MAX_RETRIES,
        customer_channel: NotificationChannel = NotificationChannel.EMAIL,
        travel_minutes: int = TRAVEL_MINUTES,
    ):
        self._notifications = notifications
        self._sender = sender
        self._clock = clock
        self.max_retries = max_retries
        self._customer_channel = NotificationChannel(customer_channel)
        self._travel_minutes = travel_minutes
        self._pending: set[asyncio.Task] = set()
        self._retry_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Synchronous delivery
    # ------------------------------------------------------------------

    async def attempt_send(self, request: NotificationRequest) -> Notification:
        now = self._clock()
        notification = Notification(
            id=str(uuid.uuid4()),
            task_id=request.task_id,
            customer_id=request.customer_id,
            type=request.type,
            message=request.message,
            channel=request.channel or NotificationChannel.EMAIL,
            recipient_contact=request.recipient_contact,
            delivery_status=DeliveryStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        notification = await self._notifications.save(notification)
        logger.info(
            f"Sending {notification.type.value} via {notification.channel.value} "
            f"to {mask_contact(notification.recipient_contact)}",
            extra={"task_id": notification.task_id, "notification_id": notification.id},
        )
        return await self._deliver(notification)

    send = attempt_send

    async def _deliver(self, notification: Notification) -> Notification:
        log = LogContext(logger, task_id=notification.task_id, notification_id=notification.id)
        errors: list[str] = []

        # Every sub-channel is attempted even if an earlier one failed
        for channel in notification.channel.expand():
            try:
                with DispatchMetrics.track_delivery_time(channel.value):
                    if channel == NotificationChannel.EMAIL:
                        await self._sender.send_email(
                            notification.recipient_contact,
                            email_subject(notification.type),
                            notification.message,
                        )
                    else:
                        await self._sender.send_sms(notification.recipient_contact, notification.message)
            except Exception as e:
                errors.append(f"{channel.value}: {e}")
                log.error(f"{channel.value} delivery failed: {e}", exc_info=True)

        now = self._clock()
        notification.updated_at = now
        if errors:
            notification.delivery_status = DeliveryStatus.FAILED
            notification.error_message = "; ".join(errors)
        else:
            notification.delivery_status = DeliveryStatus.SENT
            notification.error_message = None
            notification.sent_at = now
            log.info("Notification sent")

        DispatchMetrics.notification_result(notification.delivery_status.value, notification.channel.value)
        return await self._notifications.save(notification)

    # ------------------------------------------------------------------
    # Fire-and-forget
    # ------------------------------------------------------------------

    def submit(self, request: NotificationRequest) -> asyncio.Task:
        """Schedule ``attempt_send`` without waiting. Must be called from the event loop."""
        task = asyncio.get_running_loop().create_task(
            self.attempt_send(request), name=f"notify:{request.task_id}"
        )
        self._pending.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc:
            logger.error(
                f"Background notification failed: {exc}",
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    def emit(self, event: TaskEvent) -> None:
        """Turn a task event into a customer notification (background)."""
        task = event.task
        if not task.customer_contact:
            logger.debug(
                f"No customer contact, {event.type.value} not sent",
                extra={"task_id": task.id},
            )
            return
        self.submit(NotificationRequest(
            task_id=task.id,
            customer_id=task.customer_id or task.customer_contact,
            type=event.type,
            message=build_message(event.type, task, event.technician, self._travel_minutes),
            recipient_contact=task.customer_contact,
            channel=self._customer_channel,
        ))

    async def drain(self) -> None:
        """Wait for all background sends (shutdown, tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    # ------------------------------------------------------------------
    # Retry sweep
    # ------------------------------------------------------------------

    async def retry_failed(self) -> RetrySummary:
        """
        Re-deliver FAILED notifications below the retry cap.

        Externally triggered; sweeps never overlap. A record that reached the
        cap stays FAILED and is skipped by every later sweep.
        """
        summary = RetrySummary()
        async with self._retry_lock:
            failed = await self._notifications.list_by_status(DeliveryStatus.FAILED)
            logger.info(f"Retry sweep: {len(failed)} failed notifications")

            for notification in failed:
                if notification.retry_count >= self.max_retries:
                    summary.skipped += 1
                    DispatchMetrics.notification_retry_skipped()
                    logger.warning(
                        f"Max retry count reached: retry_count={notification.retry_count}",
                        extra={"task_id": notification.task_id, "notification_id": notification.id},
                    )
                    continue

                notification.retry_count += 1
                summary.retried += 1
                result = await self._deliver(notification)
                if result.delivery_status == DeliveryStatus.SENT:
                    summary.succeeded += 1
                else:
                    summary.failed_ids.append(result.id)

        return summary

    async def list_for_task(self, task_id: str) -> list[Notification]:
        return await self._notifications.list_by_task(task_id)
