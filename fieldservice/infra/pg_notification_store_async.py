# fieldservice/infra/pg_notification_store_async.py
"""
Notification delivery records (asyncpg). ``save`` is an upsert so the
retry sweep updates the same record.
"""
from __future__ import annotations

from typing import Optional

from fieldservice.core.domain import (
    DeliveryStatus,
    Notification,
    NotificationChannel,
    NotificationType,
)
from fieldservice.infra.db_resilience_async import safe_db_conn

_COLUMNS = (
    "id", "task_id", "customer_id", "type", "message", "channel", "recipient_contact",
    "delivery_status", "error_message", "retry_count", "created_at", "updated_at", "sent_at",
)
_SELECT = f"SELECT {', '.join(_COLUMNS)} FROM notifications"

_UPSERT = f"""
    INSERT INTO notifications ({', '.join(_COLUMNS)})
    VALUES ({', '.join(f'${i}' for i in range(1, len(_COLUMNS) + 1))})
    ON CONFLICT (id) DO UPDATE SET
        delivery_status = EXCLUDED.delivery_status,
        error_message = EXCLUDED.error_message,
        retry_count = EXCLUDED.retry_count,
        updated_at = EXCLUDED.updated_at,
        sent_at = EXCLUDED.sent_at
"""


def _row_to_notification(row) -> Notification:
    return Notification(
        id=row["id"],
        task_id=row["task_id"],
        customer_id=row["customer_id"],
        type=NotificationType(row["type"]),
        message=row["message"],
        channel=NotificationChannel(row["channel"]),
        recipient_contact=row["recipient_contact"],
        delivery_status=DeliveryStatus(row["delivery_status"]),
        error_message=row["error_message"],
        retry_count=row["retry_count"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        sent_at=row["sent_at"],
    )


class AsyncPostgresNotificationStore:
    async def save(self, notification: Notification) -> Notification:
        n = notification
        async with safe_db_conn() as conn:
            await conn.execute(
                _UPSERT,
                n.id, n.task_id, n.customer_id, n.type.value, n.message, n.channel.value,
                n.recipient_contact, n.delivery_status.value, n.error_message, n.retry_count,
                n.created_at, n.updated_at, n.sent_at,
            )
        return notification

    async def get(self, notification_id: str) -> Optional[Notification]:
        async with safe_db_conn() as conn:
            row = await conn.fetchrow(f"{_SELECT} WHERE id = $1", notification_id)
        return _row_to_notification(row) if row else None

    async def list_by_task(self, task_id: str) -> list[Notification]:
        async with safe_db_conn() as conn:
            rows = await conn.fetch(f"{_SELECT} WHERE task_id = $1 ORDER BY created_at", task_id)
        return [_row_to_notification(r) for r in rows]

    async def list_by_status(self, status: DeliveryStatus) -> list[Notification]:
        async with safe_db_conn() as conn:
            rows = await conn.fetch(
                f"{_SELECT} WHERE delivery_status = $1 ORDER BY created_at", status.value
            )
        return [_row_to_notification(r) for r in rows]
