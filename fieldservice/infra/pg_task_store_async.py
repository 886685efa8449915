# fieldservice/infra/pg_task_store_async.py
"""
Async PostgreSQL task store (asyncpg).

``update`` locks the row with SELECT ... FOR UPDATE inside a transaction, so
concurrent read-modify-write cycles on one task are serialized by Postgres
while other tasks stay unaffected.
"""
from __future__ import annotations

from typing import Optional

from fieldservice.core.domain import Priority, Task, TaskStatus
from fieldservice.core.ports import TaskMutator
from fieldservice.infra.db_resilience_async import safe_db_conn
from fieldservice.infra.logging_config import get_logger

logger = get_logger(__name__)

_COLUMNS = (
    "id", "title", "description", "client_address", "priority", "estimated_duration",
    "status", "assigned_technician_id", "assigned_technician_name", "assigned_at",
    "assigned_by_id", "started_at", "completed_at", "work_summary",
    "customer_id", "customer_contact", "created_at", "updated_at",
)
_SELECT = f"SELECT {', '.join(_COLUMNS)} FROM tasks"

_UPSERT = f"""
    INSERT INTO tasks ({', '.join(_COLUMNS)})
    VALUES ({', '.join(f'${i}' for i in range(1, len(_COLUMNS) + 1))})
    ON CONFLICT (id) DO UPDATE SET
    {', '.join(f'{c} = EXCLUDED.{c}' for c in _COLUMNS if c != 'id')}
"""

# HIGH < MEDIUM < LOW, then oldest first
_PRIORITY_ORDER = "CASE priority WHEN 'HIGH' THEN 1 WHEN 'MEDIUM' THEN 2 ELSE 3 END"


def _row_to_task(row) -> Task:
    """Convert an asyncpg Record to a Task dataclass."""
    return Task(
        id=row["id"],
        title=row["title"],
        description=row["description"],
        client_address=row["client_address"],
        priority=Priority(row["priority"]),
        estimated_duration=row["estimated_duration"],
        status=TaskStatus(row["status"]),
        assigned_technician_id=row["assigned_technician_id"],
        assigned_technician_name=row["assigned_technician_name"],
        assigned_at=row["assigned_at"],
        assigned_by_id=row["assigned_by_id"],
        started_at=row["started_at"],
        completed_at=row["completed_at"],
        work_summary=row["work_summary"],
        customer_id=row["customer_id"],
        customer_contact=row["customer_contact"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _task_params(task: Task) -> list:
    values = []
    for column in _COLUMNS:
        value = getattr(task, column)
        values.append(value.value if isinstance(value, (Priority, TaskStatus)) else value)
    return values


class AsyncPostgresTaskStore:
    async def get(self, task_id: str) -> Optional[Task]:
        async with safe_db_conn() as conn:
            row = await conn.fetchrow(f"{_SELECT} WHERE id = $1", task_id)
        return _row_to_task(row) if row else None

    async def save(self, task: Task) -> Task:
        async with safe_db_conn() as conn:
            await conn.execute(_UPSERT, *_task_params(task))
        return task

    async def update(self, task_id: str, mutate: TaskMutator) -> Optional[Task]:
        async with safe_db_conn(autocommit=False) as conn:
            row = await conn.fetchrow(f"{_SELECT} WHERE id = $1 FOR UPDATE", task_id)
            if row is None:
                return None
            task = _row_to_task(row)
            # Raising here rolls the transaction back and releases the row lock
            mutate(task)
            await conn.execute(_UPSERT, *_task_params(task))
        return task

    async def list_all(self) -> list[Task]:
        async with safe_db_conn() as conn:
            rows = await conn.fetch(f"{_SELECT} ORDER BY created_at")
        return [_row_to_task(r) for r in rows]

    async def list_by_status(self, *statuses: TaskStatus) -> list[Task]:
        async with safe_db_conn() as conn:
            rows = await conn.fetch(
                f"{_SELECT} WHERE status = ANY($1::text[]) ORDER BY created_at",
                [s.value for s in statuses],
            )
        return [_row_to_task(r) for r in rows]

    async def list_by_assignee(self, technician_id: str) -> list[Task]:
        async with safe_db_conn() as conn:
            rows = await conn.fetch(
                f"{_SELECT} WHERE assigned_technician_id = $1 ORDER BY created_at",
                technician_id,
            )
        return [_row_to_task(r) for r in rows]

    async def list_unassigned_sorted_by_priority(self) -> list[Task]:
        async with safe_db_conn() as conn:
            rows = await conn.fetch(
                f"{_SELECT} WHERE status = 'UNASSIGNED' ORDER BY {_PRIORITY_ORDER}, created_at, id"
            )
        return [_row_to_task(r) for r in rows]
