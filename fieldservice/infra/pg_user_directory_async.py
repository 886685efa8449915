# fieldservice/infra/pg_user_directory_async.py
"""
Read-only user directory backed by the ``users`` table (asyncpg).
"""
from __future__ import annotations

from typing import Optional

from fieldservice.core.domain import User, UserRole
from fieldservice.infra.db_resilience_async import safe_db_conn

_SELECT = "SELECT id, username, email, phone, role, active FROM users"


def _row_to_user(row) -> User:
    return User(
        id=row["id"],
        username=row["username"],
        email=row["email"],
        phone=row["phone"],
        role=UserRole(row["role"]),
        active=row["active"],
    )


class AsyncPostgresUserDirectory:
    async def get(self, user_id: str) -> Optional[User]:
        async with safe_db_conn() as conn:
            row = await conn.fetchrow(f"{_SELECT} WHERE id = $1", user_id)
        return _row_to_user(row) if row else None

    async def list_by_role_active(self, role: UserRole, active: bool) -> list[User]:
        async with safe_db_conn() as conn:
            rows = await conn.fetch(
                f"{_SELECT} WHERE role = $1 AND active = $2 ORDER BY username",
                role.value,
                active,
            )
        return [_row_to_user(r) for r in rows]
