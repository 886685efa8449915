# fieldservice/infra/pg_location_store_async.py
"""
Append-only location history (asyncpg).
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from fieldservice.core.domain import Location
from fieldservice.infra.db_resilience_async import safe_db_conn

_COLUMNS = "id, user_id, latitude, longitude, accuracy, timestamp"


def _row_to_location(row) -> Location:
    return Location(
        id=row["id"],
        user_id=row["user_id"],
        latitude=row["latitude"],
        longitude=row["longitude"],
        accuracy=row["accuracy"],
        timestamp=row["timestamp"],
    )


class AsyncPostgresLocationStore:
    async def save(self, location: Location) -> Location:
        async with safe_db_conn() as conn:
            await conn.execute(
                f"INSERT INTO locations ({_COLUMNS}) VALUES ($1, $2, $3, $4, $5, $6)",
                location.id,
                location.user_id,
                location.latitude,
                location.longitude,
                location.accuracy,
                location.timestamp,
            )
        return location

    async def latest_for_user(self, user_id: str) -> Optional[Location]:
        async with safe_db_conn() as conn:
            row = await conn.fetchrow(
                f"SELECT {_COLUMNS} FROM locations WHERE user_id = $1 "
                f"ORDER BY timestamp DESC LIMIT 1",
                user_id,
            )
        return _row_to_location(row) if row else None

    async def latest_per_user_since(self, since: datetime) -> list[Location]:
        async with safe_db_conn() as conn:
            rows = await conn.fetch(
                f"""
                SELECT DISTINCT ON (user_id) {_COLUMNS}
                FROM locations
                WHERE timestamp >= $1
                ORDER BY user_id, timestamp DESC
                """,
                since,
            )
        return [_row_to_location(r) for r in rows]
