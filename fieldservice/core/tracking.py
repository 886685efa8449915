# fieldservice/core/tracking.py
"""
Technician position ingestion and queries.

Reports are rate limited per technician (sliding minimum gap), stored
append-only and pushed to live subscribers. "Active" technicians are those
with a report inside the activity window; older history is ignored.
"""
from __future__ import annotations

import math
import uuid
from datetime import timedelta

from fieldservice.core.domain import (
    Clock,
    Location,
    TaskLocationView,
    TaskStatus,
    UserRole,
    utc_now,
)
from fieldservice.core.errors import InvalidArgumentError, NotFoundError, ThrottledError
from fieldservice.core.ports import LiveSink, LocationStore, TaskStore, UserDirectory
from fieldservice.infra.logging_config import get_logger, mask_coordinates
from fieldservice.infra.metrics import DispatchMetrics
from fieldservice.infra.throttle import MinGapThrottle

logger = get_logger(__name__)

EARTH_RADIUS_KM = 6371.0
DEFAULT_TOPIC = "/topic/locations"

# Tasks shown on the dispatch map
MAP_STATUSES = (TaskStatus.UNASSIGNED, TaskStatus.IN_PROGRESS)


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points in kilometres."""
    if lat1 == lat2 and lon1 == lon2:
        return 0.0
    r_lat1, r_lat2 = math.radians(lat1), math.radians(lat2)
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(r_lat1) * math.cos(r_lat2) * math.sin(d_lon / 2) ** 2
    )
    # Rounding can push a past 1.0 for near-antipodal points
    a = min(1.0, max(0.0, a))
    return EARTH_RADIUS_KM * 2 * math.asin(math.sqrt(a))


def location_payload(location: Location) -> dict:
    return {
        "id": location.id,
        "user_id": location.user_id,
        "latitude": location.latitude,
        "longitude": location.longitude,
        "accuracy": location.accuracy,
        "timestamp": location.timestamp.isoformat(),
    }


class LocationTracker:
    def __init__(
        self,
        users: UserDirectory,
        locations: LocationStore,
        tasks: TaskStore,
        throttle: MinGapThrottle,
        live: LiveSink | None = None,
        clock: Clock = utc_now,
        topic: str = DEFAULT_TOPIC,
        active_window_minutes: int = 5,
    ):
        self._users = users
        self._locations = locations
        self._tasks = tasks
        self._throttle = throttle
        self._live = live
        self._clock = clock
        self._topic = topic
        self._active_window_minutes = active_window_minutes

    async def report(
        self,
        technician_id: str,
        latitude: float,
        longitude: float,
        accuracy: float | None = None,
    ) -> Location:
        user = await self._users.get(technician_id)
        if user is None:
            raise NotFoundError(f"User not found with id: {technician_id}")
        if user.role != UserRole.TECHNICIAN:
            raise InvalidArgumentError("Only technicians can update location")
        self._validate_coordinates(latitude, longitude, accuracy)

        now = self._clock()
        allowed, retry_after, previous = self._throttle.acquire(technician_id, now)
        if not allowed:
            DispatchMetrics.location_throttled()
            err = ThrottledError(retry_after)
            logger.warning(
                f"Location report throttled: retry_after={err.retry_after}s",
                extra={"technician_id": technician_id},
            )
            raise err

        location = Location(
            id=str(uuid.uuid4()),
            user_id=technician_id,
            latitude=latitude,
            longitude=longitude,
            accuracy=accuracy,
            timestamp=now,
        )
        try:
            location = await self._locations.save(location)
        except BaseException:
            # Report never stored: free the slot so the next one is not rejected
            self._throttle.release(technician_id, now, previous)
            raise

        DispatchMetrics.location_accepted()
        logger.info(
            f"Location accepted: {mask_coordinates(latitude, longitude)}",
            extra={"technician_id": technician_id},
        )
        if self._live is not None:
            self._live.publish(self._topic, location_payload(location))
        return location

    async def latest_for_technician(self, technician_id: str) -> Location:
        location = await self._locations.latest_for_user(technician_id)
        if location is None:
            raise NotFoundError(f"No location found for user: {technician_id}")
        return location

    async def latest_per_technician(self, since_minutes: int | None = None) -> list[Location]:
        minutes = self._active_window_minutes if since_minutes is None else since_minutes
        since = self._clock() - timedelta(minutes=minutes)
        latest = await self._locations.latest_per_user_since(since)

        result = []
        for location in latest:
            user = await self._users.get(location.user_id)
            if user is not None and user.role == UserRole.TECHNICIAN:
                result.append(location)
        return result

    async def task_locations(self) -> list[TaskLocationView]:
        tasks = await self._tasks.list_by_status(*MAP_STATUSES)
        return [
            TaskLocationView(
                task_id=t.id,
                title=t.title,
                address=t.client_address,
                status=t.status,
                priority=t.priority,
            )
            for t in tasks
        ]

    @staticmethod
    def distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
        return haversine_km(lat1, lon1, lat2, lon2)

    @staticmethod
    def _validate_coordinates(latitude: float, longitude: float, accuracy: float | None) -> None:
        if not -90.0 <= latitude <= 90.0:
            raise InvalidArgumentError("Latitude must be between -90 and 90")
        if not -180.0 <= longitude <= 180.0:
            raise InvalidArgumentError("Longitude must be between -180 and 180")
        if accuracy is not None and accuracy < 0:
            raise InvalidArgumentError("Accuracy must be zero or positive")
