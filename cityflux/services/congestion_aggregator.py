"""
Recency/proximity aggregation of reports into a congestion level.

Counts reports created in the last RECENT_WINDOW_MINUTES whose haversine
distance to a point is within PROXIMITY_RADIUS_METERS (boundary inclusive).
The report that triggered the count is part of the window, so a lone report
counts as 1.

NOTE: this is a full scan of the time window, not a spatial index query.
"""

from cityflux.config.firebase import get_db
from cityflux.core.settings import settings
from cityflux.models.traffic import CongestionLevel
from cityflux.utils.firestore_helpers import where_filter
from cityflux.utils.geo import haversine_meters, to_coordinate
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional
import logging

logger = logging.getLogger(__name__)


def classify_congestion(count: int, high_threshold: int, medium_threshold: int) -> CongestionLevel:
    if count >= high_threshold:
        return CongestionLevel.HIGH
    if count >= medium_threshold:
        return CongestionLevel.MEDIUM
    return CongestionLevel.LOW


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProximityAggregator:

    def __init__(
        self,
        db=None,
        window_minutes: Optional[int] = None,
        radius_meters: Optional[float] = None,
        high_threshold: Optional[int] = None,
        medium_threshold: Optional[int] = None,
        clock: Callable[[], datetime] = _utcnow
    ):
        self.db = db if db is not None else get_db()
        self.window_minutes = window_minutes if window_minutes is not None else settings.RECENT_WINDOW_MINUTES
        self.radius_meters = radius_meters if radius_meters is not None else settings.PROXIMITY_RADIUS_METERS
        self.high_threshold = high_threshold if high_threshold is not None else settings.CLUSTER_THRESHOLD_HIGH
        self.medium_threshold = medium_threshold if medium_threshold is not None else settings.CLUSTER_THRESHOLD_MEDIUM
        self.clock = clock

    def count_recent_nearby(
        self,
        lat: float,
        lng: float,
        window_minutes: Optional[int] = None,
        radius_meters: Optional[float] = None
    ) -> int:
        """
        Count reports created within the window and within the radius of (lat, lng).

        Reports with missing or non-numeric coordinates are ignored.
        """
        window = window_minutes if window_minutes is not None else self.window_minutes
        radius = radius_meters if radius_meters is not None else self.radius_meters
        cutoff = self.clock() - timedelta(minutes=window)

        query = where_filter(self.db.collection("reports"), "timestamp", ">=", cutoff)

        count = 0
        scanned = 0
        for doc in query.stream():
            scanned += 1
            data = doc.to_dict() or {}
            r_lat = to_coordinate(data.get("latitude"))
            r_lng = to_coordinate(data.get("longitude"))
            if r_lat is None or r_lng is None:
                continue
            if haversine_meters(lat, lng, r_lat, r_lng) <= radius:
                count += 1

        logger.debug(f"{count}/{scanned} recent reports within {radius}m of ({lat}, {lng})")
        return count

    def classify(self, count: int) -> CongestionLevel:
        return classify_congestion(count, self.high_threshold, self.medium_threshold)
