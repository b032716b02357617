"""
Congestion State Store - traffic/{bucketId} in the Realtime Database.

Each bucket holds {congestionLevel, lastUpdated, center}. Writes are
independent per-bucket upserts (last write wins). The decay sweep steps stale
buckets down one level without touching lastUpdated, so a bucket keeps
cooling on every sweep until a fresh report re-stamps it.
"""

from firebase_admin import exceptions
from cityflux.config.firebase import get_rtdb
from cityflux.core.settings import settings
from cityflux.models.traffic import CongestionBucket, CongestionLevel, DecaySummary
from cityflux.models.user import DispatchResult, UserRole
from cityflux.utils.firestore_helpers import now_millis
from cityflux.utils.geo import geo_bucket
from typing import Callable, List, Optional, Tuple
import logging

logger = logging.getLogger(__name__)

TRAFFIC_PATH = "traffic"

HEAVY_TRAFFIC_TITLE = "Heavy traffic ahead. Choose an alternate route."
HEAVY_TRAFFIC_BODY = "Heavy traffic detected nearby."


class CongestionStore:

    def __init__(
        self,
        rtdb=None,
        dispatcher=None,
        precision: Optional[int] = None,
        decay_minutes: Optional[int] = None,
        clock: Callable[[], int] = now_millis
    ):
        self.rtdb = rtdb if rtdb is not None else get_rtdb()
        self._dispatcher = dispatcher
        self.precision = precision if precision is not None else settings.GEO_BUCKET_PRECISION
        self.decay_minutes = decay_minutes if decay_minutes is not None else settings.CONGESTION_DECAY_MINUTES
        self.clock = clock

    @property
    def dispatcher(self):
        if self._dispatcher is None:
            from cityflux.services.notification_dispatcher import get_notification_dispatcher
            self._dispatcher = get_notification_dispatcher()
        return self._dispatcher

    def bucket_id(self, lat: float, lng: float) -> str:
        return geo_bucket(lat, lng, self.precision)

    def _ref(self, bucket_id: str):
        return self.rtdb.child(f"{TRAFFIC_PATH}/{bucket_id}")

    def update_bucket(
        self,
        lat: float,
        lng: float,
        level: CongestionLevel
    ) -> Tuple[str, Optional[DispatchResult]]:
        """
        Upsert the bucket containing (lat, lng) with `level` and a fresh lastUpdated.

        A HIGH level fans out a heavy-traffic alert to Traffic Police and Citizens.
        Retrying re-stamps the bucket and may re-send the alert.

        Returns:
            (bucket_id, dispatch result of the HIGH alert or None)
        """
        level = CongestionLevel(level)
        bucket_id = self.bucket_id(lat, lng)
        self._ref(bucket_id).update({
            "congestionLevel": level.value,
            "lastUpdated": self.clock(),
            "center": {"lat": float(lat), "lng": float(lng)}
        })
        logger.info(f"Traffic bucket {bucket_id} set to {level.value}")

        if level is not CongestionLevel.HIGH:
            return bucket_id, None

        alert = self.dispatcher.notify_roles(
            [UserRole.TRAFFIC_POLICE, UserRole.CITIZEN],
            HEAVY_TRAFFIC_TITLE,
            HEAVY_TRAFFIC_BODY,
            {"type": "congestion", "bucket": bucket_id}
        )
        return bucket_id, alert

    def get_bucket(self, bucket_id: str) -> Optional[CongestionBucket]:
        node = self._ref(bucket_id).get()
        if not isinstance(node, dict):
            return None
        return self._to_bucket(bucket_id, node)

    def list_buckets(self) -> List[CongestionBucket]:
        snapshot = self.rtdb.child(TRAFFIC_PATH).get() or {}
        return [
            self._to_bucket(key, node)
            for key, node in sorted(snapshot.items())
            if isinstance(node, dict)
        ]

    def decay_sweep(self) -> DecaySummary:
        """
        Step every stale bucket down one congestion level.

        A bucket is stale when now - lastUpdated is strictly greater than the
        decay window. Only congestionLevel is written. Staleness is not
        re-checked at write time. A failed write is logged and the sweep
        moves on to the next bucket.
        """
        snapshot = self.rtdb.child(TRAFFIC_PATH).get() or {}
        now = self.clock()
        threshold_ms = self.decay_minutes * 60 * 1000
        summary = DecaySummary(scanned=len(snapshot))

        for key, node in snapshot.items():
            if not isinstance(node, dict):
                continue

            last = node.get("lastUpdated")
            if isinstance(last, bool) or not isinstance(last, (int, float)):
                last = 0
            age_ms = now - last
            if age_ms <= threshold_ms:
                continue

            stored = node.get("congestionLevel")
            new_level = CongestionLevel.parse(stored).decayed()
            if stored == new_level.value:
                # already LOW
                continue

            try:
                self._ref(key).update({"congestionLevel": new_level.value})
            except (exceptions.FirebaseError, ValueError) as e:
                logger.error(f"Failed to decay bucket {key}: {e}")
                summary.failed.append(key)
                continue

            summary.decayed[key] = new_level
            logger.info(f"Decayed {key} to {new_level.value} (age {age_ms / 60000:.1f} min)")

        logger.info(
            f"decayCongestion finished: scanned={summary.scanned} "
            f"decayed={len(summary.decayed)} failed={len(summary.failed)}"
        )
        return summary

    @staticmethod
    def _to_bucket(bucket_id: str, node: dict) -> CongestionBucket:
        center = node.get("center")
        last = node.get("lastUpdated")
        return CongestionBucket(
            bucket_id=bucket_id,
            congestionLevel=CongestionLevel.parse(node.get("congestionLevel")),
            lastUpdated=last if isinstance(last, int) and not isinstance(last, bool) else 0,
            center=center if isinstance(center, dict) and "lat" in center and "lng" in center else None
        )
