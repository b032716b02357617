"""
Parking sync - mirrors parking/{id} (Firestore) into parking_live/{id}
(Realtime Database) for live availability reads.
"""

from cityflux.config.firebase import get_rtdb
from cityflux.models.traffic import ParkingLiveRecord
from cityflux.utils.firestore_helpers import now_millis
from typing import Any, Callable, Dict, Optional
import logging

logger = logging.getLogger(__name__)

PARKING_LIVE_PATH = "parking_live"


def _slot_count(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


class ParkingSyncService:

    def __init__(self, rtdb=None, clock: Callable[[], int] = now_millis):
        self.rtdb = rtdb if rtdb is not None else get_rtdb()
        self.clock = clock

    def _ref(self, parking_id: str):
        return self.rtdb.child(f"{PARKING_LIVE_PATH}/{parking_id}")

    def sync(self, parking_id: str, parking: Optional[Dict[str, Any]]) -> Optional[ParkingLiveRecord]:
        """
        Mirror one durable parking record.

        Args:
            parking_id: parking/{id} document ID
            parking: document data after the write, or None if it was deleted

        Returns:
            The mirrored record, or None when the mirror was deleted.
        """
        if parking is None:
            self._ref(parking_id).delete()
            logger.info(f"Removed parking_live/{parking_id}")
            return None

        total = _slot_count(parking.get("totalSlots"))
        available = _slot_count(parking.get("availableSlots"))
        if available is None:
            # no live count yet: assume every slot is free
            available = total or 0

        record = ParkingLiveRecord(
            parking_id=parking_id,
            availableSlots=available,
            totalSlots=total or 0,
            lastUpdated=self.clock()
        )
        self._ref(parking_id).update(record.model_dump(exclude={"parking_id"}))
        logger.info(f"Synced parking {parking_id} to Realtime DB ({available}/{record.totalSlots})")
        return record
