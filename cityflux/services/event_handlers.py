"""
Event handlers - the composition root of the alerting pipeline.

Each handler reacts to exactly one event and is safe to re-run:
- on_report_created: validate -> classify congestion -> alerts
- on_report_status_changed: notify the report's author
- on_parking_occupancy_changed: parking full -> HIGH bucket + alert
- on_parking_written: mirror durable parking into the live store
- run_decay_sweep: scheduled cooling of stale buckets

Errors from Firestore, the Realtime Database or FCM are logged and re-raised
so the delivering platform retries the event. Rejected reports and missing
referenced records end the handler normally.
"""

from cityflux.config.firebase import get_db
from cityflux.models.events import HandlerOutcome, ParkingChangeEvent, ReportCreatedEvent, ReportUpdatedEvent
from cityflux.models.report import REPORT_ALERTS, ReportStatus, ReportType
from cityflux.models.traffic import CongestionLevel, DecaySummary
from cityflux.models.user import UserRole
from cityflux.services.congestion_aggregator import ProximityAggregator
from cityflux.services.congestion_store import CongestionStore
from cityflux.services.notification_dispatcher import NotificationDispatcher
from cityflux.services.parking_sync import ParkingSyncService
from cityflux.services.report_validator import ReportValidator
from cityflux.utils.geo import extract_location, to_coordinate
import logging

logger = logging.getLogger(__name__)


STATUS_ICONS = {
    ReportStatus.RESOLVED.value: "✅",
    ReportStatus.IN_PROGRESS.value: "🔄",
}
DEFAULT_STATUS_ICON = "📋"

ACCIDENT_TITLE = "Accident reported nearby. Slow down."
PARKING_FULL_BODY = "Parking slots are now 0. Please plan alternate parking."


class EventHandlers:
    """
    Holds the collaborators shared by all handlers.

    Every collaborator can be injected; anything omitted is built on the
    default Firebase app.
    """

    def __init__(
        self,
        db=None,
        dispatcher: NotificationDispatcher = None,
        validator: ReportValidator = None,
        aggregator: ProximityAggregator = None,
        congestion: CongestionStore = None,
        parking_sync: ParkingSyncService = None
    ):
        self.db = db if db is not None else get_db()
        self.dispatcher = dispatcher if dispatcher is not None else NotificationDispatcher(db=self.db)
        self.validator = validator if validator is not None else ReportValidator(db=self.db)
        self.aggregator = aggregator if aggregator is not None else ProximityAggregator(db=self.db)
        self.congestion = congestion if congestion is not None else CongestionStore(dispatcher=self.dispatcher)
        self.parking_sync = parking_sync if parking_sync is not None else ParkingSyncService()

    def on_report_created(self, event: ReportCreatedEvent) -> HandlerOutcome:
        report_id = event.report_id
        report = event.report
        logger.info(f"onNewReport start: {report_id}")

        try:
            validation = self.validator.validate(report_id, report)
            if not validation.is_valid:
                return HandlerOutcome(
                    handler="on_report_created",
                    status="rejected",
                    validation_errors=validation.errors
                )

            outcome = HandlerOutcome(handler="on_report_created", status="processed")

            lat = to_coordinate(report.get("latitude"))
            lng = to_coordinate(report.get("longitude"))
            if lat is not None and lng is not None:
                count = self.aggregator.count_recent_nearby(lat, lng)
                level = self.aggregator.classify(count)
                bucket_id, alert = self.congestion.update_bucket(lat, lng, level)
                outcome.nearby_count = count
                outcome.congestion_level = level
                outcome.bucket_id = bucket_id
                if alert is not None:
                    outcome.notifications.append(alert)

            report_type = report.get("type") or ReportType.OTHER.value
            body = report.get("title") or report.get("description")

            if report_type == ReportType.ACCIDENT.value:
                outcome.notifications.append(self.dispatcher.notify_roles(
                    [UserRole.TRAFFIC_POLICE, UserRole.CITIZEN],
                    ACCIDENT_TITLE,
                    body or "Accident reported in your area.",
                    {"type": ReportType.ACCIDENT.value, "reportId": report_id}
                ))

            summary_title = REPORT_ALERTS.get(report_type, REPORT_ALERTS[ReportType.OTHER.value])
            outcome.notifications.append(self.dispatcher.notify_roles(
                [UserRole.TRAFFIC_POLICE],
                summary_title,
                body or "New report filed.",
                {"type": report_type, "reportId": report_id}
            ))

            return outcome

        except Exception:
            logger.error(f"Error in onNewReport for {report_id}", exc_info=True)
            raise

    def on_report_status_changed(self, event: ReportUpdatedEvent) -> HandlerOutcome:
        before_status = event.before.get("status")
        after_status = event.after.get("status")

        if before_status == after_status:
            return HandlerOutcome(handler="on_report_status_changed", status="skipped", detail="status unchanged")
        if not after_status:
            return HandlerOutcome(handler="on_report_status_changed", status="skipped", detail="status removed")

        user_id = event.after.get("userId")
        if not user_id:
            logger.warning(f"Report {event.report_id} has no userId, cannot notify")
            return HandlerOutcome(handler="on_report_status_changed", status="skipped", detail="missing userId")

        icon = STATUS_ICONS.get(after_status, DEFAULT_STATUS_ICON)
        title = event.after.get("title") or "Untitled"

        try:
            result = self.dispatcher.send_to_user(
                str(user_id),
                f"{icon} Report Status Updated",
                f'Your report "{title}" is now: {after_status}',
                {
                    "type": "status_update",
                    "reportId": event.report_id,
                    "newStatus": after_status,
                    "click_action": "OPEN_REPORT",
                }
            )
        except Exception:
            logger.error(f"Error sending status notification for report {event.report_id}", exc_info=True)
            raise

        return HandlerOutcome(
            handler="on_report_status_changed",
            status="processed" if result.sent else "skipped",
            detail=result.reason,
            direct=result
        )

    def on_parking_occupancy_changed(self, event: ParkingChangeEvent) -> HandlerOutcome:
        parking_id = event.parking_id
        after = event.after or {}
        available = after.get("availableSlots")
        logger.info(f"parking_live {parking_id} changed: availableSlots={available}")

        if isinstance(available, bool) or not isinstance(available, (int, float)) or available != 0:
            return HandlerOutcome(handler="on_parking_occupancy_changed", status="skipped", detail="slots available")

        try:
            parking_doc = self.db.collection("parking").document(parking_id).get()
            if not parking_doc.exists:
                logger.warning(f"Parking {parking_id} not found")
                return HandlerOutcome(
                    handler="on_parking_occupancy_changed", status="skipped", detail="parking not found"
                )

            parking = parking_doc.to_dict() or {}
            location = extract_location(parking.get("location"))
            if location is None:
                logger.warning(f"Parking {parking_id} has no usable location")
                return HandlerOutcome(
                    handler="on_parking_occupancy_changed", status="skipped", detail="parking has no location"
                )

            lat, lng = location
            bucket_id, alert = self.congestion.update_bucket(lat, lng, CongestionLevel.HIGH)
            outcome = HandlerOutcome(
                handler="on_parking_occupancy_changed",
                status="processed",
                bucket_id=bucket_id,
                congestion_level=CongestionLevel.HIGH
            )
            if alert is not None:
                outcome.notifications.append(alert)

            outcome.notifications.append(self.dispatcher.notify_roles(
                [UserRole.CITIZEN, UserRole.TRAFFIC_POLICE],
                f"Parking full near {parking.get('address') or 'this location'}.",
                PARKING_FULL_BODY,
                {"type": "parking_full", "parkingId": parking_id}
            ))
            return outcome

        except Exception:
            logger.error(f"Error in onParkingLiveChange for {parking_id}", exc_info=True)
            raise

    def on_parking_written(self, event: ParkingChangeEvent) -> HandlerOutcome:
        try:
            record = self.parking_sync.sync(event.parking_id, event.after)
        except Exception:
            logger.error(f"Error syncing parking {event.parking_id} to RTDB", exc_info=True)
            raise

        return HandlerOutcome(
            handler="on_parking_written",
            status="processed",
            detail="mirror deleted" if record is None else f"{record.availableSlots}/{record.totalSlots} available"
        )

    def run_decay_sweep(self) -> DecaySummary:
        logger.info("decayCongestion start")
        return self.congestion.decay_sweep()


# Global handler set (singleton pattern)
_event_handlers = None


def get_event_handlers() -> EventHandlers:
    """
    Get or create the EventHandlers singleton bound to the default Firebase app.
    """
    global _event_handlers
    if _event_handlers is None:
        _event_handlers = EventHandlers()
    return _event_handlers
