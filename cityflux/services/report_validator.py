"""
Report Validator - first pass over every newly created report.

RULES (all checked, none short-circuit):
1. userId present
2. userId is a plain document id that resolves to users/{userId}
3. type is one of the known report types
4. imageUrl present
5. latitude/longitude numeric
6. latitude in [-90, 90], longitude in [-180, 180]

A rejected report is a normal outcome, not an error: the reasons are written
to the report and the handler stops.
"""

from firebase_admin import firestore
from cityflux.config.firebase import get_db
from cityflux.models.report import ReportStatus, ValidationResult, VALID_REPORT_TYPES
from cityflux.utils.firestore_helpers import is_valid_document_id
from cityflux.utils.geo import coordinates_in_range, to_coordinate
from typing import Dict, List
import logging

logger = logging.getLogger(__name__)


class ReportValidator:

    def __init__(self, db=None):
        self.db = db if db is not None else get_db()

    def collect_errors(self, report: Dict) -> List[str]:
        """Return every violation found in `report`, in check order."""
        errors = []

        user_id = report.get("userId")
        if not user_id:
            errors.append("missing userId")
        elif not self._user_exists(user_id):
            errors.append("userId not found")

        report_type = report.get("type")
        if not isinstance(report_type, str) or report_type not in VALID_REPORT_TYPES:
            errors.append("invalid type")

        if not report.get("imageUrl"):
            errors.append("missing imageUrl")

        lat = to_coordinate(report.get("latitude"))
        lng = to_coordinate(report.get("longitude"))
        if lat is None or lng is None:
            errors.append("invalid latitude/longitude")
        elif not coordinates_in_range(lat, lng):
            errors.append("coords out of range")

        return errors

    def _user_exists(self, user_id) -> bool:
        # ids that cannot name a document can never resolve to a user
        if not is_valid_document_id(user_id):
            return False
        return self.db.collection("users").document(user_id).get().exists

    def validate(self, report_id: str, report: Dict) -> ValidationResult:
        """
        Validate a report and write the outcome back to reports/{report_id}.

        Exactly one update is issued. Re-running with the same input writes the
        same status and reasons again.
        """
        errors = self.collect_errors(report)
        report_ref = self.db.collection("reports").document(report_id)

        if errors:
            report_ref.update({
                "status": ReportStatus.REJECTED.value,
                "validationErrors": errors,
                "validatedAt": firestore.SERVER_TIMESTAMP
            })
            logger.warning(f"Report {report_id} rejected: {', '.join(errors)}")
            return ValidationResult(
                report_id=report_id,
                is_valid=False,
                status=ReportStatus.REJECTED,
                errors=errors
            )

        report_ref.update({
            "status": ReportStatus.PENDING.value,
            "validatedAt": firestore.SERVER_TIMESTAMP
        })
        logger.info(f"Report {report_id} validated")
        return ValidationResult(report_id=report_id, is_valid=True, status=ReportStatus.PENDING)
