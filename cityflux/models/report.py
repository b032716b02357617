"""
Report enumerations and validation result model.
Reports themselves are written by the mobile client; the backend reads them as
plain Firestore dicts and only writes the validation fields.
"""

from pydantic import BaseModel, Field
from typing import List
from enum import Enum


class ReportType(str, Enum):
    ILLEGAL_PARKING = "illegal_parking"
    ACCIDENT = "accident"
    HAWKER = "hawker"
    TRAFFIC_VIOLATION = "traffic_violation"
    ROAD_DAMAGE = "road_damage"
    OTHER = "other"


class ReportStatus(str, Enum):
    """
    Report lifecycle as seen by the app.

    PENDING / REJECTED are written by validation; the rest by operators.
    """
    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    RESOLVED = "Resolved"
    REJECTED = "Rejected"


VALID_REPORT_TYPES = frozenset(t.value for t in ReportType)


# Human-friendly summary title per report type, sent to Traffic Police
REPORT_ALERTS = {
    ReportType.ILLEGAL_PARKING.value: "🅿️ Illegal parking reported in your area",
    ReportType.ACCIDENT.value: "🚨 Accident reported in your area",
    ReportType.HAWKER.value: "🛒 Hawker/street vendor issue reported",
    ReportType.TRAFFIC_VIOLATION.value: "🚦 Traffic violation reported nearby",
    ReportType.ROAD_DAMAGE.value: "🚧 Road damage reported in your area",
    ReportType.OTHER.value: "📢 New civic issue reported",
}


class ValidationResult(BaseModel):
    """Outcome of validating a freshly created report."""
    report_id: str = Field(..., description="Firestore document ID")
    is_valid: bool
    status: ReportStatus
    errors: List[str] = Field(default_factory=list, description="All violations found, in check order")
