"""
Event payloads delivered to the handlers and the outcomes they return.

Each event mirrors what a database trigger would hand over: the document id
plus the before/after snapshots as plain dicts.
"""

from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional

from cityflux.models.traffic import CongestionLevel
from cityflux.models.user import DirectSendResult, DispatchResult


class ReportCreatedEvent(BaseModel):
    report_id: str = Field(..., min_length=1)
    report: Dict[str, Any] = Field(default_factory=dict)


class ReportUpdatedEvent(BaseModel):
    report_id: str = Field(..., min_length=1)
    before: Dict[str, Any] = Field(default_factory=dict)
    after: Dict[str, Any] = Field(default_factory=dict)


class ParkingChangeEvent(BaseModel):
    """Used both for parking/{id} writes and parking_live/{id} writes. after=None means deleted."""
    parking_id: str = Field(..., min_length=1)
    before: Optional[Dict[str, Any]] = None
    after: Optional[Dict[str, Any]] = None


class HandlerOutcome(BaseModel):
    handler: str
    status: str = Field(..., description="processed | rejected | skipped")
    detail: Optional[str] = None
    bucket_id: Optional[str] = None
    congestion_level: Optional[CongestionLevel] = None
    nearby_count: Optional[int] = None
    validation_errors: List[str] = Field(default_factory=list)
    notifications: List[DispatchResult] = Field(default_factory=list)
    direct: Optional[DirectSendResult] = None
