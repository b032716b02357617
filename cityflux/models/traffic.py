"""
Models for the Realtime Database mirrors owned by the backend:
traffic/{bucketId} and parking_live/{parkingId}.
"""

from pydantic import BaseModel, Field
from typing import Dict, List, Optional
from enum import Enum


class CongestionLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"

    def decayed(self) -> "CongestionLevel":
        """One rank lower; LOW stays LOW."""
        if self is CongestionLevel.HIGH:
            return CongestionLevel.MEDIUM
        return CongestionLevel.LOW

    @classmethod
    def parse(cls, value: Optional[str]) -> "CongestionLevel":
        """Unknown or missing stored values are treated as LOW."""
        try:
            return cls(value)
        except ValueError:
            return cls.LOW


class Center(BaseModel):
    lat: float
    lng: float


class CongestionBucket(BaseModel):
    bucket_id: str = Field(..., description="Rounded-coordinate grid cell id")
    congestionLevel: CongestionLevel = CongestionLevel.LOW
    lastUpdated: int = Field(0, description="Epoch milliseconds of the last classification")
    center: Optional[Center] = None


class ParkingLiveRecord(BaseModel):
    parking_id: str
    availableSlots: int = 0
    totalSlots: int = 0
    lastUpdated: int = Field(0, description="Epoch milliseconds of the last sync")


class DecaySummary(BaseModel):
    """Result of one decay sweep over all buckets."""
    scanned: int = 0
    decayed: Dict[str, CongestionLevel] = Field(default_factory=dict, description="bucket id -> new level")
    failed: List[str] = Field(default_factory=list, description="bucket ids whose write failed")
