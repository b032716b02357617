"""
User roles and push delivery results.
"""

from pydantic import BaseModel, Field
from typing import Optional
from enum import Enum


class UserRole(str, Enum):
    CITIZEN = "Citizen"
    TRAFFIC_POLICE = "Traffic Police"
    ADMIN = "Admin"


class DispatchResult(BaseModel):
    """Counts for one notification fan-out."""
    success: int = 0
    failure: int = 0
    pruned: int = Field(0, description="Stale tokens removed from user records")


class DirectSendResult(BaseModel):
    """Outcome of a single-target push."""
    user_id: str
    sent: bool = False
    pruned: bool = False
    message_id: Optional[str] = None
    reason: Optional[str] = None
