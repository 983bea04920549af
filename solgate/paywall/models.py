"""
DTO paywall: AccessReason, AccessDecision.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class AccessReason(str, Enum):
    PAID_ACTIVE = "paid_active"
    TRIAL_ACTIVE = "trial_active"
    EXPIRED = "expired"
    UNKNOWN = "unknown"


class AccessDecision(BaseModel):
    """Result of evaluate: whether the session may use the service right now, and why."""

    granted: bool = Field(..., description="True = session has trial or paid access at `now`")
    reason: AccessReason
    trial_expires_at: datetime | None = Field(
        default=None,
        description="End of the free trial (absent for unknown sessions)",
    )
    access_expires_at: datetime | None = Field(
        default=None,
        description="End of the paid window; None while unpaid",
    )

    model_config = {"frozen": True}

    def to_response(self) -> dict:
        return {
            "hasAccess": self.granted,
            "reason": self.reason.value,
            "trialExpiresAt": self.trial_expires_at.isoformat() if self.trial_expires_at else None,
            "accessExpiresAt": self.access_expires_at.isoformat() if self.access_expires_at else None,
        }
