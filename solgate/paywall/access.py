"""
Access decision only: evaluate(session, now) -> AccessDecision.
Pure function, no I/O. Paid window wins over trial; a lapsed paid window
falls back to the (usually long gone) trial.
"""
from __future__ import annotations

from datetime import datetime

from solgate.paywall.models import AccessDecision, AccessReason
from solgate.services.sessions.base import SessionRecord

DENIED_UNKNOWN = AccessDecision(granted=False, reason=AccessReason.UNKNOWN)


def evaluate(session: SessionRecord | None, now: datetime) -> AccessDecision:
    """
    Decide access for one session at `now`.

    Order:
    - no session -> unknown
    - paid and now < access_expires_at -> paid_active
    - now < trial_expires_at -> trial_active
    - otherwise -> expired
    """
    if session is None:
        return DENIED_UNKNOWN

    if session.is_paid and session.access_expires_at is not None and now < session.access_expires_at:
        return AccessDecision(
            granted=True,
            reason=AccessReason.PAID_ACTIVE,
            trial_expires_at=session.trial_expires_at,
            access_expires_at=session.access_expires_at,
        )

    if now < session.trial_expires_at:
        return AccessDecision(
            granted=True,
            reason=AccessReason.TRIAL_ACTIVE,
            trial_expires_at=session.trial_expires_at,
            access_expires_at=session.access_expires_at,
        )

    return AccessDecision(
        granted=False,
        reason=AccessReason.EXPIRED,
        trial_expires_at=session.trial_expires_at,
        access_expires_at=session.access_expires_at,
    )


def remaining_trial_seconds(session: SessionRecord, now: datetime) -> int:
    if session.is_paid:
        return 0
    return max(0, int((session.trial_expires_at - now).total_seconds()))


def session_status(session: SessionRecord, now: datetime) -> str:
    """Coarse status for recovery views: paid, trial or expired."""
    reason = evaluate(session, now).reason
    if reason == AccessReason.PAID_ACTIVE:
        return "paid"
    if reason == AccessReason.TRIAL_ACTIVE:
        return "trial"
    return "expired"
