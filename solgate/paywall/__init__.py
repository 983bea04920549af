"""
Paywall: access decision for sessions (trial / paid / expired).
"""
from solgate.paywall.access import evaluate, remaining_trial_seconds, session_status
from solgate.paywall.models import AccessDecision, AccessReason

__all__ = [
    "evaluate",
    "remaining_trial_seconds",
    "session_status",
    "AccessDecision",
    "AccessReason",
]
