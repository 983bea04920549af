"""
Input validation for identifiers arriving over HTTP.
"""
import re
from dataclasses import dataclass

SESSION_ID_RE = re.compile(r"^[a-f0-9]{32,64}$")
WALLET_ADDRESS_RE = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")
REFERENCE_ID_RE = re.compile(r"^[a-zA-Z0-9\-_]+$")
REFERENCE_ID_MAX_LENGTH = 50


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    sanitized: str | None = None
    error: str | None = None


def validate_session_id(value) -> ValidationResult:
    if not value or not isinstance(value, str):
        return ValidationResult(False, error="Session ID is required")
    sanitized = value.strip().lower()
    if not SESSION_ID_RE.match(sanitized):
        return ValidationResult(False, error="Invalid session ID format")
    return ValidationResult(True, sanitized=sanitized)


def validate_wallet_address(value) -> ValidationResult:
    if not value or not isinstance(value, str):
        return ValidationResult(False, error="Wallet address is required")
    sanitized = value.strip()
    if not WALLET_ADDRESS_RE.match(sanitized):
        return ValidationResult(False, error="Invalid wallet address format")
    return ValidationResult(True, sanitized=sanitized)


def validate_reference_id(value) -> ValidationResult:
    if not value or not isinstance(value, str):
        return ValidationResult(False, error="Reference ID is required")
    sanitized = value.strip()
    if len(sanitized) > REFERENCE_ID_MAX_LENGTH or not REFERENCE_ID_RE.match(sanitized):
        return ValidationResult(False, error="Invalid reference ID format")
    return ValidationResult(True, sanitized=sanitized)
