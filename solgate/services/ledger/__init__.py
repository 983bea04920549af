"""
Ledger access with pluggable backends (solana RPC, in-memory).
"""
from .base import (
    ConfirmationStatus,
    LedgerClient,
    LedgerError,
    LedgerTimeoutError,
    LedgerUnavailableError,
    TransferRejectedError,
)
from .factory import LedgerClientFactory

__all__ = [
    "ConfirmationStatus",
    "LedgerClient",
    "LedgerError",
    "LedgerTimeoutError",
    "LedgerUnavailableError",
    "TransferRejectedError",
    "LedgerClientFactory",
]
