"""
Base classes and types for ledger clients.
Used by factory and all providers (solana, memory).
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from solders.keypair import Keypair


class LedgerError(Exception):
    """Ledger call failed; detail holds provider fields for logging."""
    def __init__(self, message: str, detail: dict[str, Any] | None = None):
        super().__init__(message)
        self.detail = detail or {}


class LedgerUnavailableError(LedgerError):
    """Network / RPC endpoint unreachable or returned a server error."""


class LedgerTimeoutError(LedgerError):
    """Transfer was not confirmed in time."""


class TransferRejectedError(LedgerError):
    """Ledger refused the transfer (stale block reference, insufficient funds, ...)."""


@dataclass(frozen=True)
class ConfirmationStatus:
    """Outcome of await_confirmation."""
    signature: str
    confirmed: bool
    error: str | None = None


class LedgerClient(ABC):
    """Black-box access to the ledger: balance, block reference, submit, confirm."""

    name: str = "base"

    @property
    def can_submit(self) -> bool:
        """False for read-only clients; sweeps refuse to run against them."""
        return True

    @abstractmethod
    async def get_balance(self, address: str) -> int:
        """Balance of `address` in base units."""
        pass

    @abstractmethod
    async def get_recent_block_reference(self) -> str:
        """Fresh block reference; a transfer built on it expires after a short window."""
        pass

    @abstractmethod
    async def submit_transfer(
        self,
        signer: Keypair,
        destination: str,
        amount: int,
        block_reference: str,
    ) -> str:
        """Sign and submit a native transfer. Returns the transaction signature."""
        pass

    @abstractmethod
    async def await_confirmation(self, signature: str) -> ConfirmationStatus:
        """
        Wait until the transaction is confirmed or definitively failed.
        Callers bound this with their own timeout.
        """
        pass

    async def ping(self) -> None:
        """Readiness probe. Raises LedgerError when unreachable."""
        await self.get_recent_block_reference()

    async def close(self) -> None:
        pass
