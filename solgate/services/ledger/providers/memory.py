"""
In-process ledger for local runs and tests.
Transfers settle on confirmation; block references are single-use.
"""
import asyncio
import logging
import secrets

import base58
from solders.keypair import Keypair

from solgate.services.ledger.base import (
    ConfirmationStatus,
    LedgerClient,
    LedgerUnavailableError,
    TransferRejectedError,
)

logger = logging.getLogger(__name__)


class InMemoryLedgerClient(LedgerClient):
    """Balances in a dict. Test hooks: fail_addresses, unavailable, hang_confirmations."""

    name = "memory"

    def __init__(self, config: dict | None = None):
        config = config or {}
        self.fee = config.get("fee", 5000)
        self.read_only = config.get("read_only", False)
        self.balances: dict[str, int] = {}
        self.transfers: list[dict] = []
        self.fail_addresses: set[str] = set()
        self.unavailable = False
        self.hang_confirmations = False
        self._issued_refs: set[str] = set()
        self._used_refs: set[str] = set()
        self._pending: dict[str, dict] = {}

    @property
    def can_submit(self) -> bool:
        return not self.read_only

    def credit(self, address: str, amount: int) -> None:
        self.balances[address] = self.balances.get(address, 0) + amount

    async def get_balance(self, address: str) -> int:
        self._check_available(address)
        return self.balances.get(address, 0)

    async def get_recent_block_reference(self) -> str:
        if self.unavailable:
            raise LedgerUnavailableError("ledger offline")
        ref = base58.b58encode(secrets.token_bytes(32)).decode("ascii")
        self._issued_refs.add(ref)
        return ref

    async def submit_transfer(
        self,
        signer: Keypair,
        destination: str,
        amount: int,
        block_reference: str,
    ) -> str:
        source = str(signer.pubkey())
        self._check_available(source)
        if amount <= 0:
            raise TransferRejectedError("Transfer amount must be positive")
        if block_reference not in self._issued_refs or block_reference in self._used_refs:
            raise TransferRejectedError("Block reference unknown or already used")
        if self.balances.get(source, 0) < amount + self.fee:
            raise TransferRejectedError("Insufficient funds for transfer and fee")
        self._used_refs.add(block_reference)
        signature = base58.b58encode(secrets.token_bytes(64)).decode("ascii")
        self._pending[signature] = {"source": source, "destination": destination, "amount": amount}
        return signature

    async def await_confirmation(self, signature: str) -> ConfirmationStatus:
        if self.hang_confirmations:
            await asyncio.Event().wait()
        transfer = self._pending.pop(signature, None)
        if transfer is None:
            return ConfirmationStatus(signature=signature, confirmed=False, error="unknown signature")
        source, destination, amount = transfer["source"], transfer["destination"], transfer["amount"]
        if self.balances.get(source, 0) < amount + self.fee:
            return ConfirmationStatus(signature=signature, confirmed=False, error="insufficient funds")
        self.balances[source] -= amount + self.fee
        self.credit(destination, amount)
        self.transfers.append({**transfer, "signature": signature})
        return ConfirmationStatus(signature=signature, confirmed=True)

    def _check_available(self, address: str) -> None:
        if self.unavailable or address in self.fail_addresses:
            raise LedgerUnavailableError(f"ledger unavailable for {address}")
