"""
Solana JSON-RPC ledger client (solana-py AsyncClient + solders transactions).
"""
import asyncio
import logging
import time

import httpx
from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment
from solana.rpc.core import RPCException
from solana.rpc.types import TxOpts
from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.system_program import TransferParams, transfer
from solders.transaction import Transaction
from solders.transaction_status import TransactionConfirmationStatus

from solgate.services.ledger.base import (
    ConfirmationStatus,
    LedgerClient,
    LedgerError,
    LedgerUnavailableError,
    TransferRejectedError,
)
from solgate.utils.metrics import ledger_request_duration_seconds, ledger_requests_total

logger = logging.getLogger(__name__)

_TRANSPORT_ERRORS = (SolanaRpcException, httpx.HTTPError, OSError)
_CONFIRMED = (TransactionConfirmationStatus.Confirmed, TransactionConfirmationStatus.Finalized)


class SolanaLedgerClient(LedgerClient):
    """Ledger client against a Solana RPC endpoint."""

    name = "solana"

    def __init__(self, config: dict):
        self.rpc_url = config.get("rpc_url", "https://api.mainnet-beta.solana.com")
        self.commitment = Commitment(config.get("commitment", "confirmed"))
        self.timeout = config.get("timeout", 10.0)
        self.poll_interval = config.get("poll_interval", 0.5)
        self._client = AsyncClient(self.rpc_url, commitment=self.commitment, timeout=self.timeout)

    async def get_balance(self, address: str) -> int:
        try:
            pubkey = Pubkey.from_string(address)
        except ValueError as e:
            raise LedgerError(f"Invalid address: {address}") from e
        resp = await self._call("get_balance", self._client.get_balance(pubkey, commitment=self.commitment))
        return int(resp.value)

    async def get_recent_block_reference(self) -> str:
        resp = await self._call("get_latest_blockhash", self._client.get_latest_blockhash(self.commitment))
        return str(resp.value.blockhash)

    async def submit_transfer(
        self,
        signer: Keypair,
        destination: str,
        amount: int,
        block_reference: str,
    ) -> str:
        if amount <= 0:
            raise TransferRejectedError("Transfer amount must be positive")
        try:
            to_pubkey = Pubkey.from_string(destination)
            blockhash = Hash.from_string(block_reference)
        except ValueError as e:
            raise TransferRejectedError("Invalid destination or block reference") from e

        instruction = transfer(
            TransferParams(from_pubkey=signer.pubkey(), to_pubkey=to_pubkey, lamports=amount)
        )
        message = Message([instruction], signer.pubkey())
        transaction = Transaction([signer], message, blockhash)

        resp = await self._call(
            "send_raw_transaction",
            self._client.send_raw_transaction(
                bytes(transaction),
                opts=TxOpts(skip_preflight=False, preflight_commitment=self.commitment),
            ),
        )
        signature = str(resp.value)
        logger.info(
            "ledger_transfer_submitted",
            extra={"tx_ref": signature, "address": str(signer.pubkey()), "amount": amount},
        )
        return signature

    async def await_confirmation(self, signature: str) -> ConfirmationStatus:
        sig = Signature.from_string(signature)
        while True:
            resp = await self._call("get_signature_statuses", self._client.get_signature_statuses([sig]))
            status = resp.value[0] if resp.value else None
            if status is not None:
                if status.err is not None:
                    return ConfirmationStatus(signature=signature, confirmed=False, error=str(status.err))
                if status.confirmation_status in _CONFIRMED:
                    return ConfirmationStatus(signature=signature, confirmed=True)
            await asyncio.sleep(self.poll_interval)

    async def close(self) -> None:
        await self._client.close()

    async def _call(self, method: str, coro):
        start = time.perf_counter()
        status = "ok"
        try:
            return await coro
        except RPCException as e:
            status = "rpc_error"
            error_cls = TransferRejectedError if method == "send_raw_transaction" else LedgerError
            raise error_cls(f"{method} rejected: {e}", {"method": method}) from e
        except _TRANSPORT_ERRORS as e:
            status = "unavailable"
            raise LedgerUnavailableError(f"{method} failed: {e}", {"method": method}) from e
        finally:
            ledger_requests_total.labels(method=method, status=status).inc()
            ledger_request_duration_seconds.labels(method=method).observe(time.perf_counter() - start)
