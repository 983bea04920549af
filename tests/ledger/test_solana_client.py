"""SolanaLedgerClient against a mocked AsyncClient (no network)."""
import asyncio
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from solana.exceptions import SolanaRpcException
from solders.hash import Hash
from solders.keypair import Keypair
from solders.signature import Signature
from solders.transaction_status import TransactionConfirmationStatus

from solgate.services.ledger.base import LedgerError, LedgerUnavailableError, TransferRejectedError
from solgate.services.ledger.providers.solana import SolanaLedgerClient


@pytest.fixture
def client():
    ledger = SolanaLedgerClient({"rpc_url": "http://localhost:8899", "poll_interval": 0})
    ledger._client = MagicMock()
    return ledger


def test_get_balance(client):
    client._client.get_balance = AsyncMock(return_value=MagicMock(value=1_000_000))
    address = str(Keypair().pubkey())
    assert asyncio.run(client.get_balance(address)) == 1_000_000


def test_invalid_address(client):
    with pytest.raises(LedgerError):
        asyncio.run(client.get_balance("not-an-address"))


def test_transport_error_is_unavailable(client):
    client._client.get_balance = AsyncMock(side_effect=httpx.ConnectError("refused"))
    with pytest.raises(LedgerUnavailableError):
        asyncio.run(client.get_balance(str(Keypair().pubkey())))


def test_rpc_wrapper_error_is_unavailable(client):
    client._client.get_latest_blockhash = AsyncMock(
        side_effect=SolanaRpcException(httpx.ConnectError("refused"), None, None, object())
    )
    with pytest.raises(LedgerUnavailableError):
        asyncio.run(client.get_recent_block_reference())


def test_submit_transfer_serializes_signed_transaction(client):
    blockhash = Hash.default()
    signature = Signature.default()
    client._client.send_raw_transaction = AsyncMock(return_value=MagicMock(value=signature))
    signer = Keypair()

    result = asyncio.run(client.submit_transfer(signer, str(Keypair().pubkey()), 995_000, str(blockhash)))

    assert result == str(signature)
    raw = client._client.send_raw_transaction.await_args.args[0]
    assert isinstance(raw, bytes)


def test_submit_rejects_non_positive_amount(client):
    with pytest.raises(TransferRejectedError):
        asyncio.run(client.submit_transfer(Keypair(), str(Keypair().pubkey()), 0, str(Hash.default())))


def test_await_confirmation_polls_until_confirmed(client):
    pending = MagicMock(value=[None])
    confirmed = MagicMock(
        value=[MagicMock(err=None, confirmation_status=TransactionConfirmationStatus.Confirmed)]
    )
    client._client.get_signature_statuses = AsyncMock(side_effect=[pending, confirmed])

    status = asyncio.run(client.await_confirmation(str(Signature.default())))

    assert status.confirmed
    assert client._client.get_signature_statuses.await_count == 2


def test_await_confirmation_reports_error(client):
    failed = MagicMock(value=[MagicMock(err="InstructionError", confirmation_status=None)])
    client._client.get_signature_statuses = AsyncMock(return_value=failed)
    status = asyncio.run(client.await_confirmation(str(Signature.default())))
    assert not status.confirmed
    assert status.error == "InstructionError"
