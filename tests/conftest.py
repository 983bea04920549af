from datetime import datetime, timedelta, timezone

import pytest
from solders.keypair import Keypair

from solgate.services.ledger.providers.memory import InMemoryLedgerClient
from solgate.services.sessions.store import InMemorySessionStore
from solgate.services.wallets.custodian import WalletCustodian


class FakeClock:
    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemorySessionStore()


@pytest.fixture
def ledger():
    return InMemoryLedgerClient({"fee": 5000})


@pytest.fixture
def custodian():
    return WalletCustodian()


@pytest.fixture
def operator_address():
    return str(Keypair().pubkey())
