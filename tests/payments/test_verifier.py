"""Tests for PaymentVerifier: commit, idempotence and resolution order."""
import asyncio
import threading
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from solgate.core.errors import NotFoundError
from solgate.paywall import AccessReason
from solgate.services.payments.service import (
    INSUFFICIENT_AMOUNT,
    LEDGER_UNAVAILABLE,
    NOT_FOUND,
    INVALID_AMOUNT,
    REFERENCE_REUSED,
    PaymentVerifier,
)
from solgate.services.payments.webhooks import PaymentNotification
from solgate.services.sessions.service import SessionService

REQUIRED = 900_000


@pytest.fixture
def sessions(store, custodian, clock):
    return SessionService(store, custodian, trial_duration=timedelta(minutes=3), clock=clock)


@pytest.fixture
def on_commit():
    return MagicMock()


@pytest.fixture
def verifier(store, ledger, clock, on_commit):
    return PaymentVerifier(
        store,
        ledger,
        required_amount=REQUIRED,
        grant_duration=timedelta(hours=1),
        confirm_on_ledger=True,
        on_commit=on_commit,
        clock=clock,
    )


def _funded_session(sessions, ledger, amount=1_000_000):
    session = sessions.create_session()
    ledger.credit(session.custodial_address, amount)
    return session


class TestCommit:
    def test_payment_commits_and_triggers_sweep(self, verifier, sessions, ledger, store, clock, on_commit):
        session = _funded_session(sessions, ledger)
        clock.advance(seconds=60)

        result = asyncio.run(verifier.verify_and_commit(session.session_id, "sig-1", 1_000_000))

        assert result.committed and not result.duplicate
        stored = store.get(session.session_id)
        assert stored.is_paid
        assert stored.amount_received == 1_000_000
        assert stored.payment_tx_ref == "sig-1"
        assert stored.payment_received_at == clock.now
        assert stored.access_expires_at == clock.now + timedelta(hours=1)
        on_commit.assert_called_once_with(session.session_id)

    def test_repeat_notification_is_noop(self, verifier, sessions, ledger, store, on_commit):
        session = _funded_session(sessions, ledger)
        asyncio.run(verifier.verify_and_commit(session.session_id, "sig-1", 1_000_000))
        version = store.get(session.session_id).version

        again = asyncio.run(verifier.verify_and_commit(session.session_id, "sig-1", 1_000_000))
        other_ref = asyncio.run(verifier.verify_and_commit(session.session_id, "sig-2", 2_000_000))

        assert again.committed and again.duplicate
        assert other_ref.committed and other_ref.duplicate
        assert store.get(session.session_id).version == version
        assert store.get(session.session_id).payment_tx_ref == "sig-1"
        assert on_commit.call_count == 1

    def test_callback_failure_does_not_undo_commit(self, verifier, sessions, ledger, store, on_commit):
        on_commit.side_effect = RuntimeError("no loop")
        session = _funded_session(sessions, ledger)
        result = asyncio.run(verifier.verify_and_commit(session.session_id, "sig-1", 1_000_000))
        assert result.committed
        assert store.get(session.session_id).is_paid


class TestRejections:
    def test_insufficient_amount_leaves_session_untouched(self, verifier, sessions, ledger, store, clock, on_commit):
        session = _funded_session(sessions, ledger, amount=500_000)
        result = asyncio.run(verifier.verify_and_commit(session.session_id, "sig-1", 500_000))

        assert not result.committed
        assert result.error_code == INSUFFICIENT_AMOUNT
        assert "900000" in result.error
        assert store.get(session.session_id) == session
        on_commit.assert_not_called()

        clock.advance(minutes=5)
        assert sessions.check_access(session.session_id).reason == AccessReason.EXPIRED

    def test_exact_amount_commits_one_below_does_not(self, verifier, sessions, ledger):
        below = _funded_session(sessions, ledger, amount=REQUIRED)
        exact = _funded_session(sessions, ledger, amount=REQUIRED)
        assert not asyncio.run(verifier.verify_and_commit(below.session_id, "a", REQUIRED - 1)).committed
        assert asyncio.run(verifier.verify_and_commit(exact.session_id, "b", REQUIRED)).committed

    def test_ledger_balance_must_cover_claim(self, verifier, sessions, ledger, store):
        session = _funded_session(sessions, ledger, amount=100)
        result = asyncio.run(verifier.verify_and_commit(session.session_id, "sig-1", 1_000_000))
        assert result.error_code == INSUFFICIENT_AMOUNT
        assert not store.get(session.session_id).is_paid

    def test_ledger_down(self, verifier, sessions, ledger, store):
        session = _funded_session(sessions, ledger)
        ledger.unavailable = True
        result = asyncio.run(verifier.verify_and_commit(session.session_id, "sig-1", 1_000_000))
        assert result.error_code == LEDGER_UNAVAILABLE
        assert not store.get(session.session_id).is_paid

    def test_unknown_identifier(self, verifier):
        result = asyncio.run(verifier.verify_and_commit("nobody", "sig-1", 1_000_000))
        assert result.error_code == NOT_FOUND

    def test_claim_above_balance_records_balance(self, verifier, sessions, ledger, store):
        session = _funded_session(sessions, ledger, amount=REQUIRED)
        result = asyncio.run(verifier.verify_and_commit(session.session_id, "sig-1", 10**18))
        assert result.committed
        assert store.get(session.session_id).amount_received == REQUIRED

    def test_claim_out_of_range(self, verifier, sessions, ledger, store):
        session = _funded_session(sessions, ledger)
        result = asyncio.run(verifier.verify_and_commit(session.session_id, "sig-1", 2**63))
        assert result.error_code == INVALID_AMOUNT
        assert not store.get(session.session_id).is_paid

    def test_reference_reused_across_sessions(self, verifier, sessions, ledger):
        first = _funded_session(sessions, ledger)
        second = _funded_session(sessions, ledger)
        asyncio.run(verifier.verify_and_commit(first.session_id, "sig-1", 1_000_000))
        result = asyncio.run(verifier.verify_and_commit(second.session_id, "sig-1", 1_000_000))
        assert result.error_code == REFERENCE_REUSED


class TestResolution:
    def test_by_address_and_reference(self, verifier, sessions, ledger):
        by_address = _funded_session(sessions, ledger)
        by_reference = _funded_session(sessions, ledger)
        r1 = asyncio.run(verifier.verify_and_commit(by_address.custodial_address, "a", REQUIRED))
        r2 = asyncio.run(verifier.verify_and_commit(by_reference.reference_id, "b", REQUIRED))
        assert r1.session.session_id == by_address.session_id
        assert r2.session.session_id == by_reference.session_id

    def test_webhook_notification(self, verifier, sessions, ledger, store):
        session = _funded_session(sessions, ledger)
        notification = PaymentNotification(address=session.custodial_address, amount=1_000_000, tx_reference="sig-w")
        result = asyncio.run(verifier.handle_notification(notification))
        assert result.committed
        assert store.get(session.session_id).payment_tx_ref == "sig-w"


class TestCheckAndCreate:
    def test_check_payment_commits_from_balance(self, verifier, sessions, ledger, store):
        session = _funded_session(sessions, ledger)
        result = asyncio.run(verifier.check_payment(session.session_id))
        assert result.decision.reason == AccessReason.PAID_ACTIVE
        assert result.balance == 1_000_000
        assert store.get(session.session_id).payment_tx_ref == f"balance:{session.custodial_address}"

        again = asyncio.run(verifier.check_payment(session.session_id))
        assert again.commit is None
        assert again.decision.granted

    def test_check_payment_not_enough_yet(self, verifier, sessions, ledger):
        session = _funded_session(sessions, ledger, amount=0)
        result = asyncio.run(verifier.check_payment(session.session_id))
        assert result.decision.reason == AccessReason.TRIAL_ACTIVE
        assert result.commit.error_code == INSUFFICIENT_AMOUNT

    def test_check_payment_unknown(self, verifier):
        with pytest.raises(NotFoundError):
            asyncio.run(verifier.check_payment("0" * 64))

    def test_create_payment(self, verifier, sessions, ledger, clock):
        session = _funded_session(sessions, ledger, amount=0)
        instructions = verifier.create_payment(session.session_id)
        assert instructions.payment_address == session.custodial_address
        assert instructions.amount == REQUIRED
        assert instructions.expires_at == clock.now + timedelta(minutes=30)
        with pytest.raises(NotFoundError):
            verifier.create_payment("0" * 64)


class TestStoreAccess:
    def test_store_writes_leave_the_event_loop(self, verifier, sessions, ledger, store, on_commit):
        session = _funded_session(sessions, ledger)
        loop_threads = []
        update_threads = []
        original = store.update

        def recording_update(session_id, mutate):
            update_threads.append(threading.get_ident())
            return original(session_id, mutate)

        store.update = recording_update
        on_commit.side_effect = lambda _: loop_threads.append(threading.get_ident())

        result = asyncio.run(verifier.verify_and_commit(session.session_id, "sig-1", 1_000_000))

        assert result.committed
        assert update_threads and loop_threads
        assert update_threads[0] != loop_threads[0]
