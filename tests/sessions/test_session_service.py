"""Tests for SessionService: bootstrap, binding and recovery."""
from datetime import timedelta

import pytest

from solgate.core.errors import NotFoundError
from solgate.paywall import AccessReason
from solgate.services.sessions.service import ClientInfo, SessionService

BROWSER = ClientInfo(user_agent="Mozilla/5.0", ip="10.0.0.1")
OTHER = ClientInfo(user_agent="curl/8.0", ip="10.0.0.2")


@pytest.fixture
def service(store, custodian, clock):
    return SessionService(
        store,
        custodian,
        trial_duration=timedelta(minutes=3),
        bind_to_client=True,
        retention=timedelta(hours=1),
        clock=clock,
    )


def _mark_paid(store, session_id, at, grant=timedelta(hours=1), swept=False):
    def mutate(c):
        changes = dict(
            is_paid=True,
            amount_received=900_000,
            payment_tx_ref=f"sig-{session_id[:4]}",
            payment_received_at=at,
            access_expires_at=at + grant,
        )
        if swept:
            changes.update(last_swept_at=at, swept_amount=895_000)
        return c.evolve(**changes)

    return store.update(session_id, mutate)


class TestBootstrap:
    def test_new_session_gets_trial(self, service, clock):
        result = service.bootstrap(None, BROWSER)
        assert result.is_new
        assert len(result.session.session_id) == 64
        assert result.session.trial_expires_at == clock.now + timedelta(minutes=3)
        assert result.decision.reason == AccessReason.TRIAL_ACTIVE
        assert result.session.reference_id.startswith(result.session.session_id[:8] + "-")

    def test_reuses_existing_for_same_client(self, service):
        first = service.bootstrap(None, BROWSER)
        again = service.bootstrap(first.session.session_id, BROWSER)
        assert not again.is_new
        assert again.session.session_id == first.session.session_id

    def test_other_client_gets_new_session(self, service):
        first = service.bootstrap(None, BROWSER)
        other = service.bootstrap(first.session.session_id, OTHER)
        assert other.is_new
        assert other.session.session_id != first.session.session_id

    def test_unknown_id_creates_new(self, service):
        result = service.bootstrap("f" * 64, BROWSER)
        assert result.is_new
        assert result.session.session_id != "f" * 64

    def test_binding_disabled(self, store, custodian, clock):
        service = SessionService(store, custodian, timedelta(minutes=3), bind_to_client=False, clock=clock)
        first = service.bootstrap(None, BROWSER)
        assert not service.bootstrap(first.session.session_id, OTHER).is_new


class TestCheckAccess:
    def test_trial_then_expired(self, service, clock):
        session = service.bootstrap(None, BROWSER).session
        clock.advance(seconds=90)
        assert service.check_access(session.session_id, BROWSER).reason == AccessReason.TRIAL_ACTIVE
        clock.advance(seconds=110)
        decision = service.check_access(session.session_id, BROWSER)
        assert decision.granted is False
        assert decision.reason == AccessReason.EXPIRED

    def test_client_mismatch_is_unknown(self, service):
        session = service.bootstrap(None, BROWSER).session
        decision = service.check_access(session.session_id, OTHER)
        assert decision.reason == AccessReason.UNKNOWN

    def test_missing_and_empty(self, service):
        assert service.check_access(None).reason == AccessReason.UNKNOWN
        assert service.check_access("0" * 64).reason == AccessReason.UNKNOWN

    def test_store_failure_is_unknown(self, service, store, monkeypatch):
        def boom(_):
            raise RuntimeError("db down")

        monkeypatch.setattr(store, "get", boom)
        assert service.check_access("0" * 64).reason == AccessReason.UNKNOWN


class TestRecovery:
    def test_by_address_and_reference(self, service):
        session = service.bootstrap(None, BROWSER).session
        by_address = service.recover(address=session.custodial_address)
        by_reference = service.recover(reference_id=session.reference_id)
        assert by_address.session_id == by_reference.session_id == session.session_id
        assert by_address.status == "trial"
        assert by_address.expires_at == session.trial_expires_at

    def test_paid_status(self, service, store, clock):
        session = service.bootstrap(None, BROWSER).session
        _mark_paid(store, session.session_id, clock.now)
        info = service.recover(session_id=session.session_id)
        assert info.status == "paid"
        assert info.expires_at == clock.now + timedelta(hours=1)

    def test_not_found(self, service):
        with pytest.raises(NotFoundError):
            service.recover(session_id="0" * 64, address="nope", reference_id="nope")


class TestCleanup:
    def test_expired_unpaid_removed_after_retention(self, service, store, clock):
        session = service.bootstrap(None, BROWSER).session
        clock.advance(minutes=30)
        assert service.cleanup_expired() == 0
        clock.advance(hours=2)
        assert service.cleanup_expired() == 1
        assert store.get(session.session_id) is None

    def test_unswept_paid_session_kept(self, service, store, clock):
        session = service.bootstrap(None, BROWSER).session
        _mark_paid(store, session.session_id, clock.now)
        clock.advance(days=2)
        assert service.cleanup_expired() == 0
        assert store.get(session.session_id) is not None

    def test_swept_paid_session_removed(self, service, store, clock):
        session = service.bootstrap(None, BROWSER).session
        _mark_paid(store, session.session_id, clock.now, swept=True)
        clock.advance(minutes=90)
        assert service.cleanup_expired() == 0
        clock.advance(hours=1)
        assert service.cleanup_expired() == 1


def test_stats(service, store, clock):
    trial = service.bootstrap(None, BROWSER).session
    paid = service.bootstrap(None, OTHER).session
    _mark_paid(store, paid.session_id, clock.now)
    stats = service.stats()
    assert stats.total == 2
    assert stats.trial == 1
    assert stats.paid == 1
    assert stats.total_revenue == 900_000
    assert [r.session_id for r in stats.recent_payments] == [paid.session_id]
    assert trial.session_id not in [r.session_id for r in stats.recent_payments]
