"""Tests for InMemorySessionStore and the optimistic update helper."""
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from solgate.services.sessions.base import SessionRecord, StoreConflictError
from solgate.services.sessions.store import InMemorySessionStore

T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _make_record(suffix: str = "1", **kwargs) -> SessionRecord:
    defaults = dict(
        session_id=suffix * 64,
        custodial_address=f"Addr{suffix}",
        custodial_secret="secret",
        created_at=T0,
        trial_expires_at=T0 + timedelta(minutes=3),
        reference_id=f"{suffix * 8}-ref",
    )
    defaults.update(kwargs)
    return SessionRecord(**defaults)


class TestPutGet:
    def test_put_and_get(self):
        store = InMemorySessionStore()
        record = _make_record()
        store.put(record)
        assert store.get(record.session_id) == record
        assert store.get("missing") is None

    def test_duplicate_id_rejected(self):
        store = InMemorySessionStore()
        store.put(_make_record())
        with pytest.raises(ValueError):
            store.put(_make_record(custodial_address="Other"))

    def test_duplicate_address_rejected(self):
        store = InMemorySessionStore()
        store.put(_make_record("1", custodial_address="Same"))
        with pytest.raises(ValueError):
            store.put(_make_record("2", custodial_address="Same"))

    def test_lookups(self):
        store = InMemorySessionStore()
        store.put(_make_record("1"))
        store.put(_make_record("2", payment_tx_ref="sig-2"))
        assert store.find_by_address("Addr2").session_id == "2" * 64
        assert store.find_by_reference("11111111-ref").session_id == "1" * 64
        assert store.find_by_payment_ref("sig-2").session_id == "2" * 64
        assert store.find_by_address("nope") is None

    def test_delete(self):
        store = InMemorySessionStore()
        store.put(_make_record())
        assert store.delete("1" * 64) is True
        assert store.delete("1" * 64) is False
        assert store.list_all() == []


class TestConditionalUpdate:
    def test_update_if_unchanged_bumps_version(self):
        store = InMemorySessionStore()
        record = _make_record()
        store.put(record)
        assert store.update_if_unchanged(record.evolve(swept_amount=10), 0) is True
        stored = store.get(record.session_id)
        assert stored.swept_amount == 10
        assert stored.version == 1

    def test_stale_version_rejected(self):
        store = InMemorySessionStore()
        record = _make_record()
        store.put(record)
        store.update_if_unchanged(record.evolve(swept_amount=10), 0)
        assert store.update_if_unchanged(record.evolve(swept_amount=99), 0) is False
        assert store.get(record.session_id).swept_amount == 10

    def test_update_noop_keeps_version(self):
        store = InMemorySessionStore()
        record = _make_record()
        store.put(record)
        result = store.update(record.session_id, lambda current: current)
        assert result.version == 0

    def test_update_missing_session(self):
        store = InMemorySessionStore()
        assert store.update("x" * 64, lambda current: current.evolve(swept_amount=1)) is None

    def test_update_retries_on_conflict(self):
        store = InMemorySessionStore()
        record = _make_record()
        store.put(record)
        real = store.update_if_unchanged
        calls = {"n": 0}

        def flaky(updated, expected):
            calls["n"] += 1
            if calls["n"] == 1:
                # concurrent writer sneaks in
                real(store.get(record.session_id).evolve(swept_amount=5), expected)
                return False
            return real(updated, expected)

        with patch.object(store, "update_if_unchanged", side_effect=flaky):
            result = store.update(record.session_id, lambda c: c.evolve(swept_amount=c.swept_amount + 1))

        assert result.swept_amount == 6
        assert store.get(record.session_id).swept_amount == 6

    def test_update_gives_up(self):
        store = InMemorySessionStore()
        store.put(_make_record())
        with patch.object(store, "update_if_unchanged", return_value=False):
            with pytest.raises(StoreConflictError):
                store.update("1" * 64, lambda c: c.evolve(swept_amount=1))


def test_public_view_has_no_secret():
    view = _make_record().public_view()
    assert "custodialSecret" not in view
    assert "secret" not in view.values()
    assert view["walletAddress"] == "Addr1"
