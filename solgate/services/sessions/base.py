"""
Session record and the store capability shared by the in-memory and SQL backends.
Records are immutable; every change goes through update_if_unchanged with the
version the caller read.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Callable

MAX_UPDATE_ATTEMPTS = 5


@dataclass(frozen=True)
class SessionRecord:
    """One access session and its custodial deposit account."""
    session_id: str
    custodial_address: str
    custodial_secret: str
    created_at: datetime
    trial_expires_at: datetime
    reference_id: str
    is_paid: bool = False
    amount_received: int = 0
    payment_tx_ref: str | None = None
    payment_received_at: datetime | None = None
    access_expires_at: datetime | None = None
    client_fingerprint: str | None = None
    swept_amount: int = 0
    last_swept_at: datetime | None = None
    last_sweep_tx_ref: str | None = None
    version: int = 0

    def evolve(self, **changes: Any) -> "SessionRecord":
        return replace(self, **changes)

    def public_view(self) -> dict[str, Any]:
        """Serializable view without secret material."""
        return {
            "sessionId": self.session_id,
            "walletAddress": self.custodial_address,
            "referenceId": self.reference_id,
            "createdAt": self.created_at.isoformat(),
            "trialExpiresAt": self.trial_expires_at.isoformat(),
            "isPaid": self.is_paid,
            "amountReceived": self.amount_received,
            "paymentTxRef": self.payment_tx_ref,
            "paymentReceivedAt": _iso(self.payment_received_at),
            "accessExpiresAt": _iso(self.access_expires_at),
            "sweptAmount": self.swept_amount,
            "lastSweptAt": _iso(self.last_swept_at),
        }


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class StoreConflictError(RuntimeError):
    """Optimistic update kept losing to concurrent writers."""


class SessionStore(ABC):
    """Keyed session storage with an atomic compare-and-set update."""

    @abstractmethod
    def get(self, session_id: str) -> SessionRecord | None:
        pass

    @abstractmethod
    def put(self, record: SessionRecord) -> None:
        """Insert a new record. Raises ValueError on duplicate id or address."""
        pass

    @abstractmethod
    def list_all(self) -> list[SessionRecord]:
        pass

    @abstractmethod
    def update_if_unchanged(self, record: SessionRecord, expected_version: int) -> bool:
        """
        Replace the stored record if its version still equals expected_version.
        The stored copy gets version expected_version + 1.
        Returns False when the record changed or vanished in between.
        """
        pass

    @abstractmethod
    def delete(self, session_id: str) -> bool:
        pass

    def ping(self) -> None:
        """Readiness probe; raises when the backend is unreachable."""
        pass

    def find_by_address(self, address: str) -> SessionRecord | None:
        for record in self.list_all():
            if record.custodial_address == address:
                return record
        return None

    def find_by_reference(self, reference_id: str) -> SessionRecord | None:
        for record in self.list_all():
            if record.reference_id == reference_id:
                return record
        return None

    def find_by_payment_ref(self, tx_ref: str) -> SessionRecord | None:
        for record in self.list_all():
            if record.payment_tx_ref == tx_ref:
                return record
        return None

    def update(
        self,
        session_id: str,
        mutate: Callable[[SessionRecord], SessionRecord],
    ) -> SessionRecord | None:
        """
        Read-mutate-write with retry on version conflict.

        mutate must be pure: it may run more than once. Returning the same
        record means "nothing to change". Returns the stored record, or None
        if the session does not exist.
        """
        for _ in range(MAX_UPDATE_ATTEMPTS):
            current = self.get(session_id)
            if current is None:
                return None
            updated = mutate(current)
            if updated is current:
                return current
            if self.update_if_unchanged(updated, current.version):
                return updated.evolve(version=current.version + 1)
        raise StoreConflictError(f"Too many concurrent updates for session {session_id[:8]}")
