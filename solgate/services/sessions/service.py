import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from solgate.core.errors import NotFoundError
from solgate.core.logging import short_id
from solgate.paywall import AccessDecision, AccessReason, evaluate, session_status
from solgate.paywall.access import DENIED_UNKNOWN
from solgate.services.sessions.base import SessionRecord, SessionStore
from solgate.services.wallets.custodian import WalletCustodian
from solgate.utils.metrics import sessions_created_total

logger = logging.getLogger(__name__)

RECENT_PAYMENTS_LIMIT = 10


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ClientInfo:
    user_agent: str = ""
    ip: str = ""

    def fingerprint(self) -> str:
        return hashlib.sha256(f"{self.user_agent}|{self.ip}".encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class BootstrapResult:
    session: SessionRecord
    is_new: bool
    decision: AccessDecision


@dataclass(frozen=True)
class RecoveryInfo:
    session_id: str
    wallet_address: str
    reference_id: str
    status: str
    expires_at: datetime

    def to_response(self) -> dict:
        return {
            "sessionId": self.session_id,
            "walletAddress": self.wallet_address,
            "referenceId": self.reference_id,
            "status": self.status,
            "expiresAt": self.expires_at.isoformat(),
        }


@dataclass(frozen=True)
class SessionStats:
    total: int
    trial: int
    paid: int
    expired: int
    total_revenue: int
    recent_payments: list[SessionRecord]


def new_session_id() -> str:
    return secrets.token_hex(32)


def new_reference_id(session_id: str, now: datetime) -> str:
    millis = int(now.timestamp() * 1000)
    return f"{session_id[:8]}-{millis:x}-{secrets.token_hex(3)}"


class SessionService:
    """Bootstrap, access checks, recovery and maintenance of custodial sessions."""

    def __init__(
        self,
        store: SessionStore,
        custodian: WalletCustodian,
        trial_duration: timedelta,
        bind_to_client: bool = True,
        retention: timedelta = timedelta(days=1),
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.custodian = custodian
        self.trial_duration = trial_duration
        self.bind_to_client = bind_to_client
        self.retention = retention
        self.clock = clock

    def create_session(self, client: ClientInfo | None = None) -> SessionRecord:
        now = self.clock()
        session_id = new_session_id()
        wallet = self.custodian.provision(session_id)
        record = SessionRecord(
            session_id=session_id,
            custodial_address=wallet.address,
            custodial_secret=wallet.secret,
            created_at=now,
            trial_expires_at=now + self.trial_duration,
            reference_id=new_reference_id(session_id, now),
            client_fingerprint=client.fingerprint() if client else None,
        )
        self.store.put(record)
        sessions_created_total.inc()
        logger.info(
            "session_created",
            extra={"session_id": short_id(session_id), "address": wallet.address},
        )
        return record

    def bootstrap(self, existing_session_id: str | None, client: ClientInfo | None = None) -> BootstrapResult:
        """Reuse the caller's session when it exists and belongs to the same client; otherwise start a trial."""
        if existing_session_id:
            existing = self.store.get(existing_session_id)
            if existing is not None and self._client_matches(existing, client):
                return BootstrapResult(
                    session=existing,
                    is_new=False,
                    decision=evaluate(existing, self.clock()),
                )
            if existing is not None:
                logger.warning(
                    "session_client_mismatch",
                    extra={"session_id": short_id(existing_session_id)},
                )
        record = self.create_session(client)
        return BootstrapResult(session=record, is_new=True, decision=evaluate(record, self.clock()))

    def get(self, session_id: str) -> SessionRecord:
        record = self.store.get(session_id)
        if record is None:
            raise NotFoundError(session_id)
        return record

    def check_access(self, session_id: str | None, client: ClientInfo | None = None) -> AccessDecision:
        """Always returns a decision; lookup problems fold into `unknown`."""
        if not session_id:
            return DENIED_UNKNOWN
        try:
            record = self.store.get(session_id)
        except Exception:
            logger.exception("access_check_store_error", extra={"session_id": short_id(session_id)})
            return DENIED_UNKNOWN
        if record is not None and not self._client_matches(record, client):
            return DENIED_UNKNOWN
        return evaluate(record, self.clock())

    def recover(
        self,
        session_id: str | None = None,
        address: str | None = None,
        reference_id: str | None = None,
    ) -> RecoveryInfo:
        record = None
        if session_id:
            record = self.store.get(session_id)
        if record is None and address:
            record = self.store.find_by_address(address)
        if record is None and reference_id:
            record = self.store.find_by_reference(reference_id)
        if record is None:
            raise NotFoundError(session_id or address or reference_id)

        now = self.clock()
        status = session_status(record, now)
        expires_at = record.access_expires_at if status == "paid" else record.trial_expires_at
        logger.info("session_recovered", extra={"session_id": short_id(record.session_id), "status": status})
        return RecoveryInfo(
            session_id=record.session_id,
            wallet_address=record.custodial_address,
            reference_id=record.reference_id,
            status=status,
            expires_at=expires_at,
        )

    def cleanup_expired(self) -> int:
        """
        Delete sessions whose access ended more than `retention` ago.
        Paid sessions that were never swept keep their keys.
        """
        now = self.clock()
        deleted = 0
        for record in self.store.list_all():
            ended_at = record.trial_expires_at
            if record.access_expires_at is not None and record.access_expires_at > ended_at:
                ended_at = record.access_expires_at
            if now < ended_at + self.retention:
                continue
            if record.is_paid and record.last_swept_at is None:
                continue
            if self.store.delete(record.session_id):
                deleted += 1
        if deleted:
            logger.info("sessions_cleaned_up", extra={"deleted": deleted})
        return deleted

    def stats(self) -> SessionStats:
        now = self.clock()
        records = self.store.list_all()
        counts = {reason: 0 for reason in AccessReason}
        for record in records:
            counts[evaluate(record, now).reason] += 1
        paid = [r for r in records if r.is_paid]
        paid.sort(key=lambda r: r.payment_received_at, reverse=True)
        return SessionStats(
            total=len(records),
            trial=counts[AccessReason.TRIAL_ACTIVE],
            paid=counts[AccessReason.PAID_ACTIVE],
            expired=counts[AccessReason.EXPIRED],
            total_revenue=sum(r.amount_received for r in paid),
            recent_payments=paid[:RECENT_PAYMENTS_LIMIT],
        )

    def _client_matches(self, record: SessionRecord, client: ClientInfo | None) -> bool:
        if not self.bind_to_client or client is None or record.client_fingerprint is None:
            return True
        return secrets.compare_digest(record.client_fingerprint, client.fingerprint())
