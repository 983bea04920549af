"""
Payment verification: match a notified payment to a session, check the amount,
and flip the session to paid exactly once.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from solgate.core.errors import NotFoundError
from solgate.core.logging import short_id
from solgate.paywall import AccessDecision, evaluate
from solgate.services.ledger.base import LedgerClient, LedgerError
from solgate.services.payments.webhooks import MAX_LAMPORTS, PaymentNotification
from solgate.services.sessions.base import SessionRecord, SessionStore
from solgate.services.sessions.service import utcnow
from solgate.utils.metrics import payments_committed_total, payments_rejected_total

logger = logging.getLogger(__name__)

BALANCE_REFERENCE_PREFIX = "balance:"

# error codes
NOT_FOUND = "not_found"
INSUFFICIENT_AMOUNT = "insufficient_amount"
REFERENCE_REUSED = "reference_reused"
LEDGER_UNAVAILABLE = "ledger_unavailable"
INVALID_AMOUNT = "invalid_amount"


@dataclass(frozen=True)
class PaymentCommitResult:
    committed: bool
    session: SessionRecord | None = None
    error: str | None = None
    error_code: str | None = None
    duplicate: bool = False


@dataclass(frozen=True)
class PaymentInstructions:
    session_id: str
    payment_address: str
    reference_id: str
    amount: int
    expires_at: datetime


@dataclass(frozen=True)
class PaymentCheckResult:
    decision: AccessDecision
    commit: PaymentCommitResult | None = None
    balance: int | None = None


class PaymentVerifier:
    def __init__(
        self,
        store: SessionStore,
        ledger: LedgerClient,
        required_amount: int,
        grant_duration: timedelta,
        payment_window: timedelta = timedelta(minutes=30),
        confirm_on_ledger: bool = True,
        on_commit: Callable[[str], None] | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.ledger = ledger
        self.required_amount = required_amount
        self.grant_duration = grant_duration
        self.payment_window = payment_window
        self.confirm_on_ledger = confirm_on_ledger
        self.on_commit = on_commit
        self.clock = clock

    def resolve(self, identifier_hint: str) -> SessionRecord | None:
        """Session id first, then custodial address, then reference token."""
        if not identifier_hint:
            return None
        return (
            self.store.get(identifier_hint)
            or self.store.find_by_address(identifier_hint)
            or self.store.find_by_reference(identifier_hint)
        )

    def create_payment(self, session_id: str) -> PaymentInstructions:
        record = self.store.get(session_id)
        if record is None:
            raise NotFoundError(session_id)
        return PaymentInstructions(
            session_id=record.session_id,
            payment_address=record.custodial_address,
            reference_id=record.reference_id,
            amount=self.required_amount,
            expires_at=self.clock() + self.payment_window,
        )

    async def verify_and_commit(
        self,
        identifier_hint: str,
        ledger_reference: str,
        claimed_amount: int,
        source: str = "verify",
    ) -> PaymentCommitResult:
        """
        Idempotent: a second notification for a paid session is a no-op success.
        Nothing is written unless the payment is accepted.
        """
        session = await asyncio.to_thread(self.resolve, identifier_hint)
        if session is None:
            return self._reject(NOT_FOUND, "Session not found", identifier_hint)

        if session.is_paid:
            logger.info(
                "payment_already_processed",
                extra={"session_id": short_id(session.session_id), "tx_ref": ledger_reference},
            )
            return PaymentCommitResult(committed=True, session=session, duplicate=True)

        owner = await asyncio.to_thread(self.store.find_by_payment_ref, ledger_reference)
        if owner is not None and owner.session_id != session.session_id:
            return self._reject(
                REFERENCE_REUSED,
                "Ledger reference already credited to another session",
                session.session_id,
            )

        if claimed_amount > MAX_LAMPORTS:
            return self._reject(INVALID_AMOUNT, "Payment amount out of range", session.session_id)

        if claimed_amount < self.required_amount:
            return self._reject(
                INSUFFICIENT_AMOUNT,
                f"Insufficient payment amount. Expected: {self.required_amount}, received: {claimed_amount}",
                session.session_id,
            )

        if self.confirm_on_ledger and not ledger_reference.startswith(BALANCE_REFERENCE_PREFIX):
            try:
                balance = await self.ledger.get_balance(session.custodial_address)
            except LedgerError as e:
                logger.warning(
                    "payment_ledger_check_failed",
                    extra={"session_id": short_id(session.session_id), "error": str(e)},
                )
                return self._reject(LEDGER_UNAVAILABLE, "Ledger unavailable, retry later", session.session_id)
            if balance < self.required_amount:
                return self._reject(
                    INSUFFICIENT_AMOUNT,
                    f"Payment not visible on ledger. Expected: {self.required_amount}, balance: {balance}",
                    session.session_id,
                )
            # the custodial balance caps what can be recorded as received
            claimed_amount = min(claimed_amount, balance)

        return await self._commit(session, ledger_reference, claimed_amount, source)

    async def check_payment(self, session_id: str) -> PaymentCheckResult:
        """Manual poll: commit from the custodial balance if it already covers the price."""
        session = await asyncio.to_thread(self.store.get, session_id)
        if session is None:
            raise NotFoundError(session_id)
        decision = evaluate(session, self.clock())
        if session.is_paid:
            return PaymentCheckResult(decision=decision)

        balance = await self.ledger.get_balance(session.custodial_address)
        commit = await self.verify_and_commit(
            session.session_id,
            f"{BALANCE_REFERENCE_PREFIX}{session.custodial_address}",
            balance,
            source="check",
        )
        if commit.committed and commit.session is not None:
            decision = evaluate(commit.session, self.clock())
        return PaymentCheckResult(decision=decision, commit=commit, balance=balance)

    async def handle_notification(self, notification: PaymentNotification) -> PaymentCommitResult:
        return await self.verify_and_commit(
            notification.address,
            notification.tx_reference,
            notification.amount,
            source="webhook",
        )

    async def _commit(
        self,
        session: SessionRecord,
        ledger_reference: str,
        amount: int,
        source: str,
    ) -> PaymentCommitResult:
        now = self.clock()

        def mark_paid(current: SessionRecord) -> SessionRecord:
            if current.is_paid:
                return current
            return current.evolve(
                is_paid=True,
                amount_received=amount,
                payment_tx_ref=ledger_reference,
                payment_received_at=now,
                access_expires_at=now + self.grant_duration,
            )

        stored = await asyncio.to_thread(self.store.update, session.session_id, mark_paid)
        if stored is None:
            return self._reject(NOT_FOUND, "Session not found", session.session_id)
        if stored.payment_tx_ref != ledger_reference or stored.payment_received_at != now:
            # lost the race to a concurrent commit
            return PaymentCommitResult(committed=True, session=stored, duplicate=True)

        payments_committed_total.labels(source=source).inc()
        logger.info(
            "payment_committed",
            extra={
                "session_id": short_id(stored.session_id),
                "address": stored.custodial_address,
                "amount": amount,
                "tx_ref": ledger_reference,
            },
        )
        if self.on_commit is not None:
            try:
                self.on_commit(stored.session_id)
            except Exception:
                logger.exception("payment_sweep_trigger_failed", extra={"session_id": short_id(stored.session_id)})
        return PaymentCommitResult(committed=True, session=stored)

    def _reject(self, error_code: str, message: str, identifier: str | None) -> PaymentCommitResult:
        payments_rejected_total.labels(error_code=error_code).inc()
        logger.warning(
            "payment_rejected",
            extra={"session_id": short_id(identifier), "error_code": error_code, "reason": message},
        )
        return PaymentCommitResult(committed=False, error=message, error_code=error_code)
