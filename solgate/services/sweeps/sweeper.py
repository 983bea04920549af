"""
Transfer sweeper: drains paid custodial accounts into the operator account.

Per session: balance - fee reserve is sent in a single transfer built on a
fresh block reference and confirmed under a timeout. No retries here; the
next scheduled run picks up whatever is left.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Iterable

from solders.pubkey import Pubkey

from solgate.core.logging import short_id
from solgate.services.ledger.base import LedgerClient, LedgerError, LedgerTimeoutError
from solgate.services.sessions.base import SessionRecord, SessionStore
from solgate.services.sessions.service import utcnow
from solgate.services.wallets.custodian import CustodialKeyError, WalletCustodian
from solgate.utils.metrics import (
    sweep_attempts_total,
    sweeps_in_flight,
    swept_lamports_total,
)

logger = logging.getLogger(__name__)


class SweepConfigurationError(Exception):
    """Sweeps cannot run at all (operator address, ledger capability)."""


class SweepOutcome(str, Enum):
    SUCCESS = "success"
    SKIP = "skip"
    FAIL = "fail"


@dataclass(frozen=True)
class TransferAttempt:
    session_id: str
    source_address: str
    amount_attempted: int
    outcome: SweepOutcome
    reason: str | None = None
    tx_ref: str | None = None
    balance: int | None = None

    def to_response(self) -> dict:
        return {
            "sessionId": self.session_id,
            "walletAddress": self.source_address,
            "amount": self.amount_attempted,
            "outcome": self.outcome.value,
            "reason": self.reason,
            "signature": self.tx_ref,
        }


@dataclass
class SweepReport:
    succeeded: int = 0
    skipped: int = 0
    failed: int = 0
    total_amount: int = 0
    errors: list[str] = field(default_factory=list)
    attempts: list[TransferAttempt] = field(default_factory=list)

    def add(self, attempt: TransferAttempt) -> None:
        self.attempts.append(attempt)
        if attempt.outcome == SweepOutcome.SUCCESS:
            self.succeeded += 1
            self.total_amount += attempt.amount_attempted
        elif attempt.outcome == SweepOutcome.SKIP:
            self.skipped += 1
        else:
            self.failed += 1
            self.errors.append(f"{attempt.source_address}: {attempt.reason}")

    def to_response(self) -> dict:
        return {
            "successful": self.succeeded,
            "skipped": self.skipped,
            "failed": self.failed,
            "totalTransferred": self.total_amount,
            "errors": list(self.errors),
        }


@dataclass(frozen=True)
class SweepStats:
    operator_address: str
    fee_reserve: int
    batch_size: int
    confirm_timeout: float
    in_flight: int


class TransferSweeper:
    def __init__(
        self,
        store: SessionStore,
        ledger: LedgerClient,
        custodian: WalletCustodian,
        operator_address: str,
        fee_reserve: int = 5000,
        batch_size: int = 10,
        batch_pause: float = 1.0,
        confirm_timeout: float = 30.0,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.ledger = ledger
        self.custodian = custodian
        self.operator_address = operator_address
        self.fee_reserve = fee_reserve
        self.batch_size = batch_size
        self.batch_pause = batch_pause
        self.confirm_timeout = confirm_timeout
        self.clock = clock
        self._in_flight: set[str] = set()

    def check_configuration(self) -> None:
        if not self.operator_address:
            raise SweepConfigurationError("OPERATOR_WALLET_ADDRESS is not configured")
        try:
            Pubkey.from_string(self.operator_address)
        except ValueError as e:
            raise SweepConfigurationError(f"Invalid operator address: {self.operator_address}") from e
        if not self.ledger.can_submit:
            raise SweepConfigurationError(f"Ledger client '{self.ledger.name}' cannot submit transfers")

    def is_in_flight(self, session_id: str) -> bool:
        return session_id in self._in_flight

    async def sweep_one(self, session: SessionRecord) -> TransferAttempt:
        """Sweep a single session. Never raises for per-session problems."""
        self.check_configuration()
        # Marker is taken before the first await: no interleaving between check and add.
        if session.session_id in self._in_flight:
            return self._record(session, SweepOutcome.SKIP, 0, reason="sweep already in progress")
        self._in_flight.add(session.session_id)
        sweeps_in_flight.inc()
        try:
            return await self._sweep(session)
        except Exception as e:
            logger.exception(
                "sweep_attempt_crashed",
                extra={"session_id": short_id(session.session_id), "address": session.custodial_address},
            )
            return self._record(session, SweepOutcome.FAIL, 0, reason=f"unexpected error: {e}")
        finally:
            self._in_flight.discard(session.session_id)
            sweeps_in_flight.dec()

    async def sweep_all(self, sessions: Iterable[SessionRecord] | None = None) -> SweepReport:
        """Sweep every paid session in bounded batches; one failure never aborts the run."""
        self.check_configuration()
        if sessions is None:
            sessions = await asyncio.to_thread(self.store.list_all)
        paid = [s for s in sessions if s.is_paid]
        report = SweepReport()
        for start in range(0, len(paid), self.batch_size):
            if start and self.batch_pause:
                await asyncio.sleep(self.batch_pause)
            batch = paid[start:start + self.batch_size]
            for attempt in await asyncio.gather(*(self.sweep_one(s) for s in batch)):
                report.add(attempt)
        return report

    def stats(self) -> SweepStats:
        return SweepStats(
            operator_address=self.operator_address,
            fee_reserve=self.fee_reserve,
            batch_size=self.batch_size,
            confirm_timeout=self.confirm_timeout,
            in_flight=len(self._in_flight),
        )

    async def _sweep(self, session: SessionRecord) -> TransferAttempt:
        address = session.custodial_address
        try:
            balance = await self.ledger.get_balance(address)
        except LedgerError as e:
            return self._record(session, SweepOutcome.FAIL, 0, reason=f"balance lookup failed: {e}")

        if balance <= self.fee_reserve:
            return self._record(session, SweepOutcome.SKIP, 0, reason="balance below fee reserve", balance=balance)

        amount = balance - self.fee_reserve
        try:
            signer = self.custodian.reconstruct_for(session)
        except CustodialKeyError as e:
            return self._record(session, SweepOutcome.FAIL, amount, reason=f"custodial key error: {e}", balance=balance)

        started = time.perf_counter()
        try:
            block_reference = await self.ledger.get_recent_block_reference()
            signature = await self.ledger.submit_transfer(signer, self.operator_address, amount, block_reference)
            try:
                status = await asyncio.wait_for(
                    self.ledger.await_confirmation(signature),
                    timeout=self.confirm_timeout,
                )
            except asyncio.TimeoutError as e:
                raise LedgerTimeoutError(
                    f"not confirmed within {self.confirm_timeout:g}s",
                    {"signature": signature},
                ) from e
        except LedgerError as e:
            return self._record(session, SweepOutcome.FAIL, amount, reason=str(e), balance=balance)

        if not status.confirmed:
            return self._record(
                session,
                SweepOutcome.FAIL,
                amount,
                reason=f"transaction failed: {status.error}",
                tx_ref=signature,
                balance=balance,
            )

        await self._book(session, amount, signature)
        return self._record(
            session,
            SweepOutcome.SUCCESS,
            amount,
            tx_ref=signature,
            balance=balance,
            duration_ms=int((time.perf_counter() - started) * 1000),
        )

    async def _book(self, session: SessionRecord, amount: int, signature: str) -> None:
        now = self.clock()

        def add_sweep(current: SessionRecord) -> SessionRecord:
            return current.evolve(
                swept_amount=current.swept_amount + amount,
                last_swept_at=now,
                last_sweep_tx_ref=signature,
            )

        try:
            await asyncio.to_thread(self.store.update, session.session_id, add_sweep)
        except Exception:
            # Funds already moved; the attempt stays a success.
            logger.exception(
                "sweep_bookkeeping_failed",
                extra={"session_id": short_id(session.session_id), "tx_ref": signature, "amount": amount},
            )

    def _record(
        self,
        session: SessionRecord,
        outcome: SweepOutcome,
        amount: int,
        reason: str | None = None,
        tx_ref: str | None = None,
        balance: int | None = None,
        duration_ms: int | None = None,
    ) -> TransferAttempt:
        sweep_attempts_total.labels(outcome=outcome.value).inc()
        extra = {
            "session_id": short_id(session.session_id),
            "address": session.custodial_address,
            "amount": amount,
            "outcome": outcome.value,
            "reason": reason,
            "tx_ref": tx_ref,
            "duration_ms": duration_ms,
        }
        if outcome == SweepOutcome.SUCCESS:
            swept_lamports_total.inc(amount)
            logger.info("sweep_attempt_succeeded", extra=extra)
        elif outcome == SweepOutcome.SKIP:
            logger.info("sweep_attempt_skipped", extra=extra)
        else:
            logger.warning("sweep_attempt_failed", extra=extra)
        return TransferAttempt(
            session_id=session.session_id,
            source_address=session.custodial_address,
            amount_attempted=amount,
            outcome=outcome,
            reason=reason,
            tx_ref=tx_ref,
            balance=balance,
        )
