"""
Wiring of the service graph. One instance per process, held on app.state.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from solgate.core.config import Settings
from solgate.db.session import build_engine
from solgate.services.ledger import LedgerClient, LedgerClientFactory
from solgate.services.payments.service import PaymentVerifier
from solgate.services.ratelimit.service import RateLimiter
from solgate.services.sessions.base import SessionStore
from solgate.services.sessions.service import SessionService, utcnow
from solgate.services.sessions.sql_store import SqlSessionStore
from solgate.services.sessions.store import InMemorySessionStore
from solgate.services.sweeps.scheduler import SweepScheduler
from solgate.services.sweeps.sweeper import TransferSweeper
from solgate.services.wallets.custodian import WalletCustodian

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    store: SessionStore
    ledger: LedgerClient
    custodian: WalletCustodian
    sessions: SessionService
    payments: PaymentVerifier
    sweeper: TransferSweeper
    scheduler: SweepScheduler
    rate_limiter: RateLimiter

    async def start(self) -> None:
        if self.settings.sweep_enabled:
            self.scheduler.start()

    async def stop(self) -> None:
        await self.scheduler.stop()
        await self.ledger.close()


def build_store(settings: Settings) -> SessionStore:
    if not settings.database_url:
        logger.info("session_store_selected", extra={"status": "memory"})
        return InMemorySessionStore()
    store = SqlSessionStore(build_engine(settings.database_url))
    store.create_schema()
    logger.info("session_store_selected", extra={"status": "sql"})
    return store


def build_services(
    settings: Settings,
    store: SessionStore | None = None,
    ledger: LedgerClient | None = None,
    rate_limiter: RateLimiter | None = None,
    clock: Callable[[], datetime] = utcnow,
) -> Services:
    store = store if store is not None else build_store(settings)
    ledger = ledger if ledger is not None else LedgerClientFactory.create_from_settings(settings)
    custodian = WalletCustodian(settings.custodial_master_key)

    sessions = SessionService(
        store,
        custodian,
        trial_duration=timedelta(seconds=settings.trial_duration_seconds),
        bind_to_client=settings.session_bind_client,
        retention=timedelta(seconds=settings.session_retention_seconds),
        clock=clock,
    )
    sweeper = TransferSweeper(
        store,
        ledger,
        custodian,
        operator_address=settings.operator_wallet_address,
        fee_reserve=settings.fee_reserve_lamports,
        batch_size=settings.sweep_batch_size,
        batch_pause=settings.sweep_batch_pause_seconds,
        confirm_timeout=settings.sweep_confirm_timeout_seconds,
        clock=clock,
    )
    scheduler = SweepScheduler(
        sweeper,
        store,
        interval_seconds=settings.sweep_interval_seconds,
        cleanup=sessions.cleanup_expired,
        cleanup_interval_seconds=settings.cleanup_interval_seconds,
    )
    payments = PaymentVerifier(
        store,
        ledger,
        required_amount=settings.required_payment_lamports,
        grant_duration=timedelta(seconds=settings.access_grant_seconds),
        payment_window=timedelta(seconds=settings.payment_window_seconds),
        confirm_on_ledger=settings.payment_confirm_on_ledger,
        on_commit=scheduler.trigger_session if settings.sweep_enabled else None,
        clock=clock,
    )
    return Services(
        settings=settings,
        store=store,
        ledger=ledger,
        custodian=custodian,
        sessions=sessions,
        payments=payments,
        sweeper=sweeper,
        scheduler=scheduler,
        rate_limiter=rate_limiter if rate_limiter is not None else RateLimiter.from_settings(settings),
    )
