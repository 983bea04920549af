"""
Factory for creating the ledger client based on configuration.
"""
import logging

from solgate.services.ledger.base import LedgerClient
from solgate.services.ledger.providers.memory import InMemoryLedgerClient
from solgate.services.ledger.providers.solana import SolanaLedgerClient

logger = logging.getLogger(__name__)


class LedgerClientFactory:
    """Factory for creating ledger clients."""

    PROVIDERS = {
        "solana": SolanaLedgerClient,
        "memory": InMemoryLedgerClient,
    }

    @classmethod
    def create(cls, backend: str, config: dict) -> LedgerClient:
        """
        Create ledger client by backend name.

        Raises:
            ValueError: If backend name is unknown
        """
        provider_class = cls.PROVIDERS.get(backend.lower())
        if not provider_class:
            available = ", ".join(cls.PROVIDERS.keys())
            raise ValueError(f"Unknown ledger backend: {backend}. Available backends: {available}")
        logger.info("ledger_client_created", extra={"status": backend})
        return provider_class(config)

    @classmethod
    def create_from_settings(cls, settings) -> LedgerClient:
        config = {
            "rpc_url": settings.solana_rpc_url,
            "commitment": settings.solana_commitment,
            "timeout": settings.ledger_request_timeout,
            "fee": settings.fee_reserve_lamports,
        }
        return cls.create(settings.ledger_backend, config)
