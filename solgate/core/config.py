"""
Application configuration.
All settings are loaded from environment variables.
Use env.example as a reference for the available variables.
"""
from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Every field has a default so the service can boot locally against the
    in-memory store and ledger. OPERATOR_WALLET_ADDRESS has to be set before
    sweeps can run.
    """

    # ===========================================
    # APPLICATION
    # ===========================================
    app_env: str = "local"
    # Comma-separated (e.g. http://localhost:3000,https://chat.example.com). Empty = default list in main.py.
    cors_origins: str = ""
    # Trusted proxy IPs (comma-separated). Used for X-Forwarded-For in production.
    trusted_proxy_ips: str = ""

    # ===========================================
    # STORAGE
    # ===========================================
    # Empty = in-memory session store (process lifetime only).
    database_url: str | None = None
    # Empty = rate limiting disabled.
    redis_url: str | None = None

    # ===========================================
    # LEDGER
    # ===========================================
    ledger_backend: str = "solana"  # solana, memory
    solana_rpc_url: str = "https://api.mainnet-beta.solana.com"
    solana_commitment: str = "confirmed"
    ledger_request_timeout: float = 10.0
    # Destination of all sweeps. Empty = sweeps fail with a configuration error.
    operator_wallet_address: str = ""

    # ===========================================
    # ACCESS & PAYMENTS
    # ===========================================
    required_payment_lamports: int = 900_000  # 0.0009 SOL
    trial_duration_seconds: int = 180
    # Paid access window. Use a very large value for "perpetual" access.
    access_grant_seconds: int = 3600
    payment_window_seconds: int = 1800
    # Read the custodial balance before committing a notified payment.
    payment_confirm_on_ledger: bool = True

    # ===========================================
    # SWEEPS
    # ===========================================
    sweep_enabled: bool = True
    fee_reserve_lamports: int = 5000
    sweep_interval_seconds: int = 300
    sweep_batch_size: int = 10
    sweep_batch_pause_seconds: float = 1.0
    sweep_confirm_timeout_seconds: float = 30.0

    # ===========================================
    # SESSIONS
    # ===========================================
    session_bind_client: bool = True
    session_retention_seconds: int = 86400
    cleanup_interval_seconds: int = 300
    # Fernet key for custodial secrets at rest. Empty = secrets stored as base58.
    custodial_master_key: str | None = None

    # ===========================================
    # ADMIN API
    # ===========================================
    admin_api_key: str | None = None  # Optional, but recommended

    # ===========================================
    # RATE LIMIT
    # ===========================================
    rate_limit_requests: int = 100
    rate_limit_window_seconds: int = 60

    # ===========================================
    # LOGGING
    # ===========================================
    request_id_header: str = "X-Request-Id"
    log_file: str | None = None
    log_max_bytes: int = 10_000_000
    log_backup_count: int = 5

    @field_validator(
        "required_payment_lamports",
        "trial_duration_seconds",
        "access_grant_seconds",
        "payment_window_seconds",
        "sweep_interval_seconds",
        "sweep_batch_size",
        "cleanup_interval_seconds",
        "rate_limit_requests",
        "rate_limit_window_seconds",
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be positive")
        return v

    @field_validator("fee_reserve_lamports")
    @classmethod
    def validate_fee_reserve(cls, v: int) -> int:
        if v < 0:
            raise ValueError("fee_reserve_lamports must not be negative")
        return v

    @field_validator("sweep_confirm_timeout_seconds", "sweep_batch_pause_seconds")
    @classmethod
    def validate_non_negative_seconds(cls, v: float) -> float:
        if v < 0:
            raise ValueError("must not be negative")
        return v

    @field_validator("ledger_backend")
    @classmethod
    def normalize_backend(cls, v: str) -> str:
        return v.lower().strip()

    @field_validator("operator_wallet_address")
    @classmethod
    def strip_operator_address(cls, v: str) -> str:
        return v.strip()

    @property
    def trusted_proxy_ips_set(self) -> set[str]:
        """Get trusted proxy IPs as a set."""
        return {ip.strip() for ip in self.trusted_proxy_ips.split(",") if ip.strip()}

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
