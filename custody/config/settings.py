"""
Application settings.

Loads configuration from environment variables using pydantic-settings.
"""

from eth_utils import is_address, to_checksum_address
from loguru import logger
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from custody.config.constants import (
    DEFAULT_INTERVAL_SECONDS,
    USDT_DECIMALS,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str
    database_echo: bool = False

    # Chain node
    chain_rpc_url: str
    chain_api_key: str | None = None
    chain_api_key_header: str = "X-API-Key"
    chain_timeout_seconds: float = Field(
        default=30.0, gt=0, description="Timeout for a single node call"
    )

    # Token
    usdt_contract_address: str
    usdt_decimals: int = Field(
        default=USDT_DECIMALS, ge=0, le=36, description="Token decimals"
    )

    # Hot wallet
    hot_wallet_address: str
    # Only read by the settlement pass, never by deposit verification
    hot_wallet_private_key: str | None = Field(default=None, repr=False)

    # Reconciliation
    min_confirmations: int = Field(
        default=1, ge=0, description="Blocks required before a deposit counts"
    )
    deposit_verify_interval_seconds: int = Field(
        default=DEFAULT_INTERVAL_SECONDS, ge=1
    )
    withdrawal_settle_interval_seconds: int = Field(
        default=DEFAULT_INTERVAL_SECONDS, ge=1
    )
    reconciliation_concurrency: int = Field(
        default=1, ge=1, le=64, description="Records processed in parallel per pass"
    )

    # Redis (job guards and Dramatiq)
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: str | None = None
    redis_db: int = 0
    use_redis_lock: bool = False

    # Trigger surface
    http_host: str = "0.0.0.0"
    http_port: int = Field(default=4000, ge=1, le=65535)
    cron_trigger_token: str | None = Field(default=None, repr=False)

    # Application
    environment: str = "production"
    log_level: str = "INFO"
    log_file: str | None = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("usdt_contract_address", "hot_wallet_address")
    @classmethod
    def validate_address(cls, v: str) -> str:
        """Addresses must be well-formed; stored in checksum form."""
        if not v or not is_address(v):
            raise ValueError(f"Invalid chain address: {v!r}")
        return to_checksum_address(v)

    @field_validator("hot_wallet_private_key")
    @classmethod
    def validate_private_key(cls, v: str | None) -> str | None:
        """Empty string means not configured."""
        if v is None or not v.strip():
            return None
        return v.strip()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v_upper

    @property
    def signing_configured(self) -> bool:
        """True when the hot wallet can sign withdrawals."""
        return self.hot_wallet_private_key is not None


def get_settings() -> Settings:
    """Load settings from the environment."""
    loaded = Settings()  # type: ignore[call-arg]
    if not loaded.signing_configured:
        logger.warning(
            "HOT_WALLET_PRIVATE_KEY not set - withdrawal settlement will fail closed"
        )
    return loaded
