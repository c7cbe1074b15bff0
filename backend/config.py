"""
Configuration management for the Buy-a-Tea client.

Loads settings from .env via pydantic-settings.

Notes:
    - wallet_private_key selects the local-key wallet provider; when it is
      empty the node's managed accounts are used instead.
    - validate_production_settings() enforces strict CORS in production.
"""
import logging

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ── Ethereum node ───────────────────────────────────────────────
    # Empty string means "no wallet provider available".
    rpc_url: str = "http://127.0.0.1:8545"

    # ── Contract ────────────────────────────────────────────────────
    contract_address: str = "0xe331Dd38436Ad4876cA4A79FcfB969b77015d94D"
    contract_name: str = "buy_me_a_tea"  # folder under contracts/ holding abi.json

    # ── Wallet ──────────────────────────────────────────────────────
    wallet_private_key: str = ""

    # ── Tipping ─────────────────────────────────────────────────────
    tip_amount_eth: str = "0.001"

    # ── Live feed ───────────────────────────────────────────────────
    memo_poll_seconds: float = 2.0
    dedupe_memos: bool = False  # only drops early live copies of batch records

    # ── Application ─────────────────────────────────────────────────
    environment: str = "development"
    auto_connect: bool = False  # connect on startup instead of waiting for the page

    # ── CORS ────────────────────────────────────────────────────────
    cors_origins: str = "http://localhost:8000,http://127.0.0.1:8000,http://localhost:3000,http://127.0.0.1:3000"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # allow unknown .env keys without crashing
    )

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def uses_local_key(self) -> bool:
        return bool(self.wallet_private_key)

    def validate_production_settings(self):
        """
        Validate settings for production safety.

        Called during app startup.
        """
        if self.environment == "production":
            if "*" in self.cors_origins:
                raise ValueError(
                    "CORS_ORIGINS must not contain '*' in production. "
                    "Set explicit allowed origins."
                )
            if not self.rpc_url:
                raise ValueError("RPC_URL must be set in production.")
            logger.info("Production settings validated")
        else:
            warnings = []
            if self.uses_local_key:
                warnings.append("WALLET_PRIVATE_KEY set (server signs transactions with a local key)")
            if "*" in self.cors_origins:
                warnings.append("CORS_ORIGINS contains '*' (open access)")
            if not self.rpc_url:
                warnings.append("RPC_URL empty (no wallet provider, connect will fail)")
            for w in warnings:
                logger.warning(f"Settings warning: {w}")


# Global settings instance
settings = Settings()
