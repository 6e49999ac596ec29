"""Harness configuration via pydantic-settings.

Reads from .env file or environment variables. Variable names follow the
network's deployment environment (WEB3_URL, TEST_MNEMONIC, TEST_ERC20,
OPERATOR_FRANKLIN_ADDRESS, ...) so the harness can run inside the same shell
that launched the rollup.

Usage:
    from rollup_harness.config import get_settings
    settings = get_settings()
    print(settings.web3_url)
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the reconciliation harness."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Application ---
    app_env: Literal["development", "ci", "production"] = "development"
    app_log_level: str = "INFO"
    json_logs: bool = False

    # --- Chain (web3) ---
    web3_url: str = "http://localhost:8545"
    eth_network: str = "localhost"
    test_mnemonic: str = ""
    test_erc20: str = ""
    chain_tx_timeout_seconds: int = 120

    # --- Rollup (JSON-RPC) ---
    rollup_rpc_url: str = "http://localhost:3030"
    operator_franklin_address: str = ""
    rpc_timeout_seconds: float = 30.0
    # "package.module:callable" returning a rollup signer for a private key.
    rollup_signer_factory: str = ""

    # --- Confirmation policy ---
    commit_timeout_seconds: float = 120.0
    verify_timeout_seconds: float = 600.0
    poll_interval_seconds: float = 1.0

    # --- Scenario ---
    deposit_amount: str = "0.018"
    funding_eth_depositor: str = "0.02"
    funding_erc20_depositor: str = "0.02"
    funding_eth_account: str = "0.01"

    @property
    def is_localhost(self) -> bool:
        return self.eth_network == "localhost"

    @property
    def network_name(self) -> str:
        """Network label used in logs: anything but localhost is a testnet."""
        return "localhost" if self.is_localhost else "testnet"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton of the harness settings."""
    return Settings()
