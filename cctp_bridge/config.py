import os

from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    def model_post_init(self, __context: Any) -> None:
        """Ensure we pick up legacy environment variable aliases."""

        super().model_post_init(__context)

        if not self.bridge_private_key:
            fallback = os.getenv("PRIVATE_KEY") or os.getenv("WALLET_PRIVATE_KEY")
            if fallback:
                object.__setattr__(self, "bridge_private_key", fallback)

    # Server Settings
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8000, description="Server port")
    log_level: str = Field(default="INFO", description="Logging level")

    # Chains
    source_chain: str = Field(default="BASE", description="Chain USDC is burned on")
    base_rpc_url: str = Field(
        default="https://mainnet.base.org",
        description="Base JSON-RPC endpoint",
        validation_alias=AliasChoices("base_rpc_url", "BASE_RPC_URL"),
    )
    polygon_rpc_url: str = Field(
        default="https://polygon-rpc.com",
        description="Polygon JSON-RPC endpoint",
        validation_alias=AliasChoices("polygon_rpc_url", "POLYGON_RPC_URL"),
    )
    ethereum_rpc_url: str = Field(
        default="https://eth.llamarpc.com",
        description="Ethereum mainnet JSON-RPC endpoint",
        validation_alias=AliasChoices("ethereum_rpc_url", "ETHEREUM_RPC_URL", "ETH_RPC_URL"),
    )

    # Attestation service
    attestation_api_url: str = Field(
        default="https://iris-api.circle.com/attestations",
        description="Base URL of the attestation service (message hash is appended)",
    )
    attestation_polling_interval_seconds: float = Field(
        default=10.0,
        ge=0,
        description="Delay between attestation polls",
    )
    attestation_max_attempts: int = Field(
        default=180,
        ge=1,
        description="Attestation polls before giving up (180 x 10s = 30 minutes)",
    )

    # Fees (USDC smallest units, 6 decimals)
    bridge_fee_units: int = Field(default=100_000, ge=0, description="Fixed minimum bridge fee ($0.10)")
    bridge_fee_bps: int = Field(default=0, ge=0, le=10_000, description="Proportional fee in basis points")

    # Signer
    bridge_private_key: str = Field(default="", description="Hex private key used to sign bridge transactions")

    # RPC behaviour
    request_timeout_seconds: int = Field(default=30, description="Request timeout")
    rpc_read_max_attempts: int = Field(default=3, ge=1, description="Attempts for retryable chain reads")
    rpc_read_retry_delay_seconds: float = Field(default=0.5, ge=0, description="Initial backoff for chain reads")
    receipt_timeout_seconds: int = Field(default=300, ge=1, description="Max wait for a transaction receipt")
    receipt_poll_interval_seconds: float = Field(default=2.0, ge=0, description="Receipt polling interval")
    gas_multiplier: float = Field(default=1.2, ge=1.0, description="Safety multiplier applied to gas estimates")

    # Events
    event_queue_size: int = Field(default=256, ge=1, description="Per-subscriber progress event buffer")

    @property
    def has_signer(self) -> bool:
        return bool(self.bridge_private_key)

    @property
    def rpc_urls(self) -> Dict[str, str]:
        return {
            "BASE": self.base_rpc_url,
            "POLYGON": self.polygon_rpc_url,
            "ETHEREUM": self.ethereum_rpc_url,
        }

    def rpc_url_for(self, chain: str) -> Optional[str]:
        return self.rpc_urls.get(chain.upper())


# Global settings instance
settings = Settings()
