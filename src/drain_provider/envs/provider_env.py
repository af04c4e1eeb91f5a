from __future__ import annotations

import logging
import os
from typing import Optional

from eth_account import Account
from pydantic import BaseModel, field_validator, model_validator

from ..domain.provider.constants import CHAIN_NAMES, DRAIN_ADDRESSES

logger = logging.getLogger(__name__)

PUBLIC_RPC_URLS: dict[int, str] = {
    137: "https://polygon-rpc.com",
    80002: "https://rpc-amoy.polygon.technology",
}


class Settings(BaseModel):
    """Typed provider settings built from environment variables."""

    provider_private_key: str
    provider_address: str = ""
    chain_id: int = 137
    polygon_rpc_url: Optional[str] = None
    drain_contract_address: Optional[str] = None
    rpc_timeout_seconds: float = 30.0

    claim_threshold: int = 1_000_000
    price_per_request: int = 5_000
    auto_claim_interval_minutes: float = 10
    auto_claim_buffer_seconds: int = 3600

    # Database settings
    database_url: str = "redis://localhost:6379/0"
    database_max_connections: int = 50
    database_socket_timeout: float = 5.0

    # API settings
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_debug: bool = False
    api_workers: int = 1
    api_cors_origins: list[str] = ["*"]

    # Application settings
    provider_name: str = "DRAIN Provider"
    app_name: str = "DRAIN Provider"
    app_version: str = "1.0.0"

    @field_validator("provider_private_key")
    @classmethod
    def validate_provider_private_key(cls, v: str) -> str:
        if not v:
            raise ValueError("Provider private key cannot be empty")
        key = v if v.startswith("0x") else "0x" + v
        try:
            Account.from_key(key)
        except Exception as e:
            raise ValueError(f"Invalid provider private key: {e}") from e
        return key

    @field_validator("chain_id")
    @classmethod
    def validate_chain_id(cls, v: int) -> int:
        if v not in DRAIN_ADDRESSES:
            raise ValueError(
                f"Unsupported CHAIN_ID {v}; expected one of {sorted(DRAIN_ADDRESSES)}"
            )
        return v

    @field_validator(
        "claim_threshold",
        "price_per_request",
        "auto_claim_interval_minutes",
        "auto_claim_buffer_seconds",
    )
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("must be non-negative")
        return v

    @field_validator("database_max_connections", "database_socket_timeout")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be positive")
        return v

    @model_validator(mode="after")
    def fill_chain_defaults(self) -> "Settings":
        if not self.provider_address:
            self.provider_address = Account.from_key(self.provider_private_key).address
        if not self.drain_contract_address:
            self.drain_contract_address = DRAIN_ADDRESSES[self.chain_id]
        return self

    @property
    def chain_name(self) -> str:
        return CHAIN_NAMES.get(self.chain_id, str(self.chain_id))

    @property
    def rpc_url(self) -> str:
        return self.polygon_rpc_url or PUBLIC_RPC_URLS[self.chain_id]


def get_settings() -> Settings:
    """Return typed settings instance sourced from env vars."""
    rpc_url = os.environ.get("POLYGON_RPC_URL") or None
    if rpc_url is None:
        logger.warning(
            "No POLYGON_RPC_URL set, using public RPC (rate-limited). "
            "Set POLYGON_RPC_URL for reliable claiming."
        )
    return Settings(
        provider_private_key=os.environ.get("PROVIDER_PRIVATE_KEY", ""),
        chain_id=int(os.environ.get("CHAIN_ID", "137")),
        polygon_rpc_url=rpc_url,
        drain_contract_address=os.environ.get("DRAIN_CONTRACT_ADDRESS") or None,
        rpc_timeout_seconds=float(os.environ.get("RPC_TIMEOUT_SECONDS", "30")),
        claim_threshold=int(os.environ.get("CLAIM_THRESHOLD", "1000000")),
        price_per_request=int(os.environ.get("PRICE_PER_REQUEST", "5000")),
        auto_claim_interval_minutes=float(
            os.environ.get("AUTO_CLAIM_INTERVAL_MINUTES", "10")
        ),
        auto_claim_buffer_seconds=int(
            os.environ.get("AUTO_CLAIM_BUFFER_SECONDS", "3600")
        ),
        database_url=os.environ.get("DATABASE_URL", "redis://localhost:6379/0"),
        database_max_connections=int(
            os.environ.get("DATABASE_MAX_CONNECTIONS", "50")
        ),
        database_socket_timeout=float(
            os.environ.get("DATABASE_SOCKET_TIMEOUT_SECONDS", "5")
        ),
        api_host=os.environ.get("API_HOST", "0.0.0.0"),
        api_port=int(os.environ.get("API_PORT", "8000")),
        api_debug=os.environ.get("API_DEBUG", "false").lower() == "true",
        api_workers=int(os.environ.get("API_WORKERS", "1")),
        api_cors_origins=os.environ.get("API_CORS_ORIGINS", "*").split(","),
        provider_name=os.environ.get("PROVIDER_NAME", "DRAIN Provider"),
        app_name=os.environ.get("APP_NAME", "DRAIN Provider"),
        app_version=os.environ.get("APP_VERSION", "1.0.0"),
    )
