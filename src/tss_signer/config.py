"""Application configuration using pydantic-settings.

Settings are read once from the environment (``TSS_`` prefix) or a ``.env``
file and never mutated afterwards. Per-request values such as the vault
coordinates are derived from them and passed explicitly.
"""

from functools import lru_cache
from typing import Optional

from eth_utils import is_hex_address
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from tss_signer.models import VaultConfig


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="TSS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # ======================
    # Vault
    # ======================
    home: str = Field(default="test1", description="Home directory of the TSS party")
    vault: str = Field(default="default", description="Vault name")
    password: str = Field(default="", description="Vault password")
    channel_id: str = Field(default="", description="Signing channel id")
    channel_password: str = Field(default="", description="Signing channel password")

    # ======================
    # Signer backend
    # ======================
    signer_backend: str = Field(default="remote", description="Signer backend: remote or local")
    signer_url: str = Field(default="http://127.0.0.1:8545/tss", description="TSS signing sidecar URL")
    signer_timeout: float = Field(default=300.0, description="Seconds to wait for a signing session")
    local_private_key: str = Field(default="", description="Private key for the local dev signer")
    expected_address: Optional[str] = Field(
        default=None, description="Vault address the signature must recover to"
    )

    # ======================
    # Network
    # ======================
    chain_id: int = Field(default=1, description="Default chain id for transactions")
    rpc_url: str = Field(default="", description="Ethereum JSON-RPC URL for broadcast")
    rpc_timeout: float = Field(default=30.0, description="Broadcast request timeout")
    explorer_url: str = Field(
        default="https://sepolia.etherscan.io", description="Block explorer base URL"
    )

    # ======================
    # Logging
    # ======================
    log_level: str = Field(default="INFO", description="Log level (DEBUG, INFO, WARNING, ERROR)")

    @field_validator("signer_backend")
    @classmethod
    def validate_signer_backend(cls, v: str) -> str:
        """Only known backends are accepted."""
        v = v.lower()
        if v not in ("remote", "local"):
            raise ValueError("signer_backend must be 'remote' or 'local'")
        return v

    @field_validator("expected_address")
    @classmethod
    def validate_expected_address(cls, v: Optional[str]) -> Optional[str]:
        """Validate Ethereum address format."""
        if not v:
            return None
        if not is_hex_address(v):
            raise ValueError("Invalid Ethereum address format")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        v = v.upper()
        if v == "WARN":
            v = "WARNING"
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return v

    @field_validator("chain_id")
    @classmethod
    def validate_chain_id(cls, v: int) -> int:
        if v < 0:
            raise ValueError("chain_id must not be negative")
        return v

    def vault_config(self) -> VaultConfig:
        """Build the vault coordinates for a signing request."""
        return VaultConfig(
            home=self.home,
            vault=self.vault,
            password=self.password,
            channel_id=self.channel_id,
            channel_password=self.channel_password,
        )

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "home": self.home,
            "vault": self.vault,
            "password": "***" if self.password else "(not set)",
            "channel_id": self.channel_id or "(not set)",
            "channel_password": "***" if self.channel_password else "(not set)",
            "signer": {
                "backend": self.signer_backend,
                "url": self.signer_url if self.signer_backend == "remote" else None,
                "timeout": self.signer_timeout,
                "local_key": "***" if self.local_private_key else "(not set)",
            },
            "expected_address": self.expected_address or "(derive from vault)",
            "network": {
                "chain_id": self.chain_id,
                "rpc": self.rpc_url or "(not set)",
                "explorer": self.explorer_url,
            },
            "log_level": self.log_level,
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
