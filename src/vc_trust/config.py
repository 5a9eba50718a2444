"""
Configuration for the trust engine.

All environment-based configuration flows through this module. Settings are
read from ``VC_TRUST_*`` environment variables or a ``.env`` file.

Usage:
    from vc_trust.config import get_settings
    settings = get_settings()
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Trust engine settings."""

    model_config = SettingsConfigDict(
        env_prefix="VC_TRUST_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    data_dir: Path = Field(
        default=Path("data"),
        description="Directory holding credential records, 2FA config and the issuer key",
    )
    api_key: str = Field(
        default="demo-issuer-api-key-change-in-production",
        description="API key required on issuer-only endpoints",
    )

    # Issuer identity
    issuer_did: str = Field(default="did:web:issuer.example.edu")
    issuer_name: str = Field(default="Ciphers Issuer")
    issuer_account: str = Field(default="issuer@example.edu")
    base_url: str = Field(
        default="http://localhost:3000",
        description="Public base URL used in credentialStatus entries",
    )

    # Content store (IPFS HTTP API)
    ipfs_api_url: str | None = Field(
        default="http://127.0.0.1:5001",
        description="IPFS HTTP API endpoint; empty disables the content store",
    )
    ipfs_timeout: float = Field(default=10.0, gt=0)
    ipfs_upload_retries: int = Field(default=3, ge=0)
    ipfs_retry_delay: float = Field(default=1.0, ge=0)

    # Second factor
    allow_revocation_without_2fa: bool = Field(
        default=True,
        description=(
            "Allow revocation while 2FA is not configured. Insecure; "
            "intended for bootstrap and demo deployments only."
        ),
    )
    totp_window: int = Field(default=1, ge=0)
    backup_code_count: int = Field(default=10, gt=0)

    log_level: str = Field(default="INFO")

    @property
    def credentials_file(self) -> Path:
        return self.data_dir / "credentials.json"

    @property
    def two_factor_file(self) -> Path:
        return self.data_dir / "two_factor.json"

    @property
    def signing_key_file(self) -> Path:
        return self.data_dir / "issuer_key.pem"


_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the process-wide settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None
