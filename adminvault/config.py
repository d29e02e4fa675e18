"""
Settings for the admin authentication subsystem.

Values come from ``ADMINVAULT_*`` environment variables or a ``.env``
file; defaults match the lockout/session policy constants.
"""

from datetime import timedelta
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


MAX_FAILED_ATTEMPTS = 5
LOCKOUT_MINUTES = 15
SESSION_HOURS = 8


class AuthSettings(BaseSettings):
    # Lockout
    max_failed_attempts: int = Field(default=MAX_FAILED_ATTEMPTS, ge=1)
    lockout_minutes: int = Field(default=LOCKOUT_MINUTES, ge=1)

    # Sessions
    session_hours: int = Field(default=SESSION_HOURS, ge=1)
    session_token_bytes: int = Field(default=64, ge=32)  # >= 256 bits
    session_secret: Optional[str] = Field(default=None)  # hex; random per process if unset

    # TOTP
    issuer: str = Field(default="AdminVault")
    totp_digits: int = Field(default=6)
    totp_period: int = Field(default=30)
    totp_window: int = Field(default=2, ge=0)
    totp_secret_bytes: int = Field(default=32, ge=16)

    # Backup codes
    backup_code_count: int = Field(default=10, ge=1)
    backup_code_bytes: int = Field(default=4, ge=4)

    # Store
    store_lock_timeout: float = Field(default=5.0, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="ADMINVAULT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def lockout_duration(self) -> timedelta:
        return timedelta(minutes=self.lockout_minutes)

    @property
    def session_lifetime(self) -> timedelta:
        return timedelta(hours=self.session_hours)

    @property
    def session_secret_bytes(self) -> Optional[bytes]:
        return bytes.fromhex(self.session_secret) if self.session_secret else None


@lru_cache
def get_settings() -> AuthSettings:
    return AuthSettings()
