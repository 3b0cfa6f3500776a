# ─────────────────────────────────────────────────────────────────
# config.py - Process Settings
#
# Every value can be overridden with a POWERPULSE_* environment
# variable or a line in .env, e.g.
#   POWERPULSE_HEARTBEAT_TIMEOUT=45
#   POWERPULSE_ADMIN_USERNAME=admin
# ─────────────────────────────────────────────────────────────────

from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Server
    host: str = "0.0.0.0"
    port: int = 1001

    # Liveness
    heartbeat_timeout: float = 30.0  # seconds without a heartbeat before offline
    wake_freshness: float = 300.0    # "seen recently" window for wake suppression

    # Credentials
    token_length: int = 32           # random bytes in a device token
    session_ttl: int = 24 * 60 * 60  # admin session lifetime in seconds
    admin_username: Optional[str] = None
    admin_password: Optional[str] = None

    # Storage
    data_file: Path = Path("devices.json")
    sessions_file: Path = Path("sessions.json")

    # Scheduling
    timezone: Optional[str] = None   # IANA zone for daily tasks, server local time if unset

    # Logging
    log_verbose: bool = False

    model_config = SettingsConfigDict(env_prefix="POWERPULSE_", env_file=".env", extra="ignore")


def get_settings() -> Settings:
    return Settings()
