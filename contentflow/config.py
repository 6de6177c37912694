"""Centralized configuration via pydantic-settings.

Sheet identity, service-account credentials, sync cadence and HTTP tuning
knobs live here.  Override any value via environment variable
(e.g., ``SYNC_INTERVAL_SECONDS=60``).
"""

from functools import lru_cache

from pydantic import SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # --- Google Sheets ---
    GOOGLE_SHEET_ID: str = ""
    GOOGLE_CLIENT_EMAIL: str = ""
    GOOGLE_PRIVATE_KEY: SecretStr = SecretStr("")
    SHEET_TAB: str = ""  # empty = first tab of the spreadsheet

    # --- Adapter ---
    SYNC_INTERVAL_SECONDS: float = 30.0
    SCHEMA_STRICT: bool = True  # reject duplicate/blank header names
    SERIALIZE_UPDATES: bool = True  # per-identifier lock on updates
    STARTUP_FAIL_FAST: bool = False  # abort startup when the sheet is unreachable

    # --- API ---
    ALLOWED_ORIGINS: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
    ]
    RATE_LIMIT_REQUESTS: int = 100  # requests per window per client IP
    RATE_LIMIT_WINDOW_SECONDS: float = 900.0  # 15 minutes
    MAX_REQUEST_BODY_SIZE: int = 1_048_576  # 1 MB, bulk sync payloads
    PORT: int = 3001

    # --- Observability ---
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"
    VERSION: str = "0.1.0"

    model_config = {"env_prefix": "", "case_sensitive": True}

    @field_validator("GOOGLE_PRIVATE_KEY", mode="before")
    @classmethod
    def unescape_private_key(cls, v):
        """Restore newlines in PEM keys passed through single-line env vars."""
        if isinstance(v, str):
            return v.replace("\\n", "\n")
        return v

    @model_validator(mode="after")
    def validate_sync_interval(self) -> "Settings":
        """Periodic sync needs a positive interval."""
        if self.SYNC_INTERVAL_SECONDS <= 0:
            raise ValueError(
                f"SYNC_INTERVAL_SECONDS ({self.SYNC_INTERVAL_SECONDS}) must be positive"
            )
        return self

    def credentials_status(self) -> dict[str, bool]:
        """Presence flags for the sheet credentials, safe to expose."""
        private_key = self.GOOGLE_PRIVATE_KEY.get_secret_value()
        return {
            "hasSheetId": bool(self.GOOGLE_SHEET_ID),
            "hasClientEmail": bool(self.GOOGLE_CLIENT_EMAIL),
            "hasPrivateKey": bool(private_key),
            "clientEmailValid": "@" in self.GOOGLE_CLIENT_EMAIL,
            "privateKeyValid": "BEGIN PRIVATE KEY" in private_key,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings()
