"""
Application configuration models and helpers.

Centralizes settings management so the FastAPI app, the token services and
the operator scripts share a consistent configuration surface.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

import os

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_env_file(path: str = ".env") -> None:
    """Best-effort load key=value pairs from a .env file without extra deps."""
    env_path = Path(path)
    if not env_path.exists():
        return
    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if not key or key in os.environ:
            continue
        cleaned = value.strip().strip('"').strip("'")
        os.environ[key] = cleaned


_load_env_file()


class HighLevelSettings(BaseSettings):
    """Configuration required for talking to the HighLevel platform."""

    model_config = SettingsConfigDict(populate_by_name=True, extra="ignore")

    base_url: str = Field(
        "https://services.leadconnectorhq.com", validation_alias="GHL_BASE_URL"
    )
    api_base_url: Optional[str] = Field(
        None,
        validation_alias="GHL_API_BASE",
        description="Data API host. Defaults to the OAuth base URL when omitted.",
    )
    api_version: Optional[str] = Field("2021-07-28", validation_alias="GHL_API_VERSION")
    client_id: Optional[str] = Field(None, validation_alias="GHL_CLIENT_ID")
    client_secret: Optional[str] = Field(None, validation_alias="GHL_CLIENT_SECRET")
    redirect_uri: Optional[str] = Field(None, validation_alias="GHL_REDIRECT_URI")
    install_url: Optional[str] = Field(None, validation_alias="GHL_INSTALL_URL")
    install_success_redirect: Optional[str] = Field(
        None,
        validation_alias="GHL_INSTALL_SUCCESS_REDIRECT",
        description="Where browsers land after a successful installation.",
    )
    scope: Optional[str] = Field(
        None,
        validation_alias="GHL_SCOPE",
        description="Space separated scopes recorded when the exchange omits them.",
    )
    agency_token_ttl_seconds: int = Field(
        3600, validation_alias="GHL_AGENCY_TOKEN_TTL_SECONDS"
    )
    location_token_ttl_seconds: int = Field(
        900, validation_alias="GHL_LOCATION_TOKEN_TTL_SECONDS"
    )
    http_timeout_seconds: float = Field(10.0, validation_alias="GHL_HTTP_TIMEOUT_SECONDS")

    @field_validator("agency_token_ttl_seconds", "location_token_ttl_seconds")
    @classmethod
    def _positive_ttl(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("Token TTL must be a positive number of seconds.")
        return value

    @property
    def data_api_base_url(self) -> str:
        return self.api_base_url or self.base_url


class SecuritySettings(BaseSettings):
    """Security-related configuration."""

    model_config = SettingsConfigDict(populate_by_name=True, extra="ignore")

    token_keyring: Optional[str] = Field(
        None,
        validation_alias="GHL_TOKEN_ENC_KEYRING",
        description="Comma separated 'version:base64key' entries used to encrypt tokens.",
    )
    token_active_key: Optional[str] = Field(
        None,
        validation_alias="GHL_TOKEN_ENC_KEY_ACTIVE",
        description="Key version used for new encryptions. Defaults to the first entry.",
    )
    internal_api_key: Optional[str] = Field(
        None,
        validation_alias="INTERNAL_API_KEY",
        description="Shared secret for internal endpoints. Unset disables the check.",
    )
    internal_auth_header: str = Field(
        "x-internal-key", validation_alias="INTERNAL_AUTH_HEADER"
    )


class OAuthSettings(BaseSettings):
    """OAuth installation flow configuration."""

    model_config = SettingsConfigDict(populate_by_name=True, extra="ignore")

    use_state: bool = Field(True, validation_alias="GHL_OAUTH_USE_STATE")
    allow_no_state: bool = Field(False, validation_alias="GHL_ALLOW_OAUTH_NO_STATE")
    state_cookie_name: str = Field("ghl_oauth_state", validation_alias="OAUTH_STATE_COOKIE")
    state_ttl_seconds: int = Field(600, validation_alias="OAUTH_STATE_TTL")

    @property
    def enforce_state(self) -> bool:
        return self.use_state and not self.allow_no_state


class StorageSettings(BaseSettings):
    """Token persistence backend selection."""

    model_config = SettingsConfigDict(populate_by_name=True, extra="ignore")

    backend: Literal["sqlite", "dynamodb"] = Field(
        "sqlite", validation_alias="TOKEN_STORE_BACKEND"
    )
    sqlite_path: str = Field(
        "var/tokens.sqlite3", validation_alias="TOKEN_STORE_SQLITE_PATH"
    )
    dynamodb_table_name: Optional[str] = Field(None, validation_alias="DYNAMODB_TABLE_NAME")
    region_name: str = Field("us-east-1", validation_alias="AWS_REGION")


class AppSettings(BaseSettings):
    """Root settings object for the FastAPI application."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        populate_by_name=True,
        extra="ignore",
    )

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="APP_LOG_LEVEL")
    highlevel: HighLevelSettings = Field(default_factory=HighLevelSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    oauth: OAuthSettings = Field(default_factory=OAuthSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()  # type: ignore[call-arg]


__all__ = [
    "AppSettings",
    "HighLevelSettings",
    "OAuthSettings",
    "SecuritySettings",
    "StorageSettings",
    "get_settings",
]
