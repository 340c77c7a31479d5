"""Runtime configuration for the Notion bridge."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigError

# Sent without a model field; Notion picks its own default for it
LEGACY_MODEL = "anthropic-sonnet-3.x-stable"
DEFAULT_TIMEZONE = "America/Los_Angeles"


class Settings(BaseSettings):
    """Runtime configuration for the Notion bridge."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Credential sources
    notion_cookie: str | None = Field(default=None, alias="NOTION_COOKIE")
    cookie_file: str | None = Field(default=None, alias="COOKIE_FILE")
    cookie_delimiter: str = Field(default="|", alias="COOKIE_DELIMITER")

    # Bearer token expected from API callers
    proxy_auth_token: str = Field(default="default_token", alias="PROXY_AUTH_TOKEN")

    # Notion backend
    notion_api_url: str = Field(
        default="https://www.notion.so/api/v3/runInferenceTranscript", alias="NOTION_API_URL"
    )
    notion_client_version: str = Field(default="23.13.0.3686", alias="NOTION_CLIENT_VERSION")
    notion_origin: str = Field(default="https://www.notion.so", alias="NOTION_ORIGIN")
    notion_referer: str = Field(default="https://www.notion.so/chat", alias="NOTION_REFERER")
    notion_user_agent: str = Field(
        default=(
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/136.0.0.0 Safari/537.36"
        ),
        alias="NOTION_USER_AGENT",
    )
    notion_timezone: str = Field(default=DEFAULT_TIMEZONE, alias="NOTION_TIMEZONE")

    # Seconds to wait for the first body byte before giving up
    request_timeout_seconds: float = Field(default=30.0, alias="REQUEST_TIMEOUT_SECONDS", gt=0)
    connect_timeout_seconds: float = Field(default=10.0, alias="CONNECT_TIMEOUT_SECONDS", gt=0)

    # Models
    model_mapping: dict[str, str] = Field(
        default_factory=lambda: {
            "google-gemini-2.5-pro": "vertex-gemini-2.5-pro",
            "google-gemini-2.5-flash": "vertex-gemini-2.5-flash",
        },
        alias="MODEL_MAPPING",
    )
    available_models: list[str] = Field(
        default_factory=lambda: [
            "openai-gpt-4.1",
            "anthropic-opus-4",
            "anthropic-sonnet-4",
            LEGACY_MODEL,
            "google-gemini-2.5-pro",
            "google-gemini-2.5-flash",
        ],
        alias="AVAILABLE_MODELS",
    )
    legacy_model: str = Field(default=LEGACY_MODEL, alias="LEGACY_MODEL")

    # Advance the pool after a successful completion, not only after failures
    rotate_on_success: bool = Field(default=True, alias="ROTATE_ON_SUCCESS")

    # Optional egress: plain HTTP(S) proxy, or a relay server taking a JSON envelope
    proxy_url: str | None = Field(default=None, alias="PROXY_URL")
    relay_server_url: str | None = Field(default=None, alias="RELAY_SERVER_URL")

    # Credential persistence
    persistence_backend: Literal["file", "firestore", "memory"] = Field(
        default="file", alias="PERSISTENCE_BACKEND"
    )
    data_dir: str = Field(default="data", alias="DATA_DIR")
    firebase_service_account_key: str | None = Field(
        default=None, alias="FIREBASE_SERVICE_ACCOUNT_KEY"
    )
    firestore_collection: str = Field(default="notion-bridge-credentials", alias="FIRESTORE_COLLECTION")

    # FastAPI
    app_host: str = Field(default="0.0.0.0", alias="APP_HOST")
    app_port: int = Field(default=7860, alias="APP_PORT")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")


@lru_cache
def get_settings() -> Settings:
    """Return memoized settings so multiple imports share a single instance."""

    return Settings()  # type: ignore[call-arg]


def load_credential_blob(settings: Settings) -> str:
    """Return the raw credential blob, preferring COOKIE_FILE over NOTION_COOKIE."""
    if settings.cookie_file:
        path = Path(settings.cookie_file).expanduser()
        if path.is_file():
            content = path.read_text(encoding="utf-8").strip()
            if content:
                return content
    if settings.notion_cookie:
        return settings.notion_cookie
    raise ConfigError("Either COOKIE_FILE or NOTION_COOKIE must be set")
