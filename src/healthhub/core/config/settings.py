"""Application settings loaded from environment variables."""

from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """HealthHub insight server configuration."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Server
    # Loopback by default; the OAuth bridge routes and tools have no auth layer.
    healthhub_host: str = "127.0.0.1"
    healthhub_port: int = 8001
    healthhub_log_level: str = "info"
    healthhub_allow_insecure_bind: bool = False

    # Remote insight LLM
    llm_provider: Literal["anthropic", "openai", "mock"] = "anthropic"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-3-haiku-20240307"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    llm_max_tokens: int = 1500
    # When False, a malformed insight array raises instead of degrading
    # to the single fallback recommendation.
    llm_fallback_enabled: bool = True

    # Storage (shared store)
    db_path: str = "~/.healthhub/health.db"
    encryption_key: str = ""

    # Privacy
    privacy_mode: Literal["strict", "standard", "explicit"] = "standard"

    # Integrations
    fitbit_client_id: str = ""
    fitbit_client_secret: str = ""
    fitbit_redirect_uri: str = "http://127.0.0.1:8001/fitbit-callback"
    google_client_id: str = ""
    google_client_secret: str = ""
    google_redirect_uri: str = "http://127.0.0.1:8001/google-calendar-callback"
    apple_health_export_path: str = ""
    http_timeout_seconds: float = 30.0

    # OAuth redirect bridge target: {app_scheme}://{provider}-callback
    app_scheme: str = "healthhub"

    # Analysis
    default_timezone: str = "UTC"
    default_analysis_frequency: Literal["5min", "15min", "30min", "1hr", "2hr"] = "30min"
    insight_max_age_hours: int = 24
    analysis_window_days: int = 30


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()
