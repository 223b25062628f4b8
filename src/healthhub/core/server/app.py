"""HealthHub insight MCP server: application factory.

This module provides:
- create_app() for testability (integration tests create fresh server instances)
- Module-level `mcp` variable for FastMCP discovery
"""

from __future__ import annotations

import html
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import datetime
from urllib.parse import urlencode

import httpx
from fastmcp import FastMCP
from starlette.requests import Request
from starlette.responses import HTMLResponse, RedirectResponse, Response

from healthhub.core.audit.logger import AuditLogger
from healthhub.core.config.settings import Settings, get_settings
from healthhub.core.llm.provider import LLMProvider, create_provider
from healthhub.core.storage.database import HealthDatabase
from healthhub.core.storage.encryption import EncryptionError, FieldEncryptor
from healthhub.core.storage.repository import HealthRepository
from healthhub.core.storage.timestamps import utc_now
from healthhub.domains.health.connectors import SourceCollector
from healthhub.domains.health.connectors.apple_health import AppleHealthCollector
from healthhub.domains.health.connectors.fitbit import FitbitCollector
from healthhub.domains.health.connectors.google_calendar import GoogleCalendarCollector
from healthhub.domains.health.connectors.oauth import (
    FITBIT_TOKEN_URL,
    GOOGLE_TOKEN_URL,
    OAuthClientConfig,
    OAuthTokenManager,
)
from healthhub.domains.health.connectors.weather import WeatherCollector
from healthhub.domains.health.domain_logic.aggregator import DataAggregator
from healthhub.domains.health.domain_logic.engine import AnalysisEngine
from healthhub.domains.health.insights.remote_generator import RemoteInsightGenerator
from healthhub.domains.health.insights.scheduler import InsightScheduler
from healthhub.domains.health.tools.data_management_tools import register_data_management_tools
from healthhub.domains.health.tools.insight_tools import register_insight_tools
from healthhub.domains.health.tools.logging_tools import register_logging_tools
from healthhub.domains.health.tools.sync_tools import register_sync_tools

logger = logging.getLogger(__name__)

SERVER_NAME = "HealthHub Insights"
SERVER_VERSION = "0.1.0"

_PAGE_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <title>{title}</title>
</head>
<body style="font-family: -apple-system, system-ui, sans-serif; padding: 40px; text-align: center;">
  <h1 style="color: #e53935;">{title}</h1>
  <p>{message}</p>
  {hint}
</body>
</html>"""


def _html_page(title: str, message: str, hint: str = "") -> str:
    return _PAGE_TEMPLATE.format(
        title=title,
        message=html.escape(message),
        hint=f"<p>{html.escape(hint)}</p>" if hint else "",
    )


def oauth_callback_response(request: Request, provider_route: str, app_scheme: str) -> Response:
    """Bridge a provider's OAuth redirect into the app's URL scheme.

    ``error`` renders a failure page, ``code`` is forwarded with a 302 to
    ``{app_scheme}://{provider_route}?code=...``, anything else is a 400.
    """
    params = request.query_params
    error = params.get("error")
    if error:
        logger.warning("OAuth callback %s returned error: %s", provider_route, error)
        return HTMLResponse(
            _html_page(
                "Connection Failed",
                params.get("error_description") or error,
                "Please close this window and try again.",
            )
        )

    code = params.get("code")
    if code:
        return RedirectResponse(
            f"{app_scheme}://{provider_route}?{urlencode({'code': code})}",
            status_code=302,
        )

    return HTMLResponse(
        _html_page("Invalid Request", "No authorization code received."),
        status_code=400,
    )


def _select_provider(settings: Settings) -> LLMProvider:
    if settings.llm_provider == "mock":
        provider_name = "mock"
        api_key = ""
        model = ""
    elif settings.llm_provider == "anthropic":
        api_key = settings.anthropic_api_key
        model = settings.anthropic_model
        provider_name = "anthropic" if api_key else "mock"
    elif settings.llm_provider == "openai":
        api_key = settings.openai_api_key
        model = settings.openai_model
        provider_name = "openai" if api_key else "mock"
    else:  # pragma: no cover
        raise ValueError(f"Unknown LLM provider: {settings.llm_provider!r}")

    if provider_name == "mock" and settings.llm_provider != "mock":
        logger.warning(
            "No API key configured for provider '%s'; falling back to mock provider",
            settings.llm_provider,
        )
    return create_provider(provider_name=provider_name, api_key=api_key, model=model)


def _open_storage(settings: Settings) -> HealthDatabase:
    db_path = settings.db_path if settings.encryption_key else ":memory:"
    health_db = HealthDatabase(db_path)
    health_db.initialize()
    logger.info(
        "Health store initialized: %s (schema v%d)", db_path, health_db.get_schema_version()
    )
    return health_db


def create_app(
    *,
    repository_override: HealthRepository | None = None,
    audit_logger_override: AuditLogger | None = None,
    provider_override: LLMProvider | None = None,
    http_client_override: httpx.AsyncClient | None = None,
    clock_override: Callable[[], datetime] | None = None,
) -> FastMCP:
    """Create and configure the HealthHub insight MCP server.

    This is the main application factory. It:
    1. Creates the FastMCP server instance
    2. Opens the encrypted health store and audit trail
    3. Builds the OAuth token managers and source collectors
    4. Builds the aggregator, analysis engine, insight scheduler and
       remote generator
    5. Registers all tools and the OAuth redirect routes

    Without ENCRYPTION_KEY the store is in-memory with a throwaway key, so
    nothing is written to disk unencrypted and nothing survives a restart.
    """
    settings = get_settings()
    clock = clock_override or utc_now

    @asynccontextmanager
    async def lifespan(_server: FastMCP) -> AsyncIterator[dict]:
        try:
            yield {}
        finally:
            # A caller-supplied client belongs to the caller
            if http_client_override is None:
                await http_client.aclose()
                logger.info("Outbound HTTP client closed")

    # --- Server instance ---
    server = FastMCP(
        SERVER_NAME,
        lifespan=lifespan,
        instructions=(
            "Personal health insight server. Syncs Fitbit, Google Calendar, "
            "Apple Health and weather data, accepts manual symptom, caffeine, "
            "medication, food and cycle logs, and finds correlations between "
            "them. Insights are observations, not medical advice."
        ),
    )

    # --- Encrypted storage (shared store) and audit trail ---
    audit_logger = audit_logger_override
    if repository_override is not None:
        repository = repository_override
    else:
        encryption_key = settings.encryption_key
        if not encryption_key:
            logger.warning(
                "No ENCRYPTION_KEY configured; using an in-memory store with a "
                "temporary key. Data will not survive a restart."
            )
            encryption_key = FieldEncryptor.generate_key()
        try:
            encryptor = FieldEncryptor(encryption_key)
        except EncryptionError as exc:
            logger.error("Failed to initialize storage: %s", exc)
            raise
        health_db = _open_storage(settings)
        repository = HealthRepository(health_db, encryptor)
        if audit_logger is None:
            audit_logger = AuditLogger(health_db)

    # --- Outbound HTTP ---
    http_client = http_client_override or httpx.AsyncClient(
        timeout=settings.http_timeout_seconds
    )

    # --- OAuth token managers ---
    token_managers: dict[str, OAuthTokenManager] = {
        "fitbit": OAuthTokenManager(
            OAuthClientConfig(
                provider="fitbit",
                token_url=FITBIT_TOKEN_URL,
                client_id=settings.fitbit_client_id,
                client_secret=settings.fitbit_client_secret,
                redirect_uri=settings.fitbit_redirect_uri,
                basic_auth=True,
            ),
            repository,
            http_client=http_client,
        ),
        "google_calendar": OAuthTokenManager(
            OAuthClientConfig(
                provider="google_calendar",
                token_url=GOOGLE_TOKEN_URL,
                client_id=settings.google_client_id,
                client_secret=settings.google_client_secret,
                redirect_uri=settings.google_redirect_uri,
            ),
            repository,
            http_client=http_client,
        ),
    }

    # --- Source collectors ---
    collectors: dict[str, SourceCollector] = {
        "fitbit": FitbitCollector(
            repository,
            token_managers["fitbit"],
            http_client=http_client,
            default_timezone=settings.default_timezone,
            clock=clock,
        ),
        "google_calendar": GoogleCalendarCollector(
            repository,
            token_managers["google_calendar"],
            http_client=http_client,
            default_timezone=settings.default_timezone,
            clock=clock,
        ),
        "weather": WeatherCollector(
            repository,
            http_client=http_client,
            default_timezone=settings.default_timezone,
            clock=clock,
        ),
    }
    if settings.apple_health_export_path:
        collectors["apple_health"] = AppleHealthCollector(
            repository,
            settings.apple_health_export_path,
            default_timezone=settings.default_timezone,
            clock=clock,
        )
    logger.info("Source collectors configured: %s", ", ".join(collectors))

    # --- Analysis and insights ---
    aggregator = DataAggregator(
        repository, default_timezone=settings.default_timezone, clock=clock
    )
    engine = AnalysisEngine()
    scheduler = InsightScheduler(
        repository,
        aggregator,
        engine,
        audit_logger=audit_logger,
        default_frequency=settings.default_analysis_frequency,
        max_age_hours=settings.insight_max_age_hours,
        window_days=settings.analysis_window_days,
        clock=clock,
    )
    provider = provider_override or _select_provider(settings)
    generator = RemoteInsightGenerator(
        repository,
        provider,
        audit_logger=audit_logger,
        privacy_mode=settings.privacy_mode,
        fallback_enabled=settings.llm_fallback_enabled,
        max_tokens=settings.llm_max_tokens,
        window_days=settings.analysis_window_days,
        clock=clock,
    )

    # --- Register tools ---
    @server.tool
    def health_check() -> dict:
        """Check server health and return basic status information."""
        return {
            "status": "ok",
            "server": SERVER_NAME,
            "version": SERVER_VERSION,
            "llm_provider": provider.name,
            "privacy_mode": settings.privacy_mode,
            "collectors": sorted(collectors),
            "analyzer_passes": len(engine.pass_names),
            "audit_enabled": audit_logger is not None,
        }

    register_sync_tools(server, collectors, token_managers, audit_logger)
    register_logging_tools(
        server,
        repository,
        audit_logger,
        default_timezone=settings.default_timezone,
        clock=clock,
    )
    register_insight_tools(server, scheduler, generator, audit_logger)
    register_data_management_tools(server, repository, audit_logger, clock=clock)
    logger.info("Sync, logging, insight and data management tools registered")

    # --- OAuth redirect bridge ---
    @server.custom_route("/fitbit-callback", methods=["GET"])
    async def fitbit_callback(request: Request) -> Response:
        return oauth_callback_response(request, "fitbit-callback", settings.app_scheme)

    @server.custom_route("/google-calendar-callback", methods=["GET"])
    async def google_calendar_callback(request: Request) -> Response:
        return oauth_callback_response(request, "google-calendar-callback", settings.app_scheme)

    return server


# Module-level instance for FastMCP discovery.
# Lazy: only created when this module is loaded directly (not when tests import create_app).
def __getattr__(name: str):
    if name == "mcp":
        global mcp  # noqa: PLW0603
        mcp = create_app()
        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
