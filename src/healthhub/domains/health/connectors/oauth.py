"""OAuth2 token lifecycle for Fitbit and Google Calendar integrations.

Authorization-code exchange, refresh-token grant and disconnect. Token
endpoint responses are decoded against a schema and rejected if malformed.
A failed refresh is terminal: the integration is disconnected and
:class:`IntegrationNeedsReconnectError` tells the caller to send the user
back through authorization.
"""

from __future__ import annotations

import asyncio
import base64
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from healthhub.core.storage.models import Integration
from healthhub.core.storage.repository import HealthRepository
from healthhub.core.storage.timestamps import parse_timestamp, to_utc_iso, utc_now
from healthhub.domains.health.connectors import CollectorError, IntegrationNeedsReconnectError

logger = logging.getLogger(__name__)

FITBIT_TOKEN_URL = "https://api.fitbit.com/oauth2/token"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"

# Refresh slightly early so a token does not expire mid-sync
_EXPIRY_SKEW = timedelta(seconds=60)


@dataclass(frozen=True)
class OAuthClientConfig:
    """Static client registration for one provider."""

    provider: str
    token_url: str
    client_id: str
    client_secret: str
    redirect_uri: str = ""
    # Fitbit wants client credentials in a Basic header, Google in the body
    basic_auth: bool = False


class TokenResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    access_token: str
    refresh_token: str | None = None
    expires_in: int = 3600
    token_type: str = "Bearer"


class OAuthTokenManager:
    """Exchanges, refreshes and stores tokens for one provider.

    Usage::

        manager = OAuthTokenManager(config, repository, http_client=client)
        await manager.exchange_code("user-1", code)
        token = await manager.get_valid_access_token("user-1")
    """

    def __init__(
        self,
        config: OAuthClientConfig,
        repository: HealthRepository,
        *,
        http_client: httpx.AsyncClient,
    ) -> None:
        self._config = config
        self._repo = repository
        self._http = http_client

    @property
    def provider(self) -> str:
        return self._config.provider

    def _auth_payload(self, data: dict[str, str]) -> tuple[dict[str, str], dict[str, str]]:
        headers = {"Content-Type": "application/x-www-form-urlencoded"}
        if self._config.basic_auth:
            raw = f"{self._config.client_id}:{self._config.client_secret}".encode()
            headers["Authorization"] = f"Basic {base64.b64encode(raw).decode()}"
        else:
            data = {
                **data,
                "client_id": self._config.client_id,
                "client_secret": self._config.client_secret,
            }
        return headers, data

    async def _request_token(self, data: dict[str, str]) -> TokenResponse:
        """POST a grant to the token endpoint and decode the response.

        Raises:
            CollectorError: On transport errors, non-200 status or a
                response missing required fields.
        """
        headers, form = self._auth_payload(data)
        try:
            response = await self._http.post(self._config.token_url, data=form, headers=headers)
        except httpx.HTTPError as exc:
            raise CollectorError(f"{self.provider} token request failed: {exc}") from exc

        if response.status_code != 200:
            raise CollectorError(
                f"{self.provider} token endpoint returned {response.status_code}"
            )
        try:
            return TokenResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise CollectorError(f"{self.provider} token response malformed: {exc}") from exc

    def _store(
        self,
        user_id: str,
        token: TokenResponse,
        previous: Integration | None,
        now: datetime,
    ) -> Integration:
        integration = Integration(
            user_id=user_id,
            provider=self.provider,
            is_connected=True,
            access_token=token.access_token,
            # Google omits refresh_token on refresh grants; keep the old one
            refresh_token=token.refresh_token or (previous.refresh_token if previous else None),
            token_expires_at=to_utc_iso(now + timedelta(seconds=token.expires_in)),
            connected_at=previous.connected_at if previous and previous.connected_at else to_utc_iso(now),
        )
        self._repo.upsert_integration(integration)
        return integration

    async def exchange_code(self, user_id: str, code: str) -> Integration:
        """Complete the authorization-code flow and store the connection.

        Raises:
            CollectorError: If the provider rejects the code.
        """
        token = await self._request_token({
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self._config.redirect_uri,
        })
        previous = await asyncio.to_thread(self._repo.get_integration, user_id, self.provider)
        integration = await asyncio.to_thread(self._store, user_id, token, previous, utc_now())
        logger.info("Connected %s integration for %s", self.provider, user_id)
        return integration

    async def refresh(self, user_id: str) -> Integration:
        """Run the refresh-token grant.

        Raises:
            IntegrationNeedsReconnectError: If there is no refresh token or
                the provider rejects it. The integration is disconnected first.
        """
        current = await asyncio.to_thread(self._repo.get_integration, user_id, self.provider)
        if current is None or not current.refresh_token:
            await asyncio.to_thread(self._repo.disconnect_integration, user_id, self.provider)
            raise IntegrationNeedsReconnectError(self.provider, "no refresh token")

        try:
            token = await self._request_token({
                "grant_type": "refresh_token",
                "refresh_token": current.refresh_token,
            })
        except CollectorError as exc:
            logger.warning("Token refresh failed for %s/%s: %s", user_id, self.provider, exc)
            await asyncio.to_thread(self._repo.disconnect_integration, user_id, self.provider)
            raise IntegrationNeedsReconnectError(self.provider, str(exc)) from exc

        logger.info("Refreshed %s token for %s", self.provider, user_id)
        return await asyncio.to_thread(self._store, user_id, token, current, utc_now())

    async def get_valid_access_token(self, user_id: str, *, now: datetime | None = None) -> str:
        """Return a usable access token, refreshing it if (nearly) expired.

        Raises:
            CollectorError: If the provider is not connected for this user.
            IntegrationNeedsReconnectError: If a needed refresh fails.
        """
        integration = await asyncio.to_thread(self._repo.get_integration, user_id, self.provider)
        if integration is None or not integration.is_connected or not integration.access_token:
            raise CollectorError(f"{self.provider} is not connected for this user")

        current_time = now or utc_now()
        if integration.token_expires_at:
            expires_at = parse_timestamp(integration.token_expires_at)
            if expires_at - _EXPIRY_SKEW <= current_time:
                integration = await self.refresh(user_id)
        return integration.access_token or ""

    def disconnect(self, user_id: str) -> bool:
        """Soft-disable the integration and clear its tokens."""
        return self._repo.disconnect_integration(user_id, self.provider)
