"""
HighLevel OAuth utilities.

Each operation is a single POST to the platform token endpoints. Nothing is
retried here; callers decide whether a failure is worth another attempt.
"""

from __future__ import annotations

from typing import Any, Dict, Optional
from urllib.parse import urlencode, urlsplit, urlunsplit, parse_qsl

import httpx
from pydantic import BaseModel, ValidationError

from app.core.config import HighLevelSettings
from app.core.errors import ConfigurationError, UpstreamError
from app.utils.http import send


class TokenResponse(BaseModel):
    """Fields read from a token endpoint response."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    companyId: Optional[str] = None
    locationId: Optional[str] = None
    userType: Optional[str] = None
    scope: Optional[str] = None

    model_config = {"extra": "ignore"}


def _parse_token_response(response: httpx.Response, action: str) -> TokenResponse:
    try:
        return TokenResponse.model_validate(response.json())
    except (ValueError, ValidationError) as exc:
        raise UpstreamError(
            f"{action} returned an incomplete token payload.", status=response.status_code
        ) from exc


class HighLevelOAuthClient:
    """Build install URLs and call the HighLevel token endpoints."""

    TOKEN_PATH = "/oauth/token"
    LOCATION_TOKEN_PATH = "/oauth/locationToken"

    def __init__(
        self,
        settings: HighLevelSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._settings = settings
        self._transport = transport

    def _require(self, name: str, env_name: str) -> str:
        value = getattr(self._settings, name)
        if not value:
            raise ConfigurationError(f"Missing configuration: {env_name}")
        return value

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._settings.base_url,
            timeout=self._settings.http_timeout_seconds,
            transport=self._transport,
        )

    def build_install_url(self, state: Optional[str] = None) -> str:
        """Return the marketplace install URL, carrying ``state`` when given."""
        install_url = self._require("install_url", "GHL_INSTALL_URL")
        if not state:
            return install_url
        parts = urlsplit(install_url)
        query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != "state"]
        query.append(("state", state))
        return urlunsplit(parts._replace(query=urlencode(query)))

    async def exchange_authorization_code(self, code: str) -> TokenResponse:
        """Exchange an installation code for a company level token."""
        payload = {
            "grant_type": "authorization_code",
            "user_type": "Company",
            "code": code,
            "client_id": self._require("client_id", "GHL_CLIENT_ID"),
            "client_secret": self._require("client_secret", "GHL_CLIENT_SECRET"),
            "redirect_uri": self._require("redirect_uri", "GHL_REDIRECT_URI"),
        }
        return await self._post_form(payload, action="HighLevel token exchange")

    async def refresh_agency_token(self, refresh_token: str) -> TokenResponse:
        """Refresh the company level access token."""
        payload = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": self._require("client_id", "GHL_CLIENT_ID"),
            "client_secret": self._require("client_secret", "GHL_CLIENT_SECRET"),
        }
        return await self._post_form(payload, action="HighLevel token refresh")

    async def exchange_location_token(
        self, *, company_id: str, location_id: str, agency_access_token: str
    ) -> TokenResponse:
        """Mint a location scoped token using the agency token as bearer."""
        action = "HighLevel location token"
        async with self._client() as client:
            response = await send(
                client.post,
                self.LOCATION_TOKEN_PATH,
                json={"companyId": company_id, "locationId": location_id},
                headers={
                    "Authorization": f"Bearer {agency_access_token}",
                    "Accept": "application/json",
                },
                action=action,
            )
        return _parse_token_response(response, action)

    async def _post_form(self, payload: Dict[str, Any], *, action: str) -> TokenResponse:
        async with self._client() as client:
            response = await send(
                client.post,
                self.TOKEN_PATH,
                data=payload,
                headers={"Accept": "application/json"},
                action=action,
            )
        return _parse_token_response(response, action)


__all__ = ["HighLevelOAuthClient", "TokenResponse"]
