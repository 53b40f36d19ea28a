try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover
    import _bootstrap  # type: ignore # noqa: F401

import copy
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from app.core.errors import (
    RefreshTokenMissingError,
    TokenNotFoundError,
    UpstreamError,
)
from app.main import app
from app.models.tokens import AgencyToken
from app.services.highlevel_tokens import LocationAccessToken
from app.services.location_sync import LocationSyncResult

INTERNAL_HEADERS = {"x-internal-key": "test-internal-key"}


class StubTokenService:
    def __init__(self) -> None:
        self.codes: list[str] = []
        self.location_requests: list[tuple[str, str]] = []
        self.location_error: Exception | None = None
        self.expires_at = datetime(2030, 1, 1, tzinfo=timezone.utc)

    async def exchange_code_for_agency_token(self, code: str) -> AgencyToken:
        self.codes.append(code)
        return AgencyToken(company_id="C1", access_token_enc="v1:enc")

    async def get_location_access_token(self, *, company_id: str, location_id: str):
        self.location_requests.append((company_id, location_id))
        if self.location_error is not None:
            raise self.location_error
        return LocationAccessToken(token="loc-token", expires_at=self.expires_at, cached=True)

    def describe(self, company_id: str, location_id=None) -> dict:
        return {
            "agency": {"company_id": company_id, "agency_token_valid": True},
            "location": None,
        }


class StubOAuthClient:
    def build_install_url(self, state=None) -> str:
        return f"https://marketplace.example.com/oauth/chooselocation?state={state}"


class StubSyncService:
    def __init__(self) -> None:
        self.calls: list[dict] = []

    async def sync_location(self, *, location_id: str, company_id=None) -> LocationSyncResult:
        self.calls.append({"location_id": location_id, "company_id": company_id})
        return LocationSyncResult(
            company_id=company_id or "C-resolved",
            location_id=location_id,
            synced_at=datetime.now(timezone.utc),
            subscription_error="HighLevel GET failed: 403",
        )


@pytest.fixture()
def overrides():
    from app import dependencies
    from app.core.config import get_settings

    token_service = StubTokenService()
    sync_service = StubSyncService()
    settings = copy.deepcopy(get_settings())
    settings.highlevel.install_success_redirect = None

    app.dependency_overrides.update(
        {
            dependencies.get_highlevel_token_service: lambda: token_service,
            dependencies.get_highlevel_oauth_client: lambda: StubOAuthClient(),
            dependencies.get_location_sync_service: lambda: sync_service,
            dependencies.get_app_settings: lambda: settings,
        }
    )

    yield token_service, sync_service, settings

    app.dependency_overrides.clear()


def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://testserver"
    )


@pytest.mark.anyio
async def test_install_redirects_and_sets_state_cookie(overrides):
    async with _client() as client:
        response = await client.get("/api/oauth/highlevel/install")

    assert response.status_code == 307
    state = parse_qs(urlsplit(response.headers["location"]).query)["state"][0]
    assert response.cookies.get("ghl_oauth_state") == state
    assert "httponly" in response.headers["set-cookie"].lower()


@pytest.mark.anyio
async def test_callback_with_matching_state_returns_company(overrides):
    token_service, _, _ = overrides

    async with _client() as client:
        client.cookies.set("ghl_oauth_state", "state-123")
        response = await client.get(
            "/api/oauth/highlevel/callback",
            params={"code": "oauth-code", "state": "state-123"},
        )

    assert response.status_code == 200
    assert response.json() == {"ok": True, "companyId": "C1"}
    assert token_service.codes == ["oauth-code"]


@pytest.mark.anyio
async def test_callback_rejects_mismatched_state(overrides):
    token_service, _, _ = overrides

    async with _client() as client:
        client.cookies.set("ghl_oauth_state", "expected")
        response = await client.get(
            "/api/oauth/highlevel/callback",
            params={"code": "oauth-code", "state": "forged"},
        )

    assert response.status_code == 400
    assert response.json() == {"ok": False, "error": "Invalid state"}
    assert token_service.codes == []


@pytest.mark.anyio
async def test_callback_skips_state_when_disabled(overrides):
    token_service, _, settings = overrides
    settings.oauth.use_state = False

    async with _client() as client:
        response = await client.get(
            "/api/oauth/highlevel/callback", params={"code": "oauth-code"}
        )

    assert response.status_code == 200
    assert token_service.codes == ["oauth-code"]


@pytest.mark.anyio
async def test_callback_requires_code(overrides):
    async with _client() as client:
        response = await client.get("/api/oauth/highlevel/callback", params={"state": "s"})

    assert response.status_code == 400
    assert response.json()["error"] == "Missing code"


@pytest.mark.anyio
async def test_callback_redirects_to_success_url(overrides):
    _, _, settings = overrides
    settings.oauth.use_state = False
    settings.highlevel.install_success_redirect = "https://dashboard.example.com/installed"

    async with _client() as client:
        response = await client.get(
            "/api/oauth/highlevel/callback", params={"code": "oauth-code"}
        )

    assert response.status_code == 307
    assert response.headers["location"] == "https://dashboard.example.com/installed"


@pytest.mark.anyio
async def test_location_token_endpoint_returns_token(overrides):
    token_service, _, _ = overrides

    async with _client() as client:
        response = await client.post(
            "/api/internal/highlevel/location-token",
            json={"companyId": "C1", "locationId": "L1"},
            headers=INTERNAL_HEADERS,
        )

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["locationAccessToken"] == "loc-token"
    assert body["cached"] is True
    assert body["expiresAt"].startswith("2030-01-01T00:00:00")
    assert token_service.location_requests == [("C1", "L1")]


@pytest.mark.anyio
@pytest.mark.parametrize("headers", [{}, {"x-internal-key": "wrong"}])
async def test_location_token_endpoint_rejects_bad_secret(overrides, headers):
    token_service, _, _ = overrides

    async with _client() as client:
        response = await client.post(
            "/api/internal/highlevel/location-token",
            json={"companyId": "C1", "locationId": "L1"},
            headers=headers,
        )

    assert response.status_code == 401
    assert response.json() == {"ok": False, "error": "Unauthorized"}
    assert token_service.location_requests == []


@pytest.mark.anyio
async def test_gate_is_open_when_secret_unset(overrides):
    token_service, _, settings = overrides
    settings.security.internal_api_key = None

    async with _client() as client:
        response = await client.post(
            "/api/internal/highlevel/location-token",
            json={"companyId": "C1", "locationId": "L1"},
        )

    assert response.status_code == 200
    assert token_service.location_requests == [("C1", "L1")]


@pytest.mark.anyio
@pytest.mark.parametrize("body", [{"companyId": "C1"}, {"locationId": "L1"}, {}])
async def test_location_token_endpoint_requires_fields(overrides, body):
    async with _client() as client:
        response = await client.post(
            "/api/internal/highlevel/location-token", json=body, headers=INTERNAL_HEADERS
        )

    assert response.status_code == 400
    assert response.json() == {"ok": False, "error": "companyId and locationId required"}


@pytest.mark.anyio
@pytest.mark.parametrize(
    "error, status",
    [
        (TokenNotFoundError("Agency token not found"), 404),
        (RefreshTokenMissingError("Agency refresh token missing"), 400),
        (UpstreamError("HighLevel location token failed: 500", status=500), 500),
        (UpstreamError("HighLevel token refresh failed: 401", status=401), 500),
        (UpstreamError("HighLevel location token failed: 404", status=404), 404),
        (UpstreamError("HighLevel location token request failed: ConnectError"), 500),
    ],
)
async def test_location_token_endpoint_maps_errors(overrides, error, status):
    token_service, _, _ = overrides
    token_service.location_error = error

    async with _client() as client:
        response = await client.post(
            "/api/internal/highlevel/location-token",
            json={"companyId": "C1", "locationId": "L1"},
            headers=INTERNAL_HEADERS,
        )

    assert response.status_code == status
    assert response.json() == {"ok": False, "error": error.message}


@pytest.mark.anyio
async def test_unhandled_error_renders_json_body(overrides):
    token_service, _, _ = overrides
    token_service.location_error = RuntimeError("row payload is not valid JSON")

    # Starlette re-raises after the handler responds; keep the response instead.
    transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        response = await client.post(
            "/api/internal/highlevel/location-token",
            json={"companyId": "C1", "locationId": "L1"},
            headers=INTERNAL_HEADERS,
        )

    assert response.status_code == 500
    assert response.headers["content-type"].startswith("application/json")
    assert response.json() == {"ok": False, "error": "Unexpected error"}


@pytest.mark.anyio
async def test_sync_location_reports_subscription_error(overrides):
    _, sync_service, _ = overrides

    async with _client() as client:
        response = await client.post(
            "/api/internal/highlevel/sync-location",
            json={"locationId": "L1"},
            headers=INTERNAL_HEADERS,
        )

    assert response.status_code == 200
    body = response.json()
    assert body["companyId"] == "C-resolved"
    assert body["subscriptionError"] == "HighLevel GET failed: 403"
    assert sync_service.calls == [{"location_id": "L1", "company_id": None}]


@pytest.mark.anyio
async def test_diagnostic_requires_company(overrides):
    async with _client() as client:
        missing = await client.get(
            "/api/internal/highlevel/diagnostic", headers=INTERNAL_HEADERS
        )
        found = await client.get(
            "/api/internal/highlevel/diagnostic",
            params={"companyId": "C1"},
            headers=INTERNAL_HEADERS,
        )

    assert missing.status_code == 400
    assert found.status_code == 200
    assert found.json()["agency"]["agency_token_valid"] is True
