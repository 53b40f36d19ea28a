"""
FastAPI routes for HighLevel installation and internal token access.
"""

from __future__ import annotations

import logging
import secrets
from http import HTTPStatus
from typing import Annotated, Any, Optional

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse

from app.core.config import AppSettings
from app.core.errors import InvalidStateError, TokenError
from app.dependencies import (
    get_app_settings,
    get_highlevel_oauth_client,
    get_highlevel_token_service,
    get_location_sync_service,
    require_internal_auth,
)
from app.schemas import (
    InstallationResponse,
    LocationTokenRequest,
    LocationTokenResponse,
    SyncLocationRequest,
    SyncLocationResponse,
)

router = APIRouter()
internal_router = APIRouter(
    prefix="/internal/highlevel", dependencies=[Depends(require_internal_auth)]
)
logger = logging.getLogger(__name__)


def _bad_request(message: str) -> JSONResponse:
    return JSONResponse({"ok": False, "error": message}, status_code=HTTPStatus.BAD_REQUEST)


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck() -> dict:
    """Simple health endpoint for monitoring."""
    return {"status": "ok"}


@router.get("/oauth/highlevel/install")
async def start_highlevel_install(
    oauth_client: Annotated[Any, Depends(get_highlevel_oauth_client)],
    settings: Annotated[AppSettings, Depends(get_app_settings)],
) -> Response:
    """Redirect to the marketplace install page with a fresh CSRF state cookie."""
    state = secrets.token_hex(16)
    response = RedirectResponse(
        url=oauth_client.build_install_url(state=state),
        status_code=HTTPStatus.TEMPORARY_REDIRECT,
    )
    response.set_cookie(
        settings.oauth.state_cookie_name,
        state,
        max_age=settings.oauth.state_ttl_seconds,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        path="/",
    )
    return response


@router.get("/oauth/highlevel/callback")
async def handle_highlevel_install_callback(
    request: Request,
    token_service: Annotated[Any, Depends(get_highlevel_token_service)],
    settings: Annotated[AppSettings, Depends(get_app_settings)],
    code: Optional[str] = Query(default=None, description="Authorization code."),
    state: Optional[str] = Query(default=None, description="CSRF state issued at install."),
) -> Response:
    """Exchange the installation code and persist the agency token."""
    if not code:
        return _bad_request("Missing code")

    cookie_name = settings.oauth.state_cookie_name
    if settings.oauth.enforce_state:
        expected = request.cookies.get(cookie_name)
        if not expected or not state or not secrets.compare_digest(expected, state):
            raise InvalidStateError("Invalid state")

    record = await token_service.exchange_code_for_agency_token(code)

    redirect_target = settings.highlevel.install_success_redirect
    if redirect_target:
        response: Response = RedirectResponse(
            url=redirect_target, status_code=HTTPStatus.TEMPORARY_REDIRECT
        )
    else:
        body = InstallationResponse(company_id=record.company_id)
        response = JSONResponse(content=body.model_dump(by_alias=True))
    response.delete_cookie(cookie_name, path="/")
    return response


@internal_router.post("/location-token", response_model=LocationTokenResponse)
async def issue_location_token(
    payload: LocationTokenRequest,
    token_service: Annotated[Any, Depends(get_highlevel_token_service)],
) -> Any:
    """Return a valid location token, minting one when the cached token is stale."""
    if not payload.company_id or not payload.location_id:
        return _bad_request("companyId and locationId required")

    result = await token_service.get_location_access_token(
        company_id=payload.company_id, location_id=payload.location_id
    )
    return LocationTokenResponse(
        location_access_token=result.token,
        expires_at=result.expires_at,
        cached=result.cached,
    )


@internal_router.post("/sync-location", response_model=SyncLocationResponse)
async def sync_location(
    payload: SyncLocationRequest,
    sync_service: Annotated[Any, Depends(get_location_sync_service)],
) -> Any:
    """Refresh the stored profile for a location, resolving its company if needed."""
    if not payload.location_id:
        return _bad_request("locationId required")

    result = await sync_service.sync_location(
        location_id=payload.location_id, company_id=payload.company_id
    )
    return SyncLocationResponse(
        company_id=result.company_id,
        location_id=result.location_id,
        synced_at=result.synced_at,
        subscription_error=result.subscription_error,
    )


@internal_router.get("/diagnostic")
async def token_diagnostic(
    token_service: Annotated[Any, Depends(get_highlevel_token_service)],
    company_id: Optional[str] = Query(default=None, alias="companyId"),
    location_id: Optional[str] = Query(default=None, alias="locationId"),
) -> Any:
    """Report token expiry and validity for a company and optionally a location."""
    if not company_id:
        return _bad_request("companyId required")
    report = token_service.describe(company_id, location_id)
    return {"ok": True, **report}


router.include_router(internal_router)


async def token_error_handler(request: Request, exc: TokenError) -> JSONResponse:
    """Render taxonomy errors as ``{ok: false, error}`` with their status."""
    if exc.status_code >= HTTPStatus.INTERNAL_SERVER_ERROR:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse({"ok": False, "error": exc.message}, status_code=exc.status_code)


async def validation_error_handler(request: Request, exc: Exception) -> JSONResponse:
    return _bad_request("Invalid request body")


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "%s %s raised an unhandled error.", request.method, request.url.path, exc_info=exc
    )
    return JSONResponse(
        {"ok": False, "error": "Unexpected error"},
        status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
    )


__all__ = [
    "router",
    "token_error_handler",
    "unexpected_error_handler",
    "validation_error_handler",
]
