"""Expose dependency helpers for FastAPI routers."""

from .auth import AuthMode, InternalAuthGate, get_internal_auth_gate, require_internal_auth
from .clients import (
    get_highlevel_api_client,
    get_highlevel_oauth_client,
    get_highlevel_token_service,
    get_location_sync_service,
    get_token_cipher_service,
    get_token_store,
)
from .config import get_app_settings

__all__ = [
    "AuthMode",
    "InternalAuthGate",
    "get_app_settings",
    "get_highlevel_api_client",
    "get_highlevel_oauth_client",
    "get_highlevel_token_service",
    "get_internal_auth_gate",
    "get_location_sync_service",
    "get_token_cipher_service",
    "get_token_store",
    "require_internal_auth",
]
