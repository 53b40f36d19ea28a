"""
Shared-secret gate for internal endpoints.

When no secret is configured the gate runs in ``AuthMode.DISABLED`` and lets
every request through. That mode exists for local development and is logged
when the gate is built so it is never mistaken for a misconfiguration.
"""

from __future__ import annotations

import hmac
import logging
from enum import Enum
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Request

from app.core.config import AppSettings, SecuritySettings
from app.core.errors import UnauthorizedError
from app.dependencies.config import get_app_settings

logger = logging.getLogger(__name__)


class AuthMode(str, Enum):
    DISABLED = "disabled"
    SHARED_SECRET = "shared_secret"


class InternalAuthGate:
    """Compare a request header against the configured shared secret."""

    def __init__(self, *, secret: Optional[str], header_name: str = "x-internal-key") -> None:
        self._secret = secret or None
        self.header_name = header_name
        self.mode = AuthMode.SHARED_SECRET if self._secret else AuthMode.DISABLED

    @classmethod
    def from_settings(cls, settings: SecuritySettings) -> "InternalAuthGate":
        gate = cls(secret=settings.internal_api_key, header_name=settings.internal_auth_header)
        if gate.mode is AuthMode.DISABLED:
            logger.warning("INTERNAL_API_KEY is not set; internal endpoints are unauthenticated.")
        return gate

    def check(self, provided: Optional[str]) -> None:
        if self.mode is AuthMode.DISABLED:
            return
        if provided is None or not hmac.compare_digest(
            provided.encode("utf-8"), self._secret.encode("utf-8")
        ):
            raise UnauthorizedError("Unauthorized")


@lru_cache()
def _gate_for(secret: Optional[str], header_name: str) -> InternalAuthGate:
    return InternalAuthGate.from_settings(
        SecuritySettings(internal_api_key=secret, internal_auth_header=header_name)
    )


def get_internal_auth_gate(settings: AppSettings = Depends(get_app_settings)) -> InternalAuthGate:
    """FastAPI dependency returning the gate for the current settings."""
    security = settings.security
    return _gate_for(security.internal_api_key, security.internal_auth_header)


def require_internal_auth(
    request: Request, gate: InternalAuthGate = Depends(get_internal_auth_gate)
) -> None:
    """Reject the request before any handler code runs when the secret is wrong."""
    gate.check(request.headers.get(gate.header_name))


__all__ = [
    "AuthMode",
    "InternalAuthGate",
    "get_internal_auth_gate",
    "require_internal_auth",
]
