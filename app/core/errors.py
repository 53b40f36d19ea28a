"""
Error taxonomy shared by the token services and the HTTP layer.

Every error carries the HTTP status the API should answer with and a message
that is safe to return to callers. Messages never contain token material.
"""

from __future__ import annotations

from http import HTTPStatus
from typing import Optional


class TokenError(Exception):
    """Base class for failures surfaced by the token lifecycle."""

    status_code: int = HTTPStatus.INTERNAL_SERVER_ERROR

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ConfigurationError(TokenError):
    """Required configuration is missing or malformed. Not retryable."""


class StoreError(TokenError):
    """The token store could not be read or written."""


class TokenNotFoundError(TokenError):
    """No token record exists; an installation is required."""

    status_code = HTTPStatus.NOT_FOUND


class RefreshTokenMissingError(TokenError):
    """The agency token expired and no refresh token is stored."""

    status_code = HTTPStatus.BAD_REQUEST


class MissingCompanyIdError(TokenError):
    """The platform did not report a company for an authorization code."""


class LocationNotFoundError(TokenError):
    """No installed company claims the requested location."""

    status_code = HTTPStatus.NOT_FOUND


class UnauthorizedError(TokenError):
    """The inbound request did not present the internal shared secret."""

    status_code = HTTPStatus.UNAUTHORIZED


class InvalidStateError(TokenError):
    """The OAuth callback state did not match the issued state."""

    status_code = HTTPStatus.BAD_REQUEST


_GRANT_REJECTED = frozenset({HTTPStatus.UNAUTHORIZED, HTTPStatus.FORBIDDEN})


class UpstreamError(TokenError):
    """The platform rejected a request or could not be reached."""

    def __init__(self, message: str, *, status: Optional[int] = None, body: str = "") -> None:
        self.status = status
        self.body = body
        super().__init__(message, status_code=self._http_status(status))

    @staticmethod
    def _http_status(status: Optional[int]) -> int:
        # Upstream 401/403 reject our platform grant, not the caller.
        if status is None or status in _GRANT_REJECTED:
            return HTTPStatus.INTERNAL_SERVER_ERROR
        if status == HTTPStatus.GATEWAY_TIMEOUT or 400 <= status < 500:
            return status
        return HTTPStatus.INTERNAL_SERVER_ERROR


class TokenCipherError(TokenError):
    """Base class for encrypted payload integrity failures."""


class InvalidTokenFormatError(TokenCipherError):
    """The encrypted payload does not have the expected structure."""


class UnknownKeyVersionError(TokenCipherError):
    """The payload names a key version that is not in the key ring."""


class DecryptionFailedError(TokenCipherError):
    """No candidate key produced a valid authentication tag."""


__all__ = [
    "ConfigurationError",
    "DecryptionFailedError",
    "InvalidStateError",
    "InvalidTokenFormatError",
    "LocationNotFoundError",
    "MissingCompanyIdError",
    "RefreshTokenMissingError",
    "StoreError",
    "TokenCipherError",
    "TokenError",
    "TokenNotFoundError",
    "UnauthorizedError",
    "UnknownKeyVersionError",
    "UpstreamError",
]
