"""Public schema exports."""

from .auth import (
    InstallationResponse,
    LocationTokenRequest,
    LocationTokenResponse,
    SyncLocationRequest,
    SyncLocationResponse,
)

__all__ = [
    "InstallationResponse",
    "LocationTokenRequest",
    "LocationTokenResponse",
    "SyncLocationRequest",
    "SyncLocationResponse",
]
