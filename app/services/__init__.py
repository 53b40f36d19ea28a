"""Service layer exports."""

from .highlevel_tokens import (
    AgencyAccessToken,
    HighLevelTokenService,
    LocationAccessToken,
    ResolvedLocation,
)
from .location_sync import LocationSyncResult, LocationSyncService
from .token_cipher import KeyRing, TokenCipherService

__all__ = [
    "AgencyAccessToken",
    "HighLevelTokenService",
    "KeyRing",
    "LocationAccessToken",
    "LocationSyncResult",
    "LocationSyncService",
    "ResolvedLocation",
    "TokenCipherService",
]
