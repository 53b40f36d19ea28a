"""Synchronize HighLevel location profiles into the location table."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from app.clients.highlevel_api import HighLevelAPIClient
from app.clients.sqlite_store import RecordStore
from app.core.errors import TokenError
from app.models.tokens import LOCATION_KEY, LOCATION_TABLE, LocationProfile, utcnow
from app.services.highlevel_tokens import HighLevelTokenService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LocationSyncResult:
    company_id: str
    location_id: str
    synced_at: datetime
    subscription_error: Optional[str] = None


class LocationSyncService:
    """Fetch a location's profile and subscription and store them on its row."""

    def __init__(
        self,
        token_service: HighLevelTokenService,
        api_client: HighLevelAPIClient,
        store: RecordStore,
    ) -> None:
        self._tokens = token_service
        self._api = api_client
        self._store = store

    async def sync_location(
        self, *, location_id: str, company_id: Optional[str] = None
    ) -> LocationSyncResult:
        profile: Optional[LocationProfile] = None
        if not company_id:
            resolved = await self._tokens.resolve_company_for_location(location_id)
            company_id = resolved.company_id
            profile = resolved.profile

        location_token = await self._tokens.get_location_access_token(
            company_id=company_id, location_id=location_id
        )
        if profile is None:
            payload = await self._api.get_location_profile(location_id, location_token.token)
            profile = LocationProfile.parse(location_id, payload)

        subscription: Any = None
        subscription_error: Optional[str] = None
        try:
            subscription = await self._api.get_location_subscription(
                location_id, location_token.token
            )
        except TokenError as exc:
            # Plan data is optional; the profile sync still counts.
            subscription_error = exc.message
            logger.warning(
                "Subscription lookup failed for location %s: %s", location_id, exc.message
            )

        synced_at = utcnow()
        self._store.upsert(
            LOCATION_TABLE,
            {
                "company_id": company_id,
                "location_id": location_id,
                "profile": profile.raw,
                "subscription": subscription,
                "subscription_error": subscription_error,
                "last_synced_at": synced_at.isoformat(),
                "updated_at": synced_at.isoformat(),
            },
            LOCATION_KEY,
        )
        logger.info("Synced location %s for company %s.", location_id, company_id)
        return LocationSyncResult(
            company_id=company_id,
            location_id=location_id,
            synced_at=synced_at,
            subscription_error=subscription_error,
        )


__all__ = ["LocationSyncResult", "LocationSyncService"]
