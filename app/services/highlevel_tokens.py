"""
Lifecycle management for HighLevel agency and location tokens.

Agency tokens come from the installation flow and are refreshed in place.
Location tokens are minted on demand from a valid agency token and cached
until shortly before they expire. Token columns are always stored encrypted.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from app.clients.highlevel_api import HighLevelAPIClient
from app.clients.highlevel_auth import HighLevelOAuthClient
from app.clients.sqlite_store import RecordStore
from app.core.config import HighLevelSettings
from app.core.errors import (
    ConfigurationError,
    LocationNotFoundError,
    MissingCompanyIdError,
    RefreshTokenMissingError,
    StoreError,
    TokenError,
    TokenNotFoundError,
)
from app.models.tokens import (
    AGENCY_KEY,
    AGENCY_TABLE,
    LOCATION_KEY,
    LOCATION_TABLE,
    AgencyToken,
    LocationProfile,
    LocationToken,
    expires_at_from_now,
    utcnow,
)
from app.services.token_cipher import TokenCipherService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AgencyAccessToken:
    token: str = field(repr=False)
    expires_at: Optional[datetime]
    refreshed: bool


@dataclass(frozen=True)
class LocationAccessToken:
    token: str = field(repr=False)
    expires_at: Optional[datetime]
    cached: bool


@dataclass(frozen=True)
class ResolvedLocation:
    company_id: str
    profile: LocationProfile


class HighLevelTokenService:
    """Hands out currently valid HighLevel tokens, refreshing and minting as needed."""

    def __init__(
        self,
        store: RecordStore,
        oauth_client: HighLevelOAuthClient,
        token_cipher: TokenCipherService,
        settings: HighLevelSettings,
        api_client: Optional[HighLevelAPIClient] = None,
    ) -> None:
        self._store = store
        self._oauth = oauth_client
        self._cipher = token_cipher
        self._settings = settings
        self._api = api_client
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def _load_agency(self, company_id: str) -> AgencyToken:
        row = self._store.get(AGENCY_TABLE, {"company_id": company_id})
        if not row or not row.get("agency_access_token_enc"):
            raise TokenNotFoundError("Agency token not found")
        return AgencyToken.from_row(row)

    def _load_location(self, company_id: str, location_id: str) -> Optional[LocationToken]:
        row = self._store.get(
            LOCATION_TABLE, {"company_id": company_id, "location_id": location_id}
        )
        return LocationToken.from_row(row) if row else None

    async def exchange_code_for_agency_token(self, code: str) -> AgencyToken:
        """Complete an installation: exchange ``code`` and persist the agency token."""
        tokens = await self._oauth.exchange_authorization_code(code)
        if not tokens.companyId:
            raise MissingCompanyIdError("Missing companyId in token response")

        scope = tokens.scope or self._settings.scope or ""
        record = AgencyToken(
            company_id=tokens.companyId,
            access_token_enc=self._cipher.encrypt(tokens.access_token),
            refresh_token_enc=(
                self._cipher.encrypt(tokens.refresh_token) if tokens.refresh_token else None
            ),
            expires_at=expires_at_from_now(
                tokens.expires_in, self._settings.agency_token_ttl_seconds
            ),
            scopes=scope.split(),
            user_type=tokens.userType,
        )
        self._store.upsert(AGENCY_TABLE, record.to_row(), AGENCY_KEY)
        logger.info(
            "Stored agency token for company %s (user type %s).",
            record.company_id,
            record.user_type,
        )
        return record

    async def get_agency_access_token(self, company_id: str) -> AgencyAccessToken:
        """Return a valid agency token for ``company_id``, refreshing if expired."""
        record = self._load_agency(company_id)
        if record.is_valid():
            return AgencyAccessToken(
                token=self._cipher.decrypt(record.access_token_enc),
                expires_at=record.expires_at,
                refreshed=False,
            )

        async with self._lock_for(f"agency:{company_id}"):
            # Another caller may have refreshed while we waited.
            record = self._load_agency(company_id)
            if record.is_valid():
                return AgencyAccessToken(
                    token=self._cipher.decrypt(record.access_token_enc),
                    expires_at=record.expires_at,
                    refreshed=False,
                )
            return await self._refresh_agency(record)

    async def _refresh_agency(self, record: AgencyToken) -> AgencyAccessToken:
        if not record.refresh_token_enc:
            raise RefreshTokenMissingError("Agency refresh token missing")

        refresh_token = self._cipher.decrypt(record.refresh_token_enc)
        refreshed = await self._oauth.refresh_agency_token(refresh_token)

        now = utcnow()
        expires_at = expires_at_from_now(
            refreshed.expires_in, self._settings.agency_token_ttl_seconds, now=now
        )
        updated = record.model_copy(
            update={
                "access_token_enc": self._cipher.encrypt(refreshed.access_token),
                "refresh_token_enc": (
                    self._cipher.encrypt(refreshed.refresh_token)
                    if refreshed.refresh_token
                    else record.refresh_token_enc
                ),
                "expires_at": expires_at,
                "updated_at": now,
            }
        )
        self._store.upsert(AGENCY_TABLE, updated.to_row(), AGENCY_KEY)
        logger.info(
            "Refreshed agency token for company %s (refresh token rotated: %s).",
            record.company_id,
            bool(refreshed.refresh_token),
        )
        return AgencyAccessToken(
            token=refreshed.access_token, expires_at=expires_at, refreshed=True
        )

    async def get_location_access_token(
        self, *, company_id: str, location_id: str
    ) -> LocationAccessToken:
        """Return a location token, minting a new one when the cache is stale."""
        cached = self._cached_location_token(company_id, location_id)
        if cached is not None:
            return cached

        async with self._lock_for(f"location:{company_id}:{location_id}"):
            cached = self._cached_location_token(company_id, location_id)
            if cached is not None:
                return cached

            agency = await self.get_agency_access_token(company_id)
            minted = await self._oauth.exchange_location_token(
                company_id=company_id,
                location_id=location_id,
                agency_access_token=agency.token,
            )
            expires_at = expires_at_from_now(
                minted.expires_in, self._settings.location_token_ttl_seconds
            )
            if agency.expires_at is not None and expires_at > agency.expires_at:
                expires_at = agency.expires_at

            record = LocationToken(
                company_id=company_id,
                location_id=location_id,
                access_token_enc=self._cipher.encrypt(minted.access_token),
                expires_at=expires_at,
            )
            try:
                self._store.upsert(LOCATION_TABLE, record.to_row(), LOCATION_KEY)
            except StoreError as exc:
                logger.warning(
                    "Minted location token for %s/%s but could not cache it: %s",
                    company_id,
                    location_id,
                    exc.message,
                )
            else:
                logger.info("Minted location token for %s/%s.", company_id, location_id)

            return LocationAccessToken(
                token=minted.access_token, expires_at=expires_at, cached=False
            )

    def _cached_location_token(
        self, company_id: str, location_id: str
    ) -> Optional[LocationAccessToken]:
        record = self._load_location(company_id, location_id)
        if record is None or not record.is_valid():
            return None
        return LocationAccessToken(
            token=self._cipher.decrypt(record.access_token_enc or ""),
            expires_at=record.expires_at,
            cached=True,
        )

    async def resolve_company_for_location(self, location_id: str) -> ResolvedLocation:
        """
        Find the installed company that owns ``location_id``.

        Companies are tried one at a time in store order and the first whose
        agency token can read the location profile wins.
        """
        if self._api is None:
            raise ConfigurationError("Location resolution requires a HighLevel API client.")

        last_error: Optional[str] = None
        for row in self._store.list(AGENCY_TABLE, columns=["company_id"]):
            company_id = str(row.get("company_id") or "")
            if not company_id:
                continue
            try:
                agency = await self.get_agency_access_token(company_id)
                payload = await self._api.get_location_profile(location_id, agency.token)
            except TokenError as exc:
                logger.debug(
                    "Company %s does not resolve location %s: %s",
                    company_id,
                    location_id,
                    exc.message,
                )
                last_error = exc.message
                continue

            profile = LocationProfile.parse(location_id, payload)
            resolved = profile.company_id or company_id
            logger.info("Resolved location %s to company %s.", location_id, resolved)
            return ResolvedLocation(company_id=resolved, profile=profile)

        message = "Location not found for any agency"
        if last_error:
            message = f"{message} (last error: {last_error})"
        raise LocationNotFoundError(message)

    def describe(self, company_id: str, location_id: Optional[str] = None) -> Dict[str, Any]:
        """Token health report for operators. Contains no token material."""
        now = utcnow()
        agency_row = self._store.get(AGENCY_TABLE, {"company_id": company_id})
        agency: Optional[Dict[str, Any]] = None
        if agency_row and agency_row.get("agency_access_token_enc"):
            record = AgencyToken.from_row(agency_row)
            agency = {
                "company_id": record.company_id,
                "agency_token_expires_at": record.expires_at,
                "agency_token_valid": record.is_valid(now),
                "has_refresh_token": bool(record.refresh_token_enc),
                "scopes": record.scopes,
                "user_type": record.user_type,
                "created_at": record.created_at,
                "updated_at": record.updated_at,
            }

        location: Optional[Dict[str, Any]] = None
        if location_id:
            record = self._load_location(company_id, location_id)
            if record is not None:
                location = {
                    "company_id": record.company_id,
                    "location_id": record.location_id,
                    "location_token_expires_at": record.expires_at,
                    "location_token_valid": record.is_valid(now),
                    "last_synced_at": record.last_synced_at,
                    "created_at": record.created_at,
                    "updated_at": record.updated_at,
                }

        return {"agency": agency, "location": location}

    def rotate_encryption(self) -> int:
        """Re-encrypt stored tokens that are not under the active key. Returns rows updated."""
        updated = 0
        columns = {
            AGENCY_TABLE: (AGENCY_KEY, ("agency_access_token_enc", "agency_refresh_token_enc")),
            LOCATION_TABLE: (LOCATION_KEY, ("location_access_token_enc",)),
        }
        for table, (keys, token_columns) in columns.items():
            for row in self._store.list(table):
                changes = {
                    column: self._cipher.reencrypt(row[column])
                    for column in token_columns
                    if row.get(column) and self._cipher.needs_rotation(row[column])
                }
                if not changes:
                    continue
                self._store.upsert(table, {**{key: row[key] for key in keys}, **changes}, keys)
                updated += 1
        logger.info("Re-encrypted %s token rows under key %s.", updated, self._cipher.active_version)
        return updated


__all__ = [
    "AgencyAccessToken",
    "HighLevelTokenService",
    "LocationAccessToken",
    "ResolvedLocation",
]
