"""Schemas for the internal token endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class LocationTokenRequest(_CamelModel):
    """Body of a location token request."""

    company_id: Optional[str] = Field(None, alias="companyId")
    location_id: Optional[str] = Field(None, alias="locationId")


class LocationTokenResponse(_CamelModel):
    ok: bool = True
    location_access_token: str = Field(..., alias="locationAccessToken")
    expires_at: Optional[datetime] = Field(None, alias="expiresAt")
    cached: bool


class SyncLocationRequest(_CamelModel):
    """Body of a location sync request; the company is resolved when omitted."""

    location_id: Optional[str] = Field(None, alias="locationId")
    company_id: Optional[str] = Field(None, alias="companyId")


class SyncLocationResponse(_CamelModel):
    ok: bool = True
    company_id: str = Field(..., alias="companyId")
    location_id: str = Field(..., alias="locationId")
    synced_at: datetime = Field(..., alias="syncedAt")
    subscription_error: Optional[str] = Field(None, alias="subscriptionError")


class InstallationResponse(_CamelModel):
    ok: bool = True
    company_id: str = Field(..., alias="companyId")


__all__ = [
    "InstallationResponse",
    "LocationTokenRequest",
    "LocationTokenResponse",
    "SyncLocationRequest",
    "SyncLocationResponse",
]
