"""
Domain models for HighLevel token persistence.

Rows are stored with snake_case column names; token columns always hold
ciphertext produced by ``TokenCipherService``.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

AGENCY_TABLE = "ghl_agencies"
AGENCY_KEY = ("company_id",)
LOCATION_TABLE = "ghl_locations"
LOCATION_KEY = ("company_id", "location_id")

VALIDITY_MARGIN = timedelta(seconds=60)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def expires_at_from_now(
    expires_in: Optional[int], fallback_seconds: int, *, now: Optional[datetime] = None
) -> datetime:
    """Absolute expiry for a lifetime reported in seconds, or the fallback."""
    seconds = expires_in if isinstance(expires_in, int) and expires_in > 0 else fallback_seconds
    return (now or utcnow()) + timedelta(seconds=seconds)


def is_token_valid(expires_at: Optional[datetime], *, now: Optional[datetime] = None) -> bool:
    """A token is usable only while it has more than the safety margin left."""
    if expires_at is None:
        return False
    return expires_at > (now or utcnow()) + VALIDITY_MARGIN


def _as_utc(value: Any) -> Any:
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if isinstance(value, datetime) and value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


class AgencyToken(BaseModel):
    """Company level credential row."""

    company_id: str
    access_token_enc: str
    refresh_token_enc: Optional[str] = None
    expires_at: Optional[datetime] = None
    scopes: List[str] = Field(default_factory=list)
    user_type: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("expires_at", "created_at", "updated_at", mode="before")
    @classmethod
    def _normalize_dates(cls, value: Any) -> Any:
        return _as_utc(value)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "AgencyToken":
        return cls(
            company_id=row["company_id"],
            access_token_enc=row["agency_access_token_enc"],
            refresh_token_enc=row.get("agency_refresh_token_enc"),
            expires_at=row.get("agency_token_expires_at"),
            scopes=row.get("scopes") or [],
            user_type=row.get("user_type"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    def to_row(self) -> Dict[str, Any]:
        row: Dict[str, Any] = {
            "company_id": self.company_id,
            "agency_access_token_enc": self.access_token_enc,
            "agency_refresh_token_enc": self.refresh_token_enc,
            "agency_token_expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "scopes": list(self.scopes),
            "user_type": self.user_type,
            "updated_at": (self.updated_at or utcnow()).isoformat(),
        }
        if self.created_at is not None:
            row["created_at"] = self.created_at.isoformat()
        return row

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        return is_token_valid(self.expires_at, now=now)


class LocationToken(BaseModel):
    """Location level credential row, minted from an agency token."""

    company_id: str
    location_id: str
    access_token_enc: Optional[str] = None
    expires_at: Optional[datetime] = None
    last_synced_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("expires_at", "last_synced_at", "created_at", "updated_at", mode="before")
    @classmethod
    def _normalize_dates(cls, value: Any) -> Any:
        return _as_utc(value)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "LocationToken":
        return cls(
            company_id=row["company_id"],
            location_id=row["location_id"],
            access_token_enc=row.get("location_access_token_enc"),
            expires_at=row.get("location_token_expires_at"),
            last_synced_at=row.get("last_synced_at"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    def to_row(self) -> Dict[str, Any]:
        return {
            "company_id": self.company_id,
            "location_id": self.location_id,
            "location_access_token_enc": self.access_token_enc,
            "location_token_expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "updated_at": (self.updated_at or utcnow()).isoformat(),
        }

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        return bool(self.access_token_enc) and is_token_valid(self.expires_at, now=now)


class LocationProfile(BaseModel):
    """The few profile fields we read, plus the untouched upstream payload."""

    location_id: str
    company_id: Optional[str] = None
    name: Optional[str] = None
    raw: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def parse(cls, location_id: str, payload: Any) -> "LocationProfile":
        data = payload if isinstance(payload, dict) else {}
        nested = data.get("location") if isinstance(data.get("location"), dict) else {}
        company_id = (
            data.get("companyId")
            or nested.get("companyId")
            or nested.get("company_id")
            or data.get("company_id")
        )
        return cls(
            location_id=location_id,
            company_id=str(company_id) if company_id else None,
            name=nested.get("name") or data.get("name"),
            raw=data,
        )


__all__ = [
    "AGENCY_KEY",
    "AGENCY_TABLE",
    "AgencyToken",
    "LOCATION_KEY",
    "LOCATION_TABLE",
    "LocationProfile",
    "LocationToken",
    "VALIDITY_MARGIN",
    "expires_at_from_now",
    "is_token_valid",
    "utcnow",
]
