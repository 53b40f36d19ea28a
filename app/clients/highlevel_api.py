"""Thin wrapper around the HighLevel data API used during location sync."""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from app.core.config import HighLevelSettings
from app.core.errors import UpstreamError
from app.utils.http import RetryConfig, request_with_retry


class HighLevelAPIClient:
    """Read-only JSON lookups keyed by location id and bearer token."""

    def __init__(
        self,
        settings: HighLevelSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        retry_config: Optional[RetryConfig] = None,
    ) -> None:
        self._settings = settings
        self._transport = transport
        self._retry = retry_config or RetryConfig(attempts=2, backoff_seconds=0.5)

    def _headers(self, access_token: str) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
        }
        if self._settings.api_version:
            headers["Version"] = self._settings.api_version
        return headers

    async def get_json(self, path: str, access_token: str) -> Any:
        async with httpx.AsyncClient(
            base_url=self._settings.data_api_base_url,
            timeout=self._settings.http_timeout_seconds,
            transport=self._transport,
        ) as client:
            response = await request_with_retry(
                client.get,
                path,
                headers=self._headers(access_token),
                action=f"HighLevel GET {path}",
                retry_config=self._retry,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamError(
                f"HighLevel GET {path} returned invalid JSON.", status=response.status_code
            ) from exc

    async def get_location_profile(self, location_id: str, access_token: str) -> Any:
        return await self.get_json(f"/locations/{location_id}", access_token)

    async def get_location_subscription(self, location_id: str, access_token: str) -> Any:
        return await self.get_json(f"/saas/location/{location_id}/subscription", access_token)


__all__ = ["HighLevelAPIClient"]
