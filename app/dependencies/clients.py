"""
Factory functions to provide shared clients and services as FastAPI dependencies.
"""

from functools import lru_cache

from app.clients import (
    DynamoDBStore,
    HighLevelAPIClient,
    HighLevelOAuthClient,
    RecordStore,
    SQLiteStore,
)
from app.core.config import get_settings
from app.services import (
    HighLevelTokenService,
    LocationSyncService,
    TokenCipherService,
)


@lru_cache()
def _settings():
    """Internal helper to cache settings for client factories."""
    return get_settings()


@lru_cache()
def get_highlevel_oauth_client() -> HighLevelOAuthClient:
    """Create a singleton HighLevel OAuth client."""
    return HighLevelOAuthClient(_settings().highlevel)


@lru_cache()
def get_highlevel_api_client() -> HighLevelAPIClient:
    """Provide the HighLevel data API client."""
    return HighLevelAPIClient(_settings().highlevel)


@lru_cache()
def get_token_store() -> RecordStore:
    """Provide the configured token store backend."""
    storage = _settings().storage
    if storage.backend == "dynamodb":
        return DynamoDBStore(storage)
    return SQLiteStore(storage.sqlite_path)


@lru_cache()
def get_token_cipher_service() -> TokenCipherService:
    """Provide the key ring backed encryption helper for token storage."""
    return TokenCipherService.from_settings(_settings().security)


@lru_cache()
def get_highlevel_token_service() -> HighLevelTokenService:
    """Provide the token lifecycle manager."""
    return HighLevelTokenService(
        store=get_token_store(),
        oauth_client=get_highlevel_oauth_client(),
        token_cipher=get_token_cipher_service(),
        settings=_settings().highlevel,
        api_client=get_highlevel_api_client(),
    )


def get_location_sync_service() -> LocationSyncService:
    """Build a location sync service using configured clients."""
    return LocationSyncService(
        token_service=get_highlevel_token_service(),
        api_client=get_highlevel_api_client(),
        store=get_token_store(),
    )


__all__ = [
    "get_highlevel_api_client",
    "get_highlevel_oauth_client",
    "get_highlevel_token_service",
    "get_location_sync_service",
    "get_token_cipher_service",
    "get_token_store",
]
