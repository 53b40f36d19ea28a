"""Expose constructed client wrappers."""

from .dynamodb import DynamoDBStore
from .highlevel_api import HighLevelAPIClient
from .highlevel_auth import HighLevelOAuthClient, TokenResponse
from .sqlite_store import RecordStore, SQLiteStore

__all__ = [
    "DynamoDBStore",
    "HighLevelAPIClient",
    "HighLevelOAuthClient",
    "RecordStore",
    "SQLiteStore",
    "TokenResponse",
]
