"""Expose constructed client wrappers."""

from .dynamodb import DynamoDBClient
from .gmail import GmailApiClient
from .google_auth import GoogleOAuthClient, OAuthClientCache, OAuthStateEncoder
from .plaid import PlaidApiClient
from .sqlite_store import SQLiteStore

__all__ = [
    "DynamoDBClient",
    "GmailApiClient",
    "GoogleOAuthClient",
    "OAuthClientCache",
    "OAuthStateEncoder",
    "PlaidApiClient",
    "SQLiteStore",
]
