"""
Factory functions to provide shared clients and services as FastAPI dependencies.
"""

from functools import lru_cache

from pds.clients import (
    DynamoDBClient,
    GmailApiClient,
    GoogleOAuthClient,
    OAuthClientCache,
    OAuthStateEncoder,
    PlaidApiClient,
    SQLiteStore,
)
from pds.core.config import AppSettings, get_settings
from pds.models.data_source import DataSourceType
from pds.services import (
    ConnectionService,
    CredentialStore,
    GmailDataService,
    IngestionScheduler,
    PlaidDataService,
    TokenCipherService,
)
from pds.services.credential_store import RecordStore


@lru_cache()
def _settings() -> AppSettings:
    """Settings shared by every factory in this module."""
    return get_settings()


def get_app_settings() -> AppSettings:
    """FastAPI dependency returning the application settings."""
    return _settings()


@lru_cache()
def get_oauth_state_encoder() -> OAuthStateEncoder:
    return OAuthStateEncoder()


@lru_cache()
def get_oauth_client_cache() -> OAuthClientCache:
    """Provide the process's OAuth client cache."""
    return OAuthClientCache()


def get_google_oauth_client() -> GoogleOAuthClient:
    """Return the Google OAuth client for the configured credentials."""
    settings = _settings()
    return get_oauth_client_cache().get_or_create(
        DataSourceType.GMAIL,
        settings.gmail.client_id,
        lambda: GoogleOAuthClient(settings.gmail),
    )


@lru_cache()
def get_gmail_api_client() -> GmailApiClient:
    return GmailApiClient()


@lru_cache()
def get_plaid_api_client() -> PlaidApiClient:
    return PlaidApiClient(_settings().plaid)


@lru_cache()
def get_record_store() -> RecordStore:
    """Provide the configured credential record backend."""
    storage = _settings().storage
    if storage.backend == "dynamodb":
        return DynamoDBClient(storage)
    return SQLiteStore(storage.sqlite_db_path)


@lru_cache()
def get_token_cipher_service() -> TokenCipherService:
    """Provide symmetric encryption helper for credential storage."""
    return TokenCipherService(secret=_settings().security.encryption_key)


@lru_cache()
def get_credential_store() -> CredentialStore:
    return CredentialStore(get_record_store(), get_token_cipher_service())


@lru_cache()
def get_gmail_data_service() -> GmailDataService:
    return GmailDataService(
        credential_store=get_credential_store(),
        oauth_client=get_google_oauth_client(),
        gmail_api=get_gmail_api_client(),
    )


@lru_cache()
def get_plaid_data_service() -> PlaidDataService:
    return PlaidDataService(
        credential_store=get_credential_store(),
        plaid_api=get_plaid_api_client(),
    )


@lru_cache()
def get_ingestion_scheduler() -> IngestionScheduler:
    """Provide the process-wide ingestion scheduler (Gmail first, then Plaid)."""
    return IngestionScheduler(
        credential_store=get_credential_store(),
        providers={
            DataSourceType.GMAIL: get_gmail_data_service(),
            DataSourceType.PLAID: get_plaid_data_service(),
        },
        settings=_settings().scheduler,
    )


def get_connection_service() -> ConnectionService:
    """Build the facade used by the connection routes."""
    return ConnectionService(
        credential_store=get_credential_store(),
        gmail=get_gmail_data_service(),
        plaid=get_plaid_data_service(),
        state_encoder=get_oauth_state_encoder(),
        scheduler=get_ingestion_scheduler(),
    )


__all__ = [
    "get_app_settings",
    "get_connection_service",
    "get_credential_store",
    "get_gmail_api_client",
    "get_gmail_data_service",
    "get_google_oauth_client",
    "get_ingestion_scheduler",
    "get_oauth_client_cache",
    "get_oauth_state_encoder",
    "get_plaid_api_client",
    "get_plaid_data_service",
    "get_record_store",
    "get_token_cipher_service",
]
