"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    get_app_settings,
    get_connection_service,
    get_credential_store,
    get_gmail_api_client,
    get_gmail_data_service,
    get_google_oauth_client,
    get_ingestion_scheduler,
    get_oauth_client_cache,
    get_oauth_state_encoder,
    get_plaid_api_client,
    get_plaid_data_service,
    get_record_store,
    get_token_cipher_service,
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
