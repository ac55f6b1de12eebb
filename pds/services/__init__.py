"""Service layer exports."""

from .token_cipher import TokenCipherService
from .credential_store import CredentialStore
from .gmail_data import GmailDataService
from .plaid_data import PlaidDataService
from .ingestion_scheduler import IngestionScheduler, SchedulerState
from .connections import ConnectionService

__all__ = [
    "ConnectionService",
    "CredentialStore",
    "GmailDataService",
    "IngestionScheduler",
    "PlaidDataService",
    "SchedulerState",
    "TokenCipherService",
]
