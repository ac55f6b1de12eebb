"""Public schema exports."""

from .auth import (
    AuthorizationUrlResponse,
    CallbackResult,
    LinkTokenResponse,
    OAuthCallbackPayload,
    PublicTokenExchangeRequest,
)
from .data_sources import DataSourceSummary, IngestionRunSummary, StoreCredentialsRequest
from .gmail import EmailMessage, GmailData
from .plaid import (
    PlaidAccount,
    PlaidAuthResponse,
    PlaidBalance,
    PlaidData,
    PlaidScheduledPayment,
    PlaidTransaction,
)

__all__ = [
    "AuthorizationUrlResponse",
    "CallbackResult",
    "DataSourceSummary",
    "EmailMessage",
    "GmailData",
    "IngestionRunSummary",
    "LinkTokenResponse",
    "OAuthCallbackPayload",
    "PlaidAccount",
    "PlaidAuthResponse",
    "PlaidBalance",
    "PlaidData",
    "PlaidScheduledPayment",
    "PlaidTransaction",
    "PublicTokenExchangeRequest",
    "StoreCredentialsRequest",
]
