"""
Domain exceptions shared by the credential store, provider clients and routes.

Every exception carries the HTTP status the API layer should answer with.
"""

from __future__ import annotations

from http import HTTPStatus
from typing import Optional


class DataStoreError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = HTTPStatus.INTERNAL_SERVER_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(DataStoreError):
    """Raised for malformed input, such as an unknown data source type."""

    status_code = HTTPStatus.BAD_REQUEST


class NotFoundError(DataStoreError):
    """Raised when a user has no stored credentials for a provider."""

    status_code = HTTPStatus.NOT_FOUND


class TokenExchangeError(DataStoreError):
    """Raised when an OAuth token endpoint returns an error or partial payload."""

    status_code = HTTPStatus.BAD_GATEWAY


class ProviderApiError(DataStoreError):
    """Terminal upstream failure, raised once retries are exhausted."""

    status_code = HTTPStatus.BAD_GATEWAY

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        upstream_status: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.upstream_status = upstream_status


class AuthExpiredError(ProviderApiError):
    """Upstream rejected the credentials and recovery did not help.

    Usually means the end user has to re-consent or re-link the account.
    """

    def __init__(self, message: str, *, provider: str) -> None:
        super().__init__(message, provider=provider, upstream_status=HTTPStatus.UNAUTHORIZED)


__all__ = [
    "AuthExpiredError",
    "DataStoreError",
    "NotFoundError",
    "ProviderApiError",
    "TokenExchangeError",
    "ValidationError",
]
