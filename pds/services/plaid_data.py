"""
Plaid Link lifecycle and financial data ingestion.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from pds.clients.plaid import PlaidApiClient, plaid_error_body
from pds.core.errors import AuthExpiredError, DataStoreError, ProviderApiError
from pds.models.data_source import DataSourceType
from pds.schemas.plaid import (
    PlaidAccount,
    PlaidAuthResponse,
    PlaidBalance,
    PlaidData,
    PlaidScheduledPayment,
    PlaidTransaction,
)
from pds.services.credential_store import CredentialStore
from pds.utils.retry import (
    ErrorClassification,
    ErrorKind,
    ResilientExecutor,
    RetryPolicy,
    Sleep,
    looks_like_network_error,
)

logger = logging.getLogger(__name__)

_AUTH_ERROR_CODES = {"ITEM_LOGIN_REQUIRED", "INVALID_ACCESS_TOKEN"}
_PRODUCT_UNAVAILABLE_CODES = {"PRODUCT_NOT_READY", "PRODUCTS_NOT_SUPPORTED", "INVALID_PRODUCT"}


def classify_plaid_error(exc: BaseException) -> ErrorClassification:
    """Map a Plaid API failure onto a retry category."""
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        body = plaid_error_body(exc)
        if status == 429 or "RATE_LIMIT_EXCEEDED" in (body.get("error_type"), body.get("error_code")):
            return ErrorClassification(ErrorKind.RATE_LIMITED, status)
        if status == 401 or body.get("error_code") in _AUTH_ERROR_CODES:
            return ErrorClassification(ErrorKind.AUTH_EXPIRED, status)
        return ErrorClassification(ErrorKind.OTHER, status)
    if looks_like_network_error(exc):
        return ErrorClassification(ErrorKind.NETWORK_ERROR)
    return ErrorClassification(ErrorKind.OTHER)


def _upstream_status(exc: Exception) -> Optional[int]:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    return None


class PlaidDataService:
    """Coordinate Plaid Link tokens, item credentials and data fetches."""

    PROVIDER = DataSourceType.PLAID
    TRANSACTION_WINDOW = timedelta(days=30)
    TRANSACTION_PAGE_SIZE = 100
    MAX_TRANSACTIONS = 1000

    def __init__(
        self,
        *,
        credential_store: CredentialStore,
        plaid_api: PlaidApiClient,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._store = credential_store
        self._plaid = plaid_api
        self._executor = ResilientExecutor(
            provider=self.PROVIDER.value,
            classify=classify_plaid_error,
            policy=retry_policy,
            sleep=sleep,
        )

    async def create_link_token(self, user_id: str) -> str:
        try:
            response = await self._plaid.create_link_token(user_id)
            return response["link_token"]
        except Exception as exc:
            logger.error("Error creating Plaid Link token for user %s: %s", user_id, exc)
            raise ProviderApiError(
                f"Failed to create Plaid Link token: {exc}",
                provider=self.PROVIDER.value,
                upstream_status=_upstream_status(exc),
            ) from exc

    async def exchange_public_token(self, public_token: str, user_id: str) -> None:
        """Swap a one-time public token for a durable item credential and store it."""
        try:
            response = await self._plaid.exchange_public_token(public_token)
            credentials = {
                "access_token": response["access_token"],
                "item_id": response["item_id"],
            }
        except Exception as exc:
            logger.error("Error exchanging Plaid public token for user %s: %s", user_id, exc)
            raise ProviderApiError(
                f"Failed to exchange public token: {exc}",
                provider=self.PROVIDER.value,
                upstream_status=_upstream_status(exc),
            ) from exc

        await self._store.store_credentials(user_id, self.PROVIDER, credentials)

    async def _stored_access_token(self, user_id: str) -> Optional[str]:
        credentials = await self._store.get_credentials(user_id, self.PROVIDER)
        if isinstance(credentials, dict) and credentials.get("access_token"):
            return credentials["access_token"]
        return None

    async def get_access_token(self, user_id: str) -> PlaidAuthResponse:
        """Return the stored access token, or a fresh link token when re-linking is needed."""
        access_token = await self._stored_access_token(user_id)
        if access_token:
            return PlaidAuthResponse(type="access_token", access_token=access_token)
        return PlaidAuthResponse(type="link_token", link_token=await self.create_link_token(user_id))

    async def fetch_data(self, user_id: str) -> PlaidData:
        access_token = await self._stored_access_token(user_id)
        if not access_token:
            raise AuthExpiredError(
                "No Plaid access token available for this user", provider=self.PROVIDER.value
            )

        token = {"value": access_token}

        async def reload_token() -> None:
            reloaded = await self._stored_access_token(user_id)
            if not reloaded:
                raise AuthExpiredError(
                    "No Plaid access token available for this user", provider=self.PROVIDER.value
                )
            token["value"] = reloaded

        try:
            accounts = await self._executor.run(
                lambda: self._fetch_accounts(token["value"]),
                operation_name="fetching accounts",
                refresh=reload_token,
            )
            transactions = await self._fetch_transactions(token, reload_token)
            scheduled_payments = await self._executor.run(
                lambda: self._fetch_scheduled_payments(token["value"]),
                operation_name="fetching scheduled payments",
                refresh=reload_token,
            )
        except DataStoreError:
            logger.error("Error fetching Plaid data for user %s", user_id)
            raise

        logger.info(
            "Fetched %d accounts and %d transactions from Plaid for user %s",
            len(accounts),
            len(transactions),
            user_id,
        )
        return PlaidData(
            accounts=accounts,
            transactions=transactions,
            scheduled_payments=scheduled_payments,
        )

    async def _fetch_accounts(self, access_token: str) -> List[PlaidAccount]:
        response = await self._plaid.get_accounts(access_token)
        return [self._to_account(account) for account in response.get("accounts", [])]

    async def _fetch_transactions(
        self, token: Dict[str, str], reload_token: Callable[[], Awaitable[None]]
    ) -> List[PlaidTransaction]:
        end_date = datetime.now(timezone.utc).date()
        start_date = end_date - self.TRANSACTION_WINDOW

        transactions: List[PlaidTransaction] = []
        offset = 0
        while True:
            current_offset = offset
            page = await self._executor.run(
                lambda: self._plaid.get_transactions(
                    token["value"],
                    start_date=start_date,
                    end_date=end_date,
                    count=self.TRANSACTION_PAGE_SIZE,
                    offset=current_offset,
                ),
                operation_name="fetching transactions",
                refresh=reload_token,
            )
            batch = page.get("transactions", [])
            transactions.extend(self._to_transaction(item) for item in batch)
            offset += len(batch)

            total = min(page.get("total_transactions", 0), self.MAX_TRANSACTIONS)
            if not batch or offset >= total:
                return transactions[: self.MAX_TRANSACTIONS]

    async def _fetch_scheduled_payments(self, access_token: str) -> List[PlaidScheduledPayment]:
        try:
            response = await self._plaid.get_recurring_transactions(access_token)
        except httpx.HTTPStatusError as exc:
            if plaid_error_body(exc).get("error_code") in _PRODUCT_UNAVAILABLE_CODES:
                logger.info("Recurring transactions unavailable for this item; skipping")
                return []
            raise
        return [
            self._to_scheduled_payment(stream)
            for stream in response.get("outflow_streams", [])
            if stream.get("is_active")
        ]

    @staticmethod
    def _to_account(account: Dict[str, Any]) -> PlaidAccount:
        balances = account.get("balances") or {}
        return PlaidAccount(
            account_id=account["account_id"],
            name=account.get("name", ""),
            official_name=account.get("official_name"),
            type=account.get("type", ""),
            subtype=account.get("subtype") or "",
            mask=account.get("mask"),
            balance=PlaidBalance(
                current=balances.get("current") or 0,
                available=balances.get("available"),
                limit=balances.get("limit"),
                currency=balances.get("iso_currency_code") or "USD",
            ),
        )

    @staticmethod
    def _to_transaction(transaction: Dict[str, Any]) -> PlaidTransaction:
        return PlaidTransaction(
            transaction_id=transaction["transaction_id"],
            account_id=transaction["account_id"],
            amount=transaction.get("amount", 0),
            date=date.fromisoformat(transaction["date"]),
            name=transaction.get("name", ""),
            merchant_name=transaction.get("merchant_name"),
            category=transaction.get("category") or [],
            pending=bool(transaction.get("pending", False)),
            currency=transaction.get("iso_currency_code") or "USD",
        )

    @staticmethod
    def _to_scheduled_payment(stream: Dict[str, Any]) -> PlaidScheduledPayment:
        amount = stream.get("last_amount") or stream.get("average_amount") or {}
        next_date = stream.get("predicted_next_date")
        return PlaidScheduledPayment(
            stream_id=stream["stream_id"],
            account_id=stream.get("account_id", ""),
            description=stream.get("description") or "",
            merchant_name=stream.get("merchant_name"),
            amount=amount.get("amount") or 0,
            frequency=stream.get("frequency") or "UNKNOWN",
            next_payment_date=date.fromisoformat(next_date) if next_date else None,
            currency=amount.get("iso_currency_code") or "USD",
        )


__all__ = ["PlaidDataService", "classify_plaid_error"]
