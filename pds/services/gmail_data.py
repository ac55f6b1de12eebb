"""
Gmail OAuth lifecycle and mailbox ingestion.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Tuple, TypeVar

from googleapiclient.errors import HttpError

from pds.clients.gmail import GmailApiClient
from pds.clients.google_auth import GoogleOAuthClient
from pds.core.errors import NotFoundError
from pds.models.data_source import DataSourceType
from pds.schemas.gmail import GmailData
from pds.services.credential_store import CredentialStore
from pds.utils.email_parsing import collect_contacts, parse_gmail_message
from pds.utils.retry import (
    ErrorClassification,
    ErrorKind,
    ResilientExecutor,
    RetryPolicy,
    Sleep,
    looks_like_network_error,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def classify_gmail_error(exc: BaseException) -> ErrorClassification:
    """Map a Gmail API failure onto a retry category."""
    if isinstance(exc, HttpError):
        status = int(exc.resp.status)
        if status == 429:
            return ErrorClassification(ErrorKind.RATE_LIMITED, status)
        if status == 401:
            return ErrorClassification(ErrorKind.AUTH_EXPIRED, status)
        return ErrorClassification(ErrorKind.OTHER, status)
    if looks_like_network_error(exc):
        return ErrorClassification(ErrorKind.NETWORK_ERROR)
    return ErrorClassification(ErrorKind.OTHER)


async def _gather_page(coroutines: Iterable[Awaitable[T]]) -> list[T]:
    """Await every fetch of a page; on the first failure cancel the rest before raising."""
    tasks = [asyncio.ensure_future(coroutine) for coroutine in coroutines]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


def _parse_expiry(value: Any) -> Optional[datetime]:
    if not value:
        return None
    try:
        expiry = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if expiry.tzinfo is None:
        expiry = expiry.replace(tzinfo=timezone.utc)
    return expiry


class _TokenSession:
    """Access token shared by the concurrent calls of one fetch.

    A 401 on any call refreshes the token once; calls that failed with an
    already replaced token simply pick up the new one.
    """

    def __init__(self, access_token: str, refresher: Callable[[], Awaitable[str]]) -> None:
        self.access_token = access_token
        self._refresher = refresher
        self._lock = asyncio.Lock()

    async def refresh(self, stale_token: Optional[str]) -> None:
        async with self._lock:
            if self.access_token == stale_token:
                self.access_token = await self._refresher()

    def bind(
        self, call: Callable[[str], Awaitable[T]]
    ) -> Tuple[Callable[[], Awaitable[T]], Callable[[], Awaitable[None]]]:
        used: Dict[str, str] = {}

        async def operation() -> T:
            used["token"] = self.access_token
            return await call(used["token"])

        async def refresh() -> None:
            await self.refresh(used.get("token"))

        return operation, refresh


class GmailDataService:
    """Manages Gmail tokens and normalizes a user's recent messages."""

    PROVIDER = DataSourceType.GMAIL
    _REFRESH_WINDOW = timedelta(minutes=5)
    PAGE_SIZE = 50
    MAX_MESSAGES = 100

    def __init__(
        self,
        *,
        credential_store: CredentialStore,
        oauth_client: GoogleOAuthClient,
        gmail_api: GmailApiClient,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._store = credential_store
        self._oauth = oauth_client
        self._gmail = gmail_api
        self._executor = ResilientExecutor(
            provider=self.PROVIDER.value,
            classify=classify_gmail_error,
            policy=retry_policy,
            sleep=sleep,
        )

    def generate_auth_url(self, state: Optional[str] = None) -> str:
        return self._oauth.build_authorization_url(state)

    async def exchange_code_for_tokens(self, code: str) -> Dict[str, str]:
        return await self._oauth.exchange_authorization_code(code)

    async def _load_credentials(self, user_id: str) -> Dict[str, Any]:
        credentials = await self._store.get_credentials(user_id, self.PROVIDER)
        if not isinstance(credentials, dict) or not credentials.get("access_token"):
            raise NotFoundError(f"No Gmail credentials found for user {user_id}")
        return credentials

    async def _refresh(self, user_id: str, credentials: Dict[str, Any]) -> str:
        refreshed = await self._oauth.refresh_token(credentials.get("refresh_token", ""))
        expiry = datetime.now(timezone.utc) + timedelta(seconds=refreshed.expires_in)
        await self._store.store_credentials(
            user_id,
            self.PROVIDER,
            {
                "access_token": refreshed.access_token,
                "refresh_token": refreshed.refresh_token or credentials.get("refresh_token"),
                "expiry": expiry.isoformat(),
            },
        )
        logger.info("Refreshed Gmail access token for user %s", user_id)
        return refreshed.access_token

    async def _force_refresh(self, user_id: str) -> str:
        credentials = await self._load_credentials(user_id)
        return await self._refresh(user_id, credentials)

    async def get_access_token(self, user_id: str) -> str:
        """Return a usable access token, refreshing it when about to expire."""
        credentials = await self._load_credentials(user_id)
        expiry = _parse_expiry(credentials.get("expiry"))
        if expiry is None or expiry <= datetime.now(timezone.utc) + self._REFRESH_WINDOW:
            return await self._refresh(user_id, credentials)
        return credentials["access_token"]

    async def fetch_data(self, user_id: str) -> GmailData:
        """Fetch up to ``MAX_MESSAGES`` recent messages and their contacts."""
        session = _TokenSession(
            await self.get_access_token(user_id),
            lambda: self._force_refresh(user_id),
        )

        raw_messages: list[Dict[str, Any]] = []
        page_token: Optional[str] = None
        while len(raw_messages) < self.MAX_MESSAGES:
            remaining = self.MAX_MESSAGES - len(raw_messages)
            current_page_token = page_token
            operation, refresh = session.bind(
                lambda token: self._gmail.list_messages(
                    token,
                    max_results=min(self.PAGE_SIZE, remaining),
                    page_token=current_page_token,
                )
            )
            page = await self._executor.run(
                operation, operation_name="listing Gmail messages", refresh=refresh
            )

            message_ids = [item["id"] for item in page.get("messages") or []][:remaining]
            if message_ids:
                raw_messages.extend(
                    await _gather_page(
                        self._fetch_message(session, message_id) for message_id in message_ids
                    )
                )

            page_token = page.get("nextPageToken")
            if not page_token or not message_ids:
                break

        messages = [parse_gmail_message(raw) for raw in raw_messages]
        logger.info("Fetched %d Gmail messages for user %s", len(messages), user_id)
        return GmailData(messages=messages, contacts=collect_contacts(messages))

    async def _fetch_message(self, session: _TokenSession, message_id: str) -> Dict[str, Any]:
        operation, refresh = session.bind(
            lambda token: self._gmail.get_message(token, message_id)
        )
        return await self._executor.run(
            operation, operation_name="fetching Gmail message", refresh=refresh
        )


__all__ = ["GmailDataService", "classify_gmail_error"]
