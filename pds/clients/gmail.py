"""Gmail API client wrapper for reading a user's mailbox."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, Optional

import httplib2
from google.oauth2.credentials import Credentials
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build

ServiceFactory = Callable[[str], Any]


def build_gmail_service(access_token: str, *, http: Optional[Any] = None) -> Any:
    """Create a discovery-based Gmail service bound to a bearer token.

    The token is never refreshed by the transport: with no refresh status
    codes a 401 comes back as ``HttpError`` so the caller decides how to
    recover.
    """
    authorized = AuthorizedHttp(
        Credentials(token=access_token),
        http=http if http is not None else httplib2.Http(),
        refresh_status_codes=(),
    )
    return build("gmail", "v1", http=authorized, cache_discovery=False)


class GmailApiClient:
    """List and read messages of the authenticated user.

    A new discovery service is built per call because ``httplib2`` transports
    are not safe to share between the worker threads these calls run on.
    """

    def __init__(self, service_factory: Optional[ServiceFactory] = None) -> None:
        self._service_factory = service_factory or build_gmail_service

    async def list_messages(
        self,
        access_token: str,
        *,
        max_results: int,
        page_token: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Return one page of message ids plus the ``nextPageToken`` when present."""

        def _execute_list() -> Dict[str, Any]:
            service = self._service_factory(access_token)
            params: Dict[str, Any] = {"userId": "me", "maxResults": max_results}
            if page_token:
                params["pageToken"] = page_token
            return service.users().messages().list(**params).execute()

        return await asyncio.to_thread(_execute_list)

    async def get_message(self, access_token: str, message_id: str) -> Dict[str, Any]:
        """Fetch a message with its full MIME payload."""

        def _execute_get() -> Dict[str, Any]:
            service = self._service_factory(access_token)
            return (
                service.users()
                .messages()
                .get(userId="me", id=message_id, format="full")
                .execute()
            )

        return await asyncio.to_thread(_execute_get)


__all__ = ["GmailApiClient", "build_gmail_service"]
