"""Plaid REST client covering Link, Items, Accounts and Transactions."""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, Optional

import httpx

from pds.core.config import PlaidSettings


def plaid_error_body(exc: httpx.HTTPStatusError) -> Dict[str, Any]:
    """Return Plaid's JSON error object (``error_type``, ``error_code``, ...), or ``{}``."""
    try:
        payload = exc.response.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


class PlaidApiClient:
    """Thin async wrapper around the Plaid endpoints used for ingestion.

    Every call authenticates with ``client_id`` and ``secret`` in the JSON body
    and raises :class:`httpx.HTTPStatusError` on a non-2xx answer.
    """

    _ENVIRONMENT_URLS = {
        "sandbox": "https://sandbox.plaid.com",
        "development": "https://development.plaid.com",
        "production": "https://production.plaid.com",
    }

    def __init__(
        self,
        settings: PlaidSettings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
    ) -> None:
        self._settings = settings
        self._transport = transport
        self._timeout = timeout
        self._base_url = self._ENVIRONMENT_URLS[settings.environment]

    async def _post(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        payload = {
            "client_id": self._settings.client_id,
            "secret": self._settings.secret,
            **body,
        }
        async with httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
        ) as client:
            response = await client.post(path, json=payload)
        response.raise_for_status()
        return response.json()

    async def create_link_token(self, user_id: str) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "user": {"client_user_id": user_id},
            "client_name": self._settings.client_name,
            "products": ["transactions"],
            "country_codes": ["US"],
            "language": "en",
        }
        if self._settings.redirect_uri:
            body["redirect_uri"] = str(self._settings.redirect_uri)
        return await self._post("/link/token/create", body)

    async def exchange_public_token(self, public_token: str) -> Dict[str, Any]:
        return await self._post(
            "/item/public_token/exchange", {"public_token": public_token}
        )

    async def get_accounts(self, access_token: str) -> Dict[str, Any]:
        return await self._post("/accounts/get", {"access_token": access_token})

    async def get_transactions(
        self,
        access_token: str,
        *,
        start_date: date,
        end_date: date,
        count: int,
        offset: int,
    ) -> Dict[str, Any]:
        """Fetch one page of transactions between two dates (inclusive)."""
        return await self._post(
            "/transactions/get",
            {
                "access_token": access_token,
                "start_date": start_date.isoformat(),
                "end_date": end_date.isoformat(),
                "options": {"count": count, "offset": offset},
            },
        )

    async def get_recurring_transactions(self, access_token: str) -> Dict[str, Any]:
        return await self._post(
            "/transactions/recurring/get", {"access_token": access_token}
        )


__all__ = ["PlaidApiClient", "plaid_error_body"]
