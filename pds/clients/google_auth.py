"""
Google OAuth utilities.

These helpers manage the Gmail consent flow, the token endpoint and the
state parameter that carries the user through the redirect.
"""

from __future__ import annotations

import base64
import binascii
import json
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional, TypeVar
from urllib.parse import urlencode

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from pds.core.config import GmailSettings
from pds.core.errors import TokenExchangeError, ValidationError
from pds.models.data_source import DataSourceType

ClientT = TypeVar("ClientT")


class OAuthState(BaseModel):
    """Decoded contents of the ``state`` query parameter."""

    user_id: str
    provider: DataSourceType
    nonce: str
    popup: bool = False


class OAuthStateEncoder:
    """Encode and decode OAuth state values.

    The state is plain base64 JSON. It is validated for shape and provider
    but carries no signature, so a well-formed forged value is accepted.
    """

    def issue(self, user_id: str, provider: DataSourceType, *, popup: bool = False) -> str:
        payload = {
            "user_id": user_id,
            "provider": provider.value,
            "nonce": secrets.token_hex(16),
            "popup": popup,
        }
        serialized = json.dumps(payload, separators=(",", ":"))
        return base64.urlsafe_b64encode(serialized.encode("utf-8")).decode("utf-8")

    def validate(self, token: str) -> OAuthState:
        try:
            decoded = base64.urlsafe_b64decode(token.encode("utf-8"))
            payload = json.loads(decoded)
            if not isinstance(payload, dict):
                raise ValueError("state payload must be an object")
            return OAuthState.model_validate(payload)
        except (binascii.Error, ValueError, PydanticValidationError) as exc:
            raise ValidationError("Invalid state parameter") from exc


@dataclass(frozen=True)
class RefreshedToken:
    access_token: str
    expires_in: int
    refresh_token: Optional[str] = None


class GoogleOAuthClient:
    """Build Google authorization URLs and exchange or refresh tokens."""

    AUTH_BASE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
    TOKEN_URL = "https://oauth2.googleapis.com/token"

    def __init__(
        self,
        settings: GmailSettings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
    ) -> None:
        self._settings = settings
        self._transport = transport
        self._timeout = timeout

    @property
    def client_id(self) -> str:
        return self._settings.client_id

    def build_authorization_url(self, state: Optional[str] = None) -> str:
        """Construct the Google OAuth consent URL."""
        params = {
            "client_id": self._settings.client_id,
            "redirect_uri": str(self._settings.redirect_uri),
            "response_type": "code",
            "scope": " ".join(self._settings.scopes),
            "access_type": "offline",
            "prompt": "consent",
        }
        if state:
            params["state"] = state
        return f"{self.AUTH_BASE_URL}?{urlencode(params)}"

    async def _post_token(self, payload: Dict[str, str]) -> Dict[str, Any]:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.post(self.TOKEN_URL, data=payload)

        if response.status_code != httpx.codes.OK:
            raise TokenExchangeError(f"Google token endpoint returned {response.status_code}: {response.text}")
        return response.json()

    async def exchange_authorization_code(self, code: str) -> Dict[str, str]:
        """
        Exchange an authorization code for tokens.

        Returns ``{"access_token", "refresh_token", "expiry"}`` with the expiry
        as an ISO-8601 timestamp.
        """
        token_payload = await self._post_token(
            {
                "code": code,
                "client_id": self._settings.client_id,
                "client_secret": self._settings.client_secret,
                "redirect_uri": str(self._settings.redirect_uri),
                "grant_type": "authorization_code",
            }
        )

        for field_name in ("access_token", "refresh_token", "expires_in"):
            if not token_payload.get(field_name):
                missing = "expiry" if field_name == "expires_in" else field_name
                raise TokenExchangeError(f"Invalid token response from Google: missing {missing}")

        expiry = datetime.now(timezone.utc) + timedelta(seconds=int(token_payload["expires_in"]))
        return {
            "access_token": token_payload["access_token"],
            "refresh_token": token_payload["refresh_token"],
            "expiry": expiry.isoformat(),
        }

    async def refresh_token(self, refresh_token: str) -> RefreshedToken:
        """Refresh the access token using a stored refresh token."""
        token_payload = await self._post_token(
            {
                "client_id": self._settings.client_id,
                "client_secret": self._settings.client_secret,
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
            }
        )

        access_token = token_payload.get("access_token")
        expires_in = token_payload.get("expires_in")
        if not access_token or not expires_in:
            raise TokenExchangeError("Incomplete refresh payload returned from Google.")

        return RefreshedToken(
            access_token=access_token,
            expires_in=int(expires_in),
            refresh_token=token_payload.get("refresh_token"),
        )


class OAuthClientCache:
    """One OAuth client per ``(provider, client_id)`` for the lifetime of the owner."""

    def __init__(self) -> None:
        self._clients: Dict[str, Any] = {}

    def get_or_create(
        self, provider: DataSourceType, client_id: str, factory: Callable[[], ClientT]
    ) -> ClientT:
        key = f"{provider.value}-{client_id}"
        if key not in self._clients:
            self._clients[key] = factory()
        return self._clients[key]

    def __len__(self) -> int:
        return len(self._clients)


__all__ = [
    "GoogleOAuthClient",
    "OAuthClientCache",
    "OAuthState",
    "OAuthStateEncoder",
    "RefreshedToken",
]
