"""Schemas related to OAuth and Plaid Link flows."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class OAuthCallbackPayload(BaseModel):
    """Payload sent to complete the OAuth callback exchange."""

    code: str = Field(..., description="Authorization code returned by Google OAuth.")
    state: str = Field(..., description="Opaque state token issued when starting OAuth.")


class AuthorizationUrlResponse(BaseModel):
    authorization_url: str
    state: str


class CallbackResult(BaseModel):
    """Result of completing a provider consent flow."""

    user_id: str
    provider: str
    popup: bool = False


class LinkTokenResponse(BaseModel):
    status: str = Field(..., description="'already_connected' or 'link_token'.")
    link_token: Optional[str] = None


class PublicTokenExchangeRequest(BaseModel):
    public_token: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)


__all__ = [
    "AuthorizationUrlResponse",
    "CallbackResult",
    "LinkTokenResponse",
    "OAuthCallbackPayload",
    "PublicTokenExchangeRequest",
]
