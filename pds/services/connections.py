"""
Caller-facing operations for connecting data sources and triggering ingestion.
"""

from __future__ import annotations

import logging
from typing import Optional

from pds.clients.google_auth import OAuthStateEncoder
from pds.core.errors import ValidationError
from pds.models.data_source import DataSourceType
from pds.schemas.auth import AuthorizationUrlResponse, CallbackResult, LinkTokenResponse
from pds.schemas.data_sources import IngestionRunSummary
from pds.services.credential_store import CredentialStore
from pds.services.gmail_data import GmailDataService
from pds.services.ingestion_scheduler import IngestionScheduler
from pds.services.plaid_data import PlaidDataService

logger = logging.getLogger(__name__)


class ConnectionService:
    """Thin facade the HTTP layer talks to."""

    def __init__(
        self,
        *,
        credential_store: CredentialStore,
        gmail: GmailDataService,
        plaid: PlaidDataService,
        state_encoder: OAuthStateEncoder,
        scheduler: Optional[IngestionScheduler] = None,
    ) -> None:
        self._store = credential_store
        self._gmail = gmail
        self._plaid = plaid
        self._state = state_encoder
        self._scheduler = scheduler

    def initiate_auth(self, user_id: str, *, popup: bool = False) -> AuthorizationUrlResponse:
        """Start the Gmail consent flow for ``user_id``."""
        if not user_id:
            raise ValidationError("user_id is required")
        state = self._state.issue(user_id, DataSourceType.GMAIL, popup=popup)
        return AuthorizationUrlResponse(
            authorization_url=self._gmail.generate_auth_url(state),
            state=state,
        )

    async def handle_callback(self, code: str, state: str) -> CallbackResult:
        """Validate the state, exchange the code and persist the Gmail tokens."""
        if not code:
            raise ValidationError("Missing authorization code")
        oauth_state = self._state.validate(state)
        if oauth_state.provider is not DataSourceType.GMAIL:
            raise ValidationError(
                f"OAuth callback is not supported for provider {oauth_state.provider.value}"
            )

        tokens = await self._gmail.exchange_code_for_tokens(code)
        await self._store.store_credentials(oauth_state.user_id, DataSourceType.GMAIL, tokens)
        logger.info("Connected Gmail for user %s", oauth_state.user_id)
        return CallbackResult(
            user_id=oauth_state.user_id,
            provider=oauth_state.provider.value,
            popup=oauth_state.popup,
        )

    async def get_or_create_link_token(self, user_id: str) -> LinkTokenResponse:
        """Report an existing Plaid connection, or hand out a link token to create one."""
        auth = await self._plaid.get_access_token(user_id)
        if auth.type == "access_token":
            return LinkTokenResponse(status="already_connected")
        return LinkTokenResponse(status="link_token", link_token=auth.link_token)

    async def exchange_public_token(self, public_token: str, user_id: str) -> None:
        if not public_token or not user_id:
            raise ValidationError("public_token and user_id are required")
        await self._plaid.exchange_public_token(public_token, user_id)
        logger.info("Connected Plaid for user %s", user_id)

    async def trigger_ingestion_now(self) -> IngestionRunSummary:
        if self._scheduler is None:
            raise RuntimeError("No ingestion scheduler configured")
        return await self._scheduler.run_now()


__all__ = ["ConnectionService"]
