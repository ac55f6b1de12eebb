"""
FastAPI routes for connecting data sources and running ingestion.
"""

from __future__ import annotations

import html
import json
import logging
from http import HTTPStatus
from typing import Annotated, Any, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import HTMLResponse, RedirectResponse

from pds.core.errors import DataStoreError, NotFoundError, ValidationError
from pds.dependencies import (
    get_app_settings,
    get_connection_service,
    get_credential_store,
    get_gmail_data_service,
    get_plaid_data_service,
)
from pds.schemas import (
    AuthorizationUrlResponse,
    CallbackResult,
    DataSourceSummary,
    GmailData,
    IngestionRunSummary,
    LinkTokenResponse,
    OAuthCallbackPayload,
    PlaidData,
    PublicTokenExchangeRequest,
    StoreCredentialsRequest,
)
from pds.services.credential_store import coerce_data_source_type

router = APIRouter()
logger = logging.getLogger(__name__)


def _profile_url(frontend_url: str, *, error: Optional[str] = None) -> str:
    params = {"status": "error", "error": error} if error else {"status": "success"}
    return f"{frontend_url.rstrip('/')}/profile?{urlencode(params)}"


def _popup_page(frontend_url: str, *, error: Optional[str] = None) -> HTMLResponse:
    """Page that reports the outcome to the opener window and closes itself."""
    message = {"type": "gmail-auth", "status": "error" if error else "success"}
    if error:
        message["error"] = error
    text = f"Connection failed: {error}" if error else "Gmail connected. You can close this window."
    page = f"""<!DOCTYPE html>
<html>
  <head><title>Gmail connection</title></head>
  <body>
    <p>{html.escape(text)}</p>
    <script>
      if (window.opener) {{
        window.opener.postMessage({json.dumps(message)}, {json.dumps(frontend_url)});
      }}
      window.close();
    </script>
  </body>
</html>
"""
    return HTMLResponse(content=page)


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck() -> dict:
    """Simple health endpoint for monitoring."""
    return {"status": "ok"}


@router.get("/auth/gmail/authorize", status_code=HTTPStatus.OK)
async def start_gmail_oauth_flow(
    request: Request,
    connections: Annotated[Any, Depends(get_connection_service)],
    user_id: str = Query(..., description="User identifier initiating authentication."),
    popup: bool = Query(
        default=False,
        description="When true, the callback answers with a page for a popup window.",
    ),
    redirect: bool = Query(
        default=False,
        description="When true, respond with a redirect to the Google consent screen.",
    ),
) -> Any:
    """
    Kick off the OAuth flow by generating a state token and authorization URL.
    """
    result: AuthorizationUrlResponse = connections.initiate_auth(user_id, popup=popup)

    accept_header = request.headers.get("accept", "")
    wants_html = "text/html" in accept_header.lower()
    if redirect or wants_html:
        return RedirectResponse(
            url=result.authorization_url, status_code=HTTPStatus.TEMPORARY_REDIRECT
        )

    return result.model_dump()


@router.post("/auth/gmail/callback", response_model=CallbackResult)
async def handle_gmail_oauth_callback(
    payload: OAuthCallbackPayload,
    connections: Annotated[Any, Depends(get_connection_service)],
) -> CallbackResult:
    """Complete the OAuth exchange for API clients."""
    return await connections.handle_callback(payload.code, payload.state)


@router.get("/auth/gmail/callback")
async def handle_gmail_oauth_callback_get(
    connections: Annotated[Any, Depends(get_connection_service)],
    settings: Annotated[Any, Depends(get_app_settings)],
    state: Optional[str] = Query(default=None, description="OAuth state token."),
    code: Optional[str] = Query(default=None, description="Authorization code returned by Google."),
    error: Optional[str] = Query(default=None, description="Error reported by Google."),
) -> Response:
    """Browser landing point: finish the exchange and send the user back to the profile page."""
    popup = False
    try:
        if error:
            raise ValidationError(f"Authorization denied: {error}")
        if not code or not state:
            raise ValidationError("Missing code or state parameter")
        result = await connections.handle_callback(code, state)
        popup = result.popup
    except DataStoreError as exc:
        logger.error("Gmail OAuth callback failed: %s", exc.message)
        return RedirectResponse(
            url=_profile_url(settings.frontend_url, error=exc.message),
            status_code=HTTPStatus.FOUND,
        )

    if popup:
        return _popup_page(settings.frontend_url)
    return RedirectResponse(url=_profile_url(settings.frontend_url), status_code=HTTPStatus.FOUND)


@router.get("/auth/plaid", response_model=LinkTokenResponse)
async def start_plaid_link(
    connections: Annotated[Any, Depends(get_connection_service)],
    user_id: str = Query(..., description="User identifier connecting a bank account."),
) -> LinkTokenResponse:
    """Return a Link token, or report that the user is already connected."""
    return await connections.get_or_create_link_token(user_id)


@router.post("/plaid/exchange-token", status_code=HTTPStatus.OK)
async def exchange_plaid_public_token(
    payload: PublicTokenExchangeRequest,
    connections: Annotated[Any, Depends(get_connection_service)],
) -> dict:
    await connections.exchange_public_token(payload.public_token, payload.user_id)
    return {"status": "connected"}


@router.get("/auth/plaid/callback")
async def handle_plaid_callback(
    connections: Annotated[Any, Depends(get_connection_service)],
    settings: Annotated[Any, Depends(get_app_settings)],
    public_token: Optional[str] = Query(default=None),
    user_id: Optional[str] = Query(default=None),
) -> RedirectResponse:
    """Redirect variant of the public token exchange used by Link's redirect flow."""
    try:
        if not public_token or not user_id:
            raise ValidationError("Missing public_token or user_id")
        await connections.exchange_public_token(public_token, user_id)
    except DataStoreError as exc:
        logger.error("Plaid callback failed: %s", exc.message)
        return RedirectResponse(
            url=_profile_url(settings.frontend_url, error=exc.message),
            status_code=HTTPStatus.FOUND,
        )
    return RedirectResponse(url=_profile_url(settings.frontend_url), status_code=HTTPStatus.FOUND)


@router.post(
    "/data-sources",
    response_model=DataSourceSummary,
    status_code=HTTPStatus.CREATED,
)
async def store_data_source_credentials(
    payload: StoreCredentialsRequest,
    credential_store: Annotated[Any, Depends(get_credential_store)],
) -> DataSourceSummary:
    record = await credential_store.store_credentials(
        payload.user_id, payload.data_source_type, payload.credentials
    )
    return DataSourceSummary.from_record(record)


@router.get("/data-sources/{user_id}", response_model=list[DataSourceSummary])
async def list_data_sources(
    user_id: str,
    credential_store: Annotated[Any, Depends(get_credential_store)],
) -> list[DataSourceSummary]:
    """List a user's connected data sources without their secrets."""
    records = await credential_store.list_user_data_sources(user_id)
    return [DataSourceSummary.from_record(record) for record in records]


@router.get("/data-sources/{user_id}/{data_source_type}")
async def get_data_source_credentials(
    user_id: str,
    data_source_type: str,
    credential_store: Annotated[Any, Depends(get_credential_store)],
) -> dict:
    source = coerce_data_source_type(data_source_type)
    credentials = await credential_store.get_credentials(user_id, source)
    if credentials is None:
        raise NotFoundError(f"No {source.value} credentials found for user {user_id}")
    return {"user_id": user_id, "data_source_type": source.value, "credentials": credentials}


@router.delete(
    "/data-sources/{user_id}/{data_source_type}",
    status_code=HTTPStatus.NO_CONTENT,
)
async def delete_data_source(
    user_id: str,
    data_source_type: str,
    credential_store: Annotated[Any, Depends(get_credential_store)],
) -> Response:
    source = coerce_data_source_type(data_source_type)
    if not await credential_store.delete_credentials(user_id, source):
        raise NotFoundError(f"No {source.value} credentials found for user {user_id}")
    return Response(status_code=HTTPStatus.NO_CONTENT)


@router.get("/gmail/{user_id}/data", response_model=GmailData)
async def fetch_gmail_data(
    user_id: str,
    gmail: Annotated[Any, Depends(get_gmail_data_service)],
) -> GmailData:
    return await gmail.fetch_data(user_id)


@router.get("/plaid/{user_id}/data", response_model=PlaidData)
async def fetch_plaid_data(
    user_id: str,
    plaid: Annotated[Any, Depends(get_plaid_data_service)],
) -> PlaidData:
    return await plaid.fetch_data(user_id)


@router.post("/ingestion/run", response_model=IngestionRunSummary)
async def run_ingestion_now(
    connections: Annotated[Any, Depends(get_connection_service)],
) -> IngestionRunSummary:
    """Run one ingestion pass immediately and report per-provider outcomes."""
    return await connections.trigger_ingestion_now()
