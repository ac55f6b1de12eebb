try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import base64
import copy
import json
from datetime import datetime, timezone
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from pds.clients.google_auth import OAuthStateEncoder
from pds.main import app
from pds.models.data_source import DataSourceType
from pds.schemas.data_sources import IngestionRunSummary
from pds.schemas.plaid import PlaidAuthResponse
from pds.services.connections import ConnectionService
from pds.services.gmail_data import GmailDataService


class DummyOAuthClient:
    def __init__(self) -> None:
        self.states: list[str | None] = []
        self.codes: list[str] = []

    def build_authorization_url(self, state: str | None = None) -> str:
        self.states.append(state)
        return f"https://oauth.example.com/auth?state={state}"

    async def exchange_authorization_code(self, code: str) -> dict:
        self.codes.append(code)
        return {
            "access_token": "access-token",
            "refresh_token": "refresh-token",
            "expiry": "2030-01-01T00:00:00+00:00",
        }


class DummyPlaidService:
    def __init__(self) -> None:
        self.exchanged: list[tuple[str, str]] = []

    async def get_access_token(self, user_id: str) -> PlaidAuthResponse:
        if user_id == "linked":
            return PlaidAuthResponse(type="access_token", access_token="secret-access")
        return PlaidAuthResponse(type="link_token", link_token="link-123")

    async def exchange_public_token(self, public_token: str, user_id: str) -> None:
        self.exchanged.append((public_token, user_id))


class DummyScheduler:
    def __init__(self) -> None:
        self.runs = 0

    async def run_now(self) -> IngestionRunSummary:
        self.runs += 1
        now = datetime.now(timezone.utc)
        return IngestionRunSummary(
            started_at=now, finished_at=now, succeeded={"gmail": ["u1"]}, failed={"gmail": []}
        )


@pytest.fixture()
def route_overrides(credential_store):
    from pds import dependencies
    from pds.core.config import get_settings

    oauth_client = DummyOAuthClient()
    plaid = DummyPlaidService()
    scheduler = DummyScheduler()
    gmail = GmailDataService(
        credential_store=credential_store,
        oauth_client=oauth_client,
        gmail_api=None,
    )
    connections = ConnectionService(
        credential_store=credential_store,
        gmail=gmail,
        plaid=plaid,
        state_encoder=OAuthStateEncoder(),
        scheduler=scheduler,
    )
    settings = copy.deepcopy(get_settings())
    settings.frontend_url = "https://app.example.com"

    app.dependency_overrides.update(
        {
            dependencies.get_connection_service: lambda: connections,
            dependencies.get_credential_store: lambda: credential_store,
            dependencies.get_app_settings: lambda: settings,
        }
    )

    yield oauth_client, plaid, scheduler

    app.dependency_overrides.clear()


def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://testserver"
    )


def _decode_state(state: str) -> dict:
    return json.loads(base64.urlsafe_b64decode(state.encode()))


@pytest.mark.anyio
async def test_authorize_returns_json_by_default(route_overrides):
    async with _client() as client:
        response = await client.get("/api/auth/gmail/authorize", params={"user_id": "abc123"})

    assert response.status_code == 200
    data = response.json()
    assert data["authorization_url"].startswith("https://oauth.example.com/auth")
    state = _decode_state(data["state"])
    assert state["user_id"] == "abc123"
    assert state["provider"] == "gmail"
    assert state["nonce"]
    assert state["popup"] is False


@pytest.mark.anyio
async def test_authorize_redirects_browsers(route_overrides):
    async with _client() as client:
        response = await client.get(
            "/api/auth/gmail/authorize",
            params={"user_id": "abc123"},
            headers={"accept": "text/html"},
        )

    assert response.status_code == 307
    assert response.headers["location"].startswith("https://oauth.example.com/auth")


@pytest.mark.anyio
async def test_callback_stores_tokens_and_redirects(route_overrides, credential_store):
    oauth_client, _, _ = route_overrides
    state = OAuthStateEncoder().issue("user-1", DataSourceType.GMAIL)

    async with _client() as client:
        response = await client.get(
            "/api/auth/gmail/callback", params={"code": "auth-code", "state": state}
        )

    assert response.status_code == 302
    assert response.headers["location"] == "https://app.example.com/profile?status=success"
    assert oauth_client.codes == ["auth-code"]
    stored = await credential_store.get_credentials("user-1", "gmail")
    assert stored["refresh_token"] == "refresh-token"


@pytest.mark.anyio
async def test_callback_with_invalid_state_redirects_with_error(route_overrides):
    async with _client() as client:
        response = await client.get(
            "/api/auth/gmail/callback", params={"code": "auth-code", "state": "not-a-state"}
        )

    assert response.status_code == 302
    location = urlparse(response.headers["location"])
    assert location.path == "/profile"
    query = parse_qs(location.query)
    assert query["status"] == ["error"]
    assert query["error"] == ["Invalid state parameter"]


@pytest.mark.anyio
async def test_callback_rejects_state_missing_fields(route_overrides):
    forged = base64.urlsafe_b64encode(json.dumps({"user_id": "u"}).encode()).decode()

    async with _client() as client:
        response = await client.post(
            "/api/auth/gmail/callback", json={"code": "c", "state": forged}
        )

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid state parameter"}


@pytest.mark.anyio
async def test_popup_callback_returns_html(route_overrides):
    state = OAuthStateEncoder().issue("user-1", DataSourceType.GMAIL, popup=True)

    async with _client() as client:
        response = await client.get(
            "/api/auth/gmail/callback", params={"code": "auth-code", "state": state}
        )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/html")
    assert "postMessage" in response.text
    assert "window.close()" in response.text


@pytest.mark.anyio
async def test_plaid_auth_reports_existing_connection(route_overrides):
    async with _client() as client:
        linked = await client.get("/api/auth/plaid", params={"user_id": "linked"})
        fresh = await client.get("/api/auth/plaid", params={"user_id": "new-user"})

    assert linked.json() == {"status": "already_connected", "link_token": None}
    assert "secret-access" not in linked.text
    assert fresh.json() == {"status": "link_token", "link_token": "link-123"}


@pytest.mark.anyio
async def test_plaid_callback_exchanges_and_redirects(route_overrides):
    _, plaid, _ = route_overrides

    async with _client() as client:
        ok = await client.get(
            "/api/auth/plaid/callback", params={"public_token": "public-1", "user_id": "u1"}
        )
        missing = await client.get("/api/auth/plaid/callback", params={"user_id": "u1"})

    assert plaid.exchanged == [("public-1", "u1")]
    assert ok.headers["location"].endswith("/profile?status=success")
    assert "status=error" in missing.headers["location"]


@pytest.mark.anyio
async def test_store_credentials_rejects_unknown_type(route_overrides):
    async with _client() as client:
        response = await client.post(
            "/api/data-sources",
            json={"user_id": "u1", "data_source_type": "outlook", "credentials": {"a": 1}},
        )

    assert response.status_code == 400
    assert response.json() == {
        "error": "Invalid data source type: outlook. Must be one of: gmail, plaid"
    }


@pytest.mark.anyio
async def test_data_source_lifecycle(route_overrides):
    async with _client() as client:
        created = await client.post(
            "/api/data-sources",
            json={"user_id": "u1", "data_source_type": "plaid", "credentials": {"access_token": "a"}},
        )
        fetched = await client.get("/api/data-sources/u1/plaid")
        listed = await client.get("/api/data-sources/u1")
        deleted = await client.delete("/api/data-sources/u1/plaid")
        missing = await client.get("/api/data-sources/u1/plaid")

    assert created.status_code == 201
    assert "credentials" not in created.json()
    assert fetched.json()["credentials"] == {"access_token": "a"}
    assert [item["data_source_type"] for item in listed.json()] == ["plaid"]
    assert deleted.status_code == 204
    assert missing.status_code == 404
    assert missing.json() == {"error": "No plaid credentials found for user u1"}


@pytest.mark.anyio
async def test_ingestion_can_be_triggered_on_demand(route_overrides):
    _, _, scheduler = route_overrides

    async with _client() as client:
        response = await client.post("/api/ingestion/run")

    assert response.status_code == 200
    assert response.json()["succeeded"] == {"gmail": ["u1"]}
    assert scheduler.runs == 1


@pytest.mark.anyio
async def test_healthcheck():
    async with _client() as client:
        response = await client.get("/api/health")

    assert response.json() == {"status": "ok"}
