"""Pytest configuration shared across the suite."""

try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import pytest

from pds.clients.sqlite_store import SQLiteStore
from pds.services.credential_store import CredentialStore
from pds.services.token_cipher import TokenCipherService


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO-powered tests to run against asyncio backend only."""
    return "asyncio"


@pytest.fixture
def sqlite_store(tmp_path) -> SQLiteStore:
    return SQLiteStore(str(tmp_path / "records.sqlite3"))


@pytest.fixture
def credential_store(sqlite_store: SQLiteStore) -> CredentialStore:
    return CredentialStore(sqlite_store, TokenCipherService(secret="test-secret"))
