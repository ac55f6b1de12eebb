try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import socket

import httpx
import pytest

from pds.core.errors import AuthExpiredError, ProviderApiError
from pds.utils.retry import (
    ErrorClassification,
    ErrorKind,
    ResilientExecutor,
    RetryConfig,
    RetryPolicy,
    looks_like_network_error,
    retry_with_config,
)


class UpstreamError(Exception):
    def __init__(self, status: int) -> None:
        super().__init__(f"upstream answered {status}")
        self.status = status


def classify(exc: BaseException) -> ErrorClassification:
    if isinstance(exc, UpstreamError):
        if exc.status == 429:
            return ErrorClassification(ErrorKind.RATE_LIMITED, 429)
        if exc.status == 401:
            return ErrorClassification(ErrorKind.AUTH_EXPIRED, 401)
        return ErrorClassification(ErrorKind.OTHER, exc.status)
    if looks_like_network_error(exc):
        return ErrorClassification(ErrorKind.NETWORK_ERROR)
    return ErrorClassification(ErrorKind.OTHER)


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class ScriptedOperation:
    """Raises the queued errors in order, then returns ``result``."""

    def __init__(self, *errors: BaseException, result: str = "ok", repeat_last: bool = False) -> None:
        self.errors = list(errors)
        self.result = result
        self.repeat_last = repeat_last
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.errors:
            error = self.errors[0] if self.repeat_last and len(self.errors) == 1 else self.errors.pop(0)
            raise error
        return self.result


def _executor(sleep: RecordingSleep, policy: RetryPolicy | None = None) -> ResilientExecutor:
    return ResilientExecutor(provider="test", classify=classify, policy=policy, sleep=sleep)


@pytest.mark.asyncio
async def test_retry_with_config_uses_fixed_delay_then_reraises() -> None:
    sleep = RecordingSleep()
    operation = ScriptedOperation(RuntimeError("boom"), repeat_last=True)

    with pytest.raises(RuntimeError):
        await retry_with_config(operation, RetryConfig(max_retries=3, delay_seconds=0.5), sleep=sleep)

    assert operation.calls == 4
    assert sleep.delays == [0.5, 0.5, 0.5]


@pytest.mark.asyncio
async def test_retry_with_config_respects_predicate() -> None:
    sleep = RecordingSleep()
    operation = ScriptedOperation(KeyError("nope"), repeat_last=True)

    with pytest.raises(KeyError):
        await retry_with_config(
            operation,
            RetryConfig(max_retries=5),
            retry_on=lambda exc: isinstance(exc, ValueError),
            sleep=sleep,
        )

    assert operation.calls == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_always_rate_limited_is_attempted_max_retries_plus_one() -> None:
    sleep = RecordingSleep()
    operation = ScriptedOperation(UpstreamError(429), repeat_last=True)

    with pytest.raises(ProviderApiError) as excinfo:
        await _executor(sleep).run(operation, operation_name="fetching accounts")

    assert operation.calls == 3
    assert sleep.delays == [1.0, 1.0]
    assert excinfo.value.message == "Rate limit exceeded when fetching accounts"
    assert excinfo.value.upstream_status == 429
    assert not isinstance(excinfo.value, AuthExpiredError)


@pytest.mark.asyncio
async def test_rate_limit_recovers_within_budget() -> None:
    sleep = RecordingSleep()
    operation = ScriptedOperation(UpstreamError(429), UpstreamError(429))

    assert await _executor(sleep).run(operation, operation_name="listing") == "ok"
    assert operation.calls == 3


@pytest.mark.asyncio
async def test_network_error_uses_network_budget() -> None:
    sleep = RecordingSleep()
    operation = ScriptedOperation(ConnectionRefusedError("connect ECONNREFUSED"), repeat_last=True)

    with pytest.raises(ProviderApiError) as excinfo:
        await _executor(sleep).run(operation, operation_name="fetching transactions")

    assert operation.calls == 2
    assert excinfo.value.message.startswith("Network error when fetching transactions")


@pytest.mark.asyncio
async def test_auth_error_refreshes_once_and_retries_once() -> None:
    sleep = RecordingSleep()
    operation = ScriptedOperation(UpstreamError(401))
    refreshes: list[int] = []

    async def refresh() -> None:
        refreshes.append(1)

    result = await _executor(sleep).run(operation, operation_name="listing", refresh=refresh)

    assert result == "ok"
    assert refreshes == [1]
    assert operation.calls == 2
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_auth_error_twice_surfaces_auth_expired() -> None:
    operation = ScriptedOperation(UpstreamError(401), repeat_last=True)
    refreshes: list[int] = []

    async def refresh() -> None:
        refreshes.append(1)

    with pytest.raises(AuthExpiredError) as excinfo:
        await _executor(RecordingSleep()).run(operation, operation_name="listing", refresh=refresh)

    assert refreshes == [1]
    assert operation.calls == 2
    assert excinfo.value.upstream_status == 401
    assert excinfo.value.message == "Authentication failed when listing"


@pytest.mark.asyncio
async def test_failed_refresh_surfaces_auth_expired() -> None:
    operation = ScriptedOperation(UpstreamError(401))

    async def refresh() -> None:
        raise RuntimeError("refresh token revoked")

    with pytest.raises(AuthExpiredError):
        await _executor(RecordingSleep()).run(operation, operation_name="listing", refresh=refresh)

    assert operation.calls == 1


@pytest.mark.asyncio
async def test_auth_error_without_refresh_is_terminal() -> None:
    operation = ScriptedOperation(UpstreamError(401))

    with pytest.raises(AuthExpiredError):
        await _executor(RecordingSleep()).run(operation, operation_name="listing")

    assert operation.calls == 1


@pytest.mark.asyncio
async def test_other_errors_are_wrapped_immediately_with_status() -> None:
    sleep = RecordingSleep()
    operation = ScriptedOperation(UpstreamError(500), repeat_last=True)

    with pytest.raises(ProviderApiError) as excinfo:
        await _executor(sleep).run(operation, operation_name="fetching accounts")

    assert operation.calls == 1
    assert sleep.delays == []
    assert excinfo.value.upstream_status == 500
    assert excinfo.value.status_code == 502
    assert excinfo.value.message.startswith("Error fetching accounts:")


@pytest.mark.asyncio
async def test_custom_policy_budgets() -> None:
    sleep = RecordingSleep()
    operation = ScriptedOperation(UpstreamError(429), repeat_last=True)
    policy = RetryPolicy(rate_limit=RetryConfig(max_retries=4, delay_seconds=0.25))

    with pytest.raises(ProviderApiError):
        await _executor(sleep, policy).run(operation, operation_name="listing")

    assert operation.calls == 5
    assert sleep.delays == [0.25] * 4


@pytest.mark.parametrize(
    "exc",
    [
        ConnectionRefusedError(),
        TimeoutError(),
        socket.gaierror(-2, "Name or service not known"),
        httpx.ConnectTimeout("slow"),
        RuntimeError("getaddrinfo ENOTFOUND gmail.googleapis.com"),
        OSError("Unable to find the server at oauth2.googleapis.com"),
    ],
)
def test_network_signatures_are_detected(exc: BaseException) -> None:
    assert looks_like_network_error(exc)


def test_plain_errors_are_not_network_errors() -> None:
    assert not looks_like_network_error(ValueError("bad payload"))
