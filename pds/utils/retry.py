"""Retry utilities providing fixed-delay retry and failure classification."""

from __future__ import annotations

import asyncio
import logging
import socket
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar

import httpx

from pds.core.errors import AuthExpiredError, DataStoreError, ProviderApiError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]

_NETWORK_SIGNATURES = (
    "econnrefused",
    "etimedout",
    "enotfound",
    "connection refused",
    "timed out",
    "timeout",
    "name or service not known",
    "temporary failure in name resolution",
    "unable to find the server",
)


@dataclass(frozen=True)
class RetryConfig:
    max_retries: int
    delay_seconds: float = 1.0


async def retry_with_config(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig,
    *,
    retry_on: Optional[Callable[[BaseException], bool]] = None,
    sleep: Sleep = asyncio.sleep,
) -> T:
    """Run ``operation``, retrying after a constant delay up to ``config.max_retries`` times.

    ``retry_on`` narrows which exceptions are retried; anything else is
    re-raised immediately. Once the budget is spent the last error propagates.
    """
    retries = 0
    while True:
        try:
            return await operation()
        except Exception as exc:
            if retry_on is not None and not retry_on(exc):
                raise
            if retries >= config.max_retries:
                raise
            retries += 1
            logger.warning(
                "Attempt %d failed (%s); retrying in %.1fs",
                retries,
                exc,
                config.delay_seconds,
            )
            await sleep(config.delay_seconds)


class ErrorKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    AUTH_EXPIRED = "auth_expired"
    NETWORK_ERROR = "network_error"
    OTHER = "other"


@dataclass(frozen=True)
class ErrorClassification:
    kind: ErrorKind
    status_code: Optional[int] = None


Classifier = Callable[[BaseException], ErrorClassification]


def looks_like_network_error(exc: BaseException) -> bool:
    """Detect transport-level failures by type or by well-known message fragments."""
    if isinstance(
        exc,
        (
            ConnectionError,
            TimeoutError,
            socket.gaierror,
            httpx.TimeoutException,
            httpx.NetworkError,
        ),
    ):
        return True
    message = str(exc).lower()
    return any(signature in message for signature in _NETWORK_SIGNATURES)


@dataclass(frozen=True)
class RetryPolicy:
    """Per-kind retry budgets used by :class:`ResilientExecutor`."""

    rate_limit: RetryConfig = field(default_factory=lambda: RetryConfig(max_retries=2))
    network: RetryConfig = field(default_factory=lambda: RetryConfig(max_retries=1))


class ResilientExecutor:
    """Run upstream calls under a provider's classification and retry budgets.

    Rate-limited and network failures draw on their own budgets. An expired
    credential gets exactly one ``refresh`` followed by one bare retry. Every
    other failure, and every exhausted budget, surfaces as
    :class:`ProviderApiError` carrying the upstream status.
    """

    def __init__(
        self,
        *,
        provider: str,
        classify: Classifier,
        policy: Optional[RetryPolicy] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._provider = provider
        self._classify = classify
        self._policy = policy or RetryPolicy()
        self._sleep = sleep

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    def _is_kind(self, kind: ErrorKind) -> Callable[[BaseException], bool]:
        return lambda exc: self._classify(exc).kind is kind

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        operation_name: str,
        refresh: Optional[Callable[[], Awaitable[None]]] = None,
    ) -> T:
        async def rate_limited_attempt() -> T:
            return await retry_with_config(
                operation,
                self._policy.rate_limit,
                retry_on=self._is_kind(ErrorKind.RATE_LIMITED),
                sleep=self._sleep,
            )

        try:
            return await retry_with_config(
                rate_limited_attempt,
                self._policy.network,
                retry_on=self._is_kind(ErrorKind.NETWORK_ERROR),
                sleep=self._sleep,
            )
        except DataStoreError:
            raise
        except Exception as exc:
            classification = self._classify(exc)
            if classification.kind is ErrorKind.AUTH_EXPIRED and refresh is not None:
                return await self._recover(operation, operation_name, refresh)
            raise self._wrap(exc, classification, operation_name) from exc

    async def _recover(
        self,
        operation: Callable[[], Awaitable[T]],
        operation_name: str,
        refresh: Callable[[], Awaitable[None]],
    ) -> T:
        logger.warning(
            "%s credentials rejected when %s; refreshing and retrying once",
            self._provider,
            operation_name,
        )
        try:
            await refresh()
        except Exception as exc:
            logger.error("%s credential refresh failed: %s", self._provider, exc)
            raise AuthExpiredError(
                f"Authentication failed when {operation_name}", provider=self._provider
            ) from exc

        try:
            return await operation()
        except DataStoreError:
            raise
        except Exception as exc:
            raise self._wrap(exc, self._classify(exc), operation_name) from exc

    def _wrap(
        self,
        exc: BaseException,
        classification: ErrorClassification,
        operation_name: str,
    ) -> ProviderApiError:
        kind = classification.kind
        if kind is ErrorKind.AUTH_EXPIRED:
            error: ProviderApiError = AuthExpiredError(
                f"Authentication failed when {operation_name}", provider=self._provider
            )
        elif kind is ErrorKind.RATE_LIMITED:
            error = ProviderApiError(
                f"Rate limit exceeded when {operation_name}",
                provider=self._provider,
                upstream_status=classification.status_code,
            )
        elif kind is ErrorKind.NETWORK_ERROR:
            error = ProviderApiError(
                f"Network error when {operation_name}: {exc}",
                provider=self._provider,
                upstream_status=classification.status_code,
            )
        else:
            error = ProviderApiError(
                f"Error {operation_name}: {exc}",
                provider=self._provider,
                upstream_status=classification.status_code,
            )
        logger.error("%s", error.message)
        return error


__all__ = [
    "ErrorClassification",
    "ErrorKind",
    "ResilientExecutor",
    "RetryConfig",
    "RetryPolicy",
    "Sleep",
    "looks_like_network_error",
    "retry_with_config",
]
