"""
Periodic and on-demand ingestion across every connected data source.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Mapping, Optional, Protocol

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from pds.core.config import SchedulerSettings
from pds.core.errors import AuthExpiredError, TokenExchangeError
from pds.models.data_source import DataSourceType
from pds.schemas.data_sources import IngestionRunSummary
from pds.services.credential_store import CredentialStore

logger = logging.getLogger(__name__)


class SchedulerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


class DataFetcher(Protocol):
    async def fetch_data(self, user_id: str) -> Any: ...


class IngestionScheduler:
    """Drive ``fetch_data`` for every user of every provider.

    Providers are processed in mapping order and users one at a time in
    enumeration order. A failing user is logged and skipped; the pass always
    reaches every enumerated user.
    """

    CRON_JOB_ID = "ingestion-cron"
    STARTUP_JOB_ID = "ingestion-startup"
    STARTUP_DELAY = timedelta(seconds=5)

    def __init__(
        self,
        *,
        credential_store: CredentialStore,
        providers: Mapping[DataSourceType, DataFetcher],
        settings: Optional[SchedulerSettings] = None,
        scheduler: Optional[AsyncIOScheduler] = None,
    ) -> None:
        self._store = credential_store
        self._providers = dict(providers)
        self._settings = settings
        self._scheduler = scheduler
        self._lock = asyncio.Lock()
        self._state = SchedulerState.IDLE

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def scheduler(self) -> Optional[AsyncIOScheduler]:
        return self._scheduler

    def start(
        self,
        cron_expression: Optional[str] = None,
        enabled: Optional[bool] = None,
        run_on_startup: Optional[bool] = None,
    ) -> bool:
        """Register the cron trigger (and the startup catch-up run).

        Returns ``False`` without registering anything when disabled.
        """
        settings = self._settings or SchedulerSettings()
        if enabled is None:
            enabled = settings.enabled
        if not enabled:
            logger.info("Ingestion scheduler is disabled; no triggers registered")
            return False

        expression = cron_expression or settings.cron_expression
        if run_on_startup is None:
            run_on_startup = settings.run_on_startup

        if self._scheduler is None:
            self._scheduler = AsyncIOScheduler(timezone="UTC")

        self._scheduler.add_job(
            self.run_now,
            CronTrigger.from_crontab(expression, timezone="UTC"),
            id=self.CRON_JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        if run_on_startup:
            self._scheduler.add_job(
                self.run_now,
                "date",
                run_date=datetime.now(timezone.utc) + self.STARTUP_DELAY,
                id=self.STARTUP_JOB_ID,
                replace_existing=True,
            )

        if not self._scheduler.running:
            self._scheduler.start()
        logger.info("Ingestion scheduler started with cron '%s' (UTC)", expression)
        return True

    def stop(self) -> None:
        """Remove the triggers; a pass already running is left to finish."""
        if self._scheduler is None:
            return
        self._scheduler.remove_all_jobs()
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        logger.info("Ingestion scheduler stopped")

    async def run_now(self) -> IngestionRunSummary:
        """Run one full ingestion pass, or skip when one is already running."""
        summary = IngestionRunSummary(started_at=datetime.now(timezone.utc))
        if self._lock.locked():
            logger.warning("Ingestion pass already running; skipping this trigger")
            summary.skipped = True
            summary.finished_at = datetime.now(timezone.utc)
            return summary

        async with self._lock:
            self._state = SchedulerState.RUNNING
            logger.info("Starting ingestion pass")
            try:
                for data_source_type, fetcher in self._providers.items():
                    await self._ingest_provider(data_source_type, fetcher, summary)
            finally:
                self._state = SchedulerState.IDLE

        summary.finished_at = datetime.now(timezone.utc)
        logger.info(
            "Finished ingestion pass: %d succeeded, %d failed",
            sum(len(users) for users in summary.succeeded.values()),
            sum(len(users) for users in summary.failed.values()),
        )
        return summary

    async def _ingest_provider(
        self,
        data_source_type: DataSourceType,
        fetcher: DataFetcher,
        summary: IngestionRunSummary,
    ) -> None:
        provider = data_source_type.value
        succeeded = summary.succeeded.setdefault(provider, [])
        failed = summary.failed.setdefault(provider, [])

        try:
            user_ids = await self._store.get_users_with_data_source(data_source_type)
        except Exception:
            logger.exception("Could not enumerate %s users", provider)
            return

        logger.info("Ingesting %s data for %d users", provider, len(user_ids))
        for user_id in user_ids:
            try:
                await fetcher.fetch_data(user_id)
                await self._store.update_last_ingested_at(user_id, data_source_type)
            except (AuthExpiredError, TokenExchangeError) as exc:
                failed.append(user_id)
                logger.error(
                    "Authentication error for %s user %s; re-consent required: %s",
                    provider,
                    user_id,
                    exc,
                )
            except Exception as exc:
                failed.append(user_id)
                logger.error("Error ingesting %s data for user %s: %s", provider, user_id, exc)
            else:
                succeeded.append(user_id)
                logger.info("Ingested %s data for user %s", provider, user_id)


__all__ = ["DataFetcher", "IngestionScheduler", "SchedulerState"]
