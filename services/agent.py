"""Polling agent orchestration: credential intake, snapshot ingestion, wiring."""

from __future__ import annotations

import logging
from datetime import datetime
from functools import lru_cache
from typing import Any, Dict, Optional

import httpx

from app.schemas import AgentStatus, CredentialEvent, CredentialEventResponse, SchedulerState
from datastore.credentials import CredentialStore, build_default_credential_store
from datastore.errors import StorageError
from datastore.readings import ReadingStore, build_default_reading_store
from services.parser import ParseFailure, SnapshotFormatError, parse_snapshot
from services.recovery import (
    NullSessionRefresher,
    RecoveryController,
    SessionRefresher,
    WebhookSessionRefresher,
)
from services.scheduler import DEFAULT_INTERVAL, AlarmFactory, AsyncioAlarm, PollScheduler
from services.sink import HttpReadingSink, ReadingSink
from services.vendor_client import VendorClient
from settings import get_settings

logger = logging.getLogger(__name__)


class PollingAgent:
    """Coordinates the credential store, scheduler and reading history."""

    def __init__(
        self,
        credentials: CredentialStore,
        readings: ReadingStore,
        client: VendorClient,
        refresher: Optional[SessionRefresher] = None,
        sink: Optional[ReadingSink] = None,
        interval: float = DEFAULT_INTERVAL,
        alarm_factory: AlarmFactory = AsyncioAlarm,
    ) -> None:
        self.credentials = credentials
        self.readings = readings
        self.client = client
        self.sink = sink
        self.recovery = RecoveryController(credentials, refresher)
        self.scheduler = PollScheduler(
            credentials=credentials,
            client=client,
            on_snapshot=self.ingest_snapshot,
            recovery=self.recovery,
            interval=interval,
            alarm_factory=alarm_factory,
        )

    async def start(self) -> None:
        """Resume polling with a credential that survived a restart."""
        credential = self.credentials.current()
        if credential is None:
            logger.info("No stored credential; waiting for the credential source")
            return
        logger.info("Resuming with stored credential", extra={"account_id": credential.account_id})
        await self.scheduler.on_credential_update()

    async def shutdown(self) -> None:
        await self.scheduler.shutdown()
        await self.client.aclose()
        for resource in (self.sink, self.recovery.refresher):
            aclose = getattr(resource, "aclose", None)
            if aclose is not None:
                await aclose()

    async def handle_credential_event(self, event: CredentialEvent) -> CredentialEventResponse:
        """Apply one event from the credential source.

        The credential is only stored (and polling armed) when both token and
        account are present; a failed write raises :class:`StorageError` and
        leaves the scheduler untouched. The credential is handled before any
        snapshot in the event, which is then ingested like a polled one.
        """
        if event.token and event.account_id:
            self.credentials.update(event.token, event.account_id)
            await self.scheduler.on_credential_update()
        else:
            logger.info("Credential event without token/account; keeping current credential")

        reading_stored = False
        if event.snapshot is not None:
            reading_stored = await self.ingest_snapshot(event.snapshot)

        return CredentialEventResponse(
            armed=self.scheduler.state is not SchedulerState.disarmed,
            reading_stored=reading_stored,
        )

    async def ingest_snapshot(
        self, snapshot: Dict[str, Any], captured_at: Optional[datetime] = None
    ) -> bool:
        """Parse, merge and forward one snapshot. Returns whether a reading was stored."""
        try:
            reading = parse_snapshot(snapshot, captured_at=captured_at)
        except SnapshotFormatError as exc:
            logger.warning("Discarded malformed snapshot", extra={"reason": str(exc)})
            return False
        except ParseFailure as exc:
            logger.warning("Discarded empty snapshot", extra={"reason": str(exc)})
            return False

        try:
            inserted = self.readings.merge(reading)
        except StorageError as exc:
            logger.error("Failed to store reading", extra={"reason": str(exc)})
            return False

        logger.info(
            "Captured reading",
            extra={
                "timestamp": reading.timestamp.isoformat(),
                "sensor_count": len(reading.sensors),
                "thermostat_count": len(reading.thermostats),
            },
        )
        if inserted and self.sink is not None:
            try:
                await self.sink.emit(reading)
            except httpx.HTTPError as exc:
                logger.warning("Failed to forward reading to sink", extra={"reason": repr(exc)})
        return inserted

    def status(self) -> AgentStatus:
        credential = self.credentials.current()
        latest = self.readings.latest()
        return AgentStatus(
            state=self.scheduler.state,
            has_credential=credential is not None,
            account_id=credential.account_id if credential else None,
            credential_captured_at=credential.captured_at if credential else None,
            reading_count=self.readings.count(),
            latest_timestamp=latest.timestamp if latest else None,
        )


@lru_cache
def build_default_agent() -> PollingAgent:
    """Factory that wires the agent from environment settings."""
    settings = get_settings()
    refresher: SessionRefresher = (
        WebhookSessionRefresher(settings.session_refresh_url)
        if settings.session_refresh_url
        else NullSessionRefresher()
    )
    sink = HttpReadingSink(settings.reading_sink_url) if settings.reading_sink_url else None
    return PollingAgent(
        credentials=build_default_credential_store(),
        readings=build_default_reading_store(),
        client=VendorClient(base_url=settings.vendor_base_url, timeout=settings.vendor_timeout),
        refresher=refresher,
        sink=sink,
        interval=settings.poll_interval,
    )
