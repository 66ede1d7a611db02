"""Recovery from a vendor-rejected credential."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional, Protocol

import httpx

from app.schemas import Credential
from datastore.credentials import CredentialStore
from datastore.errors import StorageError

if TYPE_CHECKING:
    from services.scheduler import PollScheduler

logger = logging.getLogger(__name__)


class SessionRefresher(Protocol):
    async def request_refresh(self) -> None:
        """Ask whatever hosts the live session to reload it."""


class NullSessionRefresher:
    async def request_refresh(self) -> None:
        logger.info("No session-refresh hook configured; waiting for the next captured credential")


class WebhookSessionRefresher:
    """POSTs to a helper (e.g. browser automation) that reloads the vendor page."""

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.url = url
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request_refresh(self) -> None:
        response = await self._client.post(self.url, json={"reason": "auth_expired"})
        response.raise_for_status()
        logger.info("Requested session refresh", extra={"status": response.status_code})


class RecoveryController:
    """Clears the dead credential, disarms polling and nudges the session.

    The nudge is best effort. If it fails the agent simply stays disarmed
    until the credential source delivers a fresh token on its own.
    """

    def __init__(
        self,
        credentials: CredentialStore,
        refresher: Optional[SessionRefresher] = None,
    ) -> None:
        self.credentials = credentials
        self.refresher: SessionRefresher = refresher or NullSessionRefresher()
        self._scheduler: Optional["PollScheduler"] = None

    def bind(self, scheduler: "PollScheduler") -> None:
        self._scheduler = scheduler

    async def handle_expiry(self, expired: Credential) -> None:
        try:
            cleared = self.credentials.clear(expected_token=expired.token)
        except StorageError as exc:
            cleared = True
            logger.error("Failed to remove expired credential file", extra={"reason": str(exc)})

        if not cleared and self.credentials.current() is not None:
            logger.info(
                "Expired token already replaced; skipping recovery",
                extra={"account_id": expired.account_id},
            )
            return

        if self._scheduler is not None:
            await self._scheduler.disarm(only_if_no_credential=True)

        try:
            await self.refresher.request_refresh()
        except Exception as exc:  # noqa: BLE001 - the hook is best effort
            logger.warning("Session refresh request failed", extra={"reason": repr(exc)})
