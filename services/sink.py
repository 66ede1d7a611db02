"""Forwarding of stored readings to the downstream ingestion service."""

from __future__ import annotations

import logging
from typing import Optional, Protocol

import httpx

from app.schemas import Reading

logger = logging.getLogger(__name__)


class ReadingSink(Protocol):
    async def emit(self, reading: Reading) -> None: ...


class HttpReadingSink:
    """POSTs each newly stored reading as JSON to the ingestion endpoint."""

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

    async def emit(self, reading: Reading) -> None:
        response = await self._client.post(self.url, json=reading.model_dump(mode="json"))
        response.raise_for_status()
        logger.debug(
            "Forwarded reading to sink",
            extra={"timestamp": reading.timestamp.isoformat(), "status": response.status_code},
        )
