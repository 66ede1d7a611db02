"""HTTP client for the vendor's private app_launch snapshot endpoint."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Union

import httpx

from app.schemas import Credential
from models.buckets import KNOWN_BUCKET_TYPES

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://home.nest.com"
DEFAULT_TIMEOUT = 30.0

_AUTH_EXPIRED_STATUSES = frozenset({401, 403})


@dataclass(frozen=True)
class Success:
    snapshot: Dict[str, Any]


@dataclass(frozen=True)
class AuthExpired:
    status_code: int


@dataclass(frozen=True)
class TransientFailure:
    reason: str


PollOutcome = Union[Success, AuthExpired, TransientFailure]


def authorization_header(token: str) -> str:
    """Captured tokens usually carry their scheme already ("Basic c.xyz")."""
    if " " in token.strip():
        return token.strip()
    return f"Bearer {token.strip()}"


class VendorClient:
    """Requests full state snapshots and classifies the outcome.

    Every request declares the full bucket allow-list with no known versions,
    so the vendor always answers with a complete snapshot rather than a diff.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        bucket_types: Sequence[str] = KNOWN_BUCKET_TYPES,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.bucket_types = list(bucket_types)
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    def snapshot_path(self, account_id: str) -> str:
        return f"/api/0.1/user/{account_id}/app_launch"

    async def poll(self, credential: Credential) -> PollOutcome:
        headers = {
            "Authorization": authorization_header(credential.token),
            "X-nl-user-id": credential.account_id,
            "X-nl-protocol-version": "1",
        }
        body = {
            "known_bucket_types": self.bucket_types,
            "known_bucket_versions": [],
        }

        try:
            response = await self._client.post(
                self.snapshot_path(credential.account_id),
                json=body,
                headers=headers,
            )
        except httpx.TimeoutException as exc:
            return TransientFailure(reason=f"timed out after {self.timeout}s: {exc!r}")
        except httpx.HTTPError as exc:
            return TransientFailure(reason=f"request failed: {exc!r}")

        if response.status_code in _AUTH_EXPIRED_STATUSES:
            logger.info(
                "Vendor rejected credential",
                extra={"account_id": credential.account_id, "status": response.status_code},
            )
            return AuthExpired(status_code=response.status_code)

        if not response.is_success:
            return TransientFailure(reason=f"unexpected status {response.status_code}")

        try:
            payload = response.json()
        except ValueError as exc:
            return TransientFailure(reason=f"invalid JSON body: {exc}")

        if not isinstance(payload, dict) or not isinstance(payload.get("updated_buckets"), list):
            return TransientFailure(reason="body has no 'updated_buckets' list")

        return Success(snapshot=payload)
